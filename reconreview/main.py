"""Bank Reconciliation Review Service - Main Application."""

import logging.config

from fastapi import FastAPI

from reconreview.api.routes import export, reconciliation, tracking
from reconreview.core.config import settings
from reconreview.core.database import Base, engine
from reconreview.core.logging import setup_logging
from reconreview.core.logging_config import LOGGING_CONFIG

# Configure logging before anything else
logging.config.dictConfig(LOGGING_CONFIG)
logger = setup_logging(settings.log_level)

# Only the tracking checkpoint lives locally
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Review",
        "description": (
            "Listing, renaming and deletion of reconciliations, and the review "
            "table of one reconciliation: search, type filters, sort and paging "
            "over invoice groups, unmatched items, suggestions, manual match "
            "edits and resolution of invoices with several candidates."
        ),
    },
    {
        "name": "Export",
        "description": (
            "Excel export of the filtered and sorted review table, with a "
            "metadata sheet describing the active search, filters and sort, "
            "and download of the workbook produced by the remote job."
        ),
    },
    {
        "name": "Tracking",
        "description": (
            "Upload invoice and bank statement files, start a remote "
            "reconciliation and follow its progress across restarts."
        ),
    },
]


app = FastAPI(
    title="Bank Reconciliation Review Service",
    description=(
        "## Invoice / Bank Transaction Review API\n\n"
        "A remote reconciliation service pairs invoices with bank transactions "
        "and proposes matches with a confidence score. This service projects "
        "those matches into a reviewable table and forwards the reviewer's "
        "decisions back to the remote API.\n\n"
        "### Match Types\n"
        "| Type | Label |\n"
        "|------|-------|\n"
        "| `EXACT_REF` | Référence exacte |\n"
        "| `EXACT_AMOUNT` | Montant exact |\n"
        "| `REFINED_AMOUNT` | Montant raffiné |\n"
        "| `SIMPLE_NAME` | Nom exact |\n"
        "| `FUZZY_NAME` | Nom approchant |\n"
        "| `COMBINED` | Combiné |\n"
        "| `NONE` | Non appariée |\n\n"
        "Two synthetic filters complete them: `MULTIPLE` (invoices with several "
        "candidate matches) and `MANUAL` (matches created or chosen by hand).\n\n"
        "### Quick Start\n"
        "```bash\n"
        "# 1. Upload files and start a reconciliation\n"
        "curl -X POST /api/v1/tracking/upload -F invoices=@factures.xlsx "
        "-F transactions=@releve.xlsx\n\n"
        "# 2. Browse the review table\n"
        "curl '/api/v1/reconciliations/<id>/view?filters=MULTIPLE&sort_field=amount'\n\n"
        "# 3. Keep one candidate for a conflicting invoice\n"
        "curl -X POST /api/v1/reconciliations/<id>/invoices/<invoice_id>/resolve "
        '-H "Content-Type: application/json" '
        "-d '{\"strategy\":\"keep\",\"matchId\":\"<match_id>\"}'\n\n"
        "# 4. Export what is on screen\n"
        "curl -OJ '/api/v1/reconciliations/<id>/export?search=dupont'\n"
        "```\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    license_info={
        "name": "MIT",
    },
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(
    reconciliation.router, prefix="/api/v1/reconciliations", tags=["Review"]
)
app.include_router(export.router, prefix="/api/v1/reconciliations", tags=["Export"])
app.include_router(tracking.router, prefix="/api/v1/tracking", tags=["Tracking"])

logger.info("Reconciliation Review API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Returns a simple JSON object confirming the service is running.
    """
    return {"status": "healthy", "service": "reconciliation-review"}

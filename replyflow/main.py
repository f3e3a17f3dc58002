"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from sqlalchemy import text

from replyflow.core.config import settings
from replyflow.core.structured_logging import configure_logging
from replyflow.db.session import engine

configure_logging()

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # Message bodies and phone numbers stay out of Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Replyflow API",
    description="Inbound message pipeline and outbound reply queue",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# ============================================================================
# Routers
# ============================================================================

from replyflow.routers import internal  # noqa: E402

app.include_router(internal.router)


@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}

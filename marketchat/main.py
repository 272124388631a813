import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from marketchat.api.routes.attachments import attachments_router
from marketchat.db import check_database_health, make_engine
from marketchat.services.migration_service import run_migrations

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting attachment server...")
    engine = make_engine()
    try:
        await run_migrations()

        skip_table_check = os.getenv("SKIP_TABLE_CHECK") == "true"
        await check_database_health(engine, skip_table_check=skip_table_check)
        logger.info("Database health check passed - application ready")
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        logger.error("Application startup aborted due to database issues")
        await engine.dispose()
        raise

    yield

    await engine.dispose()
    logger.info("Attachment server shutting down...")


app = FastAPI(title="marketchat", lifespan=lifespan)

app.include_router(attachments_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

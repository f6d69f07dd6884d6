"""
AI Visibility Tracker API

FastAPI application that:
1. Initializes the database and engine registry on startup
2. Exposes the check trigger endpoint (POST /checks/run)
3. Reports health
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI

# Auth settings are read with os.getenv, so .env must be loaded first
load_dotenv()

from api.checks import router as checks_router
from src import __version__
from src.database import init_db, check_db_connection
from src.services.visibility import get_visibility_service
from src.utils.config import get_settings

# Configure logging to stdout
logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,  # Override any existing config
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and engines on startup."""
    logger.info("Initializing database...")
    try:
        init_db()
        if not check_db_connection():
            logger.warning("Database connection check failed - continuing anyway")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    service = get_visibility_service()
    logger.info(f"Engines registered: {', '.join(service.registry.engine_ids)}")
    yield


app = FastAPI(
    title="AI Visibility Tracker",
    description="Tracks brand presence across AI answer engines",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(checks_router)


@app.get("/health")
async def health():
    """Health check including database status."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "database": "connected" if check_db_connection() else "disconnected",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers the import routers.
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routers import imports
from .core.config import settings
from .core.logging_config import configure_logging

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
    else:
        from .db.session import create_tables

        try:
            create_tables()
            logger.info("Database tables initialized")
        except Exception as e:
            logger.error("Failed to initialize database tables: %s", e)
            raise

    yield

    from .domain.imports.orchestrator import shutdown_orchestrator

    shutdown_orchestrator(wait=False)


app = FastAPI(
    title="CRM Bulk Import API",
    version="1.0.0",
    description="Streams uploaded CSV files into CRM entities with duplicate validation and progress tracking",
    lifespan=lifespan
)

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports.router)


@app.get("/")
async def root():
    return {
        "message": "CRM Bulk Import API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "crm-bulk-import"
    }

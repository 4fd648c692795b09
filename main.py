#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Main FastAPI application setup for Trailhead Ingest.

Initializes the FastAPI application, sets up lifespan management for services,
registers CORS and includes the admin API routes.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import dependencies, routes
from config import config
from exceptions import APIConfigurationError, PersistenceError
from logging_config import StructuredLogger
from services.jobs import JobManager
from services.pipeline import build_pipeline
from services.storage import JsonFileVideoStore
from version import __version__

logger = StructuredLogger(__name__)


def _reset_services() -> None:
    dependencies.provider = None
    dependencies.orchestrator = None
    dependencies.stats_refresher = None


def build_services() -> None:
    """Create the service instances and publish them in api.dependencies.

    The store and job manager are always created so stored import state stays
    readable; the services that call YouTube are left unset without an API key.
    """
    dependencies.store = JsonFileVideoStore(config.STORE_PATH)
    dependencies.job_manager = JobManager()

    try:
        pipeline = build_pipeline(config, dependencies.store)
    except APIConfigurationError as api_err:
        logger.critical(f"API configuration error during startup: {api_err}")
        _reset_services()
        return

    dependencies.provider = pipeline.provider
    dependencies.orchestrator = pipeline.orchestrator
    dependencies.stats_refresher = pipeline.stats_refresher
    logger.info("Trailhead Ingest services initialized successfully.")


# --- Lifespan Management ---

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Populates the global service instances defined in api.dependencies on
    startup and cancels running jobs on shutdown.
    """
    logger.info("Starting Trailhead Ingest FastAPI application lifespan...")

    try:
        build_services()
    except PersistenceError as e:
        logger.critical(f"Video store unavailable: {e}")
        dependencies.store = None
        _reset_services()

    yield

    logger.info("Shutting down Trailhead Ingest FastAPI application lifespan...")
    if dependencies.job_manager is not None:
        await dependencies.job_manager.shutdown()
    logger.info("Lifespan cleanup finished.")


# --- FastAPI Application Instantiation ---

app = FastAPI(
    lifespan=lifespan,
    title="Trailhead Ingest API",
    description="Admin API importing YouTube channel videos, metadata and transcripts into the catalog.",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"]
)
logger.debug(f"CORS Middleware added. Allowed origins: {config.ALLOWED_ORIGINS}")

app.include_router(routes.router)
logger.info("FastAPI application setup complete.")

"""FastAPI application entry point."""

import logging
import os
import threading

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from orchestration.config import settings
from orchestration.database import engine
from orchestration.dependencies import build_services
from orchestration.routes import action_configs, orchestration, queue
from orchestration.services.scheduler import BatchScheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Agent Orchestration",
    description="Batch scheduler for autonomous project agents",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(orchestration.router)
app.include_router(queue.router)
app.include_router(action_configs.router)

# Worker thread management
worker_thread = None
worker_stop_event = threading.Event()


def run_migrations():
    """Apply alembic migrations unless the schema is already there."""
    if inspect(engine).has_table("orchestration_queue_state"):
        logger.info("Database tables already exist, skipping migrations")
        return

    logger.info("Running database migrations...")
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed successfully")


@app.on_event("startup")
async def startup_event():
    """Build services and start the background worker and cron trigger."""
    global worker_thread
    logger.info("Starting application...")

    try:
        run_migrations()
    except SQLAlchemyError as e:
        logger.error(f"Startup database check/migration error: {e}")
        logger.info("Continuing startup - assuming database is ready")

    services = build_services()
    app.state.services = services

    from orchestration.worker import Worker

    worker = Worker(services)
    worker_thread = threading.Thread(target=worker.run, args=(worker_stop_event,), daemon=True)
    worker_thread.start()
    logger.info("Background worker thread started")

    if settings.BATCH_CRON_ENABLED:
        app.state.batch_scheduler = BatchScheduler(services.queue)
        app.state.batch_scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the cron trigger and the background worker."""
    logger.info("Shutting down application...")

    batch_scheduler = getattr(app.state, "batch_scheduler", None)
    if batch_scheduler:
        batch_scheduler.shutdown()

    worker_stop_event.set()
    if worker_thread and worker_thread.is_alive():
        worker_thread.join(timeout=10)
        logger.info("Background worker thread stopped")


@app.get("/health")
def health():
    """Health check endpoint."""
    services = getattr(app.state, "services", None)
    return {
        "status": "healthy",
        "queue_enabled": bool(services and services.queue.enabled),
        "queue_paused": bool(services and services.queue.is_paused()),
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "Agent Orchestration",
        "version": "0.1.0",
        "status": "running",
    }

"""Service construction and FastAPI accessors."""

import logging
from dataclasses import dataclass

from fastapi import HTTPException, Request

from orchestration.database import SessionLocal
from orchestration.services.coordinator import BatchCoordinator
from orchestration.services.queue import JobQueue

logger = logging.getLogger(__name__)


@dataclass
class Services:
    coordinator: BatchCoordinator
    queue: JobQueue


def build_services(session_factory=SessionLocal) -> Services:
    """Construct the coordinator and queue once per process."""
    coordinator = BatchCoordinator(session_factory=session_factory)
    queue = JobQueue(coordinator, session_factory=session_factory)
    logger.info(f"Services built (queue enabled: {queue.enabled})")
    return Services(coordinator=coordinator, queue=queue)


def get_coordinator(request: Request) -> BatchCoordinator:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Orchestration service not initialized")
    return services.coordinator


def get_queue(request: Request) -> JobQueue:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Queue service not initialized")
    return services.queue

"""Queue management routes."""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from orchestration.dependencies import get_queue
from orchestration.schemas.orchestration import QueueJobResponse, QueueStats
from orchestration.services.queue import JobQueue
from orchestration.types import QueueJobStatus

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("/stats", response_model=QueueStats)
def stats(queue: JobQueue = Depends(get_queue)):
    """Queue counts by status."""
    return queue.get_stats()


@router.get("/jobs", response_model=List[QueueJobResponse])
def list_jobs(
    status: QueueJobStatus = QueueJobStatus.WAITING,
    limit: int = Query(default=50, ge=1, le=500),
    queue: JobQueue = Depends(get_queue),
):
    """List queue jobs in one status."""
    return queue.get_jobs(status.value, limit)


@router.post("/jobs/{job_id}/retry")
def retry_job(job_id: uuid.UUID, queue: JobQueue = Depends(get_queue)):
    """Retry a failed job."""
    if not queue.retry_job(job_id):
        raise HTTPException(status_code=404, detail="Failed job not found")
    return {"success": True}


@router.post("/retry-failed")
def retry_failed(queue: JobQueue = Depends(get_queue)):
    """Retry every failed job."""
    return {"retried": queue.retry_all_failed()}


@router.delete("/jobs/{job_id}")
def cancel_job(job_id: uuid.UUID, queue: JobQueue = Depends(get_queue)):
    """Cancel a job that has not started."""
    if not queue.cancel_job(job_id):
        raise HTTPException(status_code=404, detail="Pending job not found")
    return {"success": True}


@router.post("/pause")
def pause(queue: JobQueue = Depends(get_queue)):
    queue.pause()
    return {"paused": True}


@router.post("/resume")
def resume(queue: JobQueue = Depends(get_queue)):
    queue.resume()
    return {"paused": False}


@router.post("/drain")
def drain(queue: JobQueue = Depends(get_queue)):
    """Remove every job that has not started yet."""
    return {"removed": queue.drain()}


@router.post("/cleanup")
def cleanup(
    older_than_seconds: Optional[int] = Query(default=None, ge=0),
    queue: JobQueue = Depends(get_queue),
):
    """Delete finished jobs older than the retention window."""
    return {"cleaned": queue.cleanup(older_than_seconds)}

"""Standalone queue worker pool with an overdue and stalled job supervisor."""

import logging
import threading
import time

import sqlalchemy
from sqlalchemy.exc import SQLAlchemyError

from orchestration.config import settings
from orchestration.dependencies import Services, build_services

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


class Worker:
    """Runs the queue workers; periodically times out overdue jobs and recovers stalled ones."""

    def __init__(self, services: Services = None):
        """Initialize worker."""
        self.services = services or build_services()
        self.poll_interval = settings.WORKER_POLL_INTERVAL

    def wait_for_database(self, max_wait: int = 60):
        """Wait for migrations to create the queue table."""
        waited = 0
        while waited < max_wait:
            db = self.services.queue.session_factory()
            try:
                db.execute(sqlalchemy.text("SELECT 1 FROM orchestration_queue LIMIT 1"))
                logger.info("Database is ready, starting worker loop")
                return True
            except SQLAlchemyError as e:
                logger.info(f"Waiting for database ({waited}s): {e.__class__.__name__}")
                time.sleep(2)
                waited += 2
            finally:
                db.close()

        logger.error(f"Database not ready after {max_wait} seconds, starting anyway...")
        return False

    def supervise_once(self):
        """Time out overdue orchestration jobs and recover stalled queue jobs."""
        expired = self.services.coordinator.expire_overdue_jobs()
        if expired:
            logger.warning(f"Timed out {expired} overdue jobs")
        recovered = self.services.queue.recover_stalled()
        if recovered:
            logger.warning(f"Recovered {recovered} stalled queue jobs")
        return expired, recovered

    def run(self, stop_event=None):
        """Main worker loop.

        Args:
            stop_event: Optional threading.Event to signal worker to stop
        """
        stop_event = stop_event or threading.Event()
        self.wait_for_database()

        queue = self.services.queue
        queue.start()

        try:
            while not stop_event.is_set():
                try:
                    self.supervise_once()
                except SQLAlchemyError as e:
                    logger.error(f"Supervisor error: {e}", exc_info=True)
                stop_event.wait(self.poll_interval)
        except KeyboardInterrupt:
            logger.info("Worker shutting down")
        finally:
            queue.stop()


def main():
    """Entry point for standalone worker."""
    worker = Worker()
    worker.run()


if __name__ == "__main__":
    main()

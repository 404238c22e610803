"""Celery tasks for repository recipe imports."""

import logging

from celery.exceptions import SoftTimeLimitExceeded

from src.celery_app import app as celery_app
from src.services.batch_tracker import BatchTracker
from src.services.importer import RecipeImporter

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def run_import_batch(self, batch_id: str) -> dict:
    """Run an import batch to a terminal state.

    Args:
        batch_id: ID of the ImportBatch record to process

    Returns:
        dict with the final batch counters
    """
    tracker = BatchTracker()
    try:
        batch = RecipeImporter(tracker=tracker).run(batch_id)
        if batch is None:
            return {"error": "Import batch not found"}

        return {
            "batch_id": batch.id,
            "status": batch.status,
            "successful_imports": batch.successful_imports,
            "failed_imports": batch.failed_imports,
        }

    except SoftTimeLimitExceeded:
        logger.error(f"Import batch {batch_id} exceeded its time limit")
        tracker.fail(batch_id, "Import aborted: run exceeded its time limit")
        return {"error": "time limit exceeded"}
    except Exception as e:
        # Item errors are counted inside the run; only run-level errors reach here
        logger.error(f"Error processing import batch {batch_id}: {e}", exc_info=True)
        tracker.fail(batch_id, f"Import aborted: {e}")
        return {"error": str(e)}

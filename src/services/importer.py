"""Repository import runs: enumerate, normalize, persist, account."""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

import httpx

from src.config import Settings, get_settings
from src.database import SessionFactory, SessionLocal
from src.models.enums import ImportStatus
from src.models.import_batch import ImportBatch
from src.models.recipe import Recipe
from src.services.batch_tracker import BatchTracker, ItemOutcome
from src.services.errors import PersistenceError, RepositoryFetchError
from src.services.normalizer import RawPayload, normalize
from src.services.recipe_service import persist_with_retry
from src.services.repository import enumerate_repository

logger = logging.getLogger(__name__)


def _dispatch_with_celery(batch_id: str) -> Any:
    from src.tasks.recipe_import import run_import_batch

    return run_import_batch.delay(batch_id)


class RecipeImporter:
    """Runs import batches against a recipe repository.

    ``start_import`` only creates the batch and hands it to the background
    worker; ``run`` does the work. Items are normalized and stored on a thread
    pool, but their outcomes are applied to the batch by the calling thread
    alone, one at a time.
    """

    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        settings: Settings | None = None,
        tracker: BatchTracker | None = None,
        dispatch: Callable[[str], Any] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.tracker = tracker or BatchTracker(session_factory)
        self.dispatch = dispatch or _dispatch_with_celery
        self.transport = transport

    def start_import(self, repository_url: str, created_by: str | None = None) -> str:
        """Create a batch and queue it for background processing.

        Returns:
            The new batch id. Re-submitting a URL always yields a new batch.
        """
        batch = self.tracker.create_batch(repository_url, created_by=created_by)
        self.dispatch(batch.id)
        return batch.id

    def run(self, batch_id: str) -> ImportBatch | None:
        """Process a batch to a terminal state and return its final snapshot."""
        batch = self.tracker.get_status(batch_id)
        if batch is None:
            logger.error(f"Import batch {batch_id} not found")
            return None
        if batch.is_terminal:
            logger.warning(f"Import batch {batch_id} already {batch.status}, nothing to do")
            return batch

        logger.info(f"Starting import batch {batch_id} from {batch.repository_url}")
        try:
            payloads = enumerate_repository(
                batch.repository_url, self.settings, transport=self.transport
            )
        except RepositoryFetchError as e:
            self.tracker.fail(batch_id, f"Repository fetch failed: {e.message}")
            return self.tracker.get_status(batch_id)

        if batch.import_status == ImportStatus.PENDING:
            if not self.tracker.mark_in_progress(batch_id, len(payloads)):
                # Another worker claimed the batch after our snapshot was taken
                logger.warning(f"Import batch {batch_id} was claimed by another run, skipping")
                return self.tracker.get_status(batch_id)
        else:
            payloads = self._remaining_payloads(batch, payloads)
            if payloads is None:
                return self.tracker.get_status(batch_id)

        self._process(batch_id, batch.repository_url, payloads)
        self.tracker.complete(batch_id)
        return self.tracker.get_status(batch_id)

    def _remaining_payloads(
        self, batch: ImportBatch, payloads: list[RawPayload]
    ) -> list[RawPayload] | None:
        """Drop payloads a previous, interrupted run of this batch already attempted."""
        if batch.total_recipes is not None and batch.total_recipes != len(payloads):
            self.tracker.fail(
                batch.id,
                f"Repository changed while resuming: expected {batch.total_recipes} "
                f"recipes, found {len(payloads)}",
            )
            return None
        attempted = self._attempted_origins(batch)
        remaining = [p for p in payloads if p.origin not in attempted]
        logger.info(
            f"Resuming import batch {batch.id}: {len(remaining)} of {len(payloads)} "
            f"recipes left"
        )
        return remaining

    def _attempted_origins(self, batch: ImportBatch) -> set[str]:
        db = self.session_factory()
        try:
            stored = (
                db.query(Recipe.original_filename)
                .filter(Recipe.import_batch_id == batch.id)
                .all()
            )
        finally:
            db.close()
        origins = {row.original_filename for row in stored if row.original_filename}
        # Failure entries are written as "<origin>: <message>"
        origins.update(entry.partition(": ")[0] for entry in batch.error_log or [])
        return origins

    def _process(self, batch_id: str, repository_url: str, payloads: list[RawPayload]) -> None:
        if not payloads:
            return
        with ThreadPoolExecutor(
            max_workers=self.settings.import_max_workers,
            thread_name_prefix=f"import-{batch_id[:8]}",
        ) as executor:
            futures = {
                executor.submit(self.import_item, batch_id, repository_url, payload): payload
                for payload in payloads
            }
            for future in as_completed(futures):
                payload = futures[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    logger.error(
                        f"Unexpected error importing {payload.origin} in batch {batch_id}: {e}",
                        exc_info=True,
                    )
                    outcome = ItemOutcome.failure(payload.origin, f"unexpected error: {e}")
                self.tracker.record_outcome(batch_id, outcome)

    def import_item(self, batch_id: str, repository_url: str, payload: RawPayload) -> ItemOutcome:
        """Normalize and store one payload; never raises for expected failures."""
        result = normalize(payload)
        if not result.ok:
            logger.warning(f"Skipping {payload.origin} in batch {batch_id}: {result.error}")
            return ItemOutcome.failure(payload.origin, result.error.message)

        try:
            recipe_id = persist_with_retry(
                self.session_factory,
                result.recipe,
                source_repository=repository_url,
                import_batch_id=batch_id,
                retries=self.settings.import_persist_retries,
            )
        except PersistenceError as e:
            logger.warning(f"Failed to store {payload.origin} in batch {batch_id}: {e}")
            return ItemOutcome.failure(payload.origin, e.message)

        logger.debug(f"Imported {payload.origin} as recipe {recipe_id}")
        return ItemOutcome.success(payload.origin, recipe_id)

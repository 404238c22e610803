"""Lifecycle and progress accounting for import batches.

All mutations of an :class:`ImportBatch` go through :class:`BatchTracker`.
Each call runs in its own transaction under a per-batch lock and a row lock,
so one item outcome is one indivisible update. Terminal batches are never
touched again; late writes are logged and dropped.
"""

import logging
import threading
from dataclasses import dataclass
from weakref import WeakValueDictionary

from sqlalchemy.orm import Session

from src.database import SessionFactory, SessionLocal, session_scope
from src.models.enums import ImportStatus
from src.models.import_batch import ImportBatch
from src.models.mixins import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemOutcome:
    """Result of attempting one enumerated payload."""

    origin: str
    succeeded: bool
    message: str | None = None
    recipe_id: str | None = None

    @classmethod
    def success(cls, origin: str, recipe_id: str) -> "ItemOutcome":
        return cls(origin=origin, succeeded=True, recipe_id=recipe_id)

    @classmethod
    def failure(cls, origin: str, message: str) -> "ItemOutcome":
        return cls(origin=origin, succeeded=False, message=message)

    @property
    def log_entry(self) -> str:
        return f"{self.origin}: {self.message}"


class BatchTracker:
    """Owns state transitions and counters of import batches."""

    _locks: "WeakValueDictionary[str, threading.Lock]" = WeakValueDictionary()
    _locks_guard = threading.Lock()

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self.session_factory = session_factory

    @classmethod
    def _lock_for(cls, batch_id: str) -> threading.Lock:
        with cls._locks_guard:
            lock = cls._locks.get(batch_id)
            if lock is None:
                lock = threading.Lock()
                cls._locks[batch_id] = lock
            return lock

    def _load_for_update(self, db: Session, batch_id: str) -> ImportBatch | None:
        return (
            db.query(ImportBatch)
            .filter(ImportBatch.id == batch_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    # --- Creation and reads ---

    def create_batch(self, repository_url: str, created_by: str | None = None) -> ImportBatch:
        """Create a new pending batch; every submission gets its own record."""
        with session_scope(self.session_factory) as db:
            batch = ImportBatch(
                repository_url=repository_url,
                status=ImportStatus.PENDING.value,
                successful_imports=0,
                failed_imports=0,
                error_log=[],
                started_at=utcnow(),
                created_by=created_by,
            )
            db.add(batch)
            db.flush()
            db.refresh(batch)
            db.expunge(batch)
        logger.info(f"Created import batch {batch.id} for {repository_url}")
        return batch

    def get_status(self, batch_id: str) -> ImportBatch | None:
        """Read the committed state of a batch; None when unknown."""
        db = self.session_factory()
        try:
            batch = db.query(ImportBatch).filter(ImportBatch.id == batch_id).first()
            if batch is not None:
                db.expunge(batch)
            return batch
        finally:
            db.close()

    def recent_batches(self, limit: int = 20) -> list[ImportBatch]:
        """Most recently started batches first."""
        db = self.session_factory()
        try:
            batches = (
                db.query(ImportBatch)
                .order_by(ImportBatch.started_at.desc(), ImportBatch.id)
                .limit(limit)
                .all()
            )
            db.expunge_all()
            return batches
        finally:
            db.close()

    # --- Transitions ---

    def mark_in_progress(self, batch_id: str, total_recipes: int) -> bool:
        """Record the enumerated item count and start processing."""
        with self._lock_for(batch_id), session_scope(self.session_factory) as db:
            batch = self._load_for_update(db, batch_id)
            if not self._can_transition(batch, batch_id, ImportStatus.IN_PROGRESS):
                return False
            batch.status = ImportStatus.IN_PROGRESS.value
            batch.total_recipes = total_recipes
        logger.info(f"Import batch {batch_id} in progress with {total_recipes} recipes")
        return True

    def record_outcome(self, batch_id: str, outcome: ItemOutcome) -> bool:
        """Apply one item outcome as a single indivisible update.

        Returns False when the outcome was discarded.
        """
        with self._lock_for(batch_id), session_scope(self.session_factory) as db:
            batch = self._load_for_update(db, batch_id)
            if batch is None:
                logger.error(f"Outcome for unknown import batch {batch_id} discarded")
                return False
            if batch.status != ImportStatus.IN_PROGRESS.value:
                logger.warning(
                    f"Discarding late outcome for {outcome.origin} on batch {batch_id} "
                    f"in status {batch.status}"
                )
                return False
            if batch.total_recipes is not None and batch.processed_count >= batch.total_recipes:
                logger.warning(
                    f"Discarding outcome for {outcome.origin}: batch {batch_id} already "
                    f"accounted for all {batch.total_recipes} recipes"
                )
                return False

            if outcome.succeeded:
                batch.successful_imports = batch.successful_imports + 1
            else:
                batch.failed_imports = batch.failed_imports + 1
                batch.error_log = [*(batch.error_log or []), outcome.log_entry]
        return True

    def complete(self, batch_id: str) -> bool:
        """Mark a batch completed once every item has been attempted."""
        with self._lock_for(batch_id), session_scope(self.session_factory) as db:
            batch = self._load_for_update(db, batch_id)
            if not self._can_transition(batch, batch_id, ImportStatus.COMPLETED):
                return False
            batch.status = ImportStatus.COMPLETED.value
            batch.completed_at = utcnow()
            success, failed = batch.successful_imports, batch.failed_imports
        logger.info(f"Import batch {batch_id} completed. Success: {success}, Failed: {failed}")
        return True

    def fail(self, batch_id: str, message: str) -> bool:
        """Mark a batch failed because of a repository-level error."""
        with self._lock_for(batch_id), session_scope(self.session_factory) as db:
            batch = self._load_for_update(db, batch_id)
            if not self._can_transition(batch, batch_id, ImportStatus.FAILED):
                return False
            batch.status = ImportStatus.FAILED.value
            batch.error_log = [*(batch.error_log or []), message]
            batch.completed_at = utcnow()
        logger.error(f"Import batch {batch_id} failed: {message}")
        return True

    def _can_transition(
        self, batch: ImportBatch | None, batch_id: str, target: ImportStatus
    ) -> bool:
        if batch is None:
            logger.error(f"Import batch {batch_id} not found, cannot move to {target.value}")
            return False
        current = batch.import_status
        if not current.can_transition_to(target):
            logger.warning(
                f"Ignoring transition of batch {batch_id} from {current.value} to {target.value}"
            )
            return False
        return True

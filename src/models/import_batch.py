"""ImportBatch model for tracking repository import runs."""

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from src.database import Base
from src.models.enums import ImportStatus
from src.models.mixins import UUIDPrimaryKeyMixin, utcnow


class ImportBatch(Base, UUIDPrimaryKeyMixin):
    """One run of importing recipes from a single repository reference."""

    __tablename__ = "import_batches"

    repository_url = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=ImportStatus.PENDING.value, index=True)
    total_recipes = Column(Integer, nullable=True)
    successful_imports = Column(Integer, nullable=False, default=0)
    failed_imports = Column(Integer, nullable=False, default=0)
    error_log = Column(JSON, nullable=False, default=list)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # Opaque creator identity supplied by callers; never interpreted here
    created_by = Column(String(255), nullable=True)

    @property
    def import_status(self) -> ImportStatus:
        """Status as an enum member."""
        return ImportStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        """Check if the batch has reached completed or failed."""
        return self.import_status.is_terminal

    @property
    def processed_count(self) -> int:
        """Number of items whose outcome has been applied."""
        return (self.successful_imports or 0) + (self.failed_imports or 0)

"""Import batch schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.models.enums import ImportStatus


class ImportBatchCreate(BaseModel):
    """Request to import recipes from a repository."""

    repository_url: str = Field(..., min_length=1, max_length=2048)
    created_by: str | None = Field(None, max_length=255)

    @field_validator("repository_url")
    @classmethod
    def strip_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("repository_url must not be blank")
        return value


class ImportBatchCreated(BaseModel):
    """Response returned as soon as the batch record exists."""

    batch_id: str
    status: ImportStatus


class ImportBatchResponse(BaseModel):
    """Snapshot of an import batch for status polling."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    repository_url: str
    status: ImportStatus
    total_recipes: int | None = None
    successful_imports: int
    failed_imports: int
    error_log: list[str]
    started_at: datetime
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

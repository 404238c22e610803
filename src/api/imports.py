"""Import batch API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import get_batch_tracker, get_importer
from src.models.enums import ImportStatus
from src.schemas.recipe_import import ImportBatchCreate, ImportBatchCreated, ImportBatchResponse
from src.services.batch_tracker import BatchTracker
from src.services.importer import RecipeImporter

router = APIRouter(prefix="/api/v1/imports", tags=["imports"])


@router.post("", response_model=ImportBatchCreated, status_code=status.HTTP_202_ACCEPTED)
def start_import(
    data: ImportBatchCreate,
    importer: Annotated[RecipeImporter, Depends(get_importer)],
):
    """Submit a repository for background import."""
    batch_id = importer.start_import(data.repository_url, created_by=data.created_by)
    return ImportBatchCreated(batch_id=batch_id, status=ImportStatus.PENDING)


@router.get("", response_model=list[ImportBatchResponse])
def list_imports(
    tracker: Annotated[BatchTracker, Depends(get_batch_tracker)],
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    """List the most recently started import batches."""
    return tracker.recent_batches(limit)


@router.get("/{batch_id}", response_model=ImportBatchResponse)
def get_import_status(
    batch_id: str,
    tracker: Annotated[BatchTracker, Depends(get_batch_tracker)],
):
    """Get the current state of an import batch.

    Clients poll this at a fixed interval until the status is completed or failed.
    """
    batch = tracker.get_status(batch_id)
    if not batch:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import batch not found")
    return batch

"""FastAPI dependencies for services and database access."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.database import SessionFactory, SessionLocal, get_db
from src.services.batch_tracker import BatchTracker
from src.services.importer import RecipeImporter
from src.services.recipe_service import RecipeService
from src.services.search import RecipeSearchService


def get_session_factory() -> SessionFactory:
    """Session factory for services that manage their own transactions."""
    return SessionLocal


def get_batch_tracker(
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
) -> BatchTracker:
    """Get batch tracker bound to the session factory."""
    return BatchTracker(session_factory)


def get_importer(
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
    tracker: Annotated[BatchTracker, Depends(get_batch_tracker)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> RecipeImporter:
    """Get importer with dependencies."""
    return RecipeImporter(session_factory=session_factory, settings=settings, tracker=tracker)


def get_recipe_service(
    db: Annotated[Session, Depends(get_db)],
) -> RecipeService:
    """Get recipe service with dependencies."""
    return RecipeService(db)


def get_search_service(
    db: Annotated[Session, Depends(get_db)],
) -> RecipeSearchService:
    """Get search service with dependencies."""
    return RecipeSearchService(db)

"""Recipe service for persisting imported recipes and reading them back."""

import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.database import SessionFactory
from src.models.recipe import Recipe, RecipeIngredient, RecipeStep, RecipeTag
from src.schemas.recipe import NormalizedRecipe
from src.services.errors import PersistenceError

logger = logging.getLogger(__name__)

RETRY_BACKOFF_SECONDS = 0.2


class RecipeService:
    """Service for recipe-related operations."""

    def __init__(self, db: Session):
        self.db = db

    def build_recipe(
        self,
        normalized: NormalizedRecipe,
        source_repository: str | None = None,
        import_batch_id: str | None = None,
    ) -> Recipe:
        """Build a Recipe with all of its child rows attached."""
        recipe = Recipe(
            name=normalized.name,
            description=normalized.description,
            prep_time_minutes=normalized.prep_time_minutes,
            cook_time_minutes=normalized.cook_time_minutes,
            total_time_minutes=normalized.total_time_minutes,
            servings=normalized.servings,
            rating=normalized.rating,
            source_repository=source_repository,
            original_filename=normalized.original_filename,
            import_batch_id=import_batch_id,
        )
        recipe.ingredient_rows = [
            RecipeIngredient(position=index, text=text)
            for index, text in enumerate(normalized.ingredients)
        ]
        recipe.step_rows = [
            RecipeStep(step_number=index, text=text)
            for index, text in enumerate(normalized.directions, start=1)
        ]
        recipe.tag_rows = [
            RecipeTag(position=index, name=name) for index, name in enumerate(normalized.tags)
        ]
        return recipe

    def create_recipe(
        self,
        normalized: NormalizedRecipe,
        source_repository: str | None = None,
        import_batch_id: str | None = None,
    ) -> Recipe:
        """Persist a recipe and its ingredients, steps and tags in one commit.

        Readers never see a recipe without its child rows.
        """
        recipe = self.build_recipe(normalized, source_repository, import_batch_id)
        self.db.add(recipe)
        self.db.commit()
        self.db.refresh(recipe)
        return recipe

    def get_visible_recipe(self, recipe_id: str) -> Recipe | None:
        """Get a public, non-deleted recipe."""
        return (
            self.db.query(Recipe)
            .filter(
                Recipe.id == recipe_id,
                Recipe.is_public.is_(True),
                Recipe.deleted_at.is_(None),
            )
            .first()
        )


def persist_with_retry(
    session_factory: SessionFactory,
    normalized: NormalizedRecipe,
    source_repository: str,
    import_batch_id: str,
    retries: int,
) -> str:
    """Store one recipe in a fresh session, retrying database errors a bounded number of times.

    Returns:
        The new recipe id.

    Raises:
        PersistenceError: every attempt failed.
    """
    attempts = retries + 1
    for attempt in range(1, attempts + 1):
        db = session_factory()
        try:
            recipe = RecipeService(db).create_recipe(normalized, source_repository, import_batch_id)
            return recipe.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(
                f"Attempt {attempt}/{attempts} to store recipe '{normalized.name}' failed: {e}"
            )
            if attempt == attempts:
                raise PersistenceError(
                    f"could not store recipe '{normalized.name}' after {attempts} attempts: "
                    f"{e.__class__.__name__}"
                ) from e
            time.sleep(RETRY_BACKOFF_SECONDS * attempt)
        finally:
            db.close()
    raise PersistenceError(f"could not store recipe '{normalized.name}'")

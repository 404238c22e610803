"""SQLAlchemy models."""

from src.models.import_batch import ImportBatch
from src.models.recipe import Recipe, RecipeIngredient, RecipeStep, RecipeTag

__all__ = [
    "ImportBatch",
    "Recipe",
    "RecipeIngredient",
    "RecipeStep",
    "RecipeTag",
]

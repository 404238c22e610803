"""Pydantic schemas for API requests and responses."""

from src.schemas.recipe import (
    NormalizedRecipe,
    RecipeResponse,
    RecipeSearchQuery,
    RecipeSearchResult,
)
from src.schemas.recipe_import import ImportBatchCreate, ImportBatchCreated, ImportBatchResponse

__all__ = [
    "NormalizedRecipe",
    "RecipeSearchQuery",
    "RecipeSearchResult",
    "RecipeResponse",
    "ImportBatchCreate",
    "ImportBatchCreated",
    "ImportBatchResponse",
]

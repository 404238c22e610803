"""Recipe API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import get_recipe_service, get_search_service
from src.config import Settings, get_settings
from src.schemas.recipe import RecipeResponse, RecipeSearchResult
from src.services.errors import QueryValidationError
from src.services.recipe_service import RecipeService
from src.services.search import RecipeSearchService, build_search_query

router = APIRouter(prefix="/api/v1/recipes", tags=["recipes"])


def parse_tags(tags: str | None) -> list[str] | None:
    """Split a comma-separated tag filter."""
    if tags is None:
        return None
    return [tag.strip() for tag in tags.split(",") if tag.strip()]


# --- Static routes first (before /{recipe_id}) ---


@router.get("/search", response_model=list[RecipeSearchResult])
def search_recipes(
    search_service: Annotated[RecipeSearchService, Depends(get_search_service)],
    settings: Annotated[Settings, Depends(get_settings)],
    q: str | None = None,
    tags: str | None = None,
    limit: int | None = None,
    page: int = 0,
):
    """Search public recipes by free text and/or tags.

    ``tags`` is comma-separated and matches recipes carrying any of them.
    ``page`` is zero-based.
    """
    effective_limit = limit if limit is not None else settings.search_default_limit
    try:
        query = build_search_query(
            term=q,
            tags=parse_tags(tags),
            limit=effective_limit,
            offset=page * max(effective_limit, 0),
            settings=settings,
        )
    except QueryValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message
        ) from e

    return [ranked.to_result() for ranked in search_service.search(query)]


# --- Dynamic recipe routes (must be last) ---


@router.get("/{recipe_id}", response_model=RecipeResponse)
def get_recipe(
    recipe_id: str,
    recipe_service: Annotated[RecipeService, Depends(get_recipe_service)],
):
    """Get a specific recipe with ingredients and directions."""
    recipe = recipe_service.get_visible_recipe(recipe_id)
    if not recipe:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipe not found")
    return recipe

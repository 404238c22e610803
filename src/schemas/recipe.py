"""Recipe schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

# --- Canonical record produced by normalization ---


class NormalizedRecipe(BaseModel):
    """Canonical recipe shape every accepted payload is converted into."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    prep_time_minutes: int | None = Field(None, ge=0)
    cook_time_minutes: int | None = Field(None, ge=0)
    total_time_minutes: int | None = Field(None, ge=0)
    servings: int | None = Field(None, gt=0)
    ingredients: list[str] = []
    directions: list[str] = []
    tags: list[str] = []
    rating: float | None = Field(None, ge=0, le=5)
    original_filename: str | None = None

    @model_validator(mode="after")
    def derive_total_time(self) -> "NormalizedRecipe":
        """Total time is the sum of prep and cook when both are known."""
        if self.prep_time_minutes is not None and self.cook_time_minutes is not None:
            self.total_time_minutes = self.prep_time_minutes + self.cook_time_minutes
        else:
            self.total_time_minutes = None
        return self


# --- Search ---


class RecipeSearchQuery(BaseModel):
    """Validated search request."""

    term: str | None = None
    tags: list[str] | None = None
    limit: int
    offset: int = 0


class RecipeSearchResult(BaseModel):
    """Recipe summary with its relevance score."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    prep_time_minutes: int | None
    cook_time_minutes: int | None
    total_time_minutes: int | None
    servings: int | None
    tags: list[str]
    source_repository: str | None
    rating: float | None
    similarity_score: float


# --- Recipe detail ---


class RecipeResponse(BaseModel):
    """Full recipe with ingredients and directions."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    prep_time_minutes: int | None
    cook_time_minutes: int | None
    total_time_minutes: int | None
    servings: int | None
    ingredients: list[str]
    directions: list[str]
    tags: list[str]
    source_repository: str | None
    original_filename: str | None
    import_batch_id: str | None
    rating: float | None
    created_at: datetime
    updated_at: datetime

"""Ranked full-text search over imported recipes."""

import logging
import re
from dataclasses import dataclass

from sqlalchemy import func, literal_column, or_
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.recipe import Recipe, RecipeTag
from src.schemas.recipe import RecipeSearchQuery, RecipeSearchResult
from src.services.errors import QueryValidationError

logger = logging.getLogger(__name__)

NAME_WEIGHT = 1.0
DESCRIPTION_WEIGHT = 0.5
PREFIX_FACTOR = 0.5
PHRASE_BONUS = 0.5
MIN_PREFIX_LENGTH = 3
MAX_TERM_LENGTH = 200
MAX_TAG_FILTERS = 20

_TOKEN = re.compile(r"[^\W_]+")
# Must match the ix_recipes_fulltext expression for the index to be used
FULLTEXT_CONFIG = literal_column("'simple'")


@dataclass(frozen=True)
class RankedRecipe:
    """A recipe paired with its similarity score for one query."""

    recipe: Recipe
    similarity_score: float

    def to_result(self) -> RecipeSearchResult:
        recipe = self.recipe
        return RecipeSearchResult(
            id=recipe.id,
            name=recipe.name,
            description=recipe.description,
            prep_time_minutes=recipe.prep_time_minutes,
            cook_time_minutes=recipe.cook_time_minutes,
            total_time_minutes=recipe.total_time_minutes,
            servings=recipe.servings,
            tags=recipe.tags,
            source_repository=recipe.source_repository,
            rating=recipe.rating,
            similarity_score=self.similarity_score,
        )


def tokenize(text: str | None) -> list[str]:
    """Lower-case letter or digit words in any script, first occurrence order, no dupes."""
    if not text:
        return []
    return list(dict.fromkeys(_TOKEN.findall(text.lower())))


def _token_weight(token: str, words: set[str]) -> float:
    if token in words:
        return 1.0
    if len(token) >= MIN_PREFIX_LENGTH and any(word.startswith(token) for word in words):
        return PREFIX_FACTOR
    return 0.0


def score_recipe(tokens: list[str], name: str, description: str | None) -> float:
    """Score how well ``name`` and ``description`` match the query tokens.

    Each token contributes its best hit: a name word outranks a description
    word, and whole-word hits outrank prefix hits. A name containing the whole
    query phrase earns a bonus. The sum is averaged over the query tokens.
    """
    if not tokens:
        return 0.0
    name_tokens = tokenize(name)
    name_words = set(name_tokens)
    description_words = set(tokenize(description))

    score = 0.0
    for token in tokens:
        score += max(
            NAME_WEIGHT * _token_weight(token, name_words),
            DESCRIPTION_WEIGHT * _token_weight(token, description_words),
        )
    if score and " ".join(tokens) in " ".join(name_tokens):
        score += PHRASE_BONUS
    return round(score / len(tokens), 4)


def _rank_key(score: float, row) -> tuple:
    rating = row.rating
    return (
        -score,
        rating is None,
        -(rating or 0.0),
        -row.created_at.timestamp(),
        row.id,
    )


def fulltext_document():
    """The ``tsvector`` a recipe is indexed under on PostgreSQL."""
    text = Recipe.name + literal_column("' '") + func.coalesce(
        Recipe.description, literal_column("''")
    )
    return func.to_tsvector(FULLTEXT_CONFIG, text)


def build_tsquery(tokens: list[str]) -> str:
    """OR the tokens together; tokens long enough to prefix-match get ``:*``."""
    return " | ".join(
        f"{token}:*" if len(token) >= MIN_PREFIX_LENGTH else token for token in tokens
    )


def build_search_query(
    term: str | None,
    tags: list[str] | None,
    limit: int | None,
    offset: int = 0,
    settings: Settings | None = None,
) -> RecipeSearchQuery:
    """Validate raw search input.

    Raises:
        QueryValidationError: limit, offset, term or tags are out of bounds.
    """
    settings = settings or get_settings()
    if limit is None:
        limit = settings.search_default_limit
    if limit < 1:
        raise QueryValidationError("limit must be a positive integer")
    if limit > settings.search_max_limit:
        raise QueryValidationError(f"limit cannot exceed {settings.search_max_limit}")
    if offset < 0:
        raise QueryValidationError("page must not be negative")
    if offset > settings.search_max_offset:
        raise QueryValidationError(
            f"page is too large; results are only available up to offset "
            f"{settings.search_max_offset}"
        )

    term = (term or "").strip() or None
    if term is not None:
        if len(term) > MAX_TERM_LENGTH:
            raise QueryValidationError(f"search term cannot exceed {MAX_TERM_LENGTH} characters")
        if not tokenize(term):
            raise QueryValidationError("search term must contain letters or digits")

    cleaned_tags: list[str] | None = None
    if tags:
        cleaned_tags = list(dict.fromkeys(t.strip() for t in tags if t and t.strip()))
        if len(cleaned_tags) > MAX_TAG_FILTERS:
            raise QueryValidationError(f"at most {MAX_TAG_FILTERS} tags can be filtered on")
        cleaned_tags = cleaned_tags or None

    return RecipeSearchQuery(term=term, tags=cleaned_tags, limit=limit, offset=offset)


class RecipeSearchService:
    """Evaluates search queries over public recipes."""

    def __init__(self, db: Session):
        self.db = db

    def search(self, query: RecipeSearchQuery) -> list[RankedRecipe]:
        """Return one page of matching recipes in rank order.

        Order: similarity score, then rating (unrated last), then newest first,
        then id so identical data always yields the identical page.
        """
        candidates = self.db.query(Recipe).filter(
            Recipe.is_public.is_(True),
            Recipe.deleted_at.is_(None),
        )
        if query.tags:
            candidates = candidates.filter(Recipe.tag_rows.any(RecipeTag.name.in_(query.tags)))

        tokens = tokenize(query.term)
        if not tokens:
            recipes = (
                candidates.order_by(
                    Recipe.rating.is_(None),
                    Recipe.rating.desc(),
                    Recipe.created_at.desc(),
                    Recipe.id.asc(),
                )
                .offset(query.offset)
                .limit(query.limit)
                .all()
            )
            return [RankedRecipe(recipe, 0.0) for recipe in recipes]

        # Narrow in SQL to rows mentioning at least one token, then rank on columns only
        rows = (
            candidates.filter(self._match_clause(tokens))
            .with_entities(
                Recipe.id, Recipe.name, Recipe.description, Recipe.rating, Recipe.created_at
            )
            .all()
        )
        scored = []
        for row in rows:
            score = score_recipe(tokens, row.name, row.description)
            if score > 0:
                scored.append((score, row))
        scored.sort(key=lambda item: _rank_key(*item))
        logger.debug(f"Search '{query.term}' matched {len(scored)} recipes")

        page = scored[query.offset : query.offset + query.limit]
        if not page:
            return []
        recipes = {
            recipe.id: recipe
            for recipe in self.db.query(Recipe)
            .filter(Recipe.id.in_([row.id for _, row in page]))
            .all()
        }
        # A recipe removed since the ranking query is dropped from the page
        return [RankedRecipe(recipes[row.id], score) for score, row in page if row.id in recipes]

    def _match_clause(self, tokens: list[str]):
        if self.db.get_bind().dialect.name == "postgresql":
            tsquery = func.to_tsquery(FULLTEXT_CONFIG, build_tsquery(tokens))
            return fulltext_document().op("@@")(tsquery)
        clauses = []
        for token in tokens:
            clauses.append(Recipe.name.ilike(f"%{token}%"))
            clauses.append(Recipe.description.ilike(f"%{token}%"))
        return or_(*clauses)

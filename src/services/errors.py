"""Exceptions raised by the import and search services."""


class RecipeImportError(Exception):
    """Base exception for the recipe import service."""

    code = "RECIPE_IMPORT_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class RepositoryFetchError(RecipeImportError):
    """The repository could not be fetched or enumerated at all.

    Fatal to the whole batch.
    """

    code = "REPOSITORY_FETCH_ERROR"


class RepositoryTimeoutError(RepositoryFetchError):
    """Fetching or enumerating the repository exceeded its time budget."""

    code = "REPOSITORY_TIMEOUT"


class ItemNormalizationError(RecipeImportError):
    """One payload is malformed or missing required fields."""

    code = "ITEM_NORMALIZATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class PersistenceError(RecipeImportError):
    """A normalized recipe could not be durably stored."""

    code = "PERSISTENCE_ERROR"


class QueryValidationError(RecipeImportError):
    """Search input was rejected before execution."""

    code = "QUERY_VALIDATION_ERROR"

from __future__ import annotations


class IngestionError(Exception):
    """Base class for every failure scoped to a single ingestion attempt."""


class BlockedSourceError(IngestionError):
    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(
            f"{domain} is not a recipe site. "
            "Paste a link to the recipe page itself instead."
        )


class ExtractionError(IngestionError):
    pass


class FetchError(ExtractionError):
    pass


class NonRecipeUrlWarning(ExtractionError):
    """Raised when a URL does not look like a recipe and the caller has not opted in."""


class ParseError(IngestionError):
    pass


class MatchCatalogError(IngestionError):
    pass


class PersistenceError(IngestionError):
    pass


class UnresolvedIngredientsError(IngestionError):
    def __init__(self, names: list[str]):
        self.names = names
        super().__init__(
            "These ingredients still need a catalog match before saving: " + ", ".join(names)
        )


class IngestionCancelled(IngestionError):
    pass


class BackendError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)

from __future__ import annotations
import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from frigo import books
from frigo.backend import SupabaseBackend
from frigo.catalog import IngredientCatalog
from frigo.config import Config
from frigo.errors import (
    BackendError,
    ExtractionError,
    IngestionCancelled,
    IngestionError,
    MatchCatalogError,
    PersistenceError,
)
from frigo.matcher import match_recipe
from frigo.models import BookMetadata, ExtractedRecipeData, ProcessedRecipe, StandardizedRecipeData
from frigo.scraper import extract_from_url
from frigo.structurer import structure
from frigo.vision import standardize_photo
from frigo.writer import save_recipe

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    INPUT = "input"
    FETCHING = "fetching"
    PARSING = "parsing"
    MATCHING = "matching"
    REVIEWING = "reviewing"
    ERROR = "error"
    DONE = "done"


class IngestionSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["url", "photo"]
    value: str

    def label(self) -> str:
        return self.value if self.kind == "url" else Path(self.value).name


class Submit(BaseModel):
    kind: Literal["submit"] = "submit"
    source: IngestionSource


class Standardized(BaseModel):
    kind: Literal["standardized"] = "standardized"
    data: StandardizedRecipeData


class Structured(BaseModel):
    kind: Literal["structured"] = "structured"
    data: ExtractedRecipeData


class Matched(BaseModel):
    kind: Literal["matched"] = "matched"
    recipe: ProcessedRecipe


class Edited(BaseModel):
    kind: Literal["edited"] = "edited"
    recipe: ProcessedRecipe


class Saved(BaseModel):
    kind: Literal["saved"] = "saved"
    recipe_id: str


class SaveFailed(BaseModel):
    kind: Literal["save_failed"] = "save_failed"
    message: str


class Failed(BaseModel):
    kind: Literal["failed"] = "failed"
    message: str
    error_type: str = "IngestionError"


class Retry(BaseModel):
    kind: Literal["retry"] = "retry"


class Cancel(BaseModel):
    kind: Literal["cancel"] = "cancel"


Event = Annotated[
    Union[Submit, Standardized, Structured, Matched, Edited, Saved, SaveFailed, Failed, Retry, Cancel],
    Field(discriminator="kind"),
]


class PipelineState(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: Stage = Stage.INPUT
    source: Optional[IngestionSource] = None
    standardized: Optional[StandardizedRecipeData] = None
    extracted: Optional[ExtractedRecipeData] = None
    recipe: Optional[ProcessedRecipe] = None
    recipe_id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


class InvalidTransition(Exception):
    def __init__(self, stage: Stage, event_kind: str):
        super().__init__(f"Cannot apply '{event_kind}' while {stage.value}")


_ALLOWED: dict[str, set[Stage]] = {
    "submit": {Stage.INPUT, Stage.ERROR},
    "standardized": {Stage.FETCHING},
    "structured": {Stage.PARSING},
    "matched": {Stage.MATCHING},
    "edited": {Stage.REVIEWING},
    "saved": {Stage.REVIEWING},
    "save_failed": {Stage.REVIEWING},
    "failed": {Stage.FETCHING, Stage.PARSING, Stage.MATCHING},
    "retry": {Stage.ERROR},
    "cancel": {Stage.FETCHING, Stage.PARSING, Stage.MATCHING, Stage.REVIEWING, Stage.ERROR},
}


def transition(state: PipelineState, event: Event) -> PipelineState:
    if state.stage not in _ALLOWED[event.kind]:
        raise InvalidTransition(state.stage, event.kind)

    if isinstance(event, Submit):
        return PipelineState(stage=Stage.FETCHING, source=event.source)
    if isinstance(event, Standardized):
        return state.model_copy(update={"stage": Stage.PARSING, "standardized": event.data})
    if isinstance(event, Structured):
        return state.model_copy(update={"stage": Stage.MATCHING, "extracted": event.data})
    if isinstance(event, Matched):
        return state.model_copy(update={"stage": Stage.REVIEWING, "recipe": event.recipe})
    if isinstance(event, Edited):
        return state.model_copy(update={"recipe": event.recipe, "error": None, "error_type": None})
    if isinstance(event, Saved):
        return state.model_copy(update={
            "stage": Stage.DONE, "recipe_id": event.recipe_id, "error": None, "error_type": None,
        })
    if isinstance(event, SaveFailed):
        return state.model_copy(update={"error": event.message, "error_type": "PersistenceError"})
    if isinstance(event, Failed):
        return state.model_copy(update={
            "stage": Stage.ERROR, "error": event.message, "error_type": event.error_type,
        })
    if isinstance(event, Retry):
        return PipelineState(stage=Stage.FETCHING, source=state.source)
    return PipelineState()


class CancelToken:
    """Set from another thread (or a signal handler) to abandon an in-flight ingestion."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise IngestionCancelled("Recipe import was cancelled.")


class IngestionPipeline:
    def __init__(self, config: Config, backend: SupabaseBackend):
        self.config = config
        self.backend = backend
        self.catalog: Optional[IngredientCatalog] = None

    def _standardize(self, source: IngestionSource, allow_non_recipe: bool) -> StandardizedRecipeData:
        if source.kind == "url":
            return extract_from_url(
                source.value,
                allow_non_recipe=allow_non_recipe,
                blocked=self.config.blocked_domains,
                timeout=self.config.fetch_timeout,
            )
        try:
            image = Path(source.value).read_bytes()
        except OSError as e:
            raise ExtractionError(f"Could not read photo {source.value}: {e}") from e
        return standardize_photo(image, self.config, photo_ref=source.label())

    def attach_book(
        self, recipe: ProcessedRecipe, metadata: Optional[BookMetadata], user_id: str
    ) -> ProcessedRecipe:
        """Link the recipe to a cookbook, creating the book row when it is new."""
        if metadata is None or not metadata.book_title:
            return recipe
        try:
            book = books.get_or_create_book(self.backend, metadata)
            owned = books.user_owns_book(self.backend, user_id, book.id)
        except BackendError as e:
            raise MatchCatalogError(f"Could not look up the cookbook '{metadata.book_title}': {e}") from e
        logger.info("Recipe is from '%s' (owned=%s)", book.title, owned)
        return recipe.model_copy(update={
            "book_metadata": metadata,
            "book_id": book.id,
            "needs_ownership_verification": not owned,
        })

    def run(
        self,
        source: IngestionSource,
        user_id: str,
        allow_non_recipe: bool = False,
        cancel: Optional[CancelToken] = None,
    ) -> PipelineState:
        """Take a source through extraction and matching, stopping at REVIEWING or ERROR."""
        cancel = cancel or CancelToken()
        state = transition(PipelineState(), Submit(source=source))
        try:
            cancel.raise_if_cancelled()
            standardized = self._standardize(source, allow_non_recipe)
            cancel.raise_if_cancelled()
            state = transition(state, Standardized(data=standardized))

            extracted = structure(standardized, self.config)
            cancel.raise_if_cancelled()
            state = transition(state, Structured(data=extracted))

            self.catalog = IngredientCatalog.load(self.backend)
            processed = match_recipe(
                extracted, self.catalog,
                review_threshold=self.config.review_threshold,
                fuzzy_threshold=self.config.fuzzy_threshold,
            )
            processed = processed.model_copy(
                update={"book_metadata": standardized.source.book}
            )
            processed = self.attach_book(processed, standardized.source.book, user_id)
            cancel.raise_if_cancelled()
            return transition(state, Matched(recipe=processed))
        except IngestionCancelled:
            logger.info("Ingestion of %s cancelled during %s", source.label(), state.stage.value)
            return transition(state, Cancel())
        except IngestionError as e:
            logger.warning("Ingestion of %s failed during %s: %s", source.label(), state.stage.value, e)
            return transition(state, Failed(message=str(e), error_type=type(e).__name__))

    def save(
        self,
        state: PipelineState,
        user_id: str,
        title: Optional[str] = None,
        book_id: Optional[str] = None,
    ) -> PipelineState:
        if state.stage is not Stage.REVIEWING or state.recipe is None:
            raise InvalidTransition(state.stage, "saved")
        recipe = state.recipe
        book_id = book_id or recipe.book_id
        try:
            if book_id and recipe.needs_ownership_verification:
                try:
                    books.claim_ownership(self.backend, user_id, book_id)
                except BackendError as e:
                    raise PersistenceError(f"Could not record book ownership: {e}") from e
            recipe_id = save_recipe(self.backend, recipe, user_id, title=title, book_id=book_id)
        except IngestionError as e:
            logger.warning("Save failed: %s", e)
            return transition(state, SaveFailed(message=str(e)))
        return transition(state, Saved(recipe_id=recipe_id))

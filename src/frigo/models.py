from __future__ import annotations
import logging
import math
import re
from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from frigo import normalize

logger = logging.getLogger(__name__)

DifficultyLevel = Literal["easy", "medium", "hard"]


class BookMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    book_title: Optional[str] = None
    author: Optional[str] = None
    page_number: Optional[int] = None
    isbn: Optional[str] = None
    isbn13: Optional[str] = None


class RecipeSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["web", "photo"]
    url: Optional[str] = None
    photo_ref: Optional[str] = None
    site_name: str = ""
    author: Optional[str] = None
    book: Optional[BookMetadata] = None


class CrossReference(BaseModel):
    """A pointer to another recipe, e.g. 'see page 212 for the dressing'."""

    model_config = ConfigDict(frozen=True)

    reference_text: str
    page_number: Optional[int] = None
    recipe_name: Optional[str] = None
    reference_type: Literal["ingredient", "technique", "variation", "note"] = "note"

    @field_validator("reference_type", mode="before")
    @classmethod
    def known_type(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() in ("ingredient", "technique", "variation"):
            return v.strip().lower()
        return "note"

    @field_validator("page_number", mode="before")
    @classmethod
    def page_as_int(cls, v: Any) -> Any:
        if isinstance(v, str):
            m = re.search(r"\d+", v)
            return int(m.group(0)) if m else None
        return v


class MediaReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "url"
    location: Optional[str] = None
    visible_url: Optional[str] = None
    description: Optional[str] = None


class RawRecipeText(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    author: Optional[str] = None
    description: Optional[str] = None
    ingredients: list[str] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    prep_time: Optional[str] = None
    cook_time: Optional[str] = None
    total_time: Optional[str] = None
    servings: Optional[str] = None
    yield_text: Optional[str] = None
    image_url: Optional[str] = None
    notes: Optional[str] = None
    ingredient_swaps: Optional[str] = None
    storage_notes: Optional[str] = None
    category: Optional[str] = None
    cuisine: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    cross_references: list[CrossReference] = Field(default_factory=list)
    media_references: list[MediaReference] = Field(default_factory=list)

    @field_validator("ingredients", "instructions", "tags", mode="before")
    @classmethod
    def drop_blank_lines(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [str(line).strip() for line in v if line is not None and str(line).strip()]
        return v

    @field_validator("prep_time", "cook_time", "total_time", "servings", "yield_text", mode="before")
    @classmethod
    def stringify_numbers(cls, v: Any) -> Any:
        return str(v) if isinstance(v, (int, float)) else v

    @field_validator("cross_references", "media_references", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class StandardizedRecipeData(BaseModel):
    """Source-agnostic recipe text, produced once per extraction attempt."""

    model_config = ConfigDict(frozen=True)

    source: RecipeSource
    raw_text: RawRecipeText

    def missing_content(self) -> list[str]:
        missing = []
        if not self.raw_text.ingredients:
            missing.append("ingredients")
        if not self.raw_text.instructions:
            missing.append("instructions")
        return missing


class RecipeMetadata(BaseModel):
    title: str = ""
    description: Optional[str] = None
    source_author: Optional[str] = None
    image_url: Optional[str] = None
    servings: Optional[int] = None
    prep_time_min: Optional[int] = None
    cook_time_min: Optional[int] = None
    inactive_time_min: Optional[int] = None
    total_time_min: Optional[int] = None
    chef_difficulty_label: Optional[str] = None
    cuisine_types: list[str] = Field(default_factory=list)
    meal_type: list[str] = Field(default_factory=list)
    dietary_tags: list[str] = Field(default_factory=list)
    cooking_methods: list[str] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def none_title(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("servings", mode="before")
    @classmethod
    def coerce_servings(cls, v: Any) -> Any:
        return normalize.parse_servings(v) if isinstance(v, (str, float)) else v

    @field_validator("prep_time_min", "cook_time_min", "inactive_time_min", "total_time_min", mode="before")
    @classmethod
    def coerce_minutes(cls, v: Any) -> Any:
        return normalize.parse_minutes(v) if isinstance(v, (str, float)) else v

    @field_validator("cuisine_types", "meal_type", "dietary_tags", "cooking_methods", mode="before")
    @classmethod
    def as_tag_set(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        if isinstance(v, list):
            seen: list[str] = []
            for tag in v:
                tag = str(tag).strip()
                if tag and tag.lower() not in (s.lower() for s in seen):
                    seen.append(tag)
            return seen
        return v


class DifficultyFactors(BaseModel):
    ingredient_count: int = 0
    step_count: int = 0
    advanced_techniques: list[str] = Field(default_factory=list)
    total_time_min: Optional[int] = None
    special_equipment: list[str] = Field(default_factory=list)

    @field_validator("advanced_techniques", "special_equipment", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


def _score_value(v: Any) -> Optional[float]:
    if isinstance(v, bool) or not isinstance(v, (int, float, str)):
        return None
    try:
        score = float(v.strip() if isinstance(v, str) else v)
    except ValueError:
        return None
    return score if math.isfinite(score) else None


class DifficultyAssessment(BaseModel):
    difficulty_level: DifficultyLevel = "medium"
    difficulty_score: int = Field(ge=0, le=100)
    factors: DifficultyFactors = Field(default_factory=DifficultyFactors)
    reasoning: str = ""

    @field_validator("reasoning", mode="before")
    @classmethod
    def none_reasoning(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("difficulty_score", mode="before")
    @classmethod
    def round_score(cls, v: Any) -> Any:
        score = _score_value(v)
        return v if score is None else min(max(round(score), 0), 100)

    @field_validator("difficulty_level", mode="before")
    @classmethod
    def lower_level(cls, v: Any) -> Any:
        # the score decides the level; an unknown label is replaced after validation
        if isinstance(v, str) and v.strip().lower() in ("easy", "medium", "hard"):
            return v.strip().lower()
        return "medium"

    @model_validator(mode="after")
    def level_follows_score(self) -> "DifficultyAssessment":
        self.difficulty_level = normalize.difficulty_level(self.difficulty_score)
        return self


class IngredientAlternative(BaseModel):
    ingredient_name: str
    is_equivalent: bool = True
    notes: Optional[str] = None
    ingredient_id: Optional[str] = None

    @field_validator("is_equivalent", mode="before")
    @classmethod
    def none_is_equivalent(cls, v: Any) -> Any:
        return True if v is None else v


class ExtractedIngredient(BaseModel):
    original_text: str
    quantity_amount: Optional[float] = None
    quantity_unit: Optional[str] = None
    ingredient_name: str = ""
    preparation: Optional[str] = None
    sequence_order: int = 0
    is_optional: bool = False
    alternatives: list[IngredientAlternative] = Field(default_factory=list)

    @field_validator("quantity_amount", mode="before")
    @classmethod
    def coerce_quantity(cls, v: Any) -> Any:
        return normalize.parse_quantity(v) if isinstance(v, str) else v

    @field_validator("ingredient_name", mode="before")
    @classmethod
    def none_name(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("is_optional", mode="before")
    @classmethod
    def none_is_false(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("alternatives", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class InstructionStep(BaseModel):
    step_number: int = 0
    instruction: str
    is_optional: bool = False
    is_time_sensitive: bool = False

    @field_validator("is_optional", "is_time_sensitive", mode="before")
    @classmethod
    def none_is_false(cls, v: Any) -> Any:
        return False if v is None else v


class InstructionSection(BaseModel):
    section_title: str = "Instructions"
    section_description: Optional[str] = None
    section_order: int = 0
    estimated_time_min: Optional[int] = None
    steps: list[InstructionStep] = Field(default_factory=list)

    @field_validator("section_title", mode="before")
    @classmethod
    def default_title(cls, v: Any) -> Any:
        return v or "Instructions"

    @field_validator("estimated_time_min", mode="before")
    @classmethod
    def coerce_minutes(cls, v: Any) -> Any:
        return normalize.parse_minutes(v) if isinstance(v, (str, float)) else v

    @model_validator(mode="after")
    def number_steps(self) -> "InstructionSection":
        if any(step.step_number <= 0 for step in self.steps):
            for i, step in enumerate(self.steps, start=1):
                step.step_number = i
        return self


class RawExtractionData(BaseModel):
    """Archival snapshot of what went into and came out of structuring. Never edited."""

    model_config = ConfigDict(frozen=True)

    extraction_date: datetime
    prompt_version: str
    model: str
    source_type: str
    source_url: Optional[str] = None
    source_site: Optional[str] = None
    raw_data: dict[str, Any]
    parsed_data: dict[str, Any]


class ExtractedRecipeData(BaseModel):
    recipe: RecipeMetadata
    ai_difficulty_assessment: Optional[DifficultyAssessment] = None
    ingredients: list[ExtractedIngredient]
    instruction_sections: list[InstructionSection]
    cross_references: list[CrossReference] = Field(default_factory=list)
    media_references: list[MediaReference] = Field(default_factory=list)
    raw_extraction_data: Optional[RawExtractionData] = None

    @field_validator("ai_difficulty_assessment", mode="before")
    @classmethod
    def drop_unscored_assessment(cls, v: Any) -> Any:
        if isinstance(v, dict) and _score_value(v.get("difficulty_score")) is None:
            logger.warning("Ignoring difficulty assessment without a usable score")
            return None
        return v

    @field_validator("cross_references", "media_references", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @model_validator(mode="after")
    def number_items(self) -> "ExtractedRecipeData":
        if any(ing.sequence_order <= 0 for ing in self.ingredients):
            for i, ing in enumerate(self.ingredients, start=1):
                ing.sequence_order = i
        if any(section.section_order <= 0 for section in self.instruction_sections):
            for i, section in enumerate(self.instruction_sections, start=1):
                section.section_order = i
        return self

    def step_count(self) -> int:
        return sum(len(s.steps) for s in self.instruction_sections)


class ProcessedIngredient(ExtractedIngredient):
    ingredient_id: Optional[str] = None
    match_confidence: float = 0.0
    match_method: str = "none"
    match_notes: Optional[str] = None
    needs_review: bool = True
    variant_ids: list[str] = Field(default_factory=list)
    candidate_ids: list[str] = Field(default_factory=list)


class ProcessedRecipe(ExtractedRecipeData):
    ingredients_with_matches: list[ProcessedIngredient] = Field(default_factory=list)
    book_metadata: Optional[BookMetadata] = None
    book_id: Optional[str] = None
    needs_ownership_verification: bool = False

    def match_rate(self) -> float:
        if not self.ingredients_with_matches:
            return 0.0
        resolved = sum(1 for i in self.ingredients_with_matches if i.ingredient_id)
        return resolved / len(self.ingredients_with_matches)

    def extraction_confidence(self) -> int:
        """Percentage of ingredients matched with high confidence."""
        if not self.ingredients_with_matches:
            return 0
        high = sum(1 for i in self.ingredients_with_matches if i.match_confidence >= 0.8)
        return round(high / len(self.ingredients_with_matches) * 100)


class CatalogIngredient(BaseModel):
    id: str
    name: str
    plural_name: Optional[str] = None
    family: Optional[str] = None
    base_ingredient_id: Optional[str] = None

    @property
    def is_base(self) -> bool:
        return self.base_ingredient_id is None


class Book(BaseModel):
    id: str
    title: str
    author: Optional[str] = None
    isbn: Optional[str] = None
    isbn13: Optional[str] = None


class Chef(BaseModel):
    id: str
    name: str


class StoredIngredient(BaseModel):
    id: str
    ingredient_id: Optional[str] = None
    original_text: str
    quantity_amount: Optional[float] = None
    quantity_unit: Optional[str] = None
    preparation: Optional[str] = None
    sequence_order: int
    needs_review: bool = False


class StoredStep(BaseModel):
    id: str
    step_number: int
    instruction: str
    is_optional: bool = False
    is_time_sensitive: bool = False


class StoredSection(BaseModel):
    id: str
    section_title: str
    section_description: Optional[str] = None
    section_order: int
    estimated_time_min: Optional[int] = None
    steps: list[StoredStep] = Field(default_factory=list)


class Recipe(BaseModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    book_id: Optional[str] = None
    chef_id: Optional[str] = None
    ingredients: list[StoredIngredient] = Field(default_factory=list)
    instruction_sections: list[StoredSection] = Field(default_factory=list)


class Draft(BaseModel):
    version: int = 1
    id: str
    user_id: str
    source: str
    created_at: datetime
    updated_at: datetime
    recipe: ProcessedRecipe
    saved_recipe_id: Optional[str] = None

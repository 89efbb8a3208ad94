from __future__ import annotations
import logging
from typing import Any, Optional
from pydantic import ValidationError
from frigo.backend import SupabaseBackend
from frigo.books import get_or_create_chef
from frigo.errors import BackendError, PersistenceError
from frigo.models import (
    CrossReference,
    InstructionSection,
    MediaReference,
    ProcessedIngredient,
    ProcessedRecipe,
    Recipe,
    StoredIngredient,
    StoredSection,
    StoredStep,
)
from frigo.review import ensure_saveable

logger = logging.getLogger(__name__)


def _recipe_row(
    processed: ProcessedRecipe, user_id: str, title: str, book_id: Optional[str], chef_id: Optional[str]
) -> dict[str, Any]:
    recipe = processed.recipe
    difficulty = processed.ai_difficulty_assessment
    raw = processed.raw_extraction_data
    return {
        "user_id": user_id,
        "book_id": book_id,
        "chef_id": chef_id,
        "page_number": processed.book_metadata.page_number if processed.book_metadata else None,
        "title": title,
        "description": recipe.description,
        "image_url": recipe.image_url,
        "source_author": recipe.source_author,
        "source_url": raw.source_url if raw else None,
        "servings": recipe.servings,
        "prep_time_min": recipe.prep_time_min,
        "cook_time_min": recipe.cook_time_min,
        "inactive_time_min": recipe.inactive_time_min,
        "total_time_min": recipe.total_time_min,
        "chef_difficulty_label": recipe.chef_difficulty_label,
        "ai_difficulty_level": difficulty.difficulty_level if difficulty else None,
        "ai_difficulty_score": difficulty.difficulty_score if difficulty else None,
        "ai_difficulty_factors": difficulty.factors.model_dump() if difficulty else None,
        "cuisine_types": recipe.cuisine_types,
        "meal_type": recipe.meal_type,
        "dietary_tags": recipe.dietary_tags,
        "cooking_methods": recipe.cooking_methods,
        "is_public": False,
        "raw_extraction_data": raw.model_dump(mode="json") if raw else None,
    }


def _ingredient_rows(recipe_id: str, processed: ProcessedRecipe) -> list[dict[str, Any]]:
    return [
        {
            "recipe_id": recipe_id,
            "ingredient_id": ing.ingredient_id,
            "original_text": ing.original_text,
            "quantity_amount": ing.quantity_amount,
            "quantity_unit": ing.quantity_unit,
            "preparation": ing.preparation,
            "sequence_order": ing.sequence_order,
            "match_confidence": ing.match_confidence,
            "match_method": ing.match_method,
            "match_notes": ing.match_notes,
            "needs_review": ing.needs_review,
            "optional_confidence": 1.0 if ing.is_optional else 0.0,
        }
        for ing in processed.ingredients_with_matches
    ]


def save_instruction_sections(
    backend: SupabaseBackend, recipe_id: str, sections: list[InstructionSection]
) -> None:
    for section in sections:
        row = backend.insert("instruction_sections", {
            "recipe_id": recipe_id,
            "section_title": section.section_title,
            "section_description": section.section_description,
            "section_order": section.section_order,
            "estimated_time_min": section.estimated_time_min,
        })[0]
        backend.insert("instruction_steps", [
            {
                "section_id": row["id"],
                "step_number": step.step_number,
                "instruction": step.instruction,
                "is_optional": step.is_optional,
                "is_time_sensitive": step.is_time_sensitive,
            }
            for step in section.steps
        ])


def save_ingredient_alternatives(
    backend: SupabaseBackend, ingredient_rows: list[dict[str, Any]], ingredients: list[ProcessedIngredient]
) -> int:
    rows = [
        {
            "recipe_ingredient_id": row["id"],
            "alternative_ingredient_id": alt.ingredient_id,
            "alternative_name": alt.ingredient_name,
            "is_equivalent": alt.is_equivalent,
            "preference_order": order,
            "notes": alt.notes,
        }
        for row, ingredient in zip(ingredient_rows, ingredients)
        for order, alt in enumerate(ingredient.alternatives, start=1)
    ]
    if not rows:
        return 0
    return len(backend.insert("recipe_ingredient_alternatives", rows))


def save_cross_references(backend: SupabaseBackend, recipe_id: str, references: list[CrossReference]) -> int:
    rows = [
        {
            "source_recipe_id": recipe_id,
            "reference_text": ref.reference_text,
            "referenced_page_number": ref.page_number,
            "referenced_recipe_name": ref.recipe_name,
            "reference_type": ref.reference_type,
            "is_fulfilled": False,
        }
        for ref in references
    ]
    if not rows:
        return 0
    return len(backend.insert("recipe_references", rows))


def save_media_references(backend: SupabaseBackend, recipe_id: str, media: list[MediaReference]) -> int:
    rows = [
        {
            "recipe_id": recipe_id,
            "media_type": item.type,
            "url": item.visible_url,
            "description": item.description,
            "location_on_page": item.location,
        }
        for item in media
    ]
    if not rows:
        return 0
    return len(backend.insert("recipe_media", rows))


def _discard_recipe(backend: SupabaseBackend, recipe_id: str) -> None:
    try:
        backend.delete("recipes", eq={"id": recipe_id})
    except BackendError as e:
        logger.error("Could not remove partially saved recipe %s: %s", recipe_id, e)
    else:
        logger.info("Removed partially saved recipe %s", recipe_id)


def save_recipe(
    backend: SupabaseBackend,
    processed: ProcessedRecipe,
    user_id: str,
    title: Optional[str] = None,
    book_id: Optional[str] = None,
) -> str:
    """Write the recipe, its ingredient lines and its instruction sections. Returns the new recipe id.

    Not idempotent: saving the same recipe twice creates two rows. A recipe whose
    ingredients cannot be written is removed again before the error is raised.
    """
    ensure_saveable(processed)
    final_title = (title or processed.recipe.title).strip()
    if not final_title:
        raise PersistenceError("A recipe title is required to save.")
    book_id = book_id or processed.book_id

    author = processed.book_metadata.author if processed.book_metadata else None
    chef = get_or_create_chef(backend, author)

    try:
        rows = backend.insert("recipes", _recipe_row(processed, user_id, final_title, book_id, chef.id if chef else None))
        recipe_id = str(rows[0]["id"])
    except (BackendError, KeyError, IndexError) as e:
        raise PersistenceError(f"Failed to save recipe: {e}") from e

    ingredient_rows: list[dict[str, Any]] = []
    if processed.ingredients_with_matches:
        try:
            ingredient_rows = backend.insert("recipe_ingredients", _ingredient_rows(recipe_id, processed))
        except BackendError as e:
            _discard_recipe(backend, recipe_id)
            raise PersistenceError(f"Failed to save recipe ingredients: {e}") from e
    logger.info("Saved recipe '%s' (%s)", final_title, recipe_id)

    if processed.instruction_sections:
        try:
            save_instruction_sections(backend, recipe_id, processed.instruction_sections)
        except (BackendError, KeyError, IndexError) as e:
            logger.error("Saved recipe %s without instruction sections: %s", recipe_id, e)
        else:
            logger.info("Saved %d instruction sections", len(processed.instruction_sections))

    extras = [
        ("ingredient alternatives",
         lambda: save_ingredient_alternatives(backend, ingredient_rows, processed.ingredients_with_matches)),
        ("cross references", lambda: save_cross_references(backend, recipe_id, processed.cross_references)),
        ("media references", lambda: save_media_references(backend, recipe_id, processed.media_references)),
    ]
    for label, write in extras:
        try:
            count = write()
        except (BackendError, KeyError, IndexError) as e:
            logger.warning("Saved recipe %s without %s: %s", recipe_id, label, e)
        else:
            if count:
                logger.info("Saved %d %s", count, label)

    return recipe_id


def load_recipe(backend: SupabaseBackend, recipe_id: str) -> Recipe:
    try:
        rows = backend.select("recipes", eq={"id": recipe_id}, limit=1)
        if not rows:
            raise PersistenceError(f"Recipe {recipe_id} not found.")
        ingredients = backend.select("recipe_ingredients", eq={"recipe_id": recipe_id}, order="sequence_order.asc")
        sections = []
        for section in backend.select("instruction_sections", eq={"recipe_id": recipe_id}, order="section_order.asc"):
            steps = backend.select("instruction_steps", eq={"section_id": section["id"]}, order="step_number.asc")
            sections.append(StoredSection(**section, steps=[StoredStep.model_validate(s) for s in steps]))
        return Recipe(
            **rows[0],
            ingredients=[StoredIngredient.model_validate(i) for i in ingredients],
            instruction_sections=sections,
        )
    except BackendError as e:
        raise PersistenceError(f"Could not load recipe {recipe_id}: {e}") from e
    except ValidationError as e:
        raise PersistenceError(f"Recipe {recipe_id} has malformed rows: {e}") from e

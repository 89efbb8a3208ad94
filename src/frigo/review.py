from __future__ import annotations
from typing import Optional
from frigo.catalog import IngredientCatalog
from frigo.errors import UnresolvedIngredientsError
from frigo.models import ProcessedIngredient, ProcessedRecipe


def rename(recipe: ProcessedRecipe, title: str) -> ProcessedRecipe:
    title = title.strip()
    if not title:
        raise ValueError("Title cannot be empty")
    return recipe.model_copy(update={"recipe": recipe.recipe.model_copy(update={"title": title})})


def _replace_ingredient(recipe: ProcessedRecipe, index: int, ingredient: ProcessedIngredient) -> ProcessedRecipe:
    items = list(recipe.ingredients_with_matches)
    items[index] = ingredient
    return recipe.model_copy(update={"ingredients_with_matches": items})


def resolve_ingredient(
    recipe: ProcessedRecipe,
    index: int,
    ingredient_id: str,
    catalog: Optional[IngredientCatalog] = None,
) -> ProcessedRecipe:
    if not 0 <= index < len(recipe.ingredients_with_matches):
        raise IndexError(f"No ingredient at position {index + 1}")
    current = recipe.ingredients_with_matches[index]
    notes = current.match_notes
    if catalog is not None:
        entry = catalog.get(ingredient_id)
        if entry is None:
            raise KeyError(f"Unknown catalog ingredient {ingredient_id}")
        notes = f'Chosen during review: "{entry.name}"'
    resolved = current.model_copy(update={
        "ingredient_id": ingredient_id,
        "match_confidence": 1.0,
        "match_method": "manual",
        "match_notes": notes,
        "needs_review": False,
        "variant_ids": [],
        "candidate_ids": [],
    })
    return _replace_ingredient(recipe, index, resolved)


def create_and_resolve(
    recipe: ProcessedRecipe,
    index: int,
    catalog: IngredientCatalog,
    backend,
    name: str,
    family: Optional[str] = None,
) -> ProcessedRecipe:
    entry = catalog.create(backend, name, family=family)
    return resolve_ingredient(recipe, index, entry.id, catalog)


def needing_review(recipe: ProcessedRecipe) -> list[tuple[int, ProcessedIngredient]]:
    return [(i, ing) for i, ing in enumerate(recipe.ingredients_with_matches) if ing.needs_review]


def needing_choice(recipe: ProcessedRecipe) -> list[tuple[int, ProcessedIngredient]]:
    """Ingredients matched to a base ingredient that has several registered variants."""
    return [
        (i, ing) for i, ing in enumerate(recipe.ingredients_with_matches)
        if not ing.needs_review and ing.variant_ids
    ]


def unresolved_required(recipe: ProcessedRecipe) -> list[ProcessedIngredient]:
    return [
        ing for ing in recipe.ingredients_with_matches
        if ing.ingredient_id is None and not ing.is_optional
    ]


def ensure_saveable(recipe: ProcessedRecipe) -> None:
    unresolved = unresolved_required(recipe)
    if unresolved:
        raise UnresolvedIngredientsError([ing.ingredient_name or ing.original_text for ing in unresolved])

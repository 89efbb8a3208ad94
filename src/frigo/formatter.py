from __future__ import annotations
from typing import Optional
from frigo.models import ProcessedIngredient, ProcessedRecipe, Recipe


def _amount(quantity: Optional[float], unit: Optional[str]) -> str:
    if quantity is None:
        return unit or ""
    text = f"{quantity:g}"
    return f"{text} {unit}" if unit else text


def _ingredient_line(ingredient: ProcessedIngredient) -> str:
    mark = "[?]" if ingredient.needs_review else "[x]"
    amount = _amount(ingredient.quantity_amount, ingredient.quantity_unit)
    line = f"{mark} {amount} {ingredient.ingredient_name}".replace("  ", " ")
    if ingredient.preparation:
        line += f", {ingredient.preparation}"
    if ingredient.is_optional:
        line += " (optional)"
    if ingredient.needs_review and ingredient.match_notes:
        line += f"  <- {ingredient.match_notes}"
    return line


def _times(recipe: ProcessedRecipe) -> str:
    meta = recipe.recipe
    parts = [
        f"{label} {value} min"
        for label, value in (
            ("prep", meta.prep_time_min),
            ("cook", meta.cook_time_min),
            ("inactive", meta.inactive_time_min),
            ("total", meta.total_time_min),
        )
        if value is not None
    ]
    return ", ".join(parts)


def format_recipe(recipe: ProcessedRecipe) -> str:
    """Plain-text rendering of a processed recipe for the review checkpoint."""
    meta = recipe.recipe
    lines: list[str] = [meta.title, "=" * len(meta.title)]
    if meta.source_author:
        lines.append(f"By {meta.source_author}")
    if recipe.book_metadata and recipe.book_metadata.book_title:
        page = f", p. {recipe.book_metadata.page_number}" if recipe.book_metadata.page_number else ""
        lines.append(f"From {recipe.book_metadata.book_title}{page}")
    if meta.servings:
        lines.append(f"Serves {meta.servings}")
    times = _times(recipe)
    if times:
        lines.append(times)
    if recipe.ai_difficulty_assessment:
        difficulty = recipe.ai_difficulty_assessment
        lines.append(f"Difficulty: {difficulty.difficulty_level} ({difficulty.difficulty_score}/100)")

    lines.append("")
    lines.append("Ingredients")
    lines.append("-----------")
    for ingredient in recipe.ingredients_with_matches:
        lines.append(_ingredient_line(ingredient))

    for section in recipe.instruction_sections:
        lines.append("")
        lines.append(section.section_title)
        lines.append("-" * len(section.section_title))
        for step in section.steps:
            lines.append(f"{step.step_number}. {step.instruction}")

    return "\n".join(lines).strip()


def format_saved_recipe(recipe: Recipe) -> str:
    lines: list[str] = [recipe.title, "=" * len(recipe.title)]
    if recipe.description:
        lines.append(recipe.description)
    lines.append("")
    lines.append("Ingredients")
    lines.append("-----------")
    for ingredient in recipe.ingredients:
        lines.append(f"- {ingredient.original_text}")
    for section in recipe.instruction_sections:
        lines.append("")
        lines.append(section.section_title)
        lines.append("-" * len(section.section_title))
        for step in section.steps:
            lines.append(f"{step.step_number}. {step.instruction}")
    return "\n".join(lines).strip()

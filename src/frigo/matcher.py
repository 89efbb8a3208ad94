from __future__ import annotations
import logging
import re
from difflib import SequenceMatcher
from typing import Optional
from pydantic import BaseModel, Field
from frigo.catalog import IngredientCatalog
from frigo.models import (
    CatalogIngredient,
    ExtractedIngredient,
    ExtractedRecipeData,
    IngredientAlternative,
    ProcessedIngredient,
    ProcessedRecipe,
)

logger = logging.getLogger(__name__)

DESCRIPTORS = [
    "fresh", "dried", "canned", "frozen", "organic", "large", "small", "medium",
    "extra-virgin", "virgin", "light", "dark", "white", "brown", "red", "yellow",
    "green", "ripe", "unripe", "raw", "cooked", "whole", "ground", "boneless", "skinless",
]
COLORS = ["red", "green", "yellow", "white", "purple", "orange", "brown", "black"]

_OR_PATTERN = re.compile(r"^(.+?)\s+or\s+(.+)$")
_DESCRIPTOR_PATTERN = re.compile(r"\b(?:" + "|".join(re.escape(d) for d in DESCRIPTORS) + r")\b")
_COLOR_PATTERN = re.compile(r"\b(?:" + "|".join(COLORS) + r")\b")
FAMILY_BOOST = 0.05


class MatchResult(BaseModel):
    ingredient_id: Optional[str] = None
    match_confidence: float = 0.0
    match_method: str = "none"
    match_notes: Optional[str] = None
    needs_review: bool = True
    variant_ids: list[str] = Field(default_factory=list)
    candidate_ids: list[str] = Field(default_factory=list)


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text.lower()).strip(" ,.;:")


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _prefer_base(entries: list[CatalogIngredient]) -> CatalogIngredient:
    return next((e for e in entries if e.is_base), entries[0])


def _variant_ids(catalog: IngredientCatalog, entry: CatalogIngredient) -> list[str]:
    if not entry.is_base:
        return []
    variants = catalog.variants_of(entry.id)
    return [v.id for v in variants] if len(variants) >= 2 else []


def _contains_word(haystack: str, needle: str) -> bool:
    return bool(needle) and re.search(rf"\b{re.escape(needle)}\b", haystack) is not None


def _match_or(term: str, catalog: IngredientCatalog) -> Optional[MatchResult]:
    m = _OR_PATTERN.match(term)
    if not m:
        return None
    option1, option2 = m.group(1).strip(), m.group(2).strip()
    words1, words2 = option1.split(), option2.split()
    if len(words1) == 1 and len(words2) > 1:
        # "purple or green cabbage" -> "purple cabbage" / "green cabbage"
        option1 = f"{option1} {' '.join(words2[1:])}"

    found1 = catalog.find_exact(option1)
    found2 = catalog.find_exact(option2)
    match1 = _prefer_base(found1) if found1 else None
    match2 = _prefer_base(found2) if found2 else None

    base1 = _collapse(_COLOR_PATTERN.sub("", option1))
    base2 = _collapse(_COLOR_PATTERN.sub("", option2))
    color_variants = base1 != option1 and base2 != option2 and base1 == base2
    base_found = catalog.find_exact(base1) if color_variants else []

    if match1 and match2:
        return MatchResult(
            ingredient_id=match1.id,
            match_confidence=0.95 if color_variants else 0.85,
            match_method="or_pattern",
            match_notes=f'"{option1}" or "{option2}". Alternative: {match2.name}',
            needs_review=False,
            candidate_ids=[match2.id],
        )
    if base_found:
        base = _prefer_base(base_found)
        return MatchResult(
            ingredient_id=base.id,
            match_confidence=0.9,
            match_method="or_pattern",
            match_notes=f'Color variants of "{base.name}"',
            needs_review=False,
        )
    if match1 or match2:
        found = match1 or match2
        missing = option2 if match1 else option1
        return MatchResult(
            ingredient_id=found.id,
            match_confidence=0.7,
            match_method="or_pattern",
            match_notes=f'Only found "{found.name}", missing "{missing}"',
            needs_review=True,
        )
    return None


def _similarity(term: str, entry: CatalogIngredient) -> float:
    names = [n.lower() for n in (entry.name, entry.plural_name) if n]
    return max(SequenceMatcher(None, term, name).ratio() for name in names)


def _fuzzy(term: str, catalog: IngredientCatalog, threshold: float) -> Optional[MatchResult]:
    head = term.split()[-1]
    head_family = next((e.family for e in catalog.find_exact(head) if e.is_base and e.family), None)

    best: Optional[tuple[float, bool, CatalogIngredient]] = None
    for entry in catalog:
        score = _similarity(term, entry)
        if head_family and entry.family == head_family:
            score += FAMILY_BOOST
        ranked = (score, entry.is_base, entry)
        if best is None or ranked[:2] > best[:2]:
            best = ranked
    if best is None or best[0] < threshold:
        return None
    score, _, entry = best
    return MatchResult(
        ingredient_id=entry.id,
        match_confidence=round(min(score, 0.9), 2),
        match_method="fuzzy",
        match_notes=f'Closest catalog name to "{term}" is "{entry.name}"',
        needs_review=True,
    )


def match_ingredient(name: str, catalog: IngredientCatalog, fuzzy_threshold: float = 0.82) -> MatchResult:
    term = _normalize(name or "")
    if not term:
        return MatchResult(match_notes="No ingredient name extracted from text")

    result = _match_or(term, catalog)
    if result:
        return result

    exact = catalog.find_exact(term)
    if exact:
        entry = _prefer_base(exact)
        return MatchResult(
            ingredient_id=entry.id,
            match_confidence=1.0,
            match_method="exact",
            needs_review=False,
            variant_ids=_variant_ids(catalog, entry),
        )

    simplified = _collapse(_DESCRIPTOR_PATTERN.sub("", term)) or term
    if simplified != term:
        found = catalog.find_exact(simplified)
        if found:
            entry = _prefer_base(found)
            return MatchResult(
                ingredient_id=entry.id,
                match_confidence=0.8,
                match_method="descriptor",
                match_notes=f'Matched "{name}" to "{entry.name}" after removing descriptors',
                needs_review=True,
                variant_ids=_variant_ids(catalog, entry),
            )

    partial = [
        entry for entry in catalog
        if any(
            _contains_word(simplified, n.lower()) or _contains_word(n.lower(), simplified)
            for n in (entry.name, entry.plural_name) if n
        )
    ]
    if len(partial) == 1:
        return MatchResult(
            ingredient_id=partial[0].id,
            match_confidence=0.6,
            match_method="partial",
            match_notes=f'Partial match: "{name}" -> "{partial[0].name}"',
            needs_review=True,
        )
    if len(partial) > 1:
        bases = sorted((p for p in partial if p.is_base), key=lambda p: len(p.name), reverse=True)
        if bases:
            chosen = bases[0]
            return MatchResult(
                ingredient_id=chosen.id,
                match_confidence=0.7,
                match_method="base",
                match_notes=f'Matched to base "{chosen.name}" (multiple specific types available)',
                needs_review=False,
                variant_ids=_variant_ids(catalog, chosen),
                candidate_ids=[p.id for p in partial if p.id != chosen.id],
            )
        return MatchResult(
            match_confidence=0.3,
            match_notes="Multiple possible matches: " + ", ".join(p.name for p in partial[:3]),
            candidate_ids=[p.id for p in partial],
        )

    result = _fuzzy(simplified, catalog, fuzzy_threshold)
    if result:
        return result

    head = simplified.split()[-1]
    generic = next((e for e in catalog.find_exact(head) if e.is_base), None)
    if generic:
        return MatchResult(
            ingredient_id=generic.id,
            match_confidence=0.5,
            match_method="generic",
            match_notes=(
                f'No exact match for "{name}". Using generic "{generic.name}". '
                f'Consider adding "{name}" to the catalog.'
            ),
            needs_review=True,
        )

    return MatchResult(match_notes=f'No match found for "{name}"')


def _resolve_alternatives(ingredient: ExtractedIngredient, catalog: IngredientCatalog) -> list[IngredientAlternative]:
    resolved = []
    for alt in ingredient.alternatives:
        found = catalog.find_exact(alt.ingredient_name)
        resolved.append(alt.model_copy(update={"ingredient_id": found[0].id if found else None}))
    return resolved


def match_ingredients(
    extracted: ExtractedRecipeData,
    catalog: IngredientCatalog,
    review_threshold: float = 0.6,
    fuzzy_threshold: float = 0.82,
) -> list[ProcessedIngredient]:
    processed = []
    for ingredient in extracted.ingredients:
        result = match_ingredient(ingredient.ingredient_name, catalog, fuzzy_threshold)
        if result.ingredient_id is None or result.match_confidence < review_threshold:
            result.needs_review = True
        fields = {**ingredient.model_dump(), **result.model_dump()}
        fields["alternatives"] = _resolve_alternatives(ingredient, catalog)
        processed.append(ProcessedIngredient(**fields))

    resolved = sum(1 for p in processed if p.ingredient_id)
    total = len(processed)
    logger.info(
        "Matched %d/%d ingredients (%.0f%%), %d need review",
        resolved, total, (resolved / total * 100) if total else 0.0,
        sum(1 for p in processed if p.needs_review),
    )
    return processed


def match_recipe(
    extracted: ExtractedRecipeData,
    catalog: IngredientCatalog,
    review_threshold: float = 0.6,
    fuzzy_threshold: float = 0.82,
) -> ProcessedRecipe:
    ingredients = match_ingredients(extracted, catalog, review_threshold, fuzzy_threshold)
    return ProcessedRecipe(**extracted.model_dump(), ingredients_with_matches=ingredients)

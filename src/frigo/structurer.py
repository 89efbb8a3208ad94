from __future__ import annotations
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any
import anthropic
from pydantic import ValidationError
from frigo.config import Config
from frigo.errors import ParseError
from frigo.llm import load_json_object, response_text
from frigo.models import ExtractedRecipeData, RawExtractionData, StandardizedRecipeData
from frigo.normalize import (
    DIFFICULTY_BUCKETS,
    SERVINGS_EXAMPLES,
    TEXT_FRACTIONS,
    TIME_EXAMPLES,
    UNICODE_FRACTIONS,
)

logger = logging.getLogger(__name__)

PROMPT_VERSION = "4"
REQUIRED_KEYS = ("recipe", "ingredients", "instruction_sections")


def _fraction_lines() -> str:
    text_by_value = {v: k for k, v in TEXT_FRACTIONS.items()}
    return "\n".join(
        f"- {glyph}, {text_by_value[value]} → {value:g}" for glyph, value in UNICODE_FRACTIONS.items()
    )


SYSTEM_PROMPT = (
    "You are an expert recipe parser. You take semi-structured recipe data and convert it "
    "into a fully structured format.\n\n"
    "CRITICAL RULES:\n"
    "1. Return ONLY valid JSON - no markdown, no code fences, no explanations, no extra text\n"
    "2. For quantities: extract as numbers, using decimals for fractions\n"
    "3. For ingredient_name: extract just the base ingredient without quantities/prep\n"
    "4. For preparation: extract terms like \"chopped\", \"diced\", \"minced\", \"sliced\"\n"
    "5. Parse time strings into minutes\n"
    "6. For servings: extract the number only; for a range take the middle\n"
    "7. Group instructions into logical sections with descriptive titles\n"
    "8. If uncertain about any value, use null rather than guessing\n"
    "9. ALWAYS extract the author if available\n\n"
    "FRACTION CONVERSIONS:\n"
    f"{_fraction_lines()}"
)

USER_PROMPT = """Parse this semi-structured recipe data into the full structured format.

INPUT DATA:
{input_data}

PARSING INSTRUCTIONS:

**TIME PARSING:**
Convert time strings (free text or ISO-8601 durations) to minutes:
{time_examples}

Separate into:
- prep_time_min: hands-on prep (chopping, mixing) BEFORE heat
- cook_time_min: active cooking time with heat
- inactive_time_min: waiting time (marinating, rising, chilling)
- total_time_min: sum of all times, or use the provided total

**SERVINGS PARSING:**
{servings_examples}

**INGREDIENT PARSING:**
For each ingredient string like "2 cups chopped fresh spinach":
- quantity_amount: 2
- quantity_unit: "cups"
- ingredient_name: "spinach"
- preparation: "chopped fresh"
- original_text: "2 cups chopped fresh spinach"
Keep the input order in sequence_order, starting at 1.
When a line offers a choice ("peaches or nectarines") or a substitution ("or use honey"), name the
first option as ingredient_name and list the others under alternatives, with is_equivalent true for a
plain choice and false for a substitute.

**CROSS REFERENCES:**
When the text points at another recipe ("see page 212", "use the dressing from the salad recipe"),
add an entry to cross_references with the page number and recipe name when given.

**INSTRUCTION SECTIONS:**
1. Look for natural breaks or phases in cooking
2. Create descriptive titles like "Prepare Beans", "Make Sauce", "Assemble and Bake"
3. Each section must have 1-8 steps
4. If the recipe is simple (3-5 steps), create 1 section called "Prepare and Serve"

**DIFFICULTY ASSESSMENT:**
Assess difficulty from ingredient count, step complexity, techniques, total time and
special equipment. Score 0-100 and assign the level:
{difficulty_buckets}

**RETURN THIS EXACT JSON STRUCTURE:**
{{
  "recipe": {{
    "title": "string",
    "description": "string or null",
    "source_author": "string or null",
    "image_url": "string or null",
    "servings": number or null,
    "prep_time_min": number or null,
    "cook_time_min": number or null,
    "inactive_time_min": number or null,
    "total_time_min": number or null,
    "cuisine_types": ["string"] or null,
    "meal_type": ["string"] or null,
    "dietary_tags": ["string"] or null,
    "cooking_methods": ["string"] or null
  }},
  "ai_difficulty_assessment": {{
    "difficulty_level": "easy" | "medium" | "hard",
    "difficulty_score": number (0-100),
    "factors": {{
      "ingredient_count": number,
      "step_count": number,
      "advanced_techniques": ["string"],
      "total_time_min": number,
      "special_equipment": ["string"]
    }},
    "reasoning": "string"
  }},
  "ingredients": [
    {{
      "original_text": "string",
      "quantity_amount": number or null,
      "quantity_unit": "string or null",
      "ingredient_name": "string",
      "preparation": "string or null",
      "sequence_order": number,
      "is_optional": boolean,
      "alternatives": [
        {{
          "ingredient_name": "string",
          "is_equivalent": boolean,
          "notes": "string or null"
        }}
      ] or null
    }}
  ],
  "instruction_sections": [
    {{
      "section_title": "string",
      "section_description": "string or null",
      "section_order": number,
      "estimated_time_min": number or null,
      "steps": [
        {{
          "step_number": number,
          "instruction": "string",
          "is_optional": boolean,
          "is_time_sensitive": boolean
        }}
      ]
    }}
  ],
  "cross_references": [
    {{
      "reference_text": "string",
      "page_number": number or null,
      "recipe_name": "string or null",
      "reference_type": "ingredient" | "technique" | "variation" | "note"
    }}
  ] or null
}}"""


def build_user_prompt(standardized: StandardizedRecipeData) -> str:
    return USER_PROMPT.format(
        input_data=standardized.model_dump_json(indent=2, exclude_none=True),
        time_examples="\n".join(f'- "{k}" → {v}' for k, v in TIME_EXAMPLES.items()),
        servings_examples="\n".join(f'- "{k}" → {v}' for k, v in SERVINGS_EXAMPLES.items()),
        difficulty_buckets="\n".join(f"- {lo}-{hi}: {level}" for lo, hi, level in DIFFICULTY_BUCKETS),
    )


def _preserve_source_fields(data: dict[str, Any], standardized: StandardizedRecipeData) -> None:
    """Source values win over the model for author, image and media; description, title and references fill gaps."""
    recipe = data["recipe"]
    raw = standardized.raw_text
    author = standardized.source.author or raw.author
    if author:
        recipe["source_author"] = author
    if raw.image_url:
        recipe["image_url"] = raw.image_url
    if raw.description and not recipe.get("description"):
        recipe["description"] = raw.description
    title = recipe.get("title")
    if isinstance(title, (int, float)):
        title = str(title)
    if not isinstance(title, str) or not title.strip():
        title = raw.title
    recipe["title"] = title.strip()
    if raw.cross_references and not data.get("cross_references"):
        data["cross_references"] = [ref.model_dump() for ref in raw.cross_references]
    if raw.media_references:
        data["media_references"] = [media.model_dump() for media in raw.media_references]


def _raw_extraction_data(
    standardized: StandardizedRecipeData, parsed: ExtractedRecipeData, model: str
) -> RawExtractionData:
    return RawExtractionData(
        extraction_date=datetime.now(tz=timezone.utc),
        prompt_version=PROMPT_VERSION,
        model=model,
        source_type=standardized.source.type,
        source_url=standardized.source.url,
        source_site=standardized.source.site_name or None,
        raw_data=standardized.model_dump(mode="json"),
        parsed_data={
            "recipe": parsed.recipe.model_dump(mode="json"),
            "ingredients_count": len(parsed.ingredients),
            "instruction_sections_count": len(parsed.instruction_sections),
            "ai_difficulty": (
                parsed.ai_difficulty_assessment.model_dump(mode="json")
                if parsed.ai_difficulty_assessment else None
            ),
        },
    )


def structure(standardized: StandardizedRecipeData, config: Config) -> ExtractedRecipeData:
    client = anthropic.Anthropic(api_key=config.anthropic_api_key)

    started = time.monotonic()
    try:
        response = client.messages.create(
            model=config.anthropic_model,
            max_tokens=config.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": build_user_prompt(standardized)}],
        )
    except anthropic.RateLimitError as e:
        raise ParseError("The recipe parser is busy right now. Please try again in a moment.") from e
    except anthropic.APIError as e:
        raise ParseError(f"Recipe parsing request failed: {e}") from e
    logger.debug("Parser responded in %.0f ms", (time.monotonic() - started) * 1000)

    try:
        raw_text = response_text(response)
        data = load_json_object(raw_text)
    except (json.JSONDecodeError, ValueError) as e:
        raise ParseError(f"Failed to parse LLM response as JSON: {e}") from e

    missing = [key for key in REQUIRED_KEYS if data.get(key) is None]
    if missing:
        raise ParseError(f"Parsed data missing required fields: {', '.join(missing)}")
    if not isinstance(data["recipe"], dict):
        raise ParseError("Parsed data has a malformed 'recipe' object")
    if not isinstance(data["ingredients"], list) or not isinstance(data["instruction_sections"], list):
        raise ParseError("Parsed data must list ingredients and instruction_sections")

    _preserve_source_fields(data, standardized)
    if not data["recipe"].get("title"):
        raise ParseError("Parsed recipe has no title and the source had none to fall back on")

    try:
        parsed = ExtractedRecipeData.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"LLM returned an unexpected recipe format: {e}") from e

    logger.info(
        "Parsed '%s': %d ingredients, %d sections",
        parsed.recipe.title, len(parsed.ingredients), len(parsed.instruction_sections),
    )
    return parsed.model_copy(
        update={"raw_extraction_data": _raw_extraction_data(standardized, parsed, config.anthropic_model)}
    )

from __future__ import annotations
import base64
import io
import json
import logging
from typing import Optional
import anthropic
from PIL import Image, ImageOps, UnidentifiedImageError
from pydantic import ValidationError
from frigo.config import Config
from frigo.errors import ExtractionError
from frigo.llm import load_json_object, response_text
from frigo.models import (
    BookMetadata,
    CrossReference,
    MediaReference,
    RawRecipeText,
    RecipeSource,
    StandardizedRecipeData,
)

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024

_SIGNATURES = [
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
]

VISION_SYSTEM_PROMPT = (
    "You are a careful recipe transcription assistant. You read photos of recipes "
    "(cookbook pages, recipe cards, handwritten notes) and copy their text exactly.\n\n"
    "Rules:\n"
    "1. Return ONLY valid JSON - no markdown, no explanations, no extra text\n"
    "2. Copy ingredient lines and instruction steps verbatim, one list entry per line or step\n"
    "3. Do not convert units, fractions or times; transcribe them as printed\n"
    "4. Use null for anything not visible on the page\n"
    "5. Look everywhere for book information: running headers and footers, page numbers, "
    "margins, copyright lines. A visible page number means the photo is from a book\n"
    "6. Note pointers to other recipes (\"see page 212\") and any QR codes, links or video mentions"
)

VISION_USER_PROMPT = """Transcribe the recipe in this photo into this exact JSON structure:
{
  "title": "string",
  "author": "string or null",
  "description": "string or null",
  "ingredients": ["one ingredient line per entry"],
  "instructions": ["one step per entry"],
  "prep_time": "string or null",
  "cook_time": "string or null",
  "total_time": "string or null",
  "servings": "string or null",
  "notes": "string or null",
  "ingredient_swaps": "string or null",
  "storage_notes": "string or null",
  "category": "string or null",
  "cuisine": "string or null",
  "tags": ["string"],
  "cross_references": [
    {
      "reference_text": "string",
      "page_number": "number or null",
      "recipe_name": "string or null",
      "reference_type": "ingredient" | "technique" | "variation" | "note"
    }
  ],
  "media_references": [
    {
      "type": "qr_code" | "url" | "youtube" | "instagram" | "video" | "podcast",
      "location": "string or null",
      "visible_url": "string or null",
      "description": "string or null"
    }
  ],
  "book": {
    "book_title": "string or null",
    "author": "string or null",
    "page_number": "number or null",
    "isbn": "string or null",
    "isbn13": "string or null"
  }
}"""


def detect_media_type(data: bytes) -> Optional[str]:
    for signature, media_type in _SIGNATURES:
        if data.startswith(signature):
            return media_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def prepare_image(data: bytes, max_edge: int = 1568) -> tuple[bytes, str]:
    """Return image bytes the vision API accepts, downscaling and re-encoding when needed."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ExtractionError("The photo could not be read as an image.") from e

    media_type = detect_media_type(data)
    if media_type and max(image.size) <= max_edge and len(data) <= MAX_IMAGE_BYTES:
        return data, media_type

    image = ImageOps.exif_transpose(image)
    image.thumbnail((max_edge, max_edge))
    if image.mode != "RGB":
        image = image.convert("RGB")
    out = io.BytesIO()
    image.save(out, format="JPEG", quality=85)
    logger.debug("Re-encoded photo to %dx%d JPEG (%d bytes)", image.width, image.height, out.tell())
    return out.getvalue(), "image/jpeg"


def _book_metadata(data: object) -> Optional[BookMetadata]:
    if not isinstance(data, dict):
        return None
    try:
        book = BookMetadata.model_validate(data)
    except ValidationError:
        logger.warning("Ignoring unreadable book metadata: %s", data)
        return None
    return book if book.book_title or book.isbn or book.isbn13 else None


def _references(items: object, model: type) -> list:
    if not isinstance(items, list):
        return []
    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError:
            logger.warning("Ignoring unreadable %s: %s", model.__name__, item)
    return parsed


def standardize_photo(image: bytes, config: Config, photo_ref: Optional[str] = None) -> StandardizedRecipeData:
    payload, media_type = prepare_image(image, max_edge=config.max_image_edge)
    client = anthropic.Anthropic(api_key=config.anthropic_api_key)

    try:
        response = client.messages.create(
            model=config.vision_model,
            max_tokens=config.max_tokens,
            system=VISION_SYSTEM_PROMPT,
            messages=[{
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": media_type,
                            "data": base64.b64encode(payload).decode("ascii"),
                        },
                    },
                    {"type": "text", "text": VISION_USER_PROMPT},
                ],
            }],
        )
    except anthropic.APIError as e:
        raise ExtractionError(f"Could not read the photo: {e}") from e

    try:
        data = load_json_object(response_text(response))
        book = _book_metadata(data.pop("book", None))
        data["cross_references"] = _references(data.get("cross_references"), CrossReference)
        data["media_references"] = _references(data.get("media_references"), MediaReference)
        raw_text = RawRecipeText.model_validate(data)
    except (json.JSONDecodeError, ValueError) as e:
        raise ExtractionError(
            "Failed to read recipe text from the photo. The image may not contain a clear recipe."
        ) from e

    standardized = StandardizedRecipeData(
        source=RecipeSource(
            type="photo",
            photo_ref=photo_ref,
            site_name=(book.book_title if book and book.book_title else "Photo"),
            author=raw_text.author or (book.author if book else None),
            book=book,
        ),
        raw_text=raw_text,
    )
    missing = standardized.missing_content()
    if missing:
        raise ExtractionError(
            f"Could not find {' or '.join(missing)} in the photo. Try a clearer, closer shot of the recipe."
        )
    logger.info(
        "Transcribed photo: %d ingredients, %d steps, book=%s",
        len(raw_text.ingredients), len(raw_text.instructions), book.book_title if book else "none",
    )
    return standardized

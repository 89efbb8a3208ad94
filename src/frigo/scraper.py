from __future__ import annotations
import logging
from typing import Any, Callable, Iterable, Optional
from recipe_scrapers import scrape_html
from recipe_scrapers._exceptions import (
    NoSchemaFoundInWildMode,
    RecipeScrapersExceptions,
    WebsiteNotImplementedError,
)
from frigo.errors import ExtractionError, NonRecipeUrlWarning
from frigo.fetcher import fetch
from frigo.models import RawRecipeText, RecipeSource, StandardizedRecipeData
from frigo.sources import BLOCKED_DOMAINS, check_url, friendly_site_name

logger = logging.getLogger(__name__)

_FIELD_ERRORS = (RecipeScrapersExceptions, NotImplementedError, AttributeError, TypeError, ValueError)


def _optional(getter: Callable[[], Any]) -> Any:
    """Call a scraper field accessor, treating 'field not on this page' as None."""
    try:
        value = getter()
    except _FIELD_ERRORS:
        return None
    if isinstance(value, str):
        value = value.strip()
    return value or None


def _minutes_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return f"{int(value)} minutes"
    return str(value)


def _tags(keywords: Any) -> list[str]:
    if not keywords:
        return []
    if isinstance(keywords, str):
        keywords = keywords.split(",")
    return [k.strip() for k in keywords if k and k.strip()]


def _instructions(scraper) -> list[str]:
    steps = _optional(scraper.instructions_list)
    if steps:
        return list(steps)
    text = _optional(scraper.instructions)
    return [line for line in (text or "").split("\n") if line.strip()]


def standardize_html(html: str, url: str) -> StandardizedRecipeData:
    try:
        scraper = scrape_html(html, org_url=url, supported_only=False)
        ingredients = scraper.ingredients()
    except (WebsiteNotImplementedError, NoSchemaFoundInWildMode):
        raise ExtractionError(
            f"Could not find a recipe on {url}. The page has no recognizable recipe data."
        )
    except RecipeScrapersExceptions as e:
        raise ExtractionError(f"Could not read the recipe on {url}: {e}") from e
    except Exception as e:
        raise ExtractionError(f"Unexpected error scraping {url}: {e}") from e

    title = _optional(scraper.title)
    if not title:
        raise ExtractionError("Could not extract recipe title. This may not be a valid recipe page.")
    if not ingredients:
        raise ExtractionError("Could not extract ingredients. This may not be a valid recipe page.")
    instructions = _instructions(scraper)
    if not instructions:
        raise ExtractionError("Could not extract instructions. This may not be a valid recipe page.")

    author = _optional(scraper.author)
    yields = _optional(scraper.yields)
    raw_text = RawRecipeText(
        title=title,
        author=author,
        description=_optional(scraper.description),
        ingredients=ingredients,
        instructions=instructions,
        prep_time=_minutes_text(_optional(scraper.prep_time)),
        cook_time=_minutes_text(_optional(scraper.cook_time)),
        total_time=_minutes_text(_optional(scraper.total_time)),
        servings=yields,
        yield_text=yields,
        image_url=_optional(scraper.image),
        category=_optional(scraper.category),
        cuisine=_optional(scraper.cuisine),
        tags=_tags(_optional(scraper.keywords)),
    )
    source = RecipeSource(
        type="web",
        url=url,
        site_name=_optional(scraper.site_name) or friendly_site_name(url),
        author=author,
    )
    data = StandardizedRecipeData(source=source, raw_text=raw_text)
    logger.info(
        "Scraped '%s': %d ingredients, %d steps, image=%s, author=%s",
        title, len(raw_text.ingredients), len(raw_text.instructions),
        "yes" if raw_text.image_url else "no", author or "none",
    )
    return data


def extract_from_url(
    url: str,
    allow_non_recipe: bool = False,
    blocked: Iterable[str] = BLOCKED_DOMAINS,
    timeout: float = 15,
) -> StandardizedRecipeData:
    check = check_url(url, blocked)
    if check.warning and not allow_non_recipe:
        raise NonRecipeUrlWarning(check.warning)
    html = fetch(check.url, timeout=timeout)
    return standardize_html(html, check.url)

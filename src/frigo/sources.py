from __future__ import annotations
from typing import Iterable, Optional
from urllib.parse import urlparse
from pydantic import BaseModel
from frigo.errors import BlockedSourceError, ExtractionError

BLOCKED_DOMAINS = (
    "youtube.com",
    "youtu.be",
    "instagram.com",
    "tiktok.com",
    "pinterest.com",
    "facebook.com",
    "twitter.com",
    "x.com",
    "google.com",
    "bing.com",
)

RECIPE_INDICATORS = (
    "/recipe/", "/recipes/", "recipe?", "recipes?", "-recipe", "recipe-",
    "/cook/", "/cooking/", "/food/", "/dish/", "/meal/",
)

NON_RECIPE_PATTERNS = (
    "/category/", "/tag/", "/author/", "/search", "/about",
    "/contact", "/blog-post", "/article",
)


class UrlCheck(BaseModel):
    url: str
    domain: str
    site_name: str
    looks_like_recipe: bool
    warning: Optional[str] = None


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def get_domain(url: str) -> str:
    host = urlparse(url.strip()).hostname or url
    return host.lower().removeprefix("www.")


def friendly_site_name(url: str) -> str:
    """'www.serious-eats.com' -> 'Serious Eats'."""
    first_label = get_domain(url).split(".")[0]
    return " ".join(word.capitalize() for word in first_label.split("-") if word)


def blocked_domain(url: str, blocked: Iterable[str] = BLOCKED_DOMAINS) -> Optional[str]:
    host = get_domain(url)
    for domain in blocked:
        domain = domain.lower()
        if host == domain or host.endswith("." + domain):
            return domain
    return None


def check_url(url: str, blocked: Iterable[str] = BLOCKED_DOMAINS) -> UrlCheck:
    if not is_valid_url(url):
        raise ExtractionError(f"Invalid URL format: {url!r}. Use a full http(s) link to a recipe page.")

    domain = blocked_domain(url, blocked)
    if domain:
        raise BlockedSourceError(domain)

    lower = url.lower()
    has_indicator = any(indicator in lower for indicator in RECIPE_INDICATORS)
    non_recipe = next((p for p in NON_RECIPE_PATTERNS if p in lower), None)

    warning = None
    if non_recipe:
        warning = f"This link looks like a '{non_recipe.strip('/')}' page rather than a single recipe."
    elif not has_indicator:
        warning = "This link doesn't look like a recipe page. It may still work."

    return UrlCheck(
        url=url.strip(),
        domain=get_domain(url),
        site_name=friendly_site_name(url),
        looks_like_recipe=warning is None,
        warning=warning,
    )

from __future__ import annotations
import math
import re
from typing import Optional, Union

UNICODE_FRACTIONS: dict[str, float] = {
    "½": 0.5,
    "⅓": 0.33,
    "⅔": 0.67,
    "¼": 0.25,
    "¾": 0.75,
    "⅛": 0.125,
}

TEXT_FRACTIONS: dict[str, float] = {
    "1/2": 0.5,
    "1/3": 0.33,
    "2/3": 0.67,
    "1/4": 0.25,
    "3/4": 0.75,
    "1/8": 0.125,
}

TIME_EXAMPLES: dict[str, int] = {
    "1 hour 30 minutes": 90,
    "30 mins": 30,
    "2 hours": 120,
    "PT1H30M": 90,
    "1h 15m": 75,
}

SERVINGS_EXAMPLES: dict[str, int] = {
    "12 cups": 12,
    "Serves 4-6": 5,
    "Makes 24 cookies": 24,
    "4 servings": 4,
}

DIFFICULTY_BUCKETS: list[tuple[int, int, str]] = [
    (0, 30, "easy"),
    (31, 70, "medium"),
    (71, 100, "hard"),
]

_UNICODE_CLASS = "".join(UNICODE_FRACTIONS)
_MIXED_TEXT = re.compile(r"^(\d+)[-\s]+(\d+)/(\d+)")
_MIXED_UNICODE = re.compile(rf"^(\d+)\s*([{_UNICODE_CLASS}])")
_LONE_UNICODE = re.compile(rf"^([{_UNICODE_CLASS}])")
_LONE_TEXT = re.compile(r"^(\d+)/(\d+)")
_RANGE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:-|–|—|to)\s*(\d+(?:\.\d+)?)(?![\d/])")
_DECIMAL = re.compile(r"^(\d+(?:\.\d+)?)")
_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+(?:\.\d+)?)H)?(?:(?P<minutes>\d+(?:\.\d+)?)M)?(?:(?P<seconds>\d+)S)?)?$"
)
_TIME_PART = re.compile(
    rf"(\d+[-\s]+\d+/\d+|\d+/\d+|\d+(?:\.\d+)?(?:\s*[{_UNICODE_CLASS}])?|[{_UNICODE_CLASS}])\s*"
    r"(days?|hours?|hrs?|h|minutes?|mins?|m)\b",
    re.IGNORECASE,
)
_UNIT_MINUTES = {"d": 1440, "h": 60, "m": 1}
_FIRST_INT = re.compile(r"\d+")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fraction_value(numerator: int, denominator: int) -> float:
    key = f"{numerator}/{denominator}"
    if key in TEXT_FRACTIONS:
        return TEXT_FRACTIONS[key]
    if denominator == 0:
        raise ValueError(f"Invalid fraction: {key}")
    return round(numerator / denominator, 3)


def parse_quantity(text: Union[str, int, float, None]) -> Optional[float]:
    """Read a leading quantity such as '1 1/2', '1½', '¾', '2-3' or '0.5'."""
    if text is None:
        return None
    if isinstance(text, (int, float)):
        return float(text)
    s = text.strip()
    if not s:
        return None
    m = _MIXED_TEXT.match(s)
    if m:
        return round(int(m.group(1)) + fraction_value(int(m.group(2)), int(m.group(3))), 3)
    m = _MIXED_UNICODE.match(s)
    if m:
        return round(int(m.group(1)) + UNICODE_FRACTIONS[m.group(2)], 3)
    m = _LONE_UNICODE.match(s)
    if m:
        return UNICODE_FRACTIONS[m.group(1)]
    m = _LONE_TEXT.match(s)
    if m:
        return fraction_value(int(m.group(1)), int(m.group(2)))
    m = _RANGE.match(s)
    if m:
        return (float(m.group(1)) + float(m.group(2))) / 2
    m = _DECIMAL.match(s)
    if m:
        return float(m.group(1))
    return None


def parse_minutes(text: Union[str, int, float, None]) -> Optional[int]:
    """Convert a duration ('1 hour 30 minutes', '1h 15m', 'PT1H30M', '45') to whole minutes."""
    if text is None:
        return None
    if isinstance(text, (int, float)):
        return _round_half_up(text)
    s = text.strip()
    if not s:
        return None

    iso = _ISO_DURATION.match(s.upper())
    if iso and any(iso.groupdict().values()):
        parts = iso.groupdict()
        total = (
            float(parts["days"] or 0) * 1440
            + float(parts["hours"] or 0) * 60
            + float(parts["minutes"] or 0)
            + float(parts["seconds"] or 0) / 60
        )
        return _round_half_up(total)

    s = _RANGE.sub(lambda m: str((float(m.group(1)) + float(m.group(2))) / 2), s)
    total = 0.0
    found = False
    for amount, unit in _TIME_PART.findall(s):
        value = parse_quantity(amount)
        if value is None:
            continue
        total += value * _UNIT_MINUTES[unit[0].lower()]
        found = True
    if found:
        return _round_half_up(total)

    bare = parse_quantity(s)
    return _round_half_up(bare) if bare is not None else None


def parse_servings(text: Union[str, int, float, None]) -> Optional[int]:
    """Pull the serving count out of yield text; ranges resolve to their midpoint."""
    if text is None:
        return None
    if isinstance(text, (int, float)):
        return _round_half_up(text)
    m = _RANGE.search(text)
    if m:
        return _round_half_up((float(m.group(1)) + float(m.group(2))) / 2)
    m = _FIRST_INT.search(text)
    if m:
        return int(m.group(0))
    return None


def difficulty_level(score: int) -> str:
    for low, high, level in DIFFICULTY_BUCKETS:
        if low <= score <= high:
            return level
    raise ValueError(f"Difficulty score must be between 0 and 100, got {score}")

import pytest
from frigo.normalize import difficulty_level, parse_minutes, parse_quantity, parse_servings


@pytest.mark.parametrize("text,expected", [
    ("½", 0.5),
    ("⅓", 0.33),
    ("⅔", 0.67),
    ("¼", 0.25),
    ("¾", 0.75),
    ("⅛", 0.125),
    ("1 1/2", 1.5),
    ("1-1/2", 1.5),
    ("2 - 3/4 cups", 2.75),
    ("1½", 1.5),
    ("2 ¼ cups", 2.25),
    ("0.5", 0.5),
    ("2-3", 2.5),
    ("200 g", 200.0),
])
def test_parse_quantity(text, expected):
    assert parse_quantity(text) == expected


@pytest.mark.parametrize("text,expected", [
    ("1/2", 0.5),
    ("1/3", 0.33),
    ("2/3", 0.67),
    ("1/4", 0.25),
    ("3/4", 0.75),
    ("1/8", 0.125),
])
def test_parse_quantity_text_fractions(text, expected):
    assert parse_quantity(text) == expected
    assert parse_quantity(f"2 {text}") == round(2 + expected, 3)


def test_parse_quantity_without_number():
    assert parse_quantity("a pinch") is None
    assert parse_quantity("") is None
    assert parse_quantity(None) is None


@pytest.mark.parametrize("text,expected", [
    ("1 hour 30 minutes", 90),
    ("30 mins", 30),
    ("2 hours", 120),
    ("PT1H30M", 90),
    ("PT45M", 45),
    ("1h 15m", 75),
    ("45", 45),
    ("1 day", 1440),
    ("10-15 minutes", 13),
    ("1 1/2 hours", 90),
    ("1-1/2 hours", 90),
    ("3/4 hour", 45),
])
def test_parse_minutes(text, expected):
    assert parse_minutes(text) == expected


def test_parse_minutes_passes_numbers_through():
    assert parse_minutes(20) == 20
    assert parse_minutes(None) is None
    assert parse_minutes("overnight") is None


@pytest.mark.parametrize("text,expected", [
    ("12 cups", 12),
    ("Serves 4-6", 5),
    ("Makes 24 cookies", 24),
    ("4 servings", 4),
])
def test_parse_servings(text, expected):
    assert parse_servings(text) == expected


def test_parse_servings_without_number():
    assert parse_servings("a crowd") is None


@pytest.mark.parametrize("score,level", [
    (0, "easy"),
    (30, "easy"),
    (31, "medium"),
    (70, "medium"),
    (71, "hard"),
    (100, "hard"),
])
def test_difficulty_level_boundaries(score, level):
    assert difficulty_level(score) == level


def test_difficulty_level_rejects_out_of_range():
    with pytest.raises(ValueError):
        difficulty_level(101)

import copy
import itertools
import re
import pytest
from frigo.catalog import IngredientCatalog
from frigo.config import Config
from frigo.errors import BackendError
from frigo.models import (
    CatalogIngredient,
    ExtractedRecipeData,
    RawRecipeText,
    RecipeSource,
    StandardizedRecipeData,
)


class FakeBackend:
    """In-memory stand-in for SupabaseBackend with the same select/insert/delete semantics."""

    def __init__(self, tables=None):
        self.tables = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.fail_on: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)

    def select(self, table, columns="*", eq=None, ilike=None, order=None, limit=None):
        self.calls.append(("select", table))
        if table in self.fail_on:
            raise BackendError(f"GET {table} failed (500): boom", 500)
        rows = list(self.tables.get(table, []))
        for column, value in (eq or {}).items():
            rows = [r for r in rows if r.get(column) == value]
        for column, pattern in (ilike or {}).items():
            regex = "^" + ".*".join(re.escape(p) for p in pattern.lower().split("*")) + "$"
            rows = [r for r in rows if r.get(column) is not None and re.match(regex, str(r[column]).lower())]
        if order:
            column, _, direction = order.partition(".")
            rows.sort(key=lambda r: r.get(column) or 0, reverse=direction == "desc")
        if limit is not None:
            rows = rows[:limit]
        if columns != "*":
            rows = [{c: r.get(c) for c in columns.split(",")} for r in rows]
        return [dict(r) for r in rows]

    def insert(self, table, rows):
        self.calls.append(("insert", table))
        if table in self.fail_on:
            raise BackendError(f"POST {table} failed (500): boom", 500)
        payload = rows if isinstance(rows, list) else [rows]
        inserted = []
        for row in payload:
            stored = {"id": f"{table}-{next(self._ids)}", **row}
            self.tables.setdefault(table, []).append(stored)
            inserted.append(dict(stored))
        return inserted

    def delete(self, table, eq):
        self.calls.append(("delete", table))
        if f"delete:{table}" in self.fail_on:
            raise BackendError(f"DELETE {table} failed (500): boom", 500)
        rows = self.tables.get(table, [])
        deleted = [r for r in rows if all(r.get(c) == v for c, v in eq.items())]
        self.tables[table] = [r for r in rows if r not in deleted]
        return [dict(r) for r in deleted]


CATALOG_ROWS = [
    {"id": "flour", "name": "flour", "family": "grain"},
    {"id": "ap-flour", "name": "all-purpose flour", "family": "grain", "base_ingredient_id": "flour"},
    {"id": "bread-flour", "name": "bread flour", "family": "grain", "base_ingredient_id": "flour"},
    {"id": "garlic", "name": "garlic", "family": "allium"},
    {"id": "lemon", "name": "lemon", "plural_name": "lemons", "family": "citrus"},
    {"id": "spaghetti", "name": "spaghetti", "family": "pasta"},
    {"id": "olive-oil", "name": "olive oil", "family": "oil"},
    {"id": "salt", "name": "salt", "family": "seasoning"},
    {"id": "parmesan", "name": "parmesan cheese", "family": "dairy"},
    {"id": "cabbage", "name": "cabbage", "family": "brassica"},
]


@pytest.fixture
def config(monkeypatch, tmp_path):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    monkeypatch.setenv("SUPABASE_URL", "https://db.example.com")
    monkeypatch.setenv("SUPABASE_KEY", "service-key")
    monkeypatch.setenv("DRAFTS_DIR", str(tmp_path / "drafts"))
    return Config()


@pytest.fixture
def backend():
    return FakeBackend({"ingredients": CATALOG_ROWS})


@pytest.fixture
def catalog():
    return IngredientCatalog(CatalogIngredient.model_validate(row) for row in CATALOG_ROWS)


@pytest.fixture
def standardized():
    return StandardizedRecipeData(
        source=RecipeSource(
            type="web",
            url="https://www.example.com/recipes/lemon-pasta",
            site_name="Example Kitchen",
            author="Jamie Cook",
        ),
        raw_text=RawRecipeText(
            title="Lemon Pasta",
            author="Jamie Cook",
            description="Bright weeknight pasta.",
            ingredients=["200 g spaghetti", "2 lemons", "3 cloves garlic", "1 tsp salt"],
            instructions=["Boil the pasta.", "Toss with lemon and garlic."],
            total_time="25 minutes",
            servings="Serves 2",
            image_url="https://www.example.com/lemon-pasta.jpg",
        ),
    )


LEMON_PASTA = {
    "recipe": {
        "title": "Lemon Pasta",
        "description": "Bright weeknight pasta.",
        "source_author": "Someone Else",
        "servings": 2,
        "prep_time_min": 5,
        "cook_time_min": 20,
        "total_time_min": 25,
        "cuisine_types": ["Italian"],
        "meal_type": ["dinner"],
        "dietary_tags": ["vegetarian"],
        "cooking_methods": ["boil"],
    },
    "ai_difficulty_assessment": {
        "difficulty_level": "easy",
        "difficulty_score": 20,
        "factors": {"ingredient_count": 4, "step_count": 2, "advanced_techniques": [], "total_time_min": 25},
        "reasoning": "Few ingredients, simple steps.",
    },
    "ingredients": [
        {"original_text": "200 g spaghetti", "quantity_amount": 200, "quantity_unit": "g",
         "ingredient_name": "spaghetti", "sequence_order": 1},
        {"original_text": "2 lemons", "quantity_amount": 2, "ingredient_name": "lemons", "sequence_order": 2},
        {"original_text": "3 cloves garlic", "quantity_amount": 3, "quantity_unit": "cloves",
         "ingredient_name": "garlic", "sequence_order": 3},
        {"original_text": "1 tsp salt", "quantity_amount": 1, "quantity_unit": "tsp",
         "ingredient_name": "salt", "sequence_order": 4},
    ],
    "instruction_sections": [
        {
            "section_title": "Make the pasta",
            "section_order": 1,
            "steps": [
                {"step_number": 1, "instruction": "Boil the pasta."},
                {"step_number": 2, "instruction": "Toss with lemon and garlic."},
            ],
        }
    ],
}


@pytest.fixture
def llm_payload():
    return copy.deepcopy(LEMON_PASTA)


@pytest.fixture
def extracted():
    return ExtractedRecipeData.model_validate(LEMON_PASTA)


@pytest.fixture
def make_backend():
    return FakeBackend

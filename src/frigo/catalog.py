from __future__ import annotations
import logging
import re
from typing import Iterable, Optional
from pydantic import ValidationError
from frigo.backend import SupabaseBackend
from frigo.errors import BackendError, MatchCatalogError, PersistenceError
from frigo.models import CatalogIngredient

logger = logging.getLogger(__name__)

CATALOG_COLUMNS = "id,name,plural_name,family,base_ingredient_id"


def _key(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().lower())


class IngredientCatalog:
    """In-memory view of the canonical ingredient table, loaded once per match run."""

    def __init__(self, ingredients: Iterable[CatalogIngredient]):
        self._by_id: dict[str, CatalogIngredient] = {}
        self._by_name: dict[str, list[CatalogIngredient]] = {}
        for ingredient in ingredients:
            self._add(ingredient)

    @classmethod
    def load(cls, backend: SupabaseBackend) -> "IngredientCatalog":
        try:
            rows = backend.select("ingredients", columns=CATALOG_COLUMNS)
            catalog = cls(CatalogIngredient.model_validate(row) for row in rows)
        except BackendError as e:
            raise MatchCatalogError(f"Could not load the ingredient catalog: {e}") from e
        except ValidationError as e:
            raise MatchCatalogError(f"Ingredient catalog returned malformed rows: {e}") from e
        logger.info("Loaded %d catalog ingredients", len(catalog))
        return catalog

    def _add(self, ingredient: CatalogIngredient) -> None:
        self._by_id[ingredient.id] = ingredient
        for name in {_key(ingredient.name), _key(ingredient.plural_name)}:
            if name:
                self._by_name.setdefault(name, []).append(ingredient)

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self):
        return iter(self._by_id.values())

    def get(self, ingredient_id: str) -> Optional[CatalogIngredient]:
        return self._by_id.get(ingredient_id)

    def find_exact(self, term: str) -> list[CatalogIngredient]:
        return list(self._by_name.get(_key(term), []))

    def variants_of(self, base_id: str) -> list[CatalogIngredient]:
        return [i for i in self._by_id.values() if i.base_ingredient_id == base_id]

    def create(
        self,
        backend: SupabaseBackend,
        name: str,
        family: Optional[str] = None,
        plural_name: Optional[str] = None,
        base_ingredient_id: Optional[str] = None,
    ) -> CatalogIngredient:
        name = name.strip()
        if not name:
            raise ValueError("Ingredient name is required")
        existing = self.find_exact(name)
        if existing:
            return existing[0]
        try:
            rows = backend.insert("ingredients", {
                "name": name,
                "plural_name": plural_name,
                "family": family,
                "base_ingredient_id": base_ingredient_id,
            })
        except BackendError as e:
            raise PersistenceError(f"Could not add '{name}' to the ingredient catalog: {e}") from e
        ingredient = CatalogIngredient.model_validate(rows[0])
        self._add(ingredient)
        logger.info("Added catalog ingredient '%s' (%s)", ingredient.name, ingredient.id)
        return ingredient

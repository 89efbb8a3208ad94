from __future__ import annotations
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from frigo.models import Draft, ProcessedRecipe

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _make_id(title: str | None) -> str:
    stamp = _now().strftime("%Y-%m-%d-%H%M%S")
    suffix = re.sub(r"[^\w-]", "", title.replace(" ", "-")).lower() if title else ""
    return f"{stamp}-{suffix[:40]}" if suffix else f"{stamp}-recipe"


class DraftManager:
    """Reviewed recipes kept on disk until they are saved to the backend."""

    def __init__(self, base_dir: Path | None = None):
        self.base_dir = base_dir or (Path.home() / ".frigo" / "drafts")
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _draft_path(self, draft_id: str) -> Path:
        return self.base_dir / f"{draft_id}.json"

    def new(self, recipe: ProcessedRecipe, user_id: str, source: str) -> Draft:
        now = _now()
        draft = Draft(
            id=_make_id(recipe.recipe.title),
            user_id=user_id,
            source=source,
            created_at=now,
            updated_at=now,
            recipe=recipe,
        )
        self.save(draft)
        return draft

    def save(self, draft: Draft) -> None:
        draft.updated_at = _now()
        self._draft_path(draft.id).write_text(draft.model_dump_json(indent=2))

    def load(self, draft_id: str) -> Draft:
        path = self._draft_path(draft_id)
        if not path.exists():
            raise FileNotFoundError(f"Draft '{draft_id}' not found.")
        return Draft.model_validate_json(path.read_text())

    def update_recipe(self, draft: Draft, recipe: ProcessedRecipe) -> Draft:
        draft.recipe = recipe
        self.save(draft)
        return draft

    def mark_saved(self, draft: Draft, recipe_id: str) -> None:
        draft.saved_recipe_id = recipe_id
        self.save(draft)

    def delete(self, draft_id: str) -> None:
        self._draft_path(draft_id).unlink(missing_ok=True)

    def list_drafts(self, include_saved: bool = False) -> list[Draft]:
        drafts = []
        for path in sorted(self.base_dir.glob("*.json")):
            try:
                draft = Draft.model_validate_json(path.read_text())
            except Exception:
                logger.warning("Could not read draft file %s", path.name)
                continue
            if include_saved or draft.saved_recipe_id is None:
                drafts.append(draft)
        return drafts

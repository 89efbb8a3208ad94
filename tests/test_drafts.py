import logging
import pytest
from frigo.drafts import DraftManager
from frigo.matcher import match_recipe
from frigo import review


@pytest.fixture
def manager(tmp_path):
    return DraftManager(base_dir=tmp_path)


@pytest.fixture
def recipe(extracted, catalog):
    return match_recipe(extracted, catalog)


def test_new_draft_creates_file(manager, tmp_path, recipe):
    draft = manager.new(recipe, "user-1", "https://www.example.com/recipes/lemon-pasta")
    assert draft.id.endswith("lemon-pasta")
    assert (tmp_path / f"{draft.id}.json").exists()


def test_load_returns_saved_draft(manager, recipe):
    created = manager.new(recipe, "user-1", "photo.jpg")
    loaded = manager.load(created.id)
    assert loaded.user_id == "user-1"
    assert loaded.recipe == created.recipe


def test_load_missing_draft_raises(manager):
    with pytest.raises(FileNotFoundError, match="not found"):
        manager.load("nope")


def test_update_recipe_persists_edits(manager, recipe):
    draft = manager.new(recipe, "user-1", "photo.jpg")
    manager.update_recipe(draft, review.rename(recipe, "Zesty Pasta"))
    assert manager.load(draft.id).recipe.recipe.title == "Zesty Pasta"


def test_mark_saved_hides_draft_from_default_listing(manager, recipe):
    draft = manager.new(recipe, "user-1", "photo.jpg")
    manager.mark_saved(draft, "recipe-1")
    assert manager.list_drafts() == []
    assert [d.saved_recipe_id for d in manager.list_drafts(include_saved=True)] == ["recipe-1"]


def test_delete_removes_file(manager, tmp_path, recipe):
    draft = manager.new(recipe, "user-1", "photo.jpg")
    manager.delete(draft.id)
    assert list(tmp_path.glob("*.json")) == []


def test_list_drafts_skips_corrupt_file_with_warning(manager, tmp_path, recipe, caplog):
    manager.new(recipe, "user-1", "photo.jpg")
    (tmp_path / "corrupt.json").write_text("not valid json {{{")

    with caplog.at_level(logging.WARNING, logger="frigo.drafts"):
        drafts = manager.list_drafts()

    assert len(drafts) == 1
    assert any("corrupt.json" in r.message for r in caplog.records)

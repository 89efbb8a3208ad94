import pytest
from frigo.errors import PersistenceError, UnresolvedIngredientsError
from frigo.matcher import match_recipe
from frigo.models import BookMetadata, CrossReference, ExtractedRecipeData
from frigo.writer import load_recipe, save_recipe


@pytest.fixture
def processed(catalog, extracted):
    return match_recipe(extracted, catalog)


def test_save_then_load_round_trip(backend, processed):
    recipe_id = save_recipe(backend, processed, "user-1")
    loaded = load_recipe(backend, recipe_id)

    assert loaded.id == recipe_id
    assert loaded.user_id == "user-1"
    assert loaded.title == "Lemon Pasta"
    assert [i.original_text for i in loaded.ingredients] == [
        "200 g spaghetti", "2 lemons", "3 cloves garlic", "1 tsp salt",
    ]
    assert [i.ingredient_id for i in loaded.ingredients] == ["spaghetti", "lemon", "garlic", "salt"]
    assert [s.section_title for s in loaded.instruction_sections] == ["Make the pasta"]
    assert [s.instruction for s in loaded.instruction_sections[0].steps] == [
        "Boil the pasta.", "Toss with lemon and garlic.",
    ]


def test_save_writes_recipe_row_fields(backend, processed):
    save_recipe(backend, processed, "user-1", title="Weeknight Lemon Pasta")
    row = backend.tables["recipes"][0]
    assert row["title"] == "Weeknight Lemon Pasta"
    assert row["servings"] == 2
    assert row["ai_difficulty_level"] == "easy"
    assert row["ai_difficulty_score"] == 20
    assert row["cuisine_types"] == ["Italian"]
    assert row["is_public"] is False


def test_save_blocks_unresolved_ingredients(backend, catalog, llm_payload):
    llm_payload["ingredients"].append({"original_text": "1 dragonfruit", "ingredient_name": "dragonfruit"})
    processed = match_recipe(ExtractedRecipeData.model_validate(llm_payload), catalog)
    with pytest.raises(UnresolvedIngredientsError):
        save_recipe(backend, processed, "user-1")
    assert "recipes" not in backend.tables


def test_save_links_chef_from_book_author(backend, processed):
    processed = processed.model_copy(update={
        "book_metadata": BookMetadata(book_title="Plenty", author="Yotam Ottolenghi", page_number=112),
    })
    save_recipe(backend, processed, "user-1", book_id="book-9")
    row = backend.tables["recipes"][0]
    assert row["book_id"] == "book-9"
    assert row["page_number"] == 112
    assert row["chef_id"] == backend.tables["chefs"][0]["id"]


def test_save_reuses_existing_chef(backend, processed):
    backend.tables["chefs"] = [{"id": "chef-1", "name": "Yotam Ottolenghi"}]
    processed = processed.model_copy(update={"book_metadata": BookMetadata(author="yotam ottolenghi")})
    save_recipe(backend, processed, "user-1")
    assert backend.tables["recipes"][0]["chef_id"] == "chef-1"
    assert len(backend.tables["chefs"]) == 1


def test_recipe_insert_failure_raises_persistence_error(backend, processed):
    backend.fail_on.add("recipes")
    with pytest.raises(PersistenceError, match="Failed to save recipe"):
        save_recipe(backend, processed, "user-1")


def test_section_failure_still_returns_recipe_id(backend, processed, caplog):
    backend.fail_on.add("instruction_sections")
    recipe_id = save_recipe(backend, processed, "user-1")
    assert recipe_id == backend.tables["recipes"][0]["id"]
    assert len(backend.tables["recipe_ingredients"]) == 4
    assert "without instruction sections" in caplog.text


def test_load_missing_recipe_raises(backend):
    with pytest.raises(PersistenceError, match="not found"):
        load_recipe(backend, "missing")


def test_ingredient_failure_removes_recipe_row(backend, processed):
    backend.fail_on.add("recipe_ingredients")
    with pytest.raises(PersistenceError, match="ingredients"):
        save_recipe(backend, processed, "user-1")
    assert backend.tables["recipes"] == []
    assert ("delete", "recipes") in backend.calls

    backend.fail_on.clear()
    recipe_id = save_recipe(backend, processed, "user-1")
    assert [r["id"] for r in backend.tables["recipes"]] == [recipe_id]


def test_ingredient_failure_still_raises_when_cleanup_fails(backend, processed, caplog):
    backend.fail_on.update({"recipe_ingredients", "delete:recipes"})
    with pytest.raises(PersistenceError):
        save_recipe(backend, processed, "user-1")
    assert "Could not remove partially saved recipe" in caplog.text


def test_save_writes_alternatives_and_references(backend, catalog, llm_payload):
    llm_payload["ingredients"][0]["alternatives"] = [
        {"ingredient_name": "linguine", "is_equivalent": True},
        {"ingredient_name": "Garlic", "is_equivalent": False, "notes": "odd but fine"},
    ]
    llm_payload["cross_references"] = [
        {"reference_text": "see page 212 for pesto", "page_number": "212", "recipe_name": "Pesto",
         "reference_type": "ingredient"},
    ]
    llm_payload["media_references"] = [
        {"type": "qr_code", "location": "bottom right", "visible_url": "https://example.com/v", "description": None},
    ]
    processed = match_recipe(ExtractedRecipeData.model_validate(llm_payload), catalog)

    recipe_id = save_recipe(backend, processed, "user-1")

    first_line = backend.tables["recipe_ingredients"][0]["id"]
    alternatives = backend.tables["recipe_ingredient_alternatives"]
    assert [(a["recipe_ingredient_id"], a["alternative_name"], a["preference_order"]) for a in alternatives] == [
        (first_line, "linguine", 1), (first_line, "Garlic", 2),
    ]
    assert [a["alternative_ingredient_id"] for a in alternatives] == [None, "garlic"]
    reference = backend.tables["recipe_references"][0]
    assert reference["source_recipe_id"] == recipe_id
    assert reference["referenced_page_number"] == 212
    assert reference["is_fulfilled"] is False
    media = backend.tables["recipe_media"][0]
    assert (media["media_type"], media["location_on_page"]) == ("qr_code", "bottom right")


def test_reference_failure_is_logged_not_raised(backend, processed, caplog):
    processed = processed.model_copy(update={
        "cross_references": [CrossReference(reference_text="see page 9")],
    })
    backend.fail_on.add("recipe_references")
    recipe_id = save_recipe(backend, processed, "user-1")
    assert recipe_id == backend.tables["recipes"][0]["id"]
    assert "without cross references" in caplog.text

import json
import pytest
from unittest.mock import MagicMock, patch
import anthropic
import httpx
from frigo.errors import ParseError
from frigo.llm import load_json_object, strip_code_fences
from frigo.models import ExtractedRecipeData, MediaReference
from frigo.structurer import PROMPT_VERSION, build_user_prompt, structure


def _client(text: str) -> MagicMock:
    mock_client = MagicMock()
    mock_client.messages.create.return_value.content = [MagicMock(text=text)]
    return mock_client


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_load_json_object_ignores_surrounding_prose():
    assert load_json_object('Here you go:\n{"a": 1}\nEnjoy!') == {"a": 1}


def test_load_json_object_rejects_arrays():
    with pytest.raises(ValueError):
        load_json_object("[1, 2]")


def test_structure_returns_extracted_recipe(config, standardized, llm_payload):
    mock_client = _client(json.dumps(llm_payload))
    with patch("frigo.structurer.anthropic.Anthropic", return_value=mock_client):
        result = structure(standardized, config)

    assert isinstance(result, ExtractedRecipeData)
    assert result.recipe.title == "Lemon Pasta"
    assert [i.ingredient_name for i in result.ingredients] == ["spaghetti", "lemons", "garlic", "salt"]
    assert result.ai_difficulty_assessment.difficulty_level == "easy"


def test_structure_accepts_fenced_json(config, standardized, llm_payload):
    mock_client = _client("```json\n" + json.dumps(llm_payload) + "\n```")
    with patch("frigo.structurer.anthropic.Anthropic", return_value=mock_client):
        result = structure(standardized, config)
    assert result.recipe.title == "Lemon Pasta"


def test_structure_keeps_source_author_over_model(config, standardized, llm_payload):
    mock_client = _client(json.dumps(llm_payload))
    with patch("frigo.structurer.anthropic.Anthropic", return_value=mock_client):
        result = structure(standardized, config)
    assert result.recipe.source_author == "Jamie Cook"
    assert result.recipe.image_url == "https://www.example.com/lemon-pasta.jpg"


def test_structure_fills_missing_title_from_source(config, standardized, llm_payload):
    llm_payload["recipe"]["title"] = ""
    mock_client = _client(json.dumps(llm_payload))
    with patch("frigo.structurer.anthropic.Anthropic", return_value=mock_client):
        result = structure(standardized, config)
    assert result.recipe.title == "Lemon Pasta"


def test_structure_records_raw_extraction_data(config, standardized, llm_payload):
    mock_client = _client(json.dumps(llm_payload))
    with patch("frigo.structurer.anthropic.Anthropic", return_value=mock_client):
        result = structure(standardized, config)

    raw = result.raw_extraction_data
    assert raw.prompt_version == PROMPT_VERSION
    assert raw.model == config.anthropic_model
    assert raw.source_url == "https://www.example.com/recipes/lemon-pasta"
    assert raw.parsed_data["ingredients_count"] == 4


@pytest.mark.parametrize("key", ["recipe", "ingredients", "instruction_sections"])
def test_structure_missing_required_key_raises(config, standardized, llm_payload, key):
    del llm_payload[key]
    mock_client = _client(json.dumps(llm_payload))
    with patch("frigo.structurer.anthropic.Anthropic", return_value=mock_client):
        with pytest.raises(ParseError, match=key):
            structure(standardized, config)


def test_structure_invalid_json_raises(config, standardized):
    mock_client = _client("not json at all")
    with patch("frigo.structurer.anthropic.Anthropic", return_value=mock_client):
        with pytest.raises(ParseError, match="parse"):
            structure(standardized, config)


def test_structure_rate_limit_raises_parse_error(config, standardized):
    mock_client = MagicMock()
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    mock_client.messages.create.side_effect = anthropic.RateLimitError(
        "rate limited", response=httpx.Response(429, request=request), body=None
    )
    with patch("frigo.structurer.anthropic.Anthropic", return_value=mock_client):
        with pytest.raises(ParseError, match="busy"):
            structure(standardized, config)


def test_structure_sends_recipe_text_in_prompt(config, standardized, llm_payload):
    mock_client = _client(json.dumps(llm_payload))
    with patch("frigo.structurer.anthropic.Anthropic", return_value=mock_client):
        structure(standardized, config)

    call_kwargs = mock_client.messages.create.call_args
    user_content = call_kwargs[1]["messages"][0]["content"]
    assert "3 cloves garlic" in user_content
    assert call_kwargs[1]["model"] == config.anthropic_model


def test_user_prompt_lists_conversion_examples(standardized):
    prompt = build_user_prompt(standardized)
    assert '"PT1H30M" → 90' in prompt
    assert '"Serves 4-6" → 5' in prompt
    assert "31-70: medium" in prompt


@pytest.mark.parametrize("title,expected", [(None, "Lemon Pasta"), (["Pasta"], "Lemon Pasta"), (1905, "1905")])
def test_structure_tolerates_odd_titles(config, standardized, llm_payload, title, expected):
    llm_payload["recipe"]["title"] = title
    with patch("frigo.structurer.anthropic.Anthropic", return_value=_client(json.dumps(llm_payload))):
        result = structure(standardized, config)
    assert result.recipe.title == expected


def test_structure_keeps_recipe_without_difficulty_score(config, standardized, llm_payload):
    llm_payload["ai_difficulty_assessment"] = {"difficulty_level": "easy", "reasoning": "simple"}
    with patch("frigo.structurer.anthropic.Anthropic", return_value=_client(json.dumps(llm_payload))):
        result = structure(standardized, config)
    assert result.ai_difficulty_assessment is None
    assert len(result.ingredients) == 4


def test_structure_reads_alternatives_and_cross_references(config, standardized, llm_payload):
    llm_payload["ingredients"][1]["alternatives"] = [{"ingredient_name": "limes", "is_equivalent": True}]
    llm_payload["cross_references"] = [{"reference_text": "Serve with the salad on page 40", "page_number": 40}]
    with patch("frigo.structurer.anthropic.Anthropic", return_value=_client(json.dumps(llm_payload))):
        result = structure(standardized, config)
    assert result.ingredients[1].alternatives[0].ingredient_name == "limes"
    assert result.cross_references[0].page_number == 40
    assert result.cross_references[0].reference_type == "note"


def test_structure_prefers_transcribed_media_references(config, standardized, llm_payload):
    raw_text = standardized.raw_text.model_copy(update={
        "media_references": [MediaReference(type="qr_code", location="footer")],
    })
    photo = standardized.model_copy(update={"raw_text": raw_text})
    llm_payload["media_references"] = [{"type": "url", "visible_url": "https://made.up"}]
    with patch("frigo.structurer.anthropic.Anthropic", return_value=_client(json.dumps(llm_payload))):
        result = structure(photo, config)
    assert [(m.type, m.location) for m in result.media_references] == [("qr_code", "footer")]


def test_prompt_asks_for_alternatives_and_references(standardized):
    prompt = build_user_prompt(standardized)
    assert '"alternatives": [' in prompt
    assert '"cross_references": [' in prompt

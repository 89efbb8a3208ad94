import pytest
from frigo.config import Config


def test_config_reads_api_key_from_env(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key-123")
    config = Config()
    assert config.anthropic_api_key == "test-key-123"


def test_config_missing_api_key_raises(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
        Config()


def test_config_defaults(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "key")
    config = Config()
    assert config.review_threshold == 0.6
    assert config.fetch_timeout == 15.0
    assert config.drafts_dir.name == "drafts"
    assert "youtube.com" in config.blocked_domains


def test_config_strips_trailing_slash_from_supabase_url(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "key")
    monkeypatch.setenv("SUPABASE_URL", "https://db.example.com/")
    assert Config().supabase_url == "https://db.example.com"


def test_config_reads_thresholds_from_env(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "key")
    monkeypatch.setenv("FUZZY_THRESHOLD", "0.9")
    assert Config().fuzzy_threshold == 0.9

"""
Tests for configuration loading.
"""

import pytest
import yaml
from pydantic import ValidationError

from book_lab.core.config import Settings, create_default_config, load_config


def test_defaults():
    settings = Settings()
    assert settings.llm.openai_model == "gpt-4"
    assert settings.llm.ollama_url == "http://localhost:11434"
    assert settings.pipeline.min_paragraph_length == 21
    assert settings.pipeline.chapter_temperature == 0.8
    assert settings.pipeline.chapter_max_tokens == 4000
    assert settings.autosave.delay_seconds == 2.0
    assert settings.db.url.startswith("sqlite:///")


def test_load_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"api": {"port": 9000}, "pipeline": {"topic_max_tokens": 50}}))

    settings = load_config(path)
    assert settings.api.port == 9000
    assert settings.pipeline.topic_max_tokens == 50
    assert settings.pipeline.outline_max_tokens == 1000


def test_empty_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(path).api.port == 8000


def test_env_nested_override(monkeypatch):
    monkeypatch.setenv("AUTOSAVE__DELAY_SECONDS", "5")
    monkeypatch.setenv("LLM__OLLAMA_MODEL", "qwen2")

    settings = Settings()
    assert settings.autosave.delay_seconds == 5.0
    assert settings.llm.ollama_model == "qwen2"


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        Settings(autosave={"delay_seconds": 0})
    with pytest.raises(ValidationError):
        Settings(api={"port": 70000})


def test_create_default_config(tmp_path):
    path = tmp_path / "nested" / "config.yaml"
    created = create_default_config(path)

    assert path.exists()
    assert load_config(path).model_dump() == created.model_dump()

"""
Tests for the models module configuration.

No test calls the model API: the llama_index model classes are patched.
"""

import pytest
from unittest.mock import patch

from notes_assistant import models
from notes_assistant.config import ConfigError


@pytest.fixture(autouse=True)
def reset_model_cache(monkeypatch):
    monkeypatch.setattr(models, '_CACHED_MODEL', None)
    monkeypatch.setattr(models, '_CACHED_MODEL_KWARGS', None)
    monkeypatch.setattr(models, '_CACHED_EMBEDDING_MODEL', None)


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv('OPENAI_API_KEY', raising=False)
    with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
        models.get_default_model()


def test_empty_api_key(monkeypatch):
    monkeypatch.setenv('OPENAI_API_KEY', '')
    with pytest.raises(ConfigError):
        models.get_embedding_model()


@patch('notes_assistant.models.OpenAI')
def test_llm_caching(mock_openai, monkeypatch):
    """The first model is cached; different kwargs get a fresh instance."""
    monkeypatch.setenv('OPENAI_API_KEY', 'sk-test')
    mock_openai.side_effect = lambda **kwargs: object()

    llm1 = models.get_default_model()
    llm2 = models.get_default_model()
    llm3 = models.get_default_model(temperature=0.5)

    assert llm1 is llm2
    assert llm1 is not llm3
    assert mock_openai.call_count == 2
    kwargs = mock_openai.call_args.kwargs
    assert kwargs['model'] == models.DEFAULT_MODEL
    assert kwargs['api_key'] == 'sk-test'
    assert kwargs['temperature'] == 0.5


@patch('notes_assistant.models.OpenAIEmbedding')
def test_embedding_model_cached(mock_embedding, monkeypatch):
    monkeypatch.setenv('OPENAI_API_KEY', 'sk-test')
    first = models.get_embedding_model()
    second = models.get_embedding_model()
    assert first is second
    mock_embedding.assert_called_once_with(model=models.DEFAULT_EMBEDDING_MODEL,
                                           api_base=models.MODEL_API_BASE, api_key='sk-test')

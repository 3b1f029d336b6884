"""
Maintain configuration for models.

Models are configured through environment variables and instantiated lazily,
so that importing the package does not require an API key.
"""
import os
from typing import Optional
from llama_index.llms.openai import OpenAI
from llama_index.core.llms import LLM
from llama_index.core.embeddings import BaseEmbedding
from llama_index.embeddings.openai import OpenAIEmbedding

from .config import ConfigError

DEFAULT_MODEL = os.environ.get('DEFAULT_MODEL', 'gpt-4o')
DEFAULT_EMBEDDING_MODEL = os.environ.get('DEFAULT_EMBEDDING_MODEL', 'text-embedding-ada-002')
MODEL_API_BASE = os.environ.get('MODEL_API_BASE', 'https://api.openai.com/v1')

_CACHED_MODEL:Optional[LLM] = None
_CACHED_MODEL_KWARGS = None

_CACHED_EMBEDDING_MODEL:Optional[BaseEmbedding] = None


def _get_api_key() -> str:
    api_key = os.environ.get('OPENAI_API_KEY')
    if api_key is None or api_key == "":
        raise ConfigError("Need to set environment variable OPENAI_API_KEY")
    return api_key


def get_default_model(**model_kwargs) -> LLM:
    """Instantiate an instance of the default model. Will cache the first model
    requested. If you call again with the same keyword args, you will get the same model.
    Otherwise, it will instantiate a model specific to your request.
    """
    global _CACHED_MODEL
    global _CACHED_MODEL_KWARGS
    if _CACHED_MODEL is None:
        _CACHED_MODEL = OpenAI(model=DEFAULT_MODEL, api_base=MODEL_API_BASE,
                               api_key=_get_api_key(), **model_kwargs)
        _CACHED_MODEL_KWARGS = model_kwargs
        return _CACHED_MODEL
    elif model_kwargs==_CACHED_MODEL_KWARGS:
        return _CACHED_MODEL
    else:
        return OpenAI(model=DEFAULT_MODEL, api_base=MODEL_API_BASE,
                      api_key=_get_api_key(), **model_kwargs)


def get_embedding_model() -> BaseEmbedding:
    """The embedding model used to embed query notes. Cached after the first call."""
    global _CACHED_EMBEDDING_MODEL
    if _CACHED_EMBEDDING_MODEL is None:
        _CACHED_EMBEDDING_MODEL = OpenAIEmbedding(
            model=DEFAULT_EMBEDDING_MODEL,
            api_base=MODEL_API_BASE,
            api_key=_get_api_key()
        )
    return _CACHED_EMBEDDING_MODEL

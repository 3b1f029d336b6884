"""User-level settings for the note chat and the literature pipeline.

The host application owns persistence of these settings; here we only
describe them and build them from environment variables.
"""

import os
import math
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from . import constants
from .project_types import AttachmentCounts, RankingConfig


class ConfigError(Exception):
    pass


class AssistantConfig(BaseModel):
    scopus_api_key: str = Field(default="", description="Elsevier API key for Scopus and ScienceDirect")
    max_tokens: int = Field(default=constants.MAX_TOKENS, gt=0,
                            description="Context length of the generation model")
    memory_tokens: int = Field(default=constants.MEMORY_TOKENS, gt=0,
                               description="Tokens of transcript and note context per request")
    user_prefix: str = Field(default=constants.DEFAULT_USER_PREFIX, description="Marker opening a user turn")
    assistant_prefix: str = Field(default=constants.DEFAULT_ASSISTANT_PREFIX,
                                  description="Marker opening an assistant turn")
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    attach: AttachmentCounts = Field(default_factory=AttachmentCounts)
    include_paper_summary: bool = Field(default=False,
                                        description="Stream each paper's summary below its citation")

    def effective_memory_tokens(self) -> int:
        """Memory tokens, capped to a share of max tokens so that a reply still fits."""
        return min(self.memory_tokens, math.floor(constants.MAX_MEMORY_SHARE * self.max_tokens))

    @staticmethod
    def from_env(environ: Optional[dict] = None) -> 'AssistantConfig':
        """Build the settings from environment variables. Unset variables take
        their defaults from constants.py. Raises ConfigError on malformed values."""
        env = os.environ if environ is None else environ

        def get_int(name: str, default: int) -> int:
            value = env.get(name)
            if value is None or value == '':
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigError(f"Environment variable {name} must be an integer, got '{value}'") from e

        def get_float(name: str, default: float) -> float:
            value = env.get(name)
            if value is None or value == '':
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigError(f"Environment variable {name} must be a number, got '{value}'") from e

        exclude = env.get('NOTES_EXCLUDE_FOLDERS', '')
        try:
            return AssistantConfig(
                scopus_api_key=env.get('SCOPUS_API_KEY', ''),
                max_tokens=get_int('NOTES_MAX_TOKENS', constants.MAX_TOKENS),
                memory_tokens=get_int('NOTES_MEMORY_TOKENS', constants.MEMORY_TOKENS),
                user_prefix=env.get('CHAT_USER_PREFIX', constants.DEFAULT_USER_PREFIX),
                assistant_prefix=env.get('CHAT_ASSISTANT_PREFIX', constants.DEFAULT_ASSISTANT_PREFIX),
                ranking=RankingConfig(
                    min_similarity=get_float('NOTES_MIN_SIMILARITY', constants.NOTES_MIN_SIMILARITY),
                    min_length=get_int('NOTES_MIN_LENGTH', constants.NOTES_MIN_LENGTH),
                    agg_method=env.get('NOTES_AGG_METHOD', constants.NOTES_AGG_METHOD),
                    exclude_folders=frozenset(f.strip() for f in exclude.split(',') if f.strip()),
                    max_hits=get_int('NOTES_MAX_HITS', constants.NOTES_MAX_HITS),
                ),
                attach=AttachmentCounts(
                    prev=get_int('NOTES_ATTACH_PREV', constants.NOTES_ATTACH_PREV),
                    next=get_int('NOTES_ATTACH_NEXT', constants.NOTES_ATTACH_NEXT),
                    nearest=get_int('NOTES_ATTACH_NEAREST', constants.NOTES_ATTACH_NEAREST),
                ),
                include_paper_summary=env.get('INCLUDE_PAPER_SUMMARY', '').lower() in ('1', 'true', 'yes'),
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid assistant settings: {e}") from e

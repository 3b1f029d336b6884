"""Calls into the length-limited text-generation provider.

Every chat, completion and embedding request goes through the same retry
protocol:

1. On a provider error, the user is asked to confirm or cancel. Cancelling
   returns an empty result.
2. If the error reports that the request is too long (the message contains a
   "reduce" hint and at least two integers, the limit followed by the
   requested size), the request is shrunk to ``0.8 * limit / requested`` of
   its length, leaving room for the reply.
3. The (possibly shrunk) request is retried after a short backoff.

Other errors retry the same request unchanged. A call gives up after
``max_attempts`` attempts, returning an empty result.
"""

import asyncio
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

import numpy as np
import openai
from llama_index.core.embeddings import BaseEmbedding
from llama_index.core.llms import LLM, ChatMessage, MessageRole

from . import constants
from .interface_adapter import InterfaceAdapter

logger = logging.getLogger(__name__)

INTEGER_RE = re.compile(r'[0-9]+')


class ProviderError(Exception):
    """An error response from the text-generation provider."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def overflow_ratio(self) -> Optional[float]:
        return overflow_ratio(self.message)


def overflow_ratio(message: str) -> Optional[float]:
    """Share of the request to keep after a length-exceeded error, or None if
    the message does not describe one."""
    numbers = [int(n) for n in INTEGER_RE.findall(message)]
    if 'reduce' not in message.lower() or len(numbers) < 2 or numbers[1] == 0:
        return None
    limit, requested = numbers[0], numbers[1]
    return constants.OVERFLOW_HEADROOM * limit / requested


def provider_error_message(error: openai.APIError) -> str:
    """The human-readable message of an OpenAI error. Status errors carry the
    provider's error object in ``body``; its ``message`` is what we parse."""
    body = getattr(error, 'body', None)
    if isinstance(body, dict) and body.get('message'):
        return str(body['message'])
    return getattr(error, 'message', None) or str(error)


def select_messages(messages: Sequence[ChatMessage], fraction: float) -> list[ChatMessage]:
    """Keep the system message (always first) and the longest suffix of the
    remaining turns whose total length is within ``fraction`` of the total
    length of all messages. If no turn fits, keep the last one."""
    if not messages:
        return []
    total_length = sum(len(m.content or '') for m in messages)
    budget = fraction * total_length
    kept: list[ChatMessage] = []
    partial_length = 0
    for message in reversed(messages[1:]):
        length = len(message.content or '')
        if partial_length + length > budget:
            break
        kept.insert(0, message)
        partial_length += length
    if not kept and len(messages) > 1:
        kept = [messages[-1]]
    return [messages[0]] + kept


def truncate_prompt(prompt: str, ratio: float, keep_tail: bool) -> str:
    """Shorten a prompt to ``ratio`` of its characters. Chat models keep the end
    (recent context matters most), completion models keep the beginning
    (instructions come first)."""
    new_length = max(0, min(len(prompt), math.floor(ratio * len(prompt))))
    if keep_tail:
        return prompt[len(prompt) - new_length:]
    return prompt[:new_length]


@dataclass
class RetryState:
    """State of one provider call, discarded when the call returns."""
    request: Any
    attempt: int = 0
    last_ratio: Optional[float] = None


class TextGenerationProvider:
    """Chat, completion and embedding calls with confirm-and-retry on errors."""

    def __init__(self, llm: LLM, interface: InterfaceAdapter,
                 embed_model: Optional[BaseEmbedding] = None,
                 max_attempts: int = constants.MAX_PROVIDER_ATTEMPTS,
                 backoff_seconds: float = constants.RETRY_BACKOFF_SECONDS,
                 max_backoff_seconds: float = constants.RETRY_BACKOFF_MAX_SECONDS,
                 system_prompt: str = constants.DEFAULT_SYSTEM_PROMPT):
        self.llm = llm
        self.interface = interface
        self.embed_model = embed_model
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.system_prompt = system_prompt

    @property
    def is_chat_model(self) -> bool:
        return bool(self.llm.metadata.is_chat_model)

    def _backoff(self, attempt: int) -> float:
        return min(self.max_backoff_seconds, self.backoff_seconds * 2 ** (attempt - 1))

    async def _call_with_retries(self, request: Any, send: Callable[[Any], Awaitable[Any]],
                                 shrink: Callable[[Any, float], Any], empty: Any, what: str) -> Any:
        state = RetryState(request=request)
        while True:
            state.attempt += 1
            try:
                return await send(state.request)
            except ProviderError as e:
                logger.warning(f"{what} request failed (attempt {state.attempt}): {e.message}")
                if state.attempt >= self.max_attempts:
                    logger.error(f"Giving up on {what} request after {state.attempt} attempts")
                    self.interface.show_error(f"The provider kept failing, giving up: {e.message}")
                    return empty
                if not await self.interface.confirm(e.message):
                    logger.info(f"{what} request cancelled by the user")
                    return empty
                ratio = e.overflow_ratio()
                if ratio is not None:
                    state.last_ratio = ratio
                    state.request = shrink(state.request, ratio)
                    logger.info(f"Request too long, shrinking it to {ratio:.2f} of its length")
                await asyncio.sleep(self._backoff(state.attempt))

    async def _send_chat(self, messages: list[ChatMessage]) -> str:
        try:
            response = await self.llm.achat(messages)
        except openai.APIError as e:
            raise ProviderError(provider_error_message(e)) from e
        return response.message.content or ''

    async def _send_completion(self, prompt: str) -> str:
        try:
            if self.is_chat_model:
                response = await self.llm.achat([
                    ChatMessage(role=MessageRole.SYSTEM, content=self.system_prompt),
                    ChatMessage(role=MessageRole.USER, content=prompt),
                ])
                return response.message.content or ''
            response = await self.llm.acomplete(prompt)
        except openai.APIError as e:
            raise ProviderError(provider_error_message(e)) from e
        return response.text

    async def _send_embedding(self, text: str) -> np.ndarray:
        if self.embed_model is None:
            raise ValueError("No embedding model configured")
        try:
            vector = await self.embed_model.aget_text_embedding(text)
        except openai.APIError as e:
            raise ProviderError(provider_error_message(e)) from e
        vector = np.asarray(vector, dtype=np.float32)
        return vector / (np.linalg.norm(vector) + 1e-12)

    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        """Next reply to a chat. Returns '' if cancelled or out of attempts."""
        return await self._call_with_retries(list(messages), self._send_chat, select_messages, '', 'chat')

    async def complete(self, prompt: str) -> str:
        """Completion of a single-shot prompt. Returns '' if cancelled or out of attempts."""
        return await self._call_with_retries(
            prompt, self._send_completion,
            lambda p, ratio: truncate_prompt(p, ratio, keep_tail=self.is_chat_model),
            '', 'completion')

    async def embed(self, text: str) -> np.ndarray:
        """Unit-length embedding of the text. Returns an empty vector if cancelled
        or out of attempts."""
        return await self._call_with_retries(
            text, self._send_embedding,
            lambda t, ratio: truncate_prompt(t, ratio, keep_tail=False),
            np.array([], dtype=np.float32), 'embedding')

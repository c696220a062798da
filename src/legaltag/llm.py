"""LLM collaborator interface and retry policy.

Design:
- ``ChunkProcessor`` is the abstract ``process(chunk, instructions) -> str``
  seam. The pipeline only ever talks to this interface.
- ``AnthropicChunkProcessor`` calls the Anthropic Messages API; transport
  failures worth retrying surface as ``TransientLLMError``.
- ``ScriptedChunkProcessor`` replays queued responses (or applies a callable)
  for offline runs and tests.
- ``RetryPolicy`` + ``process_chunk_with_retry`` own backoff. A validator
  failure (``ContentIntegrityError``) counts as retryable, so a model that
  rewrote text gets another attempt with the same input.
"""
from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TypeAlias

import anthropic

from legaltag.config import PipelineConfig
from legaltag.errors import ChunkProcessingError, ContentIntegrityError, TransientLLMError
from legaltag.instructions import build_chunk_prompt

log = logging.getLogger(__name__)

ChunkValidator: TypeAlias = Callable[[str, str], None]


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


class ChunkProcessor(ABC):
    """Abstract LLM pass over one chunk of text."""

    @abstractmethod
    def process(self, chunk_text: str, instructions: str) -> str:
        """Return the model output for *chunk_text* under *instructions*."""

    @abstractmethod
    def model_version(self) -> str:
        """Identifier recorded in run manifests."""


class AnthropicChunkProcessor(ChunkProcessor):
    """Chunk processor backed by the Anthropic Messages API.

    Parameters
    ----------
    model:
        Model identifier.
    language:
        Document language, repeated in every prompt.
    max_tokens:
        Output token cap per call.
    timeout_sec:
        Per-request timeout handed to the SDK client.
    client:
        Pre-built ``anthropic.Anthropic`` client; built from
        ``ANTHROPIC_API_KEY`` when omitted.
    """

    def __init__(
        self,
        *,
        model: str,
        language: str = "English",
        max_tokens: int = 8192,
        temperature: float = 0.0,
        timeout_sec: float = 90.0,
        client: anthropic.Anthropic | None = None,
    ) -> None:
        self._model = model
        self._language = language
        self._max_tokens = max_tokens
        self._temperature = temperature
        # Retries are owned by RetryPolicy, not by the SDK.
        self._client = client or anthropic.Anthropic(timeout=timeout_sec, max_retries=0)

    def process(self, chunk_text: str, instructions: str) -> str:
        prompt = build_chunk_prompt(chunk_text, instructions, language=self._language)
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as exc:
            raise TransientLLMError(f"rate limited: {exc}", rate_limited=True) from exc
        except anthropic.APIConnectionError as exc:
            raise TransientLLMError(f"connection failed: {exc}") from exc
        except anthropic.APIStatusError as exc:
            if exc.status_code >= 500:
                raise TransientLLMError(f"server error {exc.status_code}: {exc}") from exc
            raise

        parts: list[str] = []
        for block in response.content:
            text = getattr(block, "text", None)
            if isinstance(text, str):
                parts.append(text)
        return "".join(parts)

    def model_version(self) -> str:
        return self._model


class ScriptedChunkProcessor(ChunkProcessor):
    """Replays queued responses, or applies *handler* to every call.

    A queued ``Exception`` instance is raised instead of returned.
    """

    def __init__(
        self,
        responses: Iterable[str | Exception] = (),
        *,
        handler: Callable[[str, str], str] | None = None,
        name: str = "scripted",
    ) -> None:
        self._queue: deque[str | Exception] = deque(responses)
        self._handler = handler
        self._name = name
        self.calls: list[tuple[str, str]] = []

    def process(self, chunk_text: str, instructions: str) -> str:
        self.calls.append((chunk_text, instructions))
        if self._queue:
            item = self._queue.popleft()
            if isinstance(item, Exception):
                raise item
            return item
        if self._handler is not None:
            return self._handler(chunk_text, instructions)
        raise RuntimeError("ScriptedChunkProcessor has no response left")

    def model_version(self) -> str:
        return self._name


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------


def is_retryable_error(exc: BaseException) -> bool:
    """Transport hiccups and validator rejections are worth another attempt."""
    return isinstance(exc, (TransientLLMError, ContentIntegrityError))


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff with jitter."""

    max_attempts: int = 5
    base_delay_sec: float = 2.0
    rate_limit_delay_sec: float = 5.0
    jitter_sec: float = 0.5
    is_retryable: Callable[[BaseException], bool] = is_retryable_error

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def from_config(cls, config: PipelineConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            base_delay_sec=config.base_delay_sec,
            rate_limit_delay_sec=config.rate_limit_delay_sec,
            jitter_sec=config.jitter_sec,
        )

    def delay_for(
        self,
        attempt: int,
        exc: BaseException,
        *,
        rng: Callable[[], float] = random.random,
    ) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        rate_limited = isinstance(exc, TransientLLMError) and exc.rate_limited
        base = self.rate_limit_delay_sec if rate_limited else self.base_delay_sec
        return base * (2 ** (attempt - 1)) + rng() * self.jitter_sec


def process_chunk_with_retry(
    processor: ChunkProcessor,
    chunk_text: str,
    instructions: str,
    *,
    policy: RetryPolicy | None = None,
    validator: ChunkValidator | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Call *processor* until it succeeds and *validator* accepts the output.

    Raises:
        ChunkProcessingError: every attempt failed with a retryable error.
        Exception: any non-retryable error, unchanged, on first occurrence.
    """
    policy = policy or RetryPolicy()
    last_exc: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = processor.process(chunk_text, instructions)
            if validator is not None:
                validator(chunk_text, result)
            return result
        except Exception as exc:
            if not policy.is_retryable(exc):
                raise
            last_exc = exc
            if attempt == policy.max_attempts:
                break
            delay = policy.delay_for(attempt, exc)
            log.warning(
                "Attempt %d/%d failed (%s); retrying in %.1fs",
                attempt, policy.max_attempts, exc, delay,
            )
            sleep(delay)

    raise ChunkProcessingError(
        f"Failed after {policy.max_attempts} attempts: {last_exc}",
        attempts=policy.max_attempts,
    ) from last_exc

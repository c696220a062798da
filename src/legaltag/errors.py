"""Exception types raised by the legaltag pipeline.

The repair passes (normalizer, lead-in fixer, short-tag expander), the
conservative-edit guard and the diff engine never raise on malformed markup.
Everything below is raised by validation or by the orchestration layer.
"""
from __future__ import annotations


class LegalTagError(Exception):
    """Base class for all legaltag errors."""


class ContentIntegrityError(LegalTagError, ValueError):
    """A classification pass altered line content instead of adding prefixes."""

    def __init__(
        self,
        message: str,
        *,
        input_lines: int,
        output_lines: int,
        mismatches: int = 0,
    ) -> None:
        super().__init__(message)
        self.input_lines = input_lines
        self.output_lines = output_lines
        self.mismatches = mismatches


class TransientLLMError(LegalTagError):
    """Timeout, rate limit or server-side failure reported by the LLM backend."""

    def __init__(self, message: str, *, rate_limited: bool = False) -> None:
        super().__init__(message)
        self.rate_limited = rate_limited


class ChunkProcessingError(LegalTagError):
    """A chunk could not be processed within the retry budget."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class PipelineStopped(LegalTagError):
    """The caller's stop flag was raised between chunks."""


class UnsupportedDocumentError(LegalTagError, ValueError):
    """The input document type cannot be loaded as text."""

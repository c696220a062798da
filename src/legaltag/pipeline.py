"""Document tagging pipeline.

Stages, in order::

    headlines  LLM headline tagging             -> structural normalizer
    content    LLM short-tag classification     -> content-integrity guard
               -> short-tag expander            -> structural normalizer
    audit      LLM structural audit             -> conservative-edit guard

Each stage reads the current version from an immutable ``DocumentContext``
and returns a ``PendingChange`` (old text, new text, line diff, per-chunk
report). Nothing is committed until the review callback approves the change.
A failed chunk keeps its input text, so a stage never loses content.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Literal, TypeAlias

from legaltag.chunking import MAX_OUTPUT_CHARS_STRICT, chunks_for_audit, create_chunks_by_count
from legaltag.config import STAGE_NAMES, PipelineConfig
from legaltag.errors import ChunkProcessingError, PipelineStopped
from legaltag.guards import guard_conservative_edit, guard_content_integrity
from legaltag.instructions import (
    audit_instructions,
    content_instructions,
    headline_instructions,
)
from legaltag.line_diff import generate_diff, has_changes
from legaltag.llm import ChunkProcessor, RetryPolicy, process_chunk_with_retry
from legaltag.normalizer import validate_structural_integrity
from legaltag.short_tags import convert_short_tags_to_full_structure
from legaltag.tag_types import DiffLine

log = logging.getLogger(__name__)

ChunkStatus: TypeAlias = Literal["ok", "guard_rejected", "failed"]
ReviewCallback: TypeAlias = Callable[["PendingChange"], bool]
StopFlag: TypeAlias = Callable[[], bool]

CHUNK_JOINER = "\n\n"


# ---------------------------------------------------------------------------
# Context and change records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DocumentVersion:
    """One superseded-or-current version of the document buffer."""

    stage: str
    text: str


@dataclass(frozen=True, slots=True)
class DocumentContext:
    """Version history of one document; the last version is current."""

    versions: tuple[DocumentVersion, ...]
    source_name: str = ""

    def __post_init__(self) -> None:
        if not self.versions:
            raise ValueError("DocumentContext needs at least one version")

    @classmethod
    def load(cls, text: str, *, source_name: str = "") -> DocumentContext:
        return cls(versions=(DocumentVersion("initial", text),), source_name=source_name)

    @property
    def current(self) -> str:
        return self.versions[-1].text

    @property
    def stage(self) -> str:
        return self.versions[-1].stage

    def with_version(self, stage: str, text: str) -> DocumentContext:
        return replace(self, versions=self.versions + (DocumentVersion(stage, text),))

    def version_for(self, stage: str) -> str | None:
        """Latest text produced by *stage*, if it ever ran."""
        for version in reversed(self.versions):
            if version.stage == stage:
                return version.text
        return None


@dataclass(frozen=True, slots=True)
class ChunkReport:
    """What happened to one chunk inside a stage."""

    index: int
    status: ChunkStatus
    issues: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PendingChange:
    """A stage result waiting for review."""

    stage: str
    old_text: str
    new_text: str
    diff: tuple[DiffLine, ...]
    chunk_reports: tuple[ChunkReport, ...] = ()

    @property
    def has_changes(self) -> bool:
        return has_changes(list(self.diff))

    @property
    def failed_chunks(self) -> list[int]:
        return [r.index for r in self.chunk_reports if r.status != "ok"]


@dataclass(slots=True)
class PipelineResult:
    """Final context plus every change that was proposed."""

    context: DocumentContext
    changes: list[PendingChange] = field(default_factory=list)
    accepted: list[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.context.current


def auto_accept(change: PendingChange) -> bool:
    return True


def _never_stop() -> bool:
    return False


def _make_change(
    stage: str,
    old_text: str,
    new_text: str,
    reports: list[ChunkReport],
) -> PendingChange:
    return PendingChange(
        stage=stage,
        old_text=old_text,
        new_text=new_text,
        diff=tuple(generate_diff(old_text, new_text)),
        chunk_reports=tuple(reports),
    )


def _check_stop(should_stop: StopFlag, stage: str) -> None:
    if should_stop():
        raise PipelineStopped(f"Stopped during {stage} stage")


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def run_headline_stage(
    context: DocumentContext,
    processor: ChunkProcessor,
    config: PipelineConfig,
    *,
    policy: RetryPolicy | None = None,
    should_stop: StopFlag = _never_stop,
) -> PendingChange:
    """Tag structural headlines, then normalize the structure."""
    policy = policy or RetryPolicy.from_config(config)
    chunks = create_chunks_by_count(context.current, config.headline_chunk_count)
    instructions = headline_instructions(config.language)
    log.info("headlines: %d chunk(s)", len(chunks))

    outputs: list[str] = []
    reports: list[ChunkReport] = []
    for idx, chunk in enumerate(chunks):
        _check_stop(should_stop, "headlines")
        try:
            outputs.append(process_chunk_with_retry(processor, chunk, instructions, policy=policy))
            reports.append(ChunkReport(idx, "ok"))
        except ChunkProcessingError as exc:
            log.warning("headlines: chunk %d failed, keeping original text (%s)", idx + 1, exc)
            outputs.append(chunk)
            reports.append(ChunkReport(idx, "failed", (str(exc),)))

    new_text = validate_structural_integrity(CHUNK_JOINER.join(outputs).strip())
    return _make_change("headlines", context.current, new_text, reports)


def run_content_stage(
    context: DocumentContext,
    processor: ChunkProcessor,
    config: PipelineConfig,
    *,
    policy: RetryPolicy | None = None,
    should_stop: StopFlag = _never_stop,
) -> PendingChange:
    """Classify lines in short-tag form, expand, then normalize."""
    policy = policy or RetryPolicy.from_config(config)
    chunks = create_chunks_by_count(context.current, config.content_chunk_count)
    instructions = content_instructions(config.language)
    log.info("content: %d chunk(s)", len(chunks))

    outputs: list[str] = []
    reports: list[ChunkReport] = []
    for idx, chunk in enumerate(chunks):
        _check_stop(should_stop, "content")
        try:
            result = process_chunk_with_retry(
                processor,
                chunk,
                instructions,
                policy=policy,
                validator=guard_content_integrity,
            )
            outputs.append(convert_short_tags_to_full_structure(result))
            reports.append(ChunkReport(idx, "ok"))
        except ChunkProcessingError as exc:
            log.warning("content: chunk %d failed, keeping original text (%s)", idx + 1, exc)
            outputs.append(chunk)
            reports.append(ChunkReport(idx, "failed", (str(exc),)))

    new_text = validate_structural_integrity(CHUNK_JOINER.join(outputs).strip())
    return _make_change("content", context.current, new_text, reports)


def run_audit_stage(
    context: DocumentContext,
    processor: ChunkProcessor,
    config: PipelineConfig,
    *,
    policy: RetryPolicy | None = None,
    should_stop: StopFlag = _never_stop,
) -> PendingChange:
    """Let the model audit the structure; keep only guard-approved edits."""
    policy = policy or RetryPolicy.from_config(config)
    chunks = chunks_for_audit(context.current)
    instructions = audit_instructions(config.language)
    log.info("audit: %d chunk(s)", len(chunks))
    if len(chunks) > 1:
        log.warning(
            "audit: document exceeds %d chars and was split across content blocks; "
            "chunks holding an unbalanced block will be rejected by the guardrail",
            MAX_OUTPUT_CHARS_STRICT,
        )

    outputs: list[str] = []
    reports: list[ChunkReport] = []
    for idx, chunk in enumerate(chunks):
        _check_stop(should_stop, "audit")
        try:
            result = process_chunk_with_retry(processor, chunk, instructions, policy=policy)
        except ChunkProcessingError as exc:
            log.warning("audit: chunk %d failed, keeping original text (%s)", idx + 1, exc)
            outputs.append(chunk)
            reports.append(ChunkReport(idx, "failed", (str(exc),)))
            continue

        guard = guard_conservative_edit(
            chunk,
            result,
            allow_content_level_changes=config.allow_content_level_changes,
        )
        if not guard.accepted:
            log.warning(
                "audit: guardrail triggered in chunk %d: %s. Reverting to safe input.",
                idx + 1, "; ".join(guard.issues),
            )
            reports.append(ChunkReport(idx, "guard_rejected", guard.issues))
        else:
            reports.append(ChunkReport(idx, "ok"))
        outputs.append(guard.text)

    new_text = CHUNK_JOINER.join(outputs).strip()
    return _make_change("audit", context.current, new_text, reports)


_STAGE_RUNNERS: dict[str, Callable[..., PendingChange]] = {
    "headlines": run_headline_stage,
    "content": run_content_stage,
    "audit": run_audit_stage,
}


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def apply_change(
    context: DocumentContext,
    change: PendingChange,
    review: ReviewCallback = auto_accept,
) -> tuple[DocumentContext, bool]:
    """Commit *change* when *review* approves it.

    Returns the (possibly unchanged) context and whether it was accepted.
    """
    if change.old_text != context.current:
        raise ValueError(
            f"{change.stage} change was computed against a stale version",
        )
    if not review(change):
        log.info("%s: change rejected by reviewer", change.stage)
        return context, False
    return context.with_version(change.stage, change.new_text), True


def run_pipeline(
    text: str,
    processor: ChunkProcessor,
    config: PipelineConfig | None = None,
    *,
    stages: Sequence[str] = STAGE_NAMES,
    review: ReviewCallback = auto_accept,
    should_stop: StopFlag = _never_stop,
    policy: RetryPolicy | None = None,
    strict_processor: ChunkProcessor | None = None,
    source_name: str = "",
) -> PipelineResult:
    """Run the selected stages in pipeline order.

    *strict_processor* (when given) serves the audit stage; the other stages
    use *processor*.

    Raises:
        PipelineStopped: *should_stop* returned True between two chunks.
    """
    config = config or PipelineConfig()
    unknown = [stage for stage in stages if stage not in _STAGE_RUNNERS]
    if unknown:
        raise ValueError(f"Unknown stage(s): {', '.join(unknown)}")

    result = PipelineResult(context=DocumentContext.load(text, source_name=source_name))
    for stage in STAGE_NAMES:
        if stage not in stages:
            continue
        stage_processor = strict_processor if stage == "audit" and strict_processor else processor
        change = _STAGE_RUNNERS[stage](
            result.context,
            stage_processor,
            config,
            policy=policy,
            should_stop=should_stop,
        )
        result.changes.append(change)
        result.context, accepted = apply_change(result.context, change, review)
        if accepted:
            result.accepted.append(stage)
        log.info(
            "%s: %s, %d chunk(s) not applied",
            stage, "accepted" if accepted else "rejected", len(change.failed_chunks),
        )
    return result

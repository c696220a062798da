"""Tests for legaltag.pipeline — stages, review gate and stop flag."""
from __future__ import annotations

import logging

import pytest

from legaltag.config import PipelineConfig
from legaltag.errors import PipelineStopped, TransientLLMError
from legaltag.llm import RetryPolicy, ScriptedChunkProcessor
from legaltag.pipeline import (
    DocumentContext,
    PendingChange,
    apply_change,
    run_audit_stage,
    run_content_stage,
    run_headline_stage,
    run_pipeline,
)


def _join(*lines: str) -> str:
    return "\n".join(lines)


RAW = _join("{{level0}}Treaty{{-level0}}", "Article 1", "Body text")
HEADLINED = _join("{{level0}}Treaty{{-level0}}", "{{level1}}Article 1{{-level1}}", "Body text")
NORMALIZED = _join(
    "{{level0}}Treaty{{-level0}}",
    "{{text_level}}",
    "{{level1}}Article 1{{-level1}}",
    "Body text",
    "{{-text_level}}",
)
SHORT_TAGGED = _join(">>>H0 Treaty", ">>>H1 Article 1", ">>>TX Body text")


@pytest.fixture()
def config() -> PipelineConfig:
    return PipelineConfig(headline_chunk_count=1, content_chunk_count=1)


@pytest.fixture()
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=2, base_delay_sec=0.0, rate_limit_delay_sec=0.0, jitter_sec=0.0)


# ── DocumentContext ───────────────────────────────────────────────────


class TestDocumentContext:
    def test_versions_are_appended(self) -> None:
        ctx = DocumentContext.load("v0", source_name="doc.txt")
        ctx2 = ctx.with_version("headlines", "v1")
        assert ctx.current == "v0"
        assert ctx2.current == "v1"
        assert ctx2.stage == "headlines"
        assert [v.stage for v in ctx2.versions] == ["initial", "headlines"]
        assert ctx2.version_for("initial") == "v0"
        assert ctx2.version_for("audit") is None
        assert ctx2.source_name == "doc.txt"

    def test_requires_a_version(self) -> None:
        with pytest.raises(ValueError):
            DocumentContext(versions=())


# ── Stages ────────────────────────────────────────────────────────────


class TestHeadlineStage:
    def test_output_is_normalized(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        proc = ScriptedChunkProcessor([HEADLINED])
        change = run_headline_stage(DocumentContext.load(RAW), proc, config, policy=policy)
        assert change.stage == "headlines"
        assert change.old_text == RAW
        assert change.new_text == NORMALIZED
        assert change.has_changes
        assert [r.status for r in change.chunk_reports] == ["ok"]

    def test_failed_chunk_keeps_original(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        proc = ScriptedChunkProcessor([TransientLLMError("a"), TransientLLMError("b")])
        change = run_headline_stage(DocumentContext.load(RAW), proc, config, policy=policy)
        assert change.new_text == RAW
        assert not change.has_changes
        assert change.chunk_reports[0].status == "failed"
        assert change.failed_chunks == [0]


class TestContentStage:
    def test_short_tags_expanded_and_normalized(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        proc = ScriptedChunkProcessor([SHORT_TAGGED])
        change = run_content_stage(DocumentContext.load(HEADLINED), proc, config, policy=policy)
        assert change.new_text == NORMALIZED
        assert change.chunk_reports[0].status == "ok"

    def test_rewritten_output_is_retried(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        proc = ScriptedChunkProcessor([">>>TX something\n>>>TX else\n>>>TX entirely", SHORT_TAGGED])
        change = run_content_stage(DocumentContext.load(HEADLINED), proc, config, policy=policy)
        assert len(proc.calls) == 2
        assert change.new_text == NORMALIZED

    def test_persistent_rewrite_keeps_chunk(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        bad = ">>>TX something\n>>>TX else\n>>>TX entirely"
        proc = ScriptedChunkProcessor([bad, bad])
        change = run_content_stage(DocumentContext.load(NORMALIZED), proc, config, policy=policy)
        assert change.new_text == NORMALIZED
        assert change.chunk_reports[0].status == "failed"


class TestAuditStage:
    def test_level_fix_is_accepted(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        after = NORMALIZED.replace("level1}}", "level2}}")
        proc = ScriptedChunkProcessor([after])
        change = run_audit_stage(DocumentContext.load(NORMALIZED), proc, config, policy=policy)
        assert change.new_text == after
        assert change.chunk_reports[0].status == "ok"

    def test_guard_rejection_keeps_input(
        self,
        config: PipelineConfig,
        policy: RetryPolicy,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        proc = ScriptedChunkProcessor([NORMALIZED.replace("\n{{-text_level}}", "")])
        with caplog.at_level(logging.WARNING, logger="legaltag.pipeline"):
            change = run_audit_stage(DocumentContext.load(NORMALIZED), proc, config, policy=policy)
        assert change.new_text == NORMALIZED
        report = change.chunk_reports[0]
        assert report.status == "guard_rejected"
        assert report.issues == ("text_level blocks disappeared.",)
        assert "guardrail triggered" in caplog.text

    def test_split_document_warns(
        self,
        config: PipelineConfig,
        policy: RetryPolicy,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        section = "{{level1}}Part{{-level1}}\n" + "word " * 4000
        text = _join("{{level0}}T{{-level0}}", "{{text_level}}", "\n\n".join([section] * 4), "{{-text_level}}")
        proc = ScriptedChunkProcessor(handler=lambda chunk, _: chunk)
        with caplog.at_level(logging.WARNING, logger="legaltag.pipeline"):
            change = run_audit_stage(DocumentContext.load(text), proc, config, policy=policy)
        assert len(change.chunk_reports) > 1
        assert "was split across content blocks" in caplog.text


# ── Orchestration ─────────────────────────────────────────────────────


def _handler(chunk: str, instructions: str) -> str:
    if ">>>TX" in instructions:
        return SHORT_TAGGED
    if "headline" in instructions:
        return HEADLINED
    return chunk


class TestRunPipeline:
    def test_all_stages(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        proc = ScriptedChunkProcessor(handler=_handler)
        result = run_pipeline(RAW, proc, config, policy=policy)
        assert result.text == NORMALIZED
        assert [c.stage for c in result.changes] == ["headlines", "content", "audit"]
        assert result.accepted == ["headlines", "content", "audit"]
        assert [v.stage for v in result.context.versions] == ["initial", "headlines", "content", "audit"]

    def test_stages_run_in_pipeline_order(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        proc = ScriptedChunkProcessor(handler=_handler)
        result = run_pipeline(RAW, proc, config, stages=("audit", "headlines"), policy=policy)
        assert [c.stage for c in result.changes] == ["headlines", "audit"]

    def test_strict_processor_serves_audit(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        fast = ScriptedChunkProcessor(handler=_handler)
        strict = ScriptedChunkProcessor(handler=lambda chunk, _: chunk)
        run_pipeline(RAW, fast, config, policy=policy, strict_processor=strict)
        assert len(strict.calls) == 1
        assert len(fast.calls) == 2

    def test_rejected_review_keeps_context(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        proc = ScriptedChunkProcessor(handler=_handler)
        seen: list[PendingChange] = []

        def review(change: PendingChange) -> bool:
            seen.append(change)
            return False

        result = run_pipeline(RAW, proc, config, stages=("headlines",), review=review, policy=policy)
        assert result.text == RAW
        assert result.accepted == []
        assert seen[0].new_text == NORMALIZED

    def test_stop_flag(self, config: PipelineConfig, policy: RetryPolicy) -> None:
        proc = ScriptedChunkProcessor(handler=_handler)
        with pytest.raises(PipelineStopped):
            run_pipeline(RAW, proc, config, policy=policy, should_stop=lambda: True)
        assert proc.calls == []

    def test_unknown_stage(self, config: PipelineConfig) -> None:
        with pytest.raises(ValueError):
            run_pipeline(RAW, ScriptedChunkProcessor(), config, stages=("ocr",))


class TestApplyChange:
    def test_stale_change_rejected(self) -> None:
        ctx = DocumentContext.load("a")
        change = PendingChange(stage="audit", old_text="b", new_text="c", diff=())
        with pytest.raises(ValueError):
            apply_change(ctx, change)

    def test_accept(self) -> None:
        ctx = DocumentContext.load("a")
        change = PendingChange(stage="audit", old_text="a", new_text="c", diff=())
        new_ctx, accepted = apply_change(ctx, change)
        assert accepted
        assert new_ctx.current == "c"

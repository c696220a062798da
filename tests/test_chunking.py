"""Tests for legaltag.chunking."""
from __future__ import annotations

import pytest

from legaltag.chunking import (
    MAX_OUTPUT_CHARS_STRICT,
    chunks_for_audit,
    create_chunks,
    create_chunks_by_count,
    create_chunks_by_top_level_headline,
    group_small_chunks_safe,
)


class TestCreateChunks:
    def test_short_text_is_one_chunk(self) -> None:
        assert create_chunks("abc", 10) == ["abc"]

    def test_paragraph_boundaries(self) -> None:
        assert create_chunks("aaa\n\nbbb\n\nccc", 7) == ["aaa", "bbb", "ccc"]
        assert create_chunks("aaa\n\nbbb\n\nccc", 8) == ["aaa\n\nbbb", "ccc"]

    def test_oversized_paragraph_is_force_split(self) -> None:
        assert create_chunks("abcdefghij", 4) == ["abcd", "efgh", "ij"]

    def test_invalid_target(self) -> None:
        with pytest.raises(ValueError):
            create_chunks("abc", 0)


class TestCreateChunksByCount:
    def test_count_one_returns_whole_text(self) -> None:
        assert create_chunks_by_count("a\n\nb", 1) == ["a\n\nb"]

    def test_empty_text(self) -> None:
        assert create_chunks_by_count("", 5) == [""]

    def test_short_document_is_not_split(self) -> None:
        text = "{{level0}}Treaty{{-level0}}\n\nArticle 1\n\nBody"
        assert create_chunks_by_count(text, 20) == [text]

    def test_split_by_count(self) -> None:
        text = "\n\n".join(["x" * 10] * 4)
        assert create_chunks_by_count(text, 2, min_chars=0) == [
            "x" * 10 + "\n\n" + "x" * 10,
            "x" * 10 + "\n\n" + "x" * 10,
        ]


class TestHeadlineChunks:
    def test_preamble_joins_first_section(self) -> None:
        text = "Pre\n\n{{level1}}A{{-level1}}\nx\n\n{{level1}}B{{-level1}}\ny"
        assert create_chunks_by_top_level_headline(text) == [
            "Pre\n\n{{level1}}A{{-level1}}\nx",
            "{{level1}}B{{-level1}}\ny",
        ]

    def test_no_headline_returns_text(self) -> None:
        assert create_chunks_by_top_level_headline("just text") == ["just text"]

    def test_group_small_chunks(self) -> None:
        assert group_small_chunks_safe(["a", "b", "c"], 10) == ["a\n\nb\n\nc"]
        assert group_small_chunks_safe(["a", "b", "c"], 4) == ["a\n\nb", "c"]

    def test_group_resplits_oversized(self) -> None:
        assert group_small_chunks_safe(["a", "bbbbbb"], 3) == ["a", "bbb", "bbb"]


class TestStageStrategies:
    def test_audit_single_chunk_when_it_fits(self) -> None:
        text = "{{level1}}A{{-level1}}\nbody"
        assert chunks_for_audit(text) == [text]

    def test_audit_splits_large_documents_by_headline(self) -> None:
        section = "{{level1}}Part{{-level1}}\n" + "word " * 4000
        text = "\n\n".join([section] * 4)
        chunks = chunks_for_audit(text)
        assert len(chunks) > 1
        assert all(len(c) <= MAX_OUTPUT_CHARS_STRICT for c in chunks)

"""Structural repair, guards and LLM orchestration for tagged legal documents."""

from legaltag.errors import (
    ChunkProcessingError,
    ContentIntegrityError,
    LegalTagError,
    PipelineStopped,
    TransientLLMError,
    UnsupportedDocumentError,
)
from legaltag.guards import guard_conservative_edit, guard_content_integrity
from legaltag.lead_in import fix_lead_in_definition_hierarchy
from legaltag.line_diff import generate_diff
from legaltag.normalizer import validate_structural_integrity
from legaltag.short_tags import convert_short_tags_to_full_structure
from legaltag.tag_types import DiffLine, GuardResult, LineClass, TagToken

__all__ = [
    "ChunkProcessingError",
    "ContentIntegrityError",
    "DiffLine",
    "GuardResult",
    "LegalTagError",
    "LineClass",
    "PipelineStopped",
    "TagToken",
    "TransientLLMError",
    "UnsupportedDocumentError",
    "convert_short_tags_to_full_structure",
    "fix_lead_in_definition_hierarchy",
    "generate_diff",
    "guard_conservative_edit",
    "guard_content_integrity",
    "validate_structural_integrity",
]

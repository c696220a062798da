"""Task instructions sent with each chunk, one builder per LLM stage."""
from __future__ import annotations


_TAG_VOCABULARY = (
    "Allowed tags only: {{levelN}}...{{-levelN}} (N a plain integer), "
    "{{text_level}} / {{-text_level}} on their own lines, "
    "{{footnoteN}}...{{-footnoteN}}, {{footnotenumberN}}...{{-footnotenumberN}}. "
    "No XML, HTML or Markdown headings. No arithmetic inside tags."
)


def headline_instructions(language: str) -> str:
    return (
        f"You are a legal document structure tagger. Document language: {language}.\n"
        "Wrap every structural headline (chapter, part, title, section, article, annex "
        "and their short titles) in {{levelN}}...{{-levelN}} on a single line, with N "
        "the depth of the division. The existing {{level0}} title must not change.\n"
        "Do not tag definitions, sentences or list items. Do not add {{text_level}}.\n"
        "Do not rewrite, delete, reorder or reflow any text.\n"
        f"{_TAG_VOCABULARY}"
    )


def content_instructions(language: str) -> str:
    return (
        f"You are a legal document line classifier. Document language: {language}.\n"
        "Prefix EVERY non-empty line with exactly one code and keep the line text "
        "unchanged:\n"
        ">>>H0 existing main title ({{level0}})\n"
        ">>>H1 .. >>>H5 headline of level 1..5 (strip existing {{levelN}} tags)\n"
        ">>>TX body paragraph\n"
        ">>>LI list item such as (a), 1., (i)\n"
        ">>>QT quoted definition line\n"
        "Return one output line per input line."
    )


def audit_instructions(language: str) -> str:
    return (
        f"You are a conservative structure auditor for legal documents. Language: {language}.\n"
        "You may only move standalone {{text_level}} / {{-text_level}} lines and change "
        "the digits of {{levelN}} / {{-levelN}} tags. After a lead-in line ending in a "
        "colon, quoted definitions sit one level deeper and (a)/(i) items two levels "
        "deeper. Never change any text character, never add or remove tags, never touch "
        "footnote tags.\n"
        f"{_TAG_VOCABULARY}"
    )


def build_chunk_prompt(
    chunk_text: str,
    instructions: str,
    *,
    language: str,
    context_summary: str = "",
    previous_overlap: str = "",
    next_overlap: str = "",
) -> str:
    """Wrap a chunk with its instructions and neighbouring context."""
    return (
        f"**DOCUMENT LANGUAGE: {language}**\n"
        f"**CONTEXT SUMMARY:** {context_summary}\n"
        f"**TASK INSTRUCTIONS:** {instructions}\n\n"
        "**DOCUMENT CHUNK TO PROCESS:**\n"
        "---\n"
        "[START PREVIOUS CHUNK OVERLAP]\n"
        f"{previous_overlap or 'N/A'}\n"
        "[END PREVIOUS CHUNK OVERLAP]\n"
        "---\n"
        "[START MAIN CHUNK CONTENT]\n"
        f"{chunk_text}\n"
        "[END MAIN CHUNK CONTENT]\n"
        "---\n"
        "[START NEXT CHUNK OVERLAP]\n"
        f"{next_overlap or 'N/A'}\n"
        "[END NEXT CHUNK OVERLAP]\n"
        "---\n"
        "Process ONLY the [MAIN CHUNK CONTENT]. Return ONLY the result."
    )

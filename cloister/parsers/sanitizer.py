"""Strip Claude Code's internal markup from transcript text."""
from __future__ import annotations

import re

# Paired tag regions injected by the CLI (hooks, reminders, slash-command echo).
_INTERNAL_BLOCK_PATTERNS = tuple(
    re.compile(pattern)
    for pattern in (
        r"<system-[a-z-]+>[\s\S]*?</system-[a-z-]+>",
        r"<local-command-[a-z-]+>[\s\S]*?</local-command-[a-z-]+>",
        r"<command-[a-z-]+>[\s\S]*?</command-[a-z-]+>",
        r"<user-prompt-[a-z-]+>[\s\S]*?</user-prompt-[a-z-]+>",
        r"<[a-z-]+-reminder>[\s\S]*?</[a-z-]+-reminder>",
        r"<[a-z-]+-caveat>[\s\S]*?</[a-z-]+-caveat>",
        r"<[a-z-]+-hook>[\s\S]*?</[a-z-]+-hook>",
    )
)
_CAVEAT_LINE_PATTERN = re.compile(r"^Caveat:.*$", re.MULTILINE)
_EXCESS_NEWLINES_PATTERN = re.compile(r"\n{3,}")


def clean_system_content(text: str) -> str:
    """Remove internal/system blocks from free text.

    Returns an empty string when nothing user-visible is left; callers treat
    that as "no content".
    """
    cleaned = text or ""
    for pattern in _INTERNAL_BLOCK_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = _CAVEAT_LINE_PATTERN.sub("", cleaned)
    cleaned = _EXCESS_NEWLINES_PATTERN.sub("\n\n", cleaned)
    return cleaned.strip()

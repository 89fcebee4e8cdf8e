"""Parse Claude Code JSONL transcripts into Message models."""
from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cloister.date_utils import utc_now_iso
from cloister.models import (
    ContentBlock,
    Message,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from cloister.parsers.sanitizer import clean_system_content

logger = logging.getLogger("cloister.parser")

_MESSAGE_TYPES = {"user", "assistant"}


def _coerce_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _normalize_tool_result_content(raw: Any) -> str | list[TextBlock]:
    if isinstance(raw, str):
        return raw
    if not isinstance(raw, list):
        return ""
    # Nested results only keep their text parts (images etc. are dropped).
    blocks: list[TextBlock] = []
    for item in raw:
        if isinstance(item, dict) and item.get("type") == "text":
            blocks.append(TextBlock(text=_coerce_str(item.get("text"))))
    return blocks


def _parse_block(raw: Any) -> ContentBlock | None:
    """Map one raw content block onto the closed block union.

    Text blocks are sanitized and dropped when empty. Unknown block types
    return None.
    """
    if not isinstance(raw, dict):
        return None
    block_type = raw.get("type")

    if block_type == "text":
        cleaned = clean_system_content(_coerce_str(raw.get("text")))
        return TextBlock(text=cleaned) if cleaned else None

    if block_type == "tool_use":
        tool_input = raw.get("input")
        return ToolUseBlock(
            id=_coerce_str(raw.get("id")),
            name=_coerce_str(raw.get("name")),
            input=tool_input if isinstance(tool_input, dict) else {},
        )

    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=_coerce_str(raw.get("tool_use_id")),
            content=_normalize_tool_result_content(raw.get("content")),
            is_error=bool(raw.get("is_error", False)),
        )

    if block_type == "thinking":
        return ThinkingBlock(thinking=_coerce_str(raw.get("thinking")))

    logger.debug("Dropping unsupported content block type: %r", block_type)
    return None


def _parse_record(entry: Any) -> Message | None:
    if not isinstance(entry, dict):
        return None

    entry_type = entry.get("type")
    # Summaries, system entries and sub-agent side chains are not part of the
    # main conversation.
    if entry_type not in _MESSAGE_TYPES or entry.get("isSidechain"):
        return None

    payload = entry.get("message")
    if not isinstance(payload, dict):
        return None

    raw_content = payload.get("content")
    blocks: list[ContentBlock] = []
    if isinstance(raw_content, str):
        cleaned = clean_system_content(raw_content)
        if cleaned:
            blocks.append(TextBlock(text=cleaned))
    elif isinstance(raw_content, list):
        for raw_block in raw_content:
            block = _parse_block(raw_block)
            if block is not None:
                blocks.append(block)

    if not blocks:
        return None

    return Message(
        id=_coerce_str(payload.get("id")) or str(uuid.uuid4()),
        type=entry_type,
        timestamp=_coerce_str(entry.get("timestamp")) or utc_now_iso(),
        content=blocks,
    )


def parse_transcript(content: str) -> list[Message]:
    """Parse raw JSONL text into the ordered main-conversation messages.

    Every line is handled on its own: malformed lines are skipped and never
    abort the parse.
    """
    messages: list[Message] = []
    # Records are delimited by "\n" only; U+2028 and friends may appear raw in strings.
    for line in (content or "").split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        try:
            message = _parse_record(entry)
        except ValidationError as exc:
            logger.debug("Skipping transcript record that failed validation: %s", exc)
            continue
        if message is not None:
            messages.append(message)
    return messages


def read_transcript_text(path: Path) -> str:
    """Read a transcript file. Raises OSError when the file cannot be read."""
    return path.read_text(encoding="utf-8", errors="replace")


def parse_transcript_file(path: Path) -> list[Message]:
    """Parse a transcript file from disk. Raises OSError on read failure."""
    return parse_transcript(read_transcript_text(path))


def is_sidechain_transcript(content: str) -> bool:
    """True when the first record of the transcript is flagged side-chain."""
    first_line = (content or "").split("\n", 1)[0].strip()
    if not first_line:
        return False
    try:
        first = json.loads(first_line)
    except json.JSONDecodeError:
        return False
    return isinstance(first, dict) and first.get("isSidechain") is True

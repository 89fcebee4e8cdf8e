"""Derive titles, summaries and live status from parsed transcripts."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from cloister import config
from cloister.date_utils import parse_datetime
from cloister.models import (
    Message,
    SessionStatus,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

UNTITLED_SESSION = "Untitled session"
QUESTION_TOOL_NAME = "AskUserQuestion"

_TITLE_LIMIT = 100
_SUMMARY_LIMIT = 80
_SHORT_SUMMARY_LENGTH = 60
_FILE_REF_PATTERN = re.compile(r"@[\w./-]+")
_EDIT_TOOLS = {"Edit", "Write"}
_READ_TOOLS = {"Read"}


def _first_text(message: Message) -> str:
    for block in message.content:
        if isinstance(block, TextBlock):
            return block.text
    return ""


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def _add_unique(items: list[str], value: Any) -> None:
    if isinstance(value, str) and value and value not in items:
        items.append(value)


def extract_title(messages: Sequence[Message]) -> str:
    """First line of the first real user prompt, for quick lists."""
    for message in messages:
        if message.type != "user":
            continue
        text = _first_text(message).strip()
        if not text:
            continue
        # Bare slash-command invocations such as "/clear"
        if text.startswith("/") and " " not in text:
            continue
        first_line = text.split("\n", 1)[0].strip()
        if not first_line:
            continue
        return _truncate(first_line, _TITLE_LIMIT)
    return UNTITLED_SESSION


def generate_session_summary(messages: Sequence[Message]) -> str:
    """Describe a session by the user's intent plus the files it touched.

    Without a usable prompt the summary falls back to edited files, then read
    files, then tool names, then ``Untitled session``.
    """
    files_edited: list[str] = []
    files_read: list[str] = []
    tools_used: list[str] = []
    user_intent = ""

    for message in messages:
        if message.type == "user" and not user_intent:
            text = _first_text(message).strip()
            if text and not text.startswith("/"):
                user_intent = text.split("\n", 1)[0].strip()

        for block in message.content:
            if not isinstance(block, ToolUseBlock) or not block.name:
                continue
            _add_unique(tools_used, block.name)
            if block.name in _EDIT_TOOLS:
                _add_unique(files_edited, block.input.get("file_path"))
            elif block.name in _READ_TOOLS:
                _add_unique(files_read, block.input.get("file_path"))

    if user_intent:
        summary = _truncate(_FILE_REF_PATTERN.sub("", user_intent).strip(), _SUMMARY_LIMIT)
        if files_edited:
            names = ", ".join(_basename(f) for f in files_edited[:2])
            if len(files_edited) > 2:
                summary += f" (edited {names} +{len(files_edited) - 2} more)"
            elif len(summary) < _SHORT_SUMMARY_LENGTH:
                summary += f" (edited {names})"
        return summary

    if files_edited:
        names = ", ".join(_basename(f) for f in files_edited[:3])
        if len(files_edited) > 3:
            return f"Edited {names} +{len(files_edited) - 3} more files"
        return f"Edited {names}"

    if files_read:
        names = ", ".join(_basename(f) for f in files_read[:3])
        more = f" +{len(files_read) - 3} more" if len(files_read) > 3 else ""
        return f"Explored {names}{more}"

    if tools_used:
        return f"Session using {', '.join(tools_used[:3])}"

    return UNTITLED_SESSION


# ── Status state machine ───────────────────────────────────────────


@dataclass(frozen=True)
class StatusContext:
    messages: Sequence[Message]
    age_seconds: Optional[float]  # None when the modification time is unknown

    @property
    def last(self) -> Message:
        return self.messages[-1]

    def last_tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.last.content if isinstance(b, ToolUseBlock)]

    def has_unanswered_tool_use(self) -> bool:
        answered = {
            block.tool_use_id
            for message in self.messages
            for block in message.content
            if isinstance(block, ToolResultBlock)
        }
        return any(tool.id not in answered for tool in self.last_tool_uses())


StatusRule = Callable[[StatusContext], Optional[SessionStatus]]


def _rule_empty(ctx: StatusContext) -> Optional[SessionStatus]:
    return "idle" if not ctx.messages else None


def _rule_stale(ctx: StatusContext) -> Optional[SessionStatus]:
    if ctx.age_seconds is not None and ctx.age_seconds > config.STALE_THRESHOLD_SECONDS:
        return "idle"
    return None


def _rule_user_spoke_last(ctx: StatusContext) -> Optional[SessionStatus]:
    return "working" if ctx.last.type == "user" else None


def _rule_asks_question(ctx: StatusContext) -> Optional[SessionStatus]:
    if any(tool.name == QUESTION_TOOL_NAME for tool in ctx.last_tool_uses()):
        return "awaiting"
    return None


def _rule_tool_in_flight(ctx: StatusContext) -> Optional[SessionStatus]:
    return "working" if ctx.has_unanswered_tool_use() else None


def _rule_recently_modified(ctx: StatusContext) -> Optional[SessionStatus]:
    if ctx.age_seconds is not None and ctx.age_seconds < config.RECENT_THRESHOLD_SECONDS:
        return "working"
    return None


def _rule_replied_with_text(ctx: StatusContext) -> Optional[SessionStatus]:
    has_text = any(
        isinstance(block, TextBlock) and block.text.strip() for block in ctx.last.content
    )
    if has_text and not ctx.has_unanswered_tool_use():
        return "awaiting"
    return None


# Order matters: question detection dominates the tool-result check, and the
# recency debounce must run before the text rule.
STATUS_RULES: tuple[tuple[str, StatusRule], ...] = (
    ("empty", _rule_empty),
    ("stale", _rule_stale),
    ("user_spoke_last", _rule_user_spoke_last),
    ("asks_question", _rule_asks_question),
    ("tool_in_flight", _rule_tool_in_flight),
    ("recently_modified", _rule_recently_modified),
    ("replied_with_text", _rule_replied_with_text),
)


def determine_status(
    messages: Sequence[Message],
    last_modified: datetime | str | float | None = None,
    now: datetime | None = None,
) -> SessionStatus:
    """Classify a session as awaiting input, working or idle."""
    modified_at = parse_datetime(last_modified)
    age_seconds: Optional[float] = None
    if modified_at is not None:
        current = now or datetime.now(timezone.utc)
        age_seconds = (current - modified_at).total_seconds()

    ctx = StatusContext(messages=messages, age_seconds=age_seconds)
    for _name, rule in STATUS_RULES:
        status = rule(ctx)
        if status is not None:
            return status
    return "idle"

"""Keyword tagger that labels sessions from their prompts and tool usage."""
from __future__ import annotations

import re
from typing import Pattern, Sequence

from cloister.models import Message, TextBlock, ToolUseBlock


def _keyword_pattern(*keywords: str) -> Pattern[str]:
    # Whole words only, allowing plain inflections ("tests", "fixed", "merging").
    alternatives = "|".join(re.escape(keyword) for keyword in keywords)
    return re.compile(rf"\b(?:{alternatives})(?:s|es|d|ed|ing)?\b")


# (tag, prompt pattern, tool names). Rule order is output order.
_TAG_RULES: list[tuple[str, Pattern[str], tuple[str, ...]]] = [
    ("bugfix", _keyword_pattern("fix", "bug", "error", "broken", "crash", "issue"), ()),
    ("feature", _keyword_pattern("add", "implement", "create", "build", "new feature"), ()),
    ("refactor", _keyword_pattern("refactor", "clean up", "cleanup", "rename", "simplify"), ()),
    ("test", _keyword_pattern("test", "pytest", "jest", "vitest", "coverage"), ()),
    ("docs", _keyword_pattern("readme", "docs", "documentation", "docstring"), ()),
    ("git", _keyword_pattern("commit", "merge", "rebase", "branch", "pull request"), ()),
    ("config", _keyword_pattern("config", "setup", "install", "dependency", "dependencies"), ()),
    ("research", _keyword_pattern("explain", "how does", "why does", "investigate"), ("WebSearch", "WebFetch")),
    ("planning", _keyword_pattern("plan", "planning", "design", "architecture"), ("TodoWrite", "ExitPlanMode")),
]


def _user_text(messages: Sequence[Message]) -> str:
    parts: list[str] = []
    for message in messages:
        if message.type != "user":
            continue
        for block in message.content:
            if isinstance(block, TextBlock):
                parts.append(block.text)
    return "\n".join(parts).lower()


def generate_tags(messages: Sequence[Message]) -> list[str]:
    text = _user_text(messages)
    tools = {
        block.name
        for message in messages
        for block in message.content
        if isinstance(block, ToolUseBlock)
    }

    tags: list[str] = []
    for tag, pattern, tool_names in _TAG_RULES:
        if pattern.search(text) or tools.intersection(tool_names):
            tags.append(tag)
    return tags

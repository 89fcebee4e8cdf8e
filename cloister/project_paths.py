"""Reconstruct project paths from Claude Code's encoded directory names.

Claude Code stores each project's transcripts under a directory named after
the project path with every ``/`` replaced by ``-`` (``/Users/x/code/demo``
becomes ``-Users-x-code-demo``). The encoding is lossy because path segments
may contain hyphens themselves, so the resolver probes the filesystem and
greedily takes the longest run of tokens that names an existing directory.
Anything that no longer exists on disk resolves to an approximate path.
"""
from __future__ import annotations

import os
import re

_CODE_DIR_PATTERN = re.compile(r"-code-(.+)$")


def resolve_project_path(encoded_name: str, root: str = "/") -> str:
    stripped = encoded_name[1:] if encoded_name.startswith("-") else encoded_name
    parts = stripped.split("-")
    current = root
    i = 0

    while i < len(parts):
        found = False
        for length in range(len(parts) - i, 0, -1):
            segment = "-".join(parts[i:i + length])
            if not segment:
                continue
            candidate = os.path.join(current, segment)
            if os.path.isdir(candidate):
                current = candidate
                i += length
                found = True
                break

        if not found:
            # Nothing on disk matches; keep the rest verbatim.
            remainder = "-".join(parts[i:])
            if remainder:
                current = os.path.join(current, remainder)
            break

    return current


def project_display_name(project_path: str, encoded_name: str | None = None) -> str:
    """Short display name for a project: its last path segment."""
    segments = [segment for segment in project_path.split("/") if segment]
    if segments:
        return segments[-1]
    if encoded_name:
        match = _CODE_DIR_PATTERN.search(encoded_name)
        if match:
            return match.group(1)
    return project_path

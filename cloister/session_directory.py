"""Discover Claude Code sessions on disk and assemble the session catalog."""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional, Sequence

from cloister import config
from cloister.chains import group_sessions_into_chains
from cloister.date_utils import file_modified_at, format_datetime_utc
from cloister.models import Message, ProjectSummary, Session, SessionDetail
from cloister.observability import record_discovery, record_parser_failure, start_span
from cloister.parsers.transcript import (
    is_sidechain_transcript,
    parse_transcript,
    parse_transcript_file,
    read_transcript_text,
)
from cloister.project_paths import project_display_name, resolve_project_path
from cloister.session_metadata import determine_status, generate_session_summary
from cloister.tagger import generate_tags

logger = logging.getLogger("cloister.directory")

Tagger = Callable[[Sequence[Message]], list[str]]


def list_transcript_files(project_dir: Path) -> list[Path]:
    """Session transcripts in a project directory, excluding agent helper files."""
    return sorted(
        path
        for path in project_dir.glob("*.jsonl")
        if path.is_file() and not path.name.startswith("agent-")
    )


class SessionDirectory:
    """Read-only catalog over a Claude Code projects directory.

    Nothing is cached between calls: every ``discover`` re-reads the files so
    the catalog always reflects the filesystem.
    """

    def __init__(
        self,
        projects_dir: Path | None = None,
        tagger: Tagger = generate_tags,
        max_workers: int | None = None,
        path_root: str = "/",
    ):
        self.projects_dir = Path(projects_dir or config.PROJECTS_DIR)
        self._tagger = tagger
        self._max_workers = max(1, max_workers or config.SCAN_WORKERS)
        self._path_root = path_root

    def _project_dirs(self) -> list[Path]:
        try:
            return sorted(p for p in self.projects_dir.iterdir() if p.is_dir())
        except OSError as exc:
            logger.warning("Cannot read projects directory %s: %s", self.projects_dir, exc)
            return []

    def _build_session(self, path: Path, project: str, project_name: str) -> Optional[Session]:
        try:
            modified_at = file_modified_at(path)
            content = read_transcript_text(path)
        except OSError as exc:
            logger.warning("Skipping unreadable transcript %s: %s", path, exc)
            record_parser_failure("transcript")
            return None

        if is_sidechain_transcript(content):
            return None

        messages = parse_transcript(content)
        if not messages:
            return None

        last_modified = format_datetime_utc(modified_at)
        return Session(
            id=path.stem,
            project=project,
            projectName=project_name,
            title=generate_session_summary(messages),
            timestamp=messages[0].timestamp or last_modified,
            lastModified=last_modified,
            messageCount=len(messages),
            tags=self._tagger(messages),
            status=determine_status(messages, modified_at),
            filePath=str(path),
        )

    def _safe_build_session(self, job: tuple[Path, str, str]) -> Optional[Session]:
        path, project, project_name = job
        try:
            return self._build_session(path, project, project_name)
        except Exception:
            # One corrupt transcript must never fail the whole scan.
            logger.exception("Failed to build session from %s", path)
            record_parser_failure("transcript")
            return None

    def discover(self) -> list[Session]:
        """Scan every project directory and return the chained, sorted catalog."""
        started = time.monotonic()
        with start_span("cloister.discover", {"projects_dir": str(self.projects_dir)}):
            jobs: list[tuple[Path, str, str]] = []
            for project_dir in self._project_dirs():
                try:
                    files = list_transcript_files(project_dir)
                except OSError as exc:
                    logger.warning("Cannot list project directory %s: %s", project_dir, exc)
                    continue
                if not files:
                    continue
                project = resolve_project_path(project_dir.name, root=self._path_root)
                project_name = project_display_name(project, project_dir.name)
                jobs.extend((path, project, project_name) for path in files)

            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                sessions = [s for s in pool.map(self._safe_build_session, jobs) if s is not None]

            catalog = group_sessions_into_chains(sessions)

        record_discovery("success", (time.monotonic() - started) * 1000)
        logger.debug("Discovered %d sessions in %s", len(catalog), self.projects_dir)
        return catalog

    def get_by_id(self, session_id: str) -> Optional[SessionDetail]:
        """Full detail for one session, or None when it cannot be found or read."""
        session = next((s for s in self.discover() if s.id == session_id), None)
        if session is None:
            return None

        try:
            messages = parse_transcript_file(Path(session.filePath))
        except OSError as exc:
            logger.warning("Cannot re-read transcript for session %s: %s", session_id, exc)
            return None

        return SessionDetail(**session.model_dump(), messages=messages)

    def list_projects(self) -> list[ProjectSummary]:
        projects: dict[str, ProjectSummary] = {}
        for session in self.discover():
            existing = projects.get(session.project)
            if existing:
                existing.count += 1
            else:
                projects[session.project] = ProjectSummary(
                    name=session.projectName, path=session.project, count=1
                )
        return sorted(projects.values(), key=lambda p: p.count, reverse=True)

    def tag_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for session in self.discover():
            for tag in session.tags:
                counts[tag] = counts.get(tag, 0) + 1
        return counts

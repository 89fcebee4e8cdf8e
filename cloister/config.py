"""Cloister Configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default

# Claude Code keeps one subdirectory per project under ~/.claude/projects
PROJECTS_DIR = Path(
    os.getenv("CLOISTER_PROJECTS_DIR", str(Path.home() / ".claude" / "projects"))
).expanduser()

# Status heuristics
STALE_THRESHOLD_SECONDS = _env_int("CLOISTER_STALE_THRESHOLD_SECONDS", 5 * 60)
RECENT_THRESHOLD_SECONDS = _env_int("CLOISTER_RECENT_THRESHOLD_SECONDS", 30)

# Discovery
SCAN_WORKERS = _env_int("CLOISTER_SCAN_WORKERS", 8)

# Live updates
WATCH_DEBOUNCE_MS = _env_int("CLOISTER_WATCH_DEBOUNCE_MS", 200)
SSE_PING_SECONDS = _env_int("CLOISTER_SSE_PING_SECONDS", 30)

# Observability
OTEL_ENABLED = _env_bool("CLOISTER_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("CLOISTER_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("CLOISTER_OTEL_SERVICE_NAME", "cloister")
PROM_PORT = _env_int("CLOISTER_PROM_PORT", 9464)

# Server settings
HOST = os.getenv("CLOISTER_HOST", "127.0.0.1")
PORT = _env_int("CLOISTER_PORT", 3333)

# CORS
FRONTEND_ORIGIN = os.getenv("CLOISTER_FRONTEND_ORIGIN", "http://localhost:3333")

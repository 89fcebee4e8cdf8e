"""API routers for sessions, projects, tags and live session events."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from cloister import config
from cloister.live_updates import LiveUpdateDistributor
from cloister.models import SessionStatus
from cloister.session_directory import SessionDirectory

logger = logging.getLogger("cloister")


def get_session_directory(request: Request) -> SessionDirectory:
    return request.app.state.session_directory


def get_distributor(request: Request) -> LiveUpdateDistributor:
    return request.app.state.distributor


# ── Sessions router ─────────────────────────────────────────────────

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@sessions_router.get("")
def list_sessions(directory: SessionDirectory = Depends(get_session_directory)):
    """List every discovered session, newest first."""
    return {"sessions": [s.model_dump(mode="json") for s in directory.discover()]}


@sessions_router.get("/{session_id}")
def get_session(session_id: str, directory: SessionDirectory = Depends(get_session_directory)):
    """Get one session with its full message history."""
    session = directory.get_by_id(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"session": session.model_dump(mode="json")}


async def session_event_stream(
    distributor: LiveUpdateDistributor,
    session_id: str,
    file_path: str,
    initial_status: SessionStatus,
) -> AsyncGenerator[dict, None]:
    """Forward a session's WatcherEvents as SSE messages.

    The first event is always the session's status at subscribe time. The
    subscription is released however the stream ends.
    """
    subscription = await distributor.subscribe(session_id, file_path)
    try:
        yield {"event": "status", "data": json.dumps({"status": initial_status})}
        async for event in subscription:
            yield {"event": event.type, "data": json.dumps(event.payload())}
    finally:
        await asyncio.shield(subscription.close())


@sessions_router.get("/{session_id}/events")
async def session_events(
    session_id: str,
    directory: SessionDirectory = Depends(get_session_directory),
    distributor: LiveUpdateDistributor = Depends(get_distributor),
):
    """Server-sent events with new messages and status changes for one session."""
    session = await asyncio.to_thread(directory.get_by_id, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")

    logger.info("Live viewer connected to session %s", session_id)
    return EventSourceResponse(
        session_event_stream(distributor, session_id, session.filePath, session.status),
        ping=config.SSE_PING_SECONDS,
    )


# ── Projects & tags routers ────────────────────────────────────────

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])


@projects_router.get("")
def list_projects(directory: SessionDirectory = Depends(get_session_directory)):
    """List projects with their session counts."""
    return {"projects": [p.model_dump() for p in directory.list_projects()]}


tags_router = APIRouter(prefix="/api/tags", tags=["tags"])


@tags_router.get("")
def list_tags(directory: SessionDirectory = Depends(get_session_directory)):
    """Count sessions per tag."""
    return {"tags": directory.tag_counts()}

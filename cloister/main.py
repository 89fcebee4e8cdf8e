"""Cloister FastAPI app: local hub for Claude Code history."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from cloister import config
from cloister.live_updates import LiveUpdateDistributor
from cloister.observability import initialize as initialize_observability, shutdown as shutdown_observability
from cloister.routers.api import projects_router, sessions_router, tags_router
from cloister.session_directory import SessionDirectory

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cloister")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Cloister starting up (projects dir: %s)", config.PROJECTS_DIR)
    initialize_observability(app)

    app.state.session_directory = SessionDirectory(config.PROJECTS_DIR)
    app.state.distributor = LiveUpdateDistributor()

    yield

    logger.info("Cloister shutting down")
    await app.state.distributor.close()
    shutdown_observability(app)


app = FastAPI(
    title="Cloister API",
    description="Local hub for browsing and following Claude Code sessions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        f"http://localhost:{config.PORT}",
        f"http://127.0.0.1:{config.PORT}",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions_router)
app.include_router(projects_router)
app.include_router(tags_router)


@app.get("/api/health")
def health(request: Request):
    """Health check endpoint."""
    distributor: LiveUpdateDistributor = request.app.state.distributor
    return {
        "status": "ok",
        "projectsDir": str(config.PROJECTS_DIR),
        "watchedSessions": distributor.watched_sessions(),
    }

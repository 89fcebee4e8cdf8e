"""Live session updates: one shared file watch per session, fanned out to subscribers.

Each watched session owns a single ``watchfiles`` watch plus the list of
subscribers currently viewing it. A change re-parses the transcript once and
publishes only what is new (messages beyond the last known count and status
transitions). Subscribe, release and dispatch for one session id are
serialized on that id's lock; different sessions never contend.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional

from watchfiles import awatch

from cloister import config
from cloister.date_utils import file_modified_at
from cloister.models import Message, SessionStatus, WatcherEvent
from cloister.observability import record_watcher_event
from cloister.parsers.transcript import parse_transcript_file
from cloister.session_metadata import determine_status

logger = logging.getLogger("cloister.watcher")

WatchFactory = Callable[..., AsyncIterator[Any]]


_END = object()


class Subscription:
    """A subscriber's handle on one session's event stream.

    Iterate it (or call ``get``) to receive WatcherEvents. ``close`` releases
    the registration and is safe to call more than once. Once the stream has
    ended, queued events are still handed out, then ``get`` returns None and
    iteration stops.
    """

    def __init__(self, distributor: "LiveUpdateDistributor", session_id: str):
        self.session_id = session_id
        self._distributor = distributor
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        # The end marker stays queued once closed and is not an event.
        return self._queue.qsize() - (1 if self._closed else 0)

    def _deliver(self, event: WatcherEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def _end(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END)

    async def get(self) -> Optional[WatcherEvent]:
        item = await self._queue.get()
        if item is _END:
            # Put it back so every later reader wakes too.
            self._queue.put_nowait(_END)
            return None
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> WatcherEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def close(self) -> None:
        if self._closed:
            return
        self._end()
        await self._distributor._release(self)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


@dataclass
class _SessionWatch:
    session_id: str
    file_path: Path
    subscribers: list[Subscription] = field(default_factory=list)
    message_count: int = 0
    status: SessionStatus = "idle"
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None


def _snapshot(path: Path) -> tuple[list[Message], SessionStatus]:
    messages = parse_transcript_file(path)
    status = determine_status(messages, file_modified_at(path))
    return messages, status


@dataclass
class _SessionLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class LiveUpdateDistributor:
    """Reference-counted registry of session file watches.

    Owned by the serving layer (one instance per app), never a module global.
    """

    def __init__(self, watch_factory: WatchFactory = awatch, debounce_ms: int | None = None):
        self._watch_factory = watch_factory
        self._debounce_ms = config.WATCH_DEBOUNCE_MS if debounce_ms is None else debounce_ms
        self._watches: dict[str, _SessionWatch] = {}
        # Only ids with a holder or waiter keep an entry.
        self._locks: dict[str, _SessionLock] = {}

    @asynccontextmanager
    async def _locked(self, session_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(session_id)
        if entry is None:
            entry = self._locks[session_id] = _SessionLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[session_id]

    def watched_sessions(self) -> list[str]:
        return sorted(self._watches)

    def subscriber_count(self, session_id: str) -> int:
        watch = self._watches.get(session_id)
        return len(watch.subscribers) if watch else 0

    async def subscribe(self, session_id: str, file_path: Path | str) -> Subscription:
        """Register a subscriber, attaching the session's watch if needed."""
        async with self._locked(session_id):
            watch = self._watches.get(session_id)
            if watch is None:
                watch = _SessionWatch(session_id=session_id, file_path=Path(file_path))
                await self._prime(watch)
                watch.task = asyncio.create_task(
                    self._watch_loop(watch), name=f"cloister-watch-{session_id}"
                )
                self._watches[session_id] = watch
                logger.info("Watching session %s (%s)", session_id, watch.file_path)

            subscription = Subscription(self, session_id)
            watch.subscribers.append(subscription)
        return subscription

    async def _prime(self, watch: _SessionWatch) -> None:
        # Baseline so subscribers only ever see what arrives after they join.
        try:
            messages, status = await asyncio.to_thread(_snapshot, watch.file_path)
        except OSError as exc:
            logger.warning("Cannot read transcript %s for watching: %s", watch.file_path, exc)
            return
        watch.message_count = len(messages)
        watch.status = status

    async def _release(self, subscription: Subscription) -> None:
        session_id = subscription.session_id
        stopped: Optional[_SessionWatch] = None
        async with self._locked(session_id):
            watch = self._watches.get(session_id)
            if watch is None or subscription not in watch.subscribers:
                return
            watch.subscribers.remove(subscription)
            if not watch.subscribers:
                del self._watches[session_id]
                stopped = watch

        if stopped is not None:
            await self._stop_watch(stopped)
            logger.info("Released watch for session %s", session_id)

    async def _stop_watch(self, watch: _SessionWatch) -> None:
        watch.stop_event.set()
        task = watch.task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _watch_loop(self, watch: _SessionWatch) -> None:
        try:
            async for _changes in self._watch_factory(
                watch.file_path, stop_event=watch.stop_event, debounce=self._debounce_ms
            ):
                await self._dispatch(watch)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Watch for session %s failed: %s", watch.session_id, exc)
            await self._retire(watch, f"Watch failed: {exc}")
            return
        if not watch.stop_event.is_set():
            logger.warning("Watch for session %s ended unexpectedly", watch.session_id)
            await self._retire(watch, "Watch ended")

    async def _retire(self, watch: _SessionWatch, detail: str) -> None:
        # A dead watch is unregistered so the next subscribe opens a fresh one.
        async with self._locked(watch.session_id):
            if self._watches.get(watch.session_id) is not watch:
                return
            del self._watches[watch.session_id]
            self._fan_out(watch, [self._error_event(watch, detail)])
            for subscriber in watch.subscribers:
                subscriber._end()
            watch.subscribers.clear()

    async def _dispatch(self, watch: _SessionWatch) -> None:
        async with self._locked(watch.session_id):
            if self._watches.get(watch.session_id) is not watch:
                return
            try:
                messages, status = await asyncio.to_thread(_snapshot, watch.file_path)
            except Exception as exc:
                logger.warning("Re-parse of session %s failed: %s", watch.session_id, exc)
                self._fan_out(watch, [self._error_event(watch, str(exc))])
                return

            if len(messages) < watch.message_count:
                # Rewritten or truncated file: rebase without replaying history.
                watch.message_count = len(messages)

            events = [
                WatcherEvent(sessionId=watch.session_id, type="message", data=message)
                for message in messages[watch.message_count:]
            ]
            watch.message_count = len(messages)

            if status != watch.status:
                watch.status = status
                events.append(WatcherEvent(sessionId=watch.session_id, type="status", data=status))

            self._fan_out(watch, events)

    def _error_event(self, watch: _SessionWatch, detail: str) -> WatcherEvent:
        return WatcherEvent(sessionId=watch.session_id, type="error", data=detail)

    def _fan_out(self, watch: _SessionWatch, events: list[WatcherEvent]) -> None:
        for event in events:
            for subscriber in list(watch.subscribers):
                subscriber._deliver(event)
            record_watcher_event(event.type, len(watch.subscribers))

    async def close(self) -> None:
        """Release every watch and end every open stream; used on server shutdown."""
        watches = list(self._watches.values())
        self._watches.clear()
        for watch in watches:
            for subscriber in watch.subscribers:
                subscriber._end()
            watch.subscribers.clear()
            await self._stop_watch(watch)

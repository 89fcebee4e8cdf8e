import asyncio
import json
import os
import tempfile
import time
import unittest
from pathlib import Path

from watchfiles import Change

from cloister.live_updates import LiveUpdateDistributor
from cloister.models import Message


def _line(record: dict) -> str:
    return json.dumps(record) + "\n"


def _user(text: str, msg_id: str) -> dict:
    return {"type": "user", "timestamp": "2026-02-16T10:00:00Z", "message": {"id": msg_id, "content": text}}


def _assistant_blocks(blocks: list, msg_id: str) -> dict:
    return {"type": "assistant", "timestamp": "2026-02-16T10:00:01Z", "message": {"id": msg_id, "content": blocks}}


class _FakeWatchSource:
    """Stands in for watchfiles.awatch; tests push changes explicitly."""

    def __init__(self) -> None:
        self.changes: asyncio.Queue = asyncio.Queue()
        self.opened = 0
        self.finished = 0
        self.yielded = 0

    def __call__(self, path, *, stop_event, debounce):
        self.opened += 1
        return self._iterate(path, stop_event)

    async def _iterate(self, path, stop_event):
        try:
            while not stop_event.is_set():
                await self.changes.get()
                self.yielded += 1
                yield {(Change.modified, str(path))}
        finally:
            self.finished += 1

    def touch(self) -> None:
        self.changes.put_nowait(None)


class _BrokenWatchSource:
    def __init__(self) -> None:
        self.opened = 0

    def __call__(self, path, *, stop_event, debounce):
        self.opened += 1
        return self._iterate()

    async def _iterate(self):
        raise RuntimeError("inotify limit reached")
        yield  # pragma: no cover


class LiveUpdateDistributorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.path = Path(tmpdir.name) / "session.jsonl"
        self.path.write_text(_line(_user("Run the tests", "m1")), encoding="utf-8")

    def _append(self, record: dict) -> None:
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(_line(record))

    async def _next(self, subscription):
        return await asyncio.wait_for(subscription.get(), timeout=2)

    async def test_subscribers_share_one_watch_and_each_get_every_event_once(self) -> None:
        source = _FakeWatchSource()
        distributor = LiveUpdateDistributor(watch_factory=source)

        first = await distributor.subscribe("s1", self.path)
        second = await distributor.subscribe("s1", self.path)
        await asyncio.sleep(0)

        self.assertEqual(distributor.watched_sessions(), ["s1"])
        self.assertEqual(distributor.subscriber_count("s1"), 2)
        self.assertEqual(source.opened, 1)

        self._append(_assistant_blocks([{"type": "text", "text": "All green."}], "m2"))
        source.touch()

        for subscription in (first, second):
            event = await self._next(subscription)
            self.assertEqual(event.sessionId, "s1")
            self.assertEqual(event.type, "message")
            self.assertIsInstance(event.data, Message)
            self.assertEqual(event.data.id, "m2")
            self.assertEqual(subscription.pending, 0)

        await first.close()
        self.assertEqual(distributor.subscriber_count("s1"), 1)
        self.assertEqual(source.finished, 0)

        await second.close()
        self.assertEqual(distributor.watched_sessions(), [])
        self.assertEqual(source.finished, 1)

        # Watch released: further changes reach nobody.
        yielded = source.yielded
        self._append(_user("Anything else?", "m3"))
        source.touch()
        await asyncio.sleep(0.05)
        self.assertEqual(source.yielded, yielded)
        self.assertEqual(first.pending, 0)
        self.assertEqual(second.pending, 0)

    async def test_history_is_not_replayed_and_status_transitions_are_published(self) -> None:
        old = time.time() - 600
        os.utime(self.path, (old, old))
        source = _FakeWatchSource()
        distributor = LiveUpdateDistributor(watch_factory=source)

        async with await distributor.subscribe("s1", self.path) as subscription:
            self._append(
                _assistant_blocks(
                    [{"type": "tool_use", "id": "q1", "name": "AskUserQuestion", "input": {}}],
                    "m2",
                )
            )
            source.touch()

            message_event = await self._next(subscription)
            status_event = await self._next(subscription)

            self.assertEqual(message_event.type, "message")
            self.assertEqual(message_event.data.id, "m2")
            self.assertEqual(status_event.type, "status")
            self.assertEqual(status_event.data, "awaiting")
            self.assertEqual(status_event.payload(), {"status": "awaiting"})

            # A change with nothing new publishes nothing.
            source.touch()
            await asyncio.sleep(0.05)
            self.assertEqual(subscription.pending, 0)

        self.assertEqual(distributor.watched_sessions(), [])

    async def test_reparse_failure_is_published_as_error_event(self) -> None:
        source = _FakeWatchSource()
        distributor = LiveUpdateDistributor(watch_factory=source)
        subscription = await distributor.subscribe("s1", self.path)

        self.path.unlink()
        source.touch()
        event = await self._next(subscription)

        self.assertEqual(event.type, "error")
        self.assertIn("error", event.payload())
        self.assertEqual(distributor.watched_sessions(), ["s1"])
        await subscription.close()

    async def test_watch_failure_is_published_as_error_event(self) -> None:
        distributor = LiveUpdateDistributor(watch_factory=_BrokenWatchSource())
        subscription = await distributor.subscribe("s1", self.path)

        event = await self._next(subscription)

        self.assertEqual(event.type, "error")
        self.assertIn("inotify limit reached", event.data)
        await subscription.close()
        self.assertEqual(distributor.watched_sessions(), [])

    async def test_failed_watch_ends_streams_and_is_replaced_for_the_next_subscriber(self) -> None:
        source = _BrokenWatchSource()
        distributor = LiveUpdateDistributor(watch_factory=source)
        first = await distributor.subscribe("s1", self.path)

        self.assertEqual((await self._next(first)).type, "error")
        self.assertIsNone(await self._next(first))
        self.assertTrue(first.closed)
        self.assertEqual(distributor.watched_sessions(), [])

        second = await distributor.subscribe("s1", self.path)
        event = await self._next(second)

        self.assertEqual(source.opened, 2)
        self.assertEqual(event.type, "error")
        await first.close()
        await second.close()

    async def test_distributor_close_wakes_blocked_readers(self) -> None:
        source = _FakeWatchSource()
        distributor = LiveUpdateDistributor(watch_factory=source)
        subscription = await distributor.subscribe("s1", self.path)
        received = []

        async def consume():
            async for event in subscription:
                received.append(event)

        reader = asyncio.create_task(consume())
        await asyncio.sleep(0)
        await distributor.close()
        await asyncio.wait_for(reader, timeout=2)

        self.assertEqual(received, [])
        self.assertTrue(subscription.closed)
        self.assertEqual(subscription.pending, 0)

    async def test_close_is_idempotent_and_distributor_close_releases_everything(self) -> None:
        source = _FakeWatchSource()
        distributor = LiveUpdateDistributor(watch_factory=source)
        a = await distributor.subscribe("s1", self.path)
        await a.close()
        await a.close()
        self.assertTrue(a.closed)

        b = await distributor.subscribe("s1", self.path)
        c = await distributor.subscribe("s2", self.path)
        await asyncio.sleep(0)
        await distributor.close()

        self.assertEqual(distributor.watched_sessions(), [])
        self.assertTrue(b.closed and c.closed)
        self.assertEqual(source.opened, source.finished)

    async def test_concurrent_subscribe_and_release_do_not_race(self) -> None:
        source = _FakeWatchSource()
        distributor = LiveUpdateDistributor(watch_factory=source)

        subscriptions = await asyncio.gather(
            *(distributor.subscribe("s1", self.path) for _ in range(10))
        )
        await asyncio.sleep(0)
        self.assertEqual(distributor.subscriber_count("s1"), 10)

        await asyncio.gather(*(s.close() for s in subscriptions))

        self.assertEqual(distributor.watched_sessions(), [])
        self.assertEqual(source.opened, 1)
        self.assertEqual(distributor._locks, {})


if __name__ == "__main__":
    unittest.main()

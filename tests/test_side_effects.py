"""Side-effect queue and per-connection outbox."""

from __future__ import annotations

import asyncio
import logging

from smartwindow.errors import NotifierUnavailable, PersistenceUnavailable
from smartwindow.relay.outbox import Outbox
from smartwindow.relay.side_effects import SideEffectQueue


class TestSideEffectQueue:
    async def test_jobs_run_in_background(self):
        queue = SideEffectQueue(workers=2)
        done: list[str] = []

        async def job(name: str) -> None:
            done.append(name)

        await queue.start()
        try:
            assert queue.submit("a", lambda: job("a"))
            assert queue.submit("b", lambda: job("b"))
            await queue.join()
        finally:
            await queue.stop()
        assert sorted(done) == ["a", "b"]
        assert not queue.running

    async def test_submit_never_blocks_when_full(self, caplog):
        queue = SideEffectQueue(maxsize=1, workers=1)

        async def noop() -> None:
            return None

        with caplog.at_level(logging.WARNING):
            assert queue.submit("first", noop)
            assert not queue.submit("second", noop)
        assert queue.dropped == 1
        assert "dropping second" in caplog.text

    async def test_failures_are_logged_and_do_not_stop_workers(self, caplog):
        queue = SideEffectQueue(workers=1)
        ran: list[str] = []

        async def archive_down() -> None:
            raise PersistenceUnavailable("firebase PUT /current_state returned HTTP 503")

        async def notifier_down() -> None:
            raise NotifierUnavailable("telegram sendMessage failed: HTTP 502")

        async def broken() -> None:
            raise ValueError("boom")

        async def fine() -> None:
            ran.append("fine")

        await queue.start()
        try:
            with caplog.at_level(logging.WARNING):
                queue.submit("archive", archive_down)
                queue.submit("notify", notifier_down)
                queue.submit("broken", broken)
                queue.submit("fine", fine)
                await queue.join()
        finally:
            await queue.stop()

        assert ran == ["fine"]
        assert "archive failed" in caplog.text
        assert "notify failed" in caplog.text
        assert "broken raised ValueError" in caplog.text

    async def test_slow_job_times_out(self, caplog):
        queue = SideEffectQueue(workers=1, timeout=0.05)

        async def hang() -> None:
            await asyncio.sleep(5)

        await queue.start()
        try:
            with caplog.at_level(logging.WARNING):
                queue.submit("hang", hang)
                await asyncio.wait_for(queue.join(), timeout=2)
        finally:
            await queue.stop()
        assert "hang timed out" in caplog.text

    async def test_error_messages_are_redacted(self, caplog):
        queue = SideEffectQueue(workers=1)

        async def leaky() -> None:
            raise NotifierUnavailable(
                "POST https://api.telegram.org/bot123456:ABCDEFGHIJKLMNOPQRSTUVWXYZ/sendMessage"
            )

        await queue.start()
        try:
            with caplog.at_level(logging.WARNING):
                queue.submit("notify", leaky)
                await queue.join()
        finally:
            await queue.stop()
        assert "ABCDEFGHIJKLMNOPQRSTUVWXYZ" not in caplog.text
        assert "bot[REDACTED]" in caplog.text


class TestOutbox:
    async def test_frames_delivered_in_order(self):
        outbox = Outbox(maxsize=4)
        assert outbox.offer("1")
        assert outbox.offer("2")
        assert await outbox.get() == "1"
        assert await outbox.get() == "2"

    async def test_close_wakes_reader(self):
        outbox = Outbox()
        reader = asyncio.create_task(outbox.get())
        await asyncio.sleep(0)
        outbox.close()
        assert await asyncio.wait_for(reader, timeout=1) is None
        assert not outbox.writable
        assert not outbox.offer("late")

    async def test_overflow_closes_slow_consumer(self):
        outbox = Outbox(maxsize=2)
        assert outbox.offer("a")
        assert outbox.offer("b")
        assert not outbox.offer("c")
        assert outbox.overflowed
        assert not outbox.writable
        assert await outbox.get() is None

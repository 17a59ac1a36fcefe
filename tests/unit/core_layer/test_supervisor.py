"""
Unit Tests for the Supervisor and PeriodicTask

Loops run on the real event loop with short intervals; every test stops
the supervisor before returning.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from src.core.resilience.supervisor import PeriodicTask, Supervisor


@pytest.mark.unit
class TestPeriodicTask:
    """Test loop semantics."""

    def test_interval_must_be_positive(self):
        async def noop():
            return None

        with pytest.raises(ValueError):
            PeriodicTask("bad", noop, 0)

    @pytest.mark.asyncio
    async def test_failed_iteration_does_not_end_loop(self):
        calls = []
        errors = []

        async def flaky():
            calls.append(1)
            raise RuntimeError("boom")

        task = PeriodicTask(
            "flaky",
            flaky,
            interval_seconds=10,
            error_backoff_seconds=0.01,
            on_error=lambda name, e: errors.append((name, str(e))),
        )
        handle = asyncio.create_task(task.run())
        for _ in range(100):
            if len(calls) >= 3:
                break
            await asyncio.sleep(0.01)
        task.stop()
        await asyncio.wait_for(handle, timeout=1)

        assert len(calls) >= 3
        assert task.errors == len(calls)
        assert errors[0] == ("flaky", "boom")

    @pytest.mark.asyncio
    async def test_stop_wakes_sleeping_loop(self):
        async def noop():
            return None

        task = PeriodicTask("slow", noop, interval_seconds=3600)
        handle = asyncio.create_task(task.run())
        await asyncio.sleep(0.01)

        task.stop()
        await asyncio.wait_for(handle, timeout=1)

        assert task.iterations == 1
        assert task.running is False


@pytest.mark.unit
class TestSupervisor:
    """Test start/stop/remove of a set of loops."""

    @pytest.mark.asyncio
    async def test_start_runs_tasks_immediately(self):
        ran = asyncio.Event()

        async def body():
            ran.set()

        supervisor = Supervisor()
        supervisor.add(PeriodicTask("job-dispatch", body, 60))
        await supervisor.start()
        try:
            await asyncio.wait_for(ran.wait(), timeout=1)
            assert supervisor.is_running("job-dispatch") is True
        finally:
            await supervisor.stop(timeout=1)

        assert supervisor.is_running("job-dispatch") is False
        assert supervisor.started is False

    @pytest.mark.asyncio
    async def test_delayed_task_does_not_run_on_start(self):
        calls = []

        async def body():
            calls.append(1)

        supervisor = Supervisor()
        supervisor.add(PeriodicTask("provider-health-probe", body, 60, run_immediately=False))
        await supervisor.start()
        await asyncio.sleep(0.02)
        await supervisor.stop(timeout=1)

        assert calls == []

    @pytest.mark.asyncio
    async def test_add_while_running_starts_task(self):
        ran = asyncio.Event()

        async def body():
            ran.set()

        supervisor = Supervisor()
        await supervisor.start()
        try:
            supervisor.add(PeriodicTask("sync:abc", body, 60))
            await asyncio.wait_for(ran.wait(), timeout=1)
        finally:
            await supervisor.stop(timeout=1)

    @pytest.mark.asyncio
    async def test_remove(self):
        async def body():
            return None

        supervisor = Supervisor()
        supervisor.add(PeriodicTask("sync:abc", body, 60))
        await supervisor.start()

        assert await supervisor.remove("sync:abc") is True
        assert await supervisor.remove("sync:abc") is False
        assert supervisor.names() == []

        await supervisor.stop(timeout=1)

    def test_duplicate_names_rejected(self):
        async def body():
            return None

        supervisor = Supervisor()
        supervisor.add(PeriodicTask("webhook-sweep", body, 30))

        with pytest.raises(ValueError):
            supervisor.add(PeriodicTask("webhook-sweep", body, 30))

    @pytest.mark.asyncio
    async def test_loop_errors_reach_metrics(self):
        metrics = MagicMock()
        failed = asyncio.Event()

        async def body():
            failed.set()
            raise RuntimeError("database unavailable")

        supervisor = Supervisor(metrics=metrics)
        supervisor.add(PeriodicTask("job-dispatch", body, 60, error_backoff_seconds=60))
        await supervisor.start()
        try:
            await asyncio.wait_for(failed.wait(), timeout=1)
            await asyncio.sleep(0.01)
        finally:
            await supervisor.stop(timeout=1)

        metrics.record_loop_error.assert_called_with("job-dispatch")

    @pytest.mark.asyncio
    async def test_snapshot(self):
        async def body():
            return None

        supervisor = Supervisor()
        supervisor.add(PeriodicTask("b-loop", body, 5))
        supervisor.add(PeriodicTask("a-loop", body, 10))

        snapshot = supervisor.snapshot()

        assert [t["name"] for t in snapshot] == ["a-loop", "b-loop"]
        assert snapshot[0]["interval_seconds"] == 10
        assert snapshot[0]["running"] is False

"""
Supervisor - Owner of Every Background Loop

The engine runs several periodic loops side by side:
    job-dispatch          - claims and publishes due post jobs
    job-lease-reaper      - returns jobs with an expired claim lease to pending
    webhook-sweep         - re-attempts pending webhook deliveries
    webhook-lease-reaper  - settles deliveries stuck in delivering
    provider-health-probe - re-probes image providers
    sync:<integration_id> - one loop per integration with a periodic cadence

Each loop is a PeriodicTask. The Supervisor starts, stops and awaits them as a
unit so shutdown is clean and tests can drive loops deterministically.

Loop Semantics:
    - The body runs immediately on start (unless run_immediately=False),
      then once per interval.
    - The wait between iterations is on a stop event, so stop() wakes the
      loop at once instead of after a full interval.
    - An exception in one iteration is logged and followed by an error
      backoff; it never ends the loop.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """
    A named coroutine function run on a fixed interval.

    Attributes:
        name: Unique name inside a Supervisor
        func: Zero-argument coroutine function run each iteration
        interval_seconds: Wait between iterations
        error_backoff_seconds: Wait after a failed iteration
        run_immediately: Run the first iteration without waiting
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        error_backoff_seconds: float = 5.0,
        run_immediately: bool = True,
        on_error: Callable[[str, Exception], None] | None = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self.error_backoff_seconds = error_backoff_seconds
        self.run_immediately = run_immediately
        self._on_error = on_error
        self._running = False
        self._shutdown_event = asyncio.Event()
        self.iterations = 0
        self.errors = 0

    @property
    def running(self) -> bool:
        return self._running

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run(self) -> None:
        """Run until stop() is called or the task is cancelled."""
        self._running = True
        self._shutdown_event.clear()

        logger.info("Periodic task started", task=self.name, interval_seconds=self.interval_seconds)

        if not self.run_immediately:
            await self._sleep(self.interval_seconds)

        while self._running and not self._shutdown_event.is_set():
            delay = self.interval_seconds
            try:
                await self.func()
                self.iterations += 1
            except asyncio.CancelledError:
                logger.info("Periodic task cancelled", task=self.name)
                self._running = False
                raise
            except Exception as e:
                self.errors += 1
                delay = self.error_backoff_seconds
                logger.error(
                    "Periodic task iteration failed, backing off",
                    task=self.name,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                if self._on_error is not None:
                    self._on_error(self.name, e)

            if self._shutdown_event.is_set():
                break
            await self._sleep(delay)

        self._running = False
        logger.info("Periodic task stopped", task=self.name, iterations=self.iterations)

    def stop(self) -> None:
        """Signal the loop to exit after the current iteration."""
        self._running = False
        self._shutdown_event.set()


class Supervisor:
    """
    Starts, stops and awaits a set of PeriodicTasks as a unit.

    Usage:
        supervisor = Supervisor()
        supervisor.add(PeriodicTask("job-dispatch", scheduler.dispatch_due_jobs, 60))
        await supervisor.start()
        ...
        await supervisor.stop(timeout=5.0)
    """

    def __init__(self, shutdown_timeout_seconds: float = 5.0, metrics: Any | None = None):
        self._tasks: dict[str, PeriodicTask] = {}
        self._handles: dict[str, asyncio.Task] = {}
        self._started = False
        self._shutdown_timeout = shutdown_timeout_seconds
        self._metrics = metrics

    @property
    def started(self) -> bool:
        return self._started

    def _record_error(self, name: str, error: Exception) -> None:
        if self._metrics is not None:
            self._metrics.record_loop_error(name)

    def _spawn(self, task: PeriodicTask) -> None:
        self._handles[task.name] = asyncio.create_task(task.run(), name=task.name)

    def add(self, task: PeriodicTask) -> None:
        """Register a task; it starts right away if the supervisor is running."""
        if task.name in self._tasks:
            raise ValueError(f"Task already registered: {task.name}")
        if task._on_error is None:
            task._on_error = self._record_error
        self._tasks[task.name] = task
        if self._started:
            self._spawn(task)

    async def remove(self, name: str, timeout: float | None = None) -> bool:
        """Stop a task, wait for it to exit, and forget it."""
        task = self._tasks.pop(name, None)
        if task is None:
            return False
        handle = self._handles.pop(name, None)
        task.stop()
        if handle is not None:
            await self._await_handles([handle], timeout)
        logger.info("Periodic task removed", task=name)
        return True

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        for name, task in self._tasks.items():
            if name not in self._handles or self._handles[name].done():
                self._spawn(task)
        logger.info("Supervisor started", tasks=self.names())

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop every task.

        Waits up to `timeout` for the loops to exit on their own, then
        cancels whatever is still running.
        """
        self._started = False
        for task in self._tasks.values():
            task.stop()
        handles = list(self._handles.values())
        self._handles.clear()
        await self._await_handles(handles, timeout)
        logger.info("Supervisor stopped")

    async def _await_handles(self, handles: list[asyncio.Task], timeout: float | None) -> None:
        if not handles:
            return
        timeout = self._shutdown_timeout if timeout is None else timeout
        _, pending = await asyncio.wait(handles, timeout=timeout)
        if pending:
            logger.warning(
                "Task shutdown timeout, cancelling",
                tasks=[h.get_name() for h in pending],
                timeout_seconds=timeout,
            )
            for handle in pending:
                handle.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def wait(self) -> None:
        """Block until every running task has exited."""
        handles = list(self._handles.values())
        if handles:
            await asyncio.gather(*handles, return_exceptions=True)

    def names(self) -> list[str]:
        return sorted(self._tasks)

    def is_running(self, name: str) -> bool:
        handle = self._handles.get(name)
        return handle is not None and not handle.done()

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {
                "name": task.name,
                "interval_seconds": task.interval_seconds,
                "running": self.is_running(task.name),
                "iterations": task.iterations,
                "errors": task.errors,
            }
            for task in sorted(self._tasks.values(), key=lambda t: t.name)
        ]

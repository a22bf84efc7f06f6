"""In-flight request tracking and graceful shutdown.

This module handles:
- Counting requests currently being served
- Draining in-flight requests on SIGINT/SIGTERM or an uncaught error
- Forcing a non-zero exit once the grace period elapses

Shutdown happens at most once per process; later triggers are logged and
ignored.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import signal
import threading
import time
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Any

from execpack.errors import ShutdownTimeout

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 30.0
DEFAULT_POLL_INTERVAL = 0.1

EXIT_CLEAN = 0
EXIT_FORCED = 1

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class RequestCounter:
    """Thread-safe count of requests being served."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active = 0

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    def increment(self) -> int:
        with self._lock:
            self._active += 1
            return self._active

    def decrement(self) -> int:
        with self._lock:
            if self._active == 0:
                raise RuntimeError("Request counter decremented below zero")
            self._active -= 1
            return self._active

    @contextmanager
    def track(self) -> Iterator[None]:
        """Count a request for the duration of the block, on every exit path."""
        self.increment()
        try:
            yield
        finally:
            self.decrement()


class ShutdownCoordinator:
    """Coordinates a single graceful shutdown.

    Args:
        counter: Counter of in-flight requests.
        grace_period: Seconds to wait for in-flight requests.
        poll_interval: Seconds between counter checks.
        stop_accepting: Called first to stop accepting new connections; may
            return an awaitable.
        clock: Monotonic clock.
        sleep: Coroutine function used between checks.
    """

    def __init__(
        self,
        counter: RequestCounter,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stop_accepting: Callable[[], Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.counter = counter
        self.grace_period = grace_period
        self.poll_interval = poll_interval
        self._stop_accepting = stop_accepting
        self._clock = clock
        self._sleep = sleep
        self._task: asyncio.Task[int] | None = None
        self._finished = asyncio.Event()
        self.exit_code: int | None = None

    @property
    def shutting_down(self) -> bool:
        return self._task is not None

    def request_shutdown(self, reason: str) -> bool:
        """Start shutting down unless a shutdown is already in progress.

        Must be called from the running event loop.

        Returns:
            True if this call started the shutdown.
        """
        if self._task is not None:
            logger.info("Shutdown already in progress, ignoring %s", reason)
            return False

        logger.info("Received %s, shutting down gracefully...", reason)
        self._task = asyncio.get_running_loop().create_task(self._shutdown())
        return True

    def handle_signal(self, signame: str) -> None:
        self.request_shutdown(signame)

    def handle_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        """Event loop exception handler routing uncaught errors to shutdown."""
        exc = context.get("exception")
        logger.error(
            "Uncaught error: %s",
            context.get("message", "unhandled exception"),
            exc_info=exc,
        )
        self.request_shutdown("uncaught error")

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.handle_signal, sig.name)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                signal.signal(
                    sig,
                    lambda signum, frame: loop.call_soon_threadsafe(
                        self.handle_signal, signal.Signals(signum).name
                    ),
                )

    async def _drain(self) -> None:
        deadline = self._clock() + self.grace_period
        while (active := self.counter.active) > 0:
            if self._clock() >= deadline:
                raise ShutdownTimeout(self.grace_period, active)
            logger.debug("Waiting for %d in-flight request(s)", active)
            await self._sleep(self.poll_interval)

    async def _stop(self) -> None:
        if self._stop_accepting is None:
            return
        try:
            result = self._stop_accepting()
            if inspect.isawaitable(result):
                await result
        except Exception:
            # Shutdown still drains and exits
            logger.exception("Failed to stop accepting connections")

    async def _shutdown(self) -> int:
        code = EXIT_FORCED
        try:
            await self._stop()
            await self._drain()
        except ShutdownTimeout as e:
            logger.warning("%s; forcing shutdown", e)
        else:
            logger.info("All requests finished, shutting down")
            code = EXIT_CLEAN
        finally:
            self.exit_code = code
            self._finished.set()
        return code

    async def wait(self) -> int:
        """Wait until the shutdown completes.

        Returns:
            Process exit code: 0 after a clean drain, 1 after a timeout.
        """
        await self._finished.wait()
        if self.exit_code is None:
            raise RuntimeError("Shutdown finished without an exit code")
        return self.exit_code


__all__ = [
    "DEFAULT_GRACE_PERIOD",
    "DEFAULT_POLL_INTERVAL",
    "EXIT_CLEAN",
    "EXIT_FORCED",
    "RequestCounter",
    "ShutdownCoordinator",
]

"""Shared background asyncio loop and the sync-side bridge into it."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine
from concurrent.futures import Future, TimeoutError
from typing import Any, TypeVar

L = logging.getLogger("camera_ai_bridge.runtime")


T = TypeVar("T")


class LoopRunner:
    """Owns one asyncio loop on a daemon thread.

    Pipeline runs, captures, HTTP calls and timed waits all execute on this
    loop. Other threads (main thread, the MQTT network thread) hand work over
    with `run_async` (blocking) or `submit` (fire-and-forget).
    """

    def __init__(self, *, logger: logging.Logger | None = None):
        self._logger = logger or L
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._stopped = False
        self._lock = threading.Lock()
        self._loop_thread_ident: int | None = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._ensure_loop()

    def in_loop_thread(self) -> bool:
        return (
            self._loop_thread_ident is not None
            and threading.get_ident() == self._loop_thread_ident
        )

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._stopped:
                raise RuntimeError("Async loop already stopped")
            if self._loop and self._thread and self._thread.is_alive():
                return self._loop
            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def _runner():
                asyncio.set_event_loop(loop)
                self._loop_thread_ident = threading.get_ident()
                ready.set()
                loop.run_forever()

            self._loop = loop
            self._thread = threading.Thread(
                target=_runner, name="camera-ai-bridge-loop", daemon=True
            )
            self._thread.start()
            ready.wait(timeout=1.0)
            return loop

    def run_async(self, coro: Coroutine[Any, Any, T], timeout: float | None = 1.0) -> T:
        """Run `coro` on the loop from another thread and wait for its result."""
        loop = self._ensure_loop()
        if self.in_loop_thread():
            coro.close()
            raise RuntimeError(
                "run_async must not be called from the loop thread; await directly"
            )
        fut = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return fut.result(timeout=timeout)
        except TimeoutError:
            fut.cancel()
            self._logger.warning("run_async timeout after %.2fs", timeout or 0)
            raise

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Future | asyncio.Task:
        """Schedule `coro` without waiting; safe from any thread."""
        loop = self._ensure_loop()
        if self.in_loop_thread():
            return loop.create_task(coro)
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def shutdown_loop(self, timeout: float = 2.0):
        """Cancel whatever is still pending and stop the loop thread."""
        if self.in_loop_thread():
            raise RuntimeError("shutdown_loop must not be called from the loop thread")
        with self._lock:
            loop = self._loop
            thread = self._thread
            self._stopped = True
            if not loop or not thread or loop.is_closed():
                return

        async def _shutdown():
            current = asyncio.current_task()
            tasks = [t for t in asyncio.all_tasks() if t is not current and not t.done()]
            if tasks:
                names = [t.get_name() for t in tasks[:10]]
                suffix = f" (+{len(tasks) - 10} more)" if len(tasks) > 10 else ""
                self._logger.info(
                    "shutdown_loop cancelling %d task(s): %s%s",
                    len(tasks),
                    ", ".join(names),
                    suffix,
                )
                for t in tasks:
                    t.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
            await loop.shutdown_asyncgens()

        fut = asyncio.run_coroutine_threadsafe(_shutdown(), loop)
        try:
            fut.result(timeout=timeout)
        except TimeoutError:
            fut.cancel()
            self._logger.warning("shutdown_loop timed out after %.2fs", timeout)
        finally:
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=timeout)
            if not thread.is_alive() and not loop.is_closed():
                loop.close()
            self._loop = None
            self._thread = None
            self._loop_thread_ident = None


__all__ = ["LoopRunner"]

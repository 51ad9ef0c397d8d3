"""Graceful shutdown for the long-running `schedule` and `crawl` commands.

The first SIGINT/SIGTERM sets a flag that the crawler checks between
fetches and the foreground scheduler loop waits on. A second signal runs
the registered cleanups and exits.
"""

import signal
import sys
import threading
from typing import Callable, List, Optional

from partscrape.logging_config import get_logger

__all__ = [
    "ShutdownHandler",
    "get_shutdown_handler",
    "shutdown_requested",
    "register_cleanup",
]

logger = get_logger("shutdown")


class ShutdownHandler:
    """Process-wide shutdown flag plus cleanup callbacks.

    Usage:
        handler = get_shutdown_handler().install()
        handler.register_cleanup(scheduler.shutdown)
        handler.wait()
        handler.cleanup()
    """

    _instance: Optional["ShutdownHandler"] = None
    _lock = threading.Lock()

    def __init__(self) -> None:
        self._event = threading.Event()
        self._cleanups: List[Callable[[], None]] = []
        self._previous = {}
        self._installed = False

    @classmethod
    def get_instance(cls) -> "ShutdownHandler":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def install(self) -> "ShutdownHandler":
        """Install SIGINT/SIGTERM handlers. Main thread only."""
        if self._installed:
            return self
        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous[signum] = signal.getsignal(signum)
            signal.signal(signum, self._handle_signal)
        self._installed = True
        return self

    def uninstall(self) -> None:
        if not self._installed:
            return
        for signum, handler in self._previous.items():
            if handler is not None:
                signal.signal(signum, handler)
        self._previous.clear()
        self._installed = False

    def _handle_signal(self, signum: int, frame) -> None:
        logger.warning(f"Received {signal.Signals(signum).name}, shutting down (repeat to force)")
        self._event.set()
        signal.signal(signum, self._force_exit)

    def _force_exit(self, signum: int, frame) -> None:
        logger.error("Forced exit")
        self.cleanup()
        sys.exit(1)

    @property
    def shutdown_requested(self) -> bool:
        return self._event.is_set()

    def request_shutdown(self) -> None:
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown is requested. Returns the flag."""
        return self._event.wait(timeout)

    def register_cleanup(self, callback: Callable[[], None]) -> None:
        self._cleanups.append(callback)

    def cleanup(self) -> None:
        """Run cleanups in registration order; a failing one does not stop the rest."""
        callbacks, self._cleanups = self._cleanups, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cleanup callback failed: {e}")

    def reset(self) -> None:
        self._event.clear()


def get_shutdown_handler() -> ShutdownHandler:
    return ShutdownHandler.get_instance()


def shutdown_requested() -> bool:
    return get_shutdown_handler().shutdown_requested


def register_cleanup(callback: Callable[[], None]) -> None:
    get_shutdown_handler().register_cleanup(callback)

"""
Process-wide signal registry for pipe cleanup.

Each live ``NamedPipe`` registers its cleanup callback here. The registry
keeps only weak references, installs one handler for SIGINT and SIGTERM, and
on delivery runs every callback that is still alive. A failing callback is
logged and skipped so the signal path never raises.
"""

import itertools
import os
import signal
import threading
import weakref
from typing import Callable, Dict, Iterable, Optional, Tuple

from fifostream import app_logger

DEFAULT_SIGNALS: Tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)

_COMPONENT = "SignalRegistry"


def _weak_callback(callback: Callable[[], object]) -> weakref.ref:
    if hasattr(callback, "__self__") and hasattr(callback, "__func__"):
        return weakref.WeakMethod(callback)
    return weakref.ref(callback)


class SignalRegistry:
    """
    Weak registry of cleanup callbacks triggered by process signals.

    Handlers are installed lazily on the first registration and restored by
    ``uninstall()``, or once the last callback is unregistered. When
    ``chain_previous`` is set, the previous handler runs after the callbacks:
    a Python callable (``signal.default_int_handler`` for SIGINT, say) is
    called, and ``SIG_DFL`` is restored and the signal delivered again so the
    default action still happens.
    """

    def __init__(
        self,
        signals: Iterable[int] = DEFAULT_SIGNALS,
        chain_previous: bool = True,
    ):
        """
        Initialise the registry.

        Args:
            signals: Signal numbers to handle
            chain_previous: Call the previously installed Python handler after
                running the callbacks
        """
        self._signals = tuple(signals)
        self._chain_previous = chain_previous
        self._callbacks: Dict[int, weakref.ref] = {}
        self._previous_handlers: Dict[int, object] = {}
        self._installed = False
        self._tokens = itertools.count(1)
        self._lock = threading.RLock()

    @property
    def installed(self) -> bool:
        return self._installed

    def register(self, callback: Callable[[], object]) -> int:
        """
        Register a cleanup callback.

        Args:
            callback: Zero-argument callable; bound methods are held through
                ``weakref.WeakMethod`` so the owner can still be collected

        Returns:
            Token for ``unregister``
        """
        with self._lock:
            token = next(self._tokens)
            self._callbacks[token] = _weak_callback(callback)
            if not self._installed:
                self.install()
            return token

    def unregister(self, token: Optional[int]) -> None:
        """
        Remove a callback. Unknown tokens are ignored.

        Once no live callback remains the previous handlers are restored, so
        the process reacts to the signals as it did before registration.
        """
        if token is None:
            return
        with self._lock:
            self._callbacks.pop(token, None)
            self._prune()
            if self._callbacks or not self._installed:
                return
            if threading.current_thread() is threading.main_thread():
                self.uninstall()

    def _prune(self) -> None:
        dead = [token for token, ref in self._callbacks.items() if ref() is None]
        for token in dead:
            del self._callbacks[token]

    def live_count(self) -> int:
        """Number of registered callbacks whose owner is still alive."""
        with self._lock:
            return sum(1 for ref in self._callbacks.values() if ref() is not None)

    def install(self) -> bool:
        """
        Install the handler for every configured signal.

        Returns:
            True if installed; False when called off the main thread, where
            Python does not allow setting signal handlers
        """
        with self._lock:
            if self._installed:
                return True

            if threading.current_thread() is not threading.main_thread():
                app_logger.warning(
                    "Signal handlers can only be installed from the main thread",
                    _COMPONENT,
                )
                return False

            for signum in self._signals:
                self._previous_handlers[signum] = signal.getsignal(signum)
                signal.signal(signum, self._handle_signal)
            self._installed = True
            return True

    def uninstall(self) -> None:
        """Restore the handlers that were in place before ``install()``."""
        with self._lock:
            if not self._installed:
                return
            for signum, previous in self._previous_handlers.items():
                try:
                    signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
                except (ValueError, OSError) as e:
                    app_logger.warning(
                        "Failed to restore signal handler", _COMPONENT, signum=signum, error=str(e)
                    )
            self._previous_handlers.clear()
            self._installed = False

    def dispatch(self, signum: int) -> int:
        """
        Run every live callback.

        Args:
            signum: Signal being handled, for logging

        Returns:
            Number of callbacks invoked
        """
        with self._lock:
            self._prune()
            callbacks = [ref() for ref in self._callbacks.values()]

        invoked = 0
        for callback in callbacks:
            if callback is None:
                continue
            invoked += 1
            try:
                callback()
            except Exception as e:
                app_logger.error(
                    "Cleanup callback failed during signal handling",
                    _COMPONENT,
                    exc_info=True,
                    signum=signum,
                    error=str(e),
                )
        return invoked

    def _handle_signal(self, signum, frame) -> None:
        # Read before dispatch, a callback may uninstall the registry
        previous = self._previous_handlers.get(signum)
        self.dispatch(signum)

        if not self._chain_previous or previous == signal.SIG_IGN:
            return
        if previous is None or previous == signal.SIG_DFL:
            # Re-deliver with the default action, which usually terminates
            self.uninstall()
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)
        elif callable(previous):
            previous(signum, frame)


# Shared by every NamedPipe unless one is given explicitly
default_registry = SignalRegistry()

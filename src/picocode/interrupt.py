"""Cooperative interrupt flag, checked by the turn loop between steps.

Embedders (a GUI, a signal handler, another thread) call
``trigger_interrupt()``; the running turn stops before its next model call
or tool call and records the calls it did not run as cancelled.
"""

import signal
import threading
from contextlib import contextmanager
from dataclasses import dataclass


@dataclass
class InterruptState:
    """Shared state for interrupt handling."""
    interrupted: bool = False
    reason: str = ""

    def reset(self):
        self.interrupted = False
        self.reason = ""

    def trigger(self, reason: str = "user"):
        self.interrupted = True
        self.reason = reason

    def is_interrupted(self) -> bool:
        return self.interrupted


# Global interrupt state
_interrupt_state = InterruptState()


def get_interrupt_state() -> InterruptState:
    """Get the global interrupt state."""
    return _interrupt_state


def trigger_interrupt(reason: str = "user"):
    """Trigger an interrupt externally."""
    _interrupt_state.trigger(reason)


@contextmanager
def interruptible():
    """Make Ctrl-C raise ``KeyboardInterrupt`` inside a blocking call.

    ``asyncio.run`` installs its own SIGINT handler that only cancels the
    main task, which cannot reach code blocked on stdin.  Inside this block
    the default handler is restored so the first Ctrl-C raises at once.
    Signal handlers can only be swapped from the main thread; elsewhere this
    is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, signal.default_int_handler)
    try:
        yield
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

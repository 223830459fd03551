"""Utilities for turning Ctrl+C into cooperative cancellation.

mirari must not die on the first Ctrl+C: a running kernel or host process
has to be stopped first. While ``sigint_cancels`` is active, SIGINT only
sets the CancellationToken; the ProcessRunner notices it and stops the
child. A second Ctrl+C raises KeyboardInterrupt as usual.
"""

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Any, Iterator

from .runner import CancellationToken


@contextmanager
def sigint_cancels(token: CancellationToken) -> Iterator[CancellationToken]:
    """Route SIGINT to a cancellation token for the duration of the block.

    Usage:
        token = CancellationToken()
        with sigint_cancels(token):
            driver.run(flags)

    Signal handlers can only be installed from the main thread; elsewhere
    this is a no-op and the runner still sees KeyboardInterrupt.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def handler(signum: int, frame: Any) -> None:
        if token.cancelled:
            raise KeyboardInterrupt
        logging.warning("Interrupt received, stopping running processes (press Ctrl+C again to force)")
        token.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)

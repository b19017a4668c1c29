from __future__ import annotations

import signal
import threading
from typing import TYPE_CHECKING, Any

from repodocs.exceptions import OperationCancelledError
from repodocs.logging import logger

if TYPE_CHECKING:
    from types import FrameType


class CancellationToken:
    """Thread-safe flag observed between units of work.

    It is checked between traversal entries and before each copy is scheduled,
    never in the middle of a single file write.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise `OperationCancelledError` once `cancel()` was called."""
        if self._event.is_set():
            raise OperationCancelledError

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


def install_interrupt_handler(token: CancellationToken) -> Any:  # noqa: ANN401
    """Route SIGINT to `token`.

    The first interrupt cancels the token so the run can wind down and clean up;
    a second one raises `KeyboardInterrupt` immediately.

    Args:
        token (CancellationToken): the token of the current run

    Returns:
        Any: the previous SIGINT handler, to restore with `signal.signal`
    """

    def handler(signum: int, frame: FrameType | None) -> None:  # noqa: ARG001
        if token.cancelled:
            raise KeyboardInterrupt
        logger.warning("interrupt_received", action="finishing in-flight work")
        token.cancel()

    return signal.signal(signal.SIGINT, handler)

from __future__ import annotations

import signal

import pytest

from repodocs.cancellation import CancellationToken, install_interrupt_handler
from repodocs.exceptions import OperationCancelledError


@pytest.mark.unit
def test_token_raises_only_after_cancel() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel()

    assert token.cancelled
    with pytest.raises(OperationCancelledError) as exc_info:
        token.raise_if_cancelled()
    assert exc_info.value.exit_code == 130
    assert str(exc_info.value) == "Operation was cancelled by user."


@pytest.mark.unit
def test_interrupt_handler_cancels_then_escalates() -> None:
    token = CancellationToken()
    previous = install_interrupt_handler(token)
    try:
        handler = signal.getsignal(signal.SIGINT)
        assert callable(handler)

        handler(signal.SIGINT, None)
        assert token.cancelled

        with pytest.raises(KeyboardInterrupt):
            handler(signal.SIGINT, None)
    finally:
        signal.signal(signal.SIGINT, previous)

# paxcore/core/cancellation.py
from __future__ import annotations

import threading

from paxcore.core.errors import OperationCancelled

__all__ = ["CancellationToken", "checkpoint"]



class CancellationToken:
    """
    Cooperative cancellation flag shared by locate -> resolve -> execute.

    Work never stops by itself; long-running steps call checkpoint() before
    each directory descent and before each subprocess spawn.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def checkpoint(self, stage: str) -> None:
        if self._event.is_set():
            raise OperationCancelled(stage)



def checkpoint(token: CancellationToken | None, stage: str) -> None:
    if token is not None:
        token.checkpoint(stage)

"""Cooperative cancellation shared by the scan orchestrator and its workers."""

from __future__ import annotations

import threading

from swcscan.core.errors import ScanCancelled


class CancellationToken:
    """Set once by the orchestrator; checked by workers between units of work.

    Workers call ``check()`` before each function and each detector, so a
    cancelled scan stops within one function's or one detector's work.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def check(self, contract: str | None = None) -> None:
        """Raises:
            ScanCancelled: if the token has been cancelled.
        """
        if self._event.is_set():
            raise ScanCancelled(f"Scan cancelled: {self._reason}", contract=contract)

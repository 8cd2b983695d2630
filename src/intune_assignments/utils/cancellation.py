from __future__ import annotations

import asyncio
from typing import Callable

from .logging import get_logger


logger = get_logger(__name__)


class CancellationError(asyncio.CancelledError):
    """Raised when an inventory pass is cancelled through its token."""

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason


class CancellationToken:
    """Read-only view of a ``CancellationTokenSource``."""

    __slots__ = ("_source",)

    def __init__(self, source: CancellationTokenSource) -> None:
        self._source = source

    @property
    def cancelled(self) -> bool:
        return self._source.cancelled

    @property
    def reason(self) -> str | None:
        return self._source.reason

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancellationError(self.reason)

    def on_cancel(self, callback: Callable[[CancellationToken], None]) -> None:
        if self.cancelled:
            callback(self)
            return
        self._source._callbacks.append(callback)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled}, reason={self.reason!r})"


class CancellationTokenSource:
    """Owns a token and flips it when ``cancel`` is called."""

    __slots__ = ("_cancelled", "_reason", "_callbacks", "_token")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[CancellationToken], None]] = []
        self._token = CancellationToken(self)

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, *, reason: str | None = None) -> bool:
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason
        logger.info("Cancellation requested", reason=reason)
        for callback in list(self._callbacks):
            try:
                callback(self._token)
            except Exception:  # pragma: no cover - notification failures are logged only
                logger.exception("Cancellation callback raised an exception")
        self._callbacks.clear()
        return True


__all__ = ["CancellationError", "CancellationToken", "CancellationTokenSource"]

"""Cooperative cancellation signal attached to one task run."""

from __future__ import annotations

import logging
from collections.abc import Callable

from research_agents.framework.errors import CancellationError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Flag polled by steps between units of work.

    Cancellation never interrupts a running call; steps are expected to check
    ``cancelled`` (or call ``raise_if_cancelled``) and exit early.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def on_cancelled(self, callback: Callable[[], None]) -> None:
        """Register ``callback``; runs immediately when already cancelled."""

        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationError()

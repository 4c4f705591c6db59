"""Cooperative cancellation token."""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

CancelHook = Callable[[bool], None]


class CancellationToken:
    """Collects cancellation hooks for one run and fires them on request.

    Hooks receive a `force` flag: True asks for an abrupt stop (kill), False
    for a graceful one (close request). Checkpoints that poll can also observe
    `cancelled` directly.
    """

    def __init__(self) -> None:
        self._hooks: list[CancelHook] = []
        self._cancelled = False
        self._forced = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def hook_count(self) -> int:
        return len(self._hooks)

    def register(self, hook: CancelHook) -> Callable[[], None]:
        """Register a cancellation hook.

        If the token is already cancelled the hook is invoked immediately.

        Returns:
            A callable that unregisters the hook. Safe to call more than once.
        """
        self._hooks.append(hook)
        if self._cancelled:
            self._invoke(hook, self._forced)

        def unregister() -> None:
            if hook in self._hooks:
                self._hooks.remove(hook)

        return unregister

    def cancel(self, force: bool = True) -> None:
        """Mark the token cancelled and invoke every registered hook."""
        self._cancelled = True
        self._forced = self._forced or force
        for hook in list(self._hooks):
            self._invoke(hook, force)

    def _invoke(self, hook: CancelHook, force: bool) -> None:
        try:
            hook(force)
        except Exception as e:
            logger.warning(f"Cancellation hook {hook!r} failed: {e}")

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancellationToken({state}, hooks={len(self._hooks)})"

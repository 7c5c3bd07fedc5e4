"""
Instance-scoped initialization state for external providers.

Each detector and session receives a ``ProviderState`` instead of reading a
process-wide "library loaded" flag. Transitions::

    UNINITIALIZED -> LOADING -> READY
                             -> FAILED
    FAILED / READY -> UNINITIALIZED   (reset, full re-initialization)
"""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Union

from ..utils.logging_config import get_logger
from .exceptions import ProviderUnavailable

logger = get_logger(__name__)


class ProviderStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


_ALLOWED = {
    ProviderStatus.UNINITIALIZED: {ProviderStatus.LOADING},
    ProviderStatus.LOADING: {ProviderStatus.READY, ProviderStatus.FAILED},
    ProviderStatus.READY: {ProviderStatus.UNINITIALIZED},
    ProviderStatus.FAILED: {ProviderStatus.UNINITIALIZED},
}


class ProviderState:
    """Initialization state machine for one named provider."""

    def __init__(self, name: str):
        self.name = name
        self.status = ProviderStatus.UNINITIALIZED
        self.error: Optional[BaseException] = None
        self._listeners: List[Callable[[ProviderStatus], None]] = []

    def _transition(self, target: ProviderStatus) -> None:
        if target not in _ALLOWED[self.status]:
            raise RuntimeError(
                f"Invalid provider transition for {self.name}: "
                f"{self.status.value} -> {target.value}"
            )
        logger.debug(f"Provider {self.name}: {self.status.value} -> {target.value}")
        self.status = target
        for listener in list(self._listeners):
            listener(target)

    def subscribe(self, listener: Callable[[ProviderStatus], None]) -> Callable[[], None]:
        """Register a transition listener. Returns a disposer."""
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def begin_loading(self) -> None:
        self._transition(ProviderStatus.LOADING)

    def mark_ready(self) -> None:
        self.error = None
        self._transition(ProviderStatus.READY)

    def mark_failed(self, error: BaseException) -> None:
        self.error = error
        self._transition(ProviderStatus.FAILED)
        logger.error(f"Provider {self.name} failed to initialize: {error}")

    def reset(self) -> None:
        self.error = None
        self._transition(ProviderStatus.UNINITIALIZED)

    @property
    def is_ready(self) -> bool:
        return self.status is ProviderStatus.READY

    def require_ready(self) -> None:
        """Raise ProviderUnavailable unless the provider is READY."""
        if self.status is not ProviderStatus.READY:
            raise ProviderUnavailable(self.name, self.error)

    async def initialize(
        self,
        loader: Optional[Callable[[], Union[None, Awaitable[None]]]] = None,
    ) -> None:
        """
        Run ``loader`` and move to READY or FAILED.

        A failure is recorded and re-raised as ProviderUnavailable. It is not
        retried; callers must ``reset()`` and initialize again.
        """
        if self.status is ProviderStatus.READY:
            return
        if self.status is ProviderStatus.FAILED:
            raise ProviderUnavailable(self.name, self.error)
        self.begin_loading()
        try:
            if loader is not None:
                outcome = loader()
                if inspect.isawaitable(outcome):
                    await outcome
        except asyncio.CancelledError:
            self.mark_failed(ProviderUnavailable(self.name, None))
            raise
        except Exception as exc:
            self.mark_failed(exc)
            raise ProviderUnavailable(self.name, exc) from exc
        self.mark_ready()

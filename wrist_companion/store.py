"""
Settings store shared by the companion and the watch settings page.

The store is a synchronous key-value surface with change notification.
Listeners may be plain callables or coroutine functions; coroutine
listeners are scheduled on the running loop and supervised so their
failures are logged instead of lost.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from .config import CompanionConfig

logger = logging.getLogger("wrist.companion.store")

TOKEN_KEY = "HAToken"
LOCAL_URL_KEY = "localHAIP"
EXTERNAL_URL_KEY = "externalHAIP"
SENSORS_LIST_KEY = "sensorsList"
FETCH_TRIGGER_KEY = "listFetchRandom"


@dataclass(frozen=True)
class SettingsChange:
    """A single key change delivered to store listeners."""

    key: str
    new_value: Optional[str]
    old_value: Optional[str]


ChangeListener = Callable[[SettingsChange], Union[None, Awaitable[None]]]


class SettingsStore(ABC):
    """Get/set/subscribe capability the companion reads its state from."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value for key, or None."""

    @abstractmethod
    def set(self, key: str, value: Optional[str]) -> None:
        """Store value under key and notify listeners if it changed."""

    @abstractmethod
    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""


class InMemorySettingsStore(SettingsStore):
    """Dictionary-backed store. Last writer wins."""

    def __init__(self, initial: Optional[dict[str, Optional[str]]] = None):
        self._values: dict[str, Optional[str]] = dict(initial or {})
        self._listeners: list[ChangeListener] = []
        self._tasks: set[asyncio.Task] = set()

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: Optional[str]) -> None:
        old_value = self._values.get(key)
        if value is None:
            self._values.pop(key, None)
        else:
            self._values[key] = value

        if old_value == value:
            return

        change = SettingsChange(key=key, new_value=value, old_value=old_value)
        logger.debug("Setting changed: %s", key)
        for listener in list(self._listeners):
            self._notify(listener, change)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_idle(self) -> None:
        """Wait until every scheduled listener task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _notify(self, listener: ChangeListener, change: SettingsChange) -> None:
        result = listener(change)
        if not inspect.isawaitable(result):
            return

        task = asyncio.ensure_future(result)
        self._tasks.add(task)
        task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Settings listener failed: %s", exc, exc_info=exc)


def store_from_config(config: CompanionConfig) -> InMemorySettingsStore:
    """Seed a store with the Home Assistant values from configuration."""
    ha = config.homeassistant
    initial: dict[str, Any] = {
        TOKEN_KEY: ha.token,
        LOCAL_URL_KEY: ha.local_url,
        EXTERNAL_URL_KEY: ha.external_url,
    }
    return InMemorySettingsStore({k: v for k, v in initial.items() if v is not None})

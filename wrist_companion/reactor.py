"""
Reactions to settings changes made on the watch settings page.

- sensorsList: push the recomputed sensor list to the watch
- listFetchRandom: refresh the entity catalog offered for selection
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from .capabilities.sensors import SensorDirectory, encode_catalog
from .store import FETCH_TRIGGER_KEY, SENSORS_LIST_KEY, SettingsChange, SettingsStore

logger = logging.getLogger("wrist.companion.reactor")

LIST_UPDATE_ACTION = "listUpdate"

Notifier = Callable[[dict[str, Any]], Awaitable[Any]]


class ChangeReactor:
    """Subscribes to the settings store and reacts to the two watched keys."""

    def __init__(
        self,
        store: SettingsStore,
        directory: SensorDirectory,
        notify: Notifier,
    ):
        self._store = store
        self._directory = directory
        self._notify = notify
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self.handle_change)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def handle_change(self, change: SettingsChange) -> None:
        """React to one change. Errors propagate to the store's supervisor."""
        if change.key == SENSORS_LIST_KEY:
            await self.push_sensor_list()
        elif change.key == FETCH_TRIGGER_KEY:
            await self.refresh_catalog()

    async def push_sensor_list(self) -> None:
        sensors = await self._directory.get_enabled_sensors()
        await self._notify({
            "action": LIST_UPDATE_ACTION,
            "value": [sensor.to_dict() for sensor in sensors],
        })
        logger.info("Pushed %d sensors to the watch", len(sensors))

    async def refresh_catalog(self) -> None:
        # Catalog replaces the selection under the same key.
        catalog = await self._directory.get_catalog()
        self._store.set(SENSORS_LIST_KEY, encode_catalog(catalog))

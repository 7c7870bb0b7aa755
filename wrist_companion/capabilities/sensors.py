"""
Sensor directory for the watch dashboard.

Turns Home Assistant entity states and the user's selection list into
display-ready sensors, and builds the full entity catalog the settings
page offers for selection.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import DecodeError
from ..store import SENSORS_LIST_KEY, SettingsStore
from .homeassistant import FailoverClient, decode_json

logger = logging.getLogger("wrist.companion.capabilities.sensors")


@dataclass(frozen=True)
class SelectionEntry:
    """One row of the user's selection list."""

    key: str
    value: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SelectionEntry":
        """Create from dictionary."""
        return cls(key=str(data.get("key", "")), value=bool(data.get("value", False)))


@dataclass(frozen=True)
class DisplaySensor:
    """A sensor as shown on the watch."""

    key: str
    title: str
    state: str
    type: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary."""
        return {
            "key": self.key,
            "title": self.title,
            "state": self.state,
            "type": self.type,
        }


@dataclass(frozen=True)
class CatalogEntry:
    """An entity the user may add to the selection list."""

    key: str
    title: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary."""
        return {"key": self.key, "title": self.title}


def entity_domain(entity_id: str) -> str:
    """Return the part of an entity id before the first dot."""
    return entity_id.split(".", 1)[0]


def _attributes(entity: dict[str, Any]) -> dict[str, Any]:
    attrs = entity.get("attributes")
    return attrs if isinstance(attrs, dict) else {}


def entity_title(entity: dict[str, Any]) -> str:
    """Friendly name when the entity has one, otherwise its id."""
    friendly_name = _attributes(entity).get("friendly_name")
    if isinstance(friendly_name, str):
        return friendly_name
    return entity["entity_id"]


def to_display_sensor(entity: dict[str, Any]) -> DisplaySensor:
    """Build the watch representation of a raw entity state."""
    entity_id = entity["entity_id"]
    raw_state = entity.get("state")
    state = "" if raw_state is None else str(raw_state)
    unit = _attributes(entity).get("unit_of_measurement")
    if isinstance(unit, str):
        state += unit
    return DisplaySensor(
        key=entity_id,
        title=entity_title(entity),
        state=state,
        type=entity_domain(entity_id),
    )


def parse_selection(raw: Optional[str]) -> list[SelectionEntry]:
    """
    Parse the stored selection list.

    Args:
        raw: JSON text from the settings store, or None

    Returns:
        Selection entries in stored order (empty if nothing is stored)
    """
    if not raw:
        return []
    data = decode_json(raw)
    if not isinstance(data, list):
        raise DecodeError("Selection list must be a JSON array")
    return [SelectionEntry.from_dict(item) for item in data if isinstance(item, dict)]


class SensorDirectory:
    """Reads entity states through the failover client."""

    def __init__(self, client: FailoverClient, store: SettingsStore):
        self._client = client
        self._store = store

    def selection(self) -> list[SelectionEntry]:
        """Current selection list snapshot."""
        return parse_selection(self._store.get(SENSORS_LIST_KEY))

    async def fetch_states(self) -> list[dict[str, Any]]:
        """
        Fetch every entity state from Home Assistant.

        Raises:
            DecodeError: If the body is not a JSON array of states
        """
        states = await self._client.get_states()
        if not isinstance(states, list):
            raise DecodeError("Expected a list of entity states")
        return [s for s in states if isinstance(s, dict) and "entity_id" in s]

    async def get_enabled_sensors(self) -> list[DisplaySensor]:
        """
        Build the selected sensors in selection order.

        Selected keys with no matching entity are left out.
        """
        states = await self.fetch_states()
        by_id: dict[str, dict[str, Any]] = {}
        for entity in states:
            by_id.setdefault(entity["entity_id"], entity)

        sensors = []
        for entry in self.selection():
            if not entry.value:
                continue
            entity = by_id.get(entry.key)
            if entity is None:
                logger.debug("Selected entity not found: %s", entry.key)
                continue
            sensors.append(to_display_sensor(entity))
        return sensors

    async def get_catalog(self) -> list[CatalogEntry]:
        """Every entity Home Assistant knows about, unfiltered."""
        states = await self.fetch_states()
        catalog = [
            CatalogEntry(key=entity["entity_id"], title=entity_title(entity))
            for entity in states
        ]
        logger.info("Fetched catalog of %d entities", len(catalog))
        return catalog


def encode_catalog(catalog: list[CatalogEntry]) -> str:
    """Serialize a catalog for the settings store."""
    return json.dumps([entry.to_dict() for entry in catalog])

"""
Home Assistant endpoint resolution.

A backend can be exposed on the home network and through a remote
tunnel at the same time. Local is always tried first.
"""

from dataclasses import dataclass
from typing import Optional

from ..store import EXTERNAL_URL_KEY, LOCAL_URL_KEY, SettingsStore

LOCAL = "local"
EXTERNAL = "external"


@dataclass(frozen=True)
class Endpoint:
    """A named base address for the Home Assistant API."""

    name: str
    base_url: str

    def url_for(self, path: str) -> str:
        """Join the base address and an API path."""
        return self.base_url.rstrip("/") + path


def _configured(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(value.strip())


class EndpointResolver:
    """Reads the local and external addresses from the settings store."""

    def __init__(self, store: SettingsStore):
        self._store = store

    def resolve(self) -> list[Endpoint]:
        """
        Return the configured endpoints in priority order.

        Returns:
            Zero, one or two endpoints, local before external
        """
        endpoints = []
        local = self._store.get(LOCAL_URL_KEY)
        if _configured(local):
            endpoints.append(Endpoint(LOCAL, local.strip()))
        external = self._store.get(EXTERNAL_URL_KEY)
        if _configured(external):
            endpoints.append(Endpoint(EXTERNAL, external.strip()))
        return endpoints

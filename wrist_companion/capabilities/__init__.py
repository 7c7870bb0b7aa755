"""
Home Assistant capabilities for the companion.

Includes endpoint resolution, the failover REST client and the sensor
directory.
"""

from .endpoints import Endpoint, EndpointResolver
from .homeassistant import FailoverClient
from .sensors import CatalogEntry, DisplaySensor, SensorDirectory

__all__ = [
    "Endpoint",
    "EndpointResolver",
    "FailoverClient",
    "CatalogEntry",
    "DisplaySensor",
    "SensorDirectory",
]

"""
Wrist companion - phone-side service for a Home Assistant watch dashboard.

Answers watch requests to read selected sensors and toggle switches,
talking to Home Assistant over a local address with an external
fallback.

Architecture:
- capabilities/: endpoint failover client and sensor directory
- device/: watch bridge connection, message protocol and command router
- reactor.py: reactions to settings page changes
- store.py: settings store interface and in-memory implementation
"""

__version__ = "0.1.0"

from .config import CompanionConfig, get_settings
from .main import CompanionApplication, main

__all__ = [
    "CompanionConfig",
    "get_settings",
    "CompanionApplication",
    "main",
]

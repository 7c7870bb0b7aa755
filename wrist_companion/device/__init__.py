"""
Watch connectivity for the companion.

Handles the WebSocket link to the watch bridge and command routing.
"""

from .connection import DeviceConnection
from .protocol import Command, Method, RequestContext
from .router import CommandRouter

__all__ = [
    "DeviceConnection",
    "Command",
    "Method",
    "RequestContext",
    "CommandRouter",
]

"""
Message protocol between the watch and the companion.

Frames are JSON envelopes encoded as UTF-8 bytes (text frames are also
accepted on receive):
- {"type": "request", "id": 7, "payload": {...}}   watch -> companion
- {"type": "response", "id": 7, "payload": {...}}  companion -> watch
- {"type": "call", "payload": {...}}               companion -> watch
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..errors import DecodeError

REQUEST = "request"
RESPONSE = "response"
CALL = "call"


class Method(str, Enum):
    """Commands the watch can send."""

    TOGGLE_SWITCH = "TOGGLE_SWITCH"
    GET_SENSORS_LIST = "GET_SENSORS_LIST"


def decode_payload(data: Any) -> dict[str, Any]:
    """
    Decode a payload that may arrive as bytes, text or a dict.

    Raises:
        DecodeError: If the payload is not a JSON object
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Payload is not UTF-8: {e}") from e
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Malformed JSON payload: {e}") from e
    if not isinstance(data, dict):
        raise DecodeError("Payload must be a JSON object")
    return data


def encode_payload(data: Any) -> bytes:
    """Encode a JSON-serializable value as UTF-8 bytes."""
    return json.dumps(data).encode("utf-8")


def result_response(result: Any) -> dict[str, Any]:
    return {"data": {"result": result}}


def error_response(message: str) -> dict[str, Any]:
    return {"data": {"error": message}}


@dataclass
class Command:
    """A decoded watch command."""

    method: str
    value: Any = None
    service: Optional[str] = None
    entity_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Command":
        """Create from dictionary."""
        return cls(
            method=str(data.get("method", "")),
            value=data.get("value"),
            service=data.get("service"),
            entity_id=data.get("entity_id"),
        )


class RequestContext:
    """
    One inbound request and the means to answer it.

    A context answers exactly once; a second respond() is a bug in the
    handler and raises RuntimeError.
    """

    def __init__(
        self,
        request_id: Any,
        payload: Any,
        reply: Callable[[Any, dict[str, Any]], Awaitable[None]],
    ):
        self.request_id = request_id
        self.payload = payload
        self._reply = reply
        self._responded = False

    @property
    def responded(self) -> bool:
        return self._responded

    async def respond(self, data: dict[str, Any]) -> None:
        """Send the response for this request."""
        if self._responded:
            raise RuntimeError(f"Request {self.request_id} already answered")
        self._responded = True
        await self._reply(self.request_id, data)

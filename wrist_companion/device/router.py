"""
Command router for watch requests.

Decodes each request, dispatches it by method and answers on the same
request context.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..capabilities.homeassistant import FailoverClient
from ..capabilities.sensors import SensorDirectory
from ..errors import DecodeError, HandlerError
from .protocol import (
    Command,
    Method,
    RequestContext,
    decode_payload,
    error_response,
    result_response,
)

logger = logging.getLogger("wrist.companion.device.router")

DEFAULT_SERVICE = "switch"


def _error_message(err: BaseException) -> str:
    if isinstance(err, asyncio.TimeoutError):
        return "Request timed out"
    return str(err) or err.__class__.__name__


class CommandRouter:
    """
    Routes watch commands to Home Assistant.

    Handles:
    - TOGGLE_SWITCH: service call, faults raised as HandlerError
    - GET_SENSORS_LIST: sensor list, faults answered in-band
    - Anything else: answered with an unsupported-method error
    """

    def __init__(
        self,
        client: FailoverClient,
        directory: SensorDirectory,
        handler_timeout: Optional[float] = None,
    ):
        """
        Initialize the router.

        Args:
            client: Home Assistant failover client
            directory: Sensor directory for list requests
            handler_timeout: Seconds before a handler is abandoned (None waits forever)
        """
        self._client = client
        self._directory = directory
        self._handler_timeout = handler_timeout

        # method -> (handler, answers errors in-band)
        self._handlers: dict[Method, tuple[Callable[[Command], Awaitable[Any]], bool]] = {
            Method.TOGGLE_SWITCH: (self._toggle_switch, False),
            Method.GET_SENSORS_LIST: (self._get_sensors_list, True),
        }

    async def handle(self, ctx: RequestContext) -> None:
        """
        Answer one request.

        Raises:
            HandlerError: If a handler that does not answer errors in-band fails
        """
        try:
            command = Command.from_dict(decode_payload(ctx.payload))
        except DecodeError as e:
            logger.warning("Undecodable request %s: %s", ctx.request_id, e)
            await ctx.respond(error_response(str(e)))
            return

        try:
            method = Method(command.method)
        except ValueError:
            logger.warning("Unsupported method: %s", command.method)
            await ctx.respond(error_response(f"Unsupported method: {command.method}"))
            return

        handler, in_band = self._handlers[method]
        logger.debug("Request %s: %s", ctx.request_id, method.value)

        try:
            result = await asyncio.wait_for(handler(command), timeout=self._handler_timeout)
        except Exception as e:
            if not in_band:
                raise HandlerError(method.value, e) from e
            logger.warning("%s failed: %s", method.value, e)
            await ctx.respond(error_response(_error_message(e)))
            return

        await ctx.respond(result_response(result))

    async def _toggle_switch(self, command: Command) -> list:
        state = "on" if command.value else "off"
        service = command.service or DEFAULT_SERVICE
        await self._client.call_service(
            f"{service}/turn_{state}",
            {"entity_id": command.entity_id},
        )
        return []

    async def _get_sensors_list(self, command: Command) -> list[dict[str, str]]:
        sensors = await self._directory.get_enabled_sensors()
        return [sensor.to_dict() for sensor in sensors]

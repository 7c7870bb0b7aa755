"""
Wrist companion - main entry point.

Runs the companion service that links the watch to Home Assistant:
- Watch bridge connection and command routing
- Settings change reactions
- Graceful shutdown
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import httpx

# Load environment variables
# .env.local overrides .env for machine-specific settings (tokens, addresses)
from dotenv import load_dotenv

_env_root = Path(__file__).parent.parent
load_dotenv(_env_root / ".env", override=True)
load_dotenv(_env_root / ".env.local", override=True)

from .capabilities.homeassistant import FailoverClient
from .capabilities.sensors import SensorDirectory
from .config import CompanionConfig, get_settings
from .device.connection import DeviceConnection
from .device.router import CommandRouter
from .reactor import ChangeReactor
from .store import SettingsStore, store_from_config

logger = logging.getLogger("wrist.companion.main")


class CompanionApplication:
    """
    Main companion application.

    Manages:
    - Settings store
    - Home Assistant client
    - Watch bridge connection
    - Graceful shutdown
    """

    def __init__(
        self,
        config: Optional[CompanionConfig] = None,
        store: Optional[SettingsStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        connection: Optional[DeviceConnection] = None,
    ):
        """Initialize the companion; collaborators default to ones built from config."""
        self._config = config or get_settings()
        self.store = store or store_from_config(self._config)
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient()

        ha = self._config.homeassistant
        device = self._config.device

        self.client = FailoverClient(self.store, self._http_client, timeout=ha.timeout)
        self.directory = SensorDirectory(self.client, self.store)
        self.connection = connection or DeviceConnection(
            url=device.url,
            reconnect_interval=device.reconnect_interval,
            max_reconnect_interval=device.max_reconnect_interval,
        )
        self.router = CommandRouter(
            self.client,
            self.directory,
            handler_timeout=device.handler_timeout,
        )
        self.reactor = ChangeReactor(self.store, self.directory, self.connection.call)
        self._shutdown_event = asyncio.Event()

    async def startup(self) -> None:
        """Wire callbacks and connect to the watch bridge."""
        logger.info("Wrist companion starting up...")

        self.connection.on_request(self.router.handle)
        self.reactor.start()

        if self._config.device.enabled:
            if not await self.connection.connect():
                logger.warning("Watch bridge unavailable; retrying in the background")

        logger.info("Wrist companion ready")

    async def shutdown(self) -> None:
        """Clean up all components."""
        logger.info("Wrist companion shutting down...")

        self.reactor.stop()
        await self.connection.disconnect()

        if self._owns_http_client:
            await self._http_client.aclose()

        logger.info("Wrist companion stopped")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run until SIGINT/SIGTERM."""
        await self.startup()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._shutdown_event.set)

        try:
            await self._shutdown_event.wait()
        finally:
            await self.shutdown()


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Wrist companion for Home Assistant")
    parser.add_argument(
        "--device-url",
        default=None,
        help="Watch bridge WebSocket URL (overrides WRIST_DEVICE_URL)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (overrides WRIST_LOG_LEVEL)",
    )
    args = parser.parse_args()

    config = get_settings()
    if args.device_url:
        config.device.url = args.device_url

    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = CompanionApplication(config)
    asyncio.run(app.run())


if __name__ == "__main__":
    main()

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from functools import partial
from pathlib import Path

import dotenv
import uvloop
from pyhap.accessory_driver import AccessoryDriver

from habeetat_homekit import metrics
from habeetat_homekit.config import HabeetatConfig, default_config_path, load_config
from habeetat_homekit.const import (
    HABEETAT_DEBUG,
    HABEETAT_METRICS_PORT,
    HABEETAT_VERSION,
    HAP_START_TASK_NAME,
    MQTT_CLIENT_START_TASK_NAME,
)
from habeetat_homekit.correlation import correlation_context, ensure_correlation_id
from habeetat_homekit.exceptions import ConfigError
from habeetat_homekit.hap import AccessoryCache, HapAccessoryHost
from habeetat_homekit.logging_abstraction import get_logger, quiet_foreign_loggers, set_package_level
from habeetat_homekit.mqtt import BusClient
from habeetat_homekit.synchronizer import Synchronizer
from habeetat_homekit.utils import ensure_persistent_dir, parse_pincode

logger = get_logger(__name__)

quiet_foreign_loggers()


class HabeetatController:
    """Wires config, the HAP host, the synchronizer and the bus client on one loop."""

    lp: str = "HabeetatController:"

    def __init__(self, config_file: Path | None = None) -> None:
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        self.loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        self.config_file: Path = config_file or default_config_path()
        self.config: HabeetatConfig | None = None
        self.hap_host: HapAccessoryHost | None = None
        self.bus: BusClient | None = None
        self.synchronizer: Synchronizer | None = None
        self.tasks: list[asyncio.Task[None]] = []
        self._stopping: bool = False

        logger.info(" Initializing Habeetat HomeKit bridge", extra={"version": HABEETAT_VERSION})

        self.loop.add_signal_handler(signal.SIGINT, partial(self.signal_handler, signal.SIGINT))
        self.loop.add_signal_handler(signal.SIGTERM, partial(self.signal_handler, signal.SIGTERM))
        logger.debug("Signal handlers configured for SIGINT & SIGTERM")

    def build(self) -> None:
        """Resolve config and construct the HAP host, bus client and synchronizer."""
        lp = f"{self.lp}build:"
        self.config = config = load_config(self.config_file)
        if config.debug:
            set_package_level(logging.DEBUG)
        _ = ensure_persistent_dir(config.persistent_path)

        driver = AccessoryDriver(
            port=config.bridge.port,
            persist_file=str(config.hap_persist_path),
            pincode=parse_pincode(config.bridge.pincode),
            loop=self.loop,
        )
        self.hap_host = HapAccessoryHost(
            driver,
            AccessoryCache(config.accessory_cache_path),
            bridge_name=config.bridge.name,
        )
        self.bus = BusClient(config.mqtt, base_topic=config.base_topic)
        self.synchronizer = Synchronizer(
            self.hap_host,
            self.bus,
            base_topic=config.base_topic,
            static_devices=config.devices,
        )
        self.bus.synchronizer = self.synchronizer

        restored = self.hap_host.restore(self.synchronizer)
        logger.info("%s Restored %d cached accessories", lp, restored)

        if HABEETAT_METRICS_PORT:
            metrics.start_metrics_server(HABEETAT_METRICS_PORT)
            logger.info("%s Prometheus metrics on port %s", lp, HABEETAT_METRICS_PORT)

    async def start(self) -> None:
        """Start the HAP server and the MQTT bus client."""
        _ = ensure_correlation_id()
        self.build()
        assert self.hap_host is not None
        assert self.bus is not None

        hap_task = asyncio.Task(self.hap_host.start(), name=HAP_START_TASK_NAME)
        self.bus.start_task = bus_task = asyncio.Task(self.bus.start(), name=MQTT_CLIENT_START_TASK_NAME)
        self.tasks.extend([hap_task, bus_task])
        logger.info(" Starting HAP server and MQTT client...")

        try:
            _ = await asyncio.gather(*self.tasks)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(" Service startup failed", extra={"error": str(e)})
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the MQTT client and HAP server, then cancel remaining tasks."""
        if self._stopping:
            return
        self._stopping = True
        logger.info(" Shutting down Habeetat HomeKit bridge...")
        if self.synchronizer is not None:
            for accessory in self.synchronizer.unbound_accessories():
                logger.info("%s Cached accessory was never re-announced: %s", self.lp, accessory.display_name)
        if self.bus is not None:
            logger.debug("Stopping bus client...")
            await self.bus.stop()
        if self.hap_host is not None:
            logger.debug("Stopping HAP server...")
            await self.hap_host.stop()
        for task in self.tasks:
            if not task.done():
                logger.debug("Cancelling task: %s", task.get_name())
                _ = task.cancel()
        logger.info("Habeetat HomeKit bridge: cleanup completed")

    def signal_handler(self, signum: int) -> None:
        logger.info("Intercepted signal: %s (%s)", signal.Signals(signum).name, signum)
        _ = self.loop.create_task(self.stop())


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Habeetat HomeKit bridge")
    _ = parser.add_argument(
        "-D",
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument("--config", help="Path to the YAML configuration file", default=None, type=Path)
    args = parser.parse_args(argv)

    if args.debug:
        set_package_level(logging.DEBUG)
        logger.info("Debug mode enabled via CLI argument")

    if args.env:
        load_env_file(args.env)

    return args


def load_env_file(env_file: Path) -> bool:
    """Load a dotenv file into os.environ, overriding existing values."""
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False

    loaded_any = dotenv.load_dotenv(env_path, override=True)
    if loaded_any:
        logger.info(" Environment variables loaded", extra={"source": str(env_path)})
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
    return loaded_any


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Habeetat HomeKit bridge."""
    with correlation_context():
        logger.info("Starting Habeetat HomeKit bridge", extra={"version": HABEETAT_VERSION})

        args = parse_cli(argv)
        if HABEETAT_DEBUG:
            logger.info("Debug logging enabled via configuration")
            set_package_level(logging.DEBUG)

        controller = HabeetatController(config_file=args.config)
        try:
            controller.loop.run_until_complete(controller.start())
        except ConfigError as e:
            logger.error(" Invalid configuration: %s", e)
        except asyncio.CancelledError:
            logger.info("Habeetat HomeKit bridge cancelled, shutting down...")
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        except Exception as e:
            logger.exception(" Fatal error in main loop", extra={"error": str(e)})
        else:
            logger.info(" Habeetat HomeKit bridge stopped gracefully")
        finally:
            if not controller.loop.is_closed():
                controller.loop.close()
            logger.info("Habeetat HomeKit bridge shutdown complete")


if __name__ == "__main__":
    main()

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
from functools import partial
from pathlib import Path
from typing import Any

import aiomqtt
import dotenv
import uvloop
import yaml
from pydantic import ValidationError

from tuya_mqtt.const import STARTUP_REPUBLISH_DELAY, TUYA_MQTT_VERSION
from tuya_mqtt.devices import TuyaDevice
from tuya_mqtt.exceptions import ConfigurationError, TuyaMqttError
from tuya_mqtt.logging_abstraction import correlation_context, get_logger, set_package_level
from tuya_mqtt.mqtt.client import MQTTClient
from tuya_mqtt.protocol import TinyTuyaClient
from tuya_mqtt.registry import DeviceRegistry
from tuya_mqtt.structs import DeviceConfig, GlobalObject
from tuya_mqtt.utils import signal_handler, spawn

logger = get_logger(__name__)

# Suppress verbose third-party library logging
for _name in ("aiomqtt", "mqtt", "tinytuya"):
    logging.getLogger(_name).setLevel(logging.WARNING)

g = GlobalObject()


def parse_devices_file(path: Path) -> list[DeviceConfig]:
    """Load the device list from a JSON or YAML file.

    Malformed entries are logged and skipped.

    Raises:
        ConfigurationError: the file is missing, unreadable, not a list, or
            yields no usable device.

    """
    logger.debug("Parsing devices file: %s", path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"devices file {path} could not be read: {e}") from e

    try:
        data: Any = json.loads(content) if path.suffix.lower() == ".json" else yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"devices file {path} could not be parsed: {e}") from e

    if not data:
        raise ConfigurationError(f"no devices found in devices file {path}")
    if not isinstance(data, list):
        raise ConfigurationError(f"devices file {path} must contain a list of devices")

    configs: list[DeviceConfig] = []
    for i, entry in enumerate(data):
        try:
            configs.append(DeviceConfig.model_validate(entry))
        except ValidationError as e:
            logger.warning(
                "Skipping invalid device entry #%s: %s",
                i,
                e.errors(include_url=False),
                extra={"entry": i},
            )
    if not configs:
        raise ConfigurationError(f"no valid devices in devices file {path}")
    logger.info("Parsed devices file: %d devices", len(configs), extra={"path": str(path)})
    return configs


class TuyaMqttBridge:
    lp: str = "TuyaMqttBridge:"

    def __init__(self, devices_file: Path) -> None:
        self.devices_file: Path = devices_file
        self.mqtt: MQTTClient | None = None
        self.registry: DeviceRegistry = DeviceRegistry()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._stopping: bool = False

    def install_loop(self) -> None:
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        g.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(g.loop)

        g.loop.add_signal_handler(signal.SIGINT, partial(signal_handler, signal.SIGINT))
        g.loop.add_signal_handler(signal.SIGTERM, partial(signal_handler, signal.SIGTERM))
        logger.debug("Signal handlers configured for SIGINT & SIGTERM")

    def build_devices(self, configs: list[DeviceConfig], mqtt_client: MQTTClient) -> None:
        for config in configs:
            device = TuyaDevice(config, TinyTuyaClient(config), mqtt_client)
            _ = self.registry.add(device)

    async def start(self) -> None:
        """Load devices, connect to the broker and serve until cancelled."""
        lp = f"{self.lp}start:"
        configs = parse_devices_file(self.devices_file)

        g.mqtt_client = self.mqtt = mqtt_client = MQTTClient()
        g.registry = self.registry
        self.build_devices(configs, mqtt_client)

        if not await mqtt_client.connect():
            raise TuyaMqttError(f"could not connect to MQTT broker {g.env.mqtt_host}:{g.env.mqtt_port}")
        _ = await mqtt_client.subscribe()

        for device in self.registry:
            await device.start()
        logger.info("%s Bridging %d devices", lp, len(self.registry))

        _ = spawn(self._startup_republish(), self._tasks, "startup-republish", lp)
        try:
            await mqtt_client.start_receiver()
        except aiomqtt.MqttError as e:
            if self._stopping:
                return
            raise TuyaMqttError(f"lost connection to MQTT broker: {e}") from e

    async def _startup_republish(self) -> None:
        assert self.mqtt is not None
        await asyncio.sleep(STARTUP_REPUBLISH_DELAY)
        await self.mqtt.command_router.republish_devices()

    async def stop(self) -> None:
        """Disconnect every device (publishing offline), then the broker."""
        logger.info("%s Shutting down tuya-mqtt...", self.lp)
        self._stopping = True
        for task in list(self._tasks):
            _ = task.cancel()
        for device in self.registry:
            try:
                await device.stop()
            except Exception:
                logger.exception("%s failed to stop %s", self.lp, device)
        if self.mqtt is not None:
            await self.mqtt.stop()


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Tuya devices to MQTT bridge")
    _ = parser.add_argument(
        "--devices",
        type=Path,
        default=None,
        help="Path to the devices file (JSON or YAML)",
    )
    _ = parser.add_argument(
        "-D",
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    g.cli_args = args = parser.parse_args(argv)

    if args.env:
        env_path = args.env.expanduser().resolve()
        if not env_path.exists():
            logger.error("Environment file not found", extra={"path": str(env_path)})
        elif dotenv.load_dotenv(env_path, override=True):
            logger.info(" Environment variables loaded", extra={"source": str(env_path)})
            g.reload_env()
        else:
            logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})

    if args.debug or g.env.debug:
        set_package_level(logging.DEBUG)
        logger.info("Debug mode enabled")
    return args


def main() -> int:
    """Main entry point for tuya-mqtt."""
    with correlation_context():
        logger.info("Starting tuya-mqtt", extra={"version": TUYA_MQTT_VERSION})
        args = parse_cli()

        devices_file = Path(args.devices or g.env.devices_file).expanduser()
        bridge = TuyaMqttBridge(devices_file)
        g.bridge = bridge
        bridge.install_loop()
        assert g.loop is not None

        exit_code = 0
        try:
            g.loop.run_until_complete(bridge.start())
        except asyncio.CancelledError:
            logger.info("tuya-mqtt cancelled, shutting down...")
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
            g.loop.run_until_complete(bridge.stop())
        except ConfigurationError as e:
            logger.error("Configuration error: %s", e)
            exit_code = 1
        except TuyaMqttError as e:
            logger.error("Fatal error: %s", e)
            g.loop.run_until_complete(bridge.stop())
            exit_code = 1
        else:
            logger.info(" tuya-mqtt stopped gracefully")
        finally:
            if not g.loop.is_closed():
                g.loop.close()
            logger.info("tuya-mqtt shutdown complete")
        return exit_code


if __name__ == "__main__":
    raise SystemExit(main())

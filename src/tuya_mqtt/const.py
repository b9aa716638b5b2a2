import os

from tuya_mqtt import __version__

__all__ = [
    "CONNECT_CONFIRM_DELAY",
    "DEVICE_LWT_MSG",
    "DISCONNECT_RECONNECT_DELAY",
    "DISCOVERY_RETRY_DELAY",
    "ERROR_RECONNECT_DELAY",
    "HEARTBEAT_INTERVAL",
    "HEARTBEAT_DISCONNECT_DELAY",
    "INIT_SETTLE_DELAY",
    "MAX_HEARTBEAT_MISSED",
    "ORIGIN_STRUCT",
    "RECONNECT_DELAY",
    "REPUBLISH_DELAY",
    "REPUBLISH_PASSES",
    "REPUBLISH_SETTLE_DELAY",
    "SRC_REPO_URL",
    "STARTUP_REPUBLISH_DELAY",
    "TUYA_DEBUG",
    "TUYA_LOG_FORMAT",
    "TUYA_LOG_HUMAN_OUTPUT",
    "TUYA_LOG_JSON_FILE",
    "TUYA_MANUFACTURER",
    "TUYA_MQTT_VERSION",
    "TUYA_STATUS_TOPIC_ALIASES",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")

TUYA_MQTT_VERSION: str = __version__
SRC_REPO_URL: str = "https://github.com/TheAgentK/tuya-mqtt"
TUYA_MANUFACTURER: str = "Tuya"
DEVICE_LWT_MSG: bytes = b"offline"

# broker, topic and devices-file settings are read by GlobalObject.reload_env()

# older Home Assistant installs announce themselves here
TUYA_STATUS_TOPIC_ALIASES: tuple[str, ...] = ("homeassistant/status", "hass/status")

TUYA_DEBUG = os.environ.get("TUYA_MQTT_DEBUG", "0").casefold() in YES_ANSWER

# Logging Configuration
TUYA_LOG_FORMAT: str = os.environ.get("TUYA_MQTT_LOG_FORMAT", "human")  # "json", "human", or "both"
TUYA_LOG_JSON_FILE: str | None = os.environ.get("TUYA_MQTT_LOG_JSON_FILE") or None
TUYA_LOG_HUMAN_OUTPUT: str = os.environ.get("TUYA_MQTT_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path

# Device connection supervision, all in seconds
HEARTBEAT_INTERVAL: float = 10
MAX_HEARTBEAT_MISSED: int = 3
DISCOVERY_RETRY_DELAY: float = 60
CONNECT_CONFIRM_DELAY: float = 1
ERROR_RECONNECT_DELAY: float = 1
HEARTBEAT_DISCONNECT_DELAY: float = 1
DISCONNECT_RECONNECT_DELAY: float = 5
RECONNECT_DELAY: float = 10
# discovery must reach the hub before the first state publish
INIT_SETTLE_DELAY: float = 1

# Home Assistant restart recovery
REPUBLISH_PASSES: int = 2
REPUBLISH_DELAY: float = 30
REPUBLISH_SETTLE_DELAY: float = 2
STARTUP_REPUBLISH_DELAY: float = 60

ORIGIN_STRUCT = {
    "name": "tuya-mqtt",
    "sw_version": TUYA_MQTT_VERSION,
    "support_url": SRC_REPO_URL,
}

"""Exception hierarchy for tuya-mqtt.

Configuration problems are raised once, while a device's topic schema is
built. Command and device I/O problems are raised by the transform and
protocol layers and caught by the device that issued the operation.
"""

from __future__ import annotations


class TuyaMqttError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(TuyaMqttError):
    """Invalid device configuration.

    Raised when:
    - a topic range has ``topic_min`` greater than ``topic_max``
    - a topic names an unknown value kind or has no DPS key
    - a device entry cannot be validated

    Attributes:
        reason: Specific failure reason
        topic: Topic name the problem belongs to, when known

    """

    def __init__(self, reason: str, topic: str | None = None) -> None:
        """Initialize configuration error with reason and topic."""
        self.reason: str = reason
        self.topic: str | None = topic
        where = f" (topic: {topic})" if topic else ""
        super().__init__(f"Invalid configuration: {reason}{where}")


class FormulaError(ConfigurationError):
    """A configured state/command formula does not compile.

    Attributes:
        formula: The offending formula text

    """

    def __init__(self, formula: str, reason: str) -> None:
        """Initialize formula error with the formula text and reason."""
        self.formula: str = formula
        super().__init__(f"formula {formula!r}: {reason}")


class InvalidCommandError(TuyaMqttError):
    """A command payload cannot be turned into a wire value.

    No write is issued to the device when this is raised.

    Attributes:
        value: The rejected payload

    """

    def __init__(self, reason: str, value: object = None) -> None:
        """Initialize invalid command error with reason and payload."""
        self.reason: str = reason
        self.value: object = value
        super().__init__(f"Invalid command: {reason} (value: {value!r})")


class DeviceClientError(TuyaMqttError):
    """Protocol I/O failure talking to a device.

    Attributes:
        device_id: Protocol identifier of the device
        reason: Specific failure reason

    """

    def __init__(self, device_id: str, reason: str) -> None:
        """Initialize device client error with device id and reason."""
        self.device_id: str = device_id
        self.reason: str = reason
        super().__init__(f"Device {device_id}: {reason}")


class DeviceNotFoundError(DeviceClientError):
    """Device discovery found nothing for the configured id."""


class DeviceConnectionError(DeviceClientError):
    """Connect, get or set failed, or the device is not connected."""

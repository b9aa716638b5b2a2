"""MQTT client core for tuya-mqtt.

Owns the broker connection, the bridge birth/will messages and the
subscription set; inbound messages are handed to :class:`CommandRouter`.
"""

from __future__ import annotations

import asyncio
import json

import aiomqtt

from tuya_mqtt.const import DEVICE_LWT_MSG, TUYA_STATUS_TOPIC_ALIASES
from tuya_mqtt.logging_abstraction import get_logger
from tuya_mqtt.mqtt.command_routing import CommandRouter
from tuya_mqtt.structs import GlobalObject
from tuya_mqtt.utils import send_sigterm

__all__ = ["MQTTClient"]

logger = get_logger(__name__)

g = GlobalObject()

BRIDGE_BIRTH_MSG: bytes = b"online"


class MQTTClient:
    """Broker connection shared by every bridged device."""

    lp: str = "mqtt:"

    def __init__(self, client_id: str = "tuya-mqtt") -> None:
        lp = f"{self.lp}init:"
        self._connected: bool = False
        self.client: aiomqtt.Client | None = None
        self.broker_client_id: str = client_id
        self.broker_host: str = g.env.mqtt_host
        self.broker_port: int = g.env.mqtt_port

        topic = g.env.mqtt_topic.strip("/")
        if not topic:
            topic = "tuya"
            logger.warning("%s MQTT topic not set, using default: %s", lp, topic)
        elif "/" in topic:
            # device lookup relies on the device being the second topic segment
            first = topic.split("/", 1)[0]
            logger.warning("%s MQTT topic %r has several levels, using %r", lp, topic, first)
            topic = first
        self.topic: str = topic
        self.discovery_topic: str = g.env.discovery_topic.strip("/") or "homeassistant"
        self.status_topics: tuple[str, ...] = tuple(
            dict.fromkeys((g.env.status_topic, *TUYA_STATUS_TOPIC_ALIASES)),
        )
        self.bridge_status_topic: str = f"{self.topic}/bridge/status"
        self.command_router: CommandRouter = CommandRouter(self)

    @property
    def is_connected(self) -> bool:
        """Check if MQTT client is connected to the broker."""
        return self._connected

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        logger.debug("%s Connecting to MQTT broker...", lp)
        g.reload_env()
        self.broker_host = g.env.mqtt_host
        self.broker_port = g.env.mqtt_port
        lwt = aiomqtt.Will(topic=self.bridge_status_topic, payload=DEVICE_LWT_MSG, qos=1, retain=True)
        self.client = aiomqtt.Client(
            hostname=self.broker_host,
            port=self.broker_port or 1883,
            username=g.env.mqtt_user,
            password=g.env.mqtt_pass,
            identifier=self.broker_client_id,
            will=lwt,
        )
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as mqtt_err_exc:
            # -> [Errno 111] Connection refused
            # [code:134] Bad user name or password
            logger.exception("%s Connection failed [MqttError]", lp)
            if "code:134" in str(mqtt_err_exc):
                logger.exception(
                    "%s Bad username or password, check your MQTT credentials (username: %s)",
                    lp,
                    g.env.mqtt_user,
                )
                send_sigterm()
        else:
            self._connected = True
            logger.info(
                "%s Connected to MQTT broker: %s port: %s",
                lp,
                self.broker_host,
                self.broker_port,
            )
            _ = await self.send_birth_msg()
            return True
        return False

    async def subscribe(self) -> list[str]:
        """Subscribe to every device topic and the hub status topics."""
        lp = f"{self.lp}subscribe:"
        assert self.client is not None, "client must be initialized"
        topics = [f"{self.topic}/#", *self.status_topics]
        for topic in topics:
            await self.client.subscribe(topic, qos=1)
        logger.debug("%s Subscribed to MQTT topics: %s. Waiting for MQTT messages...", lp, topics)
        return topics

    async def start_receiver(self) -> None:
        """Run the inbound message loop until the connection ends."""
        rcv_lp = f"{self.lp}rcv:"
        logger.info("%s Starting MQTT receiver...", rcv_lp)
        try:
            await self.command_router.start_receiver_task()
        except asyncio.CancelledError:
            logger.debug("%s MQTT receiver task cancelled, propagating...", rcv_lp)
            raise
        except aiomqtt.MqttError as msg_err:
            logger.warning("%s MQTT error: %s", rcv_lp, msg_err)
            self._connected = False
            raise

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        if self._connected:
            _ = await self.send_will_msg()
        try:
            if self.client is not None:
                logger.debug("%s Disconnecting from broker...", lp)
                await self.client.__aexit__(None, None, None)
        except aiomqtt.MqttError as ce:
            logger.warning("%s MQTT disconnect failed: %s", lp, ce)
        else:
            logger.info("%s Disconnected from MQTT broker", lp)
        finally:
            self._connected = False

    async def send_birth_msg(self) -> bool:
        lp = f"{self.lp}send_birth_msg:"
        logger.debug("%s Sending birth message (%s) to %s", lp, BRIDGE_BIRTH_MSG, self.bridge_status_topic)
        return await self.publish(self.bridge_status_topic, BRIDGE_BIRTH_MSG, qos=1, retain=True)

    async def send_will_msg(self) -> bool:
        lp = f"{self.lp}send_will_msg:"
        logger.debug("%s Sending will message (%s) to %s", lp, DEVICE_LWT_MSG, self.bridge_status_topic)
        return await self.publish(self.bridge_status_topic, DEVICE_LWT_MSG, qos=1, retain=True)

    async def publish(self, topic: str, payload: bytes | str, qos: int = 1, retain: bool = False) -> bool:
        """Publish a message to the MQTT broker."""
        lp = f"{self.lp}publish:"
        if not self._connected or self.client is None:
            logger.debug("%s not connected, dropping message for %s", lp, topic)
            return False
        try:
            _ = await self.client.publish(topic, payload, qos=qos, retain=retain)
        except aiomqtt.MqttCodeError as mqtt_code_exc:
            logger.warning("%s [MqttCodeError] -> %s", lp, mqtt_code_exc)
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s [MqttError] -> %s", lp, mqtt_err)
            self._connected = False
        except asyncio.CancelledError as can_exc:
            logger.warning("%s [Task Cancelled] -> %s", lp, can_exc)
            raise
        else:
            return True
        return False

    async def publish_json_msg(self, topic: str, msg_data: dict[str, object], qos: int = 1, retain: bool = False) -> bool:
        lp = f"{self.lp}publish_json_msg:"
        try:
            payload = json.dumps(msg_data)
        except (TypeError, ValueError) as e:
            logger.warning("%s payload for %s is not JSON serializable: %s", lp, topic, e)
            return False
        return await self.publish(topic, payload, qos=qos, retain=retain)

"""MQTT transport for the bridge.

Publishing is fire-and-forget: failures are logged and never raised, since a
lost telemetry tick is replaced by the next one half a second later.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Union

import paho.mqtt.client as mqtt

from .config import Config
from .discovery import DiscoveryPacket

logger = logging.getLogger(__name__)

QOS_AT_MOST_ONCE = 0
QOS_AT_LEAST_ONCE = 1


def _create_paho_client(client_id: str, transport: str) -> mqtt.Client:
    try:
        from paho.mqtt.client import CallbackAPIVersion as _CBV

        return mqtt.Client(
            callback_api_version=_CBV.VERSION2,
            client_id=client_id,
            transport=transport,
        )
    except ImportError:
        # paho-mqtt 1.x
        return mqtt.Client(client_id=client_id, transport=transport)


def _on_connect(client, userdata, *args, **kwargs):
    logger.info("MQTT connected: %s", args[1] if len(args) > 1 else args)


def _on_disconnect(client, userdata, *args, **kwargs):
    logger.warning("MQTT disconnected: %s", args)


class MqttClient:
    """Publishing side of the broker connection."""

    def __init__(self, client: Any, retain_discovery: bool = False):
        self._client = client
        self.retain_discovery = retain_discovery

    def _publish(
        self, topic: str, payload: Union[bytes, str], qos: int, retain: bool
    ) -> bool:
        try:
            info = self._client.publish(topic, payload, qos=qos, retain=retain)
        except (ValueError, OSError) as e:
            logger.error("Failed to publish message for %s: %s", topic, e)
            return False
        rc = getattr(info, "rc", mqtt.MQTT_ERR_SUCCESS)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(
                "Failed to publish message for %s: %s", topic, mqtt.error_string(rc)
            )
            return False
        return True

    def publish_value(self, topic: str, payload: Any) -> bool:
        """Serialize ``payload`` to JSON and publish it at most once."""
        try:
            data = json.dumps(payload, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize payload for %s: %s", topic, e)
            return False
        return self._publish(topic, data, QOS_AT_MOST_ONCE, False)

    def direct_publish(self, topic: str, payload: Union[bytes, str]) -> bool:
        return self._publish(topic, payload, QOS_AT_MOST_ONCE, False)

    def publish_discovery(self, packet: DiscoveryPacket) -> bool:
        """Publish one discovery packet, skipping it if serialization failed."""
        if packet.error is not None or packet.payload is None:
            logger.error(
                "Failed to serialize payload for %s: %s", packet.topic, packet.error
            )
            return False
        return self._publish(
            packet.topic, packet.payload, QOS_AT_LEAST_ONCE, self.retain_discovery
        )


def connect(config: Config) -> tuple[MqttClient, mqtt.Client]:
    """Create the broker connection.

    Returns the publishing handle and the underlying paho client, whose
    network loop must be driven by the caller (``loop_forever``).

    Raises:
        ConfigurationError: connection settings are missing or invalid.
    """
    mqtt_config = config.get_mqtt_config()
    paho_client = _create_paho_client(
        mqtt_config["client_id"], mqtt_config["transport"]
    )
    auth = mqtt_config.get("auth")
    if auth:
        paho_client.username_pw_set(auth["username"], auth["password"])
    delay = config.reconnect_delay_seconds
    paho_client.reconnect_delay_set(min_delay=delay, max_delay=delay)
    paho_client.on_connect = _on_connect
    paho_client.on_disconnect = _on_disconnect

    logger.info(
        "mqtt_connection broker=%s port=%s transport=%s auth=%s",
        mqtt_config["broker_url"],
        mqtt_config["broker_port"],
        mqtt_config["transport"],
        bool(auth),
    )
    paho_client.connect_async(
        mqtt_config["broker_url"],
        mqtt_config["broker_port"],
        keepalive=mqtt_config["keepalive"],
    )
    return MqttClient(paho_client, retain_discovery=config.retain_discovery), paho_client


__all__ = ["MqttClient", "QOS_AT_LEAST_ONCE", "QOS_AT_MOST_ONCE", "connect"]

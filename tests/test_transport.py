import logging
from unittest.mock import MagicMock, patch

import paho.mqtt.client as mqtt
import pytest

from hairmqtt import config as config_module
from hairmqtt import transport
from hairmqtt.config import Config
from hairmqtt.discovery import DiscoveryPacket
from hairmqtt.errors import MissingBrokerHost
from hairmqtt.transport import QOS_AT_LEAST_ONCE, QOS_AT_MOST_ONCE, MqttClient


def _paho(rc=mqtt.MQTT_ERR_SUCCESS):
    client = MagicMock()
    client.publish.return_value = MagicMock(rc=rc)
    return client


def test_publish_value_serializes_json():
    paho = _paho()
    assert MqttClient(paho).publish_value("hairmqtt/telemetry", {"Lap": 3}) is True
    paho.publish.assert_called_once_with(
        "hairmqtt/telemetry", b'{"Lap": 3}', qos=QOS_AT_MOST_ONCE, retain=False
    )


def test_publish_value_unserializable_is_logged(caplog):
    paho = _paho()
    with caplog.at_level(logging.ERROR):
        assert MqttClient(paho).publish_value("t", {"x": object()}) is False
    paho.publish.assert_not_called()
    assert "Failed to serialize payload for t" in caplog.text


def test_direct_publish_passes_bytes_through():
    paho = _paho()
    MqttClient(paho).direct_publish("hairmqtt/connected", b"connected")
    paho.publish.assert_called_once_with(
        "hairmqtt/connected", b"connected", qos=QOS_AT_MOST_ONCE, retain=False
    )


def test_publish_discovery_at_least_once():
    paho = _paho()
    packet = DiscoveryPacket("homeassistant/sensor/Lap/config", b"{}")
    assert MqttClient(paho).publish_discovery(packet) is True
    paho.publish.assert_called_once_with(
        packet.topic, b"{}", qos=QOS_AT_LEAST_ONCE, retain=False
    )


def test_publish_discovery_retain_setting():
    paho = _paho()
    packet = DiscoveryPacket("topic", b"{}")
    MqttClient(paho, retain_discovery=True).publish_discovery(packet)
    assert paho.publish.call_args.kwargs["retain"] is True


def test_publish_discovery_skips_failed_packet(caplog):
    paho = _paho()
    packet = DiscoveryPacket("topic", None, TypeError("bad device"))
    with caplog.at_level(logging.ERROR):
        assert MqttClient(paho).publish_discovery(packet) is False
    paho.publish.assert_not_called()
    assert "bad device" in caplog.text


def test_publish_error_code_is_logged(caplog):
    paho = _paho(rc=mqtt.MQTT_ERR_NO_CONN)
    with caplog.at_level(logging.ERROR):
        assert MqttClient(paho).direct_publish("t", b"x") is False
    assert "Failed to publish message for t" in caplog.text


def test_publish_exception_is_logged(caplog):
    paho = _paho()
    paho.publish.side_effect = ValueError("Invalid topic.")
    with caplog.at_level(logging.ERROR):
        assert MqttClient(paho).publish_value("t", {}) is False
    assert "Invalid topic." in caplog.text


@pytest.fixture
def broker_env(monkeypatch):
    monkeypatch.setattr(config_module, "_ENV_LOADED", True)
    for var in ("MQTT_HOST", "MQTT_PORT", "MQTT_USERNAME", "MQTT_PASSWORD"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def test_connect_configures_client(broker_env):
    broker_env.setenv("MQTT_HOST", "broker.local")
    broker_env.setenv("MQTT_USERNAME", "user")
    broker_env.setenv("MQTT_PASSWORD", "secret")
    paho = MagicMock()
    with patch.object(transport, "_create_paho_client", return_value=paho) as create:
        client, raw = transport.connect(Config.from_defaults())

    create.assert_called_once_with("IrMqtt", "websockets")
    assert raw is paho
    assert isinstance(client, MqttClient)
    paho.username_pw_set.assert_called_once_with("user", "secret")
    paho.reconnect_delay_set.assert_called_once_with(min_delay=10, max_delay=10)
    paho.connect_async.assert_called_once_with("broker.local", 1884, keepalive=60)


def test_connect_without_credentials(broker_env):
    broker_env.setenv("MQTT_HOST", "broker.local")
    paho = MagicMock()
    with patch.object(transport, "_create_paho_client", return_value=paho):
        transport.connect(Config.from_defaults())
    paho.username_pw_set.assert_not_called()


def test_connect_requires_host(broker_env):
    with patch.object(transport, "_create_paho_client") as create:
        with pytest.raises(MissingBrokerHost):
            transport.connect(Config.from_defaults())
    create.assert_not_called()

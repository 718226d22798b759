from pathlib import Path
import sys

import pytest

# Add only the src directory to path, not the project root
project_root = Path(__file__).parent.parent
src_path = str(project_root / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)


class FakeDevice:
    """Stands in for ha_mqtt_publisher.Device."""

    def __init__(self, info=None):
        self.info = info or {
            "identifiers": ["hairmqtt"],
            "name": "Iracing Telemetry",
            "manufacturer": "hairmqtt",
        }

    def get_device_info(self):
        return self.info


class FakeMqttClient:
    """Records calls made on the publishing handle."""

    def __init__(self):
        self.values = []
        self.direct = []
        self.discovery = []

    def publish_value(self, topic, payload):
        self.values.append((topic, payload))
        return True

    def direct_publish(self, topic, payload):
        self.direct.append((topic, payload))
        return True

    def publish_discovery(self, packet):
        self.discovery.append(packet)
        return packet.ok


@pytest.fixture
def config():
    from hairmqtt.config import Config

    return Config(
        {
            "app": {"unique_id_prefix": "hairmqtt"},
            "home_assistant": {"discovery_prefix": "homeassistant"},
        }
    )


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def fake_client():
    return FakeMqttClient()

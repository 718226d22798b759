import dataclasses

import pytest

from ha_mqtt_publisher.ha_discovery import BinarySensor, Sensor

from hairmqtt.config import Config
from hairmqtt.entities import (
    BINARY_SENSOR,
    DescriptorBuilder,
    EntityDescriptor,
    FieldMetadata,
    value_template,
)


@pytest.fixture
def air_temp():
    return FieldMetadata("AirTemp", "C", "Temperature of air at start/finish line")


def test_runtime_field_sensor(air_temp, device):
    d = DescriptorBuilder.from_runtime_field(air_temp, "hairmqtt/telemetry", device).build()
    assert d.component == "sensor"
    assert d.name == "AirTemp"
    assert d.object_id == "AirTemp"
    assert d.unit_of_measurement == "C"
    assert d.value_template == "{{ value_json.AirTemp }}"
    assert d.expire_after == 15
    assert d.state_topic == "hairmqtt/telemetry"


def test_runtime_field_binary_sensor_has_no_unit(device):
    var = FieldMetadata("IsOnTrack", "", "")
    d = DescriptorBuilder.from_runtime_field(
        var, "hairmqtt/telemetry", device, BINARY_SENSOR
    ).build()
    assert d.component == "binary_sensor"
    assert d.unit_of_measurement is None
    assert d.expire_after == 10


def test_empty_unit_is_not_published(device, config):
    d = DescriptorBuilder.from_runtime_field(
        FieldMetadata("Lap", ""), "t", device
    ).build()
    assert "unit_of_measurement" not in d.to_entity(config).get_config_payload()


def test_session_field_uses_dotted_path(device):
    d = DescriptorBuilder.from_session_field("TrackName", "hairmqtt/session", device, 3).build()
    assert d.value_template == "{{ value_json.weekend_info.track_name }}"
    assert d.expire_after == 60


def test_session_field_uses_index_for_array_paths(device):
    d = DescriptorBuilder.from_session_field("UserName", "s", device, 12).build()
    assert d.value_template == "{{ value_json.driver_info.drivers.12.user_name }}"


def test_session_binary_sensor_expiry(device):
    d = DescriptorBuilder.from_session_field(
        "DriverSetupIsModified", "s", device, component=BINARY_SENSOR
    ).build()
    assert d.expire_after == 15


def test_unresolved_session_field_still_builds_without_template(device, config):
    d = DescriptorBuilder.from_session_field("NoSuchField", "s", device).build()
    assert d.value_template is None
    assert d.name == "NoSuchField"
    assert "value_template" not in d.to_entity(config).get_config_payload()


def test_mutators_return_new_builders(air_temp, device):
    base = DescriptorBuilder.from_runtime_field(air_temp, "t", device)
    renamed = base.with_name("Air Temperature")
    assert renamed is not base
    assert base.build().name == "AirTemp"
    assert renamed.build().name == "Air Temperature"


def test_all_mutators(air_temp, device):
    d = (
        DescriptorBuilder.from_runtime_field(air_temp, "t", device)
        .with_icon("mdi:thermometer")
        .with_device_class("temperature")
        .with_unit_of_measurement("degrees")
        .with_payload_on("on")
        .with_payload_off("off")
        .with_expire_after(5)
        .with_template_location("weekend_info.track_air_temp")
        .build()
    )
    assert d.icon == "mdi:thermometer"
    assert d.device_class == "temperature"
    assert d.unit_of_measurement == "degrees"
    assert (d.payload_on, d.payload_off) == ("on", "off")
    assert d.expire_after == 5
    assert d.value_template == value_template("weekend_info.track_air_temp")


def test_unit_can_be_cleared(air_temp, device):
    d = (
        DescriptorBuilder.from_runtime_field(air_temp, "t", device)
        .with_unit_of_measurement(None)
        .build()
    )
    assert d.unit_of_measurement is None


def test_value_template_override_is_verbatim(air_temp, device):
    template = "{{ value_json.AirTemp | float | round(2) }}"
    d = (
        DescriptorBuilder.from_runtime_field(air_temp, "t", device)
        .with_value_template(template)
        .build()
    )
    assert d.value_template == template


def test_built_descriptor_is_immutable(air_temp, device):
    d = DescriptorBuilder.from_runtime_field(air_temp, "t", device).build()
    with pytest.raises(dataclasses.FrozenInstanceError):
        d.name = "changed"


def test_building_more_does_not_change_earlier_descriptor(air_temp, device):
    builder = DescriptorBuilder.from_runtime_field(air_temp, "t", device)
    first = builder.build()
    builder.with_icon("mdi:flag").build()
    assert first.icon is None


def test_builder_stays_usable_after_build(air_temp, device):
    builder = DescriptorBuilder.from_runtime_field(air_temp, "t", device)
    first = builder.build()
    renamed = builder.with_name("Air").build()
    assert builder.build() == first
    assert renamed.name == "Air"
    assert first.name == "AirTemp"


def test_sensor_entity_topic_and_payload(air_temp, device, config):
    d = (
        DescriptorBuilder.from_runtime_field(air_temp, "hairmqtt/telemetry", device)
        .with_icon("mdi:thermometer")
        .build()
    )
    entity = d.to_entity(config)
    assert isinstance(entity, Sensor)
    assert entity.get_config_topic() == "homeassistant/sensor/AirTemp/config"

    payload = entity.get_config_payload()
    assert payload["unique_id"] == "hairmqtt_AirTemp"
    assert payload["name"] == "AirTemp"
    assert payload["state_topic"] == "hairmqtt/telemetry"
    assert payload["value_template"] == "{{ value_json.AirTemp }}"
    assert payload["unit_of_measurement"] == "C"
    assert payload["icon"] == "mdi:thermometer"
    assert payload["expire_after"] == 15
    assert payload["device"] == device.get_device_info()
    for unset in ("device_class", "payload_on", "payload_off"):
        assert unset not in payload


def test_binary_sensor_entity_carries_payloads(device, config):
    d = (
        DescriptorBuilder.new(
            "connection", "Connection", "hairmqtt/connected", device, BINARY_SENSOR
        )
        .with_payload_on("connected")
        .with_payload_off("disconnected")
        .build()
    )
    entity = d.to_entity(config)
    assert isinstance(entity, BinarySensor)
    assert entity.get_config_topic() == "homeassistant/binary_sensor/connection/config"
    payload = entity.get_config_payload()
    assert payload["unique_id"] == "hairmqtt_connection"
    assert payload["payload_on"] == "connected"
    assert payload["payload_off"] == "disconnected"
    assert "expire_after" not in payload


def test_entity_uses_configured_prefixes(air_temp, device):
    config = Config(
        {"app": {"unique_id_prefix": "rig2"}, "home_assistant": {"discovery_prefix": "ha"}}
    )
    entity = DescriptorBuilder.from_runtime_field(air_temp, "t", device).build().to_entity(
        config
    )
    assert entity.get_config_topic() == "ha/sensor/AirTemp/config"
    assert entity.get_config_payload()["unique_id"] == "rig2_AirTemp"


def test_to_entity_creates_a_new_entity_each_time(air_temp, device, config):
    d = DescriptorBuilder.from_runtime_field(air_temp, "t", device).build()
    first = d.to_entity(config)
    first.icon = "mdi:changed"
    assert d.icon is None
    assert d.to_entity(config).icon is None


def test_unsupported_component_is_rejected(device, config):
    d = DescriptorBuilder.new("x", "X", "t", device, "light").build()
    with pytest.raises(ValueError):
        d.to_entity(config)


def test_descriptor_equality_ignores_device(device):
    class OtherDevice:
        def get_device_info(self):
            return {"name": "other"}

    a = EntityDescriptor("sensor", "x", "x", "t", device)
    b = EntityDescriptor("sensor", "x", "x", "t", OtherDevice())
    assert a == b

"""Home Assistant discovery for the telemetry bridge.

Runtime sensors are announced whenever the simulator hands over its variable
catalog. Session sensors are announced once per link, the first time a
session document arrives, and again only after the link has been lost.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
import json
import logging
from typing import Any, NamedTuple, Optional

from ha_mqtt_publisher import Device

from . import __version__
from .entities import (
    BINARY_SENSOR,
    SENSOR,
    DescriptorBuilder,
    EntityDescriptor,
    FieldMetadata,
)
from .session import driver_car_idx

logger = logging.getLogger(__name__)

# Flag sensors, in announcement order
FLAG_NAMES = ("Yellow", "White", "Green", "Blue", "Checkered")
FLAG_EXPIRY = 5
# Track name is looked up through this array slot
TRACK_NAME_INDEX = 3


class RuntimeSensor(NamedTuple):
    """Presentation of one modelled runtime field.

    ``unit`` replaces the catalog unit; ``clear_unit`` drops it (enums,
    ratios).
    """

    component: str = SENSOR
    icon: Optional[str] = None
    name: Optional[str] = None
    device_class: Optional[str] = None
    unit: Optional[str] = None
    clear_unit: bool = False
    value_template: Optional[str] = None


def _rounded(name: str) -> str:
    return f"{{{{ value_json.{name} | float | round(2) }}}}"


def _degrees(name: str) -> str:
    return f"{{{{ (value_json.{name} | float * 180 / pi) | float | round(2) }}}}"


# Runtime fields with a modelled sensor, in announcement order
RUNTIME_SENSORS: dict[str, RuntimeSensor] = {
    "AirTemp": RuntimeSensor(
        icon="mdi:thermometer",
        device_class="temperature",
        value_template=_rounded("AirTemp"),
    ),
    "TrackTempCrew": RuntimeSensor(
        icon="mdi:thermometer",
        name="Track Temperature",
        device_class="temperature",
        value_template=_rounded("TrackTempCrew"),
    ),
    "WindDir": RuntimeSensor(unit="degrees", value_template=_degrees("WindDir")),
    "WindVel": RuntimeSensor(
        unit="km/h",
        value_template="{{ (value_json.WindVel | float * 3.6) | round(2) }}",
    ),
    "IsOnTrack": RuntimeSensor(
        component=BINARY_SENSOR,
        icon="mdi:go-kart-track",
        value_template="{{ 'on' if value_json.IsOnTrack == true else 'off' }}",
    ),
    "Lap": RuntimeSensor(icon="mdi:counter"),
    "SessionState": RuntimeSensor(icon="mdi:state-machine", clear_unit=True),
    "PlayerCarClassPosition": RuntimeSensor(icon="mdi:podium"),
    "TrackWetness": RuntimeSensor(icon="mdi:weather-rainy", clear_unit=True),
    "SolarAzimuth": RuntimeSensor(
        icon="mdi:sun-compass", unit="degrees", value_template=_degrees("SolarAzimuth")
    ),
    "SolarAltitude": RuntimeSensor(
        icon="mdi:sun-angle", unit="degrees", value_template=_degrees("SolarAltitude")
    ),
}
RUNTIME_FIELDS = tuple(RUNTIME_SENSORS)


class Topics(NamedTuple):
    telemetry: str = "hairmqtt/telemetry"
    session: str = "hairmqtt/session"
    connected: str = "hairmqtt/connected"

    @classmethod
    def from_config(cls, config: Any) -> Topics:
        topics = config.get_mqtt_topics()
        return cls(
            telemetry=topics["telemetry"],
            session=topics["session"],
            connected=topics["connected"],
        )


class DiscoveryPacket(NamedTuple):
    """A discovery topic with either its serialized payload or the error
    that prevented serialization."""

    topic: str
    payload: Optional[bytes]
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DiscoveryPhase(Enum):
    DISCONNECTED = "disconnected"
    CATALOG_KNOWN = "catalog_known"
    ANNOUNCED = "announced"


def build_device(config: Any) -> Device:
    """Build the Home Assistant device every entity is grouped under."""
    return Device(
        config,
        identifiers=[config.unique_id_prefix],
        name=config.get("app.name", "Iracing Telemetry"),
        manufacturer=config.get("app.manufacturer", "hairmqtt"),
        model=config.get("app.model", "hairmqtt"),
        sw_version=__version__,
    )


def prepare_payload(descriptor: EntityDescriptor, config: Any) -> DiscoveryPacket:
    """Serialize one descriptor through its ha_mqtt_publisher entity.

    Failures are captured in the packet, not raised. When the entity cannot
    even be created the packet topic is the descriptor's object id.
    """
    topic = descriptor.object_id
    try:
        entity = descriptor.to_entity(config)
        topic = entity.get_config_topic()
        payload = json.dumps(entity.get_config_payload(), allow_nan=False).encode(
            "utf-8"
        )
    except (TypeError, ValueError) as e:
        return DiscoveryPacket(topic, None, e)
    return DiscoveryPacket(topic, payload)


def runtime_descriptors(
    catalog: Mapping[str, FieldMetadata], device: Any, topics: Topics
) -> list[EntityDescriptor]:
    """Descriptors for the modelled runtime fields present in ``catalog``."""
    descriptors: list[EntityDescriptor] = []
    for name, sensor in RUNTIME_SENSORS.items():
        var = catalog.get(name)
        if var is None:
            continue
        b = DescriptorBuilder.from_runtime_field(
            var, topics.telemetry, device, sensor.component
        )
        if sensor.icon:
            b = b.with_icon(sensor.icon)
        if sensor.name:
            b = b.with_name(sensor.name)
        if sensor.device_class:
            b = b.with_device_class(sensor.device_class)
        if sensor.unit or sensor.clear_unit:
            b = b.with_unit_of_measurement(sensor.unit)
        if sensor.value_template:
            b = b.with_value_template(sensor.value_template)
        if sensor.component == BINARY_SENSOR:
            b = b.with_payload_on("on").with_payload_off("off")
        descriptors.append(b.build())
    return descriptors


def flag_descriptors(device: Any, topics: Topics) -> list[EntityDescriptor]:
    """Binary sensors that are on while a flag is shown in SessionFlags."""
    descriptors = []
    for flag in FLAG_NAMES:
        descriptors.append(
            DescriptorBuilder.new(
                f"{flag.lower()}-flag",
                f"{flag} Flag",
                topics.telemetry,
                device,
                BINARY_SENSOR,
            )
            .with_expire_after(FLAG_EXPIRY)
            .with_icon("mdi:flag")
            .with_payload_on("on")
            .with_payload_off("off")
            .with_value_template(
                f"{{{{ 'on' if '{flag}' in value_json.SessionFlags else 'off' }}}}"
            )
            .build()
        )
    return descriptors


def session_descriptors(
    session: Mapping[str, Any], device: Any, topics: Topics
) -> list[EntityDescriptor]:
    """Descriptors announced once per session, plus the connection sensor."""
    car_idx = driver_car_idx(session)
    state = topics.session
    return [
        DescriptorBuilder.from_session_field("DriverCarIdx", state, device, car_idx)
        .with_icon("mdi:account")
        .build(),
        DescriptorBuilder.from_session_field("DriverSetupName", state, device, car_idx)
        .with_icon("mdi:cog")
        .build(),
        DescriptorBuilder.from_session_field(
            "TrackName", state, device, TRACK_NAME_INDEX
        )
        .with_icon("mdi:go-kart-track")
        .build(),
        DescriptorBuilder.new(
            "connection", "Connection", topics.connected, device, BINARY_SENSOR
        )
        .with_icon("mdi:connection")
        .with_payload_on("connected")
        .with_payload_off("disconnected")
        .build(),
    ]


class DiscoveryPipeline:
    """Tracks what has been announced on the current telemetry link.

    ``config`` supplies the discovery prefix and unique id prefix to the
    ha_mqtt_publisher entities. Owned by the single thread that consumes
    telemetry events; not thread-safe.
    """

    def __init__(self, config: Any, device: Any, topics: Optional[Topics] = None):
        self.config = config
        self.device = device
        self.topics = topics if topics is not None else Topics.from_config(config)
        self._phase = DiscoveryPhase.DISCONNECTED
        self._catalog: dict[str, FieldMetadata] = {}

    @property
    def phase(self) -> DiscoveryPhase:
        return self._phase

    @property
    def announced(self) -> bool:
        """True once session descriptors were sent on this link."""
        return self._phase is DiscoveryPhase.ANNOUNCED

    @property
    def catalog(self) -> Mapping[str, FieldMetadata]:
        return self._catalog

    @property
    def known_fields(self) -> list[str]:
        return list(self._catalog)

    def _prepare(self, descriptors: list[EntityDescriptor]) -> list[DiscoveryPacket]:
        return [prepare_payload(d, self.config) for d in descriptors]

    def on_variable_catalog(
        self, catalog: Mapping[str, FieldMetadata]
    ) -> list[DiscoveryPacket]:
        """Cache a new variable catalog and return the runtime discovery packets.

        Always emits, even when the same catalog was seen before.
        """
        self._catalog = dict(catalog)
        if self._phase is DiscoveryPhase.DISCONNECTED:
            self._phase = DiscoveryPhase.CATALOG_KNOWN
        descriptors = runtime_descriptors(self._catalog, self.device, self.topics)
        descriptors.extend(flag_descriptors(self.device, self.topics))
        logger.debug(
            "Variable catalog updated: %d fields, %d descriptors",
            len(self._catalog),
            len(descriptors),
        )
        return self._prepare(descriptors)

    def on_session(self, session: Mapping[str, Any]) -> list[DiscoveryPacket]:
        """Return session discovery packets the first time per link, else []."""
        if self.announced:
            return []
        packets = self._prepare(session_descriptors(session, self.device, self.topics))
        self._phase = DiscoveryPhase.ANNOUNCED
        logger.debug("Session discovery prepared (%d packets)", len(packets))
        return packets

    def on_disconnect(self) -> None:
        """Forget the link; the next connection re-announces everything."""
        self._catalog.clear()
        self._phase = DiscoveryPhase.DISCONNECTED


__all__ = [
    "DiscoveryPacket",
    "DiscoveryPhase",
    "DiscoveryPipeline",
    "FLAG_NAMES",
    "RUNTIME_FIELDS",
    "RUNTIME_SENSORS",
    "RuntimeSensor",
    "Topics",
    "build_device",
    "flag_descriptors",
    "prepare_payload",
    "runtime_descriptors",
    "session_descriptors",
]

"""Home Assistant entity descriptors.

An :class:`EntityDescriptor` is everything Home Assistant needs to create one
sensor: identity, display metadata, the template that extracts its value from
a published state document, and its expiry. Descriptors are immutable; they
are produced by :class:`DescriptorBuilder`, whose ``with_*`` methods each
return a new builder.

The discovery topic and payload are rendered by ha_mqtt_publisher: a
descriptor becomes a ``Sensor`` or ``BinarySensor`` through
:meth:`EntityDescriptor.to_entity`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, NamedTuple, Optional

from ha_mqtt_publisher.ha_discovery import BinarySensor, Device, Entity, Sensor

from .schema import DEFAULT_DISAMBIGUATION_INDEX, resolve_path

SENSOR = "sensor"
BINARY_SENSOR = "binary_sensor"

# Seconds before Home Assistant marks a value unavailable
RUNTIME_EXPIRY = {SENSOR: 15, BINARY_SENSOR: 10}
SESSION_EXPIRY = {SENSOR: 60, BINARY_SENSOR: 15}

# Descriptor options handed to the library entity when set
_ENTITY_OPTIONS = (
    "value_template",
    "unit_of_measurement",
    "icon",
    "device_class",
    "expire_after",
    "payload_on",
    "payload_off",
)

_ENTITY_CLASSES = {SENSOR: Sensor, BINARY_SENSOR: BinarySensor}


class FieldMetadata(NamedTuple):
    """One entry of the simulator's live variable catalog."""

    name: str
    unit: Optional[str] = None
    description: str = ""


def value_template(location: str) -> str:
    """Wrap a dotted location in Home Assistant's double-brace template."""
    return f"{{{{ value_json.{location} }}}}"


@dataclass(frozen=True)
class EntityDescriptor:
    component: str
    object_id: str
    name: str
    state_topic: str
    device: Optional[Device] = field(compare=False, repr=False)
    value_template: Optional[str] = None
    unit_of_measurement: Optional[str] = None
    icon: Optional[str] = None
    device_class: Optional[str] = None
    expire_after: Optional[int] = None
    payload_on: Optional[str] = None
    payload_off: Optional[str] = None

    def to_entity(self, config: Any) -> Entity:
        """Create the ha_mqtt_publisher entity announcing this descriptor.

        ``object_id`` is the entity's short unique id; the library prefixes it
        with ``app.unique_id_prefix`` in the payload and places it in the
        discovery topic under ``home_assistant.discovery_prefix``.

        Raises:
            ValueError: unknown component, or a device class the library
                rejects.
        """
        entity_class = _ENTITY_CLASSES.get(self.component)
        if entity_class is None:
            raise ValueError(f"Unsupported component: {self.component}")
        options = {
            key: getattr(self, key)
            for key in _ENTITY_OPTIONS
            if getattr(self, key) is not None
        }
        return entity_class(
            config,
            self.device,
            unique_id=self.object_id,
            name=self.name,
            state_topic=self.state_topic,
            **options,
        )


class DescriptorBuilder:
    """Fluent, copy-on-write construction of :class:`EntityDescriptor`.

    ``build()`` is not terminal: it returns the frozen descriptor and the
    builder stays usable, so further descriptors can be derived from it
    without affecting ones already built.
    """

    __slots__ = ("_descriptor",)

    def __init__(self, descriptor: EntityDescriptor):
        self._descriptor = descriptor

    @classmethod
    def new(
        cls,
        object_id: str,
        name: str,
        state_topic: str,
        device: Any,
        component: str = SENSOR,
    ) -> DescriptorBuilder:
        """Start a descriptor that is not backed by a telemetry field."""
        return cls(
            EntityDescriptor(
                component=component,
                object_id=object_id,
                name=name,
                state_topic=state_topic,
                device=device,
            )
        )

    @classmethod
    def from_runtime_field(
        cls,
        var: FieldMetadata,
        state_topic: str,
        device: Any,
        component: str = SENSOR,
    ) -> DescriptorBuilder:
        """Descriptor for a field of the live variable catalog.

        The value sits at the top level of the telemetry document, so the
        template references the field name directly.
        """
        builder = cls.new(var.name, var.name, state_topic, device, component)
        builder = builder.with_template_location(var.name).with_expire_after(
            RUNTIME_EXPIRY[component]
        )
        if component == SENSOR:
            builder = builder.with_unit_of_measurement(var.unit or None)
        return builder

    @classmethod
    def from_session_field(
        cls,
        var_name: str,
        state_topic: str,
        device: Any,
        index: Optional[int] = None,
        component: str = SENSOR,
    ) -> DescriptorBuilder:
        """Descriptor for a field of the session document.

        When the field cannot be located the descriptor carries no value
        template; Home Assistant then shows the raw state.
        """
        if index is None:
            index = DEFAULT_DISAMBIGUATION_INDEX
        builder = cls.new(
            var_name, var_name, state_topic, device, component
        ).with_expire_after(SESSION_EXPIRY[component])
        dot_path = resolve_path(var_name, index)
        if dot_path is not None:
            builder = builder.with_template_location(dot_path)
        return builder

    def _with(self, **changes: Any) -> DescriptorBuilder:
        return DescriptorBuilder(replace(self._descriptor, **changes))

    def with_name(self, name: str) -> DescriptorBuilder:
        return self._with(name=str(name))

    def with_icon(self, icon: str) -> DescriptorBuilder:
        return self._with(icon=str(icon))

    def with_device_class(self, device_class: str) -> DescriptorBuilder:
        return self._with(device_class=str(device_class))

    def with_unit_of_measurement(self, unit: Optional[str]) -> DescriptorBuilder:
        """Set the unit, or clear it with None (bitfields, enums)."""
        return self._with(unit_of_measurement=None if unit is None else str(unit))

    def with_payload_on(self, payload: str) -> DescriptorBuilder:
        return self._with(payload_on=str(payload))

    def with_payload_off(self, payload: str) -> DescriptorBuilder:
        return self._with(payload_off=str(payload))

    def with_value_template(self, template: str) -> DescriptorBuilder:
        """Replace the value template verbatim."""
        return self._with(value_template=str(template))

    def with_template_location(self, location: str) -> DescriptorBuilder:
        """Point the value template at a dotted location in the state document."""
        return self._with(value_template=value_template(location))

    def with_expire_after(self, seconds: Optional[int]) -> DescriptorBuilder:
        return self._with(expire_after=seconds)

    def build(self) -> EntityDescriptor:
        return self._descriptor


__all__ = [
    "BINARY_SENSOR",
    "DescriptorBuilder",
    "EntityDescriptor",
    "FieldMetadata",
    "RUNTIME_EXPIRY",
    "SENSOR",
    "SESSION_EXPIRY",
    "value_template",
]

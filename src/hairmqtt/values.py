"""Build the state documents published every telemetry tick.

The telemetry document is flat: ``{"AirTemp": 21.4, "Lap": 3, ...}``. A field
with no usable value this tick is left out rather than sent as null, so Home
Assistant keeps the last value until the entity expires.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import json
import logging
import math
from typing import Any, Callable

logger = logging.getLogger(__name__)

# irsdk_Flags bits, in bit order
SESSION_FLAG_BITS: tuple[tuple[int, str], ...] = (
    (0x00000001, "Checkered"),
    (0x00000002, "White"),
    (0x00000004, "Green"),
    (0x00000008, "Yellow"),
    (0x00000010, "Red"),
    (0x00000020, "Blue"),
    (0x00000040, "Debris"),
    (0x00000080, "Crossed"),
    (0x00000100, "YellowWaving"),
    (0x00000200, "OneLapToGreen"),
    (0x00000400, "GreenHeld"),
    (0x00000800, "TenToGo"),
    (0x00001000, "FiveToGo"),
    (0x00002000, "RandomWaving"),
    (0x00004000, "Caution"),
    (0x00008000, "CautionWaving"),
    (0x00010000, "Black"),
    (0x00020000, "Disqualify"),
    (0x00040000, "Servicible"),
    (0x00080000, "Furled"),
    (0x00100000, "Repair"),
    (0x10000000, "StartHidden"),
    (0x20000000, "StartReady"),
    (0x40000000, "StartSet"),
    (0x80000000, "StartGo"),
)


def session_flag_names(value: Any) -> Any:
    """Expand the SessionFlags bitfield into flag names.

    Flag sensors test membership (``'Yellow' in value_json.SessionFlags``).
    Values that are already a list of names are passed through.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return value
    bits = value & 0xFFFFFFFF
    return [name for bit, name in SESSION_FLAG_BITS if bits & bit]


VALUE_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "SessionFlags": session_flag_names,
}


def _to_json_value(value: Any) -> Any:
    # SDK arrays come back as tuples; JSON only knows lists
    if isinstance(value, tuple):
        return [_to_json_value(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"non-finite value {value!r}")
    return value


def flatten(values: Mapping[str, Any], known_fields: Iterable[str]) -> dict[str, Any]:
    """Map one tick of telemetry into the published telemetry document.

    Only fields in ``known_fields`` are considered. Fields missing from
    ``values``, set to None, or not serialisable are omitted; the latter are
    logged and do not affect the other fields.
    """
    payload: dict[str, Any] = {}
    for name in known_fields:
        value = values.get(name)
        if value is None:
            continue
        try:
            converter = VALUE_CONVERTERS.get(name)
            if converter is not None:
                value = converter(value)
            value = _to_json_value(value)
            json.dumps(value, allow_nan=False)
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize value for %s: %s", name, e)
            continue
        payload[name] = value
    return payload


def session_payload(session: Any) -> dict[str, Any]:
    """Return the session document to publish, unfiltered."""
    if isinstance(session, Mapping):
        return dict(session)
    logger.error("Failed to serialize session: %s", type(session).__name__)
    return {}


__all__ = [
    "SESSION_FLAG_BITS",
    "VALUE_CONVERTERS",
    "flatten",
    "session_flag_names",
    "session_payload",
]

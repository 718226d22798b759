"""Telemetry events and the iRacing SDK feed.

The bridge consumes an ordered stream of events. ``IRacingFeed`` produces
that stream by polling the simulator through ``pyirsdk``; tests and other
sources can yield the same event types from any iterable.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
import logging
import threading
from typing import Any, Optional, Union

from .entities import FieldMetadata

logger = logging.getLogger(__name__)

# Top-level sections of the session document
SESSION_SECTIONS = (
    "WeekendInfo",
    "SessionInfo",
    "QualifyResultsInfo",
    "SplitTimeInfo",
    "CarSetup",
    "DriverInfo",
    "RadioInfo",
    "CameraInfo",
)


@dataclass(frozen=True)
class DataUpdate:
    """One tick of runtime values, keyed by field name."""

    values: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionUpdate:
    """A new session document, as YAML text or an already parsed mapping."""

    raw: Union[str, bytes, Mapping[str, Any]]


@dataclass(frozen=True)
class VariableCatalog:
    """The variables available for the current car/session."""

    fields: Mapping[str, FieldMetadata] = field(default_factory=dict)


@dataclass(frozen=True)
class LinkLost:
    """The simulator is no longer running or has left the session."""


TelemetryEvent = Union[DataUpdate, SessionUpdate, VariableCatalog, LinkLost]


def _load_sdk() -> Any:
    try:
        import irsdk
    except ImportError as e:
        raise RuntimeError(
            "pyirsdk not available. Install it with: pip install 'hairmqtt[iracing]'"
        ) from e
    return irsdk.IRSDK()


class IRacingFeed:
    """Iterate over telemetry events read from the simulator.

    Polls ``hz`` times a second. The iterator runs until ``stop()`` is called.

    Args:
        hz: Poll rate.
        sdk: An ``irsdk.IRSDK``-compatible object; created lazily when None.
    """

    def __init__(self, hz: float = 2.0, sdk: Any = None):
        if hz <= 0:
            raise ValueError("hz must be positive")
        self.interval = 1.0 / hz
        self._sdk = sdk
        self._stop = threading.Event()
        self._connected = False
        self._session_update: Optional[int] = None

    @property
    def sdk(self) -> Any:
        if self._sdk is None:
            self._sdk = _load_sdk()
        return self._sdk

    def stop(self) -> None:
        self._stop.set()

    def __iter__(self) -> Iterator[TelemetryEvent]:
        while not self._stop.is_set():
            yield from self.poll()
            self._stop.wait(self.interval)

    def _is_live(self) -> bool:
        ir = self.sdk
        if ir.is_initialized and ir.is_connected:
            return True
        if not ir.is_initialized:
            ir.startup()
        return bool(ir.is_initialized and ir.is_connected)

    def poll(self) -> list[TelemetryEvent]:
        """Read the simulator once and return the resulting events."""
        ir = self.sdk
        if not self._is_live():
            if self._connected:
                self._connected = False
                self._session_update = None
                ir.shutdown()
                return [LinkLost()]
            return []

        events: list[TelemetryEvent] = []
        if not self._connected:
            self._connected = True
            events.append(VariableCatalog(self._catalog()))
            logger.info("Connected to iRacing")

        ir.freeze_var_buffer_latest()
        try:
            update = ir.session_info_update
            if update != self._session_update:
                self._session_update = update
                events.append(SessionUpdate(self._session_document()))
            values = {name: ir[name] for name in ir.var_headers_names}
        finally:
            ir.unfreeze_var_buffer_latest()
        events.append(DataUpdate(values))
        return events

    def _catalog(self) -> dict[str, FieldMetadata]:
        ir = self.sdk
        headers = getattr(ir, "_var_headers_dict", None) or {}
        catalog: dict[str, FieldMetadata] = {}
        for name in ir.var_headers_names:
            header = headers.get(name)
            catalog[name] = FieldMetadata(
                name=name,
                unit=getattr(header, "unit", None) or None,
                description=getattr(header, "desc", "") or "",
            )
        return catalog

    def _session_document(self) -> dict[str, Any]:
        ir = self.sdk
        document: dict[str, Any] = {}
        for section in SESSION_SECTIONS:
            value = ir[section]
            if value is not None:
                document[section] = value
        return document


__all__ = [
    "DataUpdate",
    "IRacingFeed",
    "LinkLost",
    "SESSION_SECTIONS",
    "SessionUpdate",
    "TelemetryEvent",
    "VariableCatalog",
]

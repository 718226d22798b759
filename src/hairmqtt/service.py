"""The bridge loop.

A worker thread consumes telemetry events in order and drives discovery and
value publishing; the main thread runs the MQTT network loop. The two only
share the paho client, whose ``publish`` is thread-safe.
"""

from __future__ import annotations

from collections.abc import Iterable
import logging
import signal
import threading
from typing import Any, Optional

from .config import Config
from .discovery import DiscoveryPipeline, Topics, build_device
from .errors import SessionParseError
from .session import parse_session
from .telemetry import DataUpdate, IRacingFeed, LinkLost, SessionUpdate, VariableCatalog
from .transport import MqttClient, connect
from .values import flatten, session_payload

logger = logging.getLogger(__name__)

CONNECTED = "connected"
DISCONNECTED = "disconnected"


def handle_event(
    event: Any, client: MqttClient, pipeline: DiscoveryPipeline, topics: Topics
) -> None:
    """Process one telemetry event."""
    if isinstance(event, DataUpdate):
        client.direct_publish(topics.connected, CONNECTED.encode())
        payload = flatten(event.values, pipeline.known_fields)
        client.publish_value(topics.telemetry, payload)

    elif isinstance(event, SessionUpdate):
        try:
            session = parse_session(event.raw)
        except SessionParseError as e:
            logger.error("Skipping session update: %s", e)
            return
        if not pipeline.announced:
            for packet in pipeline.on_session(session):
                client.publish_discovery(packet)
            logger.debug("Session discovery sent")
        client.publish_value(topics.session, session_payload(session))
        logger.debug("Session info updated")

    elif isinstance(event, VariableCatalog):
        # Normally sent once, when the session loads
        for packet in pipeline.on_variable_catalog(event.fields):
            client.publish_discovery(packet)
        logger.debug("Updated variable catalog")

    elif isinstance(event, LinkLost):
        pipeline.on_disconnect()
        client.direct_publish(topics.connected, DISCONNECTED.encode())
        logger.debug("Telemetry link is not connected")

    else:
        logger.info(
            "Ignoring unsupported telemetry event type %s", type(event).__name__
        )


def run_bridge(
    events: Iterable[Any],
    client: MqttClient,
    pipeline: DiscoveryPipeline,
    topics: Topics,
) -> None:
    """Consume ``events`` until the iterable is exhausted."""
    for event in events:
        try:
            handle_event(event, client, pipeline, topics)
        except Exception as e:
            # One bad tick must not stop the bridge
            logger.error(
                "Failed to handle telemetry event %s: %s", type(event).__name__, e
            )


def serve(config: Config, feed: Optional[Iterable[Any]] = None) -> int:
    """Run the bridge until interrupted.

    Raises:
        ConfigurationError: broker settings are missing or invalid.
    """
    client, paho_client = connect(config)
    topics = Topics.from_config(config)
    pipeline = DiscoveryPipeline(config, build_device(config), topics)
    if feed is None:
        feed = IRacingFeed(hz=config.telemetry_hz)

    worker = threading.Thread(
        target=run_bridge,
        args=(feed, client, pipeline, topics),
        name="hairmqtt-telemetry",
        daemon=True,
    )

    def shutdown(signum=None, frame=None):  # pragma: no cover - signal path
        logger.info("Shutting down")
        stop = getattr(feed, "stop", None)
        if callable(stop):
            stop()
        paho_client.disconnect()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    worker.start()
    # Drives the network loop, reconnecting after reconnect_delay_seconds.
    paho_client.loop_forever(retry_first_connection=True)
    return 0


__all__ = ["handle_event", "run_bridge", "serve"]

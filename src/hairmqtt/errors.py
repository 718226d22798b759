"""Exception types raised by hairmqtt.

Only configuration errors are fatal; everything raised while handling a
telemetry tick is caught by the bridge loop, logged and skipped.
"""


class HairMqttError(Exception):
    """Base class for hairmqtt errors."""


class ConfigurationError(HairMqttError, ValueError):
    """Required connection settings are missing or invalid."""


class MissingBrokerHost(ConfigurationError):
    def __init__(self) -> None:
        super().__init__("Missing MQTT broker host (set MQTT_HOST)")


class MissingCredentials(ConfigurationError):
    def __init__(self) -> None:
        super().__init__(
            "Missing MQTT credentials (MQTT_USERNAME and MQTT_PASSWORD must be set together)"
        )


class InvalidPort(ConfigurationError):
    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid MQTT port: {value!r}")
        self.value = value


class SessionParseError(HairMqttError):
    """The session document sent by the simulator could not be parsed."""


__all__ = [
    "ConfigurationError",
    "HairMqttError",
    "InvalidPort",
    "MissingBrokerHost",
    "MissingCredentials",
    "SessionParseError",
]

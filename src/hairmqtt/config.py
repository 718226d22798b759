"""
Configuration management for hairmqtt.

Settings come from a YAML file layered over built-in defaults, with ``${VAR}``
placeholders expanded from the environment and ``HAIRMQTT_<KEY>`` variables
overriding individual keys. ``.env`` files are loaded once, never replacing
variables already set by the OS.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import dotenv_values, find_dotenv
import yaml

from .errors import InvalidPort, MissingBrokerHost, MissingCredentials

logger = logging.getLogger(__name__)

DEFAULT_MQTT_PORT = 1884
ENV_PREFIX = "HAIRMQTT_"

# Lazy one-time .env loading flag
_ENV_LOADED = False


def _load_env_once() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    # Precedence, highest first:
    # 1) system environment - already present in os.environ
    # 2) .env found from the current working directory upwards
    # 3) project-level .env
    # 4) workspace-level .env
    project_root = Path(__file__).parent.parent.parent
    workspace_env = project_root.parent / ".env"
    project_env = project_root / ".env"
    cwd_env = find_dotenv(usecwd=True)

    merged: dict[str, str] = {}
    for env_file in (workspace_env, project_env):
        if env_file.exists():
            merged.update(
                {k: v for k, v in dotenv_values(env_file).items() if v is not None}
            )
    if cwd_env:
        merged.update({k: v for k, v in dotenv_values(cwd_env).items() if v is not None})
    else:
        logger.debug("Did not find .env file")

    for k, v in merged.items():
        if k and k not in os.environ:
            os.environ[k] = str(v)
    _ENV_LOADED = True


def _is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("${") and value.endswith("}")


def _default_data() -> dict:
    return {
        "app": {
            "name": "Iracing Telemetry",
            "manufacturer": "hairmqtt",
            "model": "hairmqtt",
            "unique_id_prefix": "hairmqtt",
        },
        "mqtt": {
            "broker": "${MQTT_HOST}",
            "port": "${MQTT_PORT}",
            "transport": "websockets",
            "client_id": "IrMqtt",
            "keepalive": 60,
            "auth": {
                "username": "${MQTT_USERNAME}",
                "password": "${MQTT_PASSWORD}",
            },
            "topics": {
                "telemetry": "hairmqtt/telemetry",
                "session": "hairmqtt/session",
                "connected": "hairmqtt/connected",
            },
        },
        "home_assistant": {
            "discovery_prefix": "homeassistant",
            # Discovery is re-sent every session; retaining it would leave
            # orphaned entities behind when the car's variables change.
            "retain_discovery": False,
        },
        "telemetry": {"update_hz": 2.0},
        "service": {"reconnect_delay_seconds": 10},
    }


def _merge(base: dict, override: dict) -> dict:
    """Recursively overlay ``override`` onto ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Configuration manager with validation and defaults."""

    config_path: Optional[str] = None

    def __init__(self, config_data: dict):
        """Initialize configuration from dictionary."""
        _load_env_once()
        self._data = config_data or {}
        self.config_path = None

    @classmethod
    def from_file(cls, config_path: str) -> "Config":
        """Load configuration from YAML file."""
        _load_env_once()
        path = Path(config_path)

        if not path.exists():
            # Try relative to project root
            project_root = Path(__file__).parent.parent.parent
            path = project_root / config_path

            if not path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # File values override the built-in defaults
        instance = cls(_merge(_default_data(), data))
        instance.config_path = str(path)
        return instance

    @classmethod
    def from_defaults(cls) -> "Config":
        """Create configuration with default values."""
        _load_env_once()
        instance = cls(_default_data())
        instance.config_path = "defaults"
        return instance

    @classmethod
    def load(cls, config_path: Optional[str]) -> "Config":
        """Load ``config_path`` when given, falling back to defaults when the
        default path does not exist."""
        if config_path:
            return cls.from_file(config_path)
        try:
            return cls.from_file("config/config.yaml")
        except FileNotFoundError:
            return cls.from_defaults()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        keys = key.split(".")
        value = self._data

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        # Environment variable override
        env_key = f"{ENV_PREFIX}{key.upper().replace('.', '_')}"
        env_value = os.getenv(env_key)
        if env_value is not None:
            if isinstance(value, bool):
                return env_value.lower() in ("true", "1", "yes", "on")
            elif isinstance(value, int):
                try:
                    return int(env_value)
                except ValueError:
                    pass
            elif isinstance(value, float):
                try:
                    return float(env_value)
                except ValueError:
                    pass
            return env_value

        # Handle ${VARIABLE} expansion in string values
        if _is_placeholder(value):
            expanded_value = os.getenv(value[2:-1])
            if expanded_value is not None:
                return expanded_value
            # Unset variables keep the placeholder so callers can detect them

        return value

    def _get_set(self, key: str) -> Optional[str]:
        """Return a string setting, or None when empty or an unexpanded placeholder."""
        value = self.get(key)
        if value is None or _is_placeholder(value):
            return None
        value = str(value).strip()
        return value or None

    @property
    def app_name(self) -> str:
        return self.get("app.name", "Iracing Telemetry")

    @property
    def unique_id_prefix(self) -> str:
        return self.get("app.unique_id_prefix", "hairmqtt")

    @property
    def mqtt_broker(self) -> Optional[str]:
        """Get MQTT broker host (None when not configured)."""
        return self._get_set("mqtt.broker")

    @property
    def mqtt_port(self) -> int:
        """Get MQTT port, raising InvalidPort for values that are not a TCP port."""
        raw = self._get_set("mqtt.port")
        if raw is None:
            return DEFAULT_MQTT_PORT
        try:
            port = int(raw)
        except ValueError:
            raise InvalidPort(raw) from None
        if not 0 < port < 65536:
            raise InvalidPort(raw)
        return port

    @property
    def mqtt_transport(self) -> str:
        return self.get("mqtt.transport", "websockets")

    @property
    def mqtt_username(self) -> Optional[str]:
        """Get MQTT username."""
        return self._get_set("mqtt.auth.username")

    @property
    def mqtt_password(self) -> Optional[str]:
        """Get MQTT password."""
        return self._get_set("mqtt.auth.password")

    @property
    def mqtt_client_id(self) -> str:
        """Get MQTT client ID."""
        return self.get("mqtt.client_id", "IrMqtt")

    @property
    def discovery_prefix(self) -> str:
        return self.get("home_assistant.discovery_prefix", "homeassistant")

    @property
    def retain_discovery(self) -> bool:
        return bool(self.get("home_assistant.retain_discovery", False))

    @property
    def telemetry_hz(self) -> float:
        return float(self.get("telemetry.update_hz", 2.0))

    @property
    def reconnect_delay_seconds(self) -> int:
        return int(self.get("service.reconnect_delay_seconds", 10))

    def get_mqtt_topics(self) -> dict:
        """Get MQTT topics configuration with defaults filled in."""
        topics = {
            "telemetry": "hairmqtt/telemetry",
            "session": "hairmqtt/session",
            "connected": "hairmqtt/connected",
        }
        topics.update(self.get("mqtt.topics", {}) or {})
        return topics

    def get_mqtt_config(self) -> dict:
        """Get the validated broker connection settings.

        Raises:
            MissingBrokerHost: no broker host configured.
            MissingCredentials: only one of username/password is set.
            InvalidPort: the port is not an integer TCP port.
        """
        host = self.mqtt_broker
        if host is None:
            raise MissingBrokerHost()

        cfg: dict[str, Any] = {
            "broker_url": host,
            "broker_port": self.mqtt_port,
            "client_id": self.mqtt_client_id,
            "transport": self.mqtt_transport,
            "keepalive": int(self.get("mqtt.keepalive", 60)),
        }

        username, password = self.mqtt_username, self.mqtt_password
        if username is not None and password is not None:
            cfg["auth"] = {"username": username, "password": password}
        elif username is not None or password is not None:
            raise MissingCredentials()
        return cfg

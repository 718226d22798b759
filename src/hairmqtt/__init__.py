"""
hairmqtt - iRacing telemetry bridge for Home Assistant.

Publishes live telemetry and session data to an MQTT broker and announces
every modelled value through Home Assistant MQTT discovery so sensors are
created without manual configuration.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hairmqtt")
except PackageNotFoundError:
    # Package is not installed
    __version__ = "0.0.0-dev"

__all__ = [
    "__version__",
]

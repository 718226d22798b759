#!/usr/bin/env python3
"""
hairmqtt CLI - iRacing telemetry to Home Assistant over MQTT.
"""

import argparse
import json
import logging
from pathlib import Path
import sys

from .config import Config
from .discovery import RUNTIME_FIELDS, DiscoveryPipeline, Topics, build_device
from .entities import FieldMetadata
from .errors import ConfigurationError, SessionParseError
from .schema import DEFAULT_DISAMBIGUATION_INDEX, resolve_path
from .session import parse_session


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all CLI commands."""
    parser = argparse.ArgumentParser(
        prog="hairmqtt",
        description="hairmqtt: iRacing telemetry bridge for Home Assistant MQTT discovery",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hairmqtt run                          # Bridge telemetry to the broker
  hairmqtt resolve TrackName            # Show where a session field lives
  hairmqtt discovery --session s.yaml   # Print discovery payloads
  hairmqtt status                       # Show configuration status
        """,
    )
    parser.add_argument(
        "--config", type=str, help="path to configuration file (default: config/config.yaml)"
    )
    parser.add_argument("--debug", action="store_true", help="enable debug output")

    subparsers = parser.add_subparsers(dest="command", help="available commands")

    subparsers.add_parser("run", help="bridge telemetry to MQTT until interrupted")

    resolve_parser = subparsers.add_parser(
        "resolve", help="show the session document path of a field"
    )
    resolve_parser.add_argument("field", help="field name, e.g. TrackName")
    resolve_parser.add_argument(
        "--index",
        type=int,
        default=DEFAULT_DISAMBIGUATION_INDEX,
        help="array slot used for per-car arrays (default: %(default)s)",
    )

    discovery_parser = subparsers.add_parser(
        "discovery", help="print discovery topics and payloads without connecting"
    )
    discovery_parser.add_argument(
        "--session", type=str, help="session YAML file for the session sensors"
    )

    subparsers.add_parser("status", help="show configuration status")
    return parser


def _setup_logging(debug: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def cmd_run(config: Config, args) -> int:
    from .service import serve

    return serve(config)


def cmd_resolve(config: Config, args) -> int:
    path = resolve_path(args.field, args.index)
    if path is None:
        print(f"❌ {args.field} not found in the session document")
        return 1
    print(path)
    return 0


def cmd_discovery(config: Config, args) -> int:
    topics = Topics.from_config(config)
    pipeline = DiscoveryPipeline(config, build_device(config), topics)
    catalog = {name: FieldMetadata(name) for name in RUNTIME_FIELDS}
    packets = pipeline.on_variable_catalog(catalog)
    if args.session:
        try:
            session = parse_session(Path(args.session).read_text(encoding="utf-8"))
        except (OSError, SessionParseError) as e:
            print(f"❌ Cannot read session file: {e}")
            return 1
        packets.extend(pipeline.on_session(session))

    failures = 0
    for packet in packets:
        if not packet.ok:
            failures += 1
            print(f"❌ {packet.topic}: {packet.error}")
            continue
        print(packet.topic)
        print(json.dumps(json.loads(packet.payload), indent=2))
    return 1 if failures else 0


def cmd_status(config: Config, args) -> int:
    print("📊 hairmqtt status")
    print(f"   Config: {config.config_path}")
    print(f"   Discovery prefix: {config.discovery_prefix}")
    for name, topic in config.get_mqtt_topics().items():
        print(f"   Topic {name}: {topic}")
    try:
        mqtt_config = config.get_mqtt_config()
    except ConfigurationError as e:
        print(f"   ❌ MQTT: {e}")
        return 1
    print(
        f"   MQTT: {mqtt_config['broker_url']}:{mqtt_config['broker_port']}"
        f" ({mqtt_config['transport']}, auth={'yes' if 'auth' in mqtt_config else 'no'})"
    )
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args()

    _setup_logging(args.debug)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = Config.load(args.config)

        if args.command == "run":
            return cmd_run(config, args)
        elif args.command == "resolve":
            return cmd_resolve(config, args)
        elif args.command == "discovery":
            return cmd_discovery(config, args)
        elif args.command == "status":
            return cmd_status(config, args)
        else:
            print(f"❌ Unknown command: {args.command}")
            return 1

    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        return 1
    except Exception as e:
        print(f"❌ Error: {e}")
        if args.debug:
            import traceback

            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""Session document helpers.

The simulator describes the current session as a YAML document with
PascalCase keys (``WeekendInfo``, ``DriverInfo``, ...). hairmqtt publishes it
with snake_case keys, so Home Assistant templates read
``value_json.weekend_info.track_name``.

``default_session()`` returns the empty *shape* of that document. It is only
used to work out where a field lives (see :mod:`hairmqtt.schema`), never to
read live values.
"""

from __future__ import annotations

from collections.abc import Mapping
import re
from typing import Any

import yaml

from .errors import SessionParseError

# Car slots in the simulator's per-car arrays
CAR_SLOTS = 64
SESSION_SLOTS = 4
SECTOR_SLOTS = 4

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")


def to_snake_case(name: str) -> str:
    """Convert a simulator key to snake_case.

    >>> to_snake_case("DriverCarSLFirstRPM")
    'driver_car_sl_first_rpm'
    """
    name = _ACRONYM_BOUNDARY.sub(r"\1_\2", name)
    name = _WORD_BOUNDARY.sub(r"\1_\2", name)
    return name.replace("-", "_").lower()


def _driver_slot() -> dict[str, Any]:
    return {
        "car_idx": 0,
        "user_name": "",
        "abbrev_name": "",
        "initials": "",
        "user_id": 0,
        "team_id": 0,
        "team_name": "",
        "car_number": "",
        "car_number_raw": 0,
        "car_path": "",
        "car_class_id": 0,
        "car_id": 0,
        "car_is_pace_car": 0,
        "car_is_ai": 0,
        "car_is_electric": 0,
        "car_screen_name": "",
        "car_screen_name_short": "",
        "car_class_short_name": "",
        "car_class_rel_speed": 0,
        "car_class_license_level": 0,
        "car_class_max_fuel_pct": "",
        "car_class_weight_penalty": "",
        "car_class_power_adjust": "",
        "car_class_dry_tire_set_limit": "",
        "car_class_color": 0,
        "car_class_est_lap_time": 0.0,
        "i_rating": 0,
        "lic_level": 0,
        "lic_sub_level": 0,
        "lic_string": "",
        "lic_color": 0,
        "is_spectator": 0,
        "car_design_str": "",
        "helmet_design_str": "",
        "suit_design_str": "",
        "car_number_design_str": "",
        "car_sponsor_1": 0,
        "car_sponsor_2": 0,
        "club_name": "",
        "club_id": 0,
        "division_name": "",
        "division_id": 0,
        "cur_driver_incident_count": 0,
        "team_incident_count": 0,
    }


def _result_position() -> dict[str, Any]:
    return {
        "position": 0,
        "class_position": 0,
        "car_idx": 0,
        "lap": 0,
        "time": 0.0,
        "fastest_lap": 0,
        "fastest_time": 0.0,
        "last_time": 0.0,
        "laps_led": 0,
        "laps_complete": 0,
        "joker_laps_complete": 0,
        "laps_driven": 0.0,
        "incidents": 0,
        "reason_out_id": 0,
        "reason_out_str": "",
    }


def _session_slot() -> dict[str, Any]:
    return {
        "session_num": 0,
        "session_laps": "",
        "session_time": "",
        "session_num_laps_to_avg": 0,
        "session_type": "",
        "session_track_rubber_state": "",
        "session_name": "",
        "session_sub_type": None,
        "session_skipped": 0,
        "session_run_groups_used": 0,
        "session_enforce_tire_compound_change": 0,
        "results_positions": [_result_position() for _ in range(CAR_SLOTS)],
        "results_fastest_lap": [
            {"car_idx": 0, "fastest_lap": 0, "fastest_time": 0.0}
        ],
        "results_average_lap_time": 0.0,
        "results_num_caution_flags": 0,
        "results_num_caution_laps": 0,
        "results_num_lead_changes": 0,
        "results_laps_complete": 0,
        "results_official": 0,
    }


def default_session() -> dict[str, Any]:
    """Return a freshly built, empty session document.

    Key order matters: field lookups take the first match in document order.
    """
    return {
        "weekend_info": {
            "track_name": "",
            "track_id": 0,
            "track_length": "",
            "track_length_official": "",
            "track_display_name": "",
            "track_display_short_name": "",
            "track_config_name": "",
            "track_city": "",
            "track_state": "",
            "track_country": "",
            "track_altitude": "",
            "track_latitude": "",
            "track_longitude": "",
            "track_north_offset": "",
            "track_num_turns": 0,
            "track_pit_speed_limit": "",
            "track_pace_speed": "",
            "track_num_pit_stalls": 0,
            "track_type": "",
            "track_direction": "",
            "track_weather_type": "",
            "track_skies": "",
            "track_surface_temp": "",
            "track_air_temp": "",
            "track_air_pressure": "",
            "track_wind_vel": "",
            "track_wind_dir": "",
            "track_relative_humidity": "",
            "track_fog_level": "",
            "track_precipitation": "",
            "track_cleanup": 0,
            "track_dynamic_track": 0,
            "track_version": "",
            "series_id": 0,
            "season_id": 0,
            "session_id": 0,
            "sub_session_id": 0,
            "league_id": 0,
            "official": 0,
            "race_week": 0,
            "event_type": "",
            "category": "",
            "sim_mode": "",
            "team_racing": 0,
            "min_drivers": 0,
            "max_drivers": 0,
            "dc_rule_set": "",
            "qualifier_must_start_race": 0,
            "num_car_classes": 0,
            "num_car_types": 0,
            "heat_racing": 0,
            "build_type": "",
            "build_target": "",
            "build_version": "",
            "weekend_options": {
                "num_starters": 0,
                "starting_grid": "",
                "qualify_scoring": "",
                "course_cautions": "",
                "standing_start": 0,
                "short_parade_lap": 0,
                "restarts": "",
                "weather_type": "",
                "skies": "",
                "wind_direction": "",
                "wind_speed": "",
                "weather_temp": "",
                "relative_humidity": "",
                "fog_level": "",
                "time_of_day": "",
                "date": "",
                "earth_rotation_speedup_factor": 0,
                "unofficial": 0,
                "commercial_mode": "",
                "night_mode": "",
                "is_fixed_setup": 0,
                "strict_laps_checking": "",
                "has_open_registration": 0,
                "hardcore_level": 0,
                "num_joker_laps": 0,
                "incident_limit": "",
                "fast_repairs_limit": "",
                "green_white_checkered_limit": 0,
            },
            "telemetry_options": {"telemetry_disk_file": ""},
        },
        "session_info": {
            "sessions": [_session_slot() for _ in range(SESSION_SLOTS)],
        },
        "qualify_results_info": {
            "results": [_result_position() for _ in range(CAR_SLOTS)],
        },
        "split_time_info": {
            "sectors": [
                {"sector_num": 0, "sector_start_pct": 0.0}
                for _ in range(SECTOR_SLOTS)
            ],
        },
        "car_setup": {"update_count": 0},
        "driver_info": {
            "driver_car_idx": 0,
            "car_driver_idx": 0,
            "driver_user_id": 0,
            "pace_car_idx": 0,
            "driver_head_pos_x": 0.0,
            "driver_head_pos_y": 0.0,
            "driver_head_pos_z": 0.0,
            "driver_car_is_electric": 0,
            "driver_car_idle_rpm": 0.0,
            "driver_car_red_line": 0.0,
            "driver_car_eng_cylinder_count": 0,
            "driver_car_fuel_kg_per_ltr": 0.0,
            "driver_car_fuel_max_ltr": 0.0,
            "driver_car_max_fuel_pct": 0.0,
            "driver_car_gear_num_forward": 0,
            "driver_car_gear_neutral": 0,
            "driver_car_gear_reverse": 0,
            "driver_car_sl_first_rpm": 0.0,
            "driver_car_sl_shift_rpm": 0.0,
            "driver_car_sl_last_rpm": 0.0,
            "driver_car_sl_blink_rpm": 0.0,
            "driver_car_version": "",
            "driver_pit_trk_pct": 0.0,
            "driver_car_est_lap_time": 0.0,
            "driver_setup_name": "",
            "driver_setup_is_modified": 0,
            "driver_setup_load_type_name": "",
            "driver_setup_passed_tech": 0,
            "driver_incident_count": 0,
            "drivers": [_driver_slot() for _ in range(CAR_SLOTS)],
        },
        "radio_info": {
            "selected_radio_num": 0,
            "radios": [
                {
                    "radio_num": 0,
                    "hop_count": 0,
                    "num_frequencies": 0,
                    "tuned_to_frequency_num": 0,
                    "scanning_is_on": 0,
                }
            ],
        },
        "camera_info": {
            "groups": [
                {"group_num": 0, "group_name": "", "cameras": []},
            ],
        },
    }


def normalize_keys(value: Any) -> Any:
    """Recursively snake_case every mapping key of a parsed document."""
    if isinstance(value, Mapping):
        return {to_snake_case(str(k)): normalize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_keys(v) for v in value]
    return value


def parse_session(raw: str | bytes | Mapping[str, Any]) -> dict[str, Any]:
    """Parse a session document sent by the simulator.

    Accepts the raw YAML text or an already parsed mapping and returns the
    document with snake_case keys.

    Raises:
        SessionParseError: the text is not YAML or not a mapping.
    """
    if isinstance(raw, Mapping):
        doc: Any = raw
    else:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            doc = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise SessionParseError(f"Invalid session YAML: {e}") from e
    if not isinstance(doc, Mapping):
        raise SessionParseError(
            f"Session document must be a mapping, got {type(doc).__name__}"
        )
    return normalize_keys(doc)


def driver_car_idx(session: Mapping[str, Any], default: int = 0) -> int:
    """Return the player's car slot from a parsed session document."""
    driver_info = session.get("driver_info")
    if not isinstance(driver_info, Mapping):
        return default
    try:
        return int(driver_info.get("driver_car_idx", default))
    except (TypeError, ValueError):
        return default


__all__ = [
    "CAR_SLOTS",
    "default_session",
    "driver_car_idx",
    "normalize_keys",
    "parse_session",
    "to_snake_case",
]

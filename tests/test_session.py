import pytest

from hairmqtt.errors import SessionParseError
from hairmqtt.session import (
    default_session,
    driver_car_idx,
    normalize_keys,
    parse_session,
    to_snake_case,
)

SESSION_YAML = """
---
WeekendInfo:
 TrackName: spa up
 TrackID: 163
 TrackDisplayName: Circuit de Spa-Francorchamps
DriverInfo:
 DriverCarIdx: 4
 DriverSetupName: baseline.sto
 Drivers:
 - CarIdx: 0
   UserName: Pace Car
 - CarIdx: 4
   UserName: Jane Doe
   IRating: 2150
...
"""


@pytest.mark.parametrize(
    "name,expected",
    [
        ("TrackName", "track_name"),
        ("DriverCarIdx", "driver_car_idx"),
        ("DriverCarSLFirstRPM", "driver_car_sl_first_rpm"),
        ("DriverUserID", "driver_user_id"),
        ("IRating", "i_rating"),
        ("DCRuleSet", "dc_rule_set"),
        ("CarSponsor_1", "car_sponsor_1"),
        ("track_name", "track_name"),
    ],
)
def test_to_snake_case(name, expected):
    assert to_snake_case(name) == expected


def test_parse_session_snake_cases_keys():
    session = parse_session(SESSION_YAML)
    assert session["weekend_info"]["track_name"] == "spa up"
    assert session["driver_info"]["drivers"][1]["user_name"] == "Jane Doe"
    assert session["driver_info"]["drivers"][1]["i_rating"] == 2150


def test_parse_session_accepts_mapping_and_bytes():
    assert parse_session({"WeekendInfo": {"TrackName": "x"}}) == {
        "weekend_info": {"track_name": "x"}
    }
    assert parse_session(b"WeekendInfo:\n  TrackName: y\n")["weekend_info"] == {
        "track_name": "y"
    }


@pytest.mark.parametrize("raw", ["", "- just\n- a list\n", "key: [unclosed"])
def test_parse_session_rejects_bad_documents(raw):
    with pytest.raises(SessionParseError):
        parse_session(raw)


def test_driver_car_idx():
    assert driver_car_idx(parse_session(SESSION_YAML)) == 4
    assert driver_car_idx({}) == 0
    assert driver_car_idx({"driver_info": {"driver_car_idx": "bad"}}, default=2) == 2


def test_default_session_is_fresh_each_call():
    first = default_session()
    first["weekend_info"]["track_name"] = "changed"
    assert default_session()["weekend_info"]["track_name"] == ""


def test_normalize_keys_leaves_values_alone():
    assert normalize_keys({"A": ["B", {"CamelCase": "Value"}]}) == {
        "a": ["B", {"camel_case": "Value"}]
    }

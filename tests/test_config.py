import datetime

import pytest

from lifecycle.config import LifecycleConfig, parse_id_list, parse_time_of_day


def test_defaults_when_nothing_is_set():
    config = LifecycleConfig.from_env({})

    assert config.forum_ids == []
    assert config.check_time == datetime.time(12, 0)
    assert config.timezone_name == "UTC"
    assert config.policy.reminder_threshold_days == 7
    assert config.policy.close_threshold_days == 30
    assert config.policy.closed_tag.matches("Closed")


def test_reads_every_variable():
    config = LifecycleConfig.from_env({
        "INACTIVITY_FORUM_IDS": "111, 222,,333",
        "INACTIVITY_CHECK_TIME": "09:30",
        "INACTIVITY_TIMEZONE": "Europe/Berlin",
        "INACTIVITY_REMINDER_DAYS": "3",
        "INACTIVITY_CLOSE_DAYS": "14",
        "INACTIVITY_CLOSED_TAG": "resolved",
    })

    assert config.forum_ids == [111, 222, 333]
    assert config.check_time == datetime.time(9, 30)
    assert config.timezone.zone == "Europe/Berlin"
    assert config.policy.reminder_threshold_days == 3
    assert config.policy.close_threshold_days == 14
    assert config.policy.closed_tag.matches("Resolved ✅")
    assert not config.policy.closed_tag.matches("closed")


@pytest.mark.parametrize("env", [
    {"INACTIVITY_FORUM_IDS": "123,abc"},
    {"INACTIVITY_CHECK_TIME": "noon"},
    {"INACTIVITY_CHECK_TIME": "25:00"},
    {"INACTIVITY_TIMEZONE": "Mars/Olympus_Mons"},
    {"INACTIVITY_REMINDER_DAYS": "seven"},
    {"INACTIVITY_REMINDER_DAYS": "30", "INACTIVITY_CLOSE_DAYS": "7"},
])
def test_malformed_values_raise_value_error(env):
    with pytest.raises(ValueError):
        LifecycleConfig.from_env(env)


def test_blank_values_fall_back_to_defaults():
    assert parse_id_list("") == []
    assert parse_id_list(None) == []
    assert parse_time_of_day("") == datetime.time(12, 0)
    assert parse_time_of_day(" 07:05 ") == datetime.time(7, 5)

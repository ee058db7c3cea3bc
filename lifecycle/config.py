import datetime
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

import pytz

from lifecycle.classifier import (
    DEFAULT_CLOSE_THRESHOLD_DAYS, DEFAULT_CLOSED_TAG_MATCH, DEFAULT_REMINDER_THRESHOLD_DAYS,
    LifecyclePolicy, TagMatchRule,
)

DEFAULT_CHECK_TIME = datetime.time(12, 0)
DEFAULT_TIMEZONE_NAME = "UTC"


def parse_id_list(raw: Optional[str]) -> List[int]:
    """Parses a comma separated list of Discord ids, ignoring blanks."""
    if not raw:
        return []
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise ValueError(f"'{part}' is not a valid channel id.")
    return ids


def parse_time_of_day(raw: Optional[str]) -> datetime.time:
    if not raw:
        return DEFAULT_CHECK_TIME
    try:
        return datetime.datetime.strptime(raw.strip(), "%H:%M").time()
    except ValueError:
        raise ValueError(f"'{raw}' is not a valid HH:MM time of day.")


def _parse_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got '{raw}'.")


@dataclass(frozen=True)
class LifecycleConfig:
    forum_ids: List[int] = field(default_factory=list)
    check_time: datetime.time = DEFAULT_CHECK_TIME
    timezone_name: str = DEFAULT_TIMEZONE_NAME
    policy: LifecyclePolicy = field(default_factory=LifecyclePolicy)

    @property
    def timezone(self) -> datetime.tzinfo:
        return pytz.timezone(self.timezone_name)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "LifecycleConfig":
        """Reads the INACTIVITY_* variables. Raises ValueError on malformed values."""
        env = os.environ if env is None else env
        timezone_name = (env.get("INACTIVITY_TIMEZONE") or DEFAULT_TIMEZONE_NAME).strip()
        try:
            pytz.timezone(timezone_name)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown INACTIVITY_TIMEZONE '{timezone_name}'.")

        policy = LifecyclePolicy(
            reminder_threshold_days=_parse_int(env, "INACTIVITY_REMINDER_DAYS", DEFAULT_REMINDER_THRESHOLD_DAYS),
            close_threshold_days=_parse_int(env, "INACTIVITY_CLOSE_DAYS", DEFAULT_CLOSE_THRESHOLD_DAYS),
            closed_tag=TagMatchRule(env.get("INACTIVITY_CLOSED_TAG") or DEFAULT_CLOSED_TAG_MATCH),
        )
        return cls(
            forum_ids=parse_id_list(env.get("INACTIVITY_FORUM_IDS")),
            check_time=parse_time_of_day(env.get("INACTIVITY_CHECK_TIME")),
            timezone_name=timezone_name,
            policy=policy,
        )

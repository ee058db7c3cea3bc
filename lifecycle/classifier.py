import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Iterable, Optional

SECONDS_PER_DAY = 24 * 60 * 60

DEFAULT_REMINDER_THRESHOLD_DAYS = 7
DEFAULT_CLOSE_THRESHOLD_DAYS = 30
DEFAULT_CLOSED_TAG_MATCH = "closed"


class VerdictKind(enum.Enum):
    ACTIVE = "active"
    NEEDS_REMINDER = "needs_reminder"
    NEEDS_CLOSE = "needs_close"
    SKIP = "skip"


class SkipReason(enum.Enum):
    PINNED = "pinned"
    ALREADY_CLOSED = "already_closed"
    NO_USER_ACTIVITY = "no_user_activity"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class LifecycleVerdict:
    kind: VerdictKind
    reason: Optional[SkipReason] = None

    @classmethod
    def skip(cls, reason: SkipReason) -> "LifecycleVerdict":
        return cls(VerdictKind.SKIP, reason)

    def __str__(self) -> str:
        if self.reason:
            return f"{self.kind.value}({self.reason.value})"
        return self.kind.value


ACTIVE = LifecycleVerdict(VerdictKind.ACTIVE)
NEEDS_REMINDER = LifecycleVerdict(VerdictKind.NEEDS_REMINDER)
NEEDS_CLOSE = LifecycleVerdict(VerdictKind.NEEDS_CLOSE)


@dataclass(frozen=True)
class TagMatchRule:
    """Case-insensitive substring match against forum tag names."""
    needle: str = DEFAULT_CLOSED_TAG_MATCH

    def __post_init__(self):
        if not self.needle.strip():
            raise ValueError("Tag match text must not be empty.")

    def matches(self, tag_name: str) -> bool:
        return self.needle.lower() in tag_name.lower()

    def any_match(self, tag_names: Iterable[str]) -> bool:
        return any(self.matches(name) for name in tag_names)


@dataclass(frozen=True)
class LifecyclePolicy:
    reminder_threshold_days: int = DEFAULT_REMINDER_THRESHOLD_DAYS
    close_threshold_days: int = DEFAULT_CLOSE_THRESHOLD_DAYS
    closed_tag: TagMatchRule = field(default_factory=TagMatchRule)

    def __post_init__(self):
        if self.reminder_threshold_days < 0:
            raise ValueError("Reminder threshold must not be negative.")
        if self.close_threshold_days <= self.reminder_threshold_days:
            raise ValueError("Close threshold must be greater than the reminder threshold.")


@dataclass(frozen=True)
class ThreadSnapshot:
    thread_id: int
    forum_id: int
    pinned: bool = False
    archived: bool = False
    applied_tag_names: FrozenSet[str] = frozenset()
    last_any_message_time: Optional[datetime] = None
    last_user_message_time: Optional[datetime] = None


def days_since(timestamp: datetime, now: datetime) -> int:
    """Whole days elapsed between `timestamp` and `now`, ignoring calendars and DST."""
    elapsed_seconds = int((now - timestamp).total_seconds())
    if elapsed_seconds < 0:
        return 0
    return elapsed_seconds // SECONDS_PER_DAY


def classify_thread(snapshot: ThreadSnapshot, policy: LifecyclePolicy, now: datetime) -> LifecycleVerdict:
    if snapshot.pinned:
        return LifecycleVerdict.skip(SkipReason.PINNED)
    if policy.closed_tag.any_match(snapshot.applied_tag_names):
        return LifecycleVerdict.skip(SkipReason.ALREADY_CLOSED)
    if snapshot.last_user_message_time is None:
        return LifecycleVerdict.skip(SkipReason.NO_USER_ACTIVITY)

    days_user = days_since(snapshot.last_user_message_time, now)
    # Bot-only threads are caught above, so the any-message clock is always set here.
    last_any = snapshot.last_any_message_time or snapshot.last_user_message_time
    days_any = days_since(last_any, now)

    # Staff or bot replies do not reset the close timer, only the reminder timer.
    if days_user >= policy.close_threshold_days:
        return NEEDS_CLOSE
    if policy.reminder_threshold_days <= days_any < policy.close_threshold_days:
        return NEEDS_REMINDER
    return ACTIVE

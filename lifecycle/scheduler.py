import asyncio
import dataclasses
import datetime
import enum
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional

import nextcord
import pytz

from lifecycle.classifier import (
    LifecyclePolicy, LifecycleVerdict, SkipReason, TagMatchRule, ThreadSnapshot, VerdictKind, classify_thread,
)
from lifecycle.config import DEFAULT_CHECK_TIME
from lifecycle.errors import ContainerAccessError, LifecycleError, MutationError, TransportUnavailable
from lifecycle.notices import build_closure_embed, build_reminder_embed
from lifecycle.scanner import DEFAULT_PAGE_SIZE, HistoryScanner

logger = logging.getLogger("lifecycle_scheduler")

# Skips that only need the thread's own flags, no history read.
STATIC_SKIP_REASONS = (SkipReason.PINNED, SkipReason.ALREADY_CLOSED)


class SchedulerState(enum.Enum):
    IDLE = "idle"
    WAITING = "waiting"
    FIRING = "firing"


@dataclasses.dataclass
class CycleReport:
    started_at: Optional[datetime.datetime] = None
    finished_at: Optional[datetime.datetime] = None
    skipped_fire: bool = False
    forums_scanned: int = 0
    forums_failed: int = 0
    threads_checked: int = 0
    active: int = 0
    reminded: int = 0
    closed: int = 0
    skipped: int = 0
    errors: int = 0


def _localize(tz: datetime.tzinfo, day: datetime.date, fire_time: datetime.time) -> datetime.datetime:
    naive = datetime.datetime.combine(day, fire_time)
    if hasattr(tz, "localize"):  # pytz zones need localize() to pick the right offset
        return tz.normalize(tz.localize(naive))
    return naive.replace(tzinfo=tz)


def compute_next_fire_time(now: datetime.datetime, fire_time: datetime.time = DEFAULT_CHECK_TIME,
                           tz: datetime.tzinfo = pytz.utc) -> datetime.datetime:
    """Today's `fire_time` in `tz` if it has not passed yet, otherwise tomorrow's."""
    local_now = now.astimezone(tz)
    candidate = _localize(tz, local_now.date(), fire_time)
    if local_now > candidate:
        candidate = _localize(tz, local_now.date() + datetime.timedelta(days=1), fire_time)
    return candidate


def next_fire_after(previous_target: datetime.datetime, now: datetime.datetime,
                    fire_time: datetime.time = DEFAULT_CHECK_TIME,
                    tz: datetime.tzinfo = pytz.utc) -> datetime.datetime:
    """The fire after `previous_target`: same local time-of-day, one day later.

    If that moment has already gone by (a fire that overran a whole day, or a
    suspended host), the missed run is not backfilled and the next valid
    occurrence from `now` is used instead.
    """
    following = _localize(tz, previous_target.astimezone(tz).date() + datetime.timedelta(days=1), fire_time)
    if following < now:
        return compute_next_fire_time(now, fire_time, tz)
    return following


def find_closed_tag(available_tags: Iterable[Any], rule: TagMatchRule) -> Optional[Any]:
    for tag in available_tags:
        if rule.matches(tag.name):
            return tag
    return None


def merge_closed_tag(applied_tags: Iterable[Any], closed_tag: Any) -> List[Any]:
    """Applied tags plus `closed_tag`, without duplicate tag ids."""
    merged = []
    seen_ids = set()
    for tag in applied_tags:
        if tag.id in seen_ids:
            continue
        seen_ids.add(tag.id)
        merged.append(tag)
    if closed_tag.id not in seen_ids:
        merged.append(closed_tag)
    return merged


async def _maybe_await(result):
    if inspect.isawaitable(result):
        await result


class LifecycleScheduler:
    """Runs the daily inactivity check over the configured forums.

    One instance owns one timer task. States move IDLE -> WAITING -> FIRING ->
    WAITING, and back to IDLE on stop(). Manual runs via run_once() share the
    fire lock with scheduled runs, so a check never overlaps another one.
    """

    def __init__(self, bot, forum_ids: Callable[[], Iterable[int]],
                 policy: Optional[LifecyclePolicy] = None,
                 fire_time: datetime.time = DEFAULT_CHECK_TIME,
                 tz: datetime.tzinfo = pytz.utc,
                 scanner: Optional[HistoryScanner] = None,
                 clock: Optional[Callable[[], datetime.datetime]] = None,
                 sleep_until: Callable[[datetime.datetime], Awaitable[Any]] = nextcord.utils.sleep_until,
                 on_cycle_complete: Optional[Callable[[CycleReport], Any]] = None):
        self.bot = bot
        self._forum_ids = forum_ids
        self.policy = policy or LifecyclePolicy()
        self.fire_time = fire_time
        self.tz = tz
        self.scanner = scanner or HistoryScanner()
        self._clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))
        self._sleep_until = sleep_until
        self._on_cycle_complete = on_cycle_complete

        self.state = SchedulerState.IDLE
        self.next_fire_time: Optional[datetime.datetime] = None
        self.last_report: Optional[CycleReport] = None
        self._task: Optional[asyncio.Task] = None
        self._fire_lock = asyncio.Lock()
        self._scheduled_fire_running = False
        self._stop_requested = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.is_running:
            if self._stop_requested:
                # stop() arrived during a fire; keep the loop alive past it.
                self._stop_requested = False
                logger.info("Pending stop cancelled; inactivity checker keeps running.")
            else:
                logger.debug("Inactivity scheduler already running; start() ignored.")
            return
        self._stop_requested = False
        self.next_fire_time = compute_next_fire_time(self._clock(), self.fire_time, self.tz)
        self.state = SchedulerState.WAITING
        self._task = asyncio.get_running_loop().create_task(self._run_forever(), name="inactivity-scheduler")
        logger.info(f"Inactivity checker started. Next check at {self.next_fire_time.isoformat()}.")

    def stop(self):
        """Cancels the pending fire. A check that is already running is allowed to finish."""
        if not self.is_running:
            self.state = SchedulerState.IDLE
            self.next_fire_time = None
            return
        if self._scheduled_fire_running:
            self._stop_requested = True
            logger.info("Inactivity checker will stop after the running check finishes.")
        else:
            self._task.cancel()
            self.state = SchedulerState.IDLE
            logger.info("Inactivity checker stopped.")
        self.next_fire_time = None

    async def _run_forever(self):
        try:
            while not self._stop_requested:
                self.state = SchedulerState.WAITING
                await self._sleep_until(self.next_fire_time)
                target = self.next_fire_time
                self._scheduled_fire_running = True
                try:
                    await self.run_once()
                except Exception as e:
                    logger.error(f"Unexpected error during inactivity check: {e}", exc_info=True)
                finally:
                    self._scheduled_fire_running = False
                if self._stop_requested:
                    break
                self.next_fire_time = next_fire_after(target, self._clock(), self.fire_time, self.tz)
                logger.info(f"Next inactivity check scheduled for {self.next_fire_time.isoformat()}.")
        finally:
            self.state = SchedulerState.IDLE
            self.next_fire_time = None

    async def run_once(self) -> CycleReport:
        """Runs one full check now. Waits if another check is in progress."""
        async with self._fire_lock:
            resume_state = self.state
            self.state = SchedulerState.FIRING
            try:
                report = await self._run_cycle()
            finally:
                self.state = resume_state
        self.last_report = report
        if self._on_cycle_complete is not None:
            try:
                await _maybe_await(self._on_cycle_complete(report))
            except Exception as e:
                logger.error(f"Cycle completion callback failed: {e}", exc_info=True)
        return report

    async def _run_cycle(self) -> CycleReport:
        report = CycleReport(started_at=self._clock())
        try:
            self._ensure_connected()
        except TransportUnavailable as e:
            logger.warning(f"Skipping inactivity check: {e}")
            report.skipped_fire = True
            report.finished_at = self._clock()
            return report

        for forum_id in list(self._forum_ids()):
            try:
                forum = await self._resolve_forum(forum_id)
                threads = await self._list_open_threads(forum)
            except ContainerAccessError as e:
                report.forums_failed += 1
                logger.warning(f"Skipping forum {forum_id}: {e.reason}")
                continue

            report.forums_scanned += 1
            logger.info(f"Checking {len(threads)} open thread(s) in forum '{forum.name}' ({forum.id}).")
            for thread in threads:
                try:
                    await self._process_thread(thread, forum, report)
                except Exception as e:
                    report.errors += 1
                    logger.error(f"Error processing thread '{thread.name}' ({thread.id}): {e}", exc_info=True)

        report.finished_at = self._clock()
        logger.info(
            f"Inactivity check finished: {report.forums_scanned} forum(s), {report.threads_checked} thread(s), "
            f"{report.reminded} reminder(s), {report.closed} closed, {report.skipped} skipped, {report.errors} error(s)."
        )
        return report

    def _ensure_connected(self):
        if self.bot.is_closed() or not self.bot.is_ready():
            raise TransportUnavailable("bot is not connected to the gateway")

    async def _resolve_forum(self, forum_id: int) -> nextcord.ForumChannel:
        channel = self.bot.get_channel(forum_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(forum_id)
            except nextcord.NotFound:
                raise ContainerAccessError(forum_id, "forum not found")
            except nextcord.Forbidden:
                raise ContainerAccessError(forum_id, "missing access to forum")
            except nextcord.HTTPException as e:
                raise ContainerAccessError(forum_id, f"forum lookup failed: {e}")
        if not isinstance(channel, nextcord.ForumChannel):
            raise ContainerAccessError(forum_id, f"not a forum channel ({type(channel).__name__})")
        return channel

    async def _list_open_threads(self, forum: nextcord.ForumChannel) -> List[nextcord.Thread]:
        try:
            active_threads = await forum.guild.active_threads()
        except nextcord.HTTPException as e:
            raise ContainerAccessError(forum.id, f"could not list threads: {e}")
        return [thread for thread in active_threads if thread.parent_id == forum.id and not thread.archived]

    def thread_snapshot(self, thread) -> ThreadSnapshot:
        """Snapshot of the thread's own flags, without any activity timestamps."""
        return ThreadSnapshot(
            thread_id=thread.id,
            forum_id=thread.parent_id,
            pinned=bool(thread.flags.pinned),
            archived=bool(thread.archived),
            applied_tag_names=frozenset(tag.name for tag in thread.applied_tags),
        )

    async def build_snapshot(self, thread) -> ThreadSnapshot:
        """Full snapshot. Reads history only until both activity timestamps are known."""
        last_any = None
        last_user = None
        async for message in self.scanner.scan(thread, page_size=DEFAULT_PAGE_SIZE):
            if last_any is None:
                last_any = message.created_at
            if not message.author.bot:
                last_user = message.created_at
                break
        return dataclasses.replace(
            self.thread_snapshot(thread),
            last_any_message_time=last_any,
            last_user_message_time=last_user,
        )

    async def classify(self, thread) -> LifecycleVerdict:
        verdict = classify_thread(self.thread_snapshot(thread), self.policy, self._clock())
        if verdict.reason in STATIC_SKIP_REASONS:
            return verdict
        snapshot = await self.build_snapshot(thread)
        return classify_thread(snapshot, self.policy, self._clock())

    async def _process_thread(self, thread, forum, report: CycleReport):
        report.threads_checked += 1
        try:
            verdict = await self.classify(thread)
        except LifecycleError as e:
            report.skipped += 1
            report.errors += 1
            logger.warning(f"Skipping thread '{thread.name}' ({thread.id}): {e}")
            return

        logger.debug(f"Thread '{thread.name}' ({thread.id}) classified as {verdict}.")
        if verdict.kind is VerdictKind.NEEDS_REMINDER:
            await self._send_reminder(thread, report)
        elif verdict.kind is VerdictKind.NEEDS_CLOSE:
            await self._close_thread(thread, forum, report)
        elif verdict.kind is VerdictKind.SKIP:
            report.skipped += 1
        else:
            report.active += 1

    def _mutation_failed(self, error: MutationError, report: CycleReport):
        report.errors += 1
        logger.warning(str(error))

    async def _send_reminder(self, thread, report: CycleReport):
        embed = build_reminder_embed(self.policy.reminder_threshold_days, self.policy.close_threshold_days)
        # The reminder goes to whoever opened the post, not the latest replier.
        content = f"<@{thread.owner_id}>" if thread.owner_id else None
        try:
            await thread.send(content=content, embed=embed)
        except nextcord.HTTPException as e:
            self._mutation_failed(MutationError("Sending reminder", thread.id, e), report)
            return
        report.reminded += 1
        logger.info(f"Sent inactivity reminder to thread '{thread.name}' ({thread.id}).")

    async def _close_thread(self, thread, forum, report: CycleReport):
        closed_tag = find_closed_tag(forum.available_tags, self.policy.closed_tag)
        if closed_tag is None:
            logger.warning(
                f"Forum '{forum.name}' ({forum.id}) has no tag matching '{self.policy.closed_tag.needle}'; "
                f"closing thread {thread.id} without tagging it."
            )
        else:
            try:
                await thread.edit(applied_tags=merge_closed_tag(thread.applied_tags, closed_tag))
            except nextcord.HTTPException as e:
                self._mutation_failed(MutationError("Applying closed tag", thread.id, e), report)

        # Posting into an archived thread would reopen it, so the notice goes first.
        try:
            await thread.send(embed=build_closure_embed(forum.name, self.policy.close_threshold_days))
        except nextcord.HTTPException as e:
            self._mutation_failed(MutationError("Sending closure notice", thread.id, e), report)

        try:
            await thread.edit(locked=True, archived=True)
        except nextcord.HTTPException as e:
            self._mutation_failed(MutationError("Locking and archiving", thread.id, e), report)
            return
        report.closed += 1
        logger.info(f"Auto-closed inactive thread '{thread.name}' ({thread.id}) in forum '{forum.name}'.")

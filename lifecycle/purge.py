import asyncio
import dataclasses
import datetime
import inspect
import logging
from typing import Any, Callable, List, Optional

import nextcord

from lifecycle.errors import ContainerAccessError, LifecycleError, PageFetchError
from lifecycle.scanner import DEFAULT_PAGE_SIZE, HistoryScanner, StopCondition

logger = logging.getLogger("bulk_purge")


@dataclasses.dataclass
class PurgeResult:
    deleted_count: int = 0
    channels_scanned: int = 0
    channels_skipped: int = 0
    error: Optional[str] = None


class BulkPurgeWorker:
    """Deletes a user's messages from one channel or every text channel of a guild.

    Each purge runs as its own background task. Deletions are issued one at a
    time and never retried; a message that cannot be deleted is not counted.
    """

    def __init__(self, bot, scanner: Optional[HistoryScanner] = None,
                 clock: Optional[Callable[[], datetime.datetime]] = None):
        self.bot = bot
        self.scanner = scanner or HistoryScanner()
        self._clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))

    def purge(self, guild_id: int, target_user_id: int, day_cutoff: Optional[int] = None,
              channel_id: Optional[int] = None, count_limit: Optional[int] = None,
              on_complete: Optional[Callable[[PurgeResult], Any]] = None) -> asyncio.Task:
        """Starts a purge in the background and returns its task.

        `on_complete` is called (or awaited) with the PurgeResult once the task
        finishes, including when it finishes with an error recorded in the result.
        """
        return asyncio.get_running_loop().create_task(
            self._run_and_report(guild_id, target_user_id, day_cutoff, channel_id, count_limit, on_complete),
            name=f"purge-{guild_id}-{target_user_id}",
        )

    async def _run_and_report(self, guild_id, target_user_id, day_cutoff, channel_id, count_limit, on_complete):
        try:
            result = await self.run(guild_id, target_user_id, day_cutoff, channel_id, count_limit)
        except (LifecycleError, ValueError) as e:
            logger.warning(f"Purge of user {target_user_id} in guild {guild_id} aborted: {e}")
            result = PurgeResult(error=str(e))
        except Exception as e:
            logger.error(f"Unexpected error purging user {target_user_id} in guild {guild_id}: {e}", exc_info=True)
            result = PurgeResult(error=f"Unexpected error: {type(e).__name__}")
        if on_complete is not None:
            try:
                callback_result = on_complete(result)
                if inspect.isawaitable(callback_result):
                    await callback_result
            except Exception as e:
                logger.error(f"Purge completion callback failed: {e}", exc_info=True)
        return result

    async def run(self, guild_id: int, target_user_id: int, day_cutoff: Optional[int] = None,
                  channel_id: Optional[int] = None, count_limit: Optional[int] = None) -> PurgeResult:
        if day_cutoff is not None and day_cutoff <= 0:
            raise ValueError("day_cutoff must be a positive number of days.")
        if count_limit is not None and count_limit <= 0:
            raise ValueError("count_limit must be positive.")

        channels = self._resolve_channels(guild_id, channel_id)
        time_cutoff = self._clock() - datetime.timedelta(days=day_cutoff) if day_cutoff else None
        result = PurgeResult()

        for channel in channels:
            if count_limit is not None and result.deleted_count >= count_limit:
                logger.debug(f"Deletion limit of {count_limit} reached; not scanning further channels.")
                break
            try:
                await self._purge_channel(channel, target_user_id, time_cutoff, count_limit, result)
                result.channels_scanned += 1
            except PageFetchError as e:
                result.channels_skipped += 1
                logger.warning(f"Skipping channel '{channel.name}' ({channel.id}) during purge: {e.cause}")

        logger.info(
            f"Deleted {result.deleted_count} message(s) from user {target_user_id}"
            + (f" from the last {day_cutoff} day(s)" if day_cutoff else " (all messages)")
            + (f" in channel {channel_id}" if channel_id else "")
            + (f" (limit: {count_limit})" if count_limit else "")
            + "."
        )
        return result

    def _resolve_channels(self, guild_id: int, channel_id: Optional[int]) -> List[Any]:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            raise ContainerAccessError(guild_id, "guild not found")
        if channel_id is None:
            return list(guild.text_channels)
        channel = guild.get_channel(channel_id)
        if channel is None:
            raise ContainerAccessError(channel_id, "channel not found in guild")
        return [channel]

    async def _purge_channel(self, channel, target_user_id: int, time_cutoff: Optional[datetime.datetime],
                             count_limit: Optional[int], result: PurgeResult):
        """Deletes matching messages in one channel, adding each success to `result` as it happens."""
        logger.debug(f"Searching for messages from {target_user_id} in channel '{channel.name}' ({channel.id}).")
        remaining = None if count_limit is None else count_limit - result.deleted_count
        # Only successful deletes spend the limit, so the scan itself is bounded by the cutoff alone.
        stop = StopCondition(time_cutoff=time_cutoff)
        deleted = 0
        async for message in self.scanner.scan(channel, stop=stop, page_size=DEFAULT_PAGE_SIZE,
                                               match=lambda m: m.author.id == target_user_id):
            try:
                await message.delete()
            except nextcord.NotFound:
                logger.debug(f"Message {message.id} in '{channel.name}' was already deleted.")
                continue
            except nextcord.Forbidden:
                logger.debug(f"Missing permissions to delete message {message.id} in '{channel.name}'.")
                continue
            except nextcord.HTTPException as e:
                logger.debug(f"Could not delete message {message.id} in '{channel.name}': {e}")
                continue
            deleted += 1
            result.deleted_count += 1
            if remaining is not None and deleted >= remaining:
                break
        if deleted:
            logger.debug(f"Deleted {deleted} message(s) from channel '{channel.name}'.")

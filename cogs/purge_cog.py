import nextcord
from nextcord.ext import commands, application_checks
from nextcord import Interaction, SlashOption, ChannelType, TextChannel
import asyncio
import logging
from typing import Optional, Set

from db_utils import database
from lifecycle.notices import build_purge_result_embed
from lifecycle.purge import BulkPurgeWorker, PurgeResult

logger = logging.getLogger("purge_cog")

ALL_CHANNELS = 0  # Scope key for a purge over every text channel


class PurgeCog(commands.Cog, name="Message Purge"):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.worker = BulkPurgeWorker(bot)
        self._purge_tasks: Set[asyncio.Task] = set()
        # Channels with a purge in flight; two purges never run against the same channel.
        self._busy_scopes: Set[int] = set()

    def cog_unload(self):
        for task in self._purge_tasks:
            task.cancel()

    def _scope_is_busy(self, scope: int) -> bool:
        if ALL_CHANNELS in self._busy_scopes:
            return True
        if scope == ALL_CHANNELS:
            return bool(self._busy_scopes)
        return scope in self._busy_scopes

    async def _log_action(self, guild_id: int, embed: nextcord.Embed):
        settings = database.get_guild_settings(guild_id)
        log_channel_id = settings.get('log_channel_id') if settings else None
        if not log_channel_id:
            return
        log_channel = self.bot.get_channel(log_channel_id)
        if not log_channel:
            logger.warning(f"Log channel ID {log_channel_id} configured but channel not found for guild {guild_id}.")
            return
        try:
            await log_channel.send(embed=embed)
        except nextcord.HTTPException as e:
            logger.warning(f"Could not send purge log to channel {log_channel_id}: {e}")

    @nextcord.slash_command(name="purge", description="Delete messages sent by a user.")
    @application_checks.has_permissions(manage_messages=True)
    async def purge(self, interaction: Interaction,
                    user: nextcord.User = SlashOption(description="The user whose messages should be deleted", required=True),
                    days: Optional[int] = SlashOption(description="Only delete messages from the last N days", required=False, min_value=1),
                    channel: Optional[TextChannel] = SlashOption(description="Only scan this channel",
                                                                 channel_types=[ChannelType.text], required=False),
                    count: Optional[int] = SlashOption(description="Maximum number of messages to delete", required=False, min_value=1)):
        if interaction.guild is None or interaction.guild.id != self.bot.target_guild_id:
            await interaction.response.send_message("This command can only be used in the configured server.", ephemeral=True)
            return

        scope = channel.id if channel else ALL_CHANNELS
        if self._scope_is_busy(scope):
            await interaction.response.send_message("A purge is already running for that channel. Please wait for it to finish.", ephemeral=True)
            return

        await interaction.response.defer()
        logger.info(f"[PURGE] {interaction.user} ({interaction.user.id}) started purge of {user} ({user.id}): "
                    f"days={days}, channel={channel.id if channel else 'all'}, count={count}")

        async def report_result(result: PurgeResult):
            self._busy_scopes.discard(scope)
            embed = build_purge_result_embed(result, user.mention, days, channel.mention if channel else None, count)
            try:
                await interaction.edit_original_message(embed=embed)
            except nextcord.HTTPException as e:
                # The interaction token expires after 15 minutes; long purges report in the channel instead.
                logger.warning(f"[PURGE] Could not edit purge response ({e}); posting result in channel instead.")
                if interaction.channel:
                    try:
                        await interaction.channel.send(embed=embed)
                    except nextcord.HTTPException as send_error:
                        logger.error(f"[PURGE] Could not post purge result: {send_error}")
            await self._log_action(interaction.guild.id, embed)

        self._busy_scopes.add(scope)
        task = self.worker.purge(
            interaction.guild.id, user.id,
            day_cutoff=days,
            channel_id=channel.id if channel else None,
            count_limit=count,
            on_complete=report_result,
        )
        self._purge_tasks.add(task)
        task.add_done_callback(self._purge_tasks.discard)
        task.add_done_callback(lambda _: self._busy_scopes.discard(scope))

    @purge.error
    async def purge_error(self, interaction: Interaction, error):
        if not interaction.response.is_done():
            try:
                await interaction.response.defer(ephemeral=True)
            except nextcord.NotFound:
                logger.warning(f"Interaction expired before error handler could defer for user {interaction.user.id}. Error: {error}")
                return
        if isinstance(error, application_checks.ApplicationMissingPermissions):
            await interaction.followup.send("You lack `Manage Messages` permission to use this command.", ephemeral=True)
        else:
            await interaction.followup.send(f"An unexpected error occurred: {type(error).__name__}", ephemeral=True)
            logger.error(f"Error in purge command for user {interaction.user.id}: {error}", exc_info=True)


def setup(bot: commands.Bot):
    bot.add_cog(PurgeCog(bot))

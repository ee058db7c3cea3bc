import nextcord
from nextcord.ext import commands, application_checks
from nextcord import Interaction
import logging
from typing import List

from db_utils import database
from lifecycle.config import LifecycleConfig
from lifecycle.notices import build_cycle_report_embed
from lifecycle.scheduler import CycleReport, LifecycleScheduler

logger = logging.getLogger("inactivity_cog")


class InactivityCog(commands.Cog, name="Inactivity Checker"):
    def __init__(self, bot: commands.Bot, config: LifecycleConfig):
        self.bot = bot
        self.config = config
        self.scheduler = LifecycleScheduler(
            bot,
            self._forum_ids,
            policy=config.policy,
            fire_time=config.check_time,
            tz=config.timezone,
            on_cycle_complete=self._log_cycle_report,
        )

    def cog_unload(self):
        self.scheduler.stop()

    @commands.Cog.listener()
    async def on_ready(self):
        # on_ready fires again after every reconnect; start() ignores repeats.
        self.scheduler.start()

    def _forum_ids(self) -> List[int]:
        """Forums stored via /config take precedence over INACTIVITY_FORUM_IDS."""
        guild_id = self.bot.target_guild_id
        stored = database.get_monitored_forums(guild_id) if guild_id else []
        return stored or list(self.config.forum_ids)

    async def _log_cycle_report(self, report: CycleReport):
        guild_id = self.bot.target_guild_id
        settings = database.get_guild_settings(guild_id) if guild_id else None
        log_channel_id = settings.get('log_channel_id') if settings else None
        if not log_channel_id:
            return
        log_channel = self.bot.get_channel(log_channel_id)
        if not log_channel:
            logger.warning(f"Log channel ID {log_channel_id} configured but channel not found for guild {guild_id}.")
            return
        try:
            await log_channel.send(embed=build_cycle_report_embed(report))
        except nextcord.Forbidden:
            logger.warning(f"Missing permissions to send log to channel {log_channel_id} in guild {guild_id}")
        except nextcord.HTTPException as e:
            logger.error(f"Error sending cycle report to log channel {log_channel_id}: {e}")

    async def cog_check(self, interaction: Interaction) -> bool:
        if interaction.guild is None or interaction.guild.id != self.bot.target_guild_id:
            if not interaction.response.is_done():
                try: await interaction.response.defer(ephemeral=True)
                except nextcord.NotFound: pass
            target_guild_name = getattr(self.bot, 'target_guild_name', 'the configured server')
            await interaction.followup.send(f"This bot is configured for a specific server. Please use commands in '{target_guild_name}'.", ephemeral=True)
            return False
        return True

    @nextcord.slash_command(name="inactivity", description="Forum inactivity checker commands.")
    async def inactivity_group(self, interaction: Interaction):
        pass

    @inactivity_group.subcommand(name="run", description="Runs the inactivity check on all monitored forums now.")
    @application_checks.has_permissions(manage_threads=True)
    async def inactivity_run(self, interaction: Interaction):
        await interaction.response.defer(ephemeral=True)
        logger.info(f"Manual inactivity check requested by {interaction.user} ({interaction.user.id}).")
        report = await self.scheduler.run_once()
        await interaction.followup.send(embed=build_cycle_report_embed(report), ephemeral=True)

    @inactivity_group.subcommand(name="status", description="Shows when the next inactivity check will run.")
    @application_checks.has_permissions(manage_threads=True)
    async def inactivity_status(self, interaction: Interaction):
        await interaction.response.defer(ephemeral=True)
        scheduler = self.scheduler
        embed = nextcord.Embed(title="Inactivity Checker", color=nextcord.Color.blue())
        embed.add_field(name="State", value=scheduler.state.value.capitalize(), inline=True)
        if scheduler.next_fire_time:
            unix_ts = int(scheduler.next_fire_time.timestamp())
            embed.add_field(name="Next Check", value=f"<t:{unix_ts}:F> (<t:{unix_ts}:R>)", inline=True)
        else:
            embed.add_field(name="Next Check", value="Not scheduled", inline=True)
        forum_ids = self._forum_ids()
        embed.add_field(name="Forums", value="\n".join(f"<#{fid}>" for fid in forum_ids) or "None configured", inline=False)
        policy = scheduler.policy
        embed.add_field(name="Reminder After", value=f"{policy.reminder_threshold_days} day(s)", inline=True)
        embed.add_field(name="Close After", value=f"{policy.close_threshold_days} day(s)", inline=True)
        if scheduler.last_report and scheduler.last_report.finished_at:
            last = scheduler.last_report
            embed.add_field(name="Last Run",
                            value=f"<t:{int(last.finished_at.timestamp())}:R>: {last.reminded} reminded, {last.closed} closed",
                            inline=False)
        await interaction.followup.send(embed=embed, ephemeral=True)

    @inactivity_run.error
    @inactivity_status.error
    async def inactivity_command_error(self, interaction: Interaction, error):
        if not interaction.response.is_done():
            try:
                await interaction.response.defer(ephemeral=True)
            except nextcord.NotFound:
                logger.warning(f"Interaction expired before error handler could defer for user {interaction.user.id}. Error: {error}")
                return
        if isinstance(error, application_checks.ApplicationMissingPermissions):
            await interaction.followup.send("You lack `Manage Threads` permission to use this command.", ephemeral=True)
        else:
            await interaction.followup.send(f"An unexpected error occurred: {type(error).__name__}", ephemeral=True)
            logger.error(f"Error in inactivity command for user {interaction.user.id}: {error}", exc_info=True)


def setup(bot: commands.Bot):
    try:
        config = LifecycleConfig.from_env()
    except ValueError as e:
        logger.error(f"Invalid inactivity checker configuration: {e}")
        raise
    bot.add_cog(InactivityCog(bot, config))

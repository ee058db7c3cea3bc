import nextcord
from nextcord.ext import commands, application_checks
from nextcord import Interaction, SlashOption, ChannelType, TextChannel, ForumChannel
from db_utils import database
import logging
import sqlite3


class ConfigCog(commands.Cog, name="Bot Configuration"):
    def __init__(self, bot: commands.Bot):
        self.bot = bot

    async def cog_check(self, interaction: Interaction) -> bool:
        # This check applies to all commands in this cog for single-server operation
        if not self.bot.target_guild_id:
            if not interaction.response.is_done():
                try: await interaction.response.defer(ephemeral=True)
                except nextcord.NotFound: pass # Interaction might have already expired if bot was slow
            await interaction.followup.send("Bot is not yet ready or target server not identified. Please wait a moment and try again.", ephemeral=True)
            return False
        if interaction.guild is None or interaction.guild.id != self.bot.target_guild_id:
            if not interaction.response.is_done():
                try: await interaction.response.defer(ephemeral=True)
                except nextcord.NotFound: pass
            target_guild_name = getattr(self.bot, 'target_guild_name', 'the configured server')
            await interaction.followup.send(f"This bot is configured for a specific server. Please use commands in '{target_guild_name}'.", ephemeral=True)
            return False
        return True

    @nextcord.slash_command(name="config", description="Configure general bot settings.")
    async def config_group(self, interaction: Interaction):
        pass

    @config_group.subcommand(name="set_log_channel", description="Designates the channel for inactivity check and purge reports.")
    @application_checks.has_permissions(manage_guild=True)
    async def set_log_channel(self, interaction: Interaction, channel: TextChannel = SlashOption(description="The text channel for bot logs", required=True)):
        await interaction.response.defer(ephemeral=True)
        database.update_setting(self.bot.target_guild_id, 'log_channel_id', channel.id)
        await interaction.followup.send(f"Bot log channel set to: {channel.mention}.", ephemeral=True)
        logging.info(f"Log channel set to {channel.id} for target guild {self.bot.target_guild_id} by {interaction.user.name}")

    @config_group.subcommand(name="add_forum", description="Adds a forum for the inactivity checker to manage.")
    @application_checks.has_permissions(manage_guild=True)
    async def add_forum(self,
                        interaction: Interaction,
                        forum: nextcord.abc.GuildChannel = SlashOption(
                            description="The forum channel to monitor",
                            channel_types=[ChannelType.forum],
                            required=True
                        )):
        await interaction.response.defer(ephemeral=True)

        if not isinstance(forum, ForumChannel):
            await interaction.followup.send(f"'{forum.name}' is not a forum channel.", ephemeral=True)
            return

        if database.add_monitored_forum(self.bot.target_guild_id, forum.id):
            await interaction.followup.send(f"Forum {forum.mention} (`{forum.name}`) will now be checked for inactive posts.", ephemeral=True, suppress_embeds=True)
            logging.info(f"Added monitored forum {forum.id} ('{forum.name}') for guild {self.bot.target_guild_id} by {interaction.user.name}")
        else:
            await interaction.followup.send(f"Forum {forum.mention} (`{forum.name}`) is already being monitored.", ephemeral=True, suppress_embeds=True)

    @config_group.subcommand(name="remove_forum", description="Stops the inactivity checker from managing a forum.")
    @application_checks.has_permissions(manage_guild=True)
    async def remove_forum(self, interaction: Interaction, forum_id: str = SlashOption(description="The ID of the forum to stop monitoring", required=True)):
        await interaction.response.defer(ephemeral=True)
        try:
            chan_id = int(forum_id)
        except ValueError:
            await interaction.followup.send(f"'{forum_id}' is not a valid channel ID format.", ephemeral=True)
            return

        channel_obj = self.bot.get_channel(chan_id)
        channel_name_mention = channel_obj.mention if channel_obj else f"ID `{chan_id}`"
        if database.remove_monitored_forum(self.bot.target_guild_id, chan_id):
            await interaction.followup.send(f"Forum {channel_name_mention} will no longer be checked for inactivity.", ephemeral=True, suppress_embeds=True)
            logging.info(f"Removed monitored forum {chan_id} for guild {self.bot.target_guild_id} by {interaction.user.name}")
        else:
            await interaction.followup.send(f"Forum {channel_name_mention} was not in the monitored list.", ephemeral=True, suppress_embeds=True)

    @config_group.subcommand(name="view_settings", description="Displays current bot configuration.")
    @application_checks.has_permissions(manage_guild=True)
    async def view_settings(self, interaction: Interaction):
        await interaction.response.defer(ephemeral=True)

        target_gid = self.bot.target_guild_id
        settings = database.get_guild_settings(target_gid) or {}
        monitored_forum_ids = database.get_monitored_forums(target_gid)
        embed = nextcord.Embed(title=f"Bot Configuration for {interaction.guild.name}", color=nextcord.Color.blue())

        log_channel_obj = interaction.guild.get_channel(settings.get('log_channel_id')) if settings.get('log_channel_id') else None
        embed.add_field(name="Log Channel", value=log_channel_obj.mention if log_channel_obj else "Not Set", inline=False)

        if monitored_forum_ids:
            forum_mentions = []
            for chan_id in monitored_forum_ids:
                chan_obj = interaction.guild.get_channel(chan_id)
                forum_mentions.append(f"{chan_obj.mention} (`{chan_obj.name}`)" if chan_obj else f"Unknown Channel (ID: {chan_id})")
            embed.add_field(name="Monitored Forums", value="\n".join(forum_mentions), inline=False)
        else:
            embed.add_field(name="Monitored Forums", value="None stored (using INACTIVITY_FORUM_IDS from the environment)", inline=False)

        await interaction.followup.send(embed=embed, ephemeral=True)

    @set_log_channel.error
    @add_forum.error
    @remove_forum.error
    @view_settings.error
    async def config_command_error(self, interaction: Interaction, error):
        send_method = interaction.followup.send
        if not interaction.response.is_done():
            try:
                await interaction.response.defer(ephemeral=True)
            except nextcord.NotFound:
                logging.warning(f"Interaction expired before error handler could defer for user {interaction.user.id}. Error: {error}")
                return

        if isinstance(error, application_checks.ApplicationMissingPermissions):
            await send_method("You lack `Manage Guild` permission to use this command.", ephemeral=True)
        else:
            original_error = getattr(error, 'original', error)
            if isinstance(original_error, sqlite3.OperationalError) and "no such column" in str(original_error).lower():
                await send_method("Database schema error. The bot admin may need to delete the `.db` file and reconfigure settings after restarting the bot.", ephemeral=True)
                logging.error(f"Database schema error: {original_error}", exc_info=True)
            else:
                await send_method(f"An unexpected error occurred in a config command: {type(error).__name__}", ephemeral=True)
                logging.error(f"Error in config command for user {interaction.user.id}: {error}", exc_info=True)

def setup(bot: commands.Bot):
    bot.add_cog(ConfigCog(bot))

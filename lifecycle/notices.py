import nextcord
from typing import Optional


def build_reminder_embed(reminder_days: int, close_days: int) -> nextcord.Embed:
    embed = nextcord.Embed(title="Inactivity notice", color=nextcord.Color.gold())
    embed.description = (
        f"It looks like your post hasn't received a reply in the last {reminder_days} days.\n"
        "Has your issue been resolved? If so, please close this post.\n"
        "If not, please try to provide more information or ping the moderators.\n\n"
        f"> Note: If this post stays inactive for a total of {close_days} days it will be closed automatically."
    )
    return embed


def build_closure_embed(forum_name: str, close_days: int) -> nextcord.Embed:
    embed = nextcord.Embed(title="Post closed", color=nextcord.Color.red())
    embed.description = (
        f"This post has been automatically closed due to inactivity ({close_days}+ days with no user response).\n\n"
        f"If you still need help, feel free to create a new post in the {forum_name} forum."
    )
    return embed


def build_cycle_report_embed(report) -> nextcord.Embed:
    color = nextcord.Color.orange() if report.errors or report.forums_failed else nextcord.Color.blue()
    embed = nextcord.Embed(title="Inactivity Check: Cycle Finished", color=color)
    if report.skipped_fire:
        embed.description = "Skipped: the bot was disconnected when the check was due."
        return embed
    embed.add_field(name="Forums Scanned", value=str(report.forums_scanned), inline=True)
    embed.add_field(name="Forums Failed", value=str(report.forums_failed), inline=True)
    embed.add_field(name="Threads Checked", value=str(report.threads_checked), inline=True)
    embed.add_field(name="Reminders Sent", value=str(report.reminded), inline=True)
    embed.add_field(name="Threads Closed", value=str(report.closed), inline=True)
    embed.add_field(name="Skipped", value=str(report.skipped), inline=True)
    if report.errors:
        embed.add_field(name="Errors", value=str(report.errors), inline=True)
    return embed


def build_purge_result_embed(result, target_mention: str, days: Optional[int],
                             channel_mention: Optional[str], count: Optional[int]) -> nextcord.Embed:
    if result.error:
        embed = nextcord.Embed(title="Purge Failed", color=nextcord.Color.red())
        embed.description = result.error
        embed.add_field(name="Messages Deleted", value=str(result.deleted_count), inline=False)
        return embed

    embed = nextcord.Embed(title="Messages Deleted", color=nextcord.Color.green())
    embed.description = f"Deleted messages from **{target_mention}**"
    embed.add_field(name="Messages Deleted", value=str(result.deleted_count), inline=False)
    if channel_mention:
        embed.add_field(name="Channel", value=channel_mention, inline=False)
    embed.add_field(name="Time Range", value=f"Last {days} day(s)" if days else "All messages", inline=False)
    if count:
        embed.add_field(name="Limit", value=f"{count} messages", inline=False)
    if result.channels_skipped:
        embed.add_field(name="Channels Skipped", value=str(result.channels_skipped), inline=False)
    return embed

import nextcord
from nextcord.ext import commands
import os
import sys
import logging
from dotenv import load_dotenv
from typing import Optional

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(levelname)s - %(name)s - [%(module)s.%(funcName)s:%(lineno)d] %(message)s',
                    datefmt='%Y-%m-%d %H:%M:%S')

# --- Load Environment Variables ---
# Must run before db_utils is imported: it reads DATA_DIRECTORY at import time.
load_dotenv()

from db_utils import database  # noqa: E402

INITIAL_EXTENSIONS = [
    'cogs.config_cog',
    'cogs.inactivity_cog',
    'cogs.purge_cog',
]


# Custom Bot class to hold target guild information
class SingleServerBot(commands.Bot):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # target_guild_id is passed via default_guild_ids so slash commands register to that guild only
        self.target_guild_id: Optional[int] = kwargs.get('default_guild_ids', [None])[0]
        self.target_guild_name: Optional[str] = None

    async def on_ready(self):
        logging.info(f"Logged in as {self.user.name} (ID: {self.user.id})")
        logging.info(f"Nextcord Version: {nextcord.__version__}")

        target_guild = self.get_guild(self.target_guild_id)
        if not target_guild:
            logging.error(f"CRITICAL: Could not find target guild with ID {self.target_guild_id}. Ensure the bot is in this server.")
            return
        self.target_guild_name = target_guild.name
        logging.info(f"Target server identified: '{self.target_guild_name}' (ID: {self.target_guild_id})")

        if len(self.guilds) > 1:
            logging.warning(f"Bot is in {len(self.guilds)} servers, but commands are specifically registered to '{self.target_guild_name}'.")


def read_target_guild_id() -> int:
    raw_guild_id = os.getenv("TARGET_GUILD_ID")
    if not raw_guild_id:
        logging.error("FATAL: TARGET_GUILD_ID not found in .env file. This is required for guild-specific command registration. Exiting.")
        sys.exit(1)
    try:
        return int(raw_guild_id)
    except ValueError:
        logging.error("FATAL: TARGET_GUILD_ID in .env is not a valid integer. Exiting.")
        sys.exit(1)


def create_bot(target_guild_id: int) -> SingleServerBot:
    # --- Bot Intents and Initialization ---
    intents = nextcord.Intents.default()
    intents.guilds = True
    intents.messages = True
    intents.message_content = True
    return SingleServerBot(command_prefix="!", intents=intents, default_guild_ids=[target_guild_id])


def main():
    bot_token = os.getenv("DISCORD_BOT_TOKEN")
    if not bot_token:
        logging.error("FATAL: DISCORD_BOT_TOKEN not found in .env file. Exiting.")
        sys.exit(1)

    database.initialize_database()
    bot = create_bot(read_target_guild_id())

    # --- Cog Loading ---
    for extension in INITIAL_EXTENSIONS:
        try:
            bot.load_extension(extension)
            logging.info(f'Successfully loaded extension: {extension}')
        except Exception:
            logging.error(f'Failed to load extension {extension}.', exc_info=True)

    bot.run(bot_token)


if __name__ == '__main__':
    main()

import sqlite3
import logging
from typing import Optional, List, Dict, Any
import os

# --- Database Path Logic ---
ACTUAL_DATA_DIRECTORY = os.getenv("DATA_DIRECTORY", os.path.join(os.getcwd(), "data"))
DATABASE_MAIN_NAME = os.path.join(ACTUAL_DATA_DIRECTORY, "forum_lifecycle_settings.db")

ALLOWED_SETTING_KEYS = {"log_channel_id"}

def get_db_connection(): # Connects to the main database
    directory = os.path.dirname(DATABASE_MAIN_NAME)
    if directory and not os.path.exists(directory):
        os.makedirs(directory, exist_ok=True)
        logging.info(f"Created data directory: {directory}")
    conn = sqlite3.connect(DATABASE_MAIN_NAME)
    conn.row_factory = sqlite3.Row
    return conn

def initialize_database():
    conn = get_db_connection()
    cursor = conn.cursor()

    # 1. General bot settings
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS settings (
            guild_id INTEGER PRIMARY KEY,
            log_channel_id INTEGER            -- Cycle reports and purge results
        )
    ''')
    # 2. Forums checked by the inactivity scheduler
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS monitored_forums (
            id INTEGER PRIMARY KEY AUTOINCREMENT, guild_id INTEGER NOT NULL, channel_id INTEGER NOT NULL,
            UNIQUE (guild_id, channel_id),
            FOREIGN KEY (guild_id) REFERENCES settings(guild_id) ON DELETE CASCADE ON UPDATE CASCADE )
    ''')

    conn.commit()
    conn.close()
    logging.info(f"Database initialized at {DATABASE_MAIN_NAME} (settings, monitored_forums).")

# --- General Settings Functions ---
def get_guild_settings(guild_id: int) -> Optional[Dict[str, Any]]:
    conn = get_db_connection(); cursor = conn.cursor()
    try:
        cursor.execute("SELECT * FROM settings WHERE guild_id = ?", (guild_id,))
        row = cursor.fetchone()
    finally:
        conn.close()
    return dict(row) if row else None

def update_setting(guild_id: int, key: str, value: Any) -> bool:
    if key not in ALLOWED_SETTING_KEYS:
        raise ValueError(f"Unknown setting '{key}'.")
    conn = get_db_connection(); cursor = conn.cursor()
    try:
        cursor.execute("INSERT OR IGNORE INTO settings (guild_id) VALUES (?)", (guild_id,))
        cursor.execute(f"UPDATE settings SET {key} = ? WHERE guild_id = ?", (value, guild_id))
        conn.commit()
        logging.info(f"Updated general setting '{key}' to '{value}' for guild_id {guild_id}")
        return True
    except sqlite3.Error as e:
        logging.error(f"SQLite error in update_setting for guild {guild_id}, key {key}: {e}")
        return False
    finally:
        conn.close()

# --- Monitored Forums Functions ---
def add_monitored_forum(guild_id: int, channel_id: int) -> bool:
    conn = get_db_connection(); cursor = conn.cursor()
    try:
        cursor.execute("INSERT OR IGNORE INTO settings (guild_id) VALUES (?)", (guild_id,))
        cursor.execute("INSERT INTO monitored_forums (guild_id, channel_id) VALUES (?, ?)", (guild_id, channel_id))
        conn.commit(); return True
    except sqlite3.IntegrityError: logging.warning(f"Forum {channel_id} already monitored for {guild_id}."); return False
    except sqlite3.Error as e: logging.error(f"DB Error adding monitored forum for {guild_id}: {e}"); return False
    finally: conn.close()

def remove_monitored_forum(guild_id: int, channel_id: int) -> bool:
    conn = get_db_connection(); cursor = conn.cursor()
    try:
        cursor.execute("DELETE FROM monitored_forums WHERE guild_id = ? AND channel_id = ?", (guild_id, channel_id))
        conn.commit(); return cursor.rowcount > 0
    except sqlite3.Error as e: logging.error(f"DB Error removing monitored forum for {guild_id}: {e}"); return False
    finally: conn.close()

def get_monitored_forums(guild_id: int) -> List[int]:
    conn = get_db_connection(); cursor = conn.cursor()
    forums = []
    try:
        cursor.execute("SELECT channel_id FROM monitored_forums WHERE guild_id = ? ORDER BY id", (guild_id,))
        forums = [row['channel_id'] for row in cursor.fetchall()]
    except sqlite3.Error as e: logging.error(f"DB Error getting monitored forums for {guild_id}: {e}")
    finally: conn.close()
    return forums

"""
Database Utility Module for the player
======================================

Async persistence for listening history, favorites and playback settings
using SQLite.

Schema:
- history: recently played songs, newest last inserted, capped in length
- favorites: songs in the favorites playlist
- settings: key/value pairs (default playback speed)
- lyric_offsets: per-song lyric offset in seconds

Settings are read synchronously by the engine's sampling loop, so they are
cached in memory when the database is initialized and written through on
every change.
"""

import aiosqlite
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Dict, List

from lxplayer.core.interfaces import Song
from lxplayer.utils.constants import DEFAULT_SPEED, HISTORY_LIMIT


class DatabaseManager:
    """
    Async database manager for history, favorites and settings

    Implements the HistoryStore and SettingsStore interfaces used by the
    playback engine.
    """

    def __init__(self, db_path: str = "data/lxplayer.db", history_limit: int = HISTORY_LIMIT,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the database manager

        Args:
            db_path: Path to the SQLite database file
            history_limit: Maximum number of history entries kept
            logger: Logger instance for debugging
        """
        self.db_path = Path(db_path)
        self.history_limit = history_limit
        self.logger = logger or logging.getLogger(__name__)
        self._lock = asyncio.Lock()

        self._default_speed = DEFAULT_SPEED
        self._lyric_offsets: Dict[str, float] = {}

        # Create data directory if it doesn't exist
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self):
        """
        Create tables if they don't exist and load the settings cache
        """
        async with self._lock:
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute('''
                        CREATE TABLE IF NOT EXISTS history (
                            seq INTEGER PRIMARY KEY AUTOINCREMENT,
                            song_id TEXT NOT NULL UNIQUE,
                            song TEXT NOT NULL,
                            played_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    ''')

                    await db.execute('''
                        CREATE TABLE IF NOT EXISTS favorites (
                            seq INTEGER PRIMARY KEY AUTOINCREMENT,
                            song_id TEXT NOT NULL UNIQUE,
                            song TEXT NOT NULL,
                            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    ''')

                    await db.execute('''
                        CREATE TABLE IF NOT EXISTS settings (
                            key TEXT PRIMARY KEY,
                            value TEXT NOT NULL
                        )
                    ''')

                    await db.execute('''
                        CREATE TABLE IF NOT EXISTS lyric_offsets (
                            song_id TEXT PRIMARY KEY,
                            seconds REAL NOT NULL
                        )
                    ''')

                    await db.commit()

                    async with db.execute(
                        "SELECT value FROM settings WHERE key = 'default_speed'"
                    ) as cursor:
                        row = await cursor.fetchone()
                        if row:
                            self._default_speed = float(row[0])

                    async with db.execute('SELECT song_id, seconds FROM lyric_offsets') as cursor:
                        rows = await cursor.fetchall()
                        self._lyric_offsets = {row[0]: float(row[1]) for row in rows}

                self.logger.info("Database initialized successfully")

            except Exception as e:
                self.logger.error(f"Failed to initialize database: {e}")
                raise

    async def close(self):
        """Connections are opened per operation; wait for any in-flight write."""
        async with self._lock:
            self.logger.debug("Database closed")

    # ----------------------------
    # History
    # ----------------------------

    async def record_played(self, song: Song) -> None:
        """
        Move a song to the top of the listening history

        An existing entry for the same song id is replaced, and the oldest
        entries beyond the history limit are dropped.
        """
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute('DELETE FROM history WHERE song_id = ?', (song.id,))
                await db.execute(
                    'INSERT INTO history (song_id, song) VALUES (?, ?)',
                    (song.id, json.dumps(song.to_dict()))
                )
                await db.execute('''
                    DELETE FROM history WHERE seq NOT IN (
                        SELECT seq FROM history ORDER BY seq DESC LIMIT ?
                    )
                ''', (self.history_limit,))
                await db.commit()
        self.logger.debug(f"History updated with {song.id}")

    async def get_history(self, limit: Optional[int] = None) -> List[Song]:
        """Most recently played songs first."""
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute(
                    'SELECT song FROM history ORDER BY seq DESC LIMIT ?',
                    (limit if limit is not None else self.history_limit,)
                ) as cursor:
                    rows = await cursor.fetchall()
        return [Song.from_dict(json.loads(row[0])) for row in rows]

    # ----------------------------
    # Favorites
    # ----------------------------

    async def is_favorite(self, song: Song) -> bool:
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute('SELECT 1 FROM favorites WHERE song_id = ?', (song.id,)) as cursor:
                    return await cursor.fetchone() is not None

    async def toggle_favorite(self, song: Song) -> bool:
        """
        Add or remove a song from favorites

        Returns:
            True if the song is a favorite after the call, False otherwise
        """
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute('DELETE FROM favorites WHERE song_id = ?', (song.id,))
                removed = cursor.rowcount > 0
                if not removed:
                    await db.execute(
                        'INSERT INTO favorites (song_id, song) VALUES (?, ?)',
                        (song.id, json.dumps(song.to_dict()))
                    )
                await db.commit()

        self.logger.info(f"{'Removed' if removed else 'Added'} {song.id} {'from' if removed else 'to'} favorites")
        return not removed

    async def get_favorites(self) -> List[Song]:
        """Favorites, newest first."""
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute('SELECT song FROM favorites ORDER BY seq DESC') as cursor:
                    rows = await cursor.fetchall()
        return [Song.from_dict(json.loads(row[0])) for row in rows]

    # ----------------------------
    # Settings
    # ----------------------------

    def get_default_speed(self) -> float:
        return self._default_speed

    async def set_default_speed(self, speed: float) -> None:
        self._default_speed = float(speed)
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    "INSERT OR REPLACE INTO settings (key, value) VALUES ('default_speed', ?)",
                    (str(self._default_speed),)
                )
                await db.commit()

    def get_lyric_offset(self, song_id: str) -> float:
        return self._lyric_offsets.get(song_id, 0.0)

    async def set_lyric_offset(self, song_id: str, offset: float) -> None:
        self._lyric_offsets[song_id] = float(offset)
        async with self._lock:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    'INSERT OR REPLACE INTO lyric_offsets (song_id, seconds) VALUES (?, ?)',
                    (song_id, float(offset))
                )
                await db.commit()

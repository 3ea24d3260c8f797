"""SQLite store of discovered tracks that were not found in the library"""

import sqlite3
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Optional

from matchmonkey.utils.text import artist_key, normalize_title


logger = logging.getLogger(__name__)


DEFAULT_MAX_RESULTS = 10000


class MissedResultsStore:
    """Remembers recommendations the library could not satisfy."""

    def __init__(self, db_path: Path, max_results: int = DEFAULT_MAX_RESULTS):
        """Initialize missed results store.

        Args:
            db_path: Path to SQLite database file
            max_results: Entries kept; the least recently seen are evicted
        """
        self.db_path = db_path
        self.max_results = max_results
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS missed (
                    match_key TEXT PRIMARY KEY,
                    artist TEXT NOT NULL,
                    title TEXT NOT NULL,
                    album TEXT NOT NULL DEFAULT '',
                    popularity INTEGER NOT NULL DEFAULT 0,
                    occurrences INTEGER NOT NULL DEFAULT 1,
                    source TEXT NOT NULL DEFAULT '',
                    first_seen TEXT NOT NULL,
                    last_seen TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_missed_last_seen
                ON missed(last_seen)
            """)
            conn.commit()

    @staticmethod
    def _key(artist: str, title: str) -> str:
        return f"{artist_key(artist)}|{normalize_title(title)}"

    def add(self, artist: str, title: str, album: str = "", popularity: float = 0,
            source: str = "") -> None:
        """Record a missed track or bump its occurrence count.

        Args:
            artist: Artist name
            title: Track title
            album: Album name, if known
            popularity: 0-100 popularity; the highest value seen is kept
            source: Service that suggested the track
        """
        popularity = int(max(0, min(100, round(popularity or 0))))
        now = datetime.now().isoformat()
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """INSERT INTO missed
                   (match_key, artist, title, album, popularity, occurrences, source, first_seen, last_seen)
                   VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?)
                   ON CONFLICT(match_key) DO UPDATE SET
                       occurrences = occurrences + 1,
                       popularity = MAX(popularity, excluded.popularity),
                       last_seen = excluded.last_seen""",
                (self._key(artist, title), artist, title, album or "", popularity, source, now, now)
            )
            conn.execute(
                """DELETE FROM missed WHERE match_key NOT IN (
                       SELECT match_key FROM missed ORDER BY last_seen DESC, rowid DESC LIMIT ?
                   )""",
                (self.max_results,)
            )
            conn.commit()

    def list(self, limit: Optional[int] = None) -> List[Dict]:
        """Get missed tracks, most frequent first.

        Args:
            limit: Maximum number of rows

        Returns:
            List of dictionaries with artist, title, album, popularity, occurrences, last_seen
        """
        query = """SELECT artist, title, album, popularity, occurrences, source, first_seen, last_seen
                   FROM missed
                   ORDER BY occurrences DESC, popularity DESC, last_seen DESC"""
        params: tuple = ()
        if limit:
            query += " LIMIT ?"
            params = (limit,)
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, params)
            return [
                {
                    "artist": row[0], "title": row[1], "album": row[2], "popularity": row[3],
                    "occurrences": row[4], "source": row[5], "first_seen": row[6], "last_seen": row[7],
                }
                for row in cursor.fetchall()
            ]

    def count(self) -> int:
        with sqlite3.connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM missed").fetchone()[0]

    def clear(self) -> None:
        """Remove every missed track."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM missed")
            conn.commit()
        logger.info("Cleared missed results")

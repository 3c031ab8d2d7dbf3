import sqlite3
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path

import services.util as u
import services.logger as log

l = log.get_logger()

TELEGRAM_TO_DISCORD = "telegram_to_discord"
DISCORD_TO_TELEGRAM = "discord_to_telegram"


class MessageMap(ABC):
    """Maps a relayed message's source id to the id it got on the other side.

    Keys are ``(direction, source_id)``; the last insert for a key wins.
    Ids are stored as strings so both platforms' id types fit.
    """

    @abstractmethod
    def insert(self, direction: str, source_id, destination_id) -> None:
        ...

    @abstractmethod
    def get_corresponding(self, direction: str, source_id) -> str | None:
        ...


class MemoryMessageMap(MessageMap):
    """In-process map, evicting the least recently used entries past *max_entries*.

    ``max_entries=0`` disables eviction.
    """

    def __init__(self, max_entries: int = 0):
        self._max = max_entries
        self._entries: OrderedDict[tuple[str, str], str] = OrderedDict()

    def insert(self, direction: str, source_id, destination_id) -> None:
        key = (direction, str(source_id))
        self._entries[key] = str(destination_id)
        self._entries.move_to_end(key)
        if self._max and len(self._entries) > self._max:
            self._entries.popitem(last=False)

    def get_corresponding(self, direction: str, source_id) -> str | None:
        key = (direction, str(source_id))
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    def __len__(self) -> int:
        return len(self._entries)


class SqliteMessageMap(MessageMap):
    """Message map persisted to a SQLite file so edits survive restarts."""

    def __init__(self, db_path: Path | None = None):
        self._local = threading.local()
        self._db_path = Path(db_path) if db_path else Path(u.get_data_path()) / "messages.db"
        self._init_db()

    def _get_conn(self):
        if not hasattr(self._local, "conn"):
            self._local.conn = sqlite3.connect(self._db_path)
        return self._local.conn

    def _init_db(self):
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS message_map (
                direction TEXT,
                source_id TEXT,
                destination_id TEXT,
                PRIMARY KEY (direction, source_id)
            )
        """)
        conn.commit()

    def insert(self, direction: str, source_id, destination_id) -> None:
        conn = self._get_conn()
        cursor = conn.cursor()
        try:
            cursor.execute("""
                INSERT OR REPLACE INTO message_map (direction, source_id, destination_id)
                VALUES (?, ?, ?)
            """, (direction, str(source_id), str(destination_id)))
            conn.commit()
        except sqlite3.Error as e:
            l.error(f"Failed to save message mapping {direction}/{source_id}: {e}")

    def get_corresponding(self, direction: str, source_id) -> str | None:
        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT destination_id FROM message_map
            WHERE direction = ? AND source_id = ?
        """, (direction, str(source_id)))
        row = cursor.fetchone()
        return row[0] if row else None

    def close(self) -> None:
        if hasattr(self._local, "conn"):
            self._local.conn.close()
            del self._local.conn


def create_message_map(config) -> MessageMap:
    """Build the store selected by the ``message_map`` config section."""
    if config.backend == "sqlite":
        path = Path(config.path)
        if not path.is_absolute():
            path = Path(u.get_data_path()) / path
        l.info(f"Message map: sqlite ({path})")
        return SqliteMessageMap(path)
    limit = f"max {config.max_entries} entries" if config.max_entries else "unbounded"
    l.info(f"Message map: memory ({limit})")
    return MemoryMessageMap(config.max_entries)

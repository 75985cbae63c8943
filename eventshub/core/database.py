"""
SQLite-backed Event Repository.

Schema:
- events: one row per uuid (UNIQUE), temporal fields stored as epoch seconds
  produced by the Temporal Codec
- status: append-only audit trail (timestamp, version), read newest-first
- credentials: one row per username (UNIQUE), bcrypt hash

A single connection is shared by all request threads; every primitive runs
under the repository lock with its own cursor, closed before returning.
The default location is an in-memory database, gone when the process exits.
"""

import sqlite3
from pathlib import Path
from typing import List, Optional

from .events import EventData, StatusRecord
from .repository import EventRepository, StorageError, DEFAULT_BCRYPT_ROUNDS
from .temporal import TemporalCodec

MEMORY_DB = ":memory:"

_EVENT_COLUMNS = """
    id, version, uuid, title, startEpoch, endEpoch, address,
    info, reminder, done, important, urgent, source
"""


class SQLiteRepository(EventRepository):
    """SQLite variant of the repository capability set"""

    def __init__(self, dbPath: str = MEMORY_DB, codec: Optional[TemporalCodec] = None,
                 bcryptRounds: int = DEFAULT_BCRYPT_ROUNDS, **kwargs):
        super().__init__(bcryptRounds=bcryptRounds, **kwargs)
        self.dbPath = dbPath
        self.codec = codec or TemporalCodec()
        self.conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        try:
            if self.dbPath != MEMORY_DB:
                Path(self.dbPath).parent.mkdir(parents=True, exist_ok=True)

            self.conn = sqlite3.connect(
                self.dbPath,
                check_same_thread=False,  # Shared across request threads, guarded by self._lock
                timeout=30.0
            )
            self.conn.row_factory = sqlite3.Row

            if self.dbPath != MEMORY_DB:
                self.conn.execute("PRAGMA journal_mode=WAL")
                self.conn.execute("PRAGMA synchronous=NORMAL")
        except (sqlite3.Error, OSError) as e:
            self.log.critical(f"Failed to open database {self.dbPath}: {e}")
            raise StorageError(f"Failed to open database: {e}") from e

        self.log.info(f"Opened database {self.dbPath}")

    def _run(self, sql: str, params: tuple = (), commit: bool = False) -> sqlite3.Cursor:
        """Execute one statement on a fresh cursor; sqlite errors become StorageError"""
        if self.conn is None:
            raise StorageError("Database is closed")

        try:
            cursor = self.conn.execute(sql, params)
            if commit:
                self.conn.commit()
            return cursor
        except sqlite3.Error as e:
            if commit:
                self.conn.rollback()
            self.log.error(f"SQL failure: {e}", statement=sql.split()[0])
            raise StorageError(str(e)) from e

    def _fetchAll(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        cursor = self._run(sql, params)
        try:
            return cursor.fetchall()
        finally:
            cursor.close()

    def _fetchOne(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        cursor = self._run(sql, params)
        try:
            return cursor.fetchone()
        finally:
            cursor.close()

    def _write(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        cursor = self._run(sql, params, commit=True)
        cursor.close()
        return cursor

    # =========================================================================
    # Primitives
    # =========================================================================

    def _createStructures(self):
        self._write("""
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                version VARCHAR(16),
                uuid VARCHAR(64) NOT NULL,
                title VARCHAR(255),
                startEpoch INTEGER NOT NULL,
                endEpoch INTEGER NOT NULL,
                address VARCHAR(255),
                info VARCHAR(255),
                reminder INTEGER,
                done INTEGER,
                important INTEGER,
                urgent INTEGER,
                source VARCHAR(16)
            )
        """)
        self._write("CREATE UNIQUE INDEX IF NOT EXISTS idx_events_uuid ON events(uuid)")
        self._write("CREATE INDEX IF NOT EXISTS idx_events_range ON events(startEpoch, endEpoch)")
        self._write("""
            CREATE TABLE IF NOT EXISTS credentials (
                id INTEGER PRIMARY KEY,
                username VARCHAR(64) NOT NULL UNIQUE,
                passwordHash VARCHAR(128) NOT NULL
            )
        """)
        self._write("""
            CREATE TABLE IF NOT EXISTS status (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp INTEGER NOT NULL,
                version VARCHAR(64) NOT NULL
            )
        """)

    def _findByUuid(self, uuid: str) -> Optional[EventData]:
        row = self._fetchOne(f"SELECT {_EVENT_COLUMNS} FROM events WHERE uuid = ?", (uuid,))
        return self._rowToEvent(row) if row else None

    def _insertRow(self, event: EventData) -> int:
        cursor = self._write("""
            INSERT INTO events (
                version, uuid, title, startEpoch, endEpoch, address,
                info, reminder, done, important, urgent, source
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            event.version, event.uuid, event.title,
            self.codec.encode(event.start), self.codec.encode(event.end),
            event.address, event.info, event.reminder,
            int(event.done), int(event.important), int(event.urgent), event.source
        ))
        return cursor.lastrowid

    def _updateRow(self, event: EventData):
        self._write("""
            UPDATE events SET
                version = ?, title = ?, startEpoch = ?, endEpoch = ?,
                address = ?, info = ?, reminder = ?,
                done = ?, important = ?, urgent = ?, source = ?
            WHERE uuid = ?
        """, (
            event.version, event.title,
            self.codec.encode(event.start), self.codec.encode(event.end),
            event.address, event.info, event.reminder,
            int(event.done), int(event.important), int(event.urgent), event.source,
            event.uuid
        ))

    def _deleteRow(self, uuid: str) -> int:
        return self._write("DELETE FROM events WHERE uuid = ?", (uuid,)).rowcount

    def _selectRange(self, startEpoch: int, endEpoch: int) -> List[EventData]:
        rows = self._fetchAll(
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE endEpoch >= ? AND startEpoch <= ? ORDER BY id",
            (startEpoch, endEpoch)
        )
        return [self._rowToEvent(row) for row in rows]

    def _selectAll(self) -> List[EventData]:
        rows = self._fetchAll(f"SELECT {_EVENT_COLUMNS} FROM events ORDER BY id")
        return [self._rowToEvent(row) for row in rows]

    def _appendStatus(self, timestamp: int, version: str):
        self._write("INSERT INTO status (timestamp, version) VALUES (?, ?)", (timestamp, version))

    def _latestStatus(self) -> Optional[StatusRecord]:
        row = self._fetchOne("SELECT timestamp, version FROM status ORDER BY id DESC LIMIT 1")
        if row is None:
            return None
        return StatusRecord(timestamp=row['timestamp'], version=row['version'])

    def _storeCredential(self, username: str, passwordHash: str):
        self._write("""
            INSERT INTO credentials (username, passwordHash) VALUES (?, ?)
            ON CONFLICT(username) DO UPDATE SET passwordHash = excluded.passwordHash
        """, (username, passwordHash))

    def _credentialHash(self, username: str) -> Optional[str]:
        row = self._fetchOne("SELECT passwordHash FROM credentials WHERE username = ?", (username,))
        return row['passwordHash'] if row else None

    def close(self):
        with self._lock:
            if self.conn is not None:
                self.log.info("Closing database")
                self.conn.close()
                self.conn = None

    def _rowToEvent(self, row: sqlite3.Row) -> EventData:
        return EventData(
            id=row['id'],
            version=row['version'] or "",
            uuid=row['uuid'],
            title=row['title'] or "",
            start=self.codec.decode(row['startEpoch']),
            end=self.codec.decode(row['endEpoch']),
            address=row['address'] or "",
            info=row['info'] or "",
            reminder=row['reminder'] or 0,
            done=bool(row['done']),
            important=bool(row['important']),
            urgent=bool(row['urgent']),
            source=row['source'] or ""
        )

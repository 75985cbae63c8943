"""
Event Repository capability set.

EventRepository owns every persisted row: events, the append-only status
trail and the credential table. The upsert algorithm and credential checks
live here once; storage variants (SQLite, in-memory) only supply row-level
primitives.

Upsert contract (insertOrUpdate):
- Unknown uuid → insert with a new numeric id, append one status row
- Known uuid, same content hash → no write, stored event returned unchanged
- Known uuid, different hash → overwrite every field except id and uuid in
  place, append one status row
The whole lookup-compare-write runs under the repository lock, so concurrent
submissions for one uuid never create a second row.

The event write and its status append are separate commits; a crash between
them leaves an event without an audit row. The status trail is best-effort
audit, not a consistency record.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import bcrypt

from sdk.logging import getLogger
from .events import EventData, StatusRecord

SCHEMA_VERSION = "1.1.0"
DEFAULT_BCRYPT_ROUNDS = 12


class StorageError(Exception):
    """Storage I/O or serialization failure"""
    pass


def hashPassword(plainPassword: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """One-way salted bcrypt hash of a password"""
    return bcrypt.hashpw(plainPassword.encode('utf-8'), bcrypt.gensalt(rounds)).decode('utf-8')


def checkPassword(plainPassword: str, passwordHash: str) -> bool:
    """Constant-time bcrypt comparison; a malformed stored hash never matches"""
    try:
        return bcrypt.checkpw(plainPassword.encode('utf-8'), passwordHash.encode('utf-8'))
    except ValueError:
        return False


class EventRepository(ABC):
    """
    Storage capability set: insertOrUpdate, delete, rangeQuery, getByUuid,
    getStatus, addCredential, authenticate, migrate.

    Subclasses implement the underscore primitives. Primitives are only ever
    called with self._lock held.
    """

    def __init__(self, bcryptRounds: int = DEFAULT_BCRYPT_ROUNDS, clock: Callable[[], float] = time.time):
        self.log = getLogger()
        self.bcryptRounds = bcryptRounds
        self.clock = clock
        self._lock = threading.RLock()
        self._dummyHash: Optional[str] = None

    # =========================================================================
    # Primitives
    # =========================================================================

    @abstractmethod
    def _createStructures(self):
        """Create event, credential and status structures if missing"""

    @abstractmethod
    def _findByUuid(self, uuid: str) -> Optional[EventData]:
        """Stored event for uuid (with its id), or None"""

    @abstractmethod
    def _insertRow(self, event: EventData) -> int:
        """Persist a new event, return the assigned numeric id"""

    @abstractmethod
    def _updateRow(self, event: EventData):
        """Overwrite every field except id and uuid of the row with event.uuid"""

    @abstractmethod
    def _deleteRow(self, uuid: str) -> int:
        """Delete rows with uuid, return affected row count"""

    @abstractmethod
    def _selectRange(self, startEpoch: int, endEpoch: int) -> List[EventData]:
        """Events with end >= startEpoch AND start <= endEpoch, storage order"""

    @abstractmethod
    def _selectAll(self) -> List[EventData]:
        """Every event, storage order"""

    @abstractmethod
    def _appendStatus(self, timestamp: int, version: str):
        """Append one status row"""

    @abstractmethod
    def _latestStatus(self) -> Optional[StatusRecord]:
        """Most recently appended status row, or None if the trail is empty"""

    @abstractmethod
    def _storeCredential(self, username: str, passwordHash: str):
        """Insert or replace the credential for username"""

    @abstractmethod
    def _credentialHash(self, username: str) -> Optional[str]:
        """Stored password hash for username, or None"""

    @abstractmethod
    def close(self):
        """Release the storage handle"""

    # =========================================================================
    # Operations
    # =========================================================================

    def migrate(self):
        """Ensure structures exist; safe on every startup. Appends a status row."""
        with self._lock:
            self._createStructures()
            self._appendStatus(self._now(), SCHEMA_VERSION)
        self.log.info("Storage structures ready")

    def insertOrUpdate(self, event: EventData) -> EventData:
        """
        Upsert keyed by uuid (see module docstring).

        Returns the stored event carrying its numeric id.

        Raises:
            StorageError: On storage failure
        """
        with self._lock:
            existing = self._findByUuid(event.uuid)

            if existing is None:
                eventId = self._insertRow(event)
                stored = event.withId(eventId)
                self.log.info("Inserted event", uuid=event.uuid, eventId=eventId)
            elif existing.contentHash() == event.contentHash():
                self.log.debug("Event unchanged, skipping write", uuid=event.uuid)
                return existing
            else:
                stored = event.withId(existing.id)
                self._updateRow(stored)
                self.log.info("Updated event", uuid=event.uuid, eventId=existing.id)

            self._appendStatus(self._now(), SCHEMA_VERSION)
            return stored

    def delete(self, event: EventData) -> bool:
        """Remove by uuid; True if a row was affected"""
        with self._lock:
            affected = self._deleteRow(event.uuid)
            if affected:
                self._appendStatus(self._now(), SCHEMA_VERSION)
                self.log.info("Deleted event", uuid=event.uuid)
            return affected > 0

    def rangeQuery(self, startEpoch: int, endEpoch: int) -> List[EventData]:
        """Events whose [start, end] overlaps [startEpoch, endEpoch], boundaries inclusive"""
        with self._lock:
            return self._selectRange(startEpoch, endEpoch)

    def allEvents(self) -> List[EventData]:
        with self._lock:
            return self._selectAll()

    def getByUuid(self, uuid: str) -> Optional[EventData]:
        """Stored event or None when not found"""
        with self._lock:
            return self._findByUuid(uuid)

    def getStatus(self) -> StatusRecord:
        """
        Latest status row.

        Never raises: an empty or unreadable trail yields a failure payload.
        """
        try:
            with self._lock:
                record = self._latestStatus()
        except StorageError as e:
            self.log.error(f"Status trail unreadable: {e}")
            return StatusRecord(success=False, message=str(e))

        if record is None:
            return StatusRecord(success=False, message="No status recorded")
        return record

    def addCredential(self, username: str, secretOrHash: str, alreadyHashed: bool = False):
        """
        Store the credential for username.

        alreadyHashed=True stores a configuration-supplied bcrypt hash verbatim.
        """
        passwordHash = secretOrHash if alreadyHashed else hashPassword(secretOrHash, self.bcryptRounds)
        with self._lock:
            self._storeCredential(username, passwordHash)
        self.log.info("Stored credential", username=username, preHashed=alreadyHashed)

    def authenticate(self, username: str, password: str) -> bool:
        """
        Verify password for username.

        Unknown users return False after a comparison against a dummy hash, so
        neither the result nor the timing distinguishes them from a wrong
        password.
        """
        with self._lock:
            storedHash = self._credentialHash(username)

        if storedHash is None:
            checkPassword(password, self._getDummyHash())
            return False

        return checkPassword(password, storedHash)

    def _now(self) -> int:
        return int(self.clock())

    def _getDummyHash(self) -> str:
        if self._dummyHash is None:
            self._dummyHash = hashPassword("eventshub-unknown-user", self.bcryptRounds)
        return self._dummyHash

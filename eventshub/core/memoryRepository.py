"""
In-memory Event Repository.

Same capability set as the SQLite variant, held in plain dicts and lists.
Used by tests and by tooling that needs a throwaway store; nothing survives
close().
"""

from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from .events import EventData, StatusRecord
from .repository import EventRepository, StorageError, DEFAULT_BCRYPT_ROUNDS
from .temporal import TemporalCodec


class MemoryRepository(EventRepository):
    """Dict-backed repository; rows keep insertion order"""

    def __init__(self, codec: Optional[TemporalCodec] = None,
                 bcryptRounds: int = DEFAULT_BCRYPT_ROUNDS, **kwargs):
        super().__init__(bcryptRounds=bcryptRounds, **kwargs)
        self.codec = codec or TemporalCodec()
        self._events: Optional[Dict[str, Tuple[EventData, int, int]]] = None
        self._status: List[StatusRecord] = []
        self._credentials: Dict[str, str] = {}
        self._nextId = 1
        self._closed = False

    def _requireOpen(self):
        if self._closed:
            raise StorageError("Repository is closed")
        if self._events is None:
            raise StorageError("Repository not migrated")

    def _createStructures(self):
        if self._closed:
            raise StorageError("Repository is closed")
        if self._events is None:
            self._events = {}

    def _findByUuid(self, uuid: str) -> Optional[EventData]:
        self._requireOpen()
        row = self._events.get(uuid)
        return replace(row[0]) if row else None

    def _insertRow(self, event: EventData) -> int:
        self._requireOpen()
        eventId = self._nextId
        self._nextId += 1
        self._events[event.uuid] = self._row(event.withId(eventId))
        return eventId

    def _updateRow(self, event: EventData):
        self._requireOpen()
        existing = self._events[event.uuid][0]
        self._events[event.uuid] = self._row(event.withId(existing.id))

    def _deleteRow(self, uuid: str) -> int:
        self._requireOpen()
        return 1 if self._events.pop(uuid, None) is not None else 0

    def _selectRange(self, startEpoch: int, endEpoch: int) -> List[EventData]:
        self._requireOpen()
        return [
            replace(event) for event, start, end in self._ordered()
            if end >= startEpoch and start <= endEpoch
        ]

    def _selectAll(self) -> List[EventData]:
        self._requireOpen()
        return [replace(event) for event, _, _ in self._ordered()]

    def _appendStatus(self, timestamp: int, version: str):
        self._requireOpen()
        self._status.append(StatusRecord(timestamp=timestamp, version=version))

    def _latestStatus(self) -> Optional[StatusRecord]:
        self._requireOpen()
        return replace(self._status[-1]) if self._status else None

    def _storeCredential(self, username: str, passwordHash: str):
        self._requireOpen()
        self._credentials[username] = passwordHash

    def _credentialHash(self, username: str) -> Optional[str]:
        self._requireOpen()
        return self._credentials.get(username)

    def close(self):
        with self._lock:
            self._closed = True
            self._events = None
            self._status = []
            self._credentials = {}

    def _row(self, event: EventData) -> Tuple[EventData, int, int]:
        # Epochs computed on write, as the SQLite variant stores them
        return event, self.codec.encode(event.start), self.codec.encode(event.end)

    def _ordered(self) -> List[Tuple[EventData, int, int]]:
        return sorted(self._events.values(), key=lambda row: row[0].id)

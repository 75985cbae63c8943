"""
Event data model.

EventData is the stored calendar event. Its external identity is the
client-supplied uuid; the numeric id is assigned by the store on first insert
and never changes afterwards.

Content hash contract:
  SHA256(canonicalJson({version, uuid, title, start, end, address, info,
                        reminder, done, important, urgent}))
  The numeric id and the source tag are bookkeeping and excluded, so the same
  event re-submitted through another channel is a no-op.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict

from .canonical_json import canonicalDigest

DATETIME_TYPE = "DateTime"
EVENT_DATA_TYPE = "EventData"


class Source(str, Enum):
    """Origin channel of an event"""
    APP = "APP"
    WEB = "WEB"
    XML = "XML"


@dataclass(frozen=True)
class DateTime:
    """Wall-clock moment, interpreted in the codec's time zone"""
    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0

    def toDict(self) -> Dict[str, Any]:
        return {
            "__type__": DATETIME_TYPE,
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "hour": self.hour,
            "minute": self.minute
        }

    def fields(self) -> Dict[str, int]:
        """Calendar fields only, without the wire discriminator"""
        return {
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "hour": self.hour,
            "minute": self.minute
        }

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d} {self.hour:02d}:{self.minute:02d}"


@dataclass
class EventData:
    """
    Calendar event.

    id is 0 until the repository assigns one.
    """
    uuid: str
    title: str
    start: DateTime
    end: DateTime
    version: str = ""
    address: str = ""
    info: str = ""
    reminder: int = 0
    done: bool = False
    important: bool = False
    urgent: bool = False
    source: str = Source.APP.value
    id: int = 0

    def hashFields(self) -> Dict[str, Any]:
        """Fields covered by the content hash"""
        return {
            "version": self.version,
            "uuid": self.uuid,
            "title": self.title,
            "start": self.start.fields(),
            "end": self.end.fields(),
            "address": self.address,
            "info": self.info,
            "reminder": self.reminder,
            "done": self.done,
            "important": self.important,
            "urgent": self.urgent
        }

    def contentHash(self) -> str:
        """Hex SHA256 of the canonical content (64 characters)"""
        return canonicalDigest(self.hashFields())

    def toDict(self) -> Dict[str, Any]:
        """Wire representation"""
        return {
            "__type__": EVENT_DATA_TYPE,
            "id": self.id,
            "version": self.version,
            "uuid": self.uuid,
            "title": self.title,
            "start": self.start.toDict(),
            "end": self.end.toDict(),
            "address": self.address,
            "info": self.info,
            "reminder": self.reminder,
            "done": self.done,
            "important": self.important,
            "urgent": self.urgent,
            "source": self.source
        }

    def withId(self, eventId: int) -> 'EventData':
        """Copy of this event carrying the store-assigned id"""
        return replace(self, id=eventId)


@dataclass
class StatusRecord:
    """
    Latest row of the append-only status trail.

    success=False carries a failure payload (empty or unreadable trail).
    """
    timestamp: int = 0
    version: str = ""
    success: bool = True
    message: str = field(default="")

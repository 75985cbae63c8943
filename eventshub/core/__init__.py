"""
eventshub core: data model, Temporal Codec and Event Repository variants.
"""

from .events import DateTime, EventData, Source, StatusRecord
from .temporal import TemporalCodec, TimeZoneUnavailable, DEFAULT_TIMEZONE
from .repository import EventRepository, StorageError, SCHEMA_VERSION, hashPassword, checkPassword
from .database import SQLiteRepository
from .memoryRepository import MemoryRepository

__all__ = [
    'DateTime', 'EventData', 'Source', 'StatusRecord',
    'TemporalCodec', 'TimeZoneUnavailable', 'DEFAULT_TIMEZONE',
    'EventRepository', 'StorageError', 'SCHEMA_VERSION', 'hashPassword', 'checkPassword',
    'SQLiteRepository', 'MemoryRepository',
]

"""
Wire contracts.

Every payload carries a `__type__` discriminator. This module owns the
discriminator values, request parsing (raising ValidationError on malformed
input) and the response envelope builders used by the gateway.
"""

from typing import Any, Dict, List, Optional

from .events import DateTime, EventData, Source, StatusRecord

SERVER_VERSION = "v1.1.0"

RESPONSE_STATUS_TYPE = "ResponseStatus"
ADD_EVENT_RESP_TYPE = "AddEventResp"
GET_EVENT_CHECKSUM_RESP_TYPE = "GetEventCheckSumResp"
GET_EVENTS_RESP_TYPE = "GetEventsResp"
GET_STATUS_RESP_TYPE = "GetStatusResp"
KILL_RESP_TYPE = "KillResp"
VERSION_RESP_TYPE = "VersionResp"
TOKEN_MSG_TYPE = "TokenMsg"


class ValidationError(Exception):
    """Malformed request body or field"""
    pass


# =========================================================================
# Request parsing
# =========================================================================

def requireObject(data: Any, what: str = "body") -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError(f"Expected JSON object for {what}")
    return data


def _int(data: Dict[str, Any], key: str, where: str, default: Optional[int] = None) -> int:
    value = data.get(key, default)
    # bool is an int subclass, reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"'{where}.{key}' must be an integer")
    return value


def _str(data: Dict[str, Any], key: str, where: str, default: Optional[str] = "") -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise ValidationError(f"'{where}.{key}' must be a string")
    return value


def _bool(data: Dict[str, Any], key: str, where: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise ValidationError(f"'{where}.{key}' must be a boolean")
    return value


def parseDateTime(data: Any, where: str) -> DateTime:
    """Parse a {year, month, day, hour, minute} moment; the discriminator is optional"""
    data = requireObject(data, where)
    return DateTime(
        year=_int(data, 'year', where, None),
        month=_int(data, 'month', where, None),
        day=_int(data, 'day', where, None),
        hour=_int(data, 'hour', where, 0),
        minute=_int(data, 'minute', where, 0)
    )


def parseSource(value: Any) -> str:
    if value is None or value == "":
        return Source.APP.value
    if not isinstance(value, str):
        raise ValidationError("'event.source' must be a string")
    try:
        return Source(value.upper()).value
    except ValueError:
        allowed = ', '.join(s.value for s in Source)
        raise ValidationError(f"'event.source' must be one of: {allowed}")


def parseEvent(data: Any) -> EventData:
    """
    Parse an EventData payload.

    The wire id is ignored; the store owns numeric identity.
    """
    data = requireObject(data, 'event')

    uuid = _str(data, 'uuid', 'event', None)
    if not uuid.strip():
        raise ValidationError("'event.uuid' must not be empty")

    return EventData(
        uuid=uuid,
        title=_str(data, 'title', 'event'),
        start=parseDateTime(data.get('start'), 'event.start'),
        end=parseDateTime(data.get('end'), 'event.end'),
        version=_str(data, 'version', 'event'),
        address=_str(data, 'address', 'event'),
        info=_str(data, 'info', 'event'),
        reminder=_int(data, 'reminder', 'event', 0),
        done=_bool(data, 'done', 'event'),
        important=_bool(data, 'important', 'event'),
        urgent=_bool(data, 'urgent', 'event'),
        source=parseSource(data.get('source'))
    )


def parseCredentials(data: Any) -> tuple:
    data = requireObject(data)
    username = data.get('username')
    password = data.get('password')
    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        raise ValidationError("Username and password required")
    return username, password


def parseUuid(data: Any) -> str:
    data = requireObject(data)
    uuid = data.get('uuid')
    if not isinstance(uuid, str) or not uuid.strip():
        raise ValidationError("'uuid' must be a non-empty string")
    return uuid


def parseTimeRange(data: Any) -> tuple:
    data = requireObject(data)
    if 'start' not in data or 'end' not in data:
        raise ValidationError("'start' and 'end' are required")
    return parseDateTime(data['start'], 'start'), parseDateTime(data['end'], 'end')


def parseKillPayload(data: Any) -> str:
    data = requireObject(data)
    payload = data.get('payload')
    if not isinstance(payload, str):
        raise ValidationError("'payload' must be a string")
    return payload


# =========================================================================
# Response envelopes
# =========================================================================

def responseStatus(success: bool, message: str = "") -> Dict[str, Any]:
    return {"__type__": RESPONSE_STATUS_TYPE, "success": success, "message": message}


def addEventResp(success: bool, message: str = "") -> Dict[str, Any]:
    return {"__type__": ADD_EVENT_RESP_TYPE, "status": responseStatus(success, message)}


def checkSumResp(digest: str, success: bool = True, message: str = "") -> Dict[str, Any]:
    return {
        "__type__": GET_EVENT_CHECKSUM_RESP_TYPE,
        "sum": digest,
        "status": responseStatus(success, message)
    }


def eventsResp(events: List[EventData], success: bool = True, message: str = "") -> Dict[str, Any]:
    return {
        "__type__": GET_EVENTS_RESP_TYPE,
        "events": [e.toDict() for e in events],
        "status": responseStatus(success, message)
    }


def statusResp(record: StatusRecord) -> Dict[str, Any]:
    return {
        "__type__": GET_STATUS_RESP_TYPE,
        "timestamp": record.timestamp,
        "version": record.version,
        "status": responseStatus(record.success, record.message)
    }


def killResp(success: bool, message: str = "") -> Dict[str, Any]:
    return {"__type__": KILL_RESP_TYPE, "status": responseStatus(success, message)}


def versionResp(version: str = SERVER_VERSION) -> Dict[str, Any]:
    return {"__type__": VERSION_RESP_TYPE, "version": version, "status": responseStatus(True)}


def tokenMsg(token: str) -> Dict[str, Any]:
    return {"__type__": TOKEN_MSG_TYPE, "token": token}

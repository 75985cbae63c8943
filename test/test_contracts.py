"""
Wire Contract Tests

Tests for:
- EventData parsing: defaults, type checks, source normalization
- Content hash: 64 hex chars, independent of id/source/key order
- Response envelopes carry their `__type__` discriminators

Run: python -m pytest test/test_contracts.py -v
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from eventshub.core.canonical_json import canonicalJson, canonicalDigest
from eventshub.core.contracts import (
    ValidationError, parseEvent, parseDateTime, parseCredentials, parseUuid, parseTimeRange, parseKillPayload,
    addEventResp, checkSumResp, eventsResp, statusResp, killResp, versionResp, tokenMsg, SERVER_VERSION
)
from eventshub.core.events import DateTime, EventData, StatusRecord


def wireEvent(**overrides):
    data = {
        "__type__": "EventData",
        "uuid": "abc",
        "title": "Standup",
        "start": {"__type__": "DateTime", "year": 2024, "month": 2, "day": 13, "hour": 9, "minute": 0},
        "end": {"year": 2024, "month": 2, "day": 13, "hour": 9, "minute": 30},
        "important": True
    }
    data.update(overrides)
    return data


class TestParseEvent:

    def test_minimal_event(self):
        event = parseEvent(wireEvent())
        assert event.uuid == "abc"
        assert event.start == DateTime(2024, 2, 13, 9, 0)
        assert event.end == DateTime(2024, 2, 13, 9, 30)
        assert event.important is True
        assert event.done is False
        assert event.source == "APP"
        assert event.id == 0

    def test_wire_id_ignored(self):
        assert parseEvent(wireEvent(id=42)).id == 0

    @pytest.mark.parametrize("source,expected", [("web", "WEB"), ("XML", "XML"), ("", "APP"), (None, "APP")])
    def test_source_normalized(self, source, expected):
        assert parseEvent(wireEvent(source=source)).source == expected

    @pytest.mark.parametrize("overrides", [
        {"uuid": ""},
        {"uuid": "   "},
        {"uuid": 5},
        {"title": 7},
        {"reminder": "soon"},
        {"reminder": True},
        {"done": "Yes"},
        {"source": "FAX"},
        {"start": {"year": 2024, "month": 2}},
        {"start": "2024-02-13 09:00"},
    ])
    def test_invalid_fields(self, overrides):
        with pytest.raises(ValidationError):
            parseEvent(wireEvent(**overrides))

    def test_missing_uuid(self):
        data = wireEvent()
        del data["uuid"]
        with pytest.raises(ValidationError):
            parseEvent(data)

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            parseEvent(["abc"])

    def test_hour_minute_default_to_zero(self):
        assert parseDateTime({"year": 2024, "month": 1, "day": 2}, "start") == DateTime(2024, 1, 2, 0, 0)


class TestRequestBodies:

    def test_credentials(self):
        assert parseCredentials({"username": "admin", "password": "pw"}) == ("admin", "pw")

    @pytest.mark.parametrize("body", [{}, {"username": "admin"}, {"username": "", "password": "pw"}, []])
    def test_bad_credentials(self, body):
        with pytest.raises(ValidationError):
            parseCredentials(body)

    def test_uuid(self):
        assert parseUuid({"uuid": "abc"}) == "abc"
        with pytest.raises(ValidationError):
            parseUuid({"uuid": ""})

    def test_time_range(self):
        start, end = parseTimeRange({
            "start": {"year": 2024, "month": 2, "day": 13},
            "end": {"year": 2024, "month": 2, "day": 13, "hour": 23, "minute": 59}
        })
        assert start == DateTime(2024, 2, 13)
        assert end == DateTime(2024, 2, 13, 23, 59)

    def test_time_range_requires_both(self):
        with pytest.raises(ValidationError):
            parseTimeRange({"start": {"year": 2024, "month": 2, "day": 13}})

    def test_kill_payload(self):
        assert parseKillPayload({"payload": "secret"}) == "secret"
        with pytest.raises(ValidationError):
            parseKillPayload({"payload": 1})


class TestContentHash:

    def test_hex_sha256(self):
        digest = parseEvent(wireEvent()).contentHash()
        assert len(digest) == 64
        int(digest, 16)

    def test_stable(self):
        assert parseEvent(wireEvent()).contentHash() == parseEvent(wireEvent()).contentHash()

    def test_bookkeeping_excluded(self):
        base = parseEvent(wireEvent())
        other = parseEvent(wireEvent(source="XML")).withId(99)
        assert base.contentHash() == other.contentHash()

    def test_content_included(self):
        assert parseEvent(wireEvent()).contentHash() != parseEvent(wireEvent(info="x")).contentHash()

    def test_canonical_key_order(self):
        assert canonicalJson({"b": 1, "a": [2, {"d": 3, "c": 4}]}) == '{"a":[2,{"c":4,"d":3}],"b":1}'
        assert canonicalDigest({"b": 1, "a": 2}) == canonicalDigest({"a": 2, "b": 1})


class TestEnvelopes:

    def test_types(self):
        event = EventData(uuid="abc", title="t", start=DateTime(2024, 1, 1), end=DateTime(2024, 1, 1))
        assert addEventResp(True)["__type__"] == "AddEventResp"
        assert checkSumResp("00")["__type__"] == "GetEventCheckSumResp"
        assert statusResp(StatusRecord(1, "1.1.0"))["__type__"] == "GetStatusResp"
        assert killResp(False)["__type__"] == "KillResp"
        assert tokenMsg("t") == {"__type__": "TokenMsg", "token": "t"}

        resp = eventsResp([event])
        assert resp["__type__"] == "GetEventsResp"
        assert resp["events"][0]["__type__"] == "EventData"
        assert resp["events"][0]["start"]["__type__"] == "DateTime"
        assert resp["status"] == {"__type__": "ResponseStatus", "success": True, "message": ""}

    def test_version(self):
        assert versionResp()["version"] == SERVER_VERSION == "v1.1.0"

    def test_status_failure_payload(self):
        resp = statusResp(StatusRecord(success=False, message="No status recorded"))
        assert resp["status"]["success"] is False
        assert resp["status"]["message"] == "No status recorded"

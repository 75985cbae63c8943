"""
Event Repository Tests

Runs every test against both storage variants (SQLite file, in-memory).

Tests for:
- Idempotent upsert: same content twice → one row, same id, no status append
- Convergent update: changed content overwrites the single row in place
- Range query overlap semantics, boundaries inclusive
- getByUuid absent → None
- Status trail: append per mutation, failure payload when empty/unreadable
- Credentials: bcrypt, pre-hashed seeding, non-enumeration
- Concurrent upserts of one uuid never duplicate the row

Run: python -m pytest test/test_repository.py -v
"""

import shutil
import sys
import tempfile
import threading
from dataclasses import replace
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from eventshub.core.database import SQLiteRepository
from eventshub.core.events import DateTime, EventData, Source
from eventshub.core.memoryRepository import MemoryRepository
from eventshub.core.repository import SCHEMA_VERSION, StorageError, hashPassword
from eventshub.core.temporal import TemporalCodec

FAST_ROUNDS = 4


class FakeClock:
    """Deterministic clock; advance() moves it forward"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def tempDir():
    """Create and cleanup temp directory"""
    dirPath = Path(tempfile.mkdtemp())
    yield dirPath
    shutil.rmtree(dirPath, ignore_errors=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=['sqlite', 'memory'])
def repository(request, tempDir, clock):
    """Migrated repository of each variant"""
    if request.param == 'sqlite':
        repo = SQLiteRepository(str(tempDir / 'events.db'), bcryptRounds=FAST_ROUNDS, clock=clock)
    else:
        repo = MemoryRepository(bcryptRounds=FAST_ROUNDS, clock=clock)
    repo.migrate()
    yield repo
    repo.close()


def makeEvent(uuid: str = "abc", **overrides) -> EventData:
    fields = dict(
        uuid=uuid,
        title="Standup",
        start=DateTime(2024, 2, 13, 9, 0),
        end=DateTime(2024, 2, 13, 9, 30),
        important=True
    )
    fields.update(overrides)
    return EventData(**fields)


class TestUpsert:

    def test_insert_assigns_id(self, repository):
        stored = repository.insertOrUpdate(makeEvent())
        assert stored.id > 0
        assert stored.uuid == "abc"
        assert repository.getByUuid("abc") == stored

    def test_distinct_uuids_get_distinct_ids(self, repository):
        first = repository.insertOrUpdate(makeEvent("a"))
        second = repository.insertOrUpdate(makeEvent("b"))
        assert first.id != second.id

    def test_wire_id_is_ignored(self, repository):
        stored = repository.insertOrUpdate(makeEvent(id=999))
        assert repository.getByUuid("abc").id == stored.id

    def test_idempotent_resubmission(self, repository, clock):
        first = repository.insertOrUpdate(makeEvent())
        statusAfterFirst = repository.getStatus()

        clock.advance(60)
        second = repository.insertOrUpdate(makeEvent())

        assert second == first
        assert len(repository.allEvents()) == 1
        # No write, so no status row either
        assert repository.getStatus().timestamp == statusAfterFirst.timestamp

    def test_source_change_alone_is_a_no_op(self, repository):
        first = repository.insertOrUpdate(makeEvent(source=Source.APP.value))
        second = repository.insertOrUpdate(makeEvent(source=Source.XML.value))
        assert second.source == Source.APP.value
        assert second.id == first.id

    def test_convergent_update(self, repository, clock):
        first = repository.insertOrUpdate(makeEvent())
        clock.advance(60)

        updated = repository.insertOrUpdate(makeEvent(title="Retro", done=True))

        assert updated.id == first.id
        assert updated.title == "Retro"
        events = repository.allEvents()
        assert len(events) == 1
        assert events[0].title == "Retro"
        assert events[0].done is True
        assert repository.getStatus().timestamp == int(clock.now)

    def test_update_overwrites_every_field(self, repository):
        repository.insertOrUpdate(makeEvent())
        changed = makeEvent(
            version="2", title="Moved", start=DateTime(2024, 3, 1, 10, 0), end=DateTime(2024, 3, 1, 11, 0),
            address="Room 4", info="bring notes", reminder=15, done=True, important=False, urgent=True,
            source=Source.WEB.value
        )
        stored = repository.insertOrUpdate(changed)
        fetched = repository.getByUuid("abc")

        assert fetched == stored
        assert fetched.hashFields() == changed.hashFields()
        assert fetched.source == Source.WEB.value

    def test_interleaved_submissions_converge(self, repository):
        v1 = makeEvent(title="one")
        v2 = makeEvent(title="two")
        for event in (v1, v1, v2, v2, v1, v2):
            repository.insertOrUpdate(event)

        events = repository.allEvents()
        assert len(events) == 1
        assert events[0].title == "two"

    def test_round_trips_temporal_fields(self, repository):
        event = makeEvent(start=DateTime(2024, 10, 27, 2, 30), end=DateTime(2024, 10, 27, 3, 15))
        repository.insertOrUpdate(event)
        fetched = repository.getByUuid("abc")
        assert fetched.start == event.start
        assert fetched.end == event.end

    def test_concurrent_upserts_single_row(self, repository):
        errors = []

        def worker(title):
            try:
                for _ in range(10):
                    repository.insertOrUpdate(makeEvent(title=title))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(f"title-{i}",)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(repository.allEvents()) == 1


class TestDelete:

    def test_delete_existing(self, repository):
        repository.insertOrUpdate(makeEvent())
        assert repository.delete(makeEvent()) is True
        assert repository.getByUuid("abc") is None

    def test_delete_missing(self, repository, clock):
        before = repository.getStatus()
        clock.advance(10)
        assert repository.delete(makeEvent("nope")) is False
        assert repository.getStatus().timestamp == before.timestamp

    def test_reinsert_after_delete_gets_new_id(self, repository):
        first = repository.insertOrUpdate(makeEvent())
        repository.delete(first)
        second = repository.insertOrUpdate(makeEvent())
        assert second.id != first.id


class TestRangeQuery:

    @pytest.fixture
    def stored(self, repository):
        # [T1, T2] = [09:00, 09:30]
        repository.insertOrUpdate(makeEvent())
        return repository

    def epoch(self, hour, minute):
        return TemporalCodec().encode(DateTime(2024, 2, 13, hour, minute))

    def uuids(self, repository, a, b):
        return [e.uuid for e in repository.rangeQuery(a, b)]

    def test_containing_window(self, stored):
        assert self.uuids(stored, self.epoch(0, 0), self.epoch(23, 59)) == ["abc"]

    def test_window_inside_event(self, stored):
        assert self.uuids(stored, self.epoch(9, 10), self.epoch(9, 20)) == ["abc"]

    def test_window_touching_end(self, stored):
        # a == T2
        assert self.uuids(stored, self.epoch(9, 30), self.epoch(10, 0)) == ["abc"]

    def test_window_touching_start(self, stored):
        # b == T1
        assert self.uuids(stored, self.epoch(8, 0), self.epoch(9, 0)) == ["abc"]

    def test_window_before(self, stored):
        assert self.uuids(stored, self.epoch(8, 0), self.epoch(8, 59)) == []

    def test_window_after(self, stored):
        assert self.uuids(stored, self.epoch(9, 31), self.epoch(12, 0)) == []

    def test_storage_order(self, repository):
        for uuid in ("c", "a", "b"):
            repository.insertOrUpdate(makeEvent(uuid))
        assert self.uuids(repository, self.epoch(0, 0), self.epoch(23, 59)) == ["c", "a", "b"]


class TestStatus:

    def test_migrate_appends_status(self, repository, clock):
        status = repository.getStatus()
        assert status.success is True
        assert status.version == SCHEMA_VERSION
        assert status.timestamp == int(clock.now)

    def test_migrate_is_idempotent(self, repository):
        repository.insertOrUpdate(makeEvent())
        repository.migrate()
        repository.migrate()
        assert len(repository.allEvents()) == 1

    def test_latest_row_wins(self, repository, clock):
        clock.advance(100)
        repository.insertOrUpdate(makeEvent())
        assert repository.getStatus().timestamp == int(clock.now)

    def test_unmigrated_store_yields_failure_payload(self, tempDir):
        for repo in (SQLiteRepository(str(tempDir / 'fresh.db')), MemoryRepository()):
            status = repo.getStatus()
            assert status.success is False
            assert status.message
            repo.close()

    def test_closed_store_yields_failure_payload(self, repository):
        repository.close()
        assert repository.getStatus().success is False

    def test_closed_store_raises_on_write(self, repository):
        repository.close()
        with pytest.raises(StorageError):
            repository.insertOrUpdate(makeEvent())


class TestCredentials:

    def test_authenticate_hashed_credential(self, repository):
        repository.addCredential("admin", "hunter2")
        assert repository.authenticate("admin", "hunter2") is True

    def test_pre_hashed_seed(self, repository):
        repository.addCredential("admin", hashPassword("hunter2", FAST_ROUNDS), alreadyHashed=True)
        assert repository.authenticate("admin", "hunter2") is True

    def test_unknown_user_and_wrong_password_look_the_same(self, repository):
        repository.addCredential("admin", "hunter2")
        unknown = repository.authenticate("unknown-user", "hunter2")
        wrong = repository.authenticate("admin", "wrong")
        assert unknown is False
        assert wrong is False

    def test_reseeding_replaces_hash(self, repository):
        repository.addCredential("admin", "old-password")
        repository.addCredential("admin", "new-password")
        assert repository.authenticate("admin", "new-password") is True
        assert repository.authenticate("admin", "old-password") is False

    def test_malformed_stored_hash_never_matches(self, repository):
        repository.addCredential("admin", "not-a-bcrypt-hash", alreadyHashed=True)
        assert repository.authenticate("admin", "not-a-bcrypt-hash") is False

    def test_password_is_not_stored_in_plaintext(self, repository):
        repository.addCredential("admin", "hunter2")
        with repository._lock:
            storedHash = repository._credentialHash("admin")
        assert storedHash != "hunter2"
        assert storedHash.startswith("$2")


class TestSQLitePersistence:

    def test_events_survive_reopen(self, tempDir):
        dbPath = str(tempDir / 'persist.db')
        repo = SQLiteRepository(dbPath, bcryptRounds=FAST_ROUNDS)
        repo.migrate()
        stored = repo.insertOrUpdate(makeEvent())
        repo.addCredential("admin", "hunter2")
        repo.close()

        reopened = SQLiteRepository(dbPath, bcryptRounds=FAST_ROUNDS)
        reopened.migrate()
        try:
            assert reopened.getByUuid("abc") == stored
            assert reopened.authenticate("admin", "hunter2") is True
        finally:
            reopened.close()

    def test_default_is_in_memory(self):
        repo = SQLiteRepository(bcryptRounds=FAST_ROUNDS)
        repo.migrate()
        repo.insertOrUpdate(makeEvent())
        assert len(repo.allEvents()) == 1
        repo.close()

    def test_unopenable_path_raises_storage_error(self, tempDir):
        blocker = tempDir / 'file'
        blocker.write_text('x')
        with pytest.raises(StorageError):
            SQLiteRepository(str(blocker / 'sub' / 'events.db'))

    def test_returned_event_is_a_copy(self, repository):
        repository.insertOrUpdate(makeEvent())
        fetched = repository.getByUuid("abc")
        mutated = replace(fetched, title="changed")
        assert repository.getByUuid("abc").title == "Standup"
        assert mutated.title == "changed"

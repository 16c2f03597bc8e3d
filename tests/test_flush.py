import pytest

from analytics_core.errors import PersistenceError
from analytics_core.flush import FlushCoordinator
from analytics_core.models import (
    CustomerIdentifiers,
    EventType,
    FlushingMode,
    Properties,
    ProjectToken,
)

from conftest import FakeRepository

pytestmark = pytest.mark.unit


def add_event(database, name):
    return database.insert_event([ProjectToken("tok"), EventType(name), Properties({})])


class Completion:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


@pytest.fixture
def coordinator(database, repository, scheduler):
    return FlushCoordinator(database, repository, scheduler, FlushingMode.manual())


def test_flush_of_empty_store_completes_once_without_network(coordinator, repository):
    done = Completion()
    coordinator.flush(done)
    assert done.calls == 1
    assert repository.calls == []


def test_every_record_uploaded_once_and_removed(coordinator, database, repository):
    for name in ("a", "b", "c"):
        add_event(database, name)
    database.insert_customer_update([ProjectToken("tok"), CustomerIdentifiers({"registered": "u1"})])

    done = Completion()
    coordinator.flush(done)

    assert repository.event_types == ["a", "b", "c"]
    assert [kind for kind, _, _ in repository.calls].count("customer") == 1
    assert database.list_events() == []
    assert database.list_customer_updates() == []
    assert done.calls == 1

    coordinator.flush()
    assert len(repository.calls) == 4


def test_uploads_carry_current_customer_identifiers(coordinator, database, repository):
    database.insert_customer_update([ProjectToken("tok"), CustomerIdentifiers({"registered": "u1"})])
    add_event(database, "view")
    coordinator.flush()
    for _, _, ids in repository.calls:
        assert ids["registered"] == "u1"
        assert ids["cookie"] == database.customer.uuid


def test_partial_failure_is_isolated_and_retried(coordinator, database, repository):
    for name in ("first", "second", "third"):
        add_event(database, name)
    repository.failing.add("second")

    coordinator.flush()
    assert [e.event_type for e in database.list_events()] == ["second"]

    repository.failing.clear()
    coordinator.flush()
    assert database.list_events() == []
    assert repository.event_types == ["first", "second", "third", "second"]


def test_completion_waits_for_every_callback(database, scheduler):
    repository = FakeRepository(auto_complete=False)
    coordinator = FlushCoordinator(database, repository, scheduler, FlushingMode.manual())
    add_event(database, "a")
    add_event(database, "b")
    database.insert_customer_update([ProjectToken("tok")])

    done = Completion()
    coordinator.flush(done)
    assert done.calls == 0
    assert len(repository.waiting) == 3

    # Out of order completion
    repository.waiting.reverse()
    repository.complete_all()
    assert done.calls == 1
    assert database.list_events() == []


def test_records_in_flight_are_not_uploaded_twice(database, scheduler):
    repository = FakeRepository(auto_complete=False)
    coordinator = FlushCoordinator(database, repository, scheduler, FlushingMode.manual())
    add_event(database, "a")

    coordinator.flush()
    second = Completion()
    coordinator.flush(second)
    assert len(repository.calls) == 1
    assert second.calls == 1

    repository.complete_all()
    assert database.list_events() == []


def test_record_deleted_elsewhere_is_not_fatal(database, scheduler):
    repository = FakeRepository(auto_complete=False)
    coordinator = FlushCoordinator(database, repository, scheduler, FlushingMode.manual())
    record = add_event(database, "a")
    done = Completion()
    coordinator.flush(done)
    database.delete(record)
    repository.complete_all()
    assert done.calls == 1


def test_dispatch_exception_counts_as_failure(database, scheduler):
    class ExplodingRepository(FakeRepository):
        def upload_event(self, fragments, customer_ids, callback):
            raise RuntimeError("transport exploded")

    coordinator = FlushCoordinator(database, ExplodingRepository(), scheduler, FlushingMode.manual())
    add_event(database, "a")
    done = Completion()
    coordinator.flush(done)
    assert done.calls == 1
    assert len(database.list_events()) == 1


def test_unreadable_store_still_completes(repository, scheduler):
    class BrokenDatabase:
        def list_customer_updates(self):
            raise PersistenceError("corrupt")

    coordinator = FlushCoordinator(BrokenDatabase(), repository, scheduler, FlushingMode.manual())
    done = Completion()
    coordinator.flush(done)
    assert done.calls == 1
    assert repository.calls == []


def test_switch_to_immediate_drains_pending_event(coordinator, database, repository):
    add_event(database, "pending")
    coordinator.flushing_mode = FlushingMode.immediate()
    assert repository.event_types == ["pending"]
    assert database.list_events() == []


def test_immediate_mode_flushes_on_track(coordinator, database, repository):
    coordinator.on_track()
    assert repository.calls == []
    coordinator.flushing_mode = FlushingMode.immediate()
    add_event(database, "a")
    coordinator.on_track()
    assert repository.event_types == ["a"]


def test_periodic_timer_runs_while_foregrounded(coordinator, database, repository, scheduler):
    coordinator.flushing_mode = FlushingMode.periodic(60)
    add_event(database, "a")
    scheduler.advance(59)
    assert repository.calls == []
    scheduler.advance(1)
    assert repository.event_types == ["a"]

    add_event(database, "b")
    coordinator.on_background()
    scheduler.advance(600)
    assert repository.event_types == ["a"]

    coordinator.on_foreground()
    scheduler.advance(60)
    assert repository.event_types == ["a", "b"]


def test_switching_mode_replaces_timer(coordinator, scheduler):
    coordinator.flushing_mode = FlushingMode.periodic(30)
    coordinator.flushing_mode = FlushingMode.periodic(10)
    assert len(scheduler.pending) == 1
    coordinator.flushing_mode = FlushingMode.manual()
    assert scheduler.pending == []


def test_background_flushes_only_in_automatic_mode(coordinator, database, repository):
    add_event(database, "a")
    done = Completion()
    coordinator.on_background(done)
    assert repository.calls == []
    assert done.calls == 1

    coordinator.flushing_mode = FlushingMode.automatic()
    coordinator.on_background(done)
    assert repository.event_types == ["a"]
    assert done.calls == 2


def test_flush_if_needed_respects_manual(coordinator, database, repository):
    add_event(database, "a")
    done = Completion()
    coordinator.flush_if_needed(done)
    assert repository.calls == [] and done.calls == 1

    coordinator.flushing_mode = FlushingMode.periodic(300)
    coordinator.flush_if_needed(done)
    assert repository.event_types == ["a"] and done.calls == 2

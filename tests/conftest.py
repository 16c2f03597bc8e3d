import pytest

from analytics_core.config import Configuration
from analytics_core.database import DatabaseManager
from analytics_core.errors import UploadError
from analytics_core.models import RecordDraft, reduce_fragments
from analytics_core.scheduler import Scheduler, WorkItem
from analytics_core.storage import FileRecordEngine, KeyValueStore
from analytics_core.tracking import TrackingManager


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class ManualScheduler(Scheduler):
    """Runs scheduled work only when the test advances the clock."""

    def __init__(self, clock):
        self.clock = clock
        self._items = []

    def schedule_once(self, delay, fn, name=""):
        item = WorkItem(fn, name)
        self._items.append((self.clock.now + delay, item))
        return item

    def advance(self, seconds):
        target = self.clock.now + seconds
        while True:
            due = [(t, item) for t, item in self._items if item.pending and t <= target]
            if not due:
                break
            when, item = min(due, key=lambda pair: pair[0])
            self._items.remove((when, item))
            self.clock.now = max(self.clock.now, when)
            item.perform()
        self.clock.now = target

    @property
    def pending(self):
        return [item for _, item in self._items if item.pending]


class FakeRepository:
    """Records uploads. Event types (or "customer") listed in ``failing`` fail."""

    def __init__(self, auto_complete=True):
        self.auto_complete = auto_complete
        self.failing = set()
        self.calls = []
        self.waiting = []

    def _handle(self, kind, fragments, customer_ids, callback):
        draft = reduce_fragments(RecordDraft(), fragments)
        self.calls.append((kind, draft, dict(customer_ids)))
        key = draft.event_type if kind == "event" else "customer"
        error = UploadError(f"{key} rejected") if key in self.failing else None
        if self.auto_complete:
            callback(error)
        else:
            self.waiting.append((callback, error))

    def upload_event(self, fragments, customer_ids, callback):
        self._handle("event", fragments, customer_ids, callback)

    def upload_customer_update(self, fragments, customer_ids, callback):
        self._handle("customer", fragments, customer_ids, callback)

    def complete_all(self):
        waiting, self.waiting = self.waiting, []
        for callback, error in waiting:
            callback(error)

    @property
    def event_types(self):
        return [draft.event_type for kind, draft, _ in self.calls if kind == "event"]


class FakeBackgroundHost:
    def __init__(self):
        self.begun = 0
        self.ended = []
        self.handler = None

    def begin(self, expiration_handler):
        self.begun += 1
        self.handler = expiration_handler
        return self.begun

    def end(self, token):
        self.ended.append(token)

    @property
    def active(self):
        return self.begun > len(self.ended)


class StaticDevice:
    def properties(self):
        return {"os_name": "TestOS", "sdk_version": "1.0.0"}


@pytest.fixture
def clock():
    return FakeClock(1000.0)


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def engine(tmp_path):
    return FileRecordEngine(tmp_path / "records")


@pytest.fixture
def database(engine, clock):
    return DatabaseManager(engine, clock=clock)


@pytest.fixture
def store(tmp_path):
    return KeyValueStore(tmp_path / "state.json")


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def background_host():
    return FakeBackgroundHost()


@pytest.fixture
def config():
    return Configuration(project_token="token-1", session_timeout=10.0)


@pytest.fixture
def make_manager(config, database, repository, store, scheduler, clock, background_host):
    def build(**overrides):
        kwargs = dict(
            config=config,
            database=database,
            repository=repository,
            store=store,
            scheduler=scheduler,
            device=StaticDevice(),
            background_host=background_host,
            clock=clock,
        )
        kwargs.update(overrides)
        return TrackingManager(**kwargs)

    return build

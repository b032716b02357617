import copy
import itertools
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from firebase_admin import exceptions, firestore

from cityflux.services.congestion_aggregator import ProximityAggregator
from cityflux.services.congestion_store import CongestionStore
from cityflux.services.event_handlers import EventHandlers
from cityflux.services.notification_dispatcher import NotificationDispatcher
from cityflux.services.parking_sync import ParkingSyncService
from cityflux.services.report_validator import ReportValidator

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)


# --- Firestore -------------------------------------------------------------

class FakeSnapshot:
    def __init__(self, ref, data):
        self.reference = ref
        self.id = ref.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, db, collection, doc_id):
        self._db = db
        self.collection = collection
        self.id = doc_id

    @property
    def path(self):
        return f"{self.collection}/{self.id}"

    def get(self):
        return FakeSnapshot(self, self._db.data.get(self.collection, {}).get(self.id))

    def set(self, data):
        self._db.data.setdefault(self.collection, {})[self.id] = copy.deepcopy(data)

    def update(self, data):
        doc = self._db.data.get(self.collection, {}).get(self.id)
        if doc is None:
            raise KeyError(f"No document to update: {self.path}")
        for key, value in data.items():
            if value is firestore.DELETE_FIELD:
                doc.pop(key, None)
            else:
                doc[key] = copy.deepcopy(value)
        self._db.updates.append((self.path, copy.deepcopy(data)))


class FakeQuery:
    OPS = {
        "==": lambda a, b: a == b,
        ">=": lambda a, b: a >= b,
        "<=": lambda a, b: a <= b,
        ">": lambda a, b: a > b,
        "<": lambda a, b: a < b,
        "in": lambda a, b: a in b,
    }

    def __init__(self, db, collection, filters=()):
        self._db = db
        self._collection = collection
        self._filters = list(filters)

    def where(self, field, op, value):
        return FakeQuery(self._db, self._collection, self._filters + [(field, op, value)])

    def _matches(self, data):
        for field, op, value in self._filters:
            if field not in data:
                return False
            try:
                if not self.OPS[op](data[field], value):
                    return False
            except TypeError:
                # Firestore never matches across value types
                return False
        return True

    def stream(self):
        self._db.queries.append((self._collection, list(self._filters)))
        for doc_id, data in list(self._db.data.get(self._collection, {}).items()):
            if self._matches(data):
                yield FakeDocumentRef(self._db, self._collection, doc_id).get()


class FakeCollection(FakeQuery):
    def __init__(self, db, name):
        super().__init__(db, name)
        self.name = name

    def document(self, doc_id=None):
        if doc_id is not None and "/" in doc_id:
            raise ValueError("A document must have an even number of path elements")
        return FakeDocumentRef(self._db, self.name, doc_id or f"auto-{next(self._db.ids)}")


class FakeBatch:
    def __init__(self, db):
        self._db = db
        self._ops = []

    def update(self, ref, data):
        self._ops.append((ref, data))

    def commit(self):
        for ref, data in self._ops:
            ref.update(data)
        self._db.batch_commits += 1


class FakeFirestore:
    def __init__(self):
        self.data = {}
        self.updates = []
        self.queries = []
        self.batch_commits = 0
        self.ids = itertools.count(1)

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeBatch(self)

    def seed(self, collection, doc_id, data):
        self.data.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def doc(self, collection, doc_id):
        return self.data.get(collection, {}).get(doc_id)

    def collections(self):
        return list(self.data)


# --- Realtime Database -----------------------------------------------------

class FakeReference:
    def __init__(self, root, segments):
        self._root = root
        self._segments = segments

    @property
    def key(self):
        return self._segments[-1] if self._segments else None

    def child(self, path):
        return FakeReference(self._root, self._segments + [s for s in path.split("/") if s])

    def _node(self):
        node = self._root.data
        for segment in self._segments:
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return node

    def _check(self):
        if "/".join(self._segments) in self._root.failing_paths:
            raise exceptions.UnavailableError("realtime database unavailable")

    def get(self, shallow=False):
        node = self._node()
        if shallow and isinstance(node, dict):
            return {k: True for k in node}
        return copy.deepcopy(node)

    def update(self, value):
        self._check()
        node = self._root.data
        for segment in self._segments:
            node = node.setdefault(segment, {})
        node.update(copy.deepcopy(value))
        self._root.writes.append(("update", "/".join(self._segments), copy.deepcopy(value)))

    def delete(self):
        self._check()
        parent = FakeReference(self._root, self._segments[:-1])._node()
        if isinstance(parent, dict):
            parent.pop(self._segments[-1], None)
        self._root.writes.append(("delete", "/".join(self._segments), None))


class FakeRealtimeDB(FakeReference):
    def __init__(self):
        self.data = {}
        self.writes = []
        self.failing_paths = set()
        super().__init__(self, [])


# --- Cloud Messaging -------------------------------------------------------

class FakeMessenger:
    def __init__(self):
        self.multicasts = []
        self.sent = []
        self.token_errors = {}
        self.send_error = None

    def send_each_for_multicast(self, message):
        # the SDK reports transport and payload errors per message instead of raising
        self.multicasts.append(message)
        errors = {token: self.send_error for token in message.tokens} if self.send_error else self.token_errors
        responses = [
            SimpleNamespace(success=token not in errors, exception=errors.get(token))
            for token in message.tokens
        ]
        success = sum(1 for r in responses if r.success)
        return SimpleNamespace(responses=responses, success_count=success, failure_count=len(responses) - success)

    def send(self, message):
        if self.send_error is not None:
            raise self.send_error
        if message.token in self.token_errors:
            raise self.token_errors[message.token]
        self.sent.append(message)
        return f"projects/test/messages/{len(self.sent)}"


# --- Fixtures --------------------------------------------------------------

@pytest.fixture
def fake_db():
    return FakeFirestore()


@pytest.fixture
def fake_rtdb():
    return FakeRealtimeDB()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def dispatcher(fake_db, messenger):
    return NotificationDispatcher(db=fake_db, messenger=messenger)


@pytest.fixture
def aggregator(fake_db):
    return ProximityAggregator(
        db=fake_db,
        window_minutes=10,
        radius_meters=400,
        high_threshold=3,
        medium_threshold=2,
        clock=lambda: NOW
    )


@pytest.fixture
def congestion(fake_rtdb, dispatcher):
    return CongestionStore(
        rtdb=fake_rtdb,
        dispatcher=dispatcher,
        precision=3,
        decay_minutes=30,
        clock=lambda: NOW_MS
    )


@pytest.fixture
def handlers(fake_db, fake_rtdb, dispatcher, aggregator, congestion):
    return EventHandlers(
        db=fake_db,
        dispatcher=dispatcher,
        validator=ReportValidator(db=fake_db),
        aggregator=aggregator,
        congestion=congestion,
        parking_sync=ParkingSyncService(rtdb=fake_rtdb, clock=lambda: NOW_MS)
    )


@pytest.fixture
def seed_users(fake_db):
    fake_db.seed("users", "citizen-1", {"role": "Citizen", "fcmToken": "tok-citizen-1"})
    fake_db.seed("users", "citizen-2", {"role": "Citizen", "fcmToken": "tok-citizen-2"})
    fake_db.seed("users", "citizen-3", {"role": "Citizen"})
    fake_db.seed("users", "police-1", {"role": "Traffic Police", "fcmToken": "tok-police-1"})
    fake_db.seed("users", "admin-1", {"role": "Admin", "fcmToken": "tok-admin-1"})
    return fake_db

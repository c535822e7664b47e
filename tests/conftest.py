"""
pytest configuration and shared fixtures for the Autonomy tests.

Key concern: tests must not require a live MongoDB, push vendor or
workflow host. We achieve this by:
  1. Setting db_client.client / db_client.db to None for every test so the
     health check reports "disconnected" unless a test wires a FakeDB.
  2. Providing FakeDB — an in-memory stand-in for the subset of the Motor
     API the services use (find/sort/limit, update operators, $geoNear).
  3. Never running the FastAPI lifespan: routes see the FakeDB through
     app.dependency_overrides and a RecordingRuntime through get_runtime.
"""

import copy
import math
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from pymongo.errors import DuplicateKeyError

ROOT = Path(__file__).parent.parent

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("I18N_DIR", str(ROOT / "i18n"))
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ONESIGNAL_API_KEY", "")
os.environ.setdefault("ONESIGNAL_TEMPLATE_NEW_LOCATION_STATUS_CHANGE", "tpl-new-location")
os.environ.setdefault("ONESIGNAL_TEMPLATE_SAVED_LOCATION_STATUS_CHANGE", "tpl-saved-location")

EARTH_RADIUS_M = 6_378_100.0


# ══ FakeDB ═════════════════════════════════════════════════════════════════════

_MISSING = object()


def _values(doc: Any, path: str) -> list:
    """Every value at a dotted path, descending into arrays like MongoDB does."""
    head, _, rest = path.partition(".")
    if isinstance(doc, list):
        out = []
        for item in doc:
            out.extend(_values(item, path))
        return out
    if not isinstance(doc, dict) or head not in doc:
        return []
    value = doc[head]
    if not rest:
        if isinstance(value, list):
            return [value, *value]
        return [value]
    return _values(value, rest)


def _haversine(a: list, b: list) -> float:
    lng1, lat1 = map(math.radians, a)
    lng2, lat2 = map(math.radians, b)
    h = math.sin((lat2 - lat1) / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin((lng2 - lng1) / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def _point_in_polygon(point: list, geometry: dict) -> bool:
    x, y = point
    ring = geometry.get("coordinates", [[]])[0]
    inside = False
    for (x1, y1), (x2, y2) in zip(ring, ring[1:] + ring[:1]):
        if (y1 > y) != (y2 > y) and x < (x2 - x1) * (y - y1) / (y2 - y1) + x1:
            inside = not inside
    return inside


def _compare(value: Any, op: str, operand: Any) -> bool:
    if op == "$in":
        return value in operand
    if op == "$ne":
        return value != operand
    if op == "$geoIntersects":
        return isinstance(value, dict) and _point_in_polygon(operand["$geometry"]["coordinates"], value)
    if value is None:
        return False
    try:
        return {
            "$gte": value >= operand,
            "$gt": value > operand,
            "$lte": value <= operand,
            "$lt": value < operand,
        }[op]
    except TypeError:
        return False


def _matches_condition(doc: dict, path: str, condition: Any) -> bool:
    values = _values(doc, path)
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op, operand in condition.items():
            if op == "$exists":
                if bool(values) != bool(operand):
                    return False
                continue
            if op == "$ne":
                if any(v == operand for v in values):
                    return False
                continue
            if not any(_compare(v, op, operand) for v in values):
                return False
        return True
    return any(v == condition for v in values)


def matches(doc: dict, query: Optional[dict]) -> bool:
    for key, condition in (query or {}).items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
        elif key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
        elif not _matches_condition(doc, key, condition):
            return False
    return True


def _positional_index(doc: dict, array_field: str, query: dict) -> int:
    prefix = f"{array_field}."
    subquery = {k[len(prefix):]: v for k, v in query.items() if k.startswith(prefix)}
    for i, item in enumerate(doc.get(array_field) or []):
        if matches(item, subquery):
            return i
    raise AssertionError(f"positional update without a matching {array_field} element")


def _set_path(doc: dict, path: str, value: Any, query: dict) -> None:
    parts = path.split(".")
    target: Any = doc
    for i, part in enumerate(parts[:-1]):
        if part == "$":
            target = target[_positional_index(doc, ".".join(parts[:i]), query)]
            continue
        if isinstance(target, list):
            target = target[int(part)]
            continue
        target = target.setdefault(part, {})
    last = parts[-1]
    if isinstance(target, list):
        target[int(last)] = value
    else:
        target[last] = value


class _UpdateResult:
    def __init__(self, matched_count: int, upserted_id: Any = None) -> None:
        self.matched_count = matched_count
        self.modified_count = matched_count
        self.upserted_id = upserted_id


class _InsertResult:
    def __init__(self, inserted_id: Any) -> None:
        self.inserted_id = inserted_id


class FakeCursor:
    def __init__(self, docs: list[dict]) -> None:
        self._docs = docs

    def sort(self, key, direction: int = 1) -> "FakeCursor":
        keys = key if isinstance(key, list) else [(key, direction)]
        for field, order in reversed(keys):
            self._docs.sort(
                key=lambda d: (_values(d, field) or [0])[0],
                reverse=order < 0,
            )
        return self

    def limit(self, n: int) -> "FakeCursor":
        if n:
            self._docs = self._docs[:n]
        return self

    async def to_list(self, length: Optional[int] = None) -> list[dict]:
        return self._docs[:length] if length else list(self._docs)

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self) -> dict:
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """
    In-memory collection. `unique` lists field tuples that behave like
    unique indexes (insert_one raises DuplicateKeyError); `partial` maps a
    field tuple to the filter that scopes its index.
    """

    def __init__(self, name: str, unique: Optional[list[tuple[str, ...]]] = None) -> None:
        self.name = name
        self.docs: list[dict] = []
        self.unique = unique or []
        self.partial: dict[tuple[str, ...], dict] = {}
        self.indexes: list[str] = []

    def _check_unique(self, doc: dict) -> None:
        for fields in self.unique:
            scope = self.partial.get(fields)
            if scope is not None and not matches(doc, scope):
                continue
            key = tuple(doc.get(f, _MISSING) for f in fields)
            if _MISSING in key:
                continue
            for existing in self.docs:
                if scope is not None and not matches(existing, scope):
                    continue
                if tuple(existing.get(f, _MISSING) for f in fields) == key:
                    raise DuplicateKeyError(f"duplicate key {fields}={key}")

    async def insert_one(self, doc: dict) -> _InsertResult:
        doc.setdefault("_id", ObjectId())
        self._check_unique(doc)
        self.docs.append(copy.deepcopy(doc))
        return _InsertResult(doc["_id"])

    async def insert_many(self, docs: list[dict]) -> None:
        for doc in docs:
            await self.insert_one(doc)

    async def find_one(self, query: Optional[dict] = None, projection: Optional[dict] = None) -> Optional[dict]:
        for doc in self.docs:
            if matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query: Optional[dict] = None, projection: Optional[dict] = None) -> FakeCursor:
        return FakeCursor([copy.deepcopy(d) for d in self.docs if matches(d, query)])

    async def count_documents(self, query: dict) -> int:
        return sum(1 for d in self.docs if matches(d, query))

    async def update_one(self, query: dict, update: dict, upsert: bool = False) -> _UpdateResult:
        for doc in self.docs:
            if matches(doc, query):
                self._apply(doc, update, query)
                return _UpdateResult(1)

        if not upsert:
            return _UpdateResult(0)

        doc = {k: v for k, v in query.items() if not k.startswith("$") and not isinstance(v, dict)}
        self._apply(doc, update, query)
        for path, value in (update.get("$setOnInsert") or {}).items():
            _set_path(doc, path, copy.deepcopy(value), query)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return _UpdateResult(0, upserted_id=doc["_id"])

    async def update_many(self, query: dict, update: dict) -> _UpdateResult:
        matched = [doc for doc in self.docs if matches(doc, query)]
        for doc in matched:
            self._apply(doc, update, query)
        return _UpdateResult(len(matched))

    def _apply(self, doc: dict, update: dict, query: dict) -> None:
        for path, value in (update.get("$set") or {}).items():
            _set_path(doc, path, copy.deepcopy(value), query)
        for path, value in (update.get("$push") or {}).items():
            doc.setdefault(path, []).append(copy.deepcopy(value))

    def aggregate(self, pipeline: list[dict]) -> FakeCursor:
        docs = [copy.deepcopy(d) for d in self.docs]
        for stage in pipeline:
            (op, params), = stage.items()
            if op == "$geoNear":
                near = params["near"]["coordinates"]
                max_distance = params.get("maxDistance")
                out = []
                for doc in docs:
                    location = doc.get(params.get("key", "location"))
                    if not location:
                        continue
                    dist = _haversine(near, location["coordinates"])
                    if max_distance is not None and dist > max_distance:
                        continue
                    doc[params["distanceField"]] = dist
                    out.append(doc)
                docs = sorted(out, key=lambda d: d[params["distanceField"]])
            elif op == "$match":
                docs = [d for d in docs if matches(d, params)]
            elif op == "$sort":
                cursor = FakeCursor(docs).sort(list(params.items()))
                docs = cursor._docs
            elif op == "$limit":
                docs = docs[:params]
            else:
                raise NotImplementedError(op)
        return FakeCursor(docs)

    async def create_index(self, keys, name: Optional[str] = None, unique: bool = False, **kwargs) -> str:
        fields = tuple(f for f, _ in keys)
        if unique and fields not in self.unique:
            self.unique.append(fields)
        if unique and kwargs.get("partialFilterExpression"):
            self.partial[fields] = kwargs["partialFilterExpression"]
        self.indexes.append(name or str(keys))
        return name or str(keys)


class FakeDB:
    def __init__(self) -> None:
        self._collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    @property
    def collection_names(self) -> list[str]:
        return sorted(self._collections)


# ══ Test doubles ═══════════════════════════════════════════════════════════════

class RecordingRuntime:
    """Stands in for WorkflowRuntime in route tests; records client calls."""

    def __init__(self) -> None:
        self.started: list[tuple[str, str, tuple]] = []
        self.signals: list[tuple[str, str]] = []
        self._running: set[str] = set()

    async def start_workflow(self, workflow_id: str, name: str, *args) -> bool:
        if workflow_id in self._running:
            return False
        self._running.add(workflow_id)
        self.started.append((workflow_id, name, args))
        return True

    async def signal(self, workflow_id: str, signal_name: str) -> None:
        self.signals.append((workflow_id, signal_name))

    async def signal_with_start(self, workflow_id: str, signal_name: str, name: str, *args) -> None:
        await self.start_workflow(workflow_id, name, *args)
        await self.signal(workflow_id, signal_name)

    def running_ids(self) -> list[str]:
        return sorted(self._running)


class FakePushClient:
    """Records NotificationRequests instead of calling the push vendor."""

    def __init__(self, app_id: str = "test-app", errors: Optional[list[Exception]] = None) -> None:
        self.app_id = app_id
        self.enabled = True
        self.requests = []
        self._errors = list(errors or [])

    async def send_notification(self, request) -> dict:
        self.requests.append(request)
        if self._errors:
            error = self._errors.pop(0)
            if error is not None:
                raise error
        return {"id": f"n-{len(self.requests)}", "recipients": 1}


# ══ Fixtures ═══════════════════════════════════════════════════════════════════

# Wednesday 2020-05-20 12:00 UTC (20:00 in GMT+8)
FIXED_NOW = datetime(2020, 5, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def mock_db():
    """
    Disconnect the MongoDB singleton for every test.

    - db_client.client → None  (health check reports "disconnected", which is fine)
    - db_client.db → None
    - runtime_client.runtime → None
    """
    import autonomy.core.database as db_module
    from autonomy.workflows import registry

    original_client = db_module.db_client.client
    original_db = db_module.db_client.db
    original_runtime = registry.runtime_client.runtime

    db_module.db_client.client = None
    db_module.db_client.db = None
    registry.runtime_client.runtime = None

    yield

    db_module.db_client.client = original_client
    db_module.db_client.db = original_db
    registry.runtime_client.runtime = original_runtime


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """In-memory rate-limit counters must not bleed between tests."""
    from autonomy.core.rate_limit import limiter

    limiter.reset()
    yield


@pytest.fixture()
def fake_db() -> FakeDB:
    return FakeDB()


@pytest.fixture()
def clock():
    """A settable clock: clock.now is returned by clock()."""

    class _Clock:
        def __init__(self) -> None:
            self.now = FIXED_NOW

        def __call__(self) -> datetime:
            return self.now

    return _Clock()


@pytest.fixture(scope="session")
def messages():
    from autonomy.core.i18n import Bundle

    return Bundle().load_dir(ROOT / "i18n")


@pytest.fixture()
def push_client() -> FakePushClient:
    return FakePushClient()


@pytest.fixture()
def runtime_recorder() -> RecordingRuntime:
    return RecordingRuntime()


@pytest.fixture()
async def api_client(fake_db, runtime_recorder):
    """
    HTTPX async test client wired to the FastAPI app, a FakeDB and a
    RecordingRuntime.
    """
    from autonomy.core.database import get_db
    from autonomy.main import app
    from autonomy.workflows.registry import get_runtime

    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_runtime] = lambda: runtime_recorder
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def client():
    """Client against the bare app (no database, no runtime)."""
    from autonomy.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ══ Helpers ════════════════════════════════════════════════════════════════════

def auth_headers(account_number: str) -> dict[str, str]:
    from autonomy.core.security import create_identity_token

    return {"Authorization": f"Bearer {create_identity_token(account_number)}"}


def point(lat: float, lng: float) -> dict:
    return {"type": "Point", "coordinates": [lng, lat]}


def square(lat: float, lng: float, half_side: float = 1.0) -> dict:
    """GeoJSON polygon centred on (lat, lng)."""
    return {
        "type": "Polygon",
        "coordinates": [[
            [lng - half_side, lat - half_side],
            [lng + half_side, lat - half_side],
            [lng + half_side, lat + half_side],
            [lng - half_side, lat + half_side],
            [lng - half_side, lat - half_side],
        ]],
    }


async def seed_profile(
    db: FakeDB,
    account_number: str,
    lat: Optional[float] = 25.03,
    lng: Optional[float] = 121.56,
    timezone_name: str = "GMT+8",
    **fields,
) -> dict:
    doc = {
        "id": f"pid-{account_number}",
        "account_number": account_number,
        "timezone": timezone_name,
        "metric": {},
        "last_nudge": {},
        "points_of_interest": [],
        **fields,
    }
    if lat is not None and lng is not None:
        doc["location"] = point(lat, lng)
    await db["profile"].insert_one(doc)
    return doc


async def seed_report(
    db: FakeDB,
    collection: str,
    account_number: str,
    ts: int,
    lat: float = 25.03,
    lng: float = 121.56,
    **items,
) -> dict:
    doc = {
        "profile_id": f"pid-{account_number}",
        "account_number": account_number,
        "location": point(lat, lng),
        "ts": ts,
        **items,
    }
    await db[collection].insert_one(doc)
    return doc

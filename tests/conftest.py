import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("WHATSAPP_WEBHOOK_SECRET", "test-secret")
os.environ.setdefault("ADMIN_TOKEN", "admin-token")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("OPENAI_ASSISTANT_ID", "asst_test")
os.environ.setdefault("WASSENGER_API_KEY", "test-wassenger")

from datetime import datetime, time, timedelta, timezone  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402

from app.database import Base, SessionLocal, engine  # noqa: E402
from app.models import (  # noqa: E402
    ChecklistLocation,
    ChecklistTask,
    Contract,
    ContractChecklistItem,
    Customer,
    Inspector,
    WorkOrder,
)
from app.services.llm import AssistantsProvider, Run, RunStatus, ThreadMessage  # noqa: E402

INSPECTOR_PHONE = "6591234567"


def today_at(hour: int, minute: int = 0) -> datetime:
    """A UTC instant at the given Singapore wall-clock time today."""
    sg = ZoneInfo("Asia/Singapore")
    local_day = datetime.now(sg).date()
    return datetime.combine(local_day, time(hour, minute), tzinfo=sg).astimezone(timezone.utc)


class FakeRedis:
    """Async in-memory stand-in for redis.asyncio with manual clock."""

    def __init__(self):
        self.now = 0.0
        self._data = {}
        self._expires = {}
        self.fail = False

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _check(self):
        if self.fail:
            raise ConnectionError("redis down")

    def _alive(self, key):
        expires = self._expires.get(key)
        if expires is not None and expires <= self.now:
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return key in self._data

    def _set_ttl(self, key, ex):
        if ex is None:
            self._expires.pop(key, None)
        else:
            self._expires[key] = self.now + ex

    async def ping(self):
        self._check()
        return True

    async def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and self._alive(key):
            return None
        self._data[key] = value
        self._set_ttl(key, ex)
        return True

    async def get(self, key):
        self._check()
        return self._data.get(key) if self._alive(key) else None

    async def getex(self, key, ex=None):
        self._check()
        if not self._alive(key):
            return None
        if ex is not None:
            self._set_ttl(key, ex)
        return self._data[key]

    async def expire(self, key, seconds):
        self._check()
        if not self._alive(key):
            return False
        self._set_ttl(key, seconds)
        return True

    async def delete(self, *keys):
        self._check()
        deleted = 0
        for key in keys:
            if self._alive(key):
                deleted += 1
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return deleted

    async def hset(self, key, mapping=None):
        self._check()
        if not self._alive(key):
            self._data[key] = {}
        self._data[key].update(mapping or {})
        return len(mapping or {})

    async def hgetall(self, key):
        self._check()
        return dict(self._data[key]) if self._alive(key) else {}

    async def hdel(self, key, *fields):
        self._check()
        if not self._alive(key):
            return 0
        return sum(1 for field in fields if self._data[key].pop(field, None) is not None)


class FakeAssistantsProvider(AssistantsProvider):
    """Scripted AI service.

    `runs` is consumed in order: create_run returns the first entry, each
    retrieve_run or submit_tool_outputs returns the next. The last entry
    repeats once the script runs out.
    """

    def __init__(self, runs=None, reply="Here you go"):
        self.runs = list(runs or [Run(id="run_1", thread_id="", status=RunStatus.COMPLETED)])
        self.reply = reply
        self.threads = []
        self.deleted_threads = []
        self.messages = []
        self.submitted = []
        self.cancelled = []
        self.retrieve_calls = 0
        self.retrieve_errors = []
        self.submit_error = None
        self.assistants = []

    def _next_run(self):
        return self.runs.pop(0) if len(self.runs) > 1 else self.runs[0]

    async def create_thread(self, metadata=None):
        thread_id = f"thread_{len(self.threads) + 1}"
        self.threads.append(thread_id)
        return thread_id

    async def delete_thread(self, thread_id):
        self.deleted_threads.append(thread_id)

    async def add_message(self, thread_id, content):
        self.messages.append((thread_id, content))
        return f"msg_{len(self.messages)}"

    async def create_run(self, thread_id, assistant_id, instructions=None):
        return self._next_run()

    async def retrieve_run(self, thread_id, run_id):
        self.retrieve_calls += 1
        if self.retrieve_errors:
            raise self.retrieve_errors.pop(0)
        return self._next_run()

    async def submit_tool_outputs(self, thread_id, run_id, outputs):
        if self.submit_error:
            raise self.submit_error
        self.submitted.append(outputs)
        return self._next_run()

    async def cancel_run(self, thread_id, run_id):
        self.cancelled.append(run_id)

    async def list_messages(self, thread_id, limit=10):
        if self.reply is None:
            return []
        return [ThreadMessage(id="msg_reply", role="assistant", text=self.reply)]

    async def create_assistant(self, name, instructions, tools, model):
        self.assistants.append({"name": name, "tools": tools, "model": model})
        return f"asst_{len(self.assistants)}"


@pytest.fixture
def db_session():
    """Real SQLAlchemy session on a fresh in-memory schema."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def seeded_job(db_session):
    """Inspector with job wo-42 today: Kitchen (3 tasks), Living Room (2 tasks), Store Room (none)."""
    customer = Customer(id="cust-1", name="Hang")
    contract = Contract(
        id="contract-1",
        customer=customer,
        address="123 Punggol Walk",
        postal_code="822121",
        property_type="HDB",
    )
    inspector = Inspector(id="insp-1", name="Ken", mobile_phone=f"+{INSPECTOR_PHONE}", status="ACTIVE")
    work_order = WorkOrder(
        id="wo-42",
        contract=contract,
        status="SCHEDULED",
        scheduled_start=today_at(10),
        scheduled_end=today_at(12),
        inspectors=[inspector],
    )
    later_job = WorkOrder(
        id="wo-43",
        contract=contract,
        status="SCHEDULED",
        scheduled_start=today_at(14),
        scheduled_end=today_at(16),
        inspectors=[inspector],
    )
    tomorrow_job = WorkOrder(
        id="wo-44",
        contract=contract,
        status="SCHEDULED",
        scheduled_start=today_at(10) + timedelta(days=1),
        scheduled_end=today_at(12) + timedelta(days=1),
        inspectors=[inspector],
    )

    base_time = datetime(2026, 1, 1, tzinfo=timezone.utc)
    interior = ContractChecklistItem(id="item-1", contract=contract, name="Interior", order=1)
    kitchen = ChecklistLocation(id="loc-kitchen", item=interior, name="Kitchen", order=1)
    living = ChecklistLocation(id="loc-living", item=interior, name="Living Room", order=2)
    store = ChecklistLocation(id="loc-store", item=interior, name="Store Room", order=3)
    # Created out of order on purpose; creation time decides the listing
    tasks = [
        ChecklistTask(id="task-k3", location=kitchen, name="Check sink", created_on=base_time + timedelta(minutes=3)),
        ChecklistTask(id="task-k1", location=kitchen, name="Check walls", created_on=base_time + timedelta(minutes=1)),
        ChecklistTask(id="task-k2", location=kitchen, name="Check cabinets", created_on=base_time + timedelta(minutes=2)),
        ChecklistTask(id="task-l1", location=living, name="Check ceiling", created_on=base_time + timedelta(minutes=4)),
        ChecklistTask(id="task-l2", location=living, name="Check windows", created_on=base_time + timedelta(minutes=5)),
    ]

    db_session.add_all([customer, contract, inspector, work_order, later_job, tomorrow_job, interior, kitchen, living, store, *tasks])
    db_session.commit()
    return work_order


@pytest.fixture
def today():
    return today_at


@pytest.fixture
def make_provider():
    """Factory for scripted AI service fakes."""
    return FakeAssistantsProvider

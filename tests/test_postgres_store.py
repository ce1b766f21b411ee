import json
from datetime import datetime, timezone

import asyncpg
import pytest

from pacer.apps.core import postgres_store
from pacer.apps.core.postgres_store import PostgresStore
from pacer.libs.errors import PersistenceError
from pacer.libs.schemas.drafts import BrainDumpPayload, SessionDraft, Stage
from pacer.libs.schemas.focus import DueDate, MicroStep, MoodSample, TaskPlan

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeDB:
    """Records statements and replays canned rows."""

    def __init__(self) -> None:
        self.calls = []
        self.rows = []
        self.row = None
        self.status = "INSERT 0 1"

    async def execute(self, query, *args):
        self.calls.append((" ".join(query.split()), args))
        return self.status

    async def fetch_all(self, query, *args):
        self.calls.append((" ".join(query.split()), args))
        return self.rows

    async def fetch_one(self, query, *args):
        self.calls.append((" ".join(query.split()), args))
        return self.row


@pytest.fixture
def db(monkeypatch):
    fake = FakeDB()
    monkeypatch.setattr(postgres_store, "execute", fake.execute)
    monkeypatch.setattr(postgres_store, "fetch_all", fake.fetch_all)
    monkeypatch.setattr(postgres_store, "fetch_one", fake.fetch_one)
    return fake


@pytest.mark.asyncio
async def test_insert_plan_writes_derived_progress(db):
    plan = TaskPlan(
        task_name="Write report",
        steps=[MicroStep(id="s1", text="Open doc", completed=True), MicroStep(id="s2", text="Write intro")],
        due_date=DueDate.TODAY,
        energy_required="low",
        created_at=NOW,
    )

    await PostgresStore().insert_plan("u1", plan)

    query, args = db.calls[0]
    assert query.startswith("INSERT INTO focus_plans")
    assert args[0] == plan.id
    assert args[1] == "u1"
    steps = json.loads(args[3])
    assert [step["id"] for step in steps] == ["s1", "s2"]
    assert steps[0]["dueBy"] is None
    assert args[4:8] == (1, 2, False, "today")


@pytest.mark.asyncio
async def test_update_plan_missing_row_raises(db):
    db.status = "UPDATE 0"

    with pytest.raises(PersistenceError):
        await PostgresStore().update_plan("u1", TaskPlan(task_name="Gone"))


@pytest.mark.asyncio
async def test_driver_errors_become_persistence_errors(monkeypatch):
    async def broken(query, *args):
        raise asyncpg.InterfaceError("pool is closed")

    monkeypatch.setattr(postgres_store, "execute", broken)

    with pytest.raises(PersistenceError):
        await PostgresStore().delete_plan("u1", "plan_1")


@pytest.mark.asyncio
async def test_list_active_plans_decodes_json_steps(db):
    db.rows = [
        {
            "id": "plan_1",
            "task_name": "Write report",
            "steps": json.dumps([{"id": "s1", "text": "Open doc", "dueBy": "Now", "completed": True}]),
            "due_date": "tomorrow",
            "energy_required": "medium",
            "related_goal_id": None,
            "related_step_id": None,
            "created_at": NOW,
        }
    ]

    (plan,) = await PostgresStore().list_active_plans("u1", limit=5)

    assert plan.due_date == DueDate.TOMORROW
    assert plan.steps[0].due_by == "Now"
    assert plan.completed_count == 1
    assert db.calls[0][1] == ("u1", 5)


@pytest.mark.asyncio
async def test_recent_mood_samples_clamps_limit(db):
    db.rows = [{"id": "m1", "mood_score": 4, "energy_level": "low", "note": None, "created_at": NOW}]

    (sample,) = await PostgresStore().recent_mood_samples("u1", limit=500)

    assert sample == MoodSample(id="m1", mood_score=4, energy_level="low", created_at=NOW)
    assert db.calls[0][1] == ("u1", 100)


@pytest.mark.asyncio
async def test_draft_round_trip_through_jsonb(db):
    draft = SessionDraft(stage=Stage.BRAIN_DUMP, payload=BrainDumpPayload(raw_text="buy milk"), saved_at=NOW)
    store = PostgresStore()

    await store.save_draft("u1", draft)
    query, args = db.calls[0]
    assert "ON CONFLICT (user_id)" in query

    db.row = {"draft_data": args[1]}
    assert await store.load_draft("u1") == draft

    db.row = None
    assert await store.load_draft("u1") is None


@pytest.mark.asyncio
async def test_log_event_serialises_payload(db):
    await PostgresStore().log_event("u1", "advice_fallback", {"stage": "triage", "at": NOW})

    _, args = db.calls[0]
    assert args[:2] == ("u1", "advice_fallback")
    assert json.loads(args[2]) == {"stage": "triage", "at": str(NOW)}

"""Persistence adapter interface and the process-local implementation.

Every call is independent: there is no cross-call transaction, and each
write must be safe to re-issue (updates are full-row replacements, deletes
of missing rows are no-ops).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pacer.libs.errors import PersistenceError
from pacer.libs.schemas.drafts import SessionDraft
from pacer.libs.schemas.focus import Goal, MoodSample, TaskPlan, utcnow


class BaseStore(ABC):
    """CRUD over mood samples, plans, goals, the draft snapshot, rewards and events."""

    @abstractmethod
    async def insert_mood_sample(self, user_id: str, sample: MoodSample) -> MoodSample: ...

    @abstractmethod
    async def recent_mood_samples(self, user_id: str, *, limit: int = 14) -> List[MoodSample]:
        """Most recent samples, newest first."""

    @abstractmethod
    async def list_active_plans(self, user_id: str, *, limit: int = 10) -> List[TaskPlan]:
        """Unfinished plans, newest first."""

    @abstractmethod
    async def get_plan(self, user_id: str, plan_id: str) -> Optional[TaskPlan]: ...

    @abstractmethod
    async def insert_plan(self, user_id: str, plan: TaskPlan) -> TaskPlan: ...

    @abstractmethod
    async def update_plan(self, user_id: str, plan: TaskPlan) -> None: ...

    @abstractmethod
    async def delete_plan(self, user_id: str, plan_id: str) -> None: ...

    @abstractmethod
    async def list_active_goals(self, user_id: str, *, limit: int = 20) -> List[Goal]: ...

    @abstractmethod
    async def get_goal(self, user_id: str, goal_id: str) -> Optional[Goal]: ...

    @abstractmethod
    async def update_goal(self, user_id: str, goal: Goal) -> None: ...

    @abstractmethod
    async def load_draft(self, user_id: str) -> Optional[SessionDraft]: ...

    @abstractmethod
    async def save_draft(self, user_id: str, draft: SessionDraft) -> None: ...

    @abstractmethod
    async def delete_draft(self, user_id: str) -> None: ...

    @abstractmethod
    async def record_reward(
        self,
        user_id: str,
        kind: str,
        *,
        plan_id: str,
        step_id: str | None = None,
    ) -> None: ...

    @abstractmethod
    async def log_event(self, user_id: str, event: str, payload: Mapping[str, Any] | None = None) -> None: ...


@dataclass
class RewardRecord:
    user_id: str
    kind: str
    plan_id: str
    step_id: str | None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class EventRecord:
    user_id: str
    event: str
    payload: Dict[str, Any]
    created_at: datetime = field(default_factory=utcnow)


class InMemoryStore(BaseStore):
    """Dictionary-backed store. Returns copies so callers never alias stored rows."""

    def __init__(self) -> None:
        self._moods: Dict[str, List[MoodSample]] = {}
        self._plans: Dict[str, Dict[str, TaskPlan]] = {}
        self._goals: Dict[str, Dict[str, Goal]] = {}
        self._drafts: Dict[str, Dict[str, Any]] = {}
        self.rewards: List[RewardRecord] = []
        self.events: List[EventRecord] = []

    async def insert_mood_sample(self, user_id: str, sample: MoodSample) -> MoodSample:
        self._moods.setdefault(user_id, []).append(sample)
        return sample

    async def recent_mood_samples(self, user_id: str, *, limit: int = 14) -> List[MoodSample]:
        samples = sorted(self._moods.get(user_id, []), key=lambda s: s.created_at, reverse=True)
        return samples[: max(0, limit)]

    async def list_active_plans(self, user_id: str, *, limit: int = 10) -> List[TaskPlan]:
        plans = [p for p in self._plans.get(user_id, {}).values() if not p.is_completed]
        plans.sort(key=lambda p: p.created_at, reverse=True)
        return [p.model_copy(deep=True) for p in plans[:limit]]

    async def get_plan(self, user_id: str, plan_id: str) -> Optional[TaskPlan]:
        plan = self._plans.get(user_id, {}).get(plan_id)
        return plan.model_copy(deep=True) if plan else None

    async def insert_plan(self, user_id: str, plan: TaskPlan) -> TaskPlan:
        self._plans.setdefault(user_id, {})[plan.id] = plan.model_copy(deep=True)
        return plan

    async def update_plan(self, user_id: str, plan: TaskPlan) -> None:
        rows = self._plans.setdefault(user_id, {})
        if plan.id not in rows:
            raise PersistenceError(f"plan {plan.id} not found")
        rows[plan.id] = plan.model_copy(deep=True)

    async def delete_plan(self, user_id: str, plan_id: str) -> None:
        self._plans.get(user_id, {}).pop(plan_id, None)

    async def list_active_goals(self, user_id: str, *, limit: int = 20) -> List[Goal]:
        goals = [g for g in self._goals.get(user_id, {}).values() if g.status != "completed"]
        goals.sort(key=lambda g: g.created_at, reverse=True)
        return [g.model_copy(deep=True) for g in goals[:limit]]

    async def get_goal(self, user_id: str, goal_id: str) -> Optional[Goal]:
        goal = self._goals.get(user_id, {}).get(goal_id)
        return goal.model_copy(deep=True) if goal else None

    async def insert_goal(self, user_id: str, goal: Goal) -> Goal:
        self._goals.setdefault(user_id, {})[goal.id] = goal.model_copy(deep=True)
        return goal

    async def update_goal(self, user_id: str, goal: Goal) -> None:
        self._goals.setdefault(user_id, {})[goal.id] = goal.model_copy(deep=True)

    async def load_draft(self, user_id: str) -> Optional[SessionDraft]:
        raw = self._drafts.get(user_id)
        if raw is None:
            return None
        return SessionDraft.model_validate(raw)

    async def save_draft(self, user_id: str, draft: SessionDraft) -> None:
        # Stored serialised, the way a real backend would hold it.
        self._drafts[user_id] = draft.model_dump(mode="json")

    async def delete_draft(self, user_id: str) -> None:
        self._drafts.pop(user_id, None)

    async def record_reward(
        self,
        user_id: str,
        kind: str,
        *,
        plan_id: str,
        step_id: str | None = None,
    ) -> None:
        self.rewards.append(RewardRecord(user_id=user_id, kind=kind, plan_id=plan_id, step_id=step_id))

    async def log_event(self, user_id: str, event: str, payload: Mapping[str, Any] | None = None) -> None:
        self.events.append(EventRecord(user_id=user_id, event=event, payload=dict(payload or {})))


__all__ = ["BaseStore", "EventRecord", "InMemoryStore", "RewardRecord"]

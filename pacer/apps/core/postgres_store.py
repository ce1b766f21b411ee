"""asyncpg-backed persistence adapter.

Table layout lives in ``pacer/infra/scripts/migrations``. Driver failures are
surfaced as ``PersistenceError`` so callers can keep their optimistic state.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Mapping, Optional

import asyncpg

from pacer.libs.errors import PersistenceError
from pacer.libs.schemas.db import execute, fetch_all, fetch_one
from pacer.libs.schemas.drafts import SessionDraft
from pacer.libs.schemas.focus import Goal, MicroStep, MoodSample, TaskPlan

from .store import BaseStore

logger = logging.getLogger(__name__)

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def _json_value(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return value


def _plan_from_row(row: Mapping[str, Any]) -> TaskPlan:
    steps = _json_value(row.get("steps")) or []
    return TaskPlan(
        id=str(row["id"]),
        task_name=row["task_name"],
        steps=[MicroStep.model_validate(step) for step in steps],
        due_date=row.get("due_date"),
        energy_required=row.get("energy_required"),
        related_goal_id=row.get("related_goal_id"),
        related_step_id=row.get("related_step_id"),
        created_at=row["created_at"],
    )


def _goal_from_row(row: Mapping[str, Any]) -> Goal:
    return Goal(
        id=str(row["id"]),
        title=row["title"],
        micro_steps=_json_value(row.get("micro_steps")) or [],
        progress_percent=int(row.get("progress_percent") or 0),
        status=row.get("status") or "active",
        celebration_message=row.get("celebration_message"),
        created_at=row["created_at"],
    )


class PostgresStore(BaseStore):
    async def _execute(self, sql: str, *args: Any) -> str:
        try:
            return await execute(sql, *args)
        except _DB_ERRORS as exc:
            logger.warning("store write failed: %s", exc)
            raise PersistenceError(str(exc)) from exc

    async def _fetch_all(self, sql: str, *args: Any) -> list:
        try:
            return await fetch_all(sql, *args)
        except _DB_ERRORS as exc:
            logger.warning("store read failed: %s", exc)
            raise PersistenceError(str(exc)) from exc

    async def _fetch_one(self, sql: str, *args: Any) -> Any:
        try:
            return await fetch_one(sql, *args)
        except _DB_ERRORS as exc:
            logger.warning("store read failed: %s", exc)
            raise PersistenceError(str(exc)) from exc

    async def insert_mood_sample(self, user_id: str, sample: MoodSample) -> MoodSample:
        await self._execute(
            """
            INSERT INTO mood_entries (id, user_id, mood_score, energy_level, note, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            sample.id,
            user_id,
            sample.mood_score,
            sample.energy_level,
            sample.note,
            sample.created_at,
        )
        return sample

    async def recent_mood_samples(self, user_id: str, *, limit: int = 14) -> List[MoodSample]:
        rows = await self._fetch_all(
            """
            SELECT id, mood_score, energy_level, note, created_at
            FROM mood_entries
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            user_id,
            max(1, min(limit, 100)),
        )
        return [
            MoodSample(
                id=str(row["id"]),
                mood_score=row["mood_score"],
                energy_level=row.get("energy_level"),
                note=row.get("note"),
                created_at=row["created_at"],
            )
            for row in (dict(r) for r in rows)
        ]

    async def list_active_plans(self, user_id: str, *, limit: int = 10) -> List[TaskPlan]:
        rows = await self._fetch_all(
            """
            SELECT * FROM focus_plans
            WHERE user_id = $1 AND is_completed = false
            ORDER BY created_at DESC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [_plan_from_row(dict(row)) for row in rows]

    async def get_plan(self, user_id: str, plan_id: str) -> Optional[TaskPlan]:
        row = await self._fetch_one(
            "SELECT * FROM focus_plans WHERE id = $1 AND user_id = $2",
            plan_id,
            user_id,
        )
        return _plan_from_row(dict(row)) if row else None

    async def insert_plan(self, user_id: str, plan: TaskPlan) -> TaskPlan:
        row = plan.as_row()
        await self._execute(
            """
            INSERT INTO focus_plans (
                id, user_id, task_name, steps, steps_completed, total_steps, is_completed,
                due_date, energy_required, related_goal_id, related_step_id, created_at
            )
            VALUES ($1, $2, $3, $4::jsonb, $5, $6, $7, $8, $9, $10, $11, $12)
            ON CONFLICT (id) DO NOTHING
            """,
            row["id"],
            user_id,
            row["task_name"],
            json.dumps(row["steps"], ensure_ascii=False),
            row["steps_completed"],
            row["total_steps"],
            row["is_completed"],
            row["due_date"],
            row["energy_required"],
            row["related_goal_id"],
            row["related_step_id"],
            row["created_at"],
        )
        return plan

    async def update_plan(self, user_id: str, plan: TaskPlan) -> None:
        row = plan.as_row()
        status = await self._execute(
            """
            UPDATE focus_plans
            SET task_name = $3,
                steps = $4::jsonb,
                steps_completed = $5,
                total_steps = $6,
                is_completed = $7,
                due_date = $8,
                energy_required = $9
            WHERE id = $1 AND user_id = $2
            """,
            row["id"],
            user_id,
            row["task_name"],
            json.dumps(row["steps"], ensure_ascii=False),
            row["steps_completed"],
            row["total_steps"],
            row["is_completed"],
            row["due_date"],
            row["energy_required"],
        )
        if status.endswith(" 0"):
            raise PersistenceError(f"plan {plan.id} not found")

    async def delete_plan(self, user_id: str, plan_id: str) -> None:
        await self._execute(
            "DELETE FROM focus_plans WHERE id = $1 AND user_id = $2",
            plan_id,
            user_id,
        )

    async def list_active_goals(self, user_id: str, *, limit: int = 20) -> List[Goal]:
        rows = await self._fetch_all(
            """
            SELECT id, title, micro_steps, progress_percent, status, celebration_message, created_at
            FROM goals
            WHERE user_id = $1 AND status <> 'completed'
            ORDER BY created_at DESC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [_goal_from_row(dict(row)) for row in rows]

    async def get_goal(self, user_id: str, goal_id: str) -> Optional[Goal]:
        row = await self._fetch_one(
            """
            SELECT id, title, micro_steps, progress_percent, status, celebration_message, created_at
            FROM goals WHERE id = $1 AND user_id = $2
            """,
            goal_id,
            user_id,
        )
        return _goal_from_row(dict(row)) if row else None

    async def update_goal(self, user_id: str, goal: Goal) -> None:
        await self._execute(
            """
            UPDATE goals
            SET micro_steps = $3::jsonb,
                progress_percent = $4,
                status = $5,
                celebration_message = $6
            WHERE id = $1 AND user_id = $2
            """,
            goal.id,
            user_id,
            json.dumps([step.model_dump() for step in goal.micro_steps], ensure_ascii=False),
            goal.progress_percent,
            goal.status,
            goal.celebration_message,
        )

    async def load_draft(self, user_id: str) -> Optional[SessionDraft]:
        row = await self._fetch_one(
            "SELECT draft_data FROM focus_flow_drafts WHERE user_id = $1",
            user_id,
        )
        if not row:
            return None
        data = _json_value(dict(row).get("draft_data"))
        if not data:
            return None
        return SessionDraft.model_validate(data)

    async def save_draft(self, user_id: str, draft: SessionDraft) -> None:
        await self._execute(
            """
            INSERT INTO focus_flow_drafts (user_id, draft_data, saved_at)
            VALUES ($1, $2::jsonb, $3)
            ON CONFLICT (user_id)
            DO UPDATE SET draft_data = EXCLUDED.draft_data,
                          saved_at = EXCLUDED.saved_at
            """,
            user_id,
            draft.model_dump_json(),
            draft.saved_at,
        )

    async def delete_draft(self, user_id: str) -> None:
        await self._execute("DELETE FROM focus_flow_drafts WHERE user_id = $1", user_id)

    async def record_reward(
        self,
        user_id: str,
        kind: str,
        *,
        plan_id: str,
        step_id: str | None = None,
    ) -> None:
        await self._execute(
            """
            INSERT INTO focus_rewards (user_id, kind, plan_id, step_id)
            VALUES ($1, $2, $3, $4)
            """,
            user_id,
            kind,
            plan_id,
            step_id,
        )

    async def log_event(self, user_id: str, event: str, payload: Mapping[str, Any] | None = None) -> None:
        await self._execute(
            """
            INSERT INTO analytics_events (user_id, event_name, properties)
            VALUES ($1, $2, $3::jsonb)
            """,
            user_id,
            event,
            json.dumps(dict(payload or {}), ensure_ascii=False, default=str),
        )


__all__ = ["PostgresStore"]

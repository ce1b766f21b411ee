"""Live focus session over the user's active plans.

Owns the ``focus.*`` timers:

- ``focus.idle``          reset by any input; expiry nudges a running burst
- ``focus.burst:<plan>``  explicit five-minute countdown, one per plan
- ``focus.stagnation``    fires once per session when nothing gets ticked off
- ``focus.deletion``      undo window of the single pending deletion

Plans only change through command objects or committed deletions, so the
derived progress fields always match the step list.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable, Dict, List, Literal, Set

from pacer.apps.core.signals import SignalBus, SignalKind
from pacer.apps.core.store import BaseStore
from pacer.apps.core.timers import TimerScheduler
from pacer.apps.core.timing import Clock, TimingPolicy, system_clock
from pacer.libs.errors import PersistenceError, ValidationError
from pacer.libs.schemas.focus import DUE_DATE_ORDER, DueDate, Goal, TaskPlan

from .commands import CompleteAll, Deprioritize, PlanCommand, RenamePlan, RenameStep, ToggleStep
from .deletion import PendingDeletion

logger = logging.getLogger(__name__)

IDLE_TIMER = "focus.idle"
BURST_TIMER_PREFIX = "focus.burst:"
STAGNATION_TIMER = "focus.stagnation"
DELETION_TIMER = "focus.deletion"

STEP_REWARD = "focus_step"
PLAN_REWARD = "focus_plan_complete"

DriftChoice = Literal["keep_rolling", "dont_count"]
BurstChoice = Literal["continue", "take_break", "mark_done"]


def _due_order(plan: TaskPlan) -> int:
    # Plans without a due date sort last.
    return DUE_DATE_ORDER.get(plan.due_date, len(DUE_DATE_ORDER))


def burst_timer(plan_id: str) -> str:
    return f"{BURST_TIMER_PREFIX}{plan_id}"


class FocusSessionMonitor:
    def __init__(
        self,
        store: BaseStore,
        scheduler: TimerScheduler,
        bus: SignalBus,
        *,
        user_id: str,
        policy: TimingPolicy | None = None,
        clock: Clock = system_clock,
        on_activity: Callable[[], None] | None = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._bus = bus
        self._user_id = user_id
        self._policy = policy or TimingPolicy()
        self._clock = clock
        self._on_activity = on_activity
        self._plans: Dict[str, TaskPlan] = {}
        self._rewarded_plans: Set[str] = set()
        self._stagnation_fired = False
        self._idle = False
        self._drift_bursts: List[str] = []
        self.pending_deletion: PendingDeletion | None = None
        self.pending_goal_sync: TaskPlan | None = None

    # -- plan list -------------------------------------------------------------

    async def refresh(self) -> List[TaskPlan]:
        """Reload unfinished plans from the store; local state follows the store."""

        try:
            plans = await self._store.list_active_plans(self._user_id)
        except PersistenceError as exc:
            logger.warning("plan refresh failed: %s", exc)
            return self.visible_plans()
        self._plans = {plan.id: plan for plan in plans}
        self._maybe_arm_stagnation()
        return self.visible_plans()

    def load(self, plans: List[TaskPlan]) -> None:
        for plan in plans:
            self._plans[plan.id] = plan
        self._maybe_arm_stagnation()

    def visible_plans(self) -> List[TaskPlan]:
        """Plans as the user should see them: pending deletions hidden, most urgent first."""

        visible = []
        for plan in self._plans.values():
            if self.pending_deletion is not None:
                plan = self.pending_deletion.visible(plan)
                if plan is None:
                    continue
            visible.append(plan)
        return sorted(visible, key=_due_order)

    def _visible(self, plan: TaskPlan) -> TaskPlan:
        if self.pending_deletion is None:
            return plan
        return self.pending_deletion.visible(plan) or plan

    def get_plan(self, plan_id: str) -> TaskPlan:
        plan = self._plans.get(plan_id)
        if plan is None or (self.pending_deletion and self.pending_deletion.hides_plan(plan_id)):
            raise ValidationError(f"unknown plan {plan_id}", code="unknown_plan")
        return plan

    # -- commands --------------------------------------------------------------

    async def _execute(self, command: PlanCommand) -> TaskPlan | None:
        """Apply locally, commit, roll back on failure. Returns the committed row."""

        plan = self.get_plan(command.plan_id)
        step_id = getattr(command, "step_id", None)
        if step_id and self.pending_deletion and self.pending_deletion.hides_step(plan.id, step_id):
            raise ValidationError(f"unknown step {step_id}", code="unknown_step")

        updated = command.apply(plan)
        self._plans[plan.id] = updated
        try:
            await self._store.update_plan(self._user_id, updated)
        except PersistenceError as exc:
            current = self._plans.get(plan.id)
            if current is not None and command.is_applied(current):
                self._plans[plan.id] = command.rollback(current)
            logger.warning("plan commit failed: %s", exc, extra={"plan_id": plan.id, "command": command.describe()})
            self._bus.emit(SignalKind.SYNC_FAILED, plan_id=plan.id, command=command.describe())
            return None
        logger.info("plan committed", extra={"plan_id": plan.id, "command": command.describe()})
        return updated

    async def toggle_step(self, plan_id: str, step_id: str) -> TaskPlan:
        self.record_activity()
        command = ToggleStep(plan_id=plan_id, step_id=step_id)
        committed = await self._execute(command)
        self._reset_stagnation()
        if committed is not None and command.completes:
            await self._reward(STEP_REWARD, plan_id, step_id)
            await self._on_plan_progress(self._visible(committed))
        return self._plans.get(plan_id, committed)

    async def complete_all(self, plan_id: str) -> TaskPlan:
        self.record_activity()
        command = CompleteAll(plan_id=plan_id)
        committed = await self._execute(command)
        if committed is not None:
            for step_id in command.newly_completed:
                await self._reward(STEP_REWARD, plan_id, step_id)
            await self._on_plan_progress(self._visible(committed))
        return self._plans.get(plan_id, committed)

    async def rename_plan(self, plan_id: str, task_name: str) -> TaskPlan:
        self.record_activity()
        await self._execute(RenamePlan(plan_id=plan_id, task_name=task_name))
        return self._plans[plan_id]

    async def rename_step(self, plan_id: str, step_id: str, text: str) -> TaskPlan:
        self.record_activity()
        await self._execute(RenameStep(plan_id=plan_id, step_id=step_id, text=text))
        return self._plans[plan_id]

    async def deprioritize(self, plan_id: str) -> TaskPlan:
        self.record_activity()
        await self._execute(Deprioritize(plan_id=plan_id))
        return self._plans[plan_id]

    async def _reward(self, kind: str, plan_id: str, step_id: str | None = None) -> None:
        self._bus.emit(SignalKind.REWARD, kind=kind, plan_id=plan_id, step_id=step_id)
        try:
            await self._store.record_reward(self._user_id, kind, plan_id=plan_id, step_id=step_id)
        except PersistenceError as exc:
            logger.warning("reward write failed: %s", exc, extra={"plan_id": plan_id, "kind": kind})

    async def _on_plan_progress(self, plan: TaskPlan) -> None:
        if not plan.is_completed:
            return
        self._scheduler.cancel(burst_timer(plan.id))
        if plan.id in self._rewarded_plans:
            return
        self._rewarded_plans.add(plan.id)
        await self._reward(PLAN_REWARD, plan.id)
        if plan.related_goal_id and plan.related_step_id:
            self.pending_goal_sync = plan
            self._bus.emit(
                SignalKind.GOAL_SYNC_OFFER,
                plan_id=plan.id,
                goal_id=plan.related_goal_id,
                step_id=plan.related_step_id,
            )

    # -- goal sync -------------------------------------------------------------

    async def confirm_goal_sync(self, accept: bool) -> Goal | None:
        self.record_activity()
        plan, self.pending_goal_sync = self.pending_goal_sync, None
        if plan is None or not accept:
            return None
        try:
            goal = await self._store.get_goal(self._user_id, plan.related_goal_id)
        except PersistenceError as exc:
            logger.warning("goal load failed: %s", exc, extra={"goal_id": plan.related_goal_id})
            return None
        if goal is None:
            return None

        steps = [
            step.model_copy(update={"completed": True}) if step.id == plan.related_step_id else step
            for step in goal.micro_steps
        ]
        done = sum(1 for step in steps if step.completed)
        progress = round(done / len(steps) * 100) if steps else 0
        changes = {"micro_steps": steps, "progress_percent": progress}
        if progress >= 100:
            changes["status"] = "completed"
            changes["celebration_message"] = (
                f'You completed "{goal.title}" by finishing all your focus sessions!'
            )
        goal = goal.model_copy(update=changes)
        try:
            await self._store.update_goal(self._user_id, goal)
        except PersistenceError as exc:
            logger.warning("goal sync failed: %s", exc, extra={"goal_id": goal.id})
            self._bus.emit(SignalKind.SYNC_FAILED, goal_id=goal.id, command="goal_sync")
            return None
        logger.info("goal synced", extra={"goal_id": goal.id, "progress": progress})
        return goal

    # -- idle / drift ----------------------------------------------------------

    def _active_bursts(self) -> List[str]:
        return [key[len(BURST_TIMER_PREFIX):] for key in self._scheduler.armed(BURST_TIMER_PREFIX)]

    def record_activity(self) -> None:
        """Any input: restart the idle window, and ask about drift when coming back to a running burst."""

        if self._idle:
            self._idle = False
            bursts = self._active_bursts()
            if bursts:
                self._drift_bursts = bursts
                self._bus.emit(SignalKind.DRIFT_PROMPT, plan_ids=bursts)
        self._scheduler.arm(IDLE_TIMER, self._policy.idle, self._idle_expired)
        if self._on_activity is not None:
            self._on_activity()

    def _idle_expired(self) -> None:
        self._idle = True
        bursts = self._active_bursts()
        if bursts:
            self._bus.emit(SignalKind.IDLE_NUDGE, plan_ids=bursts)

    def resolve_drift(self, choice: DriftChoice) -> None:
        bursts, self._drift_bursts = self._drift_bursts, []
        if choice == "dont_count":
            for plan_id in bursts:
                if self._scheduler.is_armed(burst_timer(plan_id)):
                    self.start_burst(plan_id)

    # -- short burst -----------------------------------------------------------

    def start_burst(self, plan_id: str) -> None:
        self.get_plan(plan_id)
        self.record_activity()
        self._scheduler.arm(burst_timer(plan_id), self._policy.short_burst, lambda: self._burst_expired(plan_id))
        logger.info("burst started", extra={"plan_id": plan_id})

    def burst_remaining(self, plan_id: str) -> float | None:
        return self._scheduler.remaining(burst_timer(plan_id))

    def _burst_expired(self, plan_id: str) -> None:
        self._bus.emit(SignalKind.BURST_EXPIRED, plan_id=plan_id, choices=["continue", "take_break", "mark_done"])

    async def resolve_burst(self, plan_id: str, choice: BurstChoice) -> TaskPlan | None:
        self.record_activity()
        if choice == "mark_done":
            return await self.complete_all(plan_id)
        return self._plans.get(plan_id)

    # -- stagnation ------------------------------------------------------------

    def _maybe_arm_stagnation(self) -> None:
        if self._stagnation_fired or self._scheduler.is_armed(STAGNATION_TIMER):
            return
        if not self.visible_plans():
            return
        self._scheduler.arm(STAGNATION_TIMER, self._policy.stagnation, self._stagnation_expired)

    def _reset_stagnation(self) -> None:
        if self._stagnation_fired:
            return
        self._scheduler.cancel(STAGNATION_TIMER)
        self._maybe_arm_stagnation()

    async def _stagnation_expired(self) -> None:
        self._stagnation_fired = True
        plan_ids = [plan.id for plan in self.visible_plans()]
        logger.info("stagnation detected", extra={"plans": len(plan_ids)})
        self._bus.emit(SignalKind.STAGNATION_PROMPT, plan_ids=plan_ids)
        try:
            await self._store.log_event(self._user_id, "focus_stagnation", {"plan_ids": plan_ids})
        except PersistenceError as exc:
            logger.warning("event log failed: %s", exc)

    def rearm_on_restart(self) -> None:
        """A pipeline restart is the only thing that re-arms the stagnation prompt."""

        self._stagnation_fired = False
        self._scheduler.cancel(STAGNATION_TIMER)
        self._maybe_arm_stagnation()

    # -- deferred deletion -----------------------------------------------------

    async def delete_plan(self, plan_id: str) -> PendingDeletion:
        self.record_activity()
        plan = self.get_plan(plan_id)
        return await self._start_deletion("plan", plan, None, plan.task_name)

    async def delete_step(self, plan_id: str, step_id: str) -> PendingDeletion:
        self.record_activity()
        plan = self.get_plan(plan_id)
        step = plan.find_step(step_id)
        if step is None or (self.pending_deletion and self.pending_deletion.hides_step(plan_id, step_id)):
            raise ValidationError(f"unknown step {step_id}", code="unknown_step")
        return await self._start_deletion("step", plan, step_id, step.text or "step")

    async def _start_deletion(
        self,
        kind: Literal["plan", "step"],
        plan: TaskPlan,
        step_id: str | None,
        label: str,
    ) -> PendingDeletion:
        if self.pending_deletion is not None:
            await self.commit_pending_deletion()
        pending = PendingDeletion(
            kind=kind,
            plan_id=plan.id,
            step_id=step_id,
            label=label,
            deadline=self._clock() + timedelta(seconds=self._policy.deletion_undo),
        )
        self.pending_deletion = pending
        self._scheduler.arm(DELETION_TIMER, self._policy.deletion_undo, self.commit_pending_deletion)
        self._bus.emit(SignalKind.DELETION_PENDING, kind=kind, plan_id=plan.id, step_id=step_id, label=label)
        return pending

    def undo_delete(self) -> bool:
        self.record_activity()
        pending, self.pending_deletion = self.pending_deletion, None
        self._scheduler.cancel(DELETION_TIMER)
        if pending is None:
            return False
        logger.info("deletion undone", extra={"kind": pending.kind, "plan_id": pending.plan_id})
        return True

    async def commit_pending_deletion(self) -> None:
        pending, self.pending_deletion = self.pending_deletion, None
        self._scheduler.cancel(DELETION_TIMER)
        if pending is None:
            return

        try:
            if pending.kind == "plan":
                self._plans.pop(pending.plan_id, None)
                self._scheduler.cancel(burst_timer(pending.plan_id))
                await self._store.delete_plan(self._user_id, pending.plan_id)
            else:
                plan = self._plans.get(pending.plan_id)
                if plan is None:
                    return
                steps = [step for step in plan.steps if step.id != pending.step_id]
                updated = plan.model_copy(update={"steps": steps})
                self._plans[plan.id] = updated
                await self._store.update_plan(self._user_id, updated)
        except PersistenceError as exc:
            logger.warning("deletion commit failed: %s", exc, extra={"plan_id": pending.plan_id})
            self._bus.emit(SignalKind.SYNC_FAILED, plan_id=pending.plan_id, command=f"delete_{pending.kind}")
            return
        logger.info("deletion committed", extra={"kind": pending.kind, "plan_id": pending.plan_id})
        self._bus.emit(
            SignalKind.DELETION_COMMITTED,
            kind=pending.kind,
            plan_id=pending.plan_id,
            step_id=pending.step_id,
        )
        if pending.kind == "step":
            # Dropping the last open step finishes the plan.
            await self._on_plan_progress(self._plans[pending.plan_id])
        if not self.visible_plans():
            self._scheduler.cancel(STAGNATION_TIMER)

    # -- quick capture ---------------------------------------------------------

    async def quick_capture(self, text: str) -> TaskPlan:
        """Park a stray thought as a low-energy plan without touching the running session."""

        text = text.strip()
        if not text:
            raise ValidationError("nothing to capture", code="empty")
        self.record_activity()
        plan = TaskPlan(task_name=text, due_date=DueDate.NO_RUSH, energy_required="low")
        self._plans[plan.id] = plan
        self._bus.emit(SignalKind.CAPTURED, plan_id=plan.id, text=text)
        try:
            await self._store.insert_plan(self._user_id, plan)
        except PersistenceError as exc:
            logger.warning("capture insert failed: %s", exc, extra={"plan_id": plan.id})
            self._bus.emit(SignalKind.SYNC_FAILED, plan_id=plan.id, command="quick_capture")
        self._maybe_arm_stagnation()
        return plan

    async def close(self) -> None:
        """Flush a pending deletion and clear every focus timer."""

        if self.pending_deletion is not None:
            await self.commit_pending_deletion()
        self._scheduler.cancel_prefix("focus.")


__all__ = [
    "BURST_TIMER_PREFIX",
    "DELETION_TIMER",
    "FocusSessionMonitor",
    "IDLE_TIMER",
    "PLAN_REWARD",
    "STAGNATION_TIMER",
    "STEP_REWARD",
    "burst_timer",
]

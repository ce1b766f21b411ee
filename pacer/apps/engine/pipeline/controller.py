"""Five-stage task pipeline with a resumable draft snapshot.

``brain_dump -> triage -> context -> breakdown -> dashboard``

Every stage change writes the full draft before any advice call is awaited,
so a reload after stage N resumes at stage N with the same payload. A stage
saved with a pending advice call re-issues that call on resume. Store
failures never stop the flow: they are logged and the in-memory draft stays
authoritative for the rest of the session.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Literal, Sequence

from pydantic import ValidationError as SchemaError

from pacer.apps.core.signals import SignalBus, SignalKind
from pacer.apps.core.store import BaseStore
from pacer.apps.core.timers import TimerScheduler
from pacer.apps.core.timing import Clock, TimingPolicy, system_clock
from pacer.apps.services.advice import BaseAdviceService
from pacer.libs.errors import PersistenceError, ValidationError
from pacer.libs.schemas.drafts import (
    BreakdownPayload,
    BrainDumpPayload,
    ContextPayload,
    DashboardPayload,
    DraftFlags,
    SessionDraft,
    Stage,
    TriagePayload,
)
from pacer.libs.schemas.focus import (
    CandidateTask,
    ContextualizedTask,
    Degradation,
    DueDate,
    Goal,
    TaskPlan,
)
from pacer.libs.schemas.settings import get_settings

from .capacity import CapacityReport, check_capacity, is_task_too_big, remaining_minutes
from .fallback import breakdown_with_fallback, parse_with_fallback
from .routing import EntryRequest, Route, draft_expired, route_entry

logger = logging.getLogger(__name__)

DRAFT_SAVE_TIMER = "pipeline.draft_save"
MIN_BRAIN_DUMP_CHARS = 3
SPRINT_MAX_TASKS = 3

TriageChoice = Literal["break_it_down", "proceed_anyway"]
RestartHook = Callable[[], Awaitable[None] | None]


class EnergyGuardBlocked(ValidationError):
    """Low energy and a task that looks too big: the user has to choose."""

    def __init__(self, task: CandidateTask) -> None:
        super().__init__(f"'{task.text}' looks big for a low-energy session", code="too_big")
        self.task = task


class PipelineController:
    def __init__(
        self,
        store: BaseStore,
        advice: BaseAdviceService,
        scheduler: TimerScheduler,
        bus: SignalBus,
        *,
        user_id: str,
        policy: TimingPolicy | None = None,
        clock: Clock = system_clock,
        advice_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._advice = advice
        self._scheduler = scheduler
        self._bus = bus
        self._user_id = user_id
        self._policy = policy or TimingPolicy()
        self._clock = clock
        self._advice_timeout = advice_timeout or get_settings().advice_timeout_seconds
        self._restart_hooks: List[RestartHook] = []
        self.draft: SessionDraft | None = None
        self.route: Route | None = None

    # -- state -----------------------------------------------------------------

    @property
    def stage(self) -> Stage | None:
        return self.draft.stage if self.draft else None

    @property
    def flags(self) -> DraftFlags:
        return self.draft.flags if self.draft else DraftFlags()

    def on_restart(self, hook: RestartHook) -> None:
        self._restart_hooks.append(hook)

    def _require(self, stage: Stage) -> SessionDraft:
        if self.draft is None or self.draft.stage != stage:
            current = self.draft.stage.value if self.draft else "none"
            raise ValidationError(f"expected stage {stage.value}, pipeline is at {current}", code="wrong_stage")
        return self.draft

    def _set(self, stage: Stage, payload, *, flags: DraftFlags | None = None) -> SessionDraft:
        previous = self.stage
        self.draft = SessionDraft(stage=stage, payload=payload, flags=flags or self.flags, saved_at=self._clock())
        if previous != stage:
            logger.info(
                "pipeline stage",
                extra={"from": previous.value if previous else None, "to": stage.value, "user_id": self._user_id},
            )
            self._bus.emit(SignalKind.STAGE_CHANGED, stage=stage.value, previous=previous.value if previous else None)
        return self.draft

    async def _save(self) -> None:
        self._scheduler.cancel(DRAFT_SAVE_TIMER)
        if self.draft is None:
            return
        try:
            await self._store.save_draft(self._user_id, self.draft)
        except PersistenceError as exc:
            logger.warning("draft save failed: %s", exc, extra={"stage": self.draft.stage.value})

    async def _clear_draft(self) -> None:
        self._scheduler.cancel(DRAFT_SAVE_TIMER)
        try:
            await self._store.delete_draft(self._user_id)
        except PersistenceError as exc:
            logger.warning("draft delete failed: %s", exc)

    def _surface_degradation(self, degradation: Degradation, stage: Stage) -> None:
        if not degradation.degraded:
            return
        reason = degradation.reason.value if degradation.reason else None
        self._bus.emit(SignalKind.DEGRADED, stage=stage.value, reason=reason)

    async def _log_degradation(self, degradation: Degradation, stage: Stage) -> None:
        if not degradation.degraded:
            return
        try:
            await self._store.log_event(
                self._user_id,
                "advice_fallback",
                {"stage": stage.value, "reason": degradation.reason.value if degradation.reason else None},
            )
        except PersistenceError as exc:
            logger.warning("event log failed: %s", exc)

    # -- entry -----------------------------------------------------------------

    async def enter(self, request: EntryRequest | None = None) -> SessionDraft:
        """Route into the pipeline once, resuming a saved draft when there is one."""

        request = request or EntryRequest()
        now = self._clock()
        draft = await self._load_draft()
        if draft is not None and (
            draft.stage == Stage.DASHBOARD or draft_expired(draft, now, self._policy.draft_max_age)
        ):
            logger.info("discarding finished or expired draft", extra={"saved_at": draft.saved_at.isoformat()})
            await self._clear_draft()
            draft = None

        plans: Sequence[TaskPlan] = []
        goals: Sequence[Goal] = []
        if draft is None:
            plans, goals = await self._load_context()

        route = route_entry(request, draft=draft, plans=plans, goals=goals, now=now)
        self.route = route
        self.draft = route.draft
        logger.info("pipeline entry", extra={"rule": route.rule, "stage": route.stage.value, "user_id": self._user_id})
        self._bus.emit(SignalKind.STAGE_CHANGED, stage=route.stage.value, previous=None, rule=route.rule)

        if route.rule != "resume" and route.stage != Stage.DASHBOARD:
            await self._save()
        if route.rule == "resume":
            await self._resume_pending()
        return self.draft

    async def _load_draft(self) -> SessionDraft | None:
        try:
            return await self._store.load_draft(self._user_id)
        except PersistenceError as exc:
            logger.warning("draft load failed: %s", exc)
            return None
        except SchemaError as exc:
            logger.warning("stored draft is malformed, starting fresh: %s", exc)
            await self._clear_draft()
            return None

    async def _load_context(self) -> tuple[List[TaskPlan], List[Goal]]:
        try:
            plans = await self._store.list_active_plans(self._user_id)
            goals = await self._store.list_active_goals(self._user_id)
        except PersistenceError as exc:
            logger.warning("entry context load failed: %s", exc)
            return [], []
        return plans, goals

    async def _resume_pending(self) -> None:
        draft = self.draft
        if draft is None:
            return
        payload = draft.payload
        if isinstance(payload, TriagePayload) and payload.parse_pending:
            logger.info("re-issuing parse for resumed draft")
            await self._run_parse(payload.raw_text)
        elif isinstance(payload, BreakdownPayload) and payload.breakdown_pending:
            logger.info("re-issuing breakdown for resumed draft")
            await self._run_breakdowns(payload.contextualized)

    # -- brain dump ------------------------------------------------------------

    def update_brain_dump_text(self, text: str) -> None:
        """Keep the typed text in the draft; the save is debounced."""

        draft = self._require(Stage.BRAIN_DUMP)
        self.draft = draft.model_copy(update={"payload": BrainDumpPayload(raw_text=text), "saved_at": self._clock()})
        self._scheduler.arm(DRAFT_SAVE_TIMER, self._policy.draft_save_debounce, self._save)

    async def submit_brain_dump(self, text: str | None = None) -> SessionDraft:
        draft = self._require(Stage.BRAIN_DUMP)
        raw = text if text is not None else draft.payload.raw_text
        if len(raw.strip()) < MIN_BRAIN_DUMP_CHARS:
            raise ValidationError("write a little more before continuing", code="too_short")

        self._set(Stage.TRIAGE, TriagePayload(raw_text=raw, parse_pending=True))
        await self._save()
        await self._run_parse(raw)
        return self.draft

    async def _run_parse(self, raw: str) -> None:
        candidates, degradation = await parse_with_fallback(self._advice, raw, timeout=self._advice_timeout)
        current = self.draft
        # The user may have navigated away while parse() was in flight.
        if (
            current is None
            or not isinstance(current.payload, TriagePayload)
            or not current.payload.parse_pending
            or current.payload.raw_text != raw
        ):
            logger.info("dropping stale parse result")
            return
        payload = current.payload.model_copy(
            update={"candidates": candidates, "parse_pending": False, "degradation": degradation}
        )
        self.draft = current.model_copy(update={"payload": payload, "saved_at": self._clock()})
        await self._save()
        self._surface_degradation(degradation, Stage.TRIAGE)
        await self._log_degradation(degradation, Stage.TRIAGE)
        self.triage_capacity()

    # -- triage ----------------------------------------------------------------

    def _triage_payload(self) -> TriagePayload:
        payload = self._require(Stage.TRIAGE).payload
        if payload.parse_pending:
            raise ValidationError("tasks are still being sorted", code="pending")
        return payload

    async def _replace_triage(self, **changes) -> SessionDraft:
        payload = self._triage_payload().model_copy(update=changes)
        self.draft = self.draft.model_copy(update={"payload": payload, "saved_at": self._clock()})
        await self._save()
        return self.draft

    async def remove_candidate(self, task_id: str) -> SessionDraft:
        payload = self._triage_payload()
        remaining = [task for task in payload.candidates if task.id != task_id]
        draft = await self._replace_triage(candidates=remaining)
        self.triage_capacity()
        return draft

    async def edit_candidate(self, task_id: str, text: str) -> SessionDraft:
        if not text.strip():
            raise ValidationError("a task needs some text", code="empty")
        payload = self._triage_payload()
        if not any(task.id == task_id for task in payload.candidates):
            raise ValidationError(f"unknown task {task_id}", code="unknown_task")
        candidates = [
            task.model_copy(update={"text": text.strip()}) if task.id == task_id else task
            for task in payload.candidates
        ]
        draft = await self._replace_triage(candidates=candidates)
        self.triage_capacity()
        return draft

    def triage_capacity(self) -> CapacityReport:
        """Compare the estimated work against the time left today and flag overflow."""

        payload = self._triage_payload()
        budget = remaining_minutes(
            self._clock(),
            cutoff_hour=self._policy.daily_cutoff_hour,
            fallback_budget=self._policy.after_cutoff_budget_minutes,
            timezone=self._policy.timezone,
        )
        report = check_capacity([task.text for task in payload.candidates], budget)
        if report.overcapacity:
            self._bus.emit(
                SignalKind.OVERCAPACITY,
                total_minutes=report.total_minutes,
                budget_minutes=report.budget_minutes,
                overflow_minutes=report.overflow_minutes,
                can_defer=report.can_defer,
            )
        return report

    async def defer_last(self) -> SessionDraft:
        """Move the last candidate out of today's list; it is kept, not dropped."""

        payload = self._triage_payload()
        if len(payload.candidates) < 2:
            raise ValidationError("nothing left to defer", code="nothing_to_defer")
        *kept, last = payload.candidates
        draft = await self._replace_triage(candidates=kept, deferred=[*payload.deferred, last])
        logger.info("deferred triage item", extra={"task_id": last.id})
        self.triage_capacity()
        return draft

    async def confirm_triage(self, choice: TriageChoice | None = None) -> SessionDraft:
        payload = self._triage_payload()
        tasks = list(payload.candidates)
        if not tasks:
            raise ValidationError("select at least one task", code="no_tasks")
        if self.flags.sprint and len(tasks) > SPRINT_MAX_TASKS:
            raise ValidationError(
                f"sprint mode works on your top {SPRINT_MAX_TASKS}; trim the list first",
                code="sprint_trim",
            )

        if self.flags.energy == "low":
            flagged = next((task for task in tasks if is_task_too_big(task.text)), None)
            if flagged is not None:
                if choice is None:
                    raise EnergyGuardBlocked(flagged)
                if choice == "break_it_down":
                    tasks = [flagged]

        self._set(
            Stage.CONTEXT,
            ContextPayload(candidates=tasks, degradation=payload.degradation, deferred=payload.deferred),
        )
        await self._save()
        return self.draft

    # -- context ---------------------------------------------------------------

    async def complete_context(self, tasks: Sequence[ContextualizedTask]) -> SessionDraft:
        payload = self._require(Stage.CONTEXT).payload
        if not tasks:
            raise ValidationError("select at least one task", code="no_tasks")
        contextualized = list(tasks)
        self._set(
            Stage.BREAKDOWN,
            BreakdownPayload(
                contextualized=contextualized,
                breakdown_pending=True,
                degradation=payload.degradation,
                deferred=payload.deferred,
            ),
        )
        await self._save()
        await self._run_breakdowns(contextualized)
        return self.draft

    async def _run_breakdowns(self, contextualized: Sequence[ContextualizedTask]) -> None:
        breakdowns = []
        degradation = Degradation()
        for task in contextualized:
            breakdown, task_degradation = await breakdown_with_fallback(
                self._advice, task, timeout=self._advice_timeout
            )
            breakdowns.append(breakdown)
            if task_degradation.degraded and not degradation.degraded:
                degradation = task_degradation

        current = self.draft
        if (
            current is None
            or not isinstance(current.payload, BreakdownPayload)
            or not current.payload.breakdown_pending
            or current.payload.contextualized != list(contextualized)
        ):
            logger.info("dropping stale breakdown result")
            return
        if not degradation.degraded:
            degradation = current.payload.degradation
        payload = current.payload.model_copy(
            update={"breakdowns": breakdowns, "breakdown_pending": False, "degradation": degradation}
        )
        self.draft = current.model_copy(update={"payload": payload, "saved_at": self._clock()})
        await self._save()
        self._surface_degradation(degradation, Stage.BREAKDOWN)
        await self._log_degradation(degradation, Stage.BREAKDOWN)

    # -- breakdown -------------------------------------------------------------

    def _breakdown_payload(self) -> BreakdownPayload:
        payload = self._require(Stage.BREAKDOWN).payload
        if payload.breakdown_pending:
            raise ValidationError("steps are still being generated", code="pending")
        return payload

    async def edit_breakdown_step(self, task_index: int, step_id: str, text: str) -> SessionDraft:
        if not text.strip():
            raise ValidationError("a step needs some text", code="empty")
        payload = self._breakdown_payload()
        if not 0 <= task_index < len(payload.breakdowns):
            raise ValidationError(f"no breakdown at {task_index}", code="unknown_task")
        breakdown = payload.breakdowns[task_index]
        if not any(step.id == step_id for step in breakdown.steps):
            raise ValidationError(f"unknown step {step_id}", code="unknown_step")
        steps = [
            step.model_copy(update={"text": text.strip()}) if step.id == step_id else step
            for step in breakdown.steps
        ]
        breakdowns = list(payload.breakdowns)
        breakdowns[task_index] = breakdown.model_copy(update={"steps": steps})
        self.draft = self.draft.model_copy(
            update={"payload": payload.model_copy(update={"breakdowns": breakdowns}), "saved_at": self._clock()}
        )
        await self._save()
        return self.draft

    async def start_focusing(self) -> List[TaskPlan]:
        """Persist every breakdown (and deferred item) as a plan and finish the pipeline.

        When an insert fails the pipeline stays at breakdown with only the
        unsaved items left in the draft, and the plans that did save are
        returned.
        """

        payload = self._breakdown_payload()
        if not payload.breakdowns:
            raise ValidationError("nothing to focus on yet", code="no_tasks")

        flags = self.flags
        link_goal = flags.handoff_goal_id is not None and len(payload.breakdowns) == 1
        plans = [
            TaskPlan(
                task_name=breakdown.task_name,
                steps=[step.model_copy(update={"completed": False}) for step in breakdown.steps],
                due_date=breakdown.due_date,
                energy_required=breakdown.energy_level,
                related_goal_id=flags.handoff_goal_id if link_goal else None,
                related_step_id=flags.handoff_step_id if link_goal else None,
            )
            for breakdown in payload.breakdowns
        ]
        plans.extend(
            TaskPlan(task_name=task.text, due_date=DueDate.NO_RUSH, energy_required="low")
            for task in payload.deferred
        )

        saved: List[TaskPlan] = []
        unsaved: List[int] = []
        for index, plan in enumerate(plans):
            try:
                saved.append(await self._store.insert_plan(self._user_id, plan))
            except PersistenceError as exc:
                logger.warning("plan insert failed: %s", exc, extra={"plan_id": plan.id})
                unsaved.append(index)

        if unsaved:
            # Only the unsaved items stay in the draft so a retry never duplicates a plan.
            count = len(payload.breakdowns)
            remaining = payload.model_copy(
                update={
                    "breakdowns": [payload.breakdowns[i] for i in unsaved if i < count],
                    "deferred": [payload.deferred[i - count] for i in unsaved if i >= count],
                }
            )
            if not link_goal:
                flags = flags.model_copy(update={"handoff_goal_id": None, "handoff_step_id": None})
            self.draft = self.draft.model_copy(
                update={"payload": remaining, "flags": flags, "saved_at": self._clock()}
            )
            await self._save()
            self._bus.emit(
                SignalKind.SYNC_FAILED,
                command="start_focusing",
                plan_ids=[plans[i].id for i in unsaved],
            )
            logger.warning(
                "pipeline kept open with unsaved plans",
                extra={"saved": len(saved), "unsaved": len(unsaved), "user_id": self._user_id},
            )
            return saved

        logger.info("pipeline complete", extra={"plans": len(saved), "user_id": self._user_id})
        await self._clear_draft()
        self._set(Stage.DASHBOARD, DashboardPayload(), flags=DraftFlags())
        return saved

    # -- navigation ------------------------------------------------------------

    async def back(self) -> SessionDraft:
        draft = self.draft
        if draft is None:
            raise ValidationError("pipeline has not been entered", code="wrong_stage")
        payload = draft.payload
        if isinstance(payload, TriagePayload):
            self._set(Stage.BRAIN_DUMP, BrainDumpPayload(raw_text=payload.raw_text))
        elif isinstance(payload, ContextPayload):
            self._set(
                Stage.TRIAGE,
                TriagePayload(
                    raw_text="",
                    candidates=payload.candidates,
                    degradation=payload.degradation,
                    deferred=payload.deferred,
                ),
            )
        elif isinstance(payload, BreakdownPayload):
            candidates = [CandidateTask(id=task.id, text=task.text) for task in payload.contextualized]
            self._set(
                Stage.CONTEXT,
                ContextPayload(candidates=candidates, degradation=payload.degradation, deferred=payload.deferred),
            )
        else:
            raise ValidationError(f"cannot go back from {draft.stage.value}", code="wrong_stage")
        await self._save()
        return self.draft

    async def restart(self) -> SessionDraft:
        """Drop the draft and start over at brain_dump."""

        await self._clear_draft()
        self._set(Stage.BRAIN_DUMP, BrainDumpPayload(), flags=DraftFlags())
        for hook in list(self._restart_hooks):
            try:
                result = hook()
                if result is not None:
                    await result
            except Exception:
                logger.exception("restart hook failed")
        return self.draft

    async def skip_to_dashboard(self) -> SessionDraft:
        await self._clear_draft()
        self._set(Stage.DASHBOARD, DashboardPayload(), flags=DraftFlags())
        return self.draft

    def close(self) -> None:
        self._scheduler.cancel_prefix("pipeline.")


__all__ = ["DRAFT_SAVE_TIMER", "EnergyGuardBlocked", "PipelineController", "TriageChoice"]

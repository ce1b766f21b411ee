"""Optimistic plan mutations as command objects.

A command applies its change to the local plan, the monitor commits the
resulting row, and on a failed commit the command rolls back only its own
change, and only if nothing has overwritten it since.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from pacer.libs.errors import ValidationError
from pacer.libs.schemas.focus import DueDate, MicroStep, TaskPlan


def _replace_step(plan: TaskPlan, step_id: str, **changes) -> TaskPlan:
    steps: List[MicroStep] = [
        step.model_copy(update=changes) if step.id == step_id else step for step in plan.steps
    ]
    return plan.model_copy(update={"steps": steps})


def _require_step(plan: TaskPlan, step_id: str) -> MicroStep:
    step = plan.find_step(step_id)
    if step is None:
        raise ValidationError(f"unknown step {step_id}", code="unknown_step")
    return step


class PlanCommand(ABC):
    plan_id: str

    @abstractmethod
    def apply(self, plan: TaskPlan) -> TaskPlan:
        """Return ``plan`` with this change applied."""

    @abstractmethod
    def is_applied(self, plan: TaskPlan) -> bool:
        """True while ``plan`` still carries exactly this command's change."""

    @abstractmethod
    def rollback(self, plan: TaskPlan) -> TaskPlan: ...

    def describe(self) -> str:
        return type(self).__name__


@dataclass
class ToggleStep(PlanCommand):
    plan_id: str
    step_id: str
    before: bool | None = None

    @property
    def after(self) -> bool | None:
        return None if self.before is None else not self.before

    @property
    def completes(self) -> bool:
        return self.before is False

    def apply(self, plan: TaskPlan) -> TaskPlan:
        step = _require_step(plan, self.step_id)
        self.before = step.completed
        return _replace_step(plan, self.step_id, completed=not step.completed)

    def is_applied(self, plan: TaskPlan) -> bool:
        step = plan.find_step(self.step_id)
        return step is not None and step.completed == self.after

    def rollback(self, plan: TaskPlan) -> TaskPlan:
        return _replace_step(plan, self.step_id, completed=self.before)


@dataclass
class CompleteAll(PlanCommand):
    plan_id: str
    newly_completed: List[str] = field(default_factory=list)

    def apply(self, plan: TaskPlan) -> TaskPlan:
        self.newly_completed = [step.id for step in plan.steps if not step.completed]
        steps = [step.model_copy(update={"completed": True}) for step in plan.steps]
        return plan.model_copy(update={"steps": steps})

    def is_applied(self, plan: TaskPlan) -> bool:
        return any(
            step.completed for step in plan.steps if step.id in self.newly_completed
        )

    def rollback(self, plan: TaskPlan) -> TaskPlan:
        steps = [
            step.model_copy(update={"completed": False}) if step.id in self.newly_completed else step
            for step in plan.steps
        ]
        return plan.model_copy(update={"steps": steps})


@dataclass
class RenameStep(PlanCommand):
    plan_id: str
    step_id: str
    text: str
    previous: str | None = None

    def apply(self, plan: TaskPlan) -> TaskPlan:
        if not self.text.strip():
            raise ValidationError("a step needs some text", code="empty")
        self.text = self.text.strip()
        self.previous = _require_step(plan, self.step_id).text
        return _replace_step(plan, self.step_id, text=self.text)

    def is_applied(self, plan: TaskPlan) -> bool:
        step = plan.find_step(self.step_id)
        return step is not None and step.text == self.text

    def rollback(self, plan: TaskPlan) -> TaskPlan:
        return _replace_step(plan, self.step_id, text=self.previous)


@dataclass
class RenamePlan(PlanCommand):
    plan_id: str
    task_name: str
    previous: str | None = None

    def apply(self, plan: TaskPlan) -> TaskPlan:
        if not self.task_name.strip():
            raise ValidationError("a task needs a name", code="empty")
        self.task_name = self.task_name.strip()
        self.previous = plan.task_name
        return plan.model_copy(update={"task_name": self.task_name})

    def is_applied(self, plan: TaskPlan) -> bool:
        return plan.task_name == self.task_name

    def rollback(self, plan: TaskPlan) -> TaskPlan:
        return plan.model_copy(update={"task_name": self.previous})


@dataclass
class Deprioritize(PlanCommand):
    """Push a today/tomorrow plan back to ``no_rush``."""

    plan_id: str
    previous: DueDate | None = None

    def apply(self, plan: TaskPlan) -> TaskPlan:
        if plan.due_date not in (DueDate.TODAY, DueDate.TOMORROW):
            raise ValidationError("only today or tomorrow plans can be deprioritized", code="not_urgent")
        self.previous = plan.due_date
        return plan.model_copy(update={"due_date": DueDate.NO_RUSH})

    def is_applied(self, plan: TaskPlan) -> bool:
        return plan.due_date == DueDate.NO_RUSH

    def rollback(self, plan: TaskPlan) -> TaskPlan:
        return plan.model_copy(update={"due_date": self.previous})


__all__ = [
    "CompleteAll",
    "Deprioritize",
    "PlanCommand",
    "RenamePlan",
    "RenameStep",
    "ToggleStep",
]

"""Soft-deleted plan or step waiting out its undo window."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pacer.libs.schemas.focus import TaskPlan


@dataclass(frozen=True)
class PendingDeletion:
    kind: Literal["plan", "step"]
    plan_id: str
    label: str
    deadline: datetime
    step_id: str | None = None

    def hides_plan(self, plan_id: str) -> bool:
        return self.kind == "plan" and self.plan_id == plan_id

    def hides_step(self, plan_id: str, step_id: str) -> bool:
        return self.kind == "step" and self.plan_id == plan_id and self.step_id == step_id

    def visible(self, plan: TaskPlan) -> TaskPlan | None:
        """How ``plan`` should look to everything else while this deletion is pending."""

        if self.hides_plan(plan.id):
            return None
        if self.kind == "step" and self.plan_id == plan.id:
            steps = [step for step in plan.steps if step.id != self.step_id]
            return plan.model_copy(update={"steps": steps})
        return plan


__all__ = ["PendingDeletion"]

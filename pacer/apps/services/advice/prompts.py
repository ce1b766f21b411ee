"""Prompt builders for the advice model."""

from __future__ import annotations

from datetime import datetime

from pacer.libs.schemas.focus import DueDate

SYSTEM_PROMPT = (
    "You are a calm ADHD coach. You answer with valid JSON only, "
    "without prose or markdown."
)

_DEADLINE_CONTEXT = {
    DueDate.TOMORROW: "Due TOMORROW. Suggest steps spread across tomorrow with reasonable pacing.",
    DueDate.THIS_WEEK: "Due THIS WEEK. Spread steps across multiple days with natural breaks.",
    DueDate.NO_RUSH: "No hard deadline. Suggest a relaxed pace, a step or two per day.",
}

_ENERGY_CONTEXT = {
    "low": "User energy is LOW: steps must be very small and gentle. The first step should be trivially easy.",
    "high": "User energy is HIGH: they can handle more substantial steps, but keep them focused.",
    "medium": "User energy is MODERATE: balance challenge and manageability.",
}


def _time_of_day(now: datetime) -> str:
    if now.hour < 12:
        return "morning"
    if now.hour < 17:
        return "afternoon"
    return "evening"


def parse_prompt(text: str) -> str:
    return f"""The user just did a "brain dump": a messy stream of thoughts about what is on their mind.

BRAIN DUMP TEXT:
"{text}"

INSTRUCTIONS:
1. Extract distinct, actionable tasks or goals from this text
2. Clean up the wording to be clear and specific
3. Ignore filler words, emotions, or non-actionable statements
4. Keep the user's intent; don't add tasks they didn't mention
5. Return 1-8 tasks maximum (combine related items)

RESPOND with a JSON array only:
[{{"id":"task_1", "text":"clear task description"}}]"""


def breakdown_prompt(task_name: str, due_date: DueDate, energy_level: str, *, now: datetime) -> str:
    if due_date == DueDate.TODAY:
        deadline = (
            f"Due TODAY. Current time: {_time_of_day(now)}. "
            "Suggest steps that fit within the remaining hours today."
        )
    else:
        deadline = _DEADLINE_CONTEXT.get(due_date, _DEADLINE_CONTEXT[DueDate.NO_RUSH])
    energy = _ENERGY_CONTEXT.get(energy_level, _ENERGY_CONTEXT["medium"])

    return f"""Create a micro-step plan for a task.

TASK: "{task_name}"

CONTEXT:
- {deadline}
- {energy}

PRINCIPLES:
1. Each step should take 5-15 minutes MAX
2. The first step must be embarrassingly easy
3. Steps are concrete and specific
4. Include natural check moments between steps
5. Mix easy wins in with the harder steps

Generate 3-5 micro-steps with estimated completion times.

RESPOND with a JSON array only:
[{{"id":"step_1", "text":"specific action", "dueBy":"a time like '2:00 PM' or 'Morning'", "timeEstimate":"X min"}}]"""


__all__ = ["SYSTEM_PROMPT", "breakdown_prompt", "parse_prompt"]

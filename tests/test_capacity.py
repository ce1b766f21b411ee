from datetime import datetime, timezone

import pytest

from pacer.apps.engine.pipeline import (
    check_capacity,
    estimate_task_minutes,
    is_task_too_big,
    remaining_minutes,
)

EVERYDAY_TASKS = ["wash dishes", "sort laundry", "read chapter", "tidy desk", "fold towels", "clean fridge"]


@pytest.mark.parametrize(
    "text,minutes",
    [
        ("Call the dentist", 10),
        ("reply to Sam", 10),
        ("Refactor the billing module", 45),
        ("finish the quarterly report", 45),
        ("a" * 60, 30),
        ("wash dishes", 15),
        # Quick keywords are whole words only.
        ("recall old notes", 15),
    ],
)
def test_estimate_task_minutes(text, minutes):
    assert estimate_task_minutes(text) == minutes


def test_quick_keyword_checked_before_big_keyword():
    assert estimate_task_minutes("email the project lead") == 10


def test_too_big_heuristic():
    assert is_task_too_big("organize the garage")
    assert is_task_too_big("x" * 51)
    assert not is_task_too_big("wash dishes")


def test_remaining_minutes_before_and_after_cutoff():
    eight_pm = datetime(2026, 3, 2, 20, 0, tzinfo=timezone.utc)
    assert remaining_minutes(eight_pm, cutoff_hour=21, fallback_budget=60) == 60

    late = datetime(2026, 3, 2, 22, 30, tzinfo=timezone.utc)
    assert remaining_minutes(late, cutoff_hour=21, fallback_budget=60) == 60

    morning = datetime(2026, 3, 2, 9, 15, tzinfo=timezone.utc)
    assert remaining_minutes(morning, cutoff_hour=21, fallback_budget=60) == 705


def test_remaining_minutes_uses_local_time():
    # 20:00 UTC is 15:00 in New York during standard time.
    now = datetime(2026, 3, 2, 20, 0, tzinfo=timezone.utc)
    assert remaining_minutes(now, cutoff_hour=21, fallback_budget=60, timezone="America/New_York") == 360


def test_six_tasks_overflow_an_hour():
    report = check_capacity(EVERYDAY_TASKS, 60)

    assert report.total_minutes == 90
    assert report.overcapacity
    assert report.overflow_minutes == 30
    assert report.can_defer
    assert report.estimates == (15,) * 6


def test_single_task_cannot_be_deferred():
    report = check_capacity(["Overhaul the whole garden"], 30)

    assert report.overcapacity
    assert not report.can_defer


def test_within_budget():
    report = check_capacity(["wash dishes", "call mom"], 60)

    assert not report.overcapacity
    assert report.overflow_minutes == 0

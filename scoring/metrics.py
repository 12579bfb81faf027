"""
Per-story scoring metrics.
Leaf measures (remaining effort, days until due) plus the risk predicate and urgency score built on them.
All functions are pure: the reference time is always passed in by the caller.
"""
import math
from datetime import datetime, timezone
from typing import Optional, Union

from normalize.models import StoryRecord
from .utils import (
    DEFAULT_WEIGHTS,
    MIN_DAYS_DIVISOR,
    OVERDUE_URGENCY_CEILING,
    WORKING_HOURS_PER_DAY,
    Weights,
)

SECONDS_PER_DAY = 24 * 60 * 60


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def remaining_effort(story: StoryRecord) -> float:
    """Hours of estimated work left. Over-spent stories have 0 remaining, never a negative value."""
    return max(0.0, story.duration - story.time_spent)


def days_until_due(story: StoryRecord, now: datetime) -> Union[int, float]:
    """
    Whole calendar days until the due date, rounded up.

    Returns math.inf for stories without a due date. A due date 30 minutes or 23 hours
    away both yield 1; past due dates yield a negative count.
    """
    if story.due_date is None:
        return math.inf
    delta = _as_utc(story.due_date) - _as_utc(now)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def days_needed(story: StoryRecord) -> int:
    """Working days required to finish the remaining effort."""
    return math.ceil(remaining_effort(story) / WORKING_HOURS_PER_DAY)


def is_at_risk(story: StoryRecord, now: datetime) -> bool:
    """True when the remaining work will not fit before a due date that has not passed yet."""
    days = days_until_due(story, now)
    return days_needed(story) >= days and days > 0


def urgency_score(story: StoryRecord, now: datetime, weights: Optional[Weights] = None) -> float:
    """
    Dimensionless ranking score, higher = more urgent.

    Stories due today or overdue get priority * status * 1000 regardless of remaining effort,
    so they always outrank anything with time left. Otherwise the score is
    priority * status * remaining_hours / max(days_until_due, 0.1).
    """
    weights = weights or DEFAULT_WEIGHTS
    factor = weights.priority_weight(story.priority) * weights.status_weight(story.status)
    days = days_until_due(story, now)
    if days <= 0:
        return factor * OVERDUE_URGENCY_CEILING
    return (factor * remaining_effort(story)) / max(days, MIN_DAYS_DIVISOR)


def progress_percentage(story: StoryRecord) -> float:
    """Share of the estimate already spent, in percent with one decimal.

    Can exceed 100 for over-spent stories. A zero estimate reports 0.0 instead of dividing by zero.
    """
    if story.duration <= 0:
        return 0.0
    return round(story.time_spent / story.duration * 100, 1)

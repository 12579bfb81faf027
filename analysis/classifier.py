"""
Story classifier: sorts active stories into overdue, at-risk, need-to-start and in-progress buckets.

classify() is the whole public contract. It is a pure function of the stories, the reference
time and the weight tables; it keeps no state between calls.
"""
import logging
import math
import numbers
from datetime import datetime
from typing import Iterable, List, Optional

from normalize.models import StoryRecord, Status, ACTIVE_STATUSES, STARTED_STATUSES
from scoring.metrics import (
    days_until_due,
    is_at_risk,
    progress_percentage,
    remaining_effort,
    urgency_score,
)
from scoring.utils import DEFAULT_WEIGHTS, NEED_TO_START_LIMIT, Weights
from .models import AnalyzedStory, AnalysisReport, Summary

logger = logging.getLogger(__name__)


def _is_hours(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value) and value >= 0


def _is_well_formed(story) -> bool:
    """Boundary check: the upstream normalizer should only hand over well-formed records."""
    if not isinstance(story, StoryRecord):
        return False
    if not (_is_hours(story.duration) and _is_hours(story.time_spent)):
        return False
    if not (isinstance(story.status, str) and isinstance(story.priority, str)):
        return False
    return story.due_date is None or isinstance(story.due_date, datetime)


def _accept(stories: Iterable) -> List[StoryRecord]:
    accepted = []
    for idx, story in enumerate(stories):
        if _is_well_formed(story):
            accepted.append(story)
        else:
            logger.warning("Skipping malformed story record at position %d: %r", idx, story)
    return accepted


def _by_urgency(items: List[AnalyzedStory]) -> List[AnalyzedStory]:
    # sorted() is stable, so equal scores keep their input order
    return sorted(items, key=lambda a: a.urgency_score, reverse=True)


def classify(stories: Iterable[StoryRecord], now: datetime, weights: Optional[Weights] = None) -> AnalysisReport:
    """
    Classify stories relative to `now`.

    Only active stories (To Do, In progress, In test, In deploy, Reopen) are considered.
    Overdue and at-risk are disjoint; need-to-start holds the top unstarted To Do stories
    that are in neither; in-progress lists every started story, even overdue ones.
    Malformed records are logged and skipped.
    """
    if stories is None:
        raise TypeError('classify() requires a sequence of stories, got None')
    if not isinstance(now, datetime):
        raise TypeError(f'classify() requires a datetime for now, got {type(now).__name__}')
    weights = weights or DEFAULT_WEIGHTS

    active = [s for s in _accept(stories) if s.status in ACTIVE_STATUSES]
    days = [days_until_due(s, now) for s in active]

    overdue_idx = {i for i, d in enumerate(days) if d < 0}
    at_risk_idx = {i for i, s in enumerate(active) if i not in overdue_idx and is_at_risk(s, now)}

    overdue = [
        AnalyzedStory(
            story=active[i],
            remaining_hours=remaining_effort(active[i]),
            urgency_score=urgency_score(active[i], now, weights),
            days_overdue=abs(days[i]),
        )
        for i in sorted(overdue_idx)
    ]

    at_risk = [
        AnalyzedStory(
            story=active[i],
            remaining_hours=remaining_effort(active[i]),
            urgency_score=urgency_score(active[i], now, weights),
            days_until_due=days[i],
        )
        for i in sorted(at_risk_idx)
    ]

    need_to_start = [
        AnalyzedStory(
            story=s,
            remaining_hours=remaining_effort(s),
            urgency_score=urgency_score(s, now, weights),
            days_until_due=days[i],
        )
        for i, s in enumerate(active)
        if s.status == Status.TODO and i not in overdue_idx and i not in at_risk_idx
    ]

    in_progress = [
        AnalyzedStory(
            story=s,
            remaining_hours=remaining_effort(s),
            days_until_due=days[i],
            progress_percentage=progress_percentage(s),
        )
        for i, s in enumerate(active)
        if s.status in STARTED_STATUSES
    ]

    summary = Summary(
        total_active=len(active),
        overdue_count=len(overdue),
        at_risk_count=len(at_risk),
        in_progress_count=len(in_progress),
        to_do_count=sum(1 for s in active if s.status == Status.TODO),
    )

    return AnalysisReport(
        overdue=_by_urgency(overdue),
        at_risk=_by_urgency(at_risk),
        need_to_start=_by_urgency(need_to_start)[:NEED_TO_START_LIMIT],
        in_progress=in_progress,
        summary=summary,
    )

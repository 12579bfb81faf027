"""
Data models for analysis results.
"""
import math
from dataclasses import dataclass, field
from typing import List, Optional, Union

from normalize.models import StoryRecord


def _finite_or_none(value):
    # JSON has no infinity; an undated story reports no day count
    if value is None or (isinstance(value, float) and math.isinf(value)):
        return None
    return value


@dataclass
class AnalyzedStory:
    """
    A story plus the computed fields of the bucket it was placed in.
    Fields that do not apply to the bucket stay None.
    """

    story: StoryRecord
    remaining_hours: float
    urgency_score: Optional[float] = None
    days_until_due: Optional[Union[int, float]] = None
    days_overdue: Optional[int] = None
    progress_percentage: Optional[float] = None

    @property
    def id(self) -> str:
        return self.story.id

    def to_dict(self) -> dict:
        data = self.story.to_dict()
        data['remaining_hours'] = self.remaining_hours
        for key in ('urgency_score', 'days_until_due', 'days_overdue', 'progress_percentage'):
            value = getattr(self, key)
            if value is not None:
                data[key] = _finite_or_none(value)
        return data


@dataclass
class Summary:
    total_active: int = 0
    overdue_count: int = 0
    at_risk_count: int = 0
    in_progress_count: int = 0
    to_do_count: int = 0

    def to_dict(self) -> dict:
        return {
            'total_active': self.total_active,
            'overdue_count': self.overdue_count,
            'at_risk_count': self.at_risk_count,
            'in_progress_count': self.in_progress_count,
            'to_do_count': self.to_do_count,
        }


@dataclass
class AnalysisReport:
    """
    Output of one classification run.
    """

    overdue: List[AnalyzedStory] = field(default_factory=list)
    at_risk: List[AnalyzedStory] = field(default_factory=list)
    need_to_start: List[AnalyzedStory] = field(default_factory=list)
    in_progress: List[AnalyzedStory] = field(default_factory=list)
    summary: Summary = field(default_factory=Summary)

    def to_dict(self) -> dict:
        return {
            'overdue': [s.to_dict() for s in self.overdue],
            'at_risk': [s.to_dict() for s in self.at_risk],
            'need_to_start': [s.to_dict() for s in self.need_to_start],
            'in_progress': [s.to_dict() for s in self.in_progress],
            'summary': self.summary.to_dict(),
        }

    def __str__(self):
        s = self.summary
        return (
            f"Active: {s.total_active}\n"
            f"Overdue: {s.overdue_count}\n"
            f"At Risk: {s.at_risk_count}\n"
            f"In Progress: {s.in_progress_count}\n"
            f"To Do: {s.to_do_count}"
        )

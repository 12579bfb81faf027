"""
Unified data models for normalized story records.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

# sentinel used for missing epic/project grouping keys
UNASSIGNED = 'Unassigned'


class Status(str, enum.Enum):
    """Canonical workflow status of a story."""

    TODO = 'To Do'
    IN_PROGRESS = 'In progress'
    IN_TEST = 'In test'
    IN_DEPLOY = 'In deploy'
    CLOSED = 'Closed'
    REJECTED = 'Rejected'
    WONT_DO = "Won't do"
    REOPEN = 'Reopen'

    def __str__(self):
        return self.value


class Priority(str, enum.Enum):
    """Canonical story priority."""

    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'

    def __str__(self):
        return self.value


ACTIVE_STATUSES = frozenset({Status.TODO, Status.IN_PROGRESS, Status.IN_TEST, Status.IN_DEPLOY, Status.REOPEN})
STARTED_STATUSES = frozenset({Status.IN_PROGRESS, Status.IN_TEST, Status.IN_DEPLOY})
TERMINAL_STATUSES = frozenset({Status.CLOSED, Status.REJECTED, Status.WONT_DO})


@dataclass(frozen=True)
class StoryRecord:
    """
    One work item as read from the uploaded spreadsheet.
    `status` holds the raw string when the source value was not recognized.
    """

    id: str
    description: str = ''
    epic_description: str = UNASSIGNED
    project_description: str = UNASSIGNED
    due_date: Optional[datetime] = None
    duration: float = 0.0  # hours
    time_spent: float = 0.0  # hours
    status: Union[Status, str] = Status.TODO
    priority: Priority = Priority.MEDIUM

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'description': self.description,
            'epic_description': self.epic_description,
            'project_description': self.project_description,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'duration': self.duration,
            'time_spent': self.time_spent,
            'status': str(self.status),
            'priority': str(self.priority),
        }

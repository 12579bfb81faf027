"""
Normalization utility helpers.
Small helpers to canonicalize raw spreadsheet rows into normalize.models.StoryRecord entities.
"""
import logging
import math
import numbers
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Union

import pandas as pd

from normalize.models import StoryRecord, Status, Priority, UNASSIGNED

logger = logging.getLogger(__name__)

# Excel stores dates as days since 1899-12-30 (the 1900 leap-year bug is baked into the epoch)
EXCEL_EPOCH = '1899-12-30'

_STATUS_MAP = {
    'todo': Status.TODO,
    'to do': Status.TODO,
    'wontdo': Status.WONT_DO,
    "won't do": Status.WONT_DO,
    'inprogress': Status.IN_PROGRESS,
    'in progress': Status.IN_PROGRESS,
    'intest': Status.IN_TEST,
    'in test': Status.IN_TEST,
    'indeploy': Status.IN_DEPLOY,
    'in deploy': Status.IN_DEPLOY,
    'closed': Status.CLOSED,
    'rejected': Status.REJECTED,
    'reopen': Status.REOPEN,
}

_PRIORITY_MAP = {
    'h': Priority.HIGH,
    'high': Priority.HIGH,
    'm': Priority.MEDIUM,
    'med': Priority.MEDIUM,
    'medium': Priority.MEDIUM,
    'l': Priority.LOW,
    'low': Priority.LOW,
}

# accepted column spellings per field, first non-blank wins
_ALIASES = {
    'id': ('id', 'ID', 'Id'),
    'description': ('description', 'Description'),
    'epic_description': ('epicDescription', 'epic_description', 'Epic Description'),
    'project_description': ('projectDescription', 'project_description', 'Project Description'),
    'due_date': ('dueDate', 'due_date', 'Due Date'),
    'duration': ('duration', 'Duration'),
    'time_spent': ('timeSpent', 'time_spent', 'Time Spent'),
    'status': ('status', 'Status'),
    'priority': ('priority', 'Priority'),
}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _pick(raw: Dict[str, Any], field: str) -> Any:
    """Return the first non-blank value among the aliases of `field`, or None."""
    for key in _ALIASES[field]:
        value = raw.get(key)
        if not _is_blank(value):
            return value
    return None


def _text(value: Any) -> str:
    if _is_blank(value):
        return ''
    if isinstance(value, float) and value.is_integer():
        # spreadsheet ids like 101 come back from Excel as 101.0
        return str(int(value))
    return str(value).strip()


def normalize_status(raw: Any) -> Union[Status, str]:
    """Map a free-text status onto Status.

    Missing values default to To Do; unrecognized values are returned stripped so they
    stay visible in listings but never count as active.
    """
    if _is_blank(raw):
        return Status.TODO
    text = str(raw).strip()
    return _STATUS_MAP.get(text.lower(), text)


def normalize_priority(raw: Any) -> Priority:
    """Map a free-text priority onto Priority, defaulting to medium."""
    if _is_blank(raw):
        return Priority.MEDIUM
    return _PRIORITY_MAP.get(str(raw).strip().lower(), Priority.MEDIUM)


def parse_hours(value: Any) -> float:
    """Coerce an effort cell to non-negative hours. Anything unusable counts as 0."""
    if _is_blank(value):
        return 0.0
    try:
        hours = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(hours) or hours < 0:
        return 0.0
    return hours


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a due-date cell into an aware UTC datetime, or None when absent/unparsable."""
    if _is_blank(value):
        return None
    try:
        if isinstance(value, numbers.Real) and not isinstance(value, bool):
            # Excel serial date: keep the calendar day only
            ts = pd.to_datetime(int(value), unit='D', origin=EXCEL_EPOCH, utc=True)
        else:
            ts = pd.to_datetime(value, utc=True, errors='coerce')
    except (ValueError, TypeError, OverflowError) as ex:
        logger.debug("Could not parse date %r: %s", value, ex)
        return None
    if ts is None or pd.isna(ts):
        logger.debug("Could not parse date %r", value)
        return None
    return ts.to_pydatetime().astimezone(timezone.utc)


def normalize_story(raw: Dict[str, Any]) -> StoryRecord:
    """Create a StoryRecord from one raw spreadsheet row.
    Column names vary between exports; see _ALIASES for the accepted spellings.
    """
    return StoryRecord(
        id=_text(_pick(raw, 'id')),
        description=_text(_pick(raw, 'description')),
        epic_description=_text(_pick(raw, 'epic_description')) or UNASSIGNED,
        project_description=_text(_pick(raw, 'project_description')) or UNASSIGNED,
        due_date=parse_date(_pick(raw, 'due_date')),
        duration=parse_hours(_pick(raw, 'duration')),
        time_spent=parse_hours(_pick(raw, 'time_spent')),
        status=normalize_status(_pick(raw, 'status')),
        priority=normalize_priority(_pick(raw, 'priority')),
    )

"""
Story listing helpers: grouping, lookup, filtering and sorting of parsed stories.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from normalize.models import StoryRecord, Priority, ACTIVE_STATUSES, UNASSIGNED

_PRIORITY_ORDER = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}

# undated stories sort after every dated one
_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)

SORT_KEYS = ('due_date', 'priority', 'progress')


def _group(stories: Iterable[StoryRecord], attr: str) -> Dict[str, List[StoryRecord]]:
    groups: Dict[str, List[StoryRecord]] = {}
    for story in stories:
        key = getattr(story, attr) or UNASSIGNED
        groups.setdefault(key, []).append(story)
    return groups


def group_by_project(stories: Iterable[StoryRecord]) -> Dict[str, List[StoryRecord]]:
    return _group(stories, 'project_description')


def group_by_epic(stories: Iterable[StoryRecord]) -> Dict[str, List[StoryRecord]]:
    return _group(stories, 'epic_description')


def find_story(stories: Iterable[StoryRecord], story_id: str) -> Optional[StoryRecord]:
    """Return the first story with the given id, or None."""
    for story in stories:
        if story.id == story_id:
            return story
    return None


def filter_stories(stories: Iterable[StoryRecord], which: str = 'all') -> List[StoryRecord]:
    """Filter by 'all', 'active', a priority name (high/medium/low) or an exact status value."""
    which = (which or 'all').strip()
    lowered = which.lower()
    if lowered == 'all':
        return list(stories)
    if lowered == 'active':
        return [s for s in stories if s.status in ACTIVE_STATUSES]
    if lowered in {p.value for p in Priority}:
        return [s for s in stories if s.priority.value == lowered]
    return [s for s in stories if str(s.status) == which]


def _progress_ratio(story: StoryRecord) -> float:
    return story.time_spent / story.duration if story.duration > 0 else 0.0


def sort_stories(stories: Iterable[StoryRecord], by: str = 'due_date') -> List[StoryRecord]:
    """Sort for listings: due date ascending, priority high first, or progress highest first."""
    if by == 'priority':
        return sorted(stories, key=lambda s: _PRIORITY_ORDER.get(s.priority, 0), reverse=True)
    if by == 'progress':
        return sorted(stories, key=_progress_ratio, reverse=True)
    if by == 'due_date':
        return sorted(stories, key=lambda s: s.due_date or _FAR_FUTURE)
    raise ValueError(f"Unknown sort key: {by!r} (expected one of {', '.join(SORT_KEYS)})")

"""
Scoring utility functions.
Provides the static weight tables and their YAML override loading used by scoring.metrics.
"""
import logging
import os
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple, Optional

import yaml

from normalize.models import Status, Priority

logger = logging.getLogger(__name__)

# filename used for weight YAML configuration
WEIGHTS_FILENAME = 'weights.yaml'

# assumed productive hours in one working day
WORKING_HOURS_PER_DAY = 8

# urgency multiplier for stories that are due today or overdue
OVERDUE_URGENCY_CEILING = 1000

# floor for the days-until-due divisor in the urgency formula
MIN_DAYS_DIVISOR = 0.1

# size of the need-to-start recommendation list
NEED_TO_START_LIMIT = 10

# weight used for any priority/status missing from a table
DEFAULT_WEIGHT = 1.0

DEFAULT_PRIORITY_WEIGHTS = MappingProxyType({
    Priority.HIGH: 3.0,
    Priority.MEDIUM: 2.0,
    Priority.LOW: 1.0,
})

# lower = already moving, less urgent to start
DEFAULT_STATUS_WEIGHTS = MappingProxyType({
    Status.TODO: 1.0,
    Status.REOPEN: 1.2,
    Status.IN_PROGRESS: 0.5,
    Status.IN_TEST: 0.3,
    Status.IN_DEPLOY: 0.1,
    Status.CLOSED: 0.0,
    Status.REJECTED: 0.0,
    Status.WONT_DO: 0.0,
})


class Weights(NamedTuple):
    """Frozen pair of weight tables used by urgency scoring."""

    priority: Mapping[Any, float]
    status: Mapping[Any, float]

    def priority_weight(self, priority: Any) -> float:
        return float(self.priority.get(priority, DEFAULT_WEIGHT))

    def status_weight(self, status: Any) -> float:
        return float(self.status.get(status, DEFAULT_WEIGHT))


DEFAULT_WEIGHTS = Weights(priority=DEFAULT_PRIORITY_WEIGHTS, status=DEFAULT_STATUS_WEIGHTS)


def default_weights_path() -> str:
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), 'config', WEIGHTS_FILENAME)


def _merge_table(defaults: Mapping[Any, float], overrides: Any, enum_cls) -> Mapping[Any, float]:
    """Merge YAML overrides (keyed by enum value, e.g. 'In test') over a default table."""
    merged = dict(defaults)
    if not isinstance(overrides, dict):
        return MappingProxyType(merged)
    by_value = {m.value.lower(): m for m in enum_cls}
    for key, value in overrides.items():
        member = by_value.get(str(key).strip().lower())
        if member is None:
            logger.warning("Ignoring unknown %s weight key %r", enum_cls.__name__.lower(), key)
            continue
        try:
            merged[member] = float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric weight %r for %r", value, key)
    return MappingProxyType(merged)


def load_weights(path: Optional[str] = None) -> Weights:
    """
    Load priority/status weights from a YAML file if available, otherwise return defaults.

    The file may contain `priority` and `status` sections; missing keys keep their default.
    A missing or unreadable file yields DEFAULT_WEIGHTS.
    """
    if not path:
        path = default_weights_path()
    if not os.path.exists(path):
        return DEFAULT_WEIGHTS
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as ex:
        logger.warning("Failed to read weights from %s, using defaults: %s", path, ex)
        return DEFAULT_WEIGHTS
    if not isinstance(data, dict):
        return DEFAULT_WEIGHTS
    return Weights(
        priority=_merge_table(DEFAULT_PRIORITY_WEIGHTS, data.get('priority'), Priority),
        status=_merge_table(DEFAULT_STATUS_WEIGHTS, data.get('status'), Status),
    )

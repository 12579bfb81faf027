"""
Analysis job: parse a story export, classify it and archive the result.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from analysis.classifier import classify
from ingest.inbox import Inbox
from ingest.spreadsheet import parse_file
from scoring.utils import Weights
from storage.results import ResultStore

logger = logging.getLogger(__name__)


def run_id_for(now: datetime) -> str:
    return f"analysis-{now.date().isoformat()}"


def run_analysis(
    content: bytes,
    file_name: str,
    now: datetime,
    store: Optional[ResultStore] = None,
    weights: Optional[Weights] = None,
) -> Dict[str, Any]:
    """Parse and classify one export relative to `now`.

    Returns the run payload {'timestamp', 'source_file', 'analysis'}; when a store is given the
    payload is saved under analysis-YYYY-MM-DD, replacing an earlier run from the same day.
    """
    stories = parse_file(content, file_name)
    report = classify(stories, now, weights=weights)
    payload = {
        'timestamp': now.isoformat(),
        'source_file': file_name,
        'analysis': report.to_dict(),
    }
    if store is not None:
        run_id = run_id_for(now)
        store.save(run_id, payload)
        logger.info("Analysis saved as %s", run_id)
    logger.info("Summary: %s", payload['analysis']['summary'])
    return payload


def analyze_latest(
    inbox: Inbox,
    now: datetime,
    store: Optional[ResultStore] = None,
    weights: Optional[Weights] = None,
) -> Dict[str, Any]:
    """Analyze the newest export in the inbox."""
    latest = inbox.latest_file()
    logger.info("Latest file: %s", latest)
    return run_analysis(inbox.read(latest), latest, now, store=store, weights=weights)


def get_latest_analysis(store: ResultStore) -> Optional[Dict[str, Any]]:
    return store.latest()

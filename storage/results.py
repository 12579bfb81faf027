"""
SQLite archive of analysis runs.
Stores the JSON payload of each run keyed by run id (one run per day: analysis-YYYY-MM-DD).
"""

import sqlite3
import json
import time
from typing import Optional, Any, Dict, List
import threading

# noinspection SqlResolve
SQL_CREATE = """
CREATE TABLE IF NOT EXISTS analysis_runs (
    run_id TEXT PRIMARY KEY,
    source_file TEXT,
    generated_at TEXT,
    payload TEXT,
    timestamp REAL
);
"""


class ResultStore:
    def __init__(self, path: Optional[str] = None, max_entries: Optional[int] = None):
        """Create a result store.

        :param path: SQLite file path or None for in-memory.
        :param max_entries: optional maximum number of runs to keep; the oldest are pruned when exceeded.
        """
        self.path = path or ':memory:'
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = threading.RLock()
        self.max_entries = int(max_entries) if max_entries is not None else None
        self._init_db()

    def _init_db(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(SQL_CREATE)
            self.conn.commit()

    def close(self):
        with self._lock:
            if getattr(self, 'conn', None) is not None:
                try:
                    self.conn.close()
                finally:
                    self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # noinspection SqlResolve
    def stats(self) -> Dict[str, Any]:
        """Return basic statistics about the archive: count, oldest and newest save time."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT COUNT(1), MIN(timestamp), MAX(timestamp) FROM analysis_runs')
            count, oldest, newest = cur.fetchone()
        return {
            'count': int(count or 0),
            'oldest': float(oldest) if oldest is not None else None,
            'newest': float(newest) if newest is not None else None,
        }

    # noinspection SqlResolve
    def list_runs(self, limit: int = 1000) -> List[Dict[str, Any]]:
        """Return run metadata (run_id, source_file, generated_at, timestamp), newest first."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                'SELECT run_id, source_file, generated_at, timestamp FROM analysis_runs ORDER BY timestamp DESC LIMIT ?',
                (limit,),
            )
            rows = cur.fetchall()
        return [
            {'run_id': run_id, 'source_file': source, 'generated_at': generated_at, 'timestamp': float(ts or 0)}
            for run_id, source, generated_at, ts in rows
        ]

    # noinspection SqlWithoutWhere
    def clear(self):
        """Remove every stored run."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('DELETE FROM analysis_runs')
            self.conn.commit()

    # noinspection SqlResolve
    def delete(self, run_id: str) -> int:
        """Delete a run. Returns number of rows deleted."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('DELETE FROM analysis_runs WHERE run_id = ?', (run_id,))
            self.conn.commit()
            return cur.rowcount

    # noinspection SqlResolve
    def get(self, run_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT payload FROM analysis_runs WHERE run_id = ?', (run_id,))
            row = cur.fetchone()
        return json.loads(row[0]) if row else None

    # noinspection SqlResolve
    def latest(self) -> Optional[Dict[str, Any]]:
        """Return the payload of the most recently saved run, or None when the archive is empty."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT payload FROM analysis_runs ORDER BY timestamp DESC, run_id DESC LIMIT 1')
            row = cur.fetchone()
        return json.loads(row[0]) if row else None

    # noinspection SqlResolve
    def _prune_if_needed(self):
        """Drop the oldest runs beyond max_entries."""
        if self.max_entries is None:
            return
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT COUNT(1) FROM analysis_runs')
            count = cur.fetchone()[0] or 0
            if count > self.max_entries:
                to_remove = int(count - self.max_entries)
                cur.execute('SELECT run_id FROM analysis_runs ORDER BY timestamp ASC LIMIT ?', (to_remove,))
                run_ids = [r[0] for r in cur.fetchall()]
                cur.executemany('DELETE FROM analysis_runs WHERE run_id = ?', [(r,) for r in run_ids])
            self.conn.commit()

    # noinspection SqlResolve
    def save(self, run_id: str, payload: Dict[str, Any]):
        """Store (or replace) a run payload. The payload must be JSON-serializable."""
        data = json.dumps(payload)
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                'REPLACE INTO analysis_runs(run_id, source_file, generated_at, payload, timestamp) VALUES (?, ?, ?, ?, ?)',
                (run_id, payload.get('source_file'), payload.get('timestamp'), data, time.time()),
            )
            self.conn.commit()
            self._prune_if_needed()


__all__ = ["ResultStore"]

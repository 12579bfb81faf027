"""
Spreadsheet ingestion: parse uploaded CSV/Excel story exports into normalized StoryRecords.
"""

import csv
import io
import logging
import os
from typing import List, Dict, Any

import pandas as pd

from normalize.models import StoryRecord
from normalize.util import normalize_story

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ('.csv', '.xlsx', '.xls')

# cap on the number of row errors returned by validate_stories
MAX_VALIDATION_ERRORS = 10


class UnsupportedFileFormat(ValueError):
    """Raised when a file extension is not one of SUPPORTED_EXTENSIONS."""


def file_extension(file_name: str) -> str:
    return os.path.splitext(file_name or '')[1].lower()


def parse_csv(content: bytes) -> List[StoryRecord]:
    """Parse a CSV export. The first row is the header; a UTF-8 BOM is tolerated."""
    text = content.decode('utf-8-sig') if isinstance(content, bytes) else content
    reader = csv.DictReader(io.StringIO(text, newline=''))
    return [normalize_story(row) for row in reader]


def _excel_rows(content: bytes) -> List[Dict[str, Any]]:
    df = pd.read_excel(io.BytesIO(content), sheet_name=0)
    # NaN/NaT -> None so blank cells look the same as in CSV input
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient='records')


def parse_excel(content: bytes) -> List[StoryRecord]:
    """Parse the first worksheet of an Excel workbook."""
    return [normalize_story(row) for row in _excel_rows(content)]


def parse_file(content: bytes, file_name: str) -> List[StoryRecord]:
    """Parse a story export, choosing the parser from the file extension."""
    ext = file_extension(file_name)
    if ext == '.csv':
        stories = parse_csv(content)
    elif ext in ('.xlsx', '.xls'):
        stories = parse_excel(content)
    else:
        raise UnsupportedFileFormat(f"Unsupported file format: {ext or file_name!r}")
    logger.info("Parsed %d stories from %s", len(stories), file_name)
    return stories


def validate_stories(stories: List[StoryRecord]) -> List[str]:
    """Return human-readable row errors for stories missing an id, a description or a due date.

    Only the first MAX_VALIDATION_ERRORS errors are returned; an empty list means the file is valid.
    """
    errors: List[str] = []
    for idx, story in enumerate(stories, start=1):
        if not story.id:
            errors.append(f"Row {idx}: Missing ID")
        if not story.description:
            errors.append(f"Row {idx}: Missing description")
        if story.due_date is None:
            errors.append(f"Row {idx}: Missing or invalid due date")
    return errors[:MAX_VALIDATION_ERRORS]

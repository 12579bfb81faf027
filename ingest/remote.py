"""
Remote ingestion: download a story export over HTTP(S).
"""

import os
import re
from typing import Optional, Tuple
from urllib.parse import urlparse, unquote

from storage.retry import fetch_with_retries


class DownloadError(RuntimeError):
    """Raised when a remote story export could not be fetched."""

    def __init__(self, url: str, status: int, detail: str = ''):
        self.url = url
        self.status = status
        msg = f"Failed to download {url} (status {status})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


_FILENAME_RE = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


def _file_name_from(url: str, headers: dict) -> str:
    disposition = headers.get('Content-Disposition') or headers.get('content-disposition') or ''
    match = _FILENAME_RE.search(disposition)
    if match:
        return os.path.basename(unquote(match.group(1).strip()))
    return os.path.basename(unquote(urlparse(url).path)) or 'stories.csv'


def download_spreadsheet(url: str, token: Optional[str] = None, **retry_kwargs) -> Tuple[bytes, str]:
    """Fetch a story export. Returns (content, file_name); the name decides which parser runs."""
    headers = {"Accept": "*/*"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    res = fetch_with_retries(url, headers=headers, **retry_kwargs)
    status = res.get('status', 0)
    if status != 200 or res.get('content') is None:
        raise DownloadError(url, status, res.get('error') or '')
    return res['content'], _file_name_from(url, res.get('headers') or {})

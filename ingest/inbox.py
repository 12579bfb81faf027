"""
Story inbox: a local directory holding uploaded story exports.

Uploads are stored as `stories-<timestamp><ext>`; an analysis run always reads the newest one.
"""

import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from .spreadsheet import SUPPORTED_EXTENSIONS, UnsupportedFileFormat, file_extension

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = 'stories'

# 10 MB upload limit
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class NoStoryFileError(LookupError):
    """Raised when the inbox has no file matching the requested prefix."""


class UploadTooLarge(ValueError):
    pass


class Inbox:
    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, name: str) -> str:
        return os.path.join(self.directory, os.path.basename(name))

    def list_files(self, prefix: str = '') -> List[str]:
        """Return file names in the inbox starting with `prefix`, sorted by name."""
        if not os.path.isdir(self.directory):
            return []
        return sorted(
            name for name in os.listdir(self.directory)
            if name.startswith(prefix) and os.path.isfile(self._path(name))
        )

    def latest_file(self, prefix: str = DEFAULT_PREFIX) -> str:
        """Return the most recently modified file with the prefix (ties broken by name)."""
        names = self.list_files(prefix)
        if not names:
            raise NoStoryFileError(f"No files starting with '{prefix}' found in {self.directory}")
        return max(names, key=lambda n: (os.path.getmtime(self._path(n)), n))

    def read(self, name: str) -> bytes:
        with open(self._path(name), 'rb') as fh:
            return fh.read()

    def store(self, content: bytes, original_name: str, now: Optional[datetime] = None) -> str:
        """Validate and write an upload into the inbox. Returns the stored file name."""
        ext = file_extension(original_name)
        if ext not in SUPPORTED_EXTENSIONS:
            raise UnsupportedFileFormat('Invalid file type. Only CSV and Excel files are allowed.')
        if len(content) > MAX_UPLOAD_BYTES:
            raise UploadTooLarge(f"File is {len(content)} bytes; the limit is {MAX_UPLOAD_BYTES} bytes")

        now = now or datetime.now(timezone.utc)
        # ISO timestamp with ':' and '.' replaced so the name is portable
        stamp = now.isoformat(timespec='milliseconds').replace('+00:00', 'Z').replace(':', '-').replace('.', '-')
        name = f"{DEFAULT_PREFIX}-{stamp}{ext}"

        os.makedirs(self.directory, exist_ok=True)
        with open(self._path(name), 'wb') as fh:
            fh.write(content)
        logger.info("Stored %s (%d bytes) in %s", name, len(content), self.directory)
        return name

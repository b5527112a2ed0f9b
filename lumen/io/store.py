"""
Per-folder edit store.

One JSON file in each photo folder maps file names to their persisted edit
records. Writes go to a temporary file that atomically replaces the store.
"""

import json
import os
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..exceptions import StoreError
from .sidecar import APP_NAME, RECORD_VERSION

logger = logging.getLogger(__name__)

DEFAULT_STORE_FILENAME = 'lumen-edits.json'


class FolderEditStore:
    """
    Edit records for the photos in one folder.

    Args:
        folder: Folder containing the photos
        filename: Name of the store file inside ``folder``
    """

    def __init__(self, folder: Union[str, Path], filename: str = DEFAULT_STORE_FILENAME):
        self.folder = Path(folder)
        self.path = self.folder / filename
        self._cache: Optional[Dict[str, Any]] = None

    def _read(self) -> Dict[str, Any]:
        if self._cache is not None:
            return self._cache

        if not self.path.exists():
            self._cache = {}
            return self._cache

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read edit store {self.path}: {e}") from e

        files = data.get('files') if isinstance(data, dict) else None
        if not isinstance(files, dict):
            raise StoreError(f"Edit store {self.path} has no 'files' mapping")
        self._cache = files
        return self._cache

    def _write(self, files: Dict[str, Any]) -> None:
        payload = {'version': RECORD_VERSION, 'app': APP_NAME, 'files': files}
        try:
            self.folder.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.folder), prefix='.lumen-', suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreError(f"Cannot write edit store {self.path}: {e}") from e
        self._cache = files

    def load(self, name: str) -> Optional[Dict[str, Any]]:
        """Stored record for ``name``, or None."""
        return self._read().get(name)

    def save(self, name: str, record: Dict[str, Any]) -> None:
        files = dict(self._read())
        files[name] = record
        self._write(files)
        logger.debug(f"Saved edits for {name} to {self.path}")

    def remove(self, name: str) -> bool:
        files = dict(self._read())
        if name not in files:
            return False
        del files[name]
        self._write(files)
        return True

    def has_edits(self, name: str) -> bool:
        """True when ``name`` has a non-empty stored diff."""
        try:
            record = self.load(name)
        except StoreError as e:
            logger.warning(str(e))
            return False
        return bool(record and record.get('edits'))

    def names(self):
        return sorted(self._read())

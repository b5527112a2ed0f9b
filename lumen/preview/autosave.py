"""
Debounced persistence of the active image's edits.
"""

import logging
from typing import Callable, Optional

from ..exceptions import StoreError
from ..io.sidecar import serialize_record
from ..io.store import FolderEditStore
from ..processing.history import EditHistory
from .scheduler import Debouncer, Scheduler

logger = logging.getLogger(__name__)


class AutoSaver:
    """
    Writes the sparse diff and timeline to the store after edits settle.

    A failed write is logged and leaves the in-memory edits untouched; the
    next change schedules another attempt.
    """

    def __init__(self, scheduler: Scheduler, history: EditHistory,
                 store: FolderEditStore, delay: float = 0.5):
        self.history = history
        self.store = store
        self.name: Optional[str] = None
        self.saves = 0
        self.failures = 0
        self._debouncer = Debouncer(scheduler, delay, self.save_now)
        self._unsubscribe: Callable[[], None] = history.subscribe(self._on_dirty)

    def attach(self, name: str) -> None:
        """Start tracking ``name``; pending saves for the previous image are flushed first."""
        self.flush()
        self.name = name

    def detach(self) -> None:
        self.flush()
        self.name = None

    def flush(self) -> None:
        self._debouncer.flush()

    def close(self) -> None:
        self.detach()
        self._unsubscribe()

    def _on_dirty(self) -> None:
        if self.name is not None:
            self._debouncer.trigger()

    def save_now(self) -> bool:
        """Persist the current state. Returns False if the write failed."""
        self._debouncer.cancel()
        if self.name is None:
            return False

        record = serialize_record(self.history.parameters, self.history.entries, self.history.index)
        try:
            self.store.save(self.name, record)
        except StoreError as e:
            self.failures += 1
            logger.warning(f"Autosave failed for {self.name}, edits kept in memory: {e}")
            return False

        self.saves += 1
        self.history.mark_clean()
        return True

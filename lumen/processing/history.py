"""
Edit history engine for Lumen.

Implements debounced undo/redo over immutable EditParameters snapshots.
Continuous adjustments of one parameter (a slider drag) are applied live and
grouped into a single history entry once the parameter settles.
"""

import logging
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .edits import EditParameters, ParamChange, create_default
from ..preview.scheduler import Debouncer, Scheduler


logger = logging.getLogger(__name__)


class EngineState(Enum):
    IDLE = 'idle'
    ACCUMULATING = 'accumulating'
    NAVIGATING = 'navigating'


@dataclass(frozen=True)
class HistoryEntry:
    """One point on the history timeline."""
    parameters: EditParameters
    label: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


class EditHistory:
    """
    Undo/redo timeline with debounced grouping of parameter changes.

    The engine is driven from a single event loop; ``scheduler`` supplies the
    debounce timer. Dirty subscribers are notified whenever the live
    parameters or the timeline change so the autosaver can persist them.
    """

    def __init__(self, scheduler: Scheduler, debounce_seconds: float = 0.5,
                 capacity: int = 100, initial: Optional[EditParameters] = None):
        """
        Initialize the history engine.

        Args:
            scheduler: Scheduler used for the debounce timer
            debounce_seconds: Quiet period after which a change becomes an entry
            capacity: Maximum number of timeline entries to retain
            initial: Starting parameters, defaults when omitted
        """
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")

        self.capacity = capacity
        self.state = EngineState.IDLE
        self.parameters = initial if initial is not None else create_default()
        self.entries: List[HistoryEntry] = [HistoryEntry(self.parameters, 'Open')]
        self.index = 0

        self._pending: Optional[ParamChange] = None
        self._debouncer = Debouncer(scheduler, debounce_seconds, self.flush)
        self._listeners: List[Callable[[], None]] = []
        self.dirty = False

        logger.debug(f"Initialized edit history: debounce={debounce_seconds}s, capacity={capacity}")

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    @property
    def accumulating_key(self) -> Optional[str]:
        return self._pending.key if self._pending is not None else None

    def set_param(self, change: ParamChange) -> EditParameters:
        """
        Apply a change to the live parameters.

        Returns:
            The new live parameters
        """
        if self.state is EngineState.NAVIGATING:
            self.parameters = change.apply(self.parameters)
            return self.parameters

        if self.state is EngineState.ACCUMULATING and self._pending.key != change.key:
            self.flush()

        self.parameters = change.apply(self.parameters)
        self._pending = change
        self.state = EngineState.ACCUMULATING
        self._debouncer.trigger()
        self._mark_dirty()
        return self.parameters

    def flush(self) -> bool:
        """
        Commit any pending accumulation as a history entry.

        Returns:
            True if a new entry was pushed
        """
        self._debouncer.cancel()
        if self.state is not EngineState.ACCUMULATING:
            return False

        change = self._pending
        self._pending = None
        self.state = EngineState.IDLE

        if self.parameters == self.entries[self.index].parameters:
            logger.debug(f"Change to {change.key} returned to the current entry, nothing to record")
            return False

        self._push(change.label(self.parameters))
        return True

    def end_drag(self) -> bool:
        """Slider released: commit the drag without waiting for the debounce."""
        return self.flush()

    def _push(self, label: str) -> None:
        del self.entries[self.index + 1:]
        self.entries.append(HistoryEntry(self.parameters, label))

        if len(self.entries) > self.capacity:
            removed = len(self.entries) - self.capacity
            del self.entries[:removed]
            logger.debug(f"Trimmed {removed} old history entries")

        self.index = len(self.entries) - 1
        logger.debug(f"History entry: {label}")
        self._mark_dirty()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    @property
    def can_undo(self) -> bool:
        return self.index > 0 or self.state is EngineState.ACCUMULATING

    @property
    def can_redo(self) -> bool:
        return self.index < len(self.entries) - 1

    def undo(self) -> bool:
        self.flush()
        if self.index == 0:
            logger.debug("Cannot undo: at the oldest entry")
            return False
        self._navigate(self.index - 1)
        return True

    def redo(self) -> bool:
        self.flush()
        if not self.can_redo:
            logger.debug("Cannot redo: at the newest entry")
            return False
        self._navigate(self.index + 1)
        return True

    def jump_to(self, index: int) -> None:
        """
        Move to an arbitrary timeline entry.

        Raises:
            IndexError: if ``index`` is outside the timeline
        """
        self.flush()
        if not 0 <= index < len(self.entries):
            raise IndexError(f"History index {index} out of range 0..{len(self.entries) - 1}")
        self._navigate(index)

    def _navigate(self, index: int) -> None:
        self.state = EngineState.NAVIGATING
        try:
            self.index = index
            # Entries are immutable, so sharing the snapshot is a deep copy
            self.parameters = self.entries[index].parameters
            self._mark_dirty()
        finally:
            self.state = EngineState.IDLE
        logger.debug(f"Moved to history entry {index}: {self.entries[index].label}")

    def reset_all(self) -> bool:
        """
        Return to default parameters, recording a "Reset" entry.

        Returns:
            False if the parameters were already at their defaults
        """
        self.flush()
        defaults = create_default()
        if self.parameters == defaults:
            return False
        self.parameters = defaults
        self._push('Reset')
        return True

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, parameters: EditParameters,
             timeline: Optional[Sequence[HistoryEntry]] = None,
             index: Optional[int] = None) -> None:
        """
        Replace the engine state for a newly opened image.

        A saved timeline keeps its newest ``capacity`` entries and its index
        is shifted by the entries dropped, then clamped; otherwise a fresh
        one-entry timeline starts at ``parameters``.
        Pending accumulation for the previous image is discarded, callers
        flush first if they want it kept.
        """
        self._debouncer.cancel()
        self._pending = None
        self.state = EngineState.IDLE
        self.parameters = parameters

        if timeline:
            timeline = list(timeline)
            dropped = max(0, len(timeline) - self.capacity)
            self.entries = timeline[dropped:]
            last = len(self.entries) - 1
            self.index = last if index is None else min(max(int(index) - dropped, 0), last)
        else:
            self.entries = [HistoryEntry(parameters, 'Open')]
            self.index = 0

        self.dirty = False
        logger.debug(f"Loaded history with {len(self.entries)} entries at index {self.index}")

    # ------------------------------------------------------------------
    # Dirty tracking
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a dirty-transition listener.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def mark_clean(self) -> None:
        self.dirty = False

    def _mark_dirty(self) -> None:
        self.dirty = True
        for callback in list(self._listeners):
            callback()

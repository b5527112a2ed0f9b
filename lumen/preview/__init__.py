"""
Interactive preview layer for Lumen

Scheduling primitives, viewport state and the editor session that ties the
decoder, pipeline, history and edit store together.
"""

from .scheduler import Scheduler, AsyncioScheduler, Debouncer, RedrawCoalescer
from .viewport import Viewport

__all__ = [
    "Scheduler",
    "AsyncioScheduler",
    "Debouncer",
    "RedrawCoalescer",
    "Viewport",
]

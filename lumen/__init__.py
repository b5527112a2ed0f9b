"""
Lumen: non-destructive RAW photo editing engine

Decodes RAW files into linear-light buffers, renders edit parameters through
an ordered multi-pass colour pipeline, and keeps an undoable edit history
that is persisted as a sparse diff next to the photos.
"""

__version__ = "0.1.0"
__author__ = "Lumen Developers"

from .config import load_config
from .processing.edits import EditParameters, create_default
from .exceptions import LumenError, DecodeError, PipelineError, StoreError

__all__ = [
    "load_config",
    "EditParameters",
    "create_default",
    "LumenError",
    "DecodeError",
    "PipelineError",
    "StoreError",
]

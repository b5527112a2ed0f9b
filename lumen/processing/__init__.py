"""
Edit model and image-processing math for Lumen

Includes the immutable parameter model, tone-curve baking, colour math and
the undo/redo history engine.
"""

from .edits import EditParameters, ParamChange, create_default
from .curves import bake_curve_lut
from .history import EditHistory, HistoryEntry, EngineState

__all__ = [
    "EditParameters",
    "ParamChange",
    "create_default",
    "bake_curve_lut",
    "EditHistory",
    "HistoryEntry",
    "EngineState",
]

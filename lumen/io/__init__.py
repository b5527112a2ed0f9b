"""
Persistence and export for Lumen
"""

from .sidecar import diff_from_defaults, merge_over_defaults, serialize_record, deserialize_record
from .store import FolderEditStore
from .export import ExportOptions, calc_border_dimensions, add_border, export_image

__all__ = [
    "diff_from_defaults",
    "merge_over_defaults",
    "serialize_record",
    "deserialize_record",
    "FolderEditStore",
    "ExportOptions",
    "calc_border_dimensions",
    "add_border",
    "export_image",
]

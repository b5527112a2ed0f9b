"""
Sparse serialisation of edit parameters and history.

Only fields that differ from the defaults are written, compared per
top-level field by structural equality. Loading merges the stored diff over
fresh defaults, so fields added in later versions pick up their defaults.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..processing.edits import EditParameters, FIELD_NAMES, create_default
from ..processing.history import HistoryEntry

logger = logging.getLogger(__name__)

RECORD_VERSION = 1
APP_NAME = 'lumen'


def diff_from_defaults(params: EditParameters) -> Dict[str, Any]:
    """JSON-ready dict of the top-level fields that differ from defaults."""
    current = params.to_dict()
    defaults = create_default().to_dict()
    return {name: current[name] for name in FIELD_NAMES if current[name] != defaults[name]}


def merge_over_defaults(diff: Optional[Dict[str, Any]]) -> EditParameters:
    """Rebuild parameters from a sparse diff. None or {} yields defaults."""
    if not diff:
        return create_default()
    if not isinstance(diff, dict):
        logger.warning(f"Ignoring malformed edit diff of type {type(diff).__name__}")
        return create_default()
    return EditParameters.from_dict(diff)


def _entry_to_json(entry: HistoryEntry) -> Dict[str, Any]:
    return {
        'edits': diff_from_defaults(entry.parameters),
        'label': entry.label,
        'timestamp': entry.timestamp,
    }


def _entry_from_json(data: Dict[str, Any]) -> HistoryEntry:
    return HistoryEntry(
        parameters=merge_over_defaults(data.get('edits')),
        label=str(data.get('label', '')),
        timestamp=str(data.get('timestamp') or datetime.now().isoformat()),
    )


def serialize_record(params: EditParameters,
                     timeline: Optional[List[HistoryEntry]] = None,
                     index: Optional[int] = None) -> Dict[str, Any]:
    """
    Build the persisted record for one image.

    Args:
        params: Live parameters
        timeline: History entries to persist alongside, if any
        index: Current position in ``timeline``
    """
    record = {
        'version': RECORD_VERSION,
        'app': APP_NAME,
        'last_modified': datetime.now().isoformat(),
        'edits': diff_from_defaults(params),
    }
    if timeline:
        record['history'] = {
            'entries': [_entry_to_json(entry) for entry in timeline],
            'index': len(timeline) - 1 if index is None else index,
        }
    return record


def deserialize_record(record: Optional[Dict[str, Any]]
                       ) -> Tuple[EditParameters, Optional[List[HistoryEntry]], Optional[int]]:
    """
    Inverse of serialize_record.

    Returns:
        (parameters, timeline or None, index or None)
    """
    if not record:
        return create_default(), None, None
    if not isinstance(record, dict):
        logger.warning(f"Ignoring malformed edit record of type {type(record).__name__}")
        return create_default(), None, None

    version = record.get('version', RECORD_VERSION)
    if isinstance(version, int) and version > RECORD_VERSION:
        logger.warning(f"Edit record version {version} is newer than supported {RECORD_VERSION}")

    params = merge_over_defaults(record.get('edits'))
    history = record.get('history')
    if not isinstance(history, dict) or not isinstance(history.get('entries'), list):
        return params, None, None

    timeline = [_entry_from_json(entry) for entry in history['entries'] if isinstance(entry, dict)]
    if len(timeline) != len(history['entries']):
        logger.warning(f"Dropped {len(history['entries']) - len(timeline)} malformed history entries")
    if not timeline:
        return params, None, None

    try:
        index = int(history['index']) if history.get('index') is not None else None
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed history index {history.get('index')!r}")
        index = None
    return params, timeline, index

"""
Keyboard command surface for the editor.

Each key maps to exactly one session operation. Compare-original is a hold
key: pressing starts the comparison and releasing ends it.
"""

import logging
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class Command(Enum):
    PREVIOUS_IMAGE = 'previous_image'
    NEXT_IMAGE = 'next_image'
    RESET = 'reset'
    EXPORT = 'export'
    TOGGLE_CROP = 'toggle_crop'
    UNDO = 'undo'
    REDO = 'redo'
    COMPARE = 'compare'


KEYMAP: Dict[str, Command] = {
    'left': Command.PREVIOUS_IMAGE,
    'right': Command.NEXT_IMAGE,
    'r': Command.RESET,
    'e': Command.EXPORT,
    'c': Command.TOGGLE_CROP,
    'ctrl+z': Command.UNDO,
    'ctrl+shift+z': Command.REDO,
    'ctrl+y': Command.REDO,
    '\\': Command.COMPARE,
}

_MODIFIER_ORDER = ('ctrl', 'shift', 'alt')
_ALIASES = {
    'cmd': 'ctrl',
    'meta': 'ctrl',
    'control': 'ctrl',
    'arrowleft': 'left',
    'arrowright': 'right',
}


def normalize_key(key: str) -> str:
    """Canonical form: lower case, modifiers first in ctrl/shift/alt order."""
    parts = [part.strip().lower() for part in key.split('+')]
    parts = [_ALIASES.get(part, part) for part in parts]
    modifiers = set(parts[:-1])
    return '+'.join([m for m in _MODIFIER_ORDER if m in modifiers] + [parts[-1]])


def lookup(key: str) -> Optional[Command]:
    return KEYMAP.get(normalize_key(key))


async def dispatch(session, key: str, pressed: bool = True) -> Optional[Command]:
    """
    Run the command bound to ``key`` on ``session``.

    Args:
        session: EditorSession to act on
        key: Key description such as ``"ctrl+z"`` or ``"left"``
        pressed: False for a key release; only the compare key acts on release

    Returns:
        The command that ran, or None for unbound keys
    """
    command = lookup(key)
    if command is None:
        return None

    if command is Command.COMPARE:
        if pressed:
            session.begin_compare()
        else:
            session.end_compare()
        return command

    if not pressed:
        return None

    logger.debug(f"Key {key!r} -> {command.value}")
    if command is Command.PREVIOUS_IMAGE:
        await session.previous_image()
    elif command is Command.NEXT_IMAGE:
        await session.next_image()
    elif command is Command.RESET:
        session.reset_all()
    elif command is Command.EXPORT:
        await session.export()
    elif command is Command.TOGGLE_CROP:
        session.toggle_crop()
    elif command is Command.UNDO:
        session.undo()
    elif command is Command.REDO:
        session.redo()
    return command

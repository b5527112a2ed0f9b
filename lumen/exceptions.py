"""
Exception hierarchy for Lumen.
"""

from typing import List, Tuple


class LumenError(Exception):
    """Base exception for all Lumen errors."""
    pass


class DecodeError(LumenError):
    """Raised when every decode strategy failed for a RAW buffer."""

    def __init__(self, message: str, attempts: List[Tuple[str, str]] = None):
        super().__init__(message)
        self.attempts = attempts or []


class PipelineError(LumenError):
    """Fatal error while constructing the colour pipeline."""
    pass


class ProgramCompileError(PipelineError):
    """A render pass program failed to compile or link."""

    def __init__(self, program: str, log: str):
        super().__init__(f"Program '{program}' failed to compile: {log}")
        self.program = program
        self.log = log


class StoreError(LumenError):
    """Raised when the edit store cannot be read or written."""
    pass

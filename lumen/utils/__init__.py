"""
Utility modules for Lumen
"""

from .logging import setup_console_logging, StructuredLogger

__all__ = ['setup_console_logging', 'StructuredLogger']

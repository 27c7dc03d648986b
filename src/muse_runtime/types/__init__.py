"""
Type definitions for muse-runtime.
"""

from muse_runtime.types.events import ParserEvent
from muse_runtime.types.operation import LongRunningOperation

__all__ = [
    "LongRunningOperation",
    "ParserEvent",
]

"""VM engine interface and the Lima-backed implementation."""

from __future__ import annotations

from .base import RUNNING, STOPPED, Mount, Resources, VMEngine, VMRecord
from .lima import LimaEngine, parse_list_json

__all__ = [
    'LimaEngine',
    'Mount',
    'RUNNING',
    'Resources',
    'STOPPED',
    'VMEngine',
    'VMRecord',
    'parse_list_json',
]

"""Pluggable yes/no confirmation providers."""

from __future__ import annotations

import sys
from typing import Callable

from loguru import logger

log = logger

ConfirmFn = Callable[[str], bool]


def deny(prompt: str) -> bool:
    return False


def approve(prompt: str) -> bool:
    return True


def tty_confirm(prompt: str) -> bool:
    """Ask on the terminal; without a TTY the answer is always no."""
    if not sys.stdin.isatty():
        log.warning('Not interactive; declining: {}', prompt)
        return False
    ans = input(f'{prompt} [y/N] ').strip().lower()
    return ans in {'y', 'yes'}

"""Deterministic VM names derived from host directory paths."""

from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path

from .config import DEFAULT_VM_PREFIX

SLUG_MAX_LEN = 40
HASH_LEN = 8


def path_hash(path: str | Path) -> str:
    """First 32 bits of the SHA-256 of the path string, as hex."""
    raw = os.fspath(path).encode('utf-8')
    return hashlib.sha256(raw).hexdigest()[:HASH_LEN]


def slugify(name: str) -> str:
    slug = re.sub(r'[^A-Za-z0-9]+', '-', name).strip('-')
    return slug[:SLUG_MAX_LEN].rstrip('-')


def vm_name(path: str | Path, prefix: str = DEFAULT_VM_PREFIX) -> str:
    """Return the VM identifier for a directory.

    ``/home/me/proj`` maps to ``agent-vm-proj-<8 hex digits>``. The path
    is hashed exactly as given, so callers pass an absolute path.
    """
    text = os.fspath(path)
    slug = slugify(os.path.basename(text.rstrip('/')) if text != '/' else '')
    digest = path_hash(text)
    if slug:
        return f'{prefix}{slug}-{digest}'
    return f'{prefix}{digest}'

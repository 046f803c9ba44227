"""Key/value state store for version tokens and other per-user state."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

from loguru import logger

log = logger

FILE_PREFIX = '.agent-vm-'
_KEY_RE = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$')


def _check_key(key: str) -> str:
    if not _KEY_RE.match(key or ''):
        raise ValueError(f'Invalid state key: {key!r}')
    return key


class KeyValueStore:
    """Minimal string store injected into the orchestrator."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> list[str]:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, data: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self.data.get(_check_key(key))

    def set(self, key: str, value: str) -> None:
        self.data[_check_key(key)] = value

    def delete(self, key: str) -> None:
        self.data.pop(_check_key(key), None)

    def keys(self) -> list[str]:
        return sorted(self.data)


class FileStore(KeyValueStore):
    """One file per key, ``<root>/.agent-vm-<key>``.

    Writes go through a temp file and rename so a reader never sees a
    half-written token.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / f'{FILE_PREFIX}{_check_key(key)}'

    def get(self, key: str) -> str | None:
        try:
            text = self._path(key).read_text(encoding='utf-8').strip()
        except FileNotFoundError:
            return None
        return text or None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f'.{path.name}.tmp-', dir=str(path.parent)
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as handle:
                handle.write(f'{value}\n')
            Path(tmp_name).replace(path)
        finally:
            Path(tmp_name).unlink(missing_ok=True)
        log.debug('State {} = {} ({})', key, value, path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        if not self.root.is_dir():
            return []
        out = []
        for p in self.root.iterdir():
            if p.is_file() and p.name.startswith(FILE_PREFIX):
                key = p.name[len(FILE_PREFIX):]
                if _KEY_RE.match(key):
                    out.append(key)
        return sorted(out)

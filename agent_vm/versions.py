"""Base-template version tokens and clone staleness detection."""

from __future__ import annotations

import time

from loguru import logger

from .store import KeyValueStore

log = logger

BASE_KEY = 'base-version'
# Present while a template rebuild is under way or after one failed.
INCOMPLETE_KEY = 'base-incomplete'


def clone_key(vm_name: str) -> str:
    return f'version-{vm_name}'


class VersionTracker:
    def __init__(self, store: KeyValueStore, *, clock=time.time):
        self.store = store
        self.clock = clock

    def base_version(self) -> str | None:
        return self.store.get(BASE_KEY)

    def clone_version(self, vm_name: str) -> str | None:
        return self.store.get(clone_key(vm_name))

    def record_base_version(self) -> str:
        """Write a fresh token; call only once the template is provisioned and stopped."""
        token = int(self.clock())
        prev = self.base_version()
        if prev is not None and prev.isdigit() and int(prev) >= token:
            token = int(prev) + 1
        self.store.set(BASE_KEY, str(token))
        self.store.delete(INCOMPLETE_KEY)
        log.debug('Recorded base version {}', token)
        return str(token)

    def mark_base_incomplete(self) -> None:
        self.store.set(INCOMPLETE_KEY, str(int(self.clock())))

    def base_incomplete(self) -> bool:
        return self.store.get(INCOMPLETE_KEY) is not None

    def record_clone_version(self, vm_name: str) -> str | None:
        base = self.base_version()
        if base is None:
            # Nothing to compare against later; drop any leftover token.
            self.store.delete(clone_key(vm_name))
            return None
        self.store.set(clone_key(vm_name), base)
        return base

    def clear(self, vm_name: str) -> None:
        self.store.delete(clone_key(vm_name))

    def is_stale(self, vm_name: str) -> bool:
        base = self.base_version()
        cloned = self.clone_version(vm_name)
        if base is None or cloned is None:
            return False
        return base != cloned

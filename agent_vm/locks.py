"""Advisory per-VM lock files serializing lifecycle changes across invocations."""

from __future__ import annotations

import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from loguru import logger

from .errors import LockError

log = logger


class VMLocker:
    """Exclusive ``flock`` on ``<state_dir>/locks/<vm>.lock``.

    The kernel drops the lock when the holder exits, so a crashed
    invocation never leaves a stale lock behind.
    """

    def __init__(
        self, state_dir: str | Path, *, timeout_s: float = 300, poll_s: float = 0.2
    ):
        self.lock_dir = Path(state_dir) / 'locks'
        self.timeout_s = timeout_s
        self.poll_s = poll_s

    def lock_path(self, vm_name: str) -> Path:
        return self.lock_dir / f'{vm_name}.lock'

    @contextmanager
    def __call__(self, vm_name: str) -> Iterator[Path]:
        path = self.lock_path(vm_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(path), os.O_RDWR | os.O_CREAT, 0o644)
        try:
            self._acquire(fd, vm_name)
            os.ftruncate(fd, 0)
            os.write(fd, f'{os.getpid()}\n'.encode('utf-8'))
            try:
                yield path
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def _acquire(self, fd: int, vm_name: str) -> None:
        deadline = time.monotonic() + self.timeout_s
        warned = False
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                pass
            if time.monotonic() >= deadline:
                raise LockError(
                    f'Another agent-vm invocation is still changing VM {vm_name!r}. '
                    'Retry once it has finished.'
                )
            if not warned:
                warned = True
                log.warning(
                    'Waiting for another agent-vm invocation on {} to finish...',
                    vm_name,
                )
            time.sleep(self.poll_s)

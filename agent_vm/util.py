"""Subprocess and path helpers shared by the engine adapter and config."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

log = logger


@dataclass(frozen=True)
class CmdResult:
    code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.code == 0

    @property
    def detail(self) -> str:
        """Best single-line-ish explanation of a failure."""
        return (self.stderr or self.stdout or '').strip()


class CmdError(RuntimeError):
    def __init__(self, cmd: Sequence[str], result: CmdResult):
        self.cmd = list(cmd)
        self.result = result
        super().__init__(
            f'Command failed (code={result.code}): {shell_join(self.cmd)}\n'
            f'{result.detail}'.strip()
        )


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(str(c)) for c in cmd)


def run_cmd(
    cmd: Sequence[str],
    *,
    check: bool = True,
    capture: bool = True,
    input_text: Optional[str] = None,
    env: Optional[dict[str, str]] = None,
    cwd: Optional[str] = None,
) -> CmdResult:
    """Run ``cmd`` and return its exit code and captured output.

    With ``capture=False`` the child writes straight to the caller's
    terminal and the returned stdout/stderr are empty. When
    ``input_text`` is None stdin is inherited too, which is what an
    interactive guest session needs.
    """
    argv = [str(c) for c in cmd]
    log.opt(depth=1).debug('RUN: {}', shell_join(argv))
    p = subprocess.run(
        argv,
        input=input_text,
        capture_output=capture,
        text=True,
        env=env,
        cwd=cwd,
    )
    res = CmdResult(p.returncode, p.stdout or '', p.stderr or '')
    if check and not res.ok:
        log.opt(depth=1).debug(
            'Command failed code={} cmd={} stderr={}',
            res.code,
            shell_join(argv),
            res.stderr.strip(),
        )
        raise CmdError(argv, res)
    log.opt(depth=1).debug('Command exited code={} cmd={}', res.code, argv[0])
    return res


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))

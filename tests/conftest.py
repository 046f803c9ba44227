from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import pytest

from agent_vm.config import AgentVMConfig
from agent_vm.engine import RUNNING, STOPPED, Mount, VMEngine, VMRecord
from agent_vm.errors import VMStateError


class FakeEngine(VMEngine):
    """In-memory engine that records every mutating call."""

    def __init__(self):
        self.vms: dict[str, VMRecord] = {}
        self.calls: list[tuple] = []
        self.execs: list[dict] = []
        # Exit codes to return from exec_in_guest, keyed by a substring
        # of the stdin script (or of the argv when there is no stdin).
        self.exit_codes: dict[str, int] = {}

    def add(self, name: str, state: str = STOPPED, **kw) -> VMRecord:
        rec = VMRecord(name=name, state=state, **kw)
        self.vms[name] = rec
        return rec

    def ops(self, name: str | None = None) -> list[str]:
        return [c[0] for c in self.calls if name is None or c[1] == name]

    def list_vms(self) -> list[VMRecord]:
        return list(self.vms.values())

    def create(
        self,
        name: str,
        image: str,
        *,
        disk_gb: Optional[int] = None,
        memory_gb: Optional[int] = None,
        cpus: Optional[int] = None,
        mounts: Sequence[Mount] = (),
    ) -> None:
        self.calls.append(('create', name, image))
        self.add(
            name,
            disk_gb=float(disk_gb or 100),
            memory_gb=float(memory_gb or 4),
            cpus=cpus or 4,
            mounts=list(mounts),
        )

    def clone(
        self,
        source: str,
        name: str,
        *,
        disk_gb: Optional[int] = None,
        memory_gb: Optional[int] = None,
        cpus: Optional[int] = None,
        mounts: Sequence[Mount] = (),
    ) -> None:
        self.calls.append(('clone', name, source))
        base = self.vms[source]
        self.add(
            name,
            disk_gb=float(disk_gb) if disk_gb is not None else base.disk_gb,
            memory_gb=float(memory_gb) if memory_gb is not None else base.memory_gb,
            cpus=cpus if cpus is not None else base.cpus,
            mounts=list(mounts),
        )

    def edit_resources(
        self,
        name: str,
        *,
        disk_gb: Optional[int] = None,
        memory_gb: Optional[int] = None,
        cpus: Optional[int] = None,
        mounts: Optional[Sequence[Mount]] = None,
    ) -> None:
        rec = self.vms[name]
        if rec.running:
            raise VMStateError('edit', name, 'running')
        self.calls.append(('edit', name, (disk_gb, memory_gb, cpus)))
        if disk_gb is not None:
            rec.disk_gb = float(disk_gb)
        if memory_gb is not None:
            rec.memory_gb = float(memory_gb)
        if cpus is not None:
            rec.cpus = cpus

    def start(self, name: str) -> None:
        self.calls.append(('start', name))
        self.vms[name].state = RUNNING

    def stop(self, name: str) -> None:
        self.calls.append(('stop', name))
        self.vms[name].state = STOPPED

    def delete(self, name: str, *, force: bool = True) -> None:
        self.calls.append(('delete', name))
        del self.vms[name]

    def exec_in_guest(
        self,
        name: str,
        workdir: str,
        argv: Sequence[str],
        *,
        stdin: Optional[str] = None,
    ) -> int:
        self.execs.append(
            {'vm': name, 'workdir': workdir, 'argv': list(argv), 'stdin': stdin}
        )
        haystack = stdin if stdin is not None else ' '.join(argv)
        for needle, code in self.exit_codes.items():
            if needle in haystack:
                return code
        return 0

    def payloads(self) -> list[list[str]]:
        """Exec calls that were not piped provisioning or policy scripts."""
        return [e['argv'] for e in self.execs if e['stdin'] is None]


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def cfg(tmp_path: Path) -> AgentVMConfig:
    cfg = AgentVMConfig()
    cfg.paths.state_dir = str(tmp_path / 'state')
    cfg.paths.config_dir = str(tmp_path / 'claude')
    cfg.paths.config_mount_point = '/home/tester.linux/.claude'
    cfg.paths.user_setup_script = str(tmp_path / 'home' / '.agent-vm.setup.sh')
    cfg.paths.user_runtime_script = str(tmp_path / 'home' / '.agent-vm.runtime.sh')
    cfg.engine.lock_timeout_s = 1
    return cfg


@pytest.fixture
def project(tmp_path: Path) -> Path:
    d = tmp_path / 'work' / 'my-project'
    d.mkdir(parents=True)
    return d

"""VM engine capability interface and the records it reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

RUNNING = 'Running'
STOPPED = 'Stopped'


@dataclass(frozen=True)
class Mount:
    location: str
    mount_point: str = ''
    writable: bool = True

    def as_dict(self) -> dict:
        d: dict = {'location': self.location}
        if self.mount_point:
            d['mountPoint'] = self.mount_point
        d['writable'] = self.writable
        return d


@dataclass(frozen=True)
class Resources:
    disk_gb: Optional[int] = None
    memory_gb: Optional[int] = None
    cpus: Optional[int] = None

    def is_empty(self) -> bool:
        return self.disk_gb is None and self.memory_gb is None and self.cpus is None


@dataclass
class VMRecord:
    name: str
    state: str = STOPPED
    cpus: Optional[int] = None
    memory_gb: Optional[float] = None
    disk_gb: Optional[float] = None
    mounts: list[Mount] = field(default_factory=list)

    @property
    def running(self) -> bool:
        return self.state == RUNNING


class VMEngine:
    """Operations the orchestrator needs from a virtualization tool.

    Read-only queries raise ``EngineUnavailableError`` when the engine
    cannot be reached instead of answering False. ``edit_resources``
    must only be called on a stopped VM. ``exec_in_guest`` returns the
    guest command's exit code unchanged.
    """

    def list_vms(self) -> list[VMRecord]:
        raise NotImplementedError

    def get(self, name: str) -> VMRecord | None:
        for rec in self.list_vms():
            if rec.name == name:
                return rec
        return None

    def exists(self, name: str) -> bool:
        return self.get(name) is not None

    def is_running(self, name: str) -> bool:
        rec = self.get(name)
        return rec is not None and rec.running

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
        raise NotImplementedError

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
        raise NotImplementedError

    def edit_resources(
        self,
        name: str,
        *,
        disk_gb: Optional[int] = None,
        memory_gb: Optional[int] = None,
        cpus: Optional[int] = None,
        mounts: Optional[Sequence[Mount]] = None,
    ) -> None:
        raise NotImplementedError

    def start(self, name: str) -> None:
        raise NotImplementedError

    def stop(self, name: str) -> None:
        raise NotImplementedError

    def delete(self, name: str, *, force: bool = True) -> None:
        raise NotImplementedError

    def exec_in_guest(
        self,
        name: str,
        workdir: str,
        argv: Sequence[str],
        *,
        stdin: Optional[str] = None,
    ) -> int:
        raise NotImplementedError

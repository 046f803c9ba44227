"""Lima (`limactl`) implementation of the VM engine interface."""

from __future__ import annotations

import json
from typing import Optional, Sequence

from loguru import logger

from ..errors import EngineError, EngineUnavailableError, VMStateError
from ..util import CmdError, CmdResult, run_cmd
from .base import Mount, VMEngine, VMRecord

log = logger

GIB = 1024**3
LIMA_INSTALL_URL = 'https://lima-vm.io/docs/installation/'


def _gib(raw) -> Optional[float]:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    if value <= 0:
        return None
    return round(value / GIB, 2)


def _mounts_from_json(raw) -> list[Mount]:
    mounts: list[Mount] = []
    for item in raw or []:
        if not isinstance(item, dict):
            continue
        loc = str(item.get('location', '') or '')
        if not loc:
            continue
        mounts.append(
            Mount(
                location=loc,
                mount_point=str(item.get('mountPoint', '') or ''),
                writable=bool(item.get('writable', False)),
            )
        )
    return mounts


def parse_list_json(text: str) -> list[VMRecord]:
    """Parse ``limactl list --json`` output (one JSON object per line)."""
    records: list[VMRecord] = []
    for line in (text or '').splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as ex:
            raise EngineUnavailableError(
                'list', '*', f'Could not parse limactl output: {ex}'
            ) from ex
        if not isinstance(item, dict) or not item.get('name'):
            continue
        config = item.get('config') if isinstance(item.get('config'), dict) else {}
        cpus = item.get('cpus')
        records.append(
            VMRecord(
                name=str(item['name']),
                state=str(item.get('status', '') or 'Unknown'),
                cpus=int(cpus) if isinstance(cpus, int) and cpus > 0 else None,
                memory_gb=_gib(item.get('memory')),
                disk_gb=_gib(item.get('disk')),
                mounts=_mounts_from_json(config.get('mounts')),
            )
        )
    return records


def _set_mounts(mounts: Sequence[Mount]) -> list[str]:
    payload = json.dumps([m.as_dict() for m in mounts], separators=(',', ':'))
    return ['--set', f'.mounts={payload}']


def _set_resources(
    disk_gb: Optional[int], memory_gb: Optional[int], cpus: Optional[int]
) -> list[str]:
    args: list[str] = []
    if disk_gb is not None:
        args += ['--set', f'.disk="{int(disk_gb)}GiB"']
    if memory_gb is not None:
        args += ['--set', f'.memory="{int(memory_gb)}GiB"']
    if cpus is not None:
        args += ['--set', f'.cpus={int(cpus)}']
    return args


class LimaEngine(VMEngine):
    def __init__(self, limactl: str = 'limactl'):
        self.limactl = limactl

    def _run(
        self,
        op: str,
        vm: str,
        args: Sequence[str],
        *,
        check: bool = True,
        capture: bool = True,
        input_text: Optional[str] = None,
    ) -> CmdResult:
        cmd = [self.limactl, *args]
        try:
            return run_cmd(
                cmd, check=check, capture=capture, input_text=input_text
            )
        except CmdError as ex:
            raise EngineError(op, vm, ex.result.detail) from ex
        except FileNotFoundError as ex:
            raise EngineUnavailableError(
                op,
                vm,
                f'{self.limactl} not found. Install Lima: {LIMA_INSTALL_URL}',
            ) from ex
        except OSError as ex:
            raise EngineUnavailableError(op, vm, str(ex)) from ex

    def list_vms(self) -> list[VMRecord]:
        res = self._run('list', '*', ['list', '--json'], check=False)
        if res.code != 0:
            raise EngineUnavailableError('list', '*', res.detail)
        return parse_list_json(res.stdout)

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
        args = ['create', f'--name={name}', image, *_set_mounts(mounts)]
        if disk_gb is not None:
            args.append(f'--disk={int(disk_gb)}')
        if memory_gb is not None:
            args.append(f'--memory={int(memory_gb)}')
        if cpus is not None:
            args.append(f'--cpus={int(cpus)}')
        args.append('--tty=false')
        self._run('create', name, args)
        log.info('VM created: {}', name)

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
        args = [
            'clone',
            source,
            name,
            *_set_mounts(mounts),
            *_set_resources(disk_gb, memory_gb, cpus),
            '--tty=false',
        ]
        self._run('clone', name, args)
        log.info('VM cloned: {} -> {}', source, name)

    def edit_resources(
        self,
        name: str,
        *,
        disk_gb: Optional[int] = None,
        memory_gb: Optional[int] = None,
        cpus: Optional[int] = None,
        mounts: Optional[Sequence[Mount]] = None,
    ) -> None:
        if self.is_running(name):
            raise VMStateError(
                'edit', name, 'VM is running; stop it before editing resources'
            )
        args = ['edit', name, *_set_resources(disk_gb, memory_gb, cpus)]
        if mounts is not None:
            args += _set_mounts(mounts)
        if len(args) == 2:
            return
        args.append('--tty=false')
        self._run('edit', name, args)
        log.info('VM resources updated: {}', name)

    def start(self, name: str) -> None:
        self._run('start', name, ['start', name, '--tty=false'])
        log.info('VM started: {}', name)

    def stop(self, name: str) -> None:
        self._run('stop', name, ['stop', name])
        log.info('VM stopped: {}', name)

    def delete(self, name: str, *, force: bool = True) -> None:
        args = ['delete', name]
        if force:
            args.append('--force')
        self._run('delete', name, args)
        log.info('VM removed: {}', name)

    def exec_in_guest(
        self,
        name: str,
        workdir: str,
        argv: Sequence[str],
        *,
        stdin: Optional[str] = None,
    ) -> int:
        args = ['shell']
        if workdir:
            args += ['--workdir', workdir]
        res = self._run(
            'exec in',
            name,
            [*args, name, *argv],
            check=False,
            capture=False,
            input_text=stdin,
        )
        return res.code

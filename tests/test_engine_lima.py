"""Tests for the limactl-backed engine."""

from __future__ import annotations

import json

import pytest

from agent_vm.engine import Mount, parse_list_json
from agent_vm.engine.lima import LimaEngine
from agent_vm.errors import EngineError, EngineUnavailableError, VMStateError
from agent_vm.util import CmdError, CmdResult

GIB = 1024**3


def _listing(*items: dict) -> str:
    return '\n'.join(json.dumps(item) for item in items) + '\n'


class FakeLimactl:
    def __init__(self, listing: str = '', codes: dict[str, int] | None = None):
        self.listing = listing
        self.codes = codes or {}
        self.calls: list[tuple[list[str], dict]] = []

    def __call__(self, cmd, **kwargs):
        cmd = list(cmd)
        self.calls.append((cmd, kwargs))
        verb = cmd[1]
        code = self.codes.get(verb, 0)
        stdout = self.listing if verb == 'list' else ''
        res = CmdResult(code, stdout, 'boom' if code else '')
        if code and kwargs.get('check', True):
            raise CmdError(cmd, res)
        return res

    def argv(self, verb: str) -> list[str]:
        return [c for c, _ in self.calls if c[1] == verb][-1]


@pytest.fixture
def limactl(monkeypatch) -> FakeLimactl:
    fake = FakeLimactl()
    monkeypatch.setattr('agent_vm.engine.lima.run_cmd', fake)
    return fake


def test_parse_list_json_converts_bytes() -> None:
    text = _listing(
        {
            'name': 'agent-vm-base',
            'status': 'Stopped',
            'cpus': 4,
            'memory': 8 * GIB,
            'disk': 20 * GIB,
            'config': {
                'mounts': [
                    {'location': '/p', 'writable': True},
                    {'location': '/c', 'mountPoint': '/home/u.linux/.claude'},
                ]
            },
        },
        {'name': 'other', 'status': 'Running', 'memory': 0},
    )
    recs = parse_list_json(text)
    assert [r.name for r in recs] == ['agent-vm-base', 'other']
    assert recs[0].disk_gb == 20.0
    assert recs[0].memory_gb == 8.0
    assert recs[0].cpus == 4
    assert recs[0].mounts[1] == Mount('/c', '/home/u.linux/.claude', False)
    assert recs[1].running
    assert recs[1].memory_gb is None
    assert parse_list_json('') == []


def test_parse_list_json_rejects_garbage() -> None:
    with pytest.raises(EngineUnavailableError):
        parse_list_json('not json\n')


def test_list_failure_is_engine_unavailable(limactl) -> None:
    limactl.codes['list'] = 1
    with pytest.raises(EngineUnavailableError):
        LimaEngine().list_vms()


def test_missing_limactl_binary(monkeypatch) -> None:
    def _raise(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr('agent_vm.engine.lima.run_cmd', _raise)
    with pytest.raises(EngineUnavailableError, match='Install Lima'):
        LimaEngine('/nope/limactl').exists('x')


def test_clone_sets_mounts_and_resources(limactl) -> None:
    LimaEngine().clone(
        'agent-vm-base',
        'agent-vm-p-1234abcd',
        disk_gb=50,
        memory_gb=16,
        mounts=[Mount('/home/me/p'), Mount('/home/me/.claude', '/g/.claude')],
    )
    argv = limactl.argv('clone')
    assert argv[:4] == ['limactl', 'clone', 'agent-vm-base', 'agent-vm-p-1234abcd']
    mounts = json.loads(argv[argv.index('--set') + 1].split('=', 1)[1])
    assert mounts == [
        {'location': '/home/me/p', 'writable': True},
        {'location': '/home/me/.claude', 'mountPoint': '/g/.claude', 'writable': True},
    ]
    assert '.disk="50GiB"' in argv
    assert '.memory="16GiB"' in argv
    assert not any(a.startswith('.cpus') for a in argv)
    assert argv[-1] == '--tty=false'


def test_create_passes_template_options(limactl) -> None:
    LimaEngine().create(
        'agent-vm-base', 'template:debian-13', disk_gb=20, memory_gb=8, mounts=[]
    )
    argv = limactl.argv('create')
    assert argv[:4] == [
        'limactl',
        'create',
        '--name=agent-vm-base',
        'template:debian-13',
    ]
    assert '.mounts=[]' in argv
    assert '--disk=20' in argv
    assert '--memory=8' in argv


def test_edit_resources_requires_stopped_vm(limactl) -> None:
    limactl.listing = _listing({'name': 'vm', 'status': 'Running'})
    with pytest.raises(VMStateError):
        LimaEngine().edit_resources('vm', memory_gb=16)
    assert not [c for c, _ in limactl.calls if c[1] == 'edit']


def test_edit_resources(limactl) -> None:
    limactl.listing = _listing({'name': 'vm', 'status': 'Stopped'})
    engine = LimaEngine()
    engine.edit_resources('vm')
    assert not [c for c, _ in limactl.calls if c[1] == 'edit']
    engine.edit_resources('vm', cpus=6)
    assert limactl.argv('edit') == [
        'limactl',
        'edit',
        'vm',
        '--set',
        '.cpus=6',
        '--tty=false',
    ]


def test_start_failure_wraps_engine_error(limactl) -> None:
    limactl.codes['start'] = 1
    with pytest.raises(EngineError) as info:
        LimaEngine().start('vm')
    assert info.value.operation == 'start'
    assert info.value.vm == 'vm'
    assert 'boom' in str(info.value)


def test_exec_in_guest_returns_exit_code(limactl) -> None:
    limactl.codes['shell'] = 42
    engine = LimaEngine()
    code = engine.exec_in_guest('vm', '/home/me/p', ['claude', '-p', 'hi'])
    assert code == 42
    argv, kwargs = limactl.calls[-1]
    assert argv == [
        'limactl',
        'shell',
        '--workdir',
        '/home/me/p',
        'vm',
        'claude',
        '-p',
        'hi',
    ]
    assert kwargs['check'] is False
    assert kwargs['capture'] is False
    assert kwargs['input_text'] is None


def test_exec_in_guest_without_workdir_pipes_stdin(limactl) -> None:
    LimaEngine().exec_in_guest('vm', '', ['zsh', '-l'], stdin='echo hi\n')
    argv, kwargs = limactl.calls[-1]
    assert argv == ['limactl', 'shell', 'vm', 'zsh', '-l']
    assert kwargs['input_text'] == 'echo hi\n'


def test_delete_and_stop(limactl) -> None:
    engine = LimaEngine()
    engine.stop('vm')
    engine.delete('vm')
    assert limactl.argv('stop') == ['limactl', 'stop', 'vm']
    assert limactl.argv('delete') == ['limactl', 'delete', 'vm', '--force']

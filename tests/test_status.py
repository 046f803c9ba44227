"""Tests for list/status rendering."""

from __future__ import annotations

from agent_vm.engine import RUNNING, VMRecord
from agent_vm.orchestrator import VMStatus
from agent_vm.status import render_list, render_status, status_line


def test_status_line_icons() -> None:
    assert status_line(True, 'VM', 'Running') == '✅ VM - Running'
    assert status_line(False, 'VM') == '❌ VM'
    assert status_line(None, 'x').startswith('➖')


def test_render_list() -> None:
    assert render_list([]) == '(no VMs)'
    text = render_list(
        [
            VMRecord('agent-vm-base', cpus=4, memory_gb=8.0, disk_gb=20.0),
            VMRecord('agent-vm-p-1234abcd', RUNNING),
        ]
    )
    lines = text.splitlines()
    assert lines[0].split() == ['NAME', 'STATUS', 'CPUS', 'MEMORY', 'DISK']
    assert lines[1].split() == ['agent-vm-base', 'Stopped', '4', '8GiB', '20GiB']
    assert lines[2].split() == ['agent-vm-p-1234abcd', 'Running', '-', '-', '-']


def test_render_status_variants() -> None:
    missing = render_status(VMStatus('vm', '/p'))
    assert 'no VM for this directory' in missing
    rec = VMRecord('vm', RUNNING)
    stale = render_status(
        VMStatus('vm', '/p', rec, stale=True, clone_version='1', base_version='2')
    )
    assert 'stale' in stale
    assert '--reset' in stale
    fresh = render_status(
        VMStatus('vm', '/p', rec, clone_version='2', base_version='2')
    )
    assert '✅ Base version - 2' in fresh
    unknown = render_status(VMStatus('vm', '/p', rec))
    assert 'unknown' in unknown

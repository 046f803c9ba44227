"""Rendering for `agent-vm list` and `agent-vm status`."""

from __future__ import annotations

from typing import Sequence

from .engine import VMRecord
from .orchestrator import VMStatus


def status_line(ok: bool | None, label: str, detail: str = '') -> str:
    icon = '✅' if ok is True else ('➖' if ok is None else '❌')
    suffix = f' - {detail}' if detail else ''
    return f'{icon} {label}{suffix}'


def _fmt_size(value: float | None) -> str:
    return '-' if value is None else f'{value:g}GiB'


def _fmt_int(value: int | None) -> str:
    return '-' if value is None else str(value)


def render_table(records: Sequence[VMRecord]) -> str:
    header = ('NAME', 'STATUS', 'CPUS', 'MEMORY', 'DISK')
    rows = [
        (
            r.name,
            r.state,
            _fmt_int(r.cpus),
            _fmt_size(r.memory_gb),
            _fmt_size(r.disk_gb),
        )
        for r in records
    ]
    widths = [
        max(len(str(row[i])) for row in [header, *rows])
        for i in range(len(header))
    ]
    lines = [
        '  '.join(str(cell).ljust(w) for cell, w in zip(row, widths)).rstrip()
        for row in [header, *rows]
    ]
    return '\n'.join(lines)


def render_list(records: Sequence[VMRecord]) -> str:
    if not records:
        return '(no VMs)'
    return render_table(records)


def render_status(st: VMStatus) -> str:
    lines = [f'VM name: {st.name}', f'Directory: {st.directory}']
    if st.record is None:
        lines.append(status_line(False, 'VM', 'no VM for this directory'))
        return '\n'.join(lines)
    lines.append(status_line(True, 'VM', st.record.state))
    if st.base_version is None or st.clone_version is None:
        lines.append(status_line(None, 'Base version', 'unknown'))
    elif st.stale:
        lines.append(
            status_line(
                False,
                'Base version',
                f'stale (cloned from {st.clone_version}, base is '
                f'{st.base_version}); use --reset to re-clone',
            )
        )
    else:
        lines.append(status_line(True, 'Base version', st.clone_version))
    lines.append('')
    lines.append(render_table([st.record]))
    return '\n'.join(lines)

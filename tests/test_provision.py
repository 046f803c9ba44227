"""Tests for the provisioning pipeline."""

from __future__ import annotations

from pathlib import Path

import pytest

from agent_vm.errors import PreconditionError, ProvisioningError
from agent_vm.provision import (
    BASE_SETUP_SCRIPT,
    ProvisionStage,
    ProvisioningPipeline,
    runtime_stages,
    template_stages,
)


def test_base_setup_script_is_packaged() -> None:
    text = BASE_SETUP_SCRIPT.read_text()
    assert 'claude' in text
    assert 'codex' in text


def test_stages_run_in_order_and_missing_ones_are_skipped(
    engine, tmp_path: Path
) -> None:
    first = tmp_path / 'first.sh'
    first.write_text('echo first\n')
    stages = [
        ProvisionStage('first', first),
        ProvisionStage('missing', tmp_path / 'nope.sh'),
        ProvisionStage('inline', 'echo inline\n', shell='bash', workdir='/'),
    ]
    report = ProvisioningPipeline(engine, stages).run('vm', '/proj')
    assert report.ran == ['first', 'inline']
    assert report.skipped == ['missing']
    assert [e['stdin'] for e in engine.execs] == ['echo first\n', 'echo inline\n']
    assert engine.execs[0]['argv'] == ['zsh', '-l']
    assert engine.execs[0]['workdir'] == '/proj'
    assert engine.execs[1]['argv'] == ['bash', '-l']
    assert engine.execs[1]['workdir'] == '/'


def test_first_failure_stops_pipeline(engine) -> None:
    engine.exit_codes['echo two'] = 3
    stages = [
        ProvisionStage('one', 'echo one\n'),
        ProvisionStage('two', 'echo two\n'),
        ProvisionStage('three', 'echo three\n'),
    ]
    with pytest.raises(ProvisioningError) as info:
        ProvisioningPipeline(engine, stages).run('vm')
    assert info.value.stage == 'two'
    assert info.value.code == 3
    assert 'agent-vm shell' in str(info.value)
    assert len(engine.execs) == 2


def test_required_stage_missing(engine, tmp_path: Path) -> None:
    stages = [ProvisionStage('base', tmp_path / 'nope.sh', optional=False)]
    with pytest.raises(PreconditionError):
        ProvisioningPipeline(engine, stages).run('vm')
    assert engine.execs == []


def test_template_and_runtime_stage_lists(cfg, project: Path) -> None:
    tstages = template_stages(cfg)
    assert [s.label for s in tstages] == ['base install', 'user setup']
    assert tstages[0].source == BASE_SETUP_SCRIPT
    assert tstages[0].optional is False
    rstages = runtime_stages(cfg, project)
    assert [s.label for s in rstages] == ['user runtime', 'project runtime']
    assert rstages[1].source == project / '.agent-vm.runtime.sh'

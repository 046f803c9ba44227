"""Ordered provisioning stages piped into a login shell inside the guest."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from loguru import logger

from .config import AgentVMConfig
from .engine import VMEngine
from .errors import PreconditionError, ProvisioningError
from .results import OK, SKIPPED, ProvisionReport, StageResult

log = logger

BASE_SETUP_SCRIPT = Path(__file__).parent / 'scripts' / 'setup.sh'


@dataclass(frozen=True)
class ProvisionStage:
    """A script to pipe into ``<shell> -l`` in the guest.

    ``source`` is either a path to a script on the host or the script
    text itself. Optional stages whose file is missing are skipped.
    """

    label: str
    source: Path | str
    shell: str = 'zsh'
    optional: bool = True
    workdir: str | None = None

    def read(self) -> str | None:
        if isinstance(self.source, Path):
            if not self.source.is_file():
                return None
            return self.source.read_text(encoding='utf-8')
        return self.source


class ProvisioningPipeline:
    def __init__(self, engine: VMEngine, stages: Sequence[ProvisionStage]):
        self.engine = engine
        self.stages = list(stages)

    def run(self, vm_name: str, workdir: str = '') -> ProvisionReport:
        """Run every stage in order, stopping at the first failure.

        Raises ProvisioningError naming the failed stage. The VM is never
        rolled back; earlier stages keep their effects.
        """
        report = ProvisionReport(vm=vm_name)
        for stage in self.stages:
            script = stage.read()
            if script is None:
                if not stage.optional:
                    raise PreconditionError(
                        f'Provisioning script for {stage.label!r} not found: {stage.source}'
                    )
                log.debug('Skipping {} (no script at {})', stage.label, stage.source)
                report.stages.append(StageResult(stage.label, SKIPPED))
                continue
            log.info('Running {} in VM {}...', stage.label, vm_name)
            code = self.engine.exec_in_guest(
                vm_name,
                stage.workdir if stage.workdir is not None else workdir,
                [stage.shell, '-l'],
                stdin=script,
            )
            if code != 0:
                log.error(
                    'Provisioning stage {} failed in {} (code={})',
                    stage.label,
                    vm_name,
                    code,
                )
                raise ProvisioningError(stage.label, vm_name, code)
            report.stages.append(StageResult(stage.label, OK, code))
        return report


def template_stages(cfg: AgentVMConfig) -> list[ProvisionStage]:
    return [
        ProvisionStage(
            'base install',
            BASE_SETUP_SCRIPT,
            shell='bash',
            optional=False,
        ),
        ProvisionStage(
            'user setup',
            Path(cfg.paths.user_setup_script).expanduser(),
            shell=cfg.provision.guest_shell,
        ),
    ]


def runtime_stages(
    cfg: AgentVMConfig, project_dir: str | Path
) -> list[ProvisionStage]:
    project_dir = Path(project_dir)
    return [
        ProvisionStage(
            'user runtime',
            Path(cfg.paths.user_runtime_script).expanduser(),
            shell=cfg.provision.guest_shell,
        ),
        ProvisionStage(
            'project runtime',
            project_dir / cfg.paths.project_runtime_name,
            shell=cfg.provision.guest_shell,
        ),
    ]

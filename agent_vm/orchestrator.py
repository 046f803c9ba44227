"""Lifecycle state machine: template setup, ensure-ready, teardown, and introspection."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, ContextManager, Sequence

from loguru import logger

from .config import AgentVMConfig
from .confirm import ConfirmFn, deny
from .engine import Mount, Resources, VMEngine, VMRecord
from .errors import (
    EngineError,
    PreconditionError,
    ProvisioningError,
    UsageError,
    VMNotFoundError,
)
from .locks import VMLocker
from .naming import vm_name
from .policy import SessionPolicy, SessionPolicyEnforcer
from .provision import ProvisioningPipeline, runtime_stages, template_stages
from .results import ProvisionReport
from .store import KeyValueStore
from .util import ensure_dir
from .versions import VersionTracker

log = logger

# Sizes within this many GiB are treated as equal (engines round).
_SIZE_TOLERANCE_GB = 0.05


@dataclass
class ReadyVM:
    name: str
    workdir: str
    created: bool = False
    resized: bool = False
    started: bool = False
    stale: bool = False
    provision: ProvisionReport | None = None
    provision_error: ProvisioningError | None = None


@dataclass
class VMStatus:
    name: str
    directory: str
    record: VMRecord | None = None
    stale: bool = False
    clone_version: str | None = None
    base_version: str | None = None


def validate_resources(resources: Resources) -> None:
    for label, value in (
        ('--disk', resources.disk_gb),
        ('--memory', resources.memory_gb),
        ('--cpus', resources.cpus),
    ):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise UsageError(f'{label} must be a positive integer (got {value!r}).')


def _differs(want: int | None, have: float | int | None) -> bool:
    if want is None:
        return False
    if have is None:
        return True
    return abs(float(want) - float(have)) > _SIZE_TOLERANCE_GB


def _is_shrink(want: int | None, have: float | None) -> bool:
    if want is None or have is None:
        return False
    return float(want) < float(have) - _SIZE_TOLERANCE_GB


class Orchestrator:
    """Drive one VM per project directory through its lifecycle.

    Every step of :meth:`ensure_ready` is re-entrant from Absent, Stopped
    or Running, so re-running the same command is the recovery path
    after an interrupted or failed invocation.
    """

    def __init__(
        self,
        cfg: AgentVMConfig,
        engine: VMEngine,
        store: KeyValueStore,
        *,
        confirm: ConfirmFn = deny,
        locker: Callable[[str], ContextManager] | None = None,
    ):
        self.cfg = cfg
        self.engine = engine
        self.versions = VersionTracker(store)
        self.confirm = confirm
        self.policy = SessionPolicyEnforcer(engine, cfg.policy)
        if locker is None:
            locker = VMLocker(
                cfg.paths.state_dir, timeout_s=cfg.engine.lock_timeout_s
            )
        self.locker = locker

    @property
    def template(self) -> str:
        return self.cfg.template.name

    def name_for(self, directory: str | Path) -> str:
        return vm_name(str(directory), prefix=self.cfg.engine.vm_prefix)

    def mounts_for(self, directory: str | Path) -> list[Mount]:
        mounts = [Mount(location=str(directory), writable=True)]
        if self.cfg.provision.share_config_dir:
            mounts.append(
                Mount(
                    location=self.cfg.paths.config_dir,
                    mount_point=self.cfg.config_mount_point,
                    writable=True,
                )
            )
        return mounts

    def _best_effort(self, what: str, fn: Callable[[str], None], name: str) -> None:
        try:
            fn(name)
        except EngineError as ex:
            log.debug('Ignoring failed {} of {}: {}', what, name, ex)

    # ------------------------------------------------------------------
    # Template

    def setup_template(self, resources: Resources = Resources()) -> str:
        """Rebuild the base template from scratch and record its version."""
        validate_resources(resources)
        tcfg = self.cfg.template
        name = self.template
        disk = resources.disk_gb if resources.disk_gb is not None else tcfg.disk_gb
        memory = (
            resources.memory_gb if resources.memory_gb is not None else tcfg.memory_gb
        )
        cpus = resources.cpus if resources.cpus is not None else (tcfg.cpus or None)
        with self.locker(name):
            self.versions.mark_base_incomplete()
            if self.engine.exists(name):
                log.info('Removing previous base VM {}', name)
                self._best_effort('stop', self.engine.stop, name)
                self._best_effort('delete', self.engine.delete, name)
            log.info('Creating base VM {} from {}', name, tcfg.image)
            self.engine.create(
                name,
                tcfg.image,
                disk_gb=disk,
                memory_gb=memory,
                cpus=cpus,
                mounts=[],
            )
            self.engine.start(name)
            ProvisioningPipeline(self.engine, template_stages(self.cfg)).run(name)
            self.engine.stop(name)
            if self.cfg.provision.share_config_dir:
                ensure_dir(Path(self.cfg.paths.config_dir))
            token = self.versions.record_base_version()
        log.info('Base VM {} ready (version {})', name, token)
        return token

    # ------------------------------------------------------------------
    # Ensure ready

    def ensure_ready(
        self,
        directory: str | Path,
        resources: Resources = Resources(),
        *,
        reset: bool = False,
        policy: SessionPolicy = SessionPolicy(),
        strict_provisioning: bool = True,
    ) -> ReadyVM:
        validate_resources(resources)
        directory = str(directory)
        name = self.name_for(directory)
        if not self.engine.exists(self.template):
            raise PreconditionError(
                "Base VM not found. Run 'agent-vm setup' first."
            )
        if self.versions.base_incomplete():
            raise PreconditionError(
                "Base VM setup did not complete. Re-run 'agent-vm setup'."
            )
        if self.cfg.provision.share_config_dir:
            ensure_dir(Path(self.cfg.paths.config_dir))

        ready = ReadyVM(name=name, workdir=directory)
        with self.locker(name):
            record = self.engine.get(name)
            if reset and record is not None:
                log.info("Resetting VM '{}'...", name)
                self._best_effort('stop', self.engine.stop, name)
                self._best_effort('delete', self.engine.delete, name)
                self.versions.clear(name)
                record = None

            if record is None:
                self._clone(name, directory, resources)
                ready.created = True
            else:
                ready.resized = self._maybe_resize(record, resources)

            if self.versions.is_stale(name):
                ready.stale = True
                log.warning(
                    'Base VM has been updated since {} was cloned. '
                    'Use --reset to re-clone from the new base.',
                    name,
                )

            if not self.engine.is_running(name):
                log.info("Starting VM '{}'...", name)
                self.engine.start(name)
                ready.started = True

            pipeline = ProvisioningPipeline(
                self.engine, runtime_stages(self.cfg, directory)
            )
            try:
                ready.provision = pipeline.run(name, directory)
            except ProvisioningError as ex:
                if strict_provisioning:
                    raise
                log.warning('{} Continuing so the VM can be repaired.', ex)
                ready.provision_error = ex

            self.policy.apply(name, directory, policy)
        return ready

    def _clone(self, name: str, directory: str, resources: Resources) -> None:
        base = self.engine.get(self.template)
        if base is not None and _is_shrink(resources.disk_gb, base.disk_gb):
            raise UsageError(
                f'--disk {resources.disk_gb} is smaller than the base VM disk '
                f'({base.disk_gb:g} GiB); disks cannot shrink.'
            )
        log.info("Creating VM '{}'...", name)
        self.engine.clone(
            self.template,
            name,
            disk_gb=resources.disk_gb,
            memory_gb=resources.memory_gb,
            cpus=resources.cpus,
            mounts=self.mounts_for(directory),
        )
        self.versions.record_clone_version(name)

    def _maybe_resize(self, record: VMRecord, resources: Resources) -> bool:
        name = record.name
        if _is_shrink(resources.disk_gb, record.disk_gb):
            raise UsageError(
                f'--disk {resources.disk_gb} is smaller than the current disk of '
                f'{name} ({record.disk_gb:g} GiB); disks cannot shrink.'
            )
        changes = Resources(
            disk_gb=resources.disk_gb
            if _differs(resources.disk_gb, record.disk_gb)
            else None,
            memory_gb=resources.memory_gb
            if _differs(resources.memory_gb, record.memory_gb)
            else None,
            cpus=resources.cpus if _differs(resources.cpus, record.cpus) else None,
        )
        if changes.is_empty():
            return False
        if record.running:
            ok = self.confirm(
                f"VM '{name}' is running and must be stopped to apply new "
                'resource settings. Stop the VM and apply changes?'
            )
            if not ok:
                log.warning('Resize declined; continuing with current resources.')
                return False
            log.info("Stopping VM '{}'...", name)
            self.engine.stop(name)
        log.info('Updating VM resources for {}: {}', name, changes)
        self.engine.edit_resources(
            name,
            disk_gb=changes.disk_gb,
            memory_gb=changes.memory_gb,
            cpus=changes.cpus,
        )
        return True

    def run_in_vm(self, ready: ReadyVM, argv: Sequence[str]) -> int:
        return self.engine.exec_in_guest(ready.name, ready.workdir, list(argv))

    # ------------------------------------------------------------------
    # Teardown and introspection

    def _require(self, directory: str | Path) -> str:
        name = self.name_for(directory)
        if not self.engine.exists(name):
            raise VMNotFoundError('No VM found for this directory.')
        return name

    def stop(self, directory: str | Path) -> str:
        name = self._require(directory)
        with self.locker(name):
            if self.engine.is_running(name):
                log.info("Stopping VM '{}'...", name)
                self.engine.stop(name)
        return name

    def _destroy(self, name: str) -> None:
        with self.locker(name):
            self._best_effort('stop', self.engine.stop, name)
            self.engine.delete(name, force=True)
            self.versions.clear(name)

    def destroy(self, directory: str | Path) -> str:
        name = self._require(directory)
        log.info("Stopping and deleting VM '{}'...", name)
        self._destroy(name)
        return name

    def list_vms(self) -> list[VMRecord]:
        prefix = self.cfg.engine.vm_prefix
        return sorted(
            (r for r in self.engine.list_vms() if r.name.startswith(prefix)),
            key=lambda r: r.name,
        )

    def destroy_all(self) -> list[str]:
        """Destroy every per-project VM; the base template is kept."""
        names = [r.name for r in self.list_vms() if r.name != self.template]
        if not names:
            return []
        if not self.confirm(f'Destroy {len(names)} VM(s): {", ".join(names)}?'):
            log.warning('Aborted; no VMs destroyed.')
            return []
        destroyed: list[str] = []
        for name in names:
            log.info("Stopping and deleting VM '{}'...", name)
            self._destroy(name)
            destroyed.append(name)
        return destroyed

    def status(self, directory: str | Path) -> VMStatus:
        name = self.name_for(directory)
        return VMStatus(
            name=name,
            directory=str(directory),
            record=self.engine.get(name),
            stale=self.versions.is_stale(name),
            clone_version=self.versions.clone_version(name),
            base_version=self.versions.base_version(),
        )

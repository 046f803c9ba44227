from __future__ import annotations

import tomllib
from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..config import AgentVMConfig, config_path, load_or_default
from ..confirm import approve, tty_confirm
from ..engine import LimaEngine, Resources, VMEngine
from ..errors import PreconditionError, UsageError
from ..orchestrator import Orchestrator
from ..policy import SessionPolicy
from ..store import FileStore

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None, help='Path to config TOML (default: per-user agent-vm config).'
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )
    yes = scfg.Value(
        False,
        isflag=True,
        help='Answer yes to confirmation prompts (resize stop, destroy-all).',
    )


class _ResourceCommand(_BaseCommand):
    """Options that size a VM."""

    disk = scfg.Value(None, help='VM disk size in GB.')
    memory = scfg.Value(None, help='VM memory in GB.')
    cpus = scfg.Value(None, help='Number of VM CPUs.')


class _VMCommand(_ResourceCommand):
    """Options for verbs that ready the project VM before running something."""

    reset = scfg.Value(
        False,
        isflag=True,
        help='Destroy and re-clone the VM from the base template.',
    )
    offline = scfg.Value(
        False,
        isflag=True,
        help='Block outbound traffic to public addresses for this session.',
    )
    readonly = scfg.Value(
        False,
        isflag=True,
        help='Mount the project directory read-only for this session.',
    )


def _cfg_path(p: str | None) -> Path:
    return Path(p).expanduser().resolve() if p else config_path()


def _load_cfg(config_path_opt: str | None) -> AgentVMConfig:
    path = _cfg_path(config_path_opt)
    if config_path_opt and not path.exists():
        raise PreconditionError(f'Config not found: {path}')
    try:
        return load_or_default(path)
    except tomllib.TOMLDecodeError as ex:
        raise PreconditionError(f'Invalid config {path}: {ex}') from ex


def _make_engine(cfg: AgentVMConfig) -> VMEngine:
    return LimaEngine(cfg.engine.limactl)


def _make_orchestrator(cfg: AgentVMConfig, *, yes: bool = False) -> Orchestrator:
    return Orchestrator(
        cfg,
        _make_engine(cfg),
        FileStore(cfg.paths.state_dir),
        confirm=approve if yes else tty_confirm,
    )


def _opt_int(label: str, value) -> int | None:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise UsageError(f'{label} expects a number (got {value!r}).')
    try:
        return int(value)
    except (TypeError, ValueError) as ex:
        raise UsageError(f'{label} expects a number (got {value!r}).') from ex


def _resources(args) -> Resources:
    return Resources(
        disk_gb=_opt_int('--disk', args.disk),
        memory_gb=_opt_int('--memory', args.memory),
        cpus=_opt_int('--cpus', args.cpus),
    )


def _policy(args) -> SessionPolicy:
    return SessionPolicy(offline=bool(args.offline), readonly=bool(args.readonly))


def _host_dir() -> Path:
    return Path.cwd().resolve()


__all__ = [name for name in globals() if not name.startswith('__')]

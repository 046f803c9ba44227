"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ..errors import AgentVMError, UsageError
from ._common import _load_cfg, log
from .help import USAGE, HelpCLI
from .vm import (
    ClaudeCLI,
    CodexCLI,
    DestroyAllCLI,
    DestroyCLI,
    ListCLI,
    OpencodeCLI,
    RunCLI,
    SetupCLI,
    ShellCLI,
    StatusCLI,
    StopCLI,
)


class AgentVMModalCLI(scfg.ModalCLI):
    """Per-directory agent VMs cloned from a shared base template."""

    setup = SetupCLI
    claude = ClaudeCLI
    opencode = OpencodeCLI
    codex = CodexCLI
    shell = ShellCLI
    run = RunCLI
    stop = StopCLI
    destroy = DestroyCLI
    destroy_all = DestroyAllCLI
    list = ListCLI
    status = StatusCLI
    help = HelpCLI


# Verbs whose trailing arguments belong to the guest, mapped to the field
# that receives them.
PASSTHROUGH = {
    'claude': (ClaudeCLI, 'agent_args'),
    'opencode': (OpencodeCLI, 'agent_args'),
    'codex': (CodexCLI, 'agent_args'),
    'run': (RunCLI, 'command'),
    'shell': (ShellCLI, None),
}

VERB_ALIASES = {
    'destroy-all': 'destroy_all',
    'ls': 'list',
}

_VALUE_FLAGS = {
    '--disk': 'disk',
    '--memory': 'memory',
    '--cpus': 'cpus',
    '--config': 'config',
}
_BOOL_FLAGS = {
    '--reset': 'reset',
    '--offline': 'offline',
    '--readonly': 'readonly',
    '--yes': 'yes',
    '-y': 'yes',
}
_RESOURCE_KEYS = ('disk', 'memory', 'cpus')
# After a passthrough verb only these are ours; anything else is the guest's.
_AFTER_VERB_FLAGS = frozenset({'--disk', '--memory', '--reset'})
_SESSION_KEYS = ('reset', 'offline', 'readonly')


def _split_flags(
    argv: list[str],
    opts: dict | None = None,
    *,
    allowed: frozenset[str] | None = None,
) -> tuple[dict, list[str]]:
    """Consume leading global flags, returning them and the remaining argv.

    Parsing stops at the first token that is not a known global flag (or
    not in ``allowed``, when given), so anything after it is left for the
    verb (or the guest) untouched.
    """
    opts = {} if opts is None else opts
    idx = 0
    while idx < len(argv):
        item = argv[idx]
        key, eq, value = item.partition('=')
        if allowed is not None and key not in allowed:
            break
        if key in _VALUE_FLAGS:
            if not eq:
                if idx + 1 >= len(argv):
                    raise UsageError(f'{key} requires a value.')
                idx += 1
                value = argv[idx]
            if not value.strip():
                raise UsageError(f'{key} requires a value.')
            opts[_VALUE_FLAGS[key]] = value
        elif item in _BOOL_FLAGS:
            opts[_BOOL_FLAGS[item]] = True
        elif item == '--verbose':
            opts['verbose'] = opts.get('verbose', 0) + 1
        elif item.startswith('-v') and set(item[1:]) == {'v'}:
            opts['verbose'] = opts.get('verbose', 0) + len(item) - 1
        else:
            break
        idx += 1
    return opts, argv[idx:]


def _normalize_verb(rest: list[str]) -> tuple[str, list[str]]:
    if not rest or rest[0] in {'-h', '--help'}:
        return 'help', []
    verb = VERB_ALIASES.get(rest[0], rest[0])
    return verb, rest[1:]


def _modal_argv(verb: str, opts: dict) -> list[str]:
    """Rebuild scriptconfig argv for a lifecycle verb from global options."""
    argv = [verb]
    if opts.get('config') is not None:
        argv.append(f'--config={opts["config"]}')
    if opts.get('yes'):
        argv.append('--yes')
    if verb == 'setup':
        for key in _RESOURCE_KEYS:
            if opts.get(key) is not None:
                argv.append(f'--{key}={opts[key]}')
    else:
        ignored = [k for k in (*_RESOURCE_KEYS, *_SESSION_KEYS) if opts.get(k)]
        if ignored:
            log.debug('Ignoring {} for {}', ignored, verb)
    return argv


def dispatch(argv: list[str]) -> int:
    opts, rest = _split_flags(argv)
    verb, rest = _normalize_verb(rest)
    if verb in PASSTHROUGH:
        opts, rest = _split_flags(rest, opts, allowed=_AFTER_VERB_FLAGS)
        if rest[:1] == ['--']:
            rest = rest[1:]
        cls, field = PASSTHROUGH[verb]
        kwargs = dict(opts)
        if field is not None:
            kwargs[field] = rest
        elif rest:
            raise UsageError(f'{verb} takes no arguments (got {rest}).')
        return cls.main(argv=False, **kwargs)
    if verb not in _modal_verbs():
        raise UsageError(f"Unknown command: {verb}. Run 'agent-vm help'.")
    opts, rest = _split_flags(rest, opts)
    if rest:
        raise UsageError(f'Unexpected arguments for {verb}: {rest}')
    rc = AgentVMModalCLI.main(argv=_modal_argv(verb, opts), _noexit=True)
    return rc if isinstance(rc, int) else 0


def _modal_verbs() -> set[str]:
    return {
        name
        for name, val in AgentVMModalCLI.__dict__.items()
        if not name.startswith('_')
        and isinstance(val, type)
        and issubclass(val, scfg.DataConfig)
    }


def _peek_opts(argv: list[str]) -> dict:
    """Global options from both sides of the verb, for logging setup."""
    try:
        opts, rest = _split_flags(list(argv))
        verb, rest = _normalize_verb(rest)
        if verb in PASSTHROUGH:
            opts, _ = _split_flags(rest, opts, allowed=_AFTER_VERB_FLAGS)
        elif verb in _modal_verbs():
            opts, _ = _split_flags(rest, opts)
    except UsageError:
        return {}
    return opts


def main(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[1:]
    opts = _peek_opts(argv)
    try:
        verbosity = _load_cfg(opts.get('config')).verbosity
    except (AgentVMError, OSError, ValueError):
        verbosity = 1
    _setup_logging(int(opts.get('verbose', 0)), verbosity)

    try:
        rc = dispatch(list(argv))
    except AgentVMError as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.debug('agent-vm error: {!r}', ex)
        sys.exit(1)
    except KeyboardInterrupt:
        print('Interrupted.', file=sys.stderr)
        sys.exit(130)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled agent-vm error: {}', ex)
        sys.exit(2)
    sys.exit(exit_status(rc))


def exit_status(rc: int) -> int:
    """Map a child return code to the status a shell would report.

    ``subprocess`` reports death by signal N as ``-N``; shells use 128+N.
    """
    if rc < 0:
        return 128 - rc
    return rc


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


__all__ = ['AgentVMModalCLI', 'USAGE', 'dispatch', 'exit_status', 'main']

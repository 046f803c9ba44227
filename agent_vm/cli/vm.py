"""CLI commands for template setup, agent/shell/run sessions, and VM teardown."""

from __future__ import annotations

import scriptconfig as scfg

from ..errors import UsageError
from ..status import render_list, render_status
from ._common import (
    _BaseCommand,
    _ResourceCommand,
    _VMCommand,
    _host_dir,
    _load_cfg,
    _make_orchestrator,
    _policy,
    _resources,
    log,
)


class SetupCLI(_ResourceCommand):
    """Create the base VM template with dev tools and agents pre-installed."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        orch = _make_orchestrator(cfg, yes=bool(args.yes))
        orch.setup_template(_resources(args))
        print('')
        print(
            "Base VM ready. Run 'agent-vm shell', 'agent-vm claude', "
            "'agent-vm opencode', or 'agent-vm codex' in any project directory."
        )
        print(
            'Note: Existing VMs were not updated. '
            'Use --reset to re-clone them from the new base.'
        )
        return 0


class AgentCLI(_VMCommand):
    """Run a coding agent in the persistent VM for the current directory."""

    agent = scfg.Value('claude', help='Agent executable to launch.')
    agent_args = scfg.Value(
        [], nargs='*', help='Arguments passed through to the agent.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        agent = str(args.agent)
        try:
            flags = cfg.agent_flags(agent)
        except KeyError as ex:
            raise UsageError(f'Unknown agent: {agent}') from ex
        orch = _make_orchestrator(cfg, yes=bool(args.yes))
        ready = orch.ensure_ready(
            _host_dir(),
            _resources(args),
            reset=bool(args.reset),
            policy=_policy(args),
        )
        passthrough = list(args.agent_args or [])
        return orch.run_in_vm(ready, [agent, *flags, *passthrough])


class ClaudeCLI(AgentCLI):
    """Run Claude Code in the VM for the current directory."""

    agent = scfg.Value('claude', help='Agent executable to launch.')


class OpencodeCLI(AgentCLI):
    """Run OpenCode in the VM for the current directory."""

    agent = scfg.Value('opencode', help='Agent executable to launch.')


class CodexCLI(AgentCLI):
    """Run Codex CLI in the VM for the current directory."""

    agent = scfg.Value('codex', help='Agent executable to launch.')


class ShellCLI(_VMCommand):
    """Open a login shell in the VM for the current directory."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        orch = _make_orchestrator(cfg, yes=bool(args.yes))
        # A failing runtime script must not lock the operator out of the
        # VM they need to debug it in.
        ready = orch.ensure_ready(
            _host_dir(),
            _resources(args),
            reset=bool(args.reset),
            policy=_policy(args),
            strict_provisioning=False,
        )
        print(f'VM: {ready.name} | Dir: {ready.workdir}')
        print(
            "Type 'exit' to leave (VM keeps running). "
            "Use 'agent-vm stop' to stop it."
        )
        return orch.run_in_vm(ready, [cfg.provision.guest_shell, '-l'])


class RunCLI(_VMCommand):
    """Run an arbitrary command in the VM for the current directory."""

    command = scfg.Value([], nargs='*', help='Command and arguments to run.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        command = list(args.command or [])
        if not command:
            raise UsageError('Usage: agent-vm run <command> [args...]')
        cfg = _load_cfg(args.config)
        orch = _make_orchestrator(cfg, yes=bool(args.yes))
        ready = orch.ensure_ready(
            _host_dir(),
            _resources(args),
            reset=bool(args.reset),
            policy=_policy(args),
        )
        return orch.run_in_vm(ready, command)


class StopCLI(_BaseCommand):
    """Stop the VM for the current directory."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        orch = _make_orchestrator(_load_cfg(args.config), yes=bool(args.yes))
        name = orch.stop(_host_dir())
        print(f"VM '{name}' stopped.")
        return 0


class DestroyCLI(_BaseCommand):
    """Stop and delete the VM for the current directory."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        orch = _make_orchestrator(_load_cfg(args.config), yes=bool(args.yes))
        name = orch.destroy(_host_dir())
        print(f"VM '{name}' destroyed.")
        return 0


class DestroyAllCLI(_BaseCommand):
    """Stop and delete every agent-vm VM except the base template."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        orch = _make_orchestrator(_load_cfg(args.config), yes=bool(args.yes))
        names = orch.destroy_all()
        if not names:
            print('No VMs destroyed.')
            return 0
        for name in names:
            print(f'  - {name}')
        print(f'{len(names)} VM(s) destroyed.')
        return 0


class ListCLI(_BaseCommand):
    """List all agent-vm VMs."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        orch = _make_orchestrator(_load_cfg(args.config))
        print(render_list(orch.list_vms()))
        return 0


class StatusCLI(_BaseCommand):
    """Show VM status for the current directory."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        orch = _make_orchestrator(_load_cfg(args.config))
        st = orch.status(_host_dir())
        log.debug('Status for {}: {}', st.name, st)
        print(render_status(st))
        return 0

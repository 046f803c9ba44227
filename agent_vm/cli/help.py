"""CLI help text rendering."""

from __future__ import annotations

import textwrap

from ._common import _BaseCommand

USAGE = textwrap.dedent(
    """
    Usage: agent-vm [options] <command> [args]

    Commands:
      setup              Create the base VM template (run once)
      claude [args]      Run Claude Code in the VM for the current directory
      opencode [args]    Run OpenCode in the VM for the current directory
      codex [args]       Run Codex CLI in the VM for the current directory
      shell              Open a shell in the VM for the current directory
      run <cmd> [args]   Run a command in the VM for the current directory
      stop               Stop the VM for the current directory
      destroy            Stop and delete the VM for the current directory
      destroy-all        Stop and delete all agent-vm VMs (keeps the base)
      list               List all agent-vm VMs
      status             Show VM status for the current directory
      help               Show this help

    Options (before the command; --disk, --memory and --reset may also
    directly follow claude, opencode, codex, shell or run):
      --disk GB          VM disk size (setup default: 20)
      --memory GB        VM memory (setup default: 8)
      --cpus N           Number of VM CPUs
      --reset            Destroy and re-clone the VM from the base template
      --offline          Block outbound traffic except loopback/private ranges
      --readonly         Mount the project directory read-only
      --yes              Answer yes to confirmation prompts
      -v, -vv            More logging

    Examples:
      agent-vm setup                             # Create base VM
      agent-vm claude                            # Run Claude in a VM
      agent-vm --disk 50 --memory 16 claude      # With custom resources
      agent-vm --reset claude                    # Fresh VM from base template
      agent-vm --offline --readonly codex        # Locked-down session
      agent-vm claude -p "fix lint errors"       # Pass args to claude
      agent-vm run make test                     # Run a command in the VM

    VMs are persistent and unique per directory. Running "agent-vm shell" or
    "agent-vm claude" in the same directory will reuse the same VM.

    Customization:
      ~/.agent-vm.setup.sh              Per-user setup (runs during "agent-vm setup")
      ~/.agent-vm.runtime.sh            Per-user runtime (runs on each session)
      <project>/.agent-vm.runtime.sh    Per-project runtime (runs on each session)
    """
).strip()


class HelpCLI(_BaseCommand):
    """Show usage for all commands."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        cls.cli(argv=argv, data=kwargs)
        print(USAGE)
        return 0

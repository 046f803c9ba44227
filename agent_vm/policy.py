"""Per-session guest restrictions: outbound network filtering and read-only mounts, applied or lifted per invocation."""

from __future__ import annotations

import shlex
from dataclasses import dataclass

from loguru import logger

from .config import PolicyConfig
from .engine import VMEngine
from .errors import PolicyError

log = logger


@dataclass(frozen=True)
class SessionPolicy:
    offline: bool = False
    readonly: bool = False


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for raw in items or []:
        item = str(raw).strip()
        if not item or item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def network_restriction_script(policy_cfg: PolicyConfig) -> str:
    """Render the guest-side iptables script for ``--offline``.

    The OUTPUT chain is flushed first, so running the script again
    yields the same rule set.
    """
    allow4 = _dedupe(list(policy_cfg.allow_cidrs))
    allow6 = _dedupe(list(policy_cfg.allow_cidrs6))
    lines = [
        'set -eu',
        'sudo iptables -P OUTPUT ACCEPT',
        'sudo iptables -F OUTPUT',
        'sudo iptables -A OUTPUT -o lo -j ACCEPT',
        'sudo iptables -A OUTPUT -m conntrack --ctstate ESTABLISHED,RELATED -j ACCEPT',
    ]
    for cidr in allow4:
        lines.append(f'sudo iptables -A OUTPUT -d {shlex.quote(cidr)} -j ACCEPT')
    lines.append('sudo iptables -P OUTPUT DROP')
    lines += [
        'if command -v ip6tables >/dev/null 2>&1; then',
        '  sudo ip6tables -P OUTPUT ACCEPT',
        '  sudo ip6tables -F OUTPUT',
        '  sudo ip6tables -A OUTPUT -o lo -j ACCEPT',
        '  sudo ip6tables -A OUTPUT -m conntrack --ctstate ESTABLISHED,RELATED -j ACCEPT',
    ]
    for cidr in allow6:
        lines.append(
            f'  sudo ip6tables -A OUTPUT -d {shlex.quote(cidr)} -j ACCEPT'
        )
    lines += ['  sudo ip6tables -P OUTPUT DROP', 'fi']
    return '\n'.join(lines) + '\n'


def readonly_mount_script(directory: str) -> str:
    d = shlex.quote(directory)
    return '\n'.join(
        [
            'set -eu',
            f'opts=$(findmnt -no OPTIONS --target {d} || true)',
            'case ",$opts," in *,ro,*) exit 0 ;; esac',
            f'if mountpoint -q {d}; then',
            f'  sudo mount -o remount,ro {d}',
            'else',
            f'  sudo mount --bind {d} {d}',
            f'  sudo mount -o remount,bind,ro {d}',
            'fi',
        ]
    ) + '\n'


def network_unrestriction_script() -> str:
    """Undo :func:`network_restriction_script` if its DROP policy is in force."""
    lines = ['set -eu']
    for tool in ('iptables', 'ip6tables'):
        lines += [
            f'if sudo {tool} -S OUTPUT 2>/dev/null | grep -qx -- "-P OUTPUT DROP"; then',
            f'  sudo {tool} -P OUTPUT ACCEPT',
            f'  sudo {tool} -F OUTPUT',
            'fi',
        ]
    return '\n'.join(lines) + '\n'


def readwrite_mount_script(directory: str) -> str:
    d = shlex.quote(directory)
    return '\n'.join(
        [
            'set -eu',
            f'opts=$(findmnt -no OPTIONS --target {d} || true)',
            'case ",$opts," in *,ro,*) ;; *) exit 0 ;; esac',
            f'sudo mount -o remount,rw {d} || sudo mount -o remount,bind,rw {d}',
        ]
    ) + '\n'


class SessionPolicyEnforcer:
    """Make the guest match one invocation's policy.

    Restrictions left behind by an earlier invocation are lifted when the
    current one does not ask for them.
    """

    def __init__(self, engine: VMEngine, policy_cfg: PolicyConfig):
        self.engine = engine
        self.policy_cfg = policy_cfg

    def _run_script(self, vm_name: str, what: str, script: str) -> None:
        code = self.engine.exec_in_guest(vm_name, '/', ['bash'], stdin=script)
        if code != 0:
            raise PolicyError(
                f'Could not {what} in VM {vm_name!r} (exit code {code}). '
                'Refusing to run with a session policy other than the one requested.'
            )

    def restrict_network(self, vm_name: str) -> None:
        log.debug('Restricting outbound network in {}', vm_name)
        self._run_script(
            vm_name,
            'apply network restriction',
            network_restriction_script(self.policy_cfg),
        )
        log.info(
            'Outbound network restricted in {} (allowed: loopback, {}).',
            vm_name,
            ', '.join(_dedupe(list(self.policy_cfg.allow_cidrs))),
        )

    def lift_network(self, vm_name: str) -> None:
        log.debug('Lifting any outbound network restriction in {}', vm_name)
        self._run_script(
            vm_name, 'lift network restriction', network_unrestriction_script()
        )

    def make_readonly(self, vm_name: str, directory: str) -> None:
        log.debug('Remounting {} read-only in {}', directory, vm_name)
        self._run_script(
            vm_name, 'mount read-only', readonly_mount_script(directory)
        )
        log.info('Project directory mounted read-only in {}: {}', vm_name, directory)

    def make_writable(self, vm_name: str, directory: str) -> None:
        log.debug('Ensuring {} is writable in {}', directory, vm_name)
        self._run_script(
            vm_name, 'mount read-write', readwrite_mount_script(directory)
        )

    def apply(self, vm_name: str, directory: str, policy: SessionPolicy) -> None:
        if policy.offline:
            self.restrict_network(vm_name)
        else:
            self.lift_network(vm_name)
        if policy.readonly:
            self.make_readonly(vm_name, directory)
        else:
            self.make_writable(vm_name, directory)

"""Project-specific exception types."""

from __future__ import annotations


class AgentVMError(RuntimeError):
    """Base error for domain-level agent-vm failures."""


class PreconditionError(AgentVMError):
    """Raised when a required prior step (e.g. template setup) is missing."""


class VMNotFoundError(PreconditionError):
    """Raised when a lifecycle verb targets a VM that does not exist."""


class UsageError(AgentVMError):
    """Raised for invalid option values, before any engine mutation."""


class EngineError(AgentVMError):
    """Raised when the VM engine fails an operation."""

    def __init__(self, operation: str, vm: str, detail: str = ''):
        self.operation = operation
        self.vm = vm
        self.detail = detail
        msg = f'VM engine failed to {operation} {vm!r}'
        if detail:
            msg = f'{msg}: {detail}'
        super().__init__(msg)


class EngineUnavailableError(EngineError):
    """Raised when the engine cannot be queried at all."""


class VMStateError(EngineError):
    """Raised when an operation requires a VM state the VM is not in."""


class ProvisioningError(AgentVMError):
    """Raised when a provisioning script exits non-zero inside the guest."""

    def __init__(self, stage: str, vm: str, code: int):
        self.stage = stage
        self.vm = vm
        self.code = code
        super().__init__(
            f'Provisioning stage {stage!r} failed in VM {vm!r} (exit code {code}). '
            f'The VM was left as-is; inspect it with `agent-vm shell`.'
        )


class PolicyError(AgentVMError):
    """Raised when a requested session restriction could not be applied."""


class LockError(AgentVMError):
    """Raised when the per-VM advisory lock cannot be acquired."""

"""Result dataclasses used by provisioning and lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field

OK = 'ok'
SKIPPED = 'skipped'


@dataclass(frozen=True)
class StageResult:
    label: str
    status: str
    code: int | None = None


@dataclass
class ProvisionReport:
    vm: str
    stages: list[StageResult] = field(default_factory=list)

    @property
    def ran(self) -> list[str]:
        return [s.label for s in self.stages if s.status == OK]

    @property
    def skipped(self) -> list[str]:
        return [s.label for s in self.stages if s.status == SKIPPED]

    def as_dict(self) -> dict[str, object]:
        return {
            'vm': self.vm,
            'ran': self.ran,
            'skipped': self.skipped,
        }

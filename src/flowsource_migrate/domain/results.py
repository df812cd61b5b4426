"""Outcome records collected while a migration runs.

Steps report what they did through these objects instead of raising, so one
failing template or one unparseable snippet never hides the rest of the
run. The CLI renders :class:`RunSummary` and derives the exit code from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ItemFailure:
    """One item (file, template, fragment) that could not be processed."""

    phase: str
    item: str
    reason: str

    def describe(self) -> str:
        return f"[{self.phase}] {self.item}: {self.reason}"


@dataclass
class PhaseResult:
    """Steps completed, warnings and failures recorded for one phase."""

    name: str
    steps: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)

    def completed(self, step: str) -> None:
        self.steps.append(step)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def fail(self, item: str, reason: str) -> None:
        self.failures.append(ItemFailure(self.name, item, reason))

    @property
    def succeeded(self) -> bool:
        return not self.failures


@dataclass
class RunSummary:
    """Ordered phase results of one migration run."""

    phases: list[PhaseResult] = field(default_factory=list)

    def add(self, result: PhaseResult) -> PhaseResult:
        self.phases.append(result)
        return result

    @property
    def failures(self) -> list[ItemFailure]:
        return [failure for phase in self.phases for failure in phase.failures]

    @property
    def warnings(self) -> list[str]:
        return [f"[{phase.name}] {warning}" for phase in self.phases for warning in phase.warnings]

    @property
    def succeeded(self) -> bool:
        return not self.failures

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "phases": [
                {
                    "name": phase.name,
                    "steps": list(phase.steps),
                    "warnings": list(phase.warnings),
                    "failures": [failure.describe() for failure in phase.failures],
                }
                for phase in self.phases
            ],
        }

    def render(self) -> str:
        """Return a human readable end-of-run report."""

        lines: list[str] = []
        for phase in self.phases:
            status = "ok" if phase.succeeded else "failed"
            lines.append(f"{phase.name}: {status} ({len(phase.steps)} steps)")
            lines.extend(f"  warning: {warning}" for warning in phase.warnings)
            lines.extend(f"  failed: {failure.item}: {failure.reason}" for failure in phase.failures)
        if not self.phases:
            lines.append("no phases executed")
        lines.append("migration succeeded" if self.succeeded else f"migration finished with {len(self.failures)} failure(s)")
        return "\n".join(lines)

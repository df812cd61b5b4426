"""Scaffold a Backstage application with ``@backstage/create-app``.

The generator asks for the application name on stdin; it is fed through
``input`` so the call never blocks on a prompt. Package installation is
skipped; FlowSource replaces ``yarn.lock`` afterwards anyway.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Final, Sequence

from ...domain.errors import ScaffoldError
from ...observability import StructuredLogger

CREATE_APP_PACKAGE: Final[str] = "@backstage/create-app@0.5.25"
SCAFFOLD_TIMEOUT_SECONDS: Final[int] = 300
SKELETON_MARKERS: Final[tuple[str, ...]] = (
    "package.json",
    "app-config.yaml",
    "packages/app",
    "packages/backend",
)


def missing_skeleton_parts(root: Path) -> list[str]:
    """Return the skeleton markers absent under *root*."""

    return [marker for marker in SKELETON_MARKERS if not (root / marker).exists()]


class NpxScaffolder:
    """Run ``npx @backstage/create-app`` and verify the resulting layout."""

    def __init__(
        self,
        *,
        package: str = CREATE_APP_PACKAGE,
        timeout: int = SCAFFOLD_TIMEOUT_SECONDS,
        executable: str = "npx",
        logger: StructuredLogger | None = None,
    ) -> None:
        self._package = package
        self._timeout = timeout
        self._executable = executable
        self._log = (logger or StructuredLogger()).child("scaffold")

    def command(self, destination: Path) -> Sequence[str]:
        return [self._executable, "--yes", self._package, "--path", str(destination), "--skip-install"]

    def scaffold(self, destination: Path, app_name: str) -> Path:
        """Generate the skeleton at *destination*.

        Raises
        ------
        ScaffoldError
            ``npx`` is missing, the generator fails or times out, or the
            expected layout is incomplete afterwards.
        """

        if shutil.which(self._executable) is None:
            raise ScaffoldError(f"{self._executable} not found on PATH; install Node.js to scaffold the application")
        destination.parent.mkdir(parents=True, exist_ok=True)
        command = list(self.command(destination))
        self._log.info("scaffold_started", path=str(destination), command=" ".join(command))
        try:
            completed = subprocess.run(
                command,
                input=f"{app_name}\n",
                text=True,
                capture_output=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ScaffoldError(f"Scaffolding timed out after {self._timeout}s") from exc
        if completed.returncode != 0:
            tail = (completed.stderr or completed.stdout or "").strip().splitlines()[-5:]
            raise ScaffoldError(f"create-app exited with {completed.returncode}: {' | '.join(tail)}")
        missing = missing_skeleton_parts(destination)
        if missing:
            raise ScaffoldError(f"Scaffolded application is incomplete, missing: {', '.join(missing)}")
        self._log.info("scaffold_complete", path=str(destination))
        return destination

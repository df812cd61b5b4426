"""Copy FlowSource artifacts into the generated application.

Purpose
    Move configuration files, theme assets and template directories from the
    FlowSource source tree into the skeleton, reporting per entry what was
    copied and what was missing.

Contents
    - ``CopyReport``: created, skipped and missing entries of one call.
    - ``copy_entries``: public API copying relative paths between two roots.
    - ``copy_tree``: copies a single file or directory.
    - ``_should_copy`` / ``_copy_payload`` / ``_write_bytes``: tiny helpers that
      narrate how files are written or skipped.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from ...observability import log_debug


@dataclass
class CopyReport:
    copied: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


def copy_entries(
    source_root: Path,
    destination_root: Path,
    entries: Iterable[str],
    *,
    force: bool = True,
) -> CopyReport:
    """Copy each relative path in *entries* from *source_root* to *destination_root*.

    Parameters
    ----------
    source_root / destination_root:
        Directories the relative entries are resolved against.
    entries:
        Relative file or directory paths.
    force:
        When ``True`` (the default) existing files are overwritten, which is
        what FlowSource branding expects. ``False`` keeps local edits.

    Returns
    -------
    CopyReport
        Destination paths written or skipped, and entries absent in the source.
    """

    report = CopyReport()
    for entry in entries:
        source = source_root / entry
        if not source.exists():
            report.missing.append(entry)
            log_debug("copy_source_missing", path=str(source))
            continue
        copy_tree(source, destination_root / entry, force=force, report=report)
    return report


def copy_tree(source: Path, destination: Path, *, force: bool = True, report: CopyReport | None = None) -> CopyReport:
    """Copy a file or a directory tree, file by file."""

    report = report if report is not None else CopyReport()
    files = [source] if source.is_file() else sorted(p for p in source.rglob("*") if p.is_file())
    for file_path in files:
        target = destination if source.is_file() else destination / file_path.relative_to(source)
        if not _should_copy(file_path, target, force):
            report.skipped.append(target)
            continue
        _copy_payload(file_path, target)
        report.copied.append(target)
    log_debug("copy_complete", path=str(destination), copied=len(report.copied), skipped=len(report.skipped))
    return report


def _should_copy(source: Path, destination: Path, force: bool) -> bool:
    """Return ``True`` when *destination* should be overwritten with *source*."""

    if destination.exists() and destination.resolve() == source.resolve():
        return False
    if destination.exists() and not force:
        return False
    return True


def _copy_payload(source: Path, destination: Path) -> None:
    """Create parent directories and copy *source* to *destination*."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    _write_bytes(source, destination)


def _write_bytes(source: Path, destination: Path) -> None:
    shutil.copyfile(source, destination)

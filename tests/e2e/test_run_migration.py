"""Full runs through ``read_settings`` and ``run_migration``.

Covers the public entry points an embedding tool would use: layered settings,
an injected scaffolder and the trace identifier carried by every record.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

from flowsource_migrate import read_settings, run_migration
from flowsource_migrate.domain.errors import MissingArtifact
from flowsource_migrate.observability import TRACE_ID


def test_run_migration_tags_records_with_trace_id(
    tmp_path: Path, source_tree: Path, skeleton: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="flowsource_migrate")
    settings = read_settings(
        overrides={"source": str(source_tree), "destination": str(skeleton), "phase": 1, "skip_scaffold": True},
        start_dir=str(tmp_path),
        environ={},
    )

    summary = run_migration(settings, trace_id="run-42")

    assert summary.succeeded, summary.render()
    started = [record for record in caplog.records if record.getMessage() == "phase_started"]
    assert [record.context["phase"] for record in started] == ["ui-theme"]
    assert all(record.context["trace_id"] == "run-42" for record in started)
    assert TRACE_ID.get() is None


def test_run_migration_scaffolds_and_reads_dotenv_credentials(tmp_path: Path, source_tree: Path, fake_scaffolder) -> None:
    (tmp_path / ".env").write_text(
        "GITHUB__CLIENT_ID=Iv1.abc\nGITHUB__CLIENT_SECRET=s3cr3t\n",
        encoding="utf-8",
    )
    destination = tmp_path / "demo"
    settings = read_settings(
        overrides={"source": str(source_tree), "destination": str(destination), "phase": 2, "app_name": "demo"},
        start_dir=str(tmp_path),
        environ={},
    )

    summary = run_migration(settings, scaffolder=fake_scaffolder)

    assert summary.succeeded, summary.render()
    assert fake_scaffolder.calls == [(destination, "demo")]
    template = yaml.safe_load((destination / "app-config.yaml").read_text(encoding="utf-8"))
    values = yaml.safe_load((destination / "app-config.local.yaml").read_text(encoding="utf-8"))
    assert template["auth"]["providers"]["github"]["development"]["clientSecret"] == "${GITHUB_CLIENT_SECRET}"
    assert values["auth"]["providers"]["github"]["development"]["clientId"] == "Iv1.abc"


def test_run_migration_clears_trace_id_after_fatal_error(tmp_path: Path, skeleton: Path) -> None:
    settings = read_settings(
        overrides={"source": str(tmp_path / "missing"), "destination": str(skeleton)},
        start_dir=str(tmp_path),
        environ={},
    )

    with pytest.raises(MissingArtifact):
        run_migration(settings, trace_id="run-43")

    assert TRACE_ID.get() is None

"""ConfigMerger behaviour against real files under ``tmp_path``.

Covers soft loading, label handling on repeated merges, advisory validation
and the dual-mode lifecycle that keeps credentials out of the template.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest
import yaml

from flowsource_migrate.application.merger import (
    TEMPLATE_FILENAME,
    TEMPLATE_HEADER,
    VALUE_FILENAME,
    ConfigMerger,
    placeholder_name,
)
from flowsource_migrate.domain.documents import DualModeState


def _read(path: Path) -> dict:
    return yaml.safe_load(path.read_text(encoding="utf-8"))


def test_load_missing_file_returns_empty_and_warns(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    """A missing configuration file is not an error for callers of ``load``."""

    caplog.set_level(logging.WARNING, logger="flowsource_migrate")
    assert ConfigMerger().load(tmp_path / "absent.yaml") == {}
    assert any(record.getMessage() == "config_missing" for record in caplog.records)


def test_load_invalid_yaml_returns_empty(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("app: [unterminated\n", encoding="utf-8")
    assert ConfigMerger().load(path) == {}


def test_merge_into_missing_file_creates_it(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "app-config.yaml"

    assert ConfigMerger().merge_into_file(target, {"app": {"title": "FlowSource"}}, "Branding") is True

    text = target.read_text(encoding="utf-8")
    assert text.startswith("# Branding\n")
    assert _read(target) == {"app": {"title": "FlowSource"}}


def test_repeated_merge_keeps_label_once_and_content_stable(tmp_path: Path) -> None:
    target = tmp_path / "app-config.yaml"
    target.write_text("# existing header\napp:\n  title: Demo\n", encoding="utf-8")
    merger = ConfigMerger()
    fragment = {"catalog": {"locations": [{"type": "file", "target": "../../t.yaml"}]}}

    merger.merge_into_file(target, fragment, "Templates")
    first = target.read_text(encoding="utf-8")
    merger.merge_into_file(target, fragment, "Templates")
    second = target.read_text(encoding="utf-8")

    assert first == second
    assert first.splitlines()[:2] == ["# existing header", "# Templates"]
    assert first.count("# Templates") == 1


def test_unreadable_target_is_left_untouched(tmp_path: Path) -> None:
    target = tmp_path / "app-config.yaml"
    target.write_text("app: [oops\n", encoding="utf-8")

    assert ConfigMerger().merge_into_file(target, {"app": {"title": "x"}}) is False
    assert target.read_text(encoding="utf-8") == "app: [oops\n"


def test_non_mapping_fragment_is_rejected(tmp_path: Path) -> None:
    target = tmp_path / "app-config.yaml"
    assert ConfigMerger().merge_into_file(target, ["not", "a", "mapping"]) is False  # type: ignore[arg-type]
    assert not target.exists()


def test_load_read_error_returns_empty(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "app-config.yaml"
    path.write_text("app:\n  title: Demo\n", encoding="utf-8")

    def fail(self: Path, *args: object, **kwargs: object) -> str:
        raise OSError(5, "Input/output error")

    monkeypatch.setattr(Path, "read_text", fail)

    assert ConfigMerger().load(path) == {}


def test_merge_into_file_read_error_reports_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "app-config.yaml"
    target.write_text("a: 1\n", encoding="utf-8")

    def fail(self: Path, *args: object, **kwargs: object) -> str:
        raise OSError(5, "Input/output error")

    monkeypatch.setattr(Path, "read_text", fail)

    assert ConfigMerger().merge_into_file(target, {"b": 2}) is False


def test_merge_into_file_write_error_reports_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "app-config.yaml"
    target.write_text("a: 1\n", encoding="utf-8")

    def refuse(src: str, dst: object) -> None:
        raise PermissionError("read-only")

    monkeypatch.setattr(os, "replace", refuse)

    assert ConfigMerger().merge_into_file(target, {"b": 2}, "Extra") is False
    assert target.read_text(encoding="utf-8") == "a: 1\n"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["app-config.yaml"]


def test_validate_reports_duplicate_provider_key() -> None:
    """Two entries under the same provider key make the document invalid."""

    text = "auth:\n  providers:\n    github:\n      development: {}\n    github:\n      production: {}\n"

    report = ConfigMerger().validate(text)

    assert report.is_valid is False
    assert any("github" in warning for warning in report.warnings)


def test_validate_reports_structural_duplicates() -> None:
    document = {
        "auth": {"providers": {"GitHub": {}, "github": {}}},
        "backend": {"auth": {"keys": [{"secret": "a"}, {"secret": "a"}]}},
        "integrations": {"github": [{"host": "github.com"}, {"host": "github.com"}]},
        "catalog": {"locations": [{"target": "t.yaml"}, {"target": "t.yaml"}]},
    }

    warnings = ConfigMerger().validate(document).warnings

    assert "Auth providers differ only by case: GitHub, github" in warnings
    assert "Duplicate secret in backend.auth.keys at index 1" in warnings
    assert "Duplicate host 'github.com' in integrations.github" in warnings
    assert "Duplicate catalog location target 't.yaml'" in warnings


def test_validate_clean_document_is_valid() -> None:
    report = ConfigMerger().validate({"auth": {"providers": {"guest": {}, "github": {}}}})
    assert report.is_valid
    assert report.to_dict() == {"isValid": True, "warnings": []}


def test_dual_mode_fragments_ignored_while_disabled(tmp_path: Path) -> None:
    merger = ConfigMerger()

    assert merger.state is DualModeState.DISABLED
    assert merger.add_template_fragment({"a": 1}) is False
    assert merger.add_value_fragment({"a": 1}) is False
    assert merger.build_dual_outputs(tmp_path) is None
    assert not (tmp_path / TEMPLATE_FILENAME).exists()


def test_dual_mode_separates_template_and_values(tmp_path: Path) -> None:
    (tmp_path / TEMPLATE_FILENAME).write_text("app:\n  title: Working\n", encoding="utf-8")
    merger = ConfigMerger()
    merger.enable_dual_mode()
    template = {"auth": {"providers": {"github": {"development": {"clientSecret": "${GITHUB_CLIENT_SECRET}"}}}}}
    value = {"auth": {"providers": {"github": {"development": {"clientSecret": "s3cr3t"}}}}}

    assert merger.add_template_fragment(template, "GitHub") is True
    assert merger.add_value_fragment(value, "GitHub") is True
    assert merger.status() == {"state": "accumulating", "templateFragments": 1, "valueFragments": 1}

    outputs = merger.build_dual_outputs(tmp_path)

    assert outputs is not None
    assert merger.state is DualModeState.BUILT
    template_text = (tmp_path / TEMPLATE_FILENAME).read_text(encoding="utf-8")
    assert template_text.startswith(TEMPLATE_HEADER)
    assert "s3cr3t" not in template_text
    assert _read(tmp_path / TEMPLATE_FILENAME)["auth"]["providers"]["guest"] == {}
    values = _read(tmp_path / VALUE_FILENAME)
    assert values["app"]["title"] == "Working"
    assert values["auth"]["providers"]["github"]["development"]["clientSecret"] == "s3cr3t"


def test_dual_mode_scrubs_secret_that_leaked_into_template(tmp_path: Path) -> None:
    merger = ConfigMerger()
    merger.enable_dual_mode()
    leaked = {"integrations": {"github": [{"host": "github.com", "token": "ghp_real"}]}}
    merger.add_template_fragment(leaked)
    merger.add_value_fragment(leaked)

    outputs = merger.build_dual_outputs(tmp_path)

    assert outputs is not None
    assert outputs.scrubbed == ("integrations.github.0.token",)
    assert outputs.template_document["integrations"]["github"][0]["token"] == "${GITHUB_TOKEN}"
    assert outputs.value_document["integrations"]["github"][0]["token"] == "ghp_real"


def test_build_twice_returns_first_outputs_and_ignores_late_fragments(tmp_path: Path) -> None:
    merger = ConfigMerger()
    merger.enable_dual_mode()
    first = merger.build_dual_outputs(tmp_path)

    assert merger.add_value_fragment({"late": True}) is False
    assert merger.build_dual_outputs(tmp_path) is first


def test_enable_again_resets_accumulated_fragments() -> None:
    merger = ConfigMerger()
    merger.enable_dual_mode()
    merger.add_template_fragment({"a": 1})
    merger.enable_dual_mode()
    assert merger.status()["templateFragments"] == 0
    merger.disable_dual_mode()
    assert merger.dual_mode_enabled is False


def test_placeholder_name_uses_provider_segment() -> None:
    assert placeholder_name(("auth", "providers", "gitlab", "development", "clientId")) == "GITLAB_CLIENT_ID"
    assert placeholder_name(("backend", "auth", "keys", "0", "secret")) == "SECRET"

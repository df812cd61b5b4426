"""Atomic persistence of app-config documents."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from flowsource_migrate.adapters.store.yaml_store import YAMLDocumentStore
from flowsource_migrate.domain.errors import InvalidFormat, NotFound


def test_read_returns_document_and_header(tmp_path: Path) -> None:
    path = tmp_path / "app-config.yaml"
    path.write_text("# generated\n\n# by flowsource\napp:\n  title: Demo\n", encoding="utf-8")

    stored = YAMLDocumentStore().read(path)

    assert stored.document == {"app": {"title": "Demo"}}
    assert stored.header == ["# generated", "# by flowsource"]


def test_read_missing_and_invalid(tmp_path: Path) -> None:
    store = YAMLDocumentStore()
    with pytest.raises(NotFound):
        store.read(tmp_path / "absent.yaml")
    broken = tmp_path / "broken.yaml"
    broken.write_text("app: [x\n", encoding="utf-8")
    with pytest.raises(InvalidFormat):
        store.read(broken)


def test_write_round_trips_and_leaves_no_temporary_files(tmp_path: Path) -> None:
    path = tmp_path / "deep" / "app-config.yaml"
    store = YAMLDocumentStore()

    store.write(path, {"auth": {"providers": {"guest": {}}}}, ["# header"])

    assert store.read(path).document == {"auth": {"providers": {"guest": {}}}}
    assert sorted(p.name for p in path.parent.iterdir()) == ["app-config.yaml"]


def test_failed_replace_keeps_original(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "app-config.yaml"
    path.write_text("app:\n  title: Original\n", encoding="utf-8")

    def refuse(src: str, dst: object) -> None:
        raise PermissionError("read-only")

    monkeypatch.setattr(os, "replace", refuse)

    with pytest.raises(OSError):
        YAMLDocumentStore().write_text(path, "app:\n  title: New\n")

    assert path.read_text(encoding="utf-8") == "app:\n  title: Original\n"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["app-config.yaml"]


def test_unencodable_text_leaves_no_temporary_file(tmp_path: Path) -> None:
    path = tmp_path / "app-config.yaml"
    path.write_text("app: {}\n", encoding="utf-8")

    with pytest.raises(UnicodeEncodeError):
        YAMLDocumentStore().write_text(path, "app:\n  title: \ud800\n")

    assert path.read_text(encoding="utf-8") == "app: {}\n"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["app-config.yaml"]

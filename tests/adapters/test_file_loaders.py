from __future__ import annotations

import json
from pathlib import Path

import pytest

from flowsource_migrate.adapters.file_loaders.structured import (
    JSONFileLoader,
    TOMLFileLoader,
    YAMLFileLoader,
    dump_yaml,
    find_duplicate_keys,
    parse_yaml_mapping,
    split_header,
)
from flowsource_migrate.domain.errors import InvalidFormat, NotFound


def test_toml_loader(tmp_path: Path) -> None:
    path = tmp_path / "settings.toml"
    path.write_text("phase = 2\n[github]\nclient_id = 'abc'\n")
    data = TOMLFileLoader().load(str(path))
    assert data["phase"] == 2
    assert data["github"]["client_id"] == "abc"


def test_toml_loader_missing_file(tmp_path: Path) -> None:
    with pytest.raises(NotFound):
        TOMLFileLoader().load(str(tmp_path / "missing.toml"))


def test_json_loader_invalid(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{invalid}")
    with pytest.raises(InvalidFormat):
        JSONFileLoader().load(str(path))


def test_json_loader_valid(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"templates": ["PDLC-Backend"]}), encoding="utf-8")
    assert JSONFileLoader().load(str(path))["templates"] == ["PDLC-Backend"]


def test_yaml_loader_handles_comment_only_file(tmp_path: Path) -> None:
    path = tmp_path / "app-config.yaml"
    path.write_text("# empty file\n")
    assert YAMLFileLoader().load(str(path)) == {}


def test_yaml_loader_rejects_sequences(tmp_path: Path) -> None:
    path = tmp_path / "app-config.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(InvalidFormat):
        YAMLFileLoader().load(str(path))


def test_parse_yaml_mapping_reports_source() -> None:
    with pytest.raises(InvalidFormat, match="code block 3"):
        parse_yaml_mapping("a: [1", source="code block 3")


def test_dump_yaml_keeps_insertion_order_and_block_style() -> None:
    text = dump_yaml({"zeta": 1, "alpha": {"list": ["x", "y"]}, "url": "${APP_URL}"})

    assert text == "zeta: 1\nalpha:\n  list:\n    - x\n    - y\nurl: ${APP_URL}\n"
    assert parse_yaml_mapping(text) == {"zeta": 1, "alpha": {"list": ["x", "y"]}, "url": "${APP_URL}"}


def test_dump_yaml_empty_document() -> None:
    assert dump_yaml({}) == ""


def test_find_duplicate_keys_reports_nested_paths() -> None:
    text = (
        "integrations:\n"
        "  github:\n"
        "    - host: github.com\n"
        "      host: ghe.example.com\n"
        "catalog: {}\n"
        "catalog: {}\n"
    )

    assert find_duplicate_keys(text) == [("integrations.github.0", "host"), ("", "catalog")]


def test_find_duplicate_keys_invalid_yaml() -> None:
    with pytest.raises(InvalidFormat):
        find_duplicate_keys("a: [1")


def test_split_header_without_comments() -> None:
    assert split_header("app:\n  title: x\n") == ([], "app:\n  title: x\n")

"""Structured file loaders and YAML helpers.

Purpose
-------
Convert on-disk artifacts into Python mappings the merge layer understands and
turn mappings back into YAML text. Adapters are small wrappers around
``tomllib``/``json``/``yaml`` so error handling and logging live in one place.

Contents
--------
* :class:`BaseFileLoader` – shared helpers for reading files and validating
  mapping outputs.
* :class:`TOMLFileLoader` / :class:`JSONFileLoader` / :class:`YAMLFileLoader` –
  loaders used for the tool's own settings file and for app-config documents.
* :func:`parse_yaml_mapping` – parse YAML text, ``{}`` for empty input.
* :func:`dump_yaml` – serialise a document in Backstage's layout (insertion
  order, block style, indented sequences).
* :func:`find_duplicate_keys` – detect repeated keys that ``safe_load``
  silently collapses.
* :func:`split_header` – separate leading ``#`` comment lines from a document.

System Role
-----------
Used by :mod:`flowsource_migrate.adapters.store.yaml_store` for app-config
files and by :mod:`flowsource_migrate.core` for settings files.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[assignment]

import yaml

from ...domain.errors import InvalidFormat, NotFound
from ...observability import log_debug, log_error


class BaseFileLoader:
    """Common utilities shared by the structured file loaders."""

    def _read(self, path: str) -> bytes:
        """Read *path* as bytes, raising :class:`NotFound` when the file is missing.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile(delete=False)
        >>> _ = tmp.write(b"key = 'value'")
        >>> tmp.close()
        >>> BaseFileLoader()._read(tmp.name)[:3]
        b'key'
        >>> Path(tmp.name).unlink()
        """

        file_path = Path(path)
        if not file_path.is_file():
            raise NotFound(f"File not found: {path}")
        payload = file_path.read_bytes()
        log_debug("file_read", path=path, size=len(payload))
        return payload

    @staticmethod
    def _ensure_mapping(data: object, *, path: str) -> Mapping[str, object]:
        """Ensure *data* behaves like a mapping, otherwise raise ``InvalidFormat``.

        Examples
        --------
        >>> BaseFileLoader._ensure_mapping({"key": 1}, path="demo")
        {'key': 1}
        >>> BaseFileLoader._ensure_mapping(42, path="demo")
        Traceback (most recent call last):
        ...
        flowsource_migrate.domain.errors.InvalidFormat: File demo did not produce a mapping
        """

        if not isinstance(data, Mapping):
            raise InvalidFormat(f"File {path} did not produce a mapping")
        return data  # type: ignore[return-value]


class TOMLFileLoader(BaseFileLoader):
    """Load TOML documents using the standard library parser."""

    def load(self, path: str) -> Mapping[str, object]:
        try:
            text = self._read(path).decode("utf-8")
            data = tomllib.loads(text)
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:  # type: ignore[attr-defined]
            log_error("file_invalid", path=path, format="toml", error=str(exc))
            raise InvalidFormat(f"Invalid TOML in {path}: {exc}") from exc
        result = self._ensure_mapping(data, path=path)
        log_debug("file_loaded", path=path, format="toml")
        return result


class JSONFileLoader(BaseFileLoader):
    """Load JSON documents."""

    def load(self, path: str) -> Mapping[str, object]:
        try:
            data = json.loads(self._read(path))
        except json.JSONDecodeError as exc:
            log_error("file_invalid", path=path, format="json", error=str(exc))
            raise InvalidFormat(f"Invalid JSON in {path}: {exc}") from exc
        result = self._ensure_mapping(data, path=path)
        log_debug("file_loaded", path=path, format="json")
        return result


class YAMLFileLoader(BaseFileLoader):
    """Load YAML documents; an empty file yields an empty mapping."""

    def load(self, path: str) -> Mapping[str, object]:
        """Return mapping extracted from YAML file at *path*.

        Raises
        ------
        NotFound
            When *path* does not exist.
        InvalidFormat
            When the content is not valid YAML or not a mapping.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', suffix='.yaml', delete=False, encoding='utf-8')
        >>> _ = tmp.write('key: 1')
        >>> tmp.close()
        >>> YAMLFileLoader().load(tmp.name)["key"]
        1
        >>> Path(tmp.name).unlink()
        """

        raw = self._read(path)
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidFormat(f"File {path} is not UTF-8: {exc}") from exc
        result = parse_yaml_mapping(text, source=path)
        log_debug("file_loaded", path=path, format="yaml")
        return result


def parse_yaml_mapping(text: str, *, source: str = "<text>") -> dict[str, Any]:
    """Parse *text* and return a mapping; empty documents become ``{}``.

    >>> parse_yaml_mapping("a:\\n  b: 1\\n")
    {'a': {'b': 1}}
    >>> parse_yaml_mapping("")
    {}
    """

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        log_error("file_invalid", path=source, format="yaml", error=str(exc))
        raise InvalidFormat(f"Invalid YAML in {source}: {exc}") from exc
    if data is None:
        return {}
    return dict(BaseFileLoader._ensure_mapping(data, path=source))


class _IndentedDumper(yaml.SafeDumper):
    """SafeDumper that indents block sequences under their parent key."""

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> Any:
        return super().increase_indent(flow, False)


def dump_yaml(document: Mapping[str, Any]) -> str:
    """Serialise *document* keeping insertion order.

    >>> print(dump_yaml({"catalog": {"locations": [{"type": "file"}]}}), end="")
    catalog:
      locations:
        - type: file
    """

    if not document:
        return ""
    return yaml.dump(
        dict(document),
        Dumper=_IndentedDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=120,
    )


def find_duplicate_keys(text: str) -> list[tuple[str, str]]:
    """Return ``(parent_path, key)`` for every key repeated inside one mapping.

    ``yaml.safe_load`` keeps only the last occurrence of a repeated key, so
    duplicates can only be observed on the node graph.

    >>> find_duplicate_keys("auth:\\n  providers:\\n    github: {}\\n    github: {}\\n")
    [('auth.providers', 'github')]
    >>> find_duplicate_keys("a: 1\\nb: 2\\n")
    []
    """

    try:
        root = yaml.compose(text, Loader=yaml.SafeLoader)
    except yaml.YAMLError as exc:
        raise InvalidFormat(f"Invalid YAML: {exc}") from exc
    found: list[tuple[str, str]] = []
    if root is not None:
        _walk_nodes(root, (), found)
    return found


def _walk_nodes(node: yaml.Node, path: tuple[str, ...], found: list[tuple[str, str]]) -> None:
    if isinstance(node, yaml.MappingNode):
        seen: set[str] = set()
        for key_node, value_node in node.value:
            key = str(key_node.value)
            if key in seen:
                found.append((".".join(path), key))
            seen.add(key)
            _walk_nodes(value_node, (*path, key), found)
    elif isinstance(node, yaml.SequenceNode):
        for index, item in enumerate(node.value):
            _walk_nodes(item, (*path, str(index)), found)


def split_header(text: str) -> tuple[list[str], str]:
    """Split leading comment lines (and blank lines between them) from *text*.

    >>> split_header("# generated\\n# by tool\\n\\napp:\\n  title: x\\n")
    (['# generated', '# by tool'], 'app:\\n  title: x\\n')
    """

    lines = text.splitlines(keepends=True)
    header: list[str] = []
    index = 0
    while index < len(lines):
        stripped = lines[index].strip()
        if stripped.startswith("#"):
            header.append(stripped)
        elif stripped:
            break
        index += 1
    return header, "".join(lines[index:])

"""Filesystem adapter for YAML configuration documents.

Purpose
-------
Read app-config documents together with their leading comment header and
write them back atomically, so an interrupted run never leaves a half
written ``app-config.yaml`` behind.

Contents
--------
* :class:`StoredDocument` – parsed document plus its header comment lines.
* :class:`YAMLDocumentStore` – implements the ``DocumentStore`` port.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from ...domain.errors import InvalidFormat, NotFound
from ...observability import StructuredLogger
from ..file_loaders.structured import dump_yaml, parse_yaml_mapping, split_header


@dataclass
class StoredDocument:
    document: dict[str, Any]
    header: list[str] = field(default_factory=list)


class YAMLDocumentStore:
    """Read and atomically write YAML documents with a preserved comment header."""

    def __init__(self, logger: StructuredLogger | None = None) -> None:
        self._log = (logger or StructuredLogger()).child("store")

    def read(self, path: Path) -> StoredDocument:
        """Return the document at *path*.

        Raises
        ------
        NotFound
            The file does not exist.
        InvalidFormat
            The file is not UTF-8, not YAML, or not a mapping.
        """

        if not path.is_file():
            raise NotFound(f"File not found: {path}")
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidFormat(f"File {path} is not UTF-8: {exc}") from exc
        header, _ = split_header(text)
        document = parse_yaml_mapping(text, source=str(path))
        self._log.debug("document_read", path=str(path), keys=len(document))
        return StoredDocument(document=document, header=header)

    @staticmethod
    def render(document: Mapping[str, Any], header: list[str] | None = None) -> str:
        """Return the text that :meth:`write` would persist.

        >>> YAMLDocumentStore.render({"app": {"title": "x"}}, ["# generated"])
        '# generated\\napp:\\n  title: x\\n'
        """

        body = dump_yaml(document)
        if not header:
            return body
        return "\n".join(header) + "\n" + body

    def write_text(self, path: Path, text: str) -> None:
        """Replace *path* with *text* via a sibling temporary file.

        Raises :class:`OSError` when the directory is not writable and
        :class:`UnicodeEncodeError` for text UTF-8 cannot hold; the original
        file is untouched in both cases.
        """

        path.parent.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        )
        try:
            with handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(handle.name, path)
        except BaseException:
            Path(handle.name).unlink(missing_ok=True)
            raise
        self._log.debug("document_written", path=str(path), size=len(text))

    def write(self, path: Path, document: Mapping[str, Any], header: list[str] | None = None) -> None:
        self.write_text(path, self.render(document, header))

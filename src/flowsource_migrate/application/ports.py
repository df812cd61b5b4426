"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts adapters satisfy so the services and the
orchestrator can be exercised with in-memory fakes.

Contents
--------
* :class:`DocumentStore` – reads and atomically writes YAML documents.
* :class:`DocumentationParser` – turns a markdown file into a
  :class:`DocumentationTree`.
* :class:`Scaffolder` – generates the base application skeleton.
* :class:`FileLoader` / :class:`DotEnvLoader` / :class:`EnvLoader` – settings
  sources consumed by the composition root.

System Role
-----------
These protocols keep the application layer independent of PyYAML, the
filesystem and ``npx``. Each adapter implements exactly one of them.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Protocol

from ..domain.documents import DocumentationTree

if TYPE_CHECKING:
    from ..adapters.store.yaml_store import StoredDocument


class DocumentStore(Protocol):
    """Persist configuration documents together with their header comments."""

    def read(self, path: Path) -> "StoredDocument":
        """Return the stored document or raise ``NotFound`` / ``InvalidFormat``."""

    def render(self, document: Mapping[str, Any], header: list[str] | None = None) -> str:
        """Return the text representation of *document*."""

    def write_text(self, path: Path, text: str) -> None:
        """Atomically replace *path* with *text*; raises ``OSError`` on failure."""


class DocumentationParser(Protocol):
    """Parse setup documentation into sections and fenced code blocks."""

    def parse(self, path: Path) -> DocumentationTree:
        """Return the tree for *path* or raise ``NotFound``."""


class Scaffolder(Protocol):
    """Generate a fresh application skeleton."""

    def scaffold(self, destination: Path, app_name: str) -> Path:
        """Create the skeleton at *destination* and return its root directory."""


class FileLoader(Protocol):
    def load(self, path: str) -> Mapping[str, object]:
        """Read *path* and return a mapping representation or raise ``InvalidFormat``."""


class DotEnvLoader(Protocol):
    def load(self, start_dir: str | None = None) -> Mapping[str, object]:
        """Search from *start_dir* upwards and return the first parsed file."""


class EnvLoader(Protocol):
    def load(self, prefix: str) -> Mapping[str, object]:
        """Return variables that match *prefix* (``__`` for nesting)."""

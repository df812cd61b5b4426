"""Value objects describing configuration documents and parsed documentation.

Purpose
-------
Give the application layer a vocabulary that does not depend on PyYAML or on
any markdown library: plain ``dict`` documents, a frozen documentation tree,
the dual-mode state enum and the single rule deciding whether a value is a
placeholder.

Contents
--------
* :data:`ConfigDocument` / :data:`ConfigFragment` – type aliases.
* :func:`is_placeholder` / :func:`env_placeholder` – the placeholder rule.
* :class:`DocSection`, :class:`CodeBlock`, :class:`DocumentationTree`.
* :class:`ValidationReport`.
* :class:`DualModeState`, :class:`DualOutputs`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Final, Mapping, TypeAlias

ConfigDocument: TypeAlias = dict[str, Any]
ConfigFragment: TypeAlias = Mapping[str, Any]

_PLACEHOLDER_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\$\{[A-Za-z_][A-Za-z0-9_]*\}"  # ${GITHUB_CLIENT_ID}
    r"|<[^<>\r\n]+>"  # <GitHub client ID>
    r"|YOUR_[A-Z0-9_]+"  # YOUR_GITHUB_CLIENT_ID
)


def is_placeholder(value: object) -> bool:
    """Return ``True`` when *value* stands in for a credential instead of being one.

    A value is a placeholder when it is ``None``, blank, or consists entirely of
    one placeholder token. Non-string scalars are real values.

    Examples
    --------
    >>> is_placeholder(None), is_placeholder('  '), is_placeholder('${GITHUB_TOKEN}')
    (True, True, True)
    >>> is_placeholder('<your github token>'), is_placeholder('YOUR_GITHUB_CLIENT_ID')
    (True, True)
    >>> is_placeholder('Iv1.8a61f9b3a7aba766'), is_placeholder('prefix-${X}'), is_placeholder(42)
    (False, False, False)
    """

    if value is None:
        return True
    if not isinstance(value, str):
        return False
    stripped = value.strip()
    if not stripped:
        return True
    return _PLACEHOLDER_PATTERN.fullmatch(stripped) is not None


def env_placeholder(name: str) -> str:
    """Return the canonical placeholder text for field *name*.

    >>> env_placeholder('GITHUB_CLIENT_ID')
    '${GITHUB_CLIENT_ID}'
    """

    return "${" + name + "}"


@dataclass(frozen=True)
class DocSection:
    title: str
    content: str
    level: int = 1


@dataclass(frozen=True)
class CodeBlock:
    """A fenced code block with its language tag and the section it belongs to."""

    language: str
    content: str
    section: str | None = None


@dataclass(frozen=True)
class DocumentationTree:
    """Parsed markdown documentation as consumed by the fragment extractor.

    Why
    ----
    The extractor must not care how documentation was parsed. Any parser (the
    bundled regex segmenter, a JSON dump from another tool) produces this
    shape.

    Examples
    --------
    >>> tree = DocumentationTree.from_mapping({
    ...     "sections": [{"title": "Auth", "content": "text"}],
    ...     "codeBlocks": [{"language": "yaml", "content": "auth: {}"}],
    ... })
    >>> tree.code_blocks[0].language, tree.sections[0].title
    ('yaml', 'Auth')
    """

    sections: tuple[DocSection, ...] = ()
    code_blocks: tuple[CodeBlock, ...] = ()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "DocumentationTree":
        sections = tuple(
            DocSection(
                title=str(item.get("title", "")),
                content=str(item.get("content", "")),
                level=int(item.get("level", 1)),
            )
            for item in payload.get("sections") or ()
        )
        blocks = tuple(
            CodeBlock(
                language=str(item.get("language") or ""),
                content=str(item.get("content") or ""),
                section=item.get("section"),
            )
            for item in payload.get("codeBlocks") or payload.get("code_blocks") or ()
        )
        return cls(sections=sections, code_blocks=blocks)

    def section(self, title: str) -> DocSection | None:
        """Return the first section whose title contains *title* (case-insensitive)."""

        needle = title.lower()
        for item in self.sections:
            if needle in item.title.lower():
                return item
        return None


@dataclass(frozen=True)
class ValidationReport:
    """Advisory outcome of :meth:`ConfigMerger.validate`."""

    is_valid: bool
    warnings: tuple[str, ...] = ()

    @classmethod
    def from_warnings(cls, warnings: list[str] | tuple[str, ...]) -> "ValidationReport":
        return cls(is_valid=not warnings, warnings=tuple(warnings))

    def to_dict(self) -> dict[str, Any]:
        return {"isValid": self.is_valid, "warnings": list(self.warnings)}


class DualModeState(Enum):
    """Lifecycle of template/value accumulation inside one ``ConfigMerger``.

    ``DISABLED`` ignores fragments, ``ACCUMULATING`` records them, ``BUILT``
    means outputs were written and further fragments are ignored.
    """

    DISABLED = "disabled"
    ACCUMULATING = "accumulating"
    BUILT = "built"


@dataclass(frozen=True)
class DualOutputs:
    """Documents written by :meth:`ConfigMerger.build_dual_outputs`."""

    template_document: ConfigDocument
    value_document: ConfigDocument
    template_path: Path
    value_path: Path
    scrubbed: tuple[str, ...] = field(default=())

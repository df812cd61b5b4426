"""Markdown documentation adapter.

Purpose
-------
Implement the :class:`flowsource_migrate.application.ports.DocumentationParser`
protocol with a small line scanner: ATX headings start sections, fenced blocks
(backticks or tildes, three or more) become code blocks attributed to the
enclosing section. Nothing else of markdown matters to the migration.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final

from ...domain.documents import CodeBlock, DocSection, DocumentationTree
from ...domain.errors import NotFound
from ...observability import log_debug

_HEADING: Final[re.Pattern[str]] = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_FENCE_OPEN: Final[re.Pattern[str]] = re.compile(r"^(?P<indent>\s{0,3})(?P<fence>`{3,}|~{3,})\s*(?P<info>[^`\s]*)")


def parse_markdown(text: str) -> DocumentationTree:
    """Segment *text* into sections and fenced code blocks.

    Examples
    --------
    >>> fence = "`" * 3
    >>> tree = parse_markdown("# Auth\\nintro\\n" + fence + "yaml\\nauth: {}\\n" + fence + "\\n")
    >>> tree.sections[0].title, tree.code_blocks[0].language, tree.code_blocks[0].content
    ('Auth', 'yaml', 'auth: {}')
    """

    sections: list[DocSection] = []
    blocks: list[CodeBlock] = []
    title: str | None = None
    level = 1
    body: list[str] = []
    fence: str | None = None
    language = ""
    code: list[str] = []

    def close_section() -> None:
        if title is not None or any(line.strip() for line in body):
            sections.append(DocSection(title=title or "", content="\n".join(body).strip(), level=level))

    for line in text.splitlines():
        if fence is not None:
            stripped = line.strip()
            if stripped.startswith(fence[0] * len(fence)) and not stripped.strip(fence[0]):
                blocks.append(CodeBlock(language=language, content="\n".join(code), section=title))
                fence = None
                code = []
            else:
                code.append(line)
            body.append(line)
            continue
        opening = _FENCE_OPEN.match(line)
        if opening:
            fence = opening.group("fence")
            language = opening.group("info").lower()
            body.append(line)
            continue
        heading = _HEADING.match(line)
        if heading:
            close_section()
            title = heading.group(2)
            level = len(heading.group(1))
            body = []
            continue
        body.append(line)

    if fence is not None:
        blocks.append(CodeBlock(language=language, content="\n".join(code), section=title))
    close_section()
    return DocumentationTree(sections=tuple(sections), code_blocks=tuple(blocks))


class MarkdownDocumentationParser:
    """Parse a markdown file from disk."""

    def parse(self, path: Path) -> DocumentationTree:
        if not path.is_file():
            raise NotFound(f"Documentation not found: {path}")
        tree = parse_markdown(path.read_text(encoding="utf-8"))
        log_debug("documentation_parsed", path=str(path), sections=len(tree.sections), blocks=len(tree.code_blocks))
        return tree

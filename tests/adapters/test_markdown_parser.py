from __future__ import annotations

from pathlib import Path

import pytest

from flowsource_migrate.adapters.markdown.default import MarkdownDocumentationParser, parse_markdown
from flowsource_migrate.domain.errors import NotFound

FENCE = "`" * 3


def test_sections_and_blocks_are_attributed(github_auth_doc: str) -> None:
    tree = parse_markdown(github_auth_doc)

    assert [section.title for section in tree.sections] == ["GitHub Authentication", "Integration"]
    assert [section.level for section in tree.sections] == [1, 2]
    assert [(block.language, block.section) for block in tree.code_blocks] == [
        ("yaml", "GitHub Authentication"),
        ("yml", "Integration"),
        ("ts", "Integration"),
    ]
    assert tree.section("integration") is tree.sections[1]


def test_heading_inside_fence_is_code() -> None:
    text = f"# Setup\n{FENCE}bash\n# not a heading\necho hi\n{FENCE}\n"

    tree = parse_markdown(text)

    assert len(tree.sections) == 1
    assert tree.code_blocks[0].content == "# not a heading\necho hi"


def test_tilde_fence_and_unterminated_block() -> None:
    tree = parse_markdown("~~~yaml\na: 1\n~~~\n\n" + FENCE + "yaml\nb: 2\n")

    assert [block.content for block in tree.code_blocks] == ["a: 1", "b: 2"]


def test_parser_reads_file(tmp_path: Path, github_auth_doc: str) -> None:
    path = tmp_path / "GithubAuth.md"
    path.write_text(github_auth_doc, encoding="utf-8")

    assert len(MarkdownDocumentationParser().parse(path).code_blocks) == 3


def test_parser_missing_file(tmp_path: Path) -> None:
    with pytest.raises(NotFound):
        MarkdownDocumentationParser().parse(tmp_path / "absent.md")

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from flowsource_migrate.adapters.markdown.default import parse_markdown
from flowsource_migrate.application.extract import DocFragmentExtractor
from flowsource_migrate.application.merger import ConfigMerger
from flowsource_migrate.domain.documents import DocumentationTree


def _tree(*blocks: tuple[str, str]) -> DocumentationTree:
    return DocumentationTree.from_mapping(
        {"codeBlocks": [{"language": language, "content": content} for language, content in blocks]}
    )


def test_extract_keeps_yaml_and_yml_blocks_in_order(github_auth_doc: str) -> None:
    tree = parse_markdown(github_auth_doc)

    fragments = DocFragmentExtractor().extract_fragments(tree, "yaml", ["github"])

    assert [next(iter(fragment)) for fragment in fragments] == ["auth", "integrations"]


def test_keyword_filter_is_case_insensitive() -> None:
    tree = _tree(("yaml", "auth:\n  providers:\n    GitHub: {}"), ("yaml", "proxy:\n  endpoints: {}"))

    fragments = DocFragmentExtractor().extract_fragments(tree, "yaml", ["github"])

    assert fragments == [{"auth": {"providers": {"GitHub": {}}}}]


def test_empty_keyword_list_keeps_every_block_of_the_language() -> None:
    tree = _tree(("yaml", "a: 1"), ("json", '{"b": 2}'), ("YAML", "c: 3"))

    assert DocFragmentExtractor().extract_fragments(tree) == [{"a": 1}, {"c": 3}]


def test_unparseable_and_scalar_blocks_are_skipped() -> None:
    tree = _tree(("yaml", "a: [1"), ("yaml", "- just\n- a list"), ("yaml", "just text"), ("yaml", "ok: true"))

    assert DocFragmentExtractor().extract_fragments(tree) == [{"ok": True}]


def test_substitution_normalises_alias_spellings() -> None:
    extractor = DocFragmentExtractor()
    text = "clientId: ${AUTH_GITHUB_CLIENT_ID}\nclientSecret: <GitHub client secret>\ntoken: <Github Token>\n"

    template = extractor.substitute_placeholders(
        text, {"GITHUB_CLIENT_ID": None, "GITHUB_CLIENT_SECRET": "", "GITHUB_TOKEN": "${GITHUB_TOKEN}"}
    )

    assert template == "clientId: ${GITHUB_CLIENT_ID}\nclientSecret: ${GITHUB_CLIENT_SECRET}\ntoken: ${GITHUB_TOKEN}\n"


def test_substituted_value_is_not_rewritten_again() -> None:
    extractor = DocFragmentExtractor(aliases={"GITHUB_CLIENT_ID": ["<id>"]})

    result = extractor.substitute_placeholders("a: <id>\nb: ${GITHUB_CLIENT_ID}", {"GITHUB_CLIENT_ID": "<id>-real"})

    assert result == 'a: "<id>-real"\nb: "<id>-real"'


def test_real_values_survive_yaml_parsing(github_auth_doc: str) -> None:
    tree = parse_markdown(github_auth_doc)
    secrets = {"GITHUB_CLIENT_ID": "0123", "GITHUB_CLIENT_SECRET": "ab #cd: ef", "GITHUB_TOKEN": "it's"}

    auth, integration = DocFragmentExtractor().extract_fragments(tree, "yaml", ["github"], secrets)

    development = auth["auth"]["providers"]["github"]["development"]
    assert development == {"clientId": "0123", "clientSecret": "ab #cd: ef"}
    assert integration["integrations"]["github"][0]["token"] == "it's"


def test_quoted_and_embedded_spellings_keep_their_context() -> None:
    extractor = DocFragmentExtractor()
    text = "a: '${GITHUB_TOKEN}'\nb: \"<your github token>\"\nc: https://x/${GITHUB_TOKEN}/y\n"

    result = extractor.substitute_placeholders(text, {"GITHUB_TOKEN": 'o\'k"1'})

    assert yaml.safe_load(result) == {"a": 'o\'k"1', "b": 'o\'k"1', "c": 'https://x/o\'k"1/y'}


def test_extract_variants_pairs_template_and_value(github_auth_doc: str) -> None:
    tree = parse_markdown(github_auth_doc)
    extractor = DocFragmentExtractor()

    pairs = extractor.extract_variants(
        tree,
        "yaml",
        ["github"],
        [{"GITHUB_CLIENT_SECRET": None}, {"GITHUB_CLIENT_SECRET": "s3cr3t"}],
    )

    template, value = pairs[0]
    assert template["auth"]["providers"]["github"]["development"]["clientSecret"] == "${GITHUB_CLIENT_SECRET}"
    assert value["auth"]["providers"]["github"]["development"]["clientSecret"] == "s3cr3t"


def test_merge_documentation_writes_each_fragment(tmp_path: Path, github_auth_doc: str) -> None:
    target = tmp_path / "app-config.yaml"
    extractor = DocFragmentExtractor(ConfigMerger())

    count = extractor.merge_documentation(
        parse_markdown(github_auth_doc),
        target,
        keywords=["github"],
        substitutions={"GITHUB_TOKEN": "ghp_real"},
        label="GitHub Authentication Configuration",
    )

    assert count == 2
    document = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert document["integrations"]["github"] == [{"host": "github.com", "token": "ghp_real"}]
    assert "auth" in document


def test_merge_documentation_requires_merger(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        DocFragmentExtractor().merge_documentation(DocumentationTree(), tmp_path / "x.yaml")

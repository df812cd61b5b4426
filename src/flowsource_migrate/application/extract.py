"""Pull configuration fragments out of setup documentation.

Purpose
-------
Setup guides ship YAML snippets meant to be pasted into ``app-config.yaml``.
This module finds the relevant fenced blocks, normalises the many ways the
guides spell a credential placeholder, parses the blocks and hands the
resulting fragments to :class:`ConfigMerger`.

Contents
--------
* :data:`DEFAULT_ALIASES` – textual variants seen in the guides per field.
* :class:`DocFragmentExtractor` – ``extract_fragments``,
  ``substitute_placeholders`` and ``merge_documentation``.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Final, Iterable, Mapping, Sequence

from ..adapters.file_loaders.structured import parse_yaml_mapping
from ..domain.documents import DocumentationTree, env_placeholder, is_placeholder
from ..domain.errors import InvalidFormat
from ..observability import StructuredLogger
from .merger import ConfigMerger

LANGUAGE_ALIASES: Final[dict[str, str]] = {"yml": "yaml"}

DEFAULT_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "GITHUB_TOKEN": (
        "${GITHUB_PAT_TOKEN}",
        "<add your github personal access token>",
        "<GitHub Token>",
        "<Github Token>",
        "<your github token>",
    ),
    "GITHUB_CLIENT_ID": (
        "${AUTH_GITHUB_CLIENT_ID}",
        "<GitHub client ID>",
        "<Github Client ID>",
    ),
    "GITHUB_CLIENT_SECRET": (
        "${AUTH_GITHUB_CLIENT_SECRET}",
        "<GitHub client secret>",
        "<Github Client Secret>",
    ),
    "GITHUB_ORGANIZATION": (
        "<GitHub organization>",
        "<Github Organization>",
    ),
    "GITHUB_APP_ID": (
        "<GITHUB_APP_APP_ID>",
        "<GitHub App ID>",
        "<Github App ID>",
        "<github app id>",
    ),
    "GITHUB_APP_CLIENT_ID": ("<GitHub App client ID>",),
    "GITHUB_APP_CLIENT_SECRET": ("<GitHub App client secret>",),
    "GITHUB_APP_PRIVATE_KEY": (
        "<GitHub App Private Key>",
        "<Github App Private Key>",
        "<github app private key>",
    ),
}


def normalize_language(tag: str | None) -> str:
    """Lower-case *tag* and resolve aliases.

    >>> normalize_language(' YML '), normalize_language('ts')
    ('yaml', 'ts')
    """

    cleaned = (tag or "").strip().lower()
    return LANGUAGE_ALIASES.get(cleaned, cleaned)


class DocFragmentExtractor:
    """Extract YAML configuration fragments from a :class:`DocumentationTree`.

    Parameters
    ----------
    merger:
        Target of :meth:`merge_documentation`. Optional for callers that only
        extract.
    logger:
        Structured logger.
    aliases:
        Extra or replacement alias lists keyed by canonical field name.
    """

    def __init__(
        self,
        merger: ConfigMerger | None = None,
        *,
        logger: StructuredLogger | None = None,
        aliases: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        self._merger = merger
        self._log = (logger or StructuredLogger()).child("extract")
        self._aliases: dict[str, tuple[str, ...]] = dict(DEFAULT_ALIASES)
        for name, forms in (aliases or {}).items():
            self._aliases[name] = tuple(forms)

    def forms_for(self, field: str) -> tuple[str, ...]:
        """Every textual spelling of *field*, canonical forms first."""

        return (env_placeholder(field), f"<{field}>", *self._aliases.get(field, ()))

    def substitute_placeholders(self, text: str, mapping: Mapping[str, Any]) -> str:
        """Rewrite every spelling of each field in *mapping* to its value.

        A placeholder value (``None``, blank, ``${...}``) produces the
        canonical ``${FIELD}`` form, so the same call can build a template
        (all ``None``) or a value variant (real credentials). The replacement
        runs as one regex pass with longer spellings tried first, so a
        substituted value is never rewritten again.

        Real values are written as YAML scalars: double quoted when the
        spelling is a whole plain value, escaped for the surrounding quotes
        inside a quoted scalar, and verbatim when embedded in a longer plain
        value.

        >>> extractor = DocFragmentExtractor()
        >>> extractor.substitute_placeholders('token: <your github token>', {'GITHUB_TOKEN': None})
        'token: ${GITHUB_TOKEN}'
        >>> extractor.substitute_placeholders('id: ${AUTH_GITHUB_CLIENT_ID}', {'GITHUB_CLIENT_ID': 'ab #1'})
        'id: "ab #1"'
        """

        replacements: dict[str, str | None] = {}
        for field, value in mapping.items():
            target = None if is_placeholder(value) else str(value)
            for form in self.forms_for(field):
                replacements[form] = target
        canonical = {form: env_placeholder(field) for field in mapping for form in self.forms_for(field)}
        if not replacements or not text:
            return text
        ordered = sorted(replacements, key=len, reverse=True)
        pattern = re.compile("|".join(re.escape(form) for form in ordered))

        def _replace(match: re.Match[str]) -> str:
            value = replacements[match.group(0)]
            if value is None:
                return canonical[match.group(0)]
            return _yaml_scalar(text, match.start(), match.end(), value)

        return pattern.sub(_replace, text)

    def extract_fragments(
        self,
        tree: DocumentationTree,
        language_tag: str = "yaml",
        keywords: Iterable[str] = (),
        substitutions: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Return parsed mapping fragments in document order.

        Why
        ----
        Guides mix unrelated snippets (catalog, proxy, auth) in one file; the
        keyword filter keeps only what the current step is about.

        What
        ----
        Keeps blocks whose language matches *language_tag* (``yml`` counts as
        ``yaml``) and whose lower-cased content contains any of *keywords*; an
        empty keyword list keeps every block of that language. Blocks that do
        not parse, or parse to something other than a non-empty mapping, are
        skipped with a warning.
        """

        pairs = self.extract_variants(tree, language_tag, keywords, [substitutions])
        return [variants[0] for variants in pairs]

    def extract_variants(
        self,
        tree: DocumentationTree,
        language_tag: str,
        keywords: Iterable[str],
        substitution_sets: Sequence[Mapping[str, Any] | None],
    ) -> list[tuple[dict[str, Any], ...]]:
        """Parse each matching block once per substitution set.

        A block contributes a tuple only when every variant parses, so the
        template and value fragments of one snippet always stay paired.
        """

        wanted = normalize_language(language_tag)
        needles = [keyword.lower() for keyword in keywords if keyword]
        results: list[tuple[dict[str, Any], ...]] = []
        for index, block in enumerate(tree.code_blocks):
            if normalize_language(block.language) != wanted:
                continue
            lowered = block.content.lower()
            if needles and not any(needle in lowered for needle in needles):
                continue
            variants: list[dict[str, Any]] = []
            for substitutions in substitution_sets:
                text = self.substitute_placeholders(block.content, substitutions) if substitutions else block.content
                try:
                    fragment = parse_yaml_mapping(text, source=f"code block {index}")
                except InvalidFormat as exc:
                    self._log.warning("fragment_skipped", block=index, section=block.section, error=str(exc))
                    break
                if not fragment:
                    self._log.debug("fragment_empty", block=index, section=block.section)
                    break
                variants.append(fragment)
            else:
                results.append(tuple(variants))
        self._log.info("fragments_extracted", language=wanted, keywords=needles, count=len(results))
        return results

    def merge_documentation(
        self,
        tree: DocumentationTree,
        path: Path | str,
        *,
        language_tag: str = "yaml",
        keywords: Iterable[str] = (),
        substitutions: Mapping[str, Any] | None = None,
        label: str | None = None,
    ) -> int:
        """Extract fragments and merge each into *path*; return how many were written."""

        if self._merger is None:
            raise ValueError("DocFragmentExtractor.merge_documentation requires a ConfigMerger")
        merged = 0
        for fragment in self.extract_fragments(tree, language_tag, keywords, substitutions):
            if self._merger.merge_into_file(path, fragment, label):
                merged += 1
        return merged


_BEFORE_PLAIN_VALUE: Final[re.Pattern[str]] = re.compile(r"(?:.*:\s+|\s*-\s+|\s*)")
_AFTER_PLAIN_VALUE: Final[re.Pattern[str]] = re.compile(r"\s*(?:#.*)?")


def _yaml_scalar(text: str, start: int, end: int, value: str) -> str:
    """Render *value* for the span ``text[start:end]`` so YAML reads it back unchanged."""

    before = text[start - 1] if start else ""
    after = text[end] if end < len(text) else ""
    if before and before == after and before in "\"'":
        if before == '"':
            return json.dumps(value, ensure_ascii=False)[1:-1]
        return value.replace("'", "''")
    line_start = text.rfind("\n", 0, start) + 1
    line_end = text.find("\n", end)
    prefix = text[line_start:start]
    suffix = text[end : len(text) if line_end == -1 else line_end]
    if _BEFORE_PLAIN_VALUE.fullmatch(prefix) and _AFTER_PLAIN_VALUE.fullmatch(suffix):
        return json.dumps(value, ensure_ascii=False)
    return value

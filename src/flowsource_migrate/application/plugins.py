"""FlowSource plugin discovery, README wiring and catalog onboarding.

Purpose
-------
FlowSource ships its plugins as ``plugins/flowsource-*`` packages, each with
a README. ``Plugin-Integration.md`` lists them under ``### <Name> Plugin``
headings with links to the frontend and backend READMEs. This module turns
that index into :class:`PluginEntry` records and turns README code blocks
into source edits.

Contents
--------
* :func:`discover_plugins` – parse the plugin index.
* :func:`plugin_slug` / :func:`plugin_directory` – naming helpers.
* :func:`code_steps` – collect routes, imports and backend modules from a README.
* :func:`configuration_tree` – drop catalog entity samples from a README.
* :func:`frontend_edits` / :func:`backend_edits` – edits for ``App.tsx`` and the backend index.
* :func:`catalog_fragments` – configuration for the catalog onboarding choices.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from pathlib import PurePosixPath
from typing import Any, Final, Iterable

from ..domain.documents import DocumentationTree
from ..domain.errors import MigrationError
from ..domain.settings import CatalogRepository
from .extract import normalize_language
from .patcher import Edit, SourcePatcher
from .providers import BACKEND_ANCHOR

PLUGIN_DOC: Final[str] = "Plugin-Integration.md"
ROUTES_ANCHOR: Final[str] = "</FlatRoutes>"
CODE_LANGUAGES: Final[frozenset[str]] = frozenset({"ts", "tsx", "js", "jsx", "typescript", "javascript"})
LOCAL_CATALOG_TARGET: Final[str] = "../../catalog-info.yaml"

_HEADING: Final[re.Pattern[str]] = re.compile(r"^#{1,3}\s")
_PLUGIN_HEADING: Final[re.Pattern[str]] = re.compile(r"^###\s+(?P<name>.+?)\s+Plugin\s*$", re.IGNORECASE)
_README_LINK: Final[re.Pattern[str]] = re.compile(
    r"^-\s+\*\*(?P<side>Frontend|Backend)\*\*:.*?\[[^\]]*README\]\((?P<path>[^)\s]+\.md)\)", re.IGNORECASE
)
_NAMED_IMPORT: Final[re.Pattern[str]] = re.compile(
    r"^\s*import\s+\{(?P<names>[^}]*)\}\s*from\s*['\"](?P<module>[^'\"]+)['\"]", re.MULTILINE
)
_ROUTE: Final[re.Pattern[str]] = re.compile(r"^\s*(?P<route><Route\b[^\n]*/>)\s*$", re.MULTILINE)
_ROUTE_PATH: Final[re.Pattern[str]] = re.compile(r"\bpath=(['\"])[^'\"]*\1")
_BACKEND_ADD: Final[re.Pattern[str]] = re.compile(
    r"backend\.add\(\s*import\(\s*['\"](?P<module>[^'\"]+)['\"]\s*\)\s*\)"
)
_IDENTIFIER: Final[re.Pattern[str]] = re.compile(r"[A-Za-z_$][\w$]*")
_ENTITY_KEY: Final[re.Pattern[str]] = re.compile(r"^(?:apiVersion|kind):", re.MULTILINE)


@dataclass(frozen=True)
class PluginEntry:
    """One plugin from the index; README paths are relative to the index file."""

    name: str
    display_name: str
    frontend_readme: str | None = None
    backend_readme: str | None = None

    @property
    def readmes(self) -> tuple[tuple[str, str], ...]:
        pairs = (("frontend", self.frontend_readme), ("backend", self.backend_readme))
        return tuple((side, path) for side, path in pairs if path)


@dataclass(frozen=True)
class CodeSteps:
    """What a README asks the application to change.

    ``unhandled`` counts code blocks that yielded neither a route nor a
    backend module; those are left for a human.
    """

    imports: tuple[tuple[str, str], ...] = ()
    routes: tuple[str, ...] = ()
    backend_modules: tuple[str, ...] = ()
    unhandled: int = 0


def plugin_slug(display_name: str) -> str:
    """Normalise a display name into the identifier users select plugins by.

    >>> plugin_slug("CI/CD GitHub")
    'ci-cd-github'
    >>> plugin_slug("  AWS Fault-Injection (beta) ")
    'aws-fault-injection-beta'
    """

    slug = display_name.strip().lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[/\\]", "-", slug)
    slug = re.sub(r"[^\w-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def discover_plugins(text: str) -> list[PluginEntry]:
    """Parse ``Plugin-Integration.md`` into plugin entries, in document order.

    A plugin starts at a ``### <Name> Plugin`` heading and ends at the next
    heading of level three or above. Entries without any README link are
    dropped.

    >>> doc = "### Jira Plugin\\n- **Frontend**: [Jira README](../../plugins/flowsource-jira/README.md)\\n"
    >>> discover_plugins(doc)[0].frontend_readme
    '../../plugins/flowsource-jira/README.md'
    """

    entries: list[PluginEntry] = []
    current: dict[str, Any] | None = None

    def close() -> None:
        if current and (current["frontend_readme"] or current["backend_readme"]):
            entries.append(PluginEntry(**current))

    for raw in text.splitlines():
        line = raw.strip()
        if _HEADING.match(line):
            close()
            current = None
            heading = _PLUGIN_HEADING.match(line)
            if heading:
                display = heading.group("name").strip()
                current = {
                    "name": plugin_slug(display),
                    "display_name": display,
                    "frontend_readme": None,
                    "backend_readme": None,
                }
            continue
        if current is None:
            continue
        link = _README_LINK.match(line)
        if link:
            current[f"{link.group('side').lower()}_readme"] = link.group("path")
    close()
    return entries


def plugin_directory(readme: str) -> str | None:
    """Return the ``flowsource-*`` directory a README path points into.

    >>> plugin_directory("../../plugins/flowsource-jira-backend/README.md")
    'flowsource-jira-backend'
    >>> plugin_directory("README.md") is None
    True
    """

    for part in PurePosixPath(readme.replace("\\", "/")).parts:
        if "flowsource-" in part:
            return part
    return None


def code_steps(tree: DocumentationTree) -> CodeSteps:
    """Collect the frontend routes and backend modules a README shows.

    Named imports are kept only when one of their names is used by a
    collected route, so snippets meant for other files do not leak
    unused imports into ``App.tsx``.
    """

    imports: list[tuple[str, str]] = []
    routes: list[str] = []
    modules: list[str] = []
    unhandled = 0
    for block in tree.code_blocks:
        if normalize_language(block.language) not in CODE_LANGUAGES:
            continue
        block_routes = [match.group("route").strip() for match in _ROUTE.finditer(block.content)]
        block_modules = [match.group("module") for match in _BACKEND_ADD.finditer(block.content)]
        if not block_routes and not block_modules:
            unhandled += 1
            continue
        used = {name for route in block_routes for name in _IDENTIFIER.findall(route)}
        for match in _NAMED_IMPORT.finditer(block.content):
            for raw in match.group("names").split(","):
                name = raw.strip()
                if name in used and (match.group("module"), name) not in imports:
                    imports.append((match.group("module"), name))
        routes.extend(route for route in block_routes if route not in routes)
        modules.extend(module for module in block_modules if module not in modules)
    return CodeSteps(tuple(imports), tuple(routes), tuple(modules), unhandled)


def configuration_tree(tree: DocumentationTree) -> DocumentationTree:
    """Drop YAML blocks that are catalog entity samples rather than app configuration.

    Plugin READMEs show ``catalog-info.yaml`` annotations next to the
    ``app-config.yaml`` snippets; only the latter belong in the config files.
    """

    blocks = tuple(
        block
        for block in tree.code_blocks
        if normalize_language(block.language) != "yaml" or not _ENTITY_KEY.search(block.content)
    )
    return replace(tree, code_blocks=blocks)


def frontend_edits(steps: CodeSteps, patcher: SourcePatcher) -> list[Edit]:
    """Import route components and add each route inside ``<FlatRoutes>``."""

    edits: list[Edit] = [
        (lambda text, module=module, name=name: patcher.extend_import(text, module, name))
        for module, name in steps.imports
    ]
    for route in steps.routes:
        path = _ROUTE_PATH.search(route)
        marker = path.group(0) if path else route
        edits.append(
            lambda text, route=route, marker=marker: patcher.insert_declaration_before_anchor(
                text, route, ROUTES_ANCHOR, marker=marker
            )
        )
    return edits


def backend_edits(steps: CodeSteps, patcher: SourcePatcher) -> list[Edit]:
    """Register each backend module before ``backend.start();``."""

    return [
        (
            lambda text, module=module: patcher.insert_declaration_before_anchor(
                text, f"backend.add(import('{module}'));", BACKEND_ANCHOR, marker=module
            )
        )
        for module in steps.backend_modules
    ]


def catalog_fragments(
    choice: str, repositories: Iterable[CatalogRepository] = ()
) -> tuple[dict[str, Any], dict[str, Any]] | None:
    """Return the ``(template, value)`` catalog fragments for one onboarding choice.

    ``manual`` needs no configuration and returns ``None``. ``local``
    registers the application's own ``catalog-info.yaml`` in both files.
    ``remote`` registers each repository by URL; the template side carries
    numbered ``${CATALOG_REPO_<N>_URL}`` placeholders.

    Raises
    ------
    MigrationError
        ``remote`` without repositories, or an unknown choice.

    >>> template, value = catalog_fragments("remote", [CatalogRepository("https://x/c.yaml", ("Component",))])
    >>> template["catalog"]["locations"][0]["target"], value["catalog"]["locations"][0]["rules"]
    ('${CATALOG_REPO_1_URL}', [{'allow': ['Component']}])
    """

    if choice == "manual":
        return None
    if choice == "local":
        fragment = {"catalog": {"locations": [{"type": "file", "target": LOCAL_CATALOG_TARGET}]}}
        return fragment, {"catalog": {"locations": [dict(fragment["catalog"]["locations"][0])]}}
    if choice == "remote":
        repositories = list(repositories)
        if not repositories:
            raise MigrationError("Remote catalog onboarding needs at least one repository")
        template = {
            "catalog": {
                "locations": [
                    {
                        "type": "url",
                        "target": f"${{CATALOG_REPO_{index}_URL}}",
                        "rules": [{"allow": f"${{CATALOG_REPO_{index}_RULES}}"}],
                    }
                    for index in range(1, len(repositories) + 1)
                ],
                "useUrlReadersSearch": False,
            }
        }
        value = {
            "catalog": {
                "locations": [
                    {"type": "url", "target": repo.url, "rules": [{"allow": list(repo.rules)}]}
                    for repo in repositories
                ],
                "useUrlReadersSearch": False,
            }
        }
        return template, value
    raise MigrationError(f"Unknown catalog onboarding choice: {choice}")

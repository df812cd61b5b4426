"""FlowSource branding: files to copy and ``App.tsx`` theme wiring."""

from __future__ import annotations

from typing import Final

from .patcher import Edit, SourcePatcher

BASE_CONFIGURATION_FILES: Final[tuple[str, ...]] = (
    "Dockerfile",
    ".dockerignore",
    ".gitignore",
    ".yarnrc.yml",
    "yarn.lock",
    ".yarn",
)

APP_ASSETS: Final[tuple[str, ...]] = (
    "src/assets",
    "src/components/theme",
    "src/components/Root",
    "src/components/catalog/customcatalog",
    "src/components/search",
    "src/global.css",
    "public/android-chrome-192x192.png",
    "public/apple-touch-icon.png",
    "public/catalog-banner.png",
    "public/favicon-16x16.png",
    "public/favicon-32x32.png",
    "public/favicon.ico",
    "public/safari-pinned-tab.svg",
)

BACKEND_ASSETS: Final[tuple[str, ...]] = ("src/types.ts",)

THEME_IMPORTS: Final[tuple[tuple[str, str], ...]] = (
    ("./components/theme/FlowsourceTheme", "FlowsourceTheme"),
    ("@backstage/theme", "UnifiedThemeProvider"),
)

THEME_DECLARATION: Final[str] = """const flowsourceTheme = {
  id: 'flowsource-theme',
  title: 'Flowsource Theme',
  variant: 'light' as const,
  Provider: ({ children }: { children: JSX.Element }) => (
    <UnifiedThemeProvider theme={FlowsourceTheme} children={children} />
  ),
};"""


def theme_edits(patcher: SourcePatcher) -> list[Edit]:
    """Edits that import the theme, declare it and pass it to ``createApp``."""

    edits: list[Edit] = [
        (lambda text, module=module, name=name: patcher.extend_import(text, module, name))
        for module, name in THEME_IMPORTS
    ]
    edits.append(
        lambda text: patcher.insert_declaration_before_anchor(text, THEME_DECLARATION, "const app = createApp(")
    )
    edits.append(lambda text: patcher.wire_named_option(text, "createApp", "themes", "[flowsourceTheme]"))
    return edits


def drop_packages_ignore(text: str) -> str:
    """Remove the ``/packages`` ignore rule that FlowSource's ``.gitignore`` ships.

    >>> drop_packages_ignore("node_modules\\n/packages\\ndist\\n")
    'node_modules\\ndist\\n'
    """

    lines = text.splitlines(keepends=True)
    return "".join(line for line in lines if line.strip() != "/packages")

"""Migration orchestrator.

Purpose
-------
Drive one migration run: scaffold, copy theme, extract, merge, patch,
validate. Each capability area is a phase; phase ``N`` runs every area up to
``N`` in order, and each area is safe to repeat.

Contents
--------
* :class:`MigrationOrchestrator` – runs the phases and returns a
  :class:`RunSummary`.

Failure policy
--------------
Fatal conditions (unknown provider, missing source tree, missing skeleton)
raise :class:`FatalMigrationError` subclasses and abort the run. Every other
:class:`MigrationError` or :class:`OSError` inside a step is recorded as an
:class:`ItemFailure` and the run continues with the next step.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Final

from ..adapters.filesystem.copy import copy_entries, copy_tree
from ..adapters.scaffold.default import missing_skeleton_parts
from ..domain.documents import DocumentationTree
from ..domain.errors import FatalMigrationError, InvalidFormat, MigrationError, MissingArtifact, NotFound
from ..domain.results import PhaseResult, RunSummary
from ..domain.settings import MigrationSettings
from ..observability import StructuredLogger, make_event
from .extract import DocFragmentExtractor
from .merger import TEMPLATE_FILENAME, VALUE_FILENAME, ConfigMerger
from .patcher import SourcePatcher
from .plugins import (
    PLUGIN_DOC,
    PluginEntry,
    catalog_fragments,
    code_steps,
    configuration_tree,
    discover_plugins,
    plugin_directory,
    plugin_slug,
)
from .plugins import backend_edits as plugin_backend_edits
from .plugins import frontend_edits as plugin_frontend_edits
from .ports import DocumentationParser, Scaffolder
from .providers import (
    ProviderWiring,
    auth_fragment,
    backend_edits,
    filter_integration,
    frontend_edits,
    get_provider,
    integration_fragment,
    section_edits,
)
from .theme import APP_ASSETS, BACKEND_ASSETS, BASE_CONFIGURATION_FILES, drop_packages_ignore, theme_edits

DOCS_DIR: Final[Path] = Path("FlowSourceInstaller/FlowsourceSetupDoc")
REQUIRED_SOURCE_PATHS: Final[tuple[Path, ...]] = (
    DOCS_DIR / "Readme.md",
    DOCS_DIR / "UI-Changes.md",
    Path("configuration"),
    Path("packages-core/app"),
    Path("packages-core/backend"),
)
AUTH_DOC: Final[str] = "Auth.md"

APP_TSX: Final[Path] = Path("packages/app/src/App.tsx")
BACKEND_INDEX: Final[Path] = Path("packages/backend/src/index.ts")
BACKEND_AUTH_PLUGIN: Final[Path] = Path("packages/backend/src/plugins/auth.ts")
BACKEND_DOCKERFILE: Final[Path] = Path("packages/backend/Dockerfile")

StepAction = Callable[[], object]


class MigrationOrchestrator:
    """Run the selected phases against one destination application.

    Parameters
    ----------
    settings:
        Validated run settings.
    merger / extractor / patcher / parser:
        Services shared by all phases. The extractor must wrap the same
        merger so dual-mode bookkeeping sees every fragment.
    scaffolder:
        Optional; without one a missing skeleton is fatal.
    """

    def __init__(
        self,
        settings: MigrationSettings,
        *,
        merger: ConfigMerger,
        extractor: DocFragmentExtractor,
        patcher: SourcePatcher,
        parser: DocumentationParser,
        scaffolder: Scaffolder | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.settings = settings
        self._merger = merger
        self._extractor = extractor
        self._patcher = patcher
        self._parser = parser
        self._scaffolder = scaffolder
        self._log = (logger or StructuredLogger()).child("orchestrator")
        self._phases: dict[str, Callable[[], PhaseResult]] = {
            "ui-theme": self.run_ui_theme,
            "auth": self.run_auth,
            "templates": self.run_templates,
        }

    @property
    def source(self) -> Path:
        return self.settings.source

    @property
    def destination(self) -> Path:
        return self.settings.destination

    def run(self) -> RunSummary:
        """Execute every phase selected by ``settings.phase`` and return the summary."""

        names = self.settings.phase_names
        summary = RunSummary()
        self._log.info("migration_started", **make_event("run", str(self.destination), {"phases": list(names)}))
        for name in names:
            self._log.info("phase_started", **make_event(name, str(self.destination)))
            result = summary.add(self._phases[name]())
            self._log.info(
                "phase_finished",
                **make_event(name, None, {"steps": len(result.steps), "failures": len(result.failures)}),
            )
        self._log.info("migration_finished", failures=len(summary.failures), warnings=len(summary.warnings))
        return summary

    # ------------------------------------------------------------ phase 1

    def run_ui_theme(self) -> PhaseResult:
        result = PhaseResult("ui-theme")
        self._require_source()
        self._ensure_skeleton(result)
        self._step(result, "base-configuration", self._copy_base_configuration)
        self._step(result, "gitignore", self._fix_gitignore)
        self._step(result, "app-assets", lambda: self._copy_assets(result))
        self._step(result, "theme-wiring", lambda: self._patcher.patch_file(self.destination / APP_TSX, theme_edits(self._patcher)))
        self._step(result, "backend-dockerfile", self._remove_backend_dockerfile)
        return result

    def _require_source(self) -> None:
        missing = [str(path) for path in REQUIRED_SOURCE_PATHS if not (self.source / path).exists()]
        if missing:
            raise MissingArtifact(f"FlowSource source tree at {self.source} is missing: {', '.join(missing)}")

    def _ensure_skeleton(self, result: PhaseResult) -> None:
        missing = missing_skeleton_parts(self.destination)
        if not missing:
            result.completed("skeleton-present")
            return
        if self._scaffolder is None or self.settings.skip_scaffold:
            raise MissingArtifact(
                f"Application skeleton at {self.destination} is incomplete ({', '.join(missing)}) and scaffolding is disabled"
            )
        self._scaffolder.scaffold(self.destination, self.settings.app_name)
        result.completed("scaffold")

    def _copy_base_configuration(self) -> None:
        report = copy_entries(self.source / "configuration", self.destination, BASE_CONFIGURATION_FILES)
        self._log.info("base_configuration_copied", copied=len(report.copied), missing=report.missing)

    def _fix_gitignore(self) -> None:
        path = self.destination / ".gitignore"
        if not path.is_file():
            return
        text = path.read_text(encoding="utf-8")
        fixed = drop_packages_ignore(text)
        if fixed != text:
            path.write_text(fixed, encoding="utf-8")
            self._log.info("gitignore_fixed", path=str(path))

    def _copy_assets(self, result: PhaseResult) -> None:
        app = copy_entries(self.source / "packages-core/app", self.destination / "packages/app", APP_ASSETS)
        backend = copy_entries(
            self.source / "packages-core/backend", self.destination / "packages/backend", BACKEND_ASSETS
        )
        for entry in [*app.missing, *backend.missing]:
            result.warn(f"asset not found in source: {entry}")
        self._log.info("assets_copied", copied=len(app.copied) + len(backend.copied))

    def _remove_backend_dockerfile(self) -> None:
        path = self.destination / BACKEND_DOCKERFILE
        if path.is_file():
            path.unlink()
            self._log.info("backend_dockerfile_removed", path=str(path))

    # ------------------------------------------------------------ phase 2

    def run_auth(self) -> PhaseResult:
        result = PhaseResult("auth")
        wiring = get_provider(self.settings.provider)
        self._require_skeleton(APP_TSX, Path(TEMPLATE_FILENAME))

        if self.settings.wants_dual_config:
            self._merger.enable_dual_mode()
            result.completed("dual-mode")
        self._step(result, "documentation-fragments", lambda: self._merge_documentation(wiring, result))
        self._step(result, "provider-configuration", lambda: self._merge_provider_configuration(wiring))
        self._step(
            result,
            "frontend-wiring",
            lambda: self._patcher.patch_file(
                self.destination / APP_TSX,
                [*frontend_edits(wiring, self._patcher), *section_edits(wiring, self._patcher)],
            ),
        )
        self._step(
            result,
            "backend-wiring",
            lambda: self._patcher.patch_file(
                self.destination / BACKEND_INDEX,
                [*backend_edits(wiring, self._patcher), *section_edits(wiring, self._patcher)],
            ),
        )
        if (self.destination / BACKEND_AUTH_PLUGIN).is_file():
            self._step(
                result,
                "backend-auth-sections",
                lambda: self._patcher.patch_file(self.destination / BACKEND_AUTH_PLUGIN, section_edits(wiring, self._patcher)),
            )
        if self._merger.dual_mode_enabled:
            self._step(result, "dual-outputs", lambda: self._merger.build_dual_outputs(self.destination))
        self._step(result, "validation", lambda: self._validate(wiring, result))
        return result

    def _require_skeleton(self, *paths: Path) -> None:
        missing = [str(path) for path in paths if not (self.destination / path).is_file()]
        if missing:
            raise MissingArtifact(f"Application at {self.destination} is missing: {', '.join(missing)}")

    def _merge_documentation(self, wiring: ProviderWiring, result: PhaseResult) -> None:
        target = self.destination / TEMPLATE_FILENAME
        credentials = self.settings.credentials
        method = self.settings.integration
        for name in (AUTH_DOC, wiring.doc_name):
            path = self.source / DOCS_DIR / name
            try:
                tree = self._parser.parse(path)
            except NotFound:
                result.warn(f"documentation not found: {name}")
                continue
            pairs = self._extractor.extract_variants(
                tree,
                "yaml",
                wiring.keywords,
                [wiring.substitutions(None), wiring.substitutions(credentials)],
            )
            for index, (template, value) in enumerate(pairs):
                template = filter_integration(template, wiring, method, credentials)
                value = filter_integration(value, wiring, method, credentials)
                if not value:
                    continue
                label = f"{wiring.title} configuration from {name}"
                self._merger.add_template_fragment(template, label)
                self._merger.add_value_fragment(value, label)
                if not self._merger.merge_into_file(target, value, label):
                    result.fail(f"{name}#{index}", f"could not merge into {target.name}")

    def _merge_provider_configuration(self, wiring: ProviderWiring) -> None:
        credentials = self.settings.credentials
        method = self.settings.integration
        pairs = [
            (auth_fragment(wiring, credentials, template=True), auth_fragment(wiring, credentials)),
            (
                integration_fragment(wiring, credentials, method, template=True),
                integration_fragment(wiring, credentials, method),
            ),
        ]
        target = self.destination / TEMPLATE_FILENAME
        for template, value in pairs:
            if value is None or template is None:
                continue
            self._merger.add_template_fragment(template, wiring.label)
            self._merger.add_value_fragment(value, wiring.label)
            if not self._merger.merge_into_file(target, value, wiring.label):
                raise MigrationError(f"Could not write {wiring.title} configuration to {target}")

    def _validate(self, wiring: ProviderWiring, result: PhaseResult) -> None:
        config_path = self.destination / TEMPLATE_FILENAME
        report = self._merger.validate(config_path.read_text(encoding="utf-8"))
        for warning in report.warnings:
            result.warn(warning)
        auth = self._merger.load(config_path).get("auth")
        providers = auth.get("providers") if isinstance(auth, dict) else None
        if not isinstance(providers, dict) or wiring.id not in providers:
            result.fail(TEMPLATE_FILENAME, f"auth.providers.{wiring.id} is missing after merge")
        app_text = (self.destination / APP_TSX).read_text(encoding="utf-8")
        if wiring.api_ref not in app_text or wiring.config_name not in app_text:
            result.fail(str(APP_TSX), f"{wiring.title} sign-in wiring is missing")

    # ------------------------------------------------------------ phase 3

    def run_templates(self) -> PhaseResult:
        result = PhaseResult("templates")
        self._require_skeleton(Path(TEMPLATE_FILENAME))
        if not self.settings.templates:
            result.warn("no templates selected")
        registered = [
            name
            for name in self.settings.templates
            if self._step(result, f"template:{name}", lambda name=name: self._copy_template(name), item=name)
        ]
        if registered:
            self._step(result, "catalog-locations", lambda: self._register_templates(registered))
        for choice in self.settings.catalog:
            self._step(result, f"catalog:{choice}", lambda choice=choice: self._onboard_catalog(choice))
        if self.settings.plugins:
            self._integrate_plugins(result)
        return result

    def _copy_template(self, name: str) -> None:
        source = self.source / "templates" / name
        if not (source / "template.yaml").is_file():
            raise NotFound(f"template.yaml not found under {source}")
        copy_tree(source, self.destination / "templates" / name)

    def _register_templates(self, names: list[str]) -> None:
        fragment = {
            "catalog": {
                "locations": [
                    {
                        "type": "file",
                        "target": f"../../templates/{name}/template.yaml",
                        "rules": [{"allow": ["Template"]}],
                    }
                    for name in names
                ]
            }
        }
        label = "FlowSource software templates"
        targets = [self.destination / TEMPLATE_FILENAME]
        local = self.destination / VALUE_FILENAME
        if local.is_file():
            targets.append(local)
        for target in targets:
            if not self._merger.merge_into_file(target, fragment, label):
                raise MigrationError(f"Could not register templates in {target.name}")

    def _onboard_catalog(self, choice: str) -> None:
        fragments = catalog_fragments(choice, self.settings.catalog_repositories)
        if fragments is None:
            self._log.info("catalog_manual", **make_event("templates", None, {"choice": choice}))
            return
        template, value = fragments
        label = f"{choice.capitalize()} catalog onboarding"
        local = self.destination / VALUE_FILENAME
        writes = [(self.destination / TEMPLATE_FILENAME, template if local.is_file() else value)]
        if local.is_file():
            writes.append((local, value))
        for target, fragment in writes:
            if not self._merger.merge_into_file(target, fragment, label):
                raise MigrationError(f"Could not write {label.lower()} to {target.name}")

    def _integrate_plugins(self, result: PhaseResult) -> None:
        available: dict[str, PluginEntry] = {}
        if not self._step(result, "plugin-discovery", lambda: available.update(self._discover_plugins())):
            for name in self.settings.plugins:
                result.fail(name, f"{PLUGIN_DOC} could not be read")
            return
        for name in self.settings.plugins:
            self._step(
                result,
                f"plugin:{name}",
                lambda name=name: self._integrate_plugin(available, name, result),
                item=name,
            )

    def _discover_plugins(self) -> dict[str, PluginEntry]:
        path = self.source / DOCS_DIR / PLUGIN_DOC
        if not path.is_file():
            raise NotFound(f"Plugin documentation not found: {path}")
        entries = discover_plugins(path.read_text(encoding="utf-8"))
        self._log.info("plugins_discovered", **make_event("templates", str(path), {"count": len(entries)}))
        return {entry.name: entry for entry in entries}

    def _integrate_plugin(self, available: dict[str, PluginEntry], name: str, result: PhaseResult) -> None:
        entry = available.get(plugin_slug(name))
        if entry is None:
            raise NotFound(f"Plugin not found: {name}")
        docs = self.source / DOCS_DIR
        for side, readme in entry.readmes:
            directory = plugin_directory(readme)
            if directory is None:
                raise InvalidFormat(f"Cannot tell the plugin directory from {readme}")
            source = self.source / "plugins" / directory
            if not source.is_dir():
                raise NotFound(f"Plugin directory not found: {source}")
            copy_tree(source, self.destination / "plugins" / directory)
            tree = self._parser.parse(docs / readme)
            self._merge_plugin_configuration(entry, tree)
            steps = code_steps(tree)
            if steps.routes:
                self._patcher.patch_file(self.destination / APP_TSX, plugin_frontend_edits(steps, self._patcher))
            if steps.backend_modules:
                self._patcher.patch_file(self.destination / BACKEND_INDEX, plugin_backend_edits(steps, self._patcher))
            if steps.unhandled:
                result.warn(f"{entry.display_name} {side} README has {steps.unhandled} code block(s) to apply by hand")
        self._log.info("plugin_integrated", **make_event("templates", None, {"plugin": entry.name}))

    def _merge_plugin_configuration(self, entry: PluginEntry, tree: DocumentationTree) -> None:
        tree = configuration_tree(tree)
        expected = len(self._extractor.extract_fragments(tree))
        if not expected:
            return
        label = f"{entry.display_name} plugin"
        targets = [self.destination / TEMPLATE_FILENAME]
        local = self.destination / VALUE_FILENAME
        if local.is_file():
            targets.append(local)
        for target in targets:
            if self._extractor.merge_documentation(tree, target, label=label) < expected:
                raise MigrationError(f"Could not merge {label} configuration into {target.name}")

    # ------------------------------------------------------------ steps

    def _step(self, result: PhaseResult, step: str, action: StepAction, *, item: str | None = None) -> bool:
        """Run *action*, recording success or a recoverable failure on *result*."""

        try:
            action()
        except FatalMigrationError:
            raise
        except (MigrationError, OSError) as exc:
            result.fail(item or step, str(exc))
            self._log.error("step_failed", **make_event(result.name, None, {"step": step, "error": str(exc)}))
            return False
        result.completed(step)
        self._log.debug("step_completed", **make_event(result.name, None, {"step": step}))
        return True

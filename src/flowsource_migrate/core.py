"""Composition root for ``flowsource_migrate``.

Purpose
-------
Resolve run settings from their layered sources and wire the services (merger,
extractor, patcher, parser, scaffolder) into a :class:`MigrationOrchestrator`.
Nothing else in the package instantiates adapters.

Contents
--------
* :data:`_FILE_LOADERS` – settings file loaders keyed by suffix.
* :class:`SettingsLoadError` – a settings layer could not be read.
* :func:`read_settings` – defaults, file, ``.env``, environment, overrides.
* :func:`build_orchestrator` / :func:`run_migration` – run entry points.

Precedence
----------
``defaults → settings file → .env → FLOWSOURCE_MIGRATE_* → CLI options``,
combined with :func:`overlay_documents`: nested credential mappings merge
key by key, lists and scalars from a later layer replace earlier ones.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, Mapping

from .adapters.dotenv.default import DefaultDotEnvLoader
from .adapters.env.default import DefaultEnvLoader, default_env_prefix
from .adapters.file_loaders.structured import JSONFileLoader, TOMLFileLoader, YAMLFileLoader
from .adapters.markdown.default import MarkdownDocumentationParser
from .adapters.scaffold.default import NpxScaffolder
from .adapters.store.yaml_store import YAMLDocumentStore
from .application.extract import DocFragmentExtractor
from .application.merge import overlay_documents
from .application.merger import ConfigMerger
from .application.orchestrator import MigrationOrchestrator
from .application.patcher import SourcePatcher
from .application.ports import DocumentationParser, Scaffolder
from .domain.errors import FatalMigrationError, InvalidFormat, NotFound
from .domain.results import RunSummary
from .domain.settings import DEFAULT_SETTINGS, MigrationSettings
from .observability import StructuredLogger, bind_trace_id, log_debug, log_info, make_event

SLUG = "flowsource-migrate"

_FILE_LOADERS = {
    ".toml": TOMLFileLoader(),
    ".json": JSONFileLoader(),
    ".yaml": YAMLFileLoader(),
    ".yml": YAMLFileLoader(),
}


class SettingsLoadError(FatalMigrationError):
    """Raised when an explicitly requested settings source cannot be read."""


def read_settings(
    *,
    config_file: str | Path | None = None,
    start_dir: str | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> MigrationSettings:
    """Return validated settings from every layer.

    Parameters
    ----------
    config_file:
        Optional TOML, JSON or YAML settings file.
    start_dir:
        Directory where the upward ``.env`` search begins (defaults to CWD).
    overrides:
        Highest precedence values, usually CLI options; ``None`` values are
        ignored so unset options do not mask lower layers.
    environ:
        Environment mapping, :data:`os.environ` by default.

    Raises
    ------
    SettingsLoadError
        The settings file is missing, has an unknown suffix or is malformed,
        or the ``.env`` file is malformed.
    UnsupportedPhase
        The merged settings name an unknown phase or integration method.

    Examples
    --------
    >>> settings = read_settings(overrides={"phase": 2, "source": "/src"}, environ={}, start_dir="/")
    >>> settings.phase, settings.phase_names
    (2, ('ui-theme', 'auth'))
    """

    layers: list[Mapping[str, Any]] = [DEFAULT_SETTINGS]
    if config_file is not None:
        layers.append(_load_settings_file(Path(config_file)))

    dotenv_loader = DefaultDotEnvLoader()
    try:
        dotenv_data = dotenv_loader.load(start_dir)
    except InvalidFormat as exc:
        raise SettingsLoadError(str(exc)) from exc
    if dotenv_data:
        layers.append(dotenv_data)
        log_debug("settings_layer", **make_event("settings", dotenv_loader.last_loaded_path, {"layer": "dotenv"}))

    env_data = DefaultEnvLoader(environ=environ).load(default_env_prefix(SLUG))
    if env_data:
        layers.append(env_data)
        log_debug("settings_layer", **make_event("settings", None, {"layer": "env", "keys": len(env_data)}))

    cleaned = {key: value for key, value in (overrides or {}).items() if value is not None}
    if cleaned:
        layers.append(cleaned)

    merged = overlay_documents(layers)
    settings = MigrationSettings.from_mapping(merged)
    log_info("settings_resolved", phase=settings.phase, provider=settings.provider, layers=len(layers))
    return settings


def _load_settings_file(path: Path) -> Mapping[str, Any]:
    loader = _FILE_LOADERS.get(path.suffix.lower())
    if loader is None:
        raise SettingsLoadError(f"Unsupported settings file type: {path.suffix or path.name}")
    try:
        return loader.load(str(path))
    except (NotFound, InvalidFormat) as exc:
        raise SettingsLoadError(f"Failed to load settings file {path}: {exc}") from exc


def build_orchestrator(
    settings: MigrationSettings,
    *,
    logger: StructuredLogger | None = None,
    scaffolder: Scaffolder | None = None,
    parser: DocumentationParser | None = None,
) -> MigrationOrchestrator:
    """Wire one set of services for *settings*."""

    log = logger or StructuredLogger()
    merger = ConfigMerger(store=YAMLDocumentStore(log), logger=log)
    return MigrationOrchestrator(
        settings,
        merger=merger,
        extractor=DocFragmentExtractor(merger, logger=log),
        patcher=SourcePatcher(log),
        parser=parser or MarkdownDocumentationParser(),
        scaffolder=None if settings.skip_scaffold else (scaffolder or NpxScaffolder(logger=log)),
        logger=log,
    )


def run_migration(
    settings: MigrationSettings,
    *,
    logger: StructuredLogger | None = None,
    scaffolder: Scaffolder | None = None,
    parser: DocumentationParser | None = None,
    trace_id: str | None = None,
) -> RunSummary:
    """Run the phases selected by *settings* under a fresh trace identifier."""

    bind_trace_id(trace_id or uuid.uuid4().hex[:12])
    try:
        return build_orchestrator(settings, logger=logger, scaffolder=scaffolder, parser=parser).run()
    finally:
        bind_trace_id(None)


__all__ = [
    "SLUG",
    "SettingsLoadError",
    "build_orchestrator",
    "read_settings",
    "run_migration",
]

"""Public package surface for the FlowSource migration tool.

Exports the services a caller needs to migrate a Backstage skeleton from
Python code: settings resolution, the run entry point, and the individual
building blocks (merger, extractor, patcher) for one-off steps. Both
``import flowsource_migrate`` and ``python -m flowsource_migrate`` reach the
same composition root in :mod:`flowsource_migrate.core`.
"""

from __future__ import annotations

from .application.extract import DocFragmentExtractor
from .application.merge import fold_documents, merge_documents
from .application.merger import ConfigMerger
from .application.orchestrator import MigrationOrchestrator
from .application.patcher import SourcePatcher
from .core import SettingsLoadError, build_orchestrator, read_settings, run_migration
from .domain.documents import (
    CodeBlock,
    DocSection,
    DocumentationTree,
    DualModeState,
    DualOutputs,
    ValidationReport,
    is_placeholder,
)
from .domain.errors import (
    FatalMigrationError,
    InvalidFormat,
    MigrationError,
    MissingArtifact,
    NotFound,
    PatchArgumentError,
    ScaffoldError,
    UnsupportedPhase,
    UnsupportedProvider,
    ValidationError,
)
from .domain.results import ItemFailure, PhaseResult, RunSummary
from .domain.settings import MigrationSettings, ProviderCredentials
from .observability import bind_trace_id, configure_logging, get_logger

__all__ = [
    "CodeBlock",
    "ConfigMerger",
    "DocFragmentExtractor",
    "DocSection",
    "DocumentationTree",
    "DualModeState",
    "DualOutputs",
    "FatalMigrationError",
    "InvalidFormat",
    "ItemFailure",
    "MigrationError",
    "MigrationOrchestrator",
    "MigrationSettings",
    "MissingArtifact",
    "NotFound",
    "PatchArgumentError",
    "PhaseResult",
    "ProviderCredentials",
    "RunSummary",
    "ScaffoldError",
    "SettingsLoadError",
    "SourcePatcher",
    "UnsupportedPhase",
    "UnsupportedProvider",
    "ValidationError",
    "ValidationReport",
    "bind_trace_id",
    "build_orchestrator",
    "configure_logging",
    "fold_documents",
    "get_logger",
    "is_placeholder",
    "merge_documents",
    "read_settings",
    "run_migration",
]

"""Domain-level exception hierarchy.

Purpose
-------
Expose the error taxonomy shared by adapters, the application services and the
CLI. The hierarchy lives in the domain layer so outer layers depend on it and
never the other way round.

Contents
--------
* :class:`MigrationError` – umbrella base class for every failure the tool
  raises on purpose.
* :class:`InvalidFormat` – parsing problems while reading YAML, TOML, JSON or
  dotenv input.
* :class:`NotFound` – an optional resource is missing.
* :class:`ValidationError` – a syntactically valid document failed a check.
* :class:`PatchArgumentError` – a text edit primitive was called incorrectly.
* :class:`FatalMigrationError` and its children – conditions that abort the run.

System Role
-----------
Recoverable errors (:class:`InvalidFormat`, :class:`NotFound`) are caught by
``ConfigMerger`` and ``DocFragmentExtractor`` and downgraded to warnings.
Fatal errors propagate out of the orchestrator to the CLI, which converts them
into a non-zero exit code.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base type for all exceptions emitted by ``flowsource_migrate``."""


class InvalidFormat(MigrationError):
    """Raised when an input artifact cannot be parsed into structured data.

    Typical Sources
    ---------------
    Structured file loaders (:mod:`tomllib`, :mod:`json`, :mod:`yaml`) and the
    dotenv parser.
    """


class NotFound(MigrationError):
    """Represents a missing-but-optional resource (file, directory, document)."""


class ValidationError(MigrationError):
    """A configuration document failed a semantic check."""


class PatchArgumentError(MigrationError, ValueError):
    """An edit primitive received an argument it cannot act on.

    Why
    ----
    Missing anchors are not errors (the primitive returns its input), but an
    empty identifier or a malformed marker is a programming mistake and
    should surface immediately.
    """


class FatalMigrationError(MigrationError):
    """Conditions that stop the whole run instead of a single step."""


class UnsupportedPhase(FatalMigrationError):
    """The requested phase or integration mode is not one the tool offers."""


class UnsupportedProvider(FatalMigrationError):
    """The requested authentication provider has no wiring definition."""


class MissingArtifact(FatalMigrationError):
    """A required skeleton or source artifact is absent."""


class ScaffoldError(FatalMigrationError):
    """The application skeleton could not be generated."""

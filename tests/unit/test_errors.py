from __future__ import annotations

from flowsource_migrate.domain.errors import (
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


def test_error_hierarchy() -> None:
    for recoverable in (InvalidFormat, NotFound, ValidationError, PatchArgumentError):
        assert issubclass(recoverable, MigrationError)
        assert not issubclass(recoverable, FatalMigrationError)
    for fatal in (UnsupportedPhase, UnsupportedProvider, MissingArtifact, ScaffoldError):
        assert issubclass(fatal, FatalMigrationError)
        assert isinstance(fatal(""), MigrationError)


def test_patch_argument_error_is_a_value_error() -> None:
    assert isinstance(PatchArgumentError("bad"), ValueError)

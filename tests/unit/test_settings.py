"""Settings resolution: validation of merged mappings and layer precedence."""

from __future__ import annotations

from pathlib import Path

import pytest

from flowsource_migrate.core import SettingsLoadError, read_settings
from flowsource_migrate.domain.errors import UnsupportedPhase
from flowsource_migrate.domain.settings import (
    DEFAULT_CATALOG_RULES,
    CatalogRepository,
    MigrationSettings,
    ProviderCredentials,
)


def test_defaults_select_phase_one() -> None:
    settings = MigrationSettings.from_mapping({})

    assert settings.phase_names == ("ui-theme",)
    assert settings.provider == "github"
    assert settings.destination == Path("flowsource-app")
    assert settings.wants_dual_config is False


@pytest.mark.parametrize("phase", [0, 4, "two"])
def test_unknown_phase_is_rejected(phase: object) -> None:
    with pytest.raises(UnsupportedPhase):
        MigrationSettings.from_mapping({"phase": phase})


def test_unknown_integration_is_rejected() -> None:
    with pytest.raises(UnsupportedPhase):
        MigrationSettings.from_mapping({"integration": "ssh"})


def test_credentials_come_from_provider_section() -> None:
    settings = MigrationSettings.from_mapping(
        {"provider": "GitHub", "phase": "2", "github": {"clientId": "Iv1.abc", "client_secret": "s3cr3t"}}
    )

    assert settings.phase_names == ("ui-theme", "auth")
    assert settings.credentials == ProviderCredentials(client_id="Iv1.abc", client_secret="s3cr3t")
    assert settings.wants_dual_config is True


def test_dual_config_tri_state() -> None:
    real = {"credentials": {"client_id": "a", "client_secret": "b"}}

    assert MigrationSettings.from_mapping({**real, "dual_config": "off"}).wants_dual_config is False
    assert MigrationSettings.from_mapping({"dual_config": True}).wants_dual_config is True
    assert MigrationSettings.from_mapping({**real, "dual_config": "auto"}).dual_config is None


def test_placeholder_credentials_do_not_enable_dual_mode() -> None:
    creds = ProviderCredentials(client_id="${GITHUB_CLIENT_ID}", client_secret="YOUR_SECRET")

    assert creds.has_oauth is False
    assert creds.has_token is False


def test_catalog_choices_are_normalised_and_validated() -> None:
    settings = MigrationSettings.from_mapping({"catalog": "Local, remote, local", "plugins": "Jira, CI/CD GitHub"})

    assert settings.catalog == ("local", "remote")
    assert settings.plugins == ("Jira", "CI/CD GitHub")
    with pytest.raises(UnsupportedPhase, match="Catalog onboarding"):
        MigrationSettings.from_mapping({"catalog": ["github"]})


def test_catalog_repositories_accept_urls_and_mappings() -> None:
    settings = MigrationSettings.from_mapping(
        {
            "catalog_repositories": [
                "https://github.com/acme/a/blob/main/catalog-info.yaml",
                {"url": "https://github.com/acme/b/blob/main/all.yaml", "rules": ["Component", "API"]},
            ]
        }
    )

    assert settings.catalog_repositories == (
        CatalogRepository("https://github.com/acme/a/blob/main/catalog-info.yaml", DEFAULT_CATALOG_RULES),
        CatalogRepository("https://github.com/acme/b/blob/main/all.yaml", ("Component", "API")),
    )
    with pytest.raises(UnsupportedPhase, match="need a url"):
        MigrationSettings.from_mapping({"catalog_repositories": [{"rules": "Component"}]})


def test_read_settings_layer_precedence(tmp_path: Path) -> None:
    config_file = tmp_path / "migrate.toml"
    config_file.write_text('phase = 2\nprovider = "gitlab"\ntemplates = ["A", "B"]\n', encoding="utf-8")
    (tmp_path / ".env").write_text("GITHUB__CLIENT_SECRET=from-dotenv\nPROVIDER=github\n", encoding="utf-8")
    environ = {"FLOWSOURCE_MIGRATE_GITHUB__CLIENT_ID": "from-env", "FLOWSOURCE_MIGRATE_PHASE": "1"}

    settings = read_settings(
        config_file=config_file,
        start_dir=str(tmp_path),
        overrides={"phase": 3, "templates": ["C"], "destination": None},
        environ=environ,
    )

    assert settings.phase == 3
    assert settings.provider == "github"
    assert settings.templates == ("C",)
    assert settings.destination == Path("flowsource-app")
    assert settings.credentials.client_id == "from-env"
    assert settings.credentials.client_secret == "from-dotenv"


def test_read_settings_rejects_unknown_file_type(tmp_path: Path) -> None:
    config_file = tmp_path / "migrate.ini"
    config_file.write_text("[x]\n", encoding="utf-8")

    with pytest.raises(SettingsLoadError):
        read_settings(config_file=config_file, start_dir=str(tmp_path), environ={})


def test_read_settings_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SettingsLoadError):
        read_settings(config_file=tmp_path / "absent.yaml", start_dir=str(tmp_path), environ={})

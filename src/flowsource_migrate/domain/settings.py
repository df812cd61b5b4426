"""Run settings and provider credentials.

The composition root folds defaults, a settings file, ``.env``, environment
variables and CLI options into one mapping; :meth:`MigrationSettings.from_mapping`
turns that mapping into the frozen object the orchestrator consumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Final, Mapping

from .documents import is_placeholder
from .errors import UnsupportedPhase

PHASE_NAMES: Final[dict[int, str]] = {1: "ui-theme", 2: "auth", 3: "templates"}
INTEGRATION_METHODS: Final[tuple[str, ...]] = ("oauth", "pat", "github-app")
CATALOG_CHOICES: Final[tuple[str, ...]] = ("manual", "remote", "local")
DEFAULT_CATALOG_RULES: Final[tuple[str, ...]] = ("Component", "System", "API", "Resource", "Location")

DEFAULT_SETTINGS: Final[dict[str, Any]] = {
    "source": ".",
    "destination": "flowsource-app",
    "app_name": "flowsource-app",
    "phase": 1,
    "provider": "github",
    "integration": "oauth",
    "dual_config": None,
    "templates": [],
    "plugins": [],
    "catalog": [],
    "catalog_repositories": [],
    "skip_scaffold": False,
}


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class ProviderCredentials:
    """Credentials for one sign-in provider; any field may be missing or a placeholder."""

    client_id: str | None = None
    client_secret: str | None = None
    organization: str | None = None
    token: str | None = None
    app_id: str | None = None
    app_client_id: str | None = None
    app_client_secret: str | None = None
    app_private_key: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "ProviderCredentials":
        """Build from ``snake_case`` or ``camelCase`` keys.

        >>> ProviderCredentials.from_mapping({"clientId": "abc", "app_id": 12}).app_id
        '12'
        """

        payload = payload or {}
        aliases = {
            "client_id": ("client_id", "clientId"),
            "client_secret": ("client_secret", "clientSecret"),
            "organization": ("organization", "org", "githubOrganization"),
            "token": ("token", "personal_access_token", "pat"),
            "app_id": ("app_id", "appId"),
            "app_client_id": ("app_client_id", "appClientId"),
            "app_client_secret": ("app_client_secret", "appClientSecret"),
            "app_private_key": ("app_private_key", "appPrivateKey", "private_key"),
        }
        values: dict[str, str | None] = {}
        for name, keys in aliases.items():
            values[name] = next((_text(payload[key]) for key in keys if key in payload), None)
        return cls(**values)

    @property
    def has_oauth(self) -> bool:
        return not is_placeholder(self.client_id) and not is_placeholder(self.client_secret)

    @property
    def has_token(self) -> bool:
        return not is_placeholder(self.token)

    @property
    def has_app(self) -> bool:
        return not is_placeholder(self.app_id)

    @property
    def has_real_values(self) -> bool:
        """``True`` when at least the OAuth pair is real, which turns dual mode on."""

        return self.has_oauth


@dataclass(frozen=True)
class CatalogRepository:
    """A remote repository whose catalog files are registered by URL."""

    url: str
    rules: tuple[str, ...] = DEFAULT_CATALOG_RULES

    @classmethod
    def from_value(cls, value: Any) -> "CatalogRepository":
        """Accept a bare URL or a mapping with ``url`` and optional ``rules``.

        >>> CatalogRepository.from_value({"url": "https://x/catalog-info.yaml", "rules": "Component, API"}).rules
        ('Component', 'API')
        """

        if isinstance(value, Mapping):
            url = _text(value.get("url") or value.get("target"))
            rules = _as_tuple(value.get("rules")) or DEFAULT_CATALOG_RULES
        else:
            url = _text(value)
            rules = DEFAULT_CATALOG_RULES
        if url is None:
            raise UnsupportedPhase("Catalog repositories need a url")
        return cls(url=url, rules=rules)


@dataclass(frozen=True)
class MigrationSettings:
    """Everything one run needs to know.

    ``dual_config`` is tri-state: ``None`` enables dual output automatically
    when real credentials are present.
    """

    source: Path
    destination: Path
    app_name: str = "flowsource-app"
    phase: int = 1
    provider: str = "github"
    integration: str = "oauth"
    dual_config: bool | None = None
    templates: tuple[str, ...] = ()
    plugins: tuple[str, ...] = ()
    catalog: tuple[str, ...] = ()
    catalog_repositories: tuple[CatalogRepository, ...] = ()
    skip_scaffold: bool = False
    credentials: ProviderCredentials = field(default_factory=ProviderCredentials)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "MigrationSettings":
        """Validate and convert a merged settings mapping.

        Raises
        ------
        UnsupportedPhase
            Unknown phase number, integration method or catalog choice.
        """

        merged = {**DEFAULT_SETTINGS, **{k: v for k, v in payload.items() if v is not None or k == "dual_config"}}
        try:
            phase = int(merged["phase"])
        except (TypeError, ValueError) as exc:
            raise UnsupportedPhase(f"Phase must be one of {sorted(PHASE_NAMES)}, got {merged['phase']!r}") from exc
        if phase not in PHASE_NAMES:
            raise UnsupportedPhase(f"Phase must be one of {sorted(PHASE_NAMES)}, got {phase}")
        integration = str(merged["integration"]).strip().lower()
        if integration not in INTEGRATION_METHODS:
            raise UnsupportedPhase(f"Integration must be one of {', '.join(INTEGRATION_METHODS)}, got {integration!r}")
        catalog = tuple(dict.fromkeys(choice.lower() for choice in _as_tuple(merged.get("catalog"))))
        unknown = [choice for choice in catalog if choice not in CATALOG_CHOICES]
        if unknown:
            raise UnsupportedPhase(f"Catalog onboarding must be one of {', '.join(CATALOG_CHOICES)}, got {unknown[0]!r}")
        repositories = merged.get("catalog_repositories") or ()
        if isinstance(repositories, (str, Mapping)):
            repositories = [repositories]

        provider = str(merged["provider"]).strip().lower()
        credentials = merged.get("credentials")
        if not isinstance(credentials, Mapping):
            credentials = merged.get(provider)
        return cls(
            source=Path(str(merged["source"])).expanduser(),
            destination=Path(str(merged["destination"])).expanduser(),
            app_name=str(merged["app_name"]),
            phase=phase,
            provider=provider,
            integration=integration,
            dual_config=_tri_state(merged.get("dual_config")),
            templates=_as_tuple(merged.get("templates")),
            plugins=_as_tuple(merged.get("plugins")),
            catalog=catalog,
            catalog_repositories=tuple(CatalogRepository.from_value(item) for item in repositories),
            skip_scaffold=bool(merged.get("skip_scaffold")),
            credentials=ProviderCredentials.from_mapping(credentials if isinstance(credentials, Mapping) else None),
        )

    @property
    def phase_names(self) -> tuple[str, ...]:
        """Capability areas executed for this phase, in order."""

        return tuple(PHASE_NAMES[number] for number in sorted(PHASE_NAMES) if number <= self.phase)

    @property
    def wants_dual_config(self) -> bool:
        if self.dual_config is None:
            return self.credentials.has_real_values
        return self.dual_config

    def with_overrides(self, **changes: Any) -> "MigrationSettings":
        return replace(self, **changes)


def _tri_state(value: Any) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in {"", "auto", "none", "null"}:
        return None
    return lowered in {"1", "true", "yes", "on"}


def _as_tuple(value: Any) -> tuple[str, ...]:
    """Accept a list or a comma separated string.

    >>> _as_tuple("PDLC-Backend, PDLC-Frontend")
    ('PDLC-Backend', 'PDLC-Frontend')
    """

    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(item) for item in value]
    return tuple(item.strip() for item in items if item and item.strip())

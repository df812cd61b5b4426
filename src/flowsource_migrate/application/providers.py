"""Sign-in provider wiring knowledge.

Purpose
-------
Describe, per provider, what has to change in a scaffolded application:
which API ref the frontend imports, which backend module registers the
provider, which configuration fragments are written and which documentation
keywords select the relevant snippets. Provider-specific glue stays in this
module; the orchestrator only iterates these definitions.

Contents
--------
* :class:`ProviderWiring` and :data:`PROVIDERS`.
* :func:`get_provider` – lookup raising :class:`UnsupportedProvider`.
* :func:`auth_fragment` / :func:`integration_fragment` – programmatic config.
* :func:`filter_integration` – align documentation fragments with the
  selected integration method.
* :func:`frontend_edits` / :func:`backend_edits` / :func:`section_edits` –
  edit lists for :meth:`SourcePatcher.patch_file`.
"""

from __future__ import annotations

import re
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Final

from ..domain.documents import env_placeholder, is_placeholder
from ..domain.errors import UnsupportedProvider
from ..domain.settings import ProviderCredentials
from .patcher import Edit, SourcePatcher

CORE_PLUGIN_API: Final[str] = "@backstage/core-plugin-api"
CORE_COMPONENTS: Final[str] = "@backstage/core-components"
APP_ANCHOR: Final[str] = "const app = createApp("
PROVIDERS_ARRAY: Final[str] = "authProviders"
PROVIDERS_ARRAY_DECLARATION: Final[str] = "const authProviders: SignInProviderConfig[] = [];"
BACKEND_ANCHOR: Final[str] = "backend.start();"
SIGN_IN_PROVIDERS: Final[re.Pattern[str]] = re.compile(r"(<SignInPage\b[^>]*?\bproviders=\{\[)(?P<items>[^\]]*)(\]\})")
SIGN_IN_COMPONENT: Final[str] = (
    "{\n"
    "  SignInPage: props => (\n"
    "    <SignInPage {...props} auto providers={['guest', ...authProviders]} />\n"
    "  ),\n"
    "}"
)


@dataclass(frozen=True)
class ProviderWiring:
    """Static description of one sign-in provider."""

    id: str
    title: str
    api_ref: str
    backend_module: str
    doc_name: str
    keywords: tuple[str, ...]
    field_prefix: str
    integration_field: str | None = None
    host: str | None = None

    @property
    def config_name(self) -> str:
        return f"{self.id}AuthProvider"

    @property
    def section_id(self) -> str:
        return f"auth-provider-{self.id}"

    @property
    def label(self) -> str:
        return f"{self.title} Authentication Configuration"

    def declaration(self) -> str:
        """TypeScript declaration of the sign-in provider config object."""

        return (
            f"const {self.config_name}: SignInProviderConfig = {{\n"
            f"  id: '{self.id}-auth-provider',\n"
            f"  title: '{self.title}',\n"
            f"  message: 'Sign in using {self.title}',\n"
            f"  apiRef: {self.api_ref},\n"
            f"}};"
        )

    def field(self, suffix: str) -> str:
        return f"{self.field_prefix}_{suffix}"

    def substitutions(self, credentials: ProviderCredentials | None) -> dict[str, str | None]:
        """Map canonical field names to values; ``None`` credentials give a template map."""

        creds = credentials or ProviderCredentials()
        return {
            self.field("CLIENT_ID"): creds.client_id,
            self.field("CLIENT_SECRET"): creds.client_secret,
            self.field("ORGANIZATION"): creds.organization,
            self.field("TOKEN"): creds.token,
            self.field("APP_ID"): creds.app_id,
            self.field("APP_CLIENT_ID"): creds.app_client_id,
            self.field("APP_CLIENT_SECRET"): creds.app_client_secret,
            self.field("APP_PRIVATE_KEY"): creds.app_private_key,
        }


PROVIDERS: Final[dict[str, ProviderWiring]] = {
    wiring.id: wiring
    for wiring in (
        ProviderWiring(
            id="github",
            title="GitHub",
            api_ref="githubAuthApiRef",
            backend_module="@backstage/plugin-auth-backend-module-github-provider",
            doc_name="GithubAuth.md",
            keywords=("github",),
            field_prefix="GITHUB",
            integration_field="github",
            host="github.com",
        ),
        ProviderWiring(
            id="gitlab",
            title="GitLab",
            api_ref="gitlabAuthApiRef",
            backend_module="@backstage/plugin-auth-backend-module-gitlab-provider",
            doc_name="GitlabAuth.md",
            keywords=("gitlab",),
            field_prefix="GITLAB",
            integration_field="gitlab",
            host="gitlab.com",
        ),
        ProviderWiring(
            id="microsoft",
            title="Microsoft",
            api_ref="microsoftAuthApiRef",
            backend_module="@backstage/plugin-auth-backend-module-microsoft-provider",
            doc_name="AzureAuth.md",
            keywords=("microsoft", "azure"),
            field_prefix="AZURE",
        ),
        ProviderWiring(
            id="google",
            title="Google",
            api_ref="googleAuthApiRef",
            backend_module="@backstage/plugin-auth-backend-module-google-provider",
            doc_name="GoogleAuth.md",
            keywords=("google",),
            field_prefix="GOOGLE",
        ),
    )
}


def get_provider(provider_id: str) -> ProviderWiring:
    try:
        return PROVIDERS[provider_id.strip().lower()]
    except KeyError as exc:
        raise UnsupportedProvider(
            f"Unsupported provider {provider_id!r}; choose one of {', '.join(sorted(PROVIDERS))}"
        ) from exc


def _value(wiring: ProviderWiring, suffix: str, actual: str | None, template: bool) -> str:
    if template or is_placeholder(actual):
        return env_placeholder(wiring.field(suffix))
    return str(actual)


def auth_fragment(wiring: ProviderWiring, credentials: ProviderCredentials, *, template: bool = False) -> dict[str, Any]:
    """Return the ``auth`` fragment for *wiring*.

    With ``template=True`` every credential is its canonical placeholder. The
    organization is not a secret and is kept literally in both variants.

    >>> github = PROVIDERS["github"]
    >>> auth_fragment(github, ProviderCredentials(client_id="abc"), template=True)["auth"]["providers"]
    {'github': {'development': {'clientId': '${GITHUB_CLIENT_ID}', 'clientSecret': '${GITHUB_CLIENT_SECRET}'}}}
    """

    development: dict[str, Any] = {
        "clientId": _value(wiring, "CLIENT_ID", credentials.client_id, template),
        "clientSecret": _value(wiring, "CLIENT_SECRET", credentials.client_secret, template),
    }
    if wiring.id == "github" and not is_placeholder(credentials.organization):
        development["githubOrganization"] = credentials.organization
    return {"auth": {"environment": "development", "providers": {wiring.id: {"development": development}}}}


def integration_fragment(
    wiring: ProviderWiring,
    credentials: ProviderCredentials,
    method: str,
    *,
    template: bool = False,
) -> dict[str, Any] | None:
    """Return the ``integrations`` fragment, or ``None`` when no real credential backs it.

    >>> github = PROVIDERS["github"]
    >>> integration_fragment(github, ProviderCredentials(token="ghp_x"), "pat")
    {'integrations': {'github': [{'host': 'github.com', 'token': 'ghp_x'}]}}
    >>> integration_fragment(github, ProviderCredentials(), "pat") is None
    True
    """

    if wiring.integration_field is None or wiring.host is None:
        return None
    if method == "github-app" and credentials.has_app:
        entry: dict[str, Any] = {
            "host": wiring.host,
            "apps": [
                {
                    "appId": _value(wiring, "APP_ID", credentials.app_id, template),
                    "clientId": _value(wiring, "APP_CLIENT_ID", credentials.app_client_id, template),
                    "clientSecret": _value(wiring, "APP_CLIENT_SECRET", credentials.app_client_secret, template),
                    "privateKey": _value(wiring, "APP_PRIVATE_KEY", credentials.app_private_key, template),
                }
            ],
        }
    elif method == "pat" and credentials.has_token:
        entry = {"host": wiring.host, "token": _value(wiring, "TOKEN", credentials.token, template)}
    else:
        return None
    return {"integrations": {wiring.integration_field: [entry]}}


def has_integration_credential(credentials: ProviderCredentials, method: str) -> bool:
    if method == "github-app":
        return credentials.has_app
    if method == "pat":
        return credentials.has_token
    return False


def filter_integration(
    fragment: dict[str, Any],
    wiring: ProviderWiring,
    method: str,
    credentials: ProviderCredentials,
) -> dict[str, Any]:
    """Drop integration entries that do not match the selected method.

    Documentation usually shows both a token and a GitHub App variant. The
    token variant survives only for ``pat``, the ``apps`` variant only for
    ``github-app``, and the whole section is removed when no real
    integration credential exists.

    >>> doc = {"integrations": {"github": [{"host": "github.com", "token": "${GITHUB_TOKEN}"}]}}
    >>> filter_integration(doc, PROVIDERS["github"], "oauth", ProviderCredentials())
    {}
    """

    result = deepcopy(fragment)
    integrations = result.get("integrations")
    field = wiring.integration_field
    if not isinstance(integrations, dict) or field is None or field not in integrations:
        return result
    entries = integrations.get(field)
    kept: list[Any] = []
    if has_integration_credential(credentials, method) and isinstance(entries, list):
        unwanted, wanted = ("apps", "token") if method == "pat" else ("token", "apps")
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            entry.pop(unwanted, None)
            if wanted in entry:
                kept.append(entry)
    if kept:
        integrations[field] = kept
    else:
        integrations.pop(field)
    if not integrations:
        result.pop("integrations")
    return result


def frontend_edits(wiring: ProviderWiring, patcher: SourcePatcher) -> list[Edit]:
    """Edits that register *wiring* on the sign-in page of ``App.tsx``."""

    def declare_array(text: str) -> str:
        return patcher.insert_declaration_before_anchor(text, PROVIDERS_ARRAY_DECLARATION, APP_ANCHOR)

    def declare_provider(text: str) -> str:
        anchor = "const authProviders" if "const authProviders" in text else APP_ANCHOR
        return patcher.insert_declaration_before_anchor(text, wiring.declaration(), anchor)

    def wire_sign_in(text: str) -> str:
        if "...authProviders" in text:
            return text
        match = SIGN_IN_PROVIDERS.search(text)
        if match:
            items = match.group("items").strip().rstrip(",")
            joined = f"{items}, ...authProviders" if items else "...authProviders"
            return text[: match.start("items")] + joined + text[match.end("items") :]
        wired = patcher.wire_named_option(text, "createApp", "components", SIGN_IN_COMPONENT)
        if wired != text:
            wired = patcher.extend_import(wired, CORE_COMPONENTS, "SignInPage")
        return wired

    return [
        lambda text: patcher.extend_import(text, CORE_PLUGIN_API, wiring.api_ref),
        lambda text: patcher.extend_import(text, CORE_COMPONENTS, "SignInProviderConfig"),
        declare_array,
        declare_provider,
        lambda text: patcher.extend_array_literal(text, PROVIDERS_ARRAY, wiring.config_name),
        wire_sign_in,
    ]


def backend_edits(wiring: ProviderWiring, patcher: SourcePatcher) -> list[Edit]:
    """Edits that register the provider's backend module before ``backend.start();``."""

    statement = f"backend.add(import('{wiring.backend_module}'));"
    return [
        lambda text: patcher.insert_declaration_before_anchor(
            text, statement, BACKEND_ANCHOR, marker=wiring.backend_module
        )
    ]


def section_edits(selected: ProviderWiring, patcher: SourcePatcher) -> list[Edit]:
    """Enable the selected provider's marked sections and comment out the others."""

    return [
        (lambda text, other=other: patcher.replace_marked_section(text, other.section_id, other.id != selected.id))
        for other in PROVIDERS.values()
    ]

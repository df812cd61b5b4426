"""Configuration merge service for Backstage ``app-config`` documents.

Purpose
-------
Own every write to the generated application's YAML configuration: load with
soft failure, merge fragments through :func:`merge_documents`, persist
atomically, run advisory validation and, in dual mode, split the result into a
committable template (placeholders) and a local value file (real
credentials).

Contents
--------
* :data:`CLEAN_BASE_DOCUMENT` – the skeleton template output starts from.
* :class:`ConfigMerger` – the service.

System Role
-----------
One instance per run, created by the composition root and shared by the
extractor and every orchestrator phase.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from copy import deepcopy
from pathlib import Path
from typing import Any, Final, Iterable

import yaml

from ..adapters.file_loaders.structured import find_duplicate_keys, parse_yaml_mapping
from ..adapters.store.yaml_store import StoredDocument, YAMLDocumentStore
from ..domain.documents import (
    ConfigDocument,
    ConfigFragment,
    DualModeState,
    DualOutputs,
    ValidationReport,
    env_placeholder,
    is_placeholder,
)
from ..domain.errors import InvalidFormat, NotFound
from ..observability import StructuredLogger
from .merge import HOST_KEYED_FIELDS, fold_documents, merge_documents
from .ports import DocumentStore

TEMPLATE_FILENAME: Final[str] = "app-config.yaml"
VALUE_FILENAME: Final[str] = "app-config.local.yaml"

TEMPLATE_HEADER: Final[str] = "# FlowSource configuration template. Credentials are read from environment variables."
VALUE_HEADER: Final[str] = "# Local FlowSource configuration with real credentials. Do not commit this file."

CLEAN_BASE_DOCUMENT: Final[ConfigDocument] = {
    "app": {"title": "FlowSource", "baseUrl": "http://localhost:3000"},
    "organization": {"name": "FlowSource"},
    "backend": {
        "baseUrl": "http://localhost:7007",
        "listen": {"port": 7007},
        "csp": {"connect-src": ["'self'", "http:", "https:"]},
        "cors": {
            "origin": "http://localhost:3000",
            "methods": ["GET", "HEAD", "PATCH", "POST", "PUT", "DELETE"],
            "credentials": True,
        },
        "database": {"client": "better-sqlite3", "connection": ":memory:"},
    },
    "integrations": {},
    "auth": {"providers": {"guest": {}}},
    "catalog": {
        "rules": [{"allow": ["Component", "System", "API", "Resource", "Location"]}],
        "locations": [],
    },
}

_SECRET_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"secret|token|password|private_?key|client_?id|api_?key", re.IGNORECASE
)


class ConfigMerger:
    """Load, merge, validate and persist configuration documents.

    Why
    ----
    Keeps merge policy, persistence and dual-mode bookkeeping in one object so
    every phase of a run observes the same state.

    Parameters
    ----------
    store:
        Persistence adapter; defaults to :class:`YAMLDocumentStore`.
    logger:
        Structured logger; defaults to the package logger.
    clean_base:
        Document the template output starts from in dual mode.
    """

    def __init__(
        self,
        *,
        store: DocumentStore | None = None,
        logger: StructuredLogger | None = None,
        clean_base: Mapping[str, Any] | None = None,
    ) -> None:
        self._log = (logger or StructuredLogger()).child("merger")
        self._store: DocumentStore = store or YAMLDocumentStore(self._log)
        self._clean_base = deepcopy(dict(clean_base if clean_base is not None else CLEAN_BASE_DOCUMENT))
        self._state = DualModeState.DISABLED
        self._template_fragments: list[ConfigDocument] = []
        self._value_fragments: list[ConfigDocument] = []
        self._outputs: DualOutputs | None = None

    # ------------------------------------------------------------------ files

    def load(self, path: Path | str) -> ConfigDocument:
        """Return the mapping stored at *path*, or ``{}`` when it cannot be read.

        Missing files, invalid YAML and non-mapping documents are logged as
        warnings; nothing is raised.
        """

        path = Path(path)
        try:
            return self._store.read(path).document
        except NotFound:
            self._log.warning("config_missing", path=str(path))
        except InvalidFormat as exc:
            self._log.warning("config_unreadable", path=str(path), error=str(exc))
        except OSError as exc:
            self._log.warning("config_read_failed", path=str(path), error=str(exc))
        return {}

    @staticmethod
    def merge(target: Mapping[str, Any], fragment: ConfigFragment) -> ConfigDocument:
        """Pure deep merge, see :func:`merge_documents`."""

        return merge_documents(target, fragment)

    def merge_into_file(self, path: Path | str, fragment: ConfigFragment, label: str | None = None) -> bool:
        """Merge *fragment* into the YAML file at *path* and report success.

        Why
        ----
        Phases call this many times per run and must be able to carry on when
        one write fails, so failures come back as ``False`` instead of an
        exception.

        What
        ----
        Reads the current document (a missing file counts as empty), merges,
        renders with the previous header comments plus ``# <label>`` when
        that line is not already present, and replaces the file atomically.
        A file that exists but cannot be parsed is left untouched.

        Returns
        -------
        bool
            ``True`` when the merged document was written.
        """

        path = Path(path)
        if not isinstance(fragment, Mapping):
            self._log.warning("fragment_not_mapping", path=str(path), label=label)
            return False
        try:
            stored = self._store.read(path)
        except NotFound:
            stored = StoredDocument(document={})
        except InvalidFormat as exc:
            self._log.error("merge_target_unreadable", path=str(path), label=label, error=str(exc))
            return False
        except OSError as exc:
            self._log.error("merge_read_failed", path=str(path), label=label, error=str(exc))
            return False

        merged = merge_documents(stored.document, fragment)
        header = list(stored.header)
        if label:
            line = f"# {label}"
            if line not in header:
                header.append(line)
        try:
            self._store.write_text(path, self._store.render(merged, header))
        except (OSError, ValueError, yaml.YAMLError) as exc:
            self._log.error("merge_write_failed", path=str(path), label=label, error=str(exc))
            return False
        self._log.info("fragment_merged", path=str(path), label=label, keys=sorted(str(k) for k in fragment))
        return True

    # ------------------------------------------------------------- validation

    def validate(self, document: Mapping[str, Any] | str) -> ValidationReport:
        """Report duplicate providers, secrets, hosts and catalog targets.

        *document* may be raw YAML text, which is the only form in which
        repeated keys are still visible. The report is advisory; nothing is
        raised for a document with findings.
        """

        warnings: list[str] = []
        if isinstance(document, str):
            try:
                duplicates = find_duplicate_keys(document)
                document = parse_yaml_mapping(document)
            except InvalidFormat as exc:
                return ValidationReport(is_valid=False, warnings=(str(exc),))
            for parent, key in duplicates:
                if parent == "auth.providers":
                    warnings.append(f"Duplicate auth provider '{key}' in auth.providers")
                else:
                    warnings.append(f"Duplicate key '{key}' under '{parent or '<root>'}'")

        warnings.extend(_provider_case_collisions(document))
        warnings.extend(_duplicate_secrets(document))
        warnings.extend(_duplicate_hosts(document))
        warnings.extend(_duplicate_targets(document))
        report = ValidationReport.from_warnings(warnings)
        if report.is_valid:
            self._log.debug("config_valid")
        else:
            self._log.warning("config_validation_warnings", count=len(report.warnings))
        return report

    # -------------------------------------------------------------- dual mode

    @property
    def state(self) -> DualModeState:
        return self._state

    @property
    def dual_mode_enabled(self) -> bool:
        return self._state is DualModeState.ACCUMULATING

    def enable_dual_mode(self) -> None:
        """Start accumulating template and value fragments from scratch."""

        self._reset(DualModeState.ACCUMULATING)
        self._log.info("dual_mode_enabled")

    def disable_dual_mode(self) -> None:
        self._reset(DualModeState.DISABLED)
        self._log.info("dual_mode_disabled")

    def add_template_fragment(self, fragment: ConfigFragment, label: str | None = None) -> bool:
        """Record a placeholder-only fragment; ignored unless accumulating."""

        return self._record(self._template_fragments, fragment, "template", label)

    def add_value_fragment(self, fragment: ConfigFragment, label: str | None = None) -> bool:
        """Record a fragment carrying real values; ignored unless accumulating."""

        return self._record(self._value_fragments, fragment, "value", label)

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "templateFragments": len(self._template_fragments),
            "valueFragments": len(self._value_fragments),
        }

    def build_dual_outputs(self, base_path: Path | str) -> DualOutputs | None:
        """Write ``app-config.yaml`` (template) and ``app-config.local.yaml`` (values).

        Why
        ----
        The committed configuration must never contain credentials while the
        developer still gets a runnable local setup.

        What
        ----
        The template document is the clean base folded with every template
        fragment. The value document is the working ``app-config.yaml`` under
        *base_path* folded with every value fragment. Any credential string
        taken from the value fragments that still appears in the template
        document is replaced by its canonical placeholder. Both documents are
        rendered before either file is written.

        Returns
        -------
        DualOutputs | None
            ``None`` when dual mode is disabled; the first result again when
            the outputs were already built.
        """

        if self._state is DualModeState.DISABLED:
            self._log.debug("dual_build_skipped", reason="disabled")
            return None
        if self._state is DualModeState.BUILT:
            self._log.debug("dual_build_skipped", reason="already_built")
            return self._outputs

        base = Path(base_path)
        template_path = base / TEMPLATE_FILENAME
        value_path = base / VALUE_FILENAME

        template_document = fold_documents(self._clean_base, self._template_fragments)
        value_document = fold_documents(self.load(template_path), self._value_fragments)
        secrets = set(_collect_secrets(self._value_fragments))
        template_document, scrubbed = _scrub(template_document, secrets)
        if scrubbed:
            self._log.warning("template_secrets_scrubbed", paths=scrubbed)

        template_text = self._store.render(template_document, [TEMPLATE_HEADER])
        value_text = self._store.render(value_document, [VALUE_HEADER])
        self._store.write_text(template_path, template_text)
        self._store.write_text(value_path, value_text)

        self._outputs = DualOutputs(
            template_document=template_document,
            value_document=value_document,
            template_path=template_path,
            value_path=value_path,
            scrubbed=tuple(scrubbed),
        )
        self._state = DualModeState.BUILT
        self._log.info(
            "dual_outputs_built",
            template=str(template_path),
            values=str(value_path),
            template_fragments=len(self._template_fragments),
            value_fragments=len(self._value_fragments),
        )
        return self._outputs

    def _reset(self, state: DualModeState) -> None:
        self._state = state
        self._template_fragments = []
        self._value_fragments = []
        self._outputs = None

    def _record(self, bucket: list[ConfigDocument], fragment: ConfigFragment, kind: str, label: str | None) -> bool:
        if self._state is not DualModeState.ACCUMULATING:
            self._log.debug("dual_fragment_ignored", kind=kind, label=label, state=self._state.value)
            return False
        bucket.append(deepcopy(dict(fragment)))
        self._log.debug("dual_fragment_recorded", kind=kind, label=label, total=len(bucket))
        return True


def _provider_case_collisions(document: Mapping[str, Any]) -> list[str]:
    providers = _dig(document, "auth", "providers")
    if not isinstance(providers, Mapping):
        return []
    groups: dict[str, list[str]] = {}
    for name in providers:
        groups.setdefault(str(name).lower(), []).append(str(name))
    return [
        f"Auth providers differ only by case: {', '.join(names)}"
        for names in groups.values()
        if len(names) > 1
    ]


def _duplicate_secrets(document: Mapping[str, Any]) -> list[str]:
    keys = _dig(document, "backend", "auth", "keys")
    if not isinstance(keys, list):
        return []
    seen: set[str] = set()
    warnings: list[str] = []
    for index, entry in enumerate(keys):
        secret = entry.get("secret") if isinstance(entry, Mapping) else None
        if not isinstance(secret, str):
            continue
        if secret in seen:
            warnings.append(f"Duplicate secret in backend.auth.keys at index {index}")
        seen.add(secret)
    return warnings


def _duplicate_hosts(document: Mapping[str, Any]) -> list[str]:
    integrations = document.get("integrations")
    if not isinstance(integrations, Mapping):
        return []
    warnings: list[str] = []
    for name in sorted(HOST_KEYED_FIELDS):
        entries = integrations.get(name)
        if not isinstance(entries, list):
            continue
        hosts = [entry.get("host") for entry in entries if isinstance(entry, Mapping) and entry.get("host")]
        for host in sorted({h for h in hosts if hosts.count(h) > 1}):
            warnings.append(f"Duplicate host '{host}' in integrations.{name}")
    return warnings


def _duplicate_targets(document: Mapping[str, Any]) -> list[str]:
    locations = _dig(document, "catalog", "locations")
    if not isinstance(locations, list):
        return []
    targets = [entry.get("target") for entry in locations if isinstance(entry, Mapping) and entry.get("target")]
    return [
        f"Duplicate catalog location target '{target}'"
        for target in sorted({t for t in targets if targets.count(t) > 1})
    ]


def _dig(document: Mapping[str, Any], *keys: str) -> Any:
    cursor: Any = document
    for key in keys:
        if not isinstance(cursor, Mapping):
            return None
        cursor = cursor.get(key)
    return cursor


def _collect_secrets(fragments: Iterable[Mapping[str, Any]]) -> Iterable[str]:
    """Yield real credential strings found under credential-like keys."""

    def walk(node: Any, key: str) -> Iterable[str]:
        if isinstance(node, Mapping):
            for child_key, child in node.items():
                yield from walk(child, str(child_key))
        elif isinstance(node, list):
            for item in node:
                yield from walk(item, key)
        elif isinstance(node, str) and _SECRET_KEY_PATTERN.search(key) and not is_placeholder(node):
            yield node

    for fragment in fragments:
        yield from walk(fragment, "")


def _scrub(document: ConfigDocument, secrets: set[str]) -> tuple[ConfigDocument, list[str]]:
    """Replace any of *secrets* inside *document* with canonical placeholders."""

    scrubbed: list[str] = []

    def walk(node: Any, path: tuple[str, ...]) -> Any:
        if isinstance(node, Mapping):
            return {key: walk(value, (*path, str(key))) for key, value in node.items()}
        if isinstance(node, list):
            return [walk(item, (*path, str(index))) for index, item in enumerate(node)]
        if isinstance(node, str) and node in secrets:
            scrubbed.append(".".join(path))
            return env_placeholder(placeholder_name(path))
        return node

    if not secrets:
        return document, scrubbed
    return walk(document, ()), scrubbed


def placeholder_name(path: tuple[str, ...]) -> str:
    """Derive an environment variable name for the value at *path*.

    >>> placeholder_name(("auth", "providers", "github", "development", "clientSecret"))
    'GITHUB_CLIENT_SECRET'
    >>> placeholder_name(("integrations", "github", "0", "token"))
    'GITHUB_TOKEN'
    >>> placeholder_name(("backend", "auth", "keys", "0", "secret"))
    'SECRET'
    """

    leaf = _upper_snake(path[-1]) if path else "VALUE"
    for anchor in ("providers", "integrations"):
        if anchor in path[:-1]:
            index = path.index(anchor)
            if index + 1 < len(path) - 1:
                return f"{_upper_snake(path[index + 1])}_{leaf}"
    return leaf


def _upper_snake(name: str) -> str:
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name)
    return re.sub(r"[^A-Za-z0-9]+", "_", spaced).strip("_").upper()

"""Environment variable adapter for run settings.

Purpose
-------
Translate ``FLOWSOURCE_MIGRATE_*`` variables into the nested settings mapping
so CI jobs can drive a migration without a settings file. This is the highest
precedence layer below explicit CLI options.

Key behaviours
--------------
* Only keys carrying the prefix (``default_env_prefix``) are captured.
* ``__`` nests: ``FLOWSOURCE_MIGRATE_GITHUB__CLIENT_ID`` becomes
  ``{"github": {"client_id": ...}}``.
* Light coercion for bools, integers, floats and ``null``/``none``; anything
  that looks like a credential stays a string.
"""

from __future__ import annotations

import os
from typing import Mapping

from ...observability import log_debug

_KEEP_AS_TEXT = ("client_id", "client_secret", "token", "private_key", "app_client_id", "app_client_secret")


def default_env_prefix(slug: str) -> str:
    """Return the canonical environment prefix for *slug*.

    >>> default_env_prefix('flowsource-migrate')
    'FLOWSOURCE_MIGRATE'
    """

    return slug.replace("-", "_").upper()


class DefaultEnvLoader:
    """Load environment variables that belong to the settings namespace."""

    def __init__(self, *, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def load(self, prefix: str) -> dict[str, object]:
        """Return a nested mapping of variables starting with *prefix*.

        Examples
        --------
        >>> env = {
        ...     'FM_PHASE': '2',
        ...     'FM_GITHUB__CLIENT_ID': '12345',
        ...     'OTHER': 'ignored',
        ... }
        >>> payload = DefaultEnvLoader(environ=env).load('FM')
        >>> payload['phase'], payload['github']['client_id']
        (2, '12345')
        """

        prefix = f"{prefix}_" if prefix and not prefix.endswith("_") else prefix
        collected: dict[str, object] = {}
        for key, value in self._environ.items():
            if prefix and not key.startswith(prefix):
                continue
            stripped = key[len(prefix) :] if prefix else key
            if not stripped:
                continue
            leaf = stripped.split("__")[-1].lower()
            assign_nested(collected, stripped, value if leaf in _KEEP_AS_TEXT else coerce(value))
        log_debug("env_variables_loaded", phase="settings", path=None, keys=sorted(collected.keys()))
        return collected


def assign_nested(
    target: dict[str, object],
    key: str,
    value: object,
    *,
    error_cls: type[Exception] = ValueError,
) -> None:
    """Assign ``value`` inside ``target`` using ``__`` as a nesting delimiter.

    >>> data: dict[str, object] = {}
    >>> assign_nested(data, 'GITHUB__TOKEN', 'x')
    >>> data
    {'github': {'token': 'x'}}
    """

    parts = key.split("__")
    cursor = target
    for part in parts[:-1]:
        resolved = _resolve_key(cursor, part)
        child = cursor.setdefault(resolved, {})
        if not isinstance(child, dict):
            raise error_cls(f"Cannot override scalar with mapping for key {key}")
        cursor = child
    cursor[_resolve_key(cursor, parts[-1])] = value


def _resolve_key(mapping: dict[str, object], key: str) -> str:
    """Return an existing key matching ``key`` case-insensitively, or ``key`` lowercased."""

    lower = key.lower()
    for existing in mapping:
        if existing.lower() == lower:
            return existing
    return lower


def coerce(value: str) -> object:
    """Coerce textual values to Python primitives where possible.

    >>> coerce('true'), coerce('10'), coerce('3.5'), coerce('auto')
    (True, 10, 3.5, 'auto')
    """

    lowered = value.strip().lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value

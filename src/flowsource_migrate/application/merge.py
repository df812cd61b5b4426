"""Application-layer merge policy for configuration documents.

Purpose
-------
Combine a target document with a fragment so that re-applying the same
fragment never changes the result. The module is free of I/O.
``ConfigMerger`` applies the field rules to app-config files; the settings
composition root uses the plain layer overlay, where later layers replace
lists and scalars outright.

Contents
    - ``merge_documents``: public entry point, one fragment into one target.
    - ``fold_documents``: applies a sequence of fragments in order.
    - ``overlay_documents``: settings layering, mappings merge and the rest is
      replaced.
    - ``_merge_value``: dispatches a single field to its rule.
    - ``_merge_by_host`` / ``_merge_by_identity`` / ``_merge_unique``: the list
      rules for integrations, keyed entries and everything else.

Field rules
-----------
``providers``
    Shallow union when both sides are mappings; fragment keys win.
host-keyed integration lists (``github``, ``gitlab`` ...)
    Entries sharing a ``host`` replace the existing entry in place.
``keys`` / ``locations``
    Lists deduplicated by ``secret`` / ``target``; the existing entry wins.
other lists
    Concatenated; exact duplicates (type-sensitive) dropped.
mappings
    Recursive merge.
anything else
    The fragment value overwrites.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from copy import deepcopy
from typing import Any, Final, Iterable

HOST_KEYED_FIELDS: Final[frozenset[str]] = frozenset(
    {"github", "gitlab", "bitbucketCloud", "bitbucketServer", "azure", "gerrit", "gitea"}
)
IDENTITY_FIELDS: Final[dict[str, str]] = {"keys": "secret", "locations": "target"}
PROVIDERS_FIELD: Final[str] = "providers"

_MISSING: Final = object()


def merge_documents(target: Mapping[str, Any], fragment: Mapping[str, Any]) -> dict[str, Any]:
    """Return *target* with *fragment* merged in, leaving both inputs untouched.

    Why
    ----
    Every write to ``app-config.yaml`` goes through this function, and the
    migration is re-run routinely. ``merge_documents(merge_documents(d, f), f)``
    equals ``merge_documents(d, f)`` for all inputs.

    What
    ----
    Walks the fragment's top-level fields and applies the field rule listed in
    the module docstring. A fragment value that has no compatible counterpart
    in the target is merged against an empty container of its own type, so the
    same normalisation (deduplication, host collapsing) applies whether or not
    the target already had the field.

    Parameters
    ----------
    target:
        Current document.
    fragment:
        Partial document to merge in.

    Returns
    -------
    dict[str, Any]
        A new document.

    Examples
    --------
    >>> doc = {"integrations": {"github": [{"host": "github.com", "token": "a"}]}}
    >>> frag = {"integrations": {"github": [{"host": "github.com", "token": "b"}]}}
    >>> merge_documents(doc, frag)
    {'integrations': {'github': [{'host': 'github.com', 'token': 'b'}]}}
    >>> merge_documents({"auth": {"providers": {"guest": {}}}}, {"auth": {"providers": {"github": {}}}})
    {'auth': {'providers': {'guest': {}, 'github': {}}}}
    >>> merge_documents({"tags": ["a"]}, {"tags": ["a", "b"]})
    {'tags': ['a', 'b']}
    """

    result = deepcopy(dict(target))
    for key, incoming in fragment.items():
        result[key] = _merge_value(key, result.get(key, _MISSING), incoming)
    return result


def fold_documents(base: Mapping[str, Any], fragments: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge *fragments* into *base* from first to last.

    >>> fold_documents({}, [{"a": 1}, {"a": 2, "b": 3}])
    {'a': 2, 'b': 3}
    """

    merged = deepcopy(dict(base))
    for fragment in fragments:
        merged = merge_documents(merged, fragment)
    return merged


def overlay_documents(layers: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Combine *layers* lowest precedence first; only nested mappings merge.

    >>> overlay_documents([{"templates": ["A", "B"], "github": {"token": "t"}}, {"templates": ["C"]}])
    {'templates': ['C'], 'github': {'token': 't'}}
    """

    result: dict[str, Any] = {}
    for layer in layers:
        result = _overlay(result, layer)
    return result


def _overlay(base: Mapping[str, Any], layer: Mapping[str, Any]) -> dict[str, Any]:
    result = deepcopy(dict(base))
    for key, value in layer.items():
        current = result.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            result[key] = _overlay(current, value)
        else:
            result[key] = deepcopy(value)
    return result


def _merge_value(key: object, existing: Any, incoming: Any) -> Any:
    """Apply the rule for *key* to one field."""

    if key == PROVIDERS_FIELD and isinstance(incoming, Mapping):
        union = dict(existing) if isinstance(existing, Mapping) else {}
        union.update(deepcopy(dict(incoming)))
        return union

    if isinstance(incoming, Mapping):
        base = existing if isinstance(existing, Mapping) else {}
        return merge_documents(base, incoming)

    if _is_sequence(incoming):
        incoming = list(incoming)
        base = list(existing) if _is_sequence(existing) else []
        if key in HOST_KEYED_FIELDS:
            return _merge_by_host(base, incoming)
        if key in IDENTITY_FIELDS:
            return _merge_by_identity(base, incoming, IDENTITY_FIELDS[key])
        return _merge_unique(base, incoming)

    return deepcopy(incoming)


def _merge_by_host(existing: list[Any], incoming: list[Any]) -> list[Any]:
    """Replace same-host entries in place and append new hosts.

    Entries without a ``host`` behave like a plain unique list. When several
    entries share a host the first position is kept and the later value wins.
    """

    result: list[Any] = []
    positions: dict[object, int] = {}
    for entry in [*existing, *incoming]:
        host = _identity(entry, "host")
        if host is _MISSING:
            if not _contains(result, entry):
                result.append(deepcopy(entry))
            continue
        if host in positions:
            result[positions[host]] = deepcopy(entry)
            continue
        positions[host] = len(result)
        result.append(deepcopy(entry))
    return result


def _merge_by_identity(existing: list[Any], incoming: list[Any], field: str) -> list[Any]:
    """Keep the first entry for each *field* value; entries lacking it dedupe by equality."""

    result: list[Any] = []
    seen: set[object] = set()
    for entry in [*existing, *incoming]:
        ident = _identity(entry, field)
        if ident is _MISSING:
            if not _contains(result, entry):
                result.append(deepcopy(entry))
            continue
        if ident in seen:
            continue
        seen.add(ident)
        result.append(deepcopy(entry))
    return result


def _merge_unique(existing: list[Any], incoming: list[Any]) -> list[Any]:
    """Concatenate and drop exact duplicates, preserving first occurrence order."""

    result: list[Any] = []
    for entry in [*existing, *incoming]:
        if not _contains(result, entry):
            result.append(deepcopy(entry))
    return result


def _identity(entry: Any, field: str) -> object:
    """Return the hashable *field* value of a mapping entry, or ``_MISSING``."""

    if not isinstance(entry, Mapping):
        return _MISSING
    value = entry.get(field, _MISSING)
    if value is _MISSING or value is None:
        return _MISSING
    try:
        hash(value)
    except TypeError:
        return _MISSING
    return (type(value), value)


def _contains(items: list[Any], candidate: Any) -> bool:
    return any(strict_equal(item, candidate) for item in items)


def strict_equal(left: Any, right: Any) -> bool:
    """Structural equality that does not treat ``1``, ``1.0`` and ``True`` as equal.

    >>> strict_equal([1, {"a": True}], [1, {"a": True}]), strict_equal([1], [True])
    (True, False)
    """

    if type(left) is not type(right):
        if isinstance(left, Mapping) and isinstance(right, Mapping):
            pass
        elif _is_sequence(left) and _is_sequence(right):
            pass
        else:
            return False
    if isinstance(left, Mapping):
        if left.keys() != right.keys():
            return False
        return all(strict_equal(left[key], right[key]) for key in left)
    if _is_sequence(left):
        return len(left) == len(right) and all(strict_equal(a, b) for a, b in zip(left, right))
    return left == right


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))

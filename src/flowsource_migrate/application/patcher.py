"""Idempotent edits to generated TypeScript / TSX source.

Purpose
-------
Wire themes and sign-in providers into the scaffolded application without an
AST. Every edit is one of five primitives; each detects whether its result is
already present and returns the input unchanged when it is, or when the
anchor it needs is missing. Running a migration twice therefore leaves
source files byte-identical.

Contents
    - ``extend_import``: add a named binding to an import statement.
    - ``insert_declaration_before_anchor``: place a declaration above a line.
    - ``extend_array_literal``: add an entry to a named array literal.
    - ``wire_named_option``: add a key to the object passed to a call.
    - ``replace_marked_section``: comment or uncomment a marked block.
    - ``SourcePatcher``: logging facade that also applies edits to files.

Scanning rules
--------------
Bracket matching skips string literals, template literals and comments. A
quote directly after a letter or digit is treated as JSX text
(``Don't``) rather than the start of a string.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Callable, Final, Iterable

from ..domain.errors import NotFound, PatchArgumentError
from ..observability import StructuredLogger

Edit = Callable[[str], str]

_IDENTIFIER: Final[re.Pattern[str]] = re.compile(r"[A-Za-z_$][\w$]*")
_BINDING: Final[re.Pattern[str]] = re.compile(r"(?:type\s+)?([A-Za-z_$][\w$]*)(?:\s+as\s+([A-Za-z_$][\w$]*))?")
_SECTION_ID: Final[re.Pattern[str]] = re.compile(r"[\w.-]+")
_NAMED_IMPORT: Final[re.Pattern[str]] = re.compile(
    r"^[ \t]*import\s+(?!type\b)(?:[A-Za-z_$][\w$]*\s*,\s*)?\{(?P<names>[^}]*)\}\s*from\s*"
    r"(?P<quote>['\"])(?P<module>[^'\"]+)(?P=quote)[ \t]*;?",
    re.MULTILINE,
)
_ANY_IMPORT: Final[re.Pattern[str]] = re.compile(
    r"^[ \t]*import\b(?!\s*[(.])[^;'\"]*?(?P<quote>['\"])[^'\"\n]+(?P=quote)[ \t]*(?P<semi>;?)",
    re.MULTILINE,
)
_DEFAULT_IMPORT: Final[re.Pattern[str]] = re.compile(
    r"^[ \t]*import\s+(?!type\b)(?:(?P<default>[A-Za-z_$][\w$]*)\s*(?:,\s*(?:\*\s*as\s+(?P<extra>[A-Za-z_$][\w$]*)|\{[^}]*\}))?"
    r"|\*\s*as\s+(?P<namespace>[A-Za-z_$][\w$]*))\s*from\s*(?P<quote>['\"])(?P<module>[^'\"]+)(?P=quote)",
    re.MULTILINE,
)
_DECLARED_NAME: Final[re.Pattern[str]] = re.compile(
    r"^\s*(?:export\s+)?(?:declare\s+)?(?:const|let|var|type|interface|function|class)\s+([A-Za-z_$][\w$]*)"
)
_OBJECT_KEY: Final[re.Pattern[str]] = re.compile(
    r"^(?:async\s+)?(?:\*\s*)?(?:(?P<quote>['\"])(?P<quoted>[^'\"]+)(?P=quote)|(?P<name>[A-Za-z_$][\w$]*))\s*(?::|\(|$)"
)

MARKER_PREFIX: Final[str] = "// flowsource:"


# --------------------------------------------------------------------------- scanning


def find_closing(text: str, open_index: int) -> int:
    """Return the index of the bracket matching ``text[open_index]`` or ``-1``.

    >>> find_closing("f({ a: '}' })", 2)
    11
    >>> find_closing("[1, [2], // ]\\n 3]", 0)
    16
    """

    pairs = {"(": ")", "[": "]", "{": "}"}
    if open_index < 0 or open_index >= len(text) or text[open_index] not in pairs:
        return -1
    stack = [pairs[text[open_index]]]
    index = open_index + 1
    length = len(text)
    while index < length:
        char = text[index]
        if char in "'\"`" and not (char != "`" and index > 0 and text[index - 1].isalnum()):
            index = _skip_string(text, index)
            continue
        if text.startswith("//", index):
            newline = text.find("\n", index)
            index = length if newline < 0 else newline
            continue
        if text.startswith("/*", index):
            close = text.find("*/", index + 2)
            index = length if close < 0 else close + 2
            continue
        if char in pairs:
            stack.append(pairs[char])
        elif char in ")]}":
            if char != stack[-1]:
                return -1
            stack.pop()
            if not stack:
                return index
        index += 1
    return -1


def _skip_string(text: str, start: int) -> int:
    quote = text[start]
    index = start + 1
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == quote:
            return index + 1
        if char == "\n" and quote != "`":
            return index + 1
        index += 1
    return len(text)


def split_top_level(inner: str) -> list[str]:
    """Split bracket content on commas that are not nested or quoted.

    >>> split_top_level(" a, f(b, c), { d: [1, 2] }, ")
    [' a', ' f(b, c)', ' { d: [1, 2] }', ' ']
    """

    wrapped = "[" + inner + "]"
    segments: list[str] = []
    depth = 0
    start = 1
    index = 1
    end = len(wrapped) - 1
    while index < end:
        char = wrapped[index]
        if char in "'\"`" and not (char != "`" and wrapped[index - 1].isalnum()):
            index = _skip_string(wrapped, index)
            continue
        if wrapped.startswith("//", index):
            newline = wrapped.find("\n", index)
            index = end if newline < 0 else newline
            continue
        if wrapped.startswith("/*", index):
            close = wrapped.find("*/", index + 2)
            index = end if close < 0 else close + 2
            continue
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif char == "," and depth == 0:
            segments.append(wrapped[start:index])
            start = index + 1
        index += 1
    segments.append(wrapped[start:end])
    return segments


def _strip_comments(segment: str) -> str:
    without_block = re.sub(r"/\*.*?\*/", "", segment, flags=re.DOTALL)
    return re.sub(r"//[^\n]*", "", without_block).strip()


def _entry_indent(inner: str, closing_indent: str) -> str:
    for line in inner.splitlines():
        if line.strip():
            return line[: len(line) - len(line.lstrip())]
    return closing_indent + "  "


def _line_indent(text: str, index: int) -> str:
    line_start = text.rfind("\n", 0, index) + 1
    prefix = text[line_start:index]
    return prefix if not prefix.strip() else prefix[: len(prefix) - len(prefix.lstrip())]


def _require_identifier(value: str, what: str) -> None:
    if not value or not _IDENTIFIER.fullmatch(value):
        raise PatchArgumentError(f"{what} must be an identifier, got {value!r}")


# ------------------------------------------------------------------------ primitives


def extend_import(text: str, module_id: str, identifier: str) -> str:
    """Ensure *identifier* is imported by name from *module_id*.

    Why
    ----
    Provider wiring needs ``githubAuthApiRef`` next to whatever the
    scaffold already imports from ``@backstage/core-plugin-api``, without
    a second import statement for the same module.

    What
    ----
    When a non-type named import of *module_id* exists, *identifier* is added
    to its braces unless already bound there (``x as identifier`` counts).
    A default or namespace import of *module_id* binding the same name also
    counts as present. Otherwise a new statement is placed after the last
    import, reusing its quote style and semicolon. Text with no import at all is returned as is.

    Raises
    ------
    PatchArgumentError
        When *identifier* is not a valid binding or *module_id* is empty.

    Examples
    --------
    >>> extend_import("import { a } from 'm';\\n", 'm', 'b')
    "import { a, b } from 'm';\\n"
    >>> extend_import("import { a } from 'm';\\n", 'n', 'b')
    "import { a } from 'm';\\nimport { b } from 'n';\\n"
    >>> extend_import("import { a, b } from 'm';\\n", 'm', 'b')
    "import { a, b } from 'm';\\n"
    """

    local = identifier.strip()
    if not module_id.strip():
        raise PatchArgumentError("module_id must not be empty")
    binding = _BINDING.fullmatch(local)
    if binding is None:
        raise PatchArgumentError(f"identifier must be an import binding, got {identifier!r}")
    bound_as = binding.group(2) or binding.group(1)

    for match in _DEFAULT_IMPORT.finditer(text):
        if match.group("module") == module_id and bound_as in match.group("default", "extra", "namespace"):
            return text

    for match in _NAMED_IMPORT.finditer(text):
        if match.group("module") != module_id:
            continue
        names = match.group("names")
        bound = set()
        for raw in names.split(","):
            item = _BINDING.fullmatch(_strip_comments(raw))
            if item:
                bound.add(item.group(2) or item.group(1))
        if bound_as in bound:
            return text
        start, end = match.span("names")
        return text[:start] + _add_import_name(names, local) + text[end:]

    statements = list(_ANY_IMPORT.finditer(text))
    if not statements:
        return text
    last = statements[-1]
    quote = last.group("quote")
    semi = last.group("semi")
    statement = f"import {{ {local} }} from {quote}{module_id}{quote}{semi}"
    return text[: last.end()] + "\n" + statement + text[last.end() :]


def _add_import_name(names: str, identifier: str) -> str:
    if "\n" not in names:
        existing = names.strip().rstrip(",").strip()
        return f" {existing}, {identifier} " if existing else f" {identifier} "
    body = names.rstrip()
    tail = names[len(body) :]
    trailing = body.endswith(",")
    body = body.rstrip(",")
    indent = _entry_indent(names, "")
    return body + ",\n" + indent + identifier + ("," if trailing else "") + tail


def insert_declaration_before_anchor(text: str, declaration: str, anchor: str, marker: str | None = None) -> str:
    """Insert *declaration* above the line containing *anchor*, once.

    The presence marker is *marker*, else the declared name
    (``const githubAuthProvider`` is found by ``githubAuthProvider``), else
    the stripped declaration itself. The declaration takes the anchor line's
    indentation and is followed by a blank line.

    >>> src = "const app = createApp({});\\n"
    >>> out = insert_declaration_before_anchor(src, "const x = 1;", "const app = createApp(")
    >>> out
    'const x = 1;\\n\\nconst app = createApp({});\\n'
    >>> insert_declaration_before_anchor(out, "const x = 1;", "const app = createApp(") == out
    True
    """

    body = declaration.strip("\n")
    if not body.strip():
        raise PatchArgumentError("declaration must not be empty")
    if not anchor:
        raise PatchArgumentError("anchor must not be empty")

    if marker:
        present = marker in text
    else:
        name_match = _DECLARED_NAME.match(body)
        if name_match:
            name = re.escape(name_match.group(1))
            present = re.search(rf"\b(?:const|let|var|type|interface|function|class)\s+{name}\b", text) is not None
        else:
            present = body.strip() in text
    if present:
        return text

    position = text.find(anchor)
    if position < 0:
        return text
    line_start = text.rfind("\n", 0, position) + 1
    indent = _line_indent(text, position)
    lines = body.splitlines()
    dedent = min((len(line) - len(line.lstrip()) for line in lines if line.strip()), default=0)
    block = "\n".join((indent + line[dedent:]) if line.strip() else "" for line in lines)
    return text[:line_start] + block + "\n\n" + text[line_start:]


def extend_array_literal(text: str, array_name: str, entry: str) -> str:
    """Prepend *entry* to the array literal bound to *array_name*, once.

    >>> extend_array_literal("const providers: P[] = [guest];", 'providers', 'github')
    'const providers: P[] = [github, guest];'
    >>> extend_array_literal("const providers = [github, guest];", 'providers', 'github')
    'const providers = [github, guest];'
    """

    _require_identifier(array_name, "array_name")
    item = entry.strip()
    if not item:
        raise PatchArgumentError("entry must not be empty")
    match = re.search(
        rf"\b(?:const|let|var)\s+{re.escape(array_name)}\s*(?::[^=;]+)?=\s*\[",
        text,
    )
    if match is None:
        return text
    open_index = match.end() - 1
    close_index = find_closing(text, open_index)
    if close_index < 0:
        return text
    inner = text[open_index + 1 : close_index]
    entries = [_strip_comments(segment) for segment in split_top_level(inner)]
    if item in entries:
        return text

    if not inner.strip():
        new_inner = item
    elif "\n" in inner:
        indent = _entry_indent(inner, _line_indent(text, close_index))
        new_inner = "\n" + indent + item + "," + (inner if inner.startswith("\n") else "\n" + indent + inner.lstrip())
    else:
        lead = inner[: len(inner) - len(inner.lstrip())]
        new_inner = lead + item + ", " + inner.lstrip()
    return text[: open_index + 1] + new_inner + text[close_index:]


def wire_named_option(text: str, call_name: str, option_key: str, option_value: str) -> str:
    """Add ``option_key: option_value`` to the object literal passed to *call_name*.

    Keys already present at the top level, in ``key: value``, shorthand
    (``key``) or method (``key() {}``) form, leave the text unchanged.

    >>> wire_named_option("createApp({ apis });", 'createApp', 'themes', '[t]')
    'createApp({ apis, themes: [t] });'
    >>> wire_named_option("createApp({ apis, themes: [] });", 'createApp', 'themes', '[t]')
    'createApp({ apis, themes: [] });'
    """

    _require_identifier(call_name, "call_name")
    _require_identifier(option_key, "option_key")
    if not option_value.strip():
        raise PatchArgumentError("option_value must not be empty")
    match = re.search(rf"\b{re.escape(call_name)}\s*\(\s*\{{", text)
    if match is None:
        return text
    open_index = match.end() - 1
    close_index = find_closing(text, open_index)
    if close_index < 0:
        return text
    inner = text[open_index + 1 : close_index]
    for segment in split_top_level(inner):
        key = _OBJECT_KEY.match(_strip_comments(segment))
        if key and (key.group("quoted") or key.group("name")) == option_key:
            return text

    value = option_value.strip()
    if "\n" not in inner:
        existing = inner.strip().rstrip(",").strip()
        option = f"{option_key}: {value}"
        new_inner = f" {existing}, {option} " if existing else f" {option} "
        return text[: open_index + 1] + new_inner + text[close_index:]

    closing_indent = _line_indent(text, close_index)
    indent = _entry_indent(inner, closing_indent)
    value = value.replace("\n", "\n" + indent)
    body = inner.rstrip()
    tail = inner[len(body) :] or "\n" + closing_indent
    if not body.strip():
        new_inner = "\n" + indent + f"{option_key}: {value}," + tail
    else:
        trailing = body.endswith(",")
        new_inner = body + ("" if trailing else ",") + "\n" + indent + f"{option_key}: {value}" + ("," if trailing else "") + tail
    return text[: open_index + 1] + new_inner + text[close_index:]


def replace_marked_section(text: str, section_id: str, should_comment: bool) -> str:
    """Comment out or restore the lines between a section's begin/end markers.

    Markers are full lines ``// flowsource:begin:<id>`` and
    ``// flowsource:end:<id>``. A commented body is wrapped in ``/*`` and
    ``*/`` lines; ``*/`` inside the body is escaped while wrapped.

    >>> src = "// flowsource:begin:gh\\nuse(github);\\n// flowsource:end:gh\\n"
    >>> off = replace_marked_section(src, 'gh', True)
    >>> off
    '// flowsource:begin:gh\\n/*\\nuse(github);\\n*/\\n// flowsource:end:gh\\n'
    >>> replace_marked_section(off, 'gh', False) == src
    True
    """

    if not _SECTION_ID.fullmatch(section_id or ""):
        raise PatchArgumentError(f"section_id must match [\\w.-]+, got {section_id!r}")
    begin = re.escape(f"{MARKER_PREFIX}begin:{section_id}")
    end = re.escape(f"{MARKER_PREFIX}end:{section_id}")
    pattern = re.compile(
        rf"^(?P<indent>[ \t]*){begin}[ \t]*\n(?P<body>.*?)^[ \t]*{end}[ \t]*$",
        re.MULTILINE | re.DOTALL,
    )

    def rewrite(match: re.Match[str]) -> str:
        indent = match.group("indent")
        body = match.group("body")
        commented = _is_wrapped(body)
        if should_comment == commented:
            return match.group(0)
        if should_comment:
            new_body = f"{indent}/*\n" + body.replace("*/", "*\\/") + f"{indent}*/\n"
        else:
            lines = body.splitlines(keepends=True)
            first = next(i for i, line in enumerate(lines) if line.strip())
            last = max(i for i, line in enumerate(lines) if line.strip())
            new_body = "".join(lines[:first] + lines[first + 1 : last] + lines[last + 1 :]).replace("*\\/", "*/")
        start = match.start("body") - match.start()
        stop = match.end("body") - match.start()
        whole = match.group(0)
        return whole[:start] + new_body + whole[stop:]

    return pattern.sub(rewrite, text)


def _is_wrapped(body: str) -> bool:
    lines = [line.strip() for line in body.splitlines() if line.strip()]
    return len(lines) >= 2 and lines[0] == "/*" and lines[-1] == "*/"


# ---------------------------------------------------------------------------- facade


class SourcePatcher:
    """Apply edit primitives with logging, to strings or to files in place.

    Each method mirrors the module-level primitive of the same name and logs
    whether it changed anything. :meth:`patch_file` composes several edits
    and writes only when the result differs.
    """

    def __init__(self, logger: StructuredLogger | None = None) -> None:
        self._log = (logger or StructuredLogger()).child("patcher")

    def extend_import(self, text: str, module_id: str, identifier: str) -> str:
        return self._traced("extend_import", text, extend_import(text, module_id, identifier), target=identifier)

    def insert_declaration_before_anchor(
        self, text: str, declaration: str, anchor: str, marker: str | None = None
    ) -> str:
        result = insert_declaration_before_anchor(text, declaration, anchor, marker)
        return self._traced("insert_declaration", text, result, target=marker or declaration.strip().splitlines()[0])

    def extend_array_literal(self, text: str, array_name: str, entry: str) -> str:
        return self._traced("extend_array", text, extend_array_literal(text, array_name, entry), target=array_name)

    def wire_named_option(self, text: str, call_name: str, option_key: str, option_value: str) -> str:
        result = wire_named_option(text, call_name, option_key, option_value)
        return self._traced("wire_option", text, result, target=f"{call_name}.{option_key}")

    def replace_marked_section(self, text: str, section_id: str, should_comment: bool) -> str:
        result = replace_marked_section(text, section_id, should_comment)
        return self._traced("marked_section", text, result, target=section_id, comment=should_comment)

    def patch_file(self, path: Path | str, edits: Iterable[Edit]) -> bool:
        """Run *edits* over the file at *path*; return ``True`` when it changed.

        Raises
        ------
        NotFound
            When *path* does not exist.
        """

        path = Path(path)
        if not path.is_file():
            raise NotFound(f"Source file not found: {path}")
        original = path.read_text(encoding="utf-8")
        patched = original
        for edit in edits:
            patched = edit(patched)
        if patched == original:
            self._log.info("source_unchanged", path=str(path))
            return False
        path.write_text(patched, encoding="utf-8")
        self._log.info("source_patched", path=str(path))
        return True

    def _traced(self, operation: str, before: str, after: str, **fields: object) -> str:
        self._log.debug(f"{operation}_{'applied' if after != before else 'noop'}", **fields)
        return after

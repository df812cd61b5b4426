"""`.env` adapter for run settings and credentials.

Purpose
-------
Credentials for the sign-in provider normally live in a ``.env`` file next to
where the migration is started. The loader searches upward from the start
directory and parses the first file found, using the same ``__`` nesting as
the environment adapter (``GITHUB__CLIENT_SECRET=...``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping

from ...domain.errors import InvalidFormat
from ...observability import log_debug, log_error
from ..env.default import assign_nested


class DefaultDotEnvLoader:
    """Load a dotenv file into a nested settings dictionary."""

    def __init__(self, *, extras: Iterable[str] | None = None) -> None:
        self._extras = [Path(p) for p in extras or []]
        self.last_loaded_path: str | None = None

    def load(self, start_dir: str | None = None) -> Mapping[str, object]:
        """Return the first parsed dotenv file discovered in the search order.

        Examples
        --------
        >>> from tempfile import TemporaryDirectory
        >>> tmp = TemporaryDirectory()
        >>> path = Path(tmp.name) / '.env'
        >>> _ = path.write_text('GITHUB__CLIENT_SECRET=secret', encoding='utf-8')
        >>> loader = DefaultDotEnvLoader()
        >>> loader.load(tmp.name)["github"]["client_secret"]
        'secret'
        >>> tmp.cleanup()
        """

        self.last_loaded_path = None
        for candidate in [*_iter_candidates(start_dir), *self._extras]:
            if candidate.is_file():
                self.last_loaded_path = str(candidate)
                data = _parse_dotenv(candidate)
                log_debug("dotenv_loaded", phase="settings", path=self.last_loaded_path, keys=sorted(data.keys()))
                return data
        log_debug("dotenv_not_found", phase="settings", path=None)
        return {}


def _iter_candidates(start_dir: str | None) -> Iterable[Path]:
    """Yield ``.env`` paths from ``start_dir`` up to the filesystem root."""

    base = Path(start_dir) if start_dir else Path.cwd()
    for directory in [base, *base.parents]:
        yield directory / ".env"


def _parse_dotenv(path: Path) -> dict[str, object]:
    """Parse ``path`` into a nested dictionary, raising ``InvalidFormat`` on malformed lines."""

    result: dict[str, object] = {}
    with path.open("r", encoding="utf-8") as handle:
        for line_number, raw_line in enumerate(handle, start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("export "):
                line = line[len("export ") :].lstrip()
            if "=" not in line:
                log_error("dotenv_invalid_line", phase="settings", path=str(path), line=line_number)
                raise InvalidFormat(f"Malformed line {line_number} in {path}")
            key, value = line.split("=", 1)
            assign_nested(result, key.strip(), _strip_quotes(value.strip()), error_cls=InvalidFormat)
    return result


def _strip_quotes(value: str) -> str:
    """Trim surrounding quotes and inline comments from ``value``.

    >>> _strip_quotes('"token"'), _strip_quotes("value # comment")
    ('token', 'value')
    """

    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    if value.startswith("#"):
        return ""
    if " #" in value:
        return value.split(" #", 1)[0].strip()
    return value

"""Key-value persistence adapter.

Values are JSON-serializable blobs stored under string keys. Reads and writes
are synchronous and every write is an unconditional overwrite.
"""

import json
from pathlib import Path
from typing import Any, Protocol

import structlog

from boleto_flow.exceptions import ParseError

logger = structlog.get_logger(__name__)

GATEWAY_CONFIG_KEY = "gateway_config"
ERP_CONFIG_KEY = "erp_config"
RECORDS_KEY = "records"


class KeyValueStore(Protocol):
    """Minimal persistence contract used by the session."""

    def get(self, key: str) -> Any | None:
        """Return the decoded value, None when absent; raise ParseError if corrupt."""
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class _TextStore:
    """Shared JSON encoding over a raw text backend."""

    def _read(self, key: str) -> str | None:
        raise NotImplementedError

    def _write(self, key: str, text: str) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Any | None:
        text = self._read(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Stored value for {key!r} is not valid JSON") from e

    def set(self, key: str, value: Any) -> None:
        self._write(key, json.dumps(value, ensure_ascii=False, default=str))


class JsonFileStore(_TextStore):
    """One JSON file per key inside a data directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Stored value for {key!r} is not valid UTF-8") from e

    def _write(self, key: str, text: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(text, encoding="utf-8")
        tmp.replace(path)
        logger.debug("store_written", key=key, bytes=len(text))

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class MemoryStore(_TextStore):
    """In-process store, used by tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def _read(self, key: str) -> str | None:
        return self._data.get(key)

    def _write(self, key: str, text: str) -> None:
        self._data[key] = text

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def raw(self, key: str) -> str | None:
        """Raw stored text for a key."""
        return self._data.get(key)

"""Session context: the record collection, operator configuration and activity log.

The session is the single owner of mutable state. Reconciliation and dispatch
read snapshots through it and hand back replacements; every change is written
straight through to the persistence adapter.
"""

import json
import re
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from boleto_flow.exceptions import ParseError, ValidationError
from boleto_flow.models import ErpConfig, GatewayConfig, Record, RecordStatus, digits_only
from boleto_flow.storage import (
    ERP_CONFIG_KEY,
    GATEWAY_CONFIG_KEY,
    RECORDS_KEY,
    KeyValueStore,
    MemoryStore,
)

logger = structlog.get_logger(__name__)

LOG_CAPACITY = 50

# Whole words that mark a message as a network/connectivity problem
_CONNECTIVITY_PATTERN = re.compile(r"\b(cors|conex[aã]o|rede)\b", re.IGNORECASE)

# Fields an operator may edit directly on a record
EDITABLE_FIELDS = frozenset({"phone", "channel_id", "agent_id", "customer_name"})


class LogLevel(str, Enum):
    """Severity of an activity-log entry."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class LogEntry:
    """One line of the operator-facing activity monitor."""

    level: LogLevel
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def connectivity(self) -> bool:
        """Whether the message points at a network problem (troubleshooting hint)."""
        return _CONNECTIVITY_PATTERN.search(self.message) is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.timestamp.isoformat(),
            "type": self.level.value,
            "message": self.message,
            "connectivity": self.connectivity,
        }


class ActivityLog:
    """Bounded most-recent-first buffer of log entries."""

    def __init__(self, capacity: int = LOG_CAPACITY):
        self._entries: deque[LogEntry] = deque(maxlen=capacity)

    def add(self, level: LogLevel, message: str) -> LogEntry:
        entry = LogEntry(level=level, message=message)
        self._entries.appendleft(entry)
        logger.debug("activity_logged", level=level.value, message=message)
        return entry

    def info(self, message: str) -> LogEntry:
        return self.add(LogLevel.INFO, message)

    def success(self, message: str) -> LogEntry:
        return self.add(LogLevel.SUCCESS, message)

    def error(self, message: str) -> LogEntry:
        return self.add(LogLevel.ERROR, message)

    @property
    def entries(self) -> list[LogEntry]:
        """Entries, newest first."""
        return list(self._entries)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class SessionContext:
    """Owns the record collection and configuration for one operator session.

    Usage:
        session = SessionContext.load(JsonFileStore(".boleto_flow"))
        session.edit_record("omie-1", phone="11988887777")
        session.log.info("...")
    """

    def __init__(self, store: KeyValueStore | None = None, log_capacity: int = LOG_CAPACITY):
        self._store: KeyValueStore = store if store is not None else MemoryStore()
        self._records: list[Record] = []
        self._gateway_config = GatewayConfig()
        self._erp_config = ErpConfig()
        self.log = ActivityLog(log_capacity)
        self._logger = logger.bind(component="session")

    # === Loading ===

    @classmethod
    def load(cls, store: KeyValueStore, log_capacity: int = LOG_CAPACITY) -> "SessionContext":
        """Build a session from persisted state.

        Loading is best-effort: any key that fails to parse or validate is
        discarded and its default is used instead.
        """
        session = cls(store, log_capacity=log_capacity)
        session._gateway_config = session._load_model(GATEWAY_CONFIG_KEY, GatewayConfig)
        session._erp_config = session._load_model(ERP_CONFIG_KEY, ErpConfig)
        session._records = session._load_records()
        session._logger.info(
            "session_loaded",
            records=len(session._records),
            simulation=session._gateway_config.simulation,
        )
        return session

    def _read(self, key: str) -> Any | None:
        try:
            return self._store.get(key)
        except ParseError as e:
            self._logger.debug("stored_value_discarded", key=key, error=str(e))
            return None

    def _load_model(self, key: str, model: type[GatewayConfig] | type[ErpConfig]) -> Any:
        raw = self._read(key)
        if raw is None:
            return model()
        try:
            return model.model_validate(raw)
        except PydanticValidationError as e:
            self._logger.debug("stored_value_discarded", key=key, error=str(e))
            return model()

    def _load_records(self) -> list[Record]:
        raw = self._read(RECORDS_KEY)
        if not isinstance(raw, list):
            return []

        records: list[Record] = []
        seen: set[str] = set()
        for item in raw:
            try:
                record = Record.model_validate(item)
            except PydanticValidationError:
                self._logger.debug("stored_record_discarded")
                continue
            if record.id in seen:
                continue
            # A send cannot still be in flight after a restart
            if record.status == RecordStatus.PROCESSING:
                self._logger.warning("stale_processing_reset", record_id=record.id)
                record = record.model_copy(update={"status": RecordStatus.PENDING})
            seen.add(record.id)
            records.append(record)
        return records

    # === Records ===

    @property
    def records(self) -> list[Record]:
        """Snapshot of the collection (a copy; mutate through the session)."""
        return list(self._records)

    def get_record(self, record_id: str) -> Record | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def replace_records(self, records: Iterable[Record]) -> None:
        """Replace the whole collection. Identifiers must be unique."""
        new_records = list(records)
        ids = [r.id for r in new_records]
        if len(ids) != len(set(ids)):
            raise ValidationError("Duplicate record identifiers")
        self._records = new_records
        self._persist_records()

    def update_record(self, record_id: str, **fields: Any) -> Record | None:
        """Apply field updates to one record; returns the new record or None if absent."""
        for index, record in enumerate(self._records):
            if record.id == record_id:
                if "id" in fields and fields["id"] != record_id:
                    raise ValidationError("Record identifiers are immutable")
                try:
                    updated = Record.model_validate({**record.model_dump(), **fields})
                except PydanticValidationError as e:
                    raise ValidationError(f"Invalid record update: {e.error_count()} error(s)") from e
                self._records[index] = updated
                self._persist_records()
                return updated
        return None

    def edit_record(self, record_id: str, **fields: Any) -> Record | None:
        """Operator edit: only review fields, phone kept digits-only."""
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
        if "phone" in fields:
            fields["phone"] = digits_only(fields["phone"])
        return self.update_record(record_id, **fields)

    def delete_record(self, record_id: str) -> bool:
        remaining = [r for r in self._records if r.id != record_id]
        if len(remaining) == len(self._records):
            return False
        self._records = remaining
        self._persist_records()
        return True

    def clear_records(self) -> int:
        count = len(self._records)
        self._records = []
        self._persist_records()
        self.log.info("Fila limpa.")
        return count

    def _persist_records(self) -> None:
        self._store.set(RECORDS_KEY, [r.model_dump(mode="json") for r in self._records])

    # === Configuration ===

    @property
    def gateway_config(self) -> GatewayConfig:
        return self._gateway_config

    def replace_gateway_config(self, config: GatewayConfig) -> None:
        self._gateway_config = config
        self._store.set(GATEWAY_CONFIG_KEY, config.model_dump(mode="json"))

    @property
    def erp_config(self) -> ErpConfig:
        return self._erp_config

    def replace_erp_config(self, config: ErpConfig) -> None:
        self._erp_config = config
        self._store.set(ERP_CONFIG_KEY, config.model_dump(mode="json"))

    # === Backup ===

    def export_backup(self) -> dict[str, Any]:
        """Both configurations as a portable document (records are not included)."""
        return {
            "gateway_config": self._gateway_config.model_dump(mode="json"),
            "erp_config": self._erp_config.model_dump(mode="json"),
            "exported_at": datetime.now(UTC).isoformat(),
        }

    def restore_backup(self, payload: dict[str, Any] | str | bytes) -> list[str]:
        """Restore whichever configurations a backup document carries.

        Raises:
            ParseError: The document is not JSON or a section does not validate.
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as e:
                raise ParseError("Arquivo de backup inválido.") from e
        if not isinstance(payload, dict):
            raise ParseError("Arquivo de backup inválido.")

        try:
            gateway = (
                GatewayConfig.model_validate(payload["gateway_config"])
                if payload.get("gateway_config")
                else None
            )
            erp = (
                ErpConfig.model_validate(payload["erp_config"])
                if payload.get("erp_config")
                else None
            )
        except PydanticValidationError as e:
            raise ParseError("Arquivo de backup inválido.") from e

        restored: list[str] = []
        if gateway is not None:
            self.replace_gateway_config(gateway)
            restored.append(GATEWAY_CONFIG_KEY)
        if erp is not None:
            self.replace_erp_config(erp)
            restored.append(ERP_CONFIG_KEY)

        if restored:
            self.log.info("Configurações restauradas!")
        self._logger.info("backup_restored", sections=restored)
        return restored

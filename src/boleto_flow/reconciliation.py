"""Record reconciliation: bring ERP and image imports into the session collection.

Imports never overwrite: a record whose identifier is already in the
collection is dropped, and genuinely new records are prepended as a block so
the collection reads most-recent-import first.
"""

import asyncio
import mimetypes
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import structlog

from boleto_flow.clients.gemini import GeminiClient
from boleto_flow.clients.omie import OmieClient
from boleto_flow.exceptions import BoletoFlowError
from boleto_flow.models import ErpConfig, GatewayConfig, Record, RecordStatus, format_amount
from boleto_flow.session import SessionContext

logger = structlog.get_logger(__name__)


@dataclass
class ImportOutcome:
    """What an ERP import did to the collection."""

    added: list[Record] = field(default_factory=list)
    duplicates: int = 0
    skipped: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def merge_records(
    existing: list[Record], incoming: Iterable[Record]
) -> tuple[list[Record], list[Record]]:
    """Prepend records with unseen identifiers.

    Returns:
        (merged collection, records that were actually added)
    """
    seen = {r.id for r in existing}
    added: list[Record] = []
    for record in incoming:
        if record.id in seen:
            continue
        seen.add(record.id)
        added.append(record)
    return added + existing, added


def with_default_routing(record: Record, config: GatewayConfig) -> Record:
    """Fill missing channel/agent overrides from the gateway defaults."""
    return record.model_copy(
        update={
            "channel_id": record.channel_id or config.default_channel_id or None,
            "agent_id": record.agent_id or config.default_agent_id or None,
        }
    )


def new_image_record_id() -> str:
    return f"img-{uuid4().hex[:16]}"


class ReconciliationPipeline:
    """Imports records into a session from the ERP or from scanned boletos."""

    def __init__(
        self,
        session: SessionContext,
        erp_client: OmieClient,
        vision_client: GeminiClient | None = None,
    ):
        self._session = session
        self._erp = erp_client
        self._vision = vision_client
        self._logger = logger.bind(component="reconciliation")

    async def import_from_erp(self, config: ErpConfig | None = None) -> ImportOutcome:
        """Fetch open receivables and merge the new ones into the collection."""
        erp_config = config or self._session.erp_config
        log = self._session.log
        log.info("Sincronizando com Omie ERP...")

        try:
            batch = await self._erp.list_receivables(erp_config)
        except BoletoFlowError as e:
            self._logger.error("erp_import_failed", error=str(e), error_type=type(e).__name__)
            log.error(str(e))
            return ImportOutcome(error=str(e))

        # Snapshot taken after the awaits; last writer wins
        gateway = self._session.gateway_config
        incoming = [with_default_routing(r, gateway) for r in batch.records]
        merged, added = merge_records(self._session.records, incoming)

        if added:
            self._session.replace_records(merged)
            log.success(f"{len(added)} novas faturas carregadas.")
        else:
            log.info("Financeiro Omie já está atualizado.")
        if batch.skipped:
            log.info(f"{len(batch.skipped)} faturas ignoradas: cliente não encontrado.")

        self._session.replace_erp_config(
            erp_config.model_copy(update={"last_sync": datetime.now(UTC).isoformat()})
        )
        self._logger.info(
            "erp_import_completed",
            added=len(added),
            duplicates=len(incoming) - len(added),
            skipped=len(batch.skipped),
        )
        return ImportOutcome(
            added=added,
            duplicates=len(incoming) - len(added),
            skipped=batch.skipped,
        )

    async def import_from_image(self, data: bytes, mime_type: str) -> Record | None:
        """Read a boleto image with the vision model and queue it as a new record."""
        log = self._session.log
        log.info("Analisando boleto...")

        if self._vision is None:
            log.error("IA não configurada: defina GOOGLE_API_KEY.")
            return None

        extracted = await self._vision.extract_from_image(data, mime_type)
        if extracted is None:
            log.error("IA falhou ao ler dados do boleto.")
            return None

        gateway = self._session.gateway_config
        record = Record(
            id=new_image_record_id(),
            customer_name=extracted.customer_name,
            phone="",
            amount=extracted.amount,
            due_date=extracted.due_date,
            barcode=extracted.barcode,
            status=RecordStatus.PENDING,
            channel_id=gateway.default_channel_id or None,
            agent_id=gateway.default_agent_id or None,
        )
        merged, _ = merge_records(self._session.records, [record])
        self._session.replace_records(merged)

        log.success(f"Sucesso: {record.customer_name} - R$ {format_amount(record.amount)}")
        self._logger.info("image_imported", record_id=record.id)
        return record

    async def import_from_file(self, path: str | Path, mime_type: str | None = None) -> Record | None:
        """Read a local image/PDF and import it."""
        file_path = Path(path)
        guessed = mime_type or mimetypes.guess_type(file_path.name)[0]
        try:
            data = await asyncio.to_thread(file_path.read_bytes)
        except OSError as e:
            self._logger.error("file_read_failed", path=str(file_path), error=str(e))
            self._session.log.error(f"Não foi possível ler o arquivo {file_path.name}.")
            return None
        return await self.import_from_image(data, guessed or "application/octet-stream")

"""Dispatch orchestrator - sends queued boletos through the messaging gateway.

Sends are strictly sequential: a bulk run waits for each record to settle
(sent or failed) before starting the next, which keeps the gateway from being
flooded and keeps per-record progress meaningful. A failure never aborts the
rest of the run.
"""

from dataclasses import dataclass
from typing import Protocol

import structlog

from boleto_flow.clients.digisac import CONNECTION_FAILED, DigiSacClient, SendResult
from boleto_flow.exceptions import ValidationError
from boleto_flow.models import Record, RecordStatus, format_amount
from boleto_flow.session import SessionContext
from boleto_flow.views import RecordFilter, select_dispatchable

logger = structlog.get_logger(__name__)

UNEXPECTED_FAILURE = "Erro de Conexão"


class Personalizer(Protocol):
    async def personalize(self, record: Record, template: str) -> str: ...


@dataclass
class DispatchSummary:
    """Outcome counts of a bulk send."""

    sent: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.failed


def render_template(template: str, record: Record) -> str:
    """Literal placeholder substitution: {nome} {valor} {data} {link} {barcode}."""
    replacements = {
        "{nome}": record.customer_name,
        "{valor}": format_amount(record.amount),
        "{data}": record.due_date,
        "{link}": record.document_url,
        "{barcode}": record.barcode,
    }
    message = template
    for token, value in replacements.items():
        message = message.replace(token, value or "")
    return message


def check_dispatchable(record: Record | None, record_id: str) -> Record:
    """Preconditions for a send.

    Raises:
        ValidationError: Unknown record, already sent or in flight, or phone too short.
    """
    if record is None:
        raise ValidationError(f"Registro não encontrado: {record_id}")
    if record.status == RecordStatus.SENT:
        raise ValidationError(f"Boleto já enviado: {record.customer_name}")
    if record.status == RecordStatus.PROCESSING:
        raise ValidationError(f"Envio já em andamento: {record.customer_name}")
    if not record.has_dialable_phone:
        raise ValidationError(f"Telefone incompleto: {record.customer_name}")
    return record


class Dispatcher:
    """Sends records one at a time and tracks their status in the session.

    Usage:
        dispatcher = Dispatcher(session, DigiSacClient(), personalizer=gemini)
        await dispatcher.send_one("omie-42")
        summary = await dispatcher.send_all(RecordFilter(search="acme"))
    """

    def __init__(
        self,
        session: SessionContext,
        gateway: DigiSacClient,
        personalizer: Personalizer | None = None,
    ):
        self._session = session
        self._gateway = gateway
        self._personalizer = personalizer
        self._busy = False
        self._logger = logger.bind(component="dispatcher")

    @property
    def busy(self) -> bool:
        """True while a bulk send is running."""
        return self._busy

    async def compose_message(self, record: Record, template: str) -> str:
        """Personalized text when possible, literal substitution otherwise."""
        if self._personalizer is not None:
            try:
                return await self._personalizer.personalize(record, template)
            except Exception as e:
                self._logger.warning("personalization_failed", record_id=record.id, error=str(e))
        return render_template(template, record)

    async def send_one(self, record_id: str) -> Record | None:
        """Dispatch one record; returns its state afterwards (None if it does not exist).

        Exactly one activity-log entry is written per call.
        """
        log = self._session.log
        try:
            record = check_dispatchable(self._session.get_record(record_id), record_id)
        except ValidationError as e:
            log.error(str(e))
            self._logger.info("dispatch_rejected", record_id=record_id, reason=str(e))
            return self._session.get_record(record_id)

        # Must happen before the first await
        processing = self._session.update_record(
            record_id, status=RecordStatus.PROCESSING, error=None
        )
        if processing is None:
            return None
        config = self._session.gateway_config

        try:
            message = await self.compose_message(processing, config.message_template)
            result: SendResult = await self._gateway.send(processing, config, message)
        except Exception as e:
            self._logger.error("dispatch_crashed", record_id=record_id, error=str(e))
            log.error("Erro de rede ou permissão.")
            return self._session.update_record(
                record_id, status=RecordStatus.FAILED, error=UNEXPECTED_FAILURE
            )

        if result.success:
            log.success(f"Enviado para: {processing.customer_name}")
            self._logger.info("record_sent", record_id=record_id)
            return self._session.update_record(record_id, status=RecordStatus.SENT, error=None)

        error = result.error or CONNECTION_FAILED
        log.error(f"Falha no disparo: {error}")
        self._logger.warning("record_failed", record_id=record_id, error=error)
        return self._session.update_record(record_id, status=RecordStatus.FAILED, error=error)

    async def send_all(self, view: RecordFilter | None = None) -> DispatchSummary:
        """Send every pending or failed record in the view, one after another.

        A call made while another bulk send is running returns immediately
        without touching any record.
        """
        summary = DispatchSummary()
        if self._busy:
            self._logger.warning("dispatch_already_running")
            return summary

        view = view or RecordFilter()
        selection = select_dispatchable(view.apply(self._session.records))
        if not selection:
            return summary

        self._busy = True
        self._logger.info("dispatch_started", count=len(selection))
        try:
            for record in selection:
                outcome = await self.send_one(record.id)
                if outcome is not None and outcome.status == RecordStatus.SENT:
                    summary.sent += 1
                else:
                    summary.failed += 1
        finally:
            self._busy = False

        self._logger.info("dispatch_completed", sent=summary.sent, failed=summary.failed)
        return summary

"""Omie ERP client for open accounts receivable.

Omie exposes a JSON-RPC style API: every call is a POST carrying the method
name, the app credentials and a single-element ``param`` list.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog

from boleto_flow.config import get_settings
from boleto_flow.exceptions import (
    BoletoFlowError,
    ConnectivityError,
    ParseError,
    RemoteError,
    ValidationError,
)
from boleto_flow.models import COUNTRY_PREFIX, ErpConfig, Record, RecordStatus, digits_only

logger = structlog.get_logger(__name__)

RECEIVABLES_ENDPOINT = "/financas/contareceber/"
CUSTOMERS_ENDPOINT = "/geral/clientes/"

PAGE_SIZE = 100
MAX_PAGES = 50

# (area code, number) field pairs on a customer, in order of preference
PHONE_FIELD_PAIRS = (
    ("telefone1_ddd", "telefone1_numero"),
    ("celular_ddd", "celular_numero"),
)

SIMULATED_RECEIVABLE = Record(
    id="omie-test-1",
    customer_name="CLIENTE TESTE SA",
    phone="5511999998888",
    amount=Decimal("150.00"),
    due_date="10/02/2026",
    barcode="00190500954014481606906809350314337370000000100",
    category="Vendas",
    salesperson="VENDEDOR TESTE",
)


@dataclass
class ReceivablesBatch:
    """Normalized receivables plus the line items that had to be skipped."""

    records: list[Record] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def resolve_customer_phone(customer: dict[str, Any]) -> str:
    """Phone from the first complete (area code, number) pair, or empty string."""
    for ddd_key, number_key in PHONE_FIELD_PAIRS:
        ddd = digits_only(str(customer.get(ddd_key) or ""))
        number = digits_only(str(customer.get(number_key) or ""))
        if ddd and number:
            return f"{COUNTRY_PREFIX}{ddd}{number}"
    return ""


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


def _first_boleto(item: dict[str, Any]) -> dict[str, Any]:
    boletos = item.get("boletos") or item.get("boleto")
    if isinstance(boletos, list):
        return boletos[0] if boletos and isinstance(boletos[0], dict) else {}
    return boletos if isinstance(boletos, dict) else {}


def normalize_receivable(item: dict[str, Any], customer: dict[str, Any]) -> Record:
    """Map an Omie ``conta_receber_cadastro`` entry and its customer to a Record.

    Required: ``codigo_lancamento`` (or ``codigo_lancamento_omie``).
    Optional: customer name, net amount, due date, boleto link/barcode,
    category description and salesperson name.

    Raises:
        ParseError: The entry has no launch code to build an identifier from.
    """
    code = item.get("codigo_lancamento") or item.get("codigo_lancamento_omie")
    if code in (None, ""):
        raise ParseError("Receivable without codigo_lancamento")

    boleto = _first_boleto(item)
    customer_name = (
        item.get("nome_cliente")
        or customer.get("nome_fantasia")
        or customer.get("razao_social")
        or "Cliente"
    )

    return Record(
        id=f"omie-{code}",
        customer_name=str(customer_name),
        phone=resolve_customer_phone(customer),
        amount=_to_decimal(item.get("valor_liquido", item.get("valor_documento"))),
        due_date=str(item.get("data_vencimento") or ""),
        document_url=str(boleto.get("cLinkBoleto") or ""),
        barcode=str(boleto.get("cCodBarra") or ""),
        status=RecordStatus.PENDING,
        category=str(item.get("descricao_categoria") or ""),
        salesperson=str(item.get("vendedor_nome") or ""),
    )


class OmieClient:
    """Async client for the Omie accounts-receivable and customer APIs."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        simulation_delay: float = 1.0,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.omie_api_url).rstrip("/")
        self._timeout = timeout or settings.http_timeout
        self._transport = transport
        self._simulation_delay = simulation_delay

        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(client="omie")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "OmieClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _endpoint_url(self, config: ErpConfig, endpoint: str) -> str:
        if config.relay_url:
            return f"{config.relay_url.rstrip('/')}/proxy/omie{endpoint}"
        return f"{self.base_url}{endpoint}"

    async def _call(
        self, endpoint: str, call: str, config: ErpConfig, param: dict[str, Any]
    ) -> dict[str, Any]:
        """Invoke one Omie API method and return its decoded payload."""
        client = await self._get_client()
        body = {
            "call": call,
            "app_key": config.app_key,
            "app_secret": config.app_secret,
            "param": [param],
        }

        try:
            response = await client.post(
                self._endpoint_url(config, endpoint),
                json=body,
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as e:
            self._logger.error("request_failed", call=call, error=str(e))
            raise ConnectivityError("Falha ao conectar com Omie ERP.") from e

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {"raw": response.text[:500]}

        fault = data.get("faultstring") if isinstance(data, dict) else None
        if response.status_code >= 400:
            raise RemoteError(
                fault or f"Erro Omie: {response.status_code}",
                status_code=response.status_code,
                details=data,
            )
        if fault:
            raise RemoteError(fault, status_code=response.status_code, details=data)
        if not isinstance(data, dict):
            raise RemoteError("Resposta inválida da Omie.", status_code=response.status_code)
        return data

    async def list_open_receivables(self, config: ErpConfig) -> list[dict[str, Any]]:
        """All open receivables ordered by due date, across pages."""
        items: list[dict[str, Any]] = []
        page = 1
        total_pages = 1

        while page <= total_pages and page <= MAX_PAGES:
            data = await self._call(
                RECEIVABLES_ENDPOINT,
                "ListarContasReceber",
                config,
                {
                    "pagina": page,
                    "registros_por_pagina": PAGE_SIZE,
                    "apenas_importado_api": "N",
                    "filtrar_por_status": "EMABERTO",
                    "ordenar_por": "DATA_VENCIMENTO",
                },
            )
            page_items = data.get("conta_receber_cadastro") or []
            items.extend(i for i in page_items if isinstance(i, dict))

            try:
                total_pages = int(data.get("total_de_paginas") or 1)
            except (TypeError, ValueError) as e:
                raise RemoteError("Resposta inválida da Omie.", details=data) from e
            self._logger.debug("receivables_page", page=page, total_pages=total_pages)
            page += 1

        if total_pages > MAX_PAGES:
            self._logger.warning("receivables_page_limit", total_pages=total_pages)
        return items

    async def get_customer(self, config: ErpConfig, customer_code: Any) -> dict[str, Any]:
        """Customer detail for an Omie customer code."""
        return await self._call(
            CUSTOMERS_ENDPOINT,
            "ConsultarCliente",
            config,
            {"codigo_cliente_omie": customer_code},
        )

    async def list_receivables(self, config: ErpConfig) -> ReceivablesBatch:
        """Open receivables normalized to records, with contact phones resolved.

        Customer lookups run one at a time in source order. An item whose
        lookup or normalization fails is skipped, not fatal.

        Raises:
            ValidationError: App key or secret missing.
            RemoteError: Omie rejected the listing call.
            ConnectivityError: Omie could not be reached.
        """
        if config.simulation:
            await asyncio.sleep(self._simulation_delay)
            return ReceivablesBatch(records=[SIMULATED_RECEIVABLE.model_copy()])

        if not config.app_key or not config.app_secret:
            raise ValidationError("Configure as chaves da Omie.")

        batch = ReceivablesBatch()
        for item in await self.list_open_receivables(config):
            code = str(item.get("codigo_lancamento") or item.get("codigo_lancamento_omie") or "?")
            try:
                customer = await self.get_customer(config, item.get("codigo_cliente_fornecedor"))
                batch.records.append(normalize_receivable(item, customer))
            except BoletoFlowError as e:
                self._logger.warning("erp_item_skipped", codigo_lancamento=code, error=str(e))
                batch.skipped.append(code)

        self._logger.info(
            "receivables_listed", records=len(batch.records), skipped=len(batch.skipped)
        )
        return batch

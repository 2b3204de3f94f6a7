"""DigiSac messaging gateway client (WhatsApp channels, agents and messages)."""

import asyncio
import re
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from boleto_flow.config import get_settings
from boleto_flow.exceptions import ConnectivityError, RemoteError, ValidationError
from boleto_flow.models import Agent, Channel, GatewayConfig, Record, normalize_phone

logger = structlog.get_logger(__name__)

TARGET_HEADER = "x-target-url"

PAGE_SIZE = 100
MAX_PAGES = 10

CONNECTION_FAILED = "Falha de conexão."

_VERSION_SUFFIX = re.compile(r"/v1(/.*)?$")


def clean_base_url(url: str | None) -> str:
    """Normalize an operator-entered gateway URL to ``https://host[/prefix]``."""
    if not url:
        return ""
    cleaned = _VERSION_SUFFIX.sub("", url.strip()).rstrip("/")
    if cleaned and not cleaned.startswith("http"):
        cleaned = "https://" + cleaned
    return cleaned


def _extract_items(payload: Any, key: str) -> list[dict[str, Any]]:
    """Return list of items from ``{"data": [...]}``, ``{key: [...]}`` or a bare list."""
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        items = payload.get("data") or payload.get(key) or []
    else:
        items = []
    return [i for i in items if isinstance(i, dict)] if isinstance(items, list) else []


def _dedupe_by_id(items: list[Any]) -> list[Any]:
    seen: set[str] = set()
    unique = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


@dataclass
class SendResult:
    """Outcome of one message dispatch."""

    success: bool
    error: str | None = None


class DigiSacClient:
    """Async client for the DigiSac REST API.

    Requests go straight to the configured gateway host, or through the relay
    when ``GatewayConfig.relay_url`` is set (the host then travels in the
    ``x-target-url`` header).
    """

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        simulation_delay: float = 0.5,
    ):
        settings = get_settings()
        self._timeout = timeout or settings.http_timeout
        self._transport = transport
        self._simulation_delay = simulation_delay

        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(client="digisac")

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

    async def __aenter__(self) -> "DigiSacClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _build_request(self, config: GatewayConfig, endpoint: str) -> tuple[str, dict[str, str]]:
        """URL and headers for an endpoint, honouring the relay setting."""
        target = clean_base_url(config.api_url)
        if not target:
            raise ValidationError("Informe URL e Token primeiro.")

        headers = {
            "Authorization": f"Bearer {config.api_token.strip()}",
            "Accept": "application/json",
        }
        if config.relay_url:
            headers[TARGET_HEADER] = target
            return f"{config.relay_url.rstrip('/')}/proxy/digisac{endpoint}", headers
        return f"{target}{endpoint}", headers

    async def _paginate(self, config: GatewayConfig, endpoint: str, key: str) -> list[dict[str, Any]]:
        """Collect items across pages; stops on an empty or short page or the page ceiling."""
        client = await self._get_client()
        collected: list[dict[str, Any]] = []

        for page in range(1, MAX_PAGES + 1):
            url, headers = self._build_request(config, endpoint)
            try:
                response = await client.get(
                    url, params={"limit": PAGE_SIZE, "page": page}, headers=headers
                )
            except httpx.RequestError as e:
                self._logger.error("request_failed", endpoint=endpoint, error=str(e))
                raise ConnectivityError("Erro de conexão. Verifique os dados ou o Proxy.") from e

            if response.status_code >= 400:
                if page > 1:
                    self._logger.warning("pagination_stopped", endpoint=endpoint, page=page)
                    break
                raise RemoteError(
                    f"Erro DigiSac: {response.status_code}", status_code=response.status_code
                )

            try:
                items = _extract_items(response.json(), key)
            except ValueError:
                items = []
            collected.extend(items)

            if len(items) < PAGE_SIZE:
                break

        return collected

    async def list_channels(self, config: GatewayConfig) -> list[Channel]:
        """Services (channels) available on the gateway, deduplicated by id."""
        raw = await self._paginate(config, "/v1/services", "services")
        channels = [
            Channel(
                id=str(item["id"]),
                name=str(item.get("name") or item["id"]),
                type=str(item.get("type") or ""),
            )
            for item in raw
            if item.get("id")
        ]
        channels = _dedupe_by_id(channels)
        self._logger.info("channels_listed", count=len(channels))
        return channels

    async def list_agents(self, config: GatewayConfig) -> list[Agent]:
        """Active users on the gateway, deduplicated by id and sorted by name."""
        raw = await self._paginate(config, "/v1/users", "users")
        agents = [
            Agent(id=str(item["id"]), name=str(item.get("name") or item.get("username") or ""))
            for item in raw
            if item.get("id") and item.get("active") is not False
        ]
        agents = sorted(_dedupe_by_id(agents), key=lambda a: a.name.casefold())
        self._logger.info("agents_listed", count=len(agents))
        return agents

    async def send(self, record: Record, config: GatewayConfig, message: str) -> SendResult:
        """Send a WhatsApp message for a record. Never raises; failures come back in the result."""
        if config.simulation:
            await asyncio.sleep(self._simulation_delay)
            self._logger.info("message_simulated", record_id=record.id)
            return SendResult(success=True)

        try:
            url, headers = self._build_request(config, "/v1/messages")
        except ValidationError as e:
            return SendResult(success=False, error=str(e))

        payload = {
            "number": normalize_phone(record.phone),
            "serviceId": config.resolve_channel(record),
            "userId": config.resolve_agent(record),
            "text": message,
            "dontOpenTicket": True,
        }

        client = await self._get_client()
        try:
            response = await client.post(url, json=payload, headers=headers)
        except httpx.RequestError as e:
            self._logger.error("send_failed", record_id=record.id, error=str(e))
            return SendResult(success=False, error=CONNECTION_FAILED)

        if response.is_success:
            self._logger.info("message_sent", record_id=record.id, service_id=payload["serviceId"])
            return SendResult(success=True)

        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {}
        remote_message = error_data.get("message") if isinstance(error_data, dict) else None
        self._logger.warning(
            "send_rejected", record_id=record.id, status_code=response.status_code
        )
        return SendResult(success=False, error=remote_message or f"Erro {response.status_code}")

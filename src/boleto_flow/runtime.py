"""Runtime - wires the session, service clients, pipeline and dispatcher.

Usage:
    async with Runtime.from_settings() as runtime:
        await runtime.pipeline.import_from_erp()
        await runtime.dispatcher.send_all()
"""

from typing import Any

import structlog

from boleto_flow.catalog import sync_gateway_catalog
from boleto_flow.clients import DigiSacClient, GeminiClient, OmieClient
from boleto_flow.config import FlatSettings, get_settings
from boleto_flow.dispatch import Dispatcher
from boleto_flow.models import GatewayConfig
from boleto_flow.reconciliation import ReconciliationPipeline
from boleto_flow.session import SessionContext
from boleto_flow.storage import JsonFileStore

logger = structlog.get_logger(__name__)


class Runtime:
    """Owns the service clients for one session and closes them on exit."""

    def __init__(
        self,
        session: SessionContext,
        erp: OmieClient | None = None,
        gateway: DigiSacClient | None = None,
        vision: GeminiClient | None = None,
    ):
        self.session = session
        self.erp = erp or OmieClient()
        self.gateway = gateway or DigiSacClient()
        self.vision = vision

        self.pipeline = ReconciliationPipeline(session, self.erp, self.vision)
        self.dispatcher = Dispatcher(session, self.gateway, personalizer=self.vision)

    @classmethod
    def from_settings(cls, settings: FlatSettings | None = None) -> "Runtime":
        """Load the persisted session and build clients from process settings."""
        settings = settings or get_settings()
        session = SessionContext.load(JsonFileStore(settings.data_dir))

        vision = None
        if settings.google_api_key:
            vision = GeminiClient(
                api_key=settings.google_api_key.get_secret_value(),
                model=settings.gemini_model,
            )
        else:
            logger.warning("gemini_disabled", reason="GOOGLE_API_KEY not set")

        erp = OmieClient(base_url=settings.omie_api_url, timeout=settings.http_timeout)
        gateway = DigiSacClient(timeout=settings.http_timeout)
        return cls(session, erp, gateway, vision)

    async def sync_catalog(self) -> GatewayConfig | None:
        return await sync_gateway_catalog(self.session, self.gateway)

    async def close(self) -> None:
        await self.erp.close()
        await self.gateway.close()

    async def __aenter__(self) -> "Runtime":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

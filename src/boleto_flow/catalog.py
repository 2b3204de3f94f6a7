"""Refresh the gateway's selectable channels and agents into the saved config."""

import structlog

from boleto_flow.clients.digisac import DigiSacClient
from boleto_flow.exceptions import BoletoFlowError
from boleto_flow.models import GatewayConfig
from boleto_flow.session import SessionContext

logger = structlog.get_logger(__name__)


async def sync_gateway_catalog(
    session: SessionContext, client: DigiSacClient
) -> GatewayConfig | None:
    """Fetch channels and agents and cache them on the gateway config.

    Returns the updated config, or None when the sync could not run.
    """
    config = session.gateway_config
    if not config.api_url or not config.api_token:
        session.log.error("Informe URL e Token primeiro.")
        return None

    try:
        channels = await client.list_channels(config)
        agents = await client.list_agents(config)
    except BoletoFlowError as e:
        logger.error("catalog_sync_failed", error=str(e))
        session.log.error(str(e) or "Erro de conexão. Verifique os dados ou o Proxy.")
        return None

    updated = session.gateway_config.model_copy(update={"channels": channels, "agents": agents})
    session.replace_gateway_config(updated)

    if not agents:
        session.log.error("Atenção: A API não retornou usuários ativos.")
    else:
        session.log.success(
            f"Sucesso! {len(agents)} atendentes e {len(channels)} canais carregados."
        )
    logger.info("catalog_synced", channels=len(channels), agents=len(agents))
    return updated

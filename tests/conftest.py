"""Pytest configuration and fixtures."""

import os
import tempfile
from decimal import Decimal

import httpx
import pytest

# Set test environment variables before importing settings
os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="boleto-flow-tests-"))

from boleto_flow.models import GatewayConfig, Record, RecordStatus  # noqa: E402
from boleto_flow.session import SessionContext  # noqa: E402
from boleto_flow.storage import MemoryStore  # noqa: E402


def make_record(record_id: str = "omie-1", **overrides) -> Record:
    """Build a record with sensible defaults."""
    fields = {
        "id": record_id,
        "customer_name": "ACME LTDA",
        "phone": "11988887777",
        "amount": Decimal("150.00"),
        "due_date": "10/02/2026",
        "document_url": "https://omie.example/boleto/1",
        "barcode": "00190500954014481606906809350314337370000000100",
        "status": RecordStatus.PENDING,
    }
    fields.update(overrides)
    return Record(**fields)


def mock_transport(handler) -> httpx.MockTransport:
    """Wrap a request handler as an httpx transport."""
    return httpx.MockTransport(handler)


@pytest.fixture
def store():
    """Empty in-memory persistence adapter."""
    return MemoryStore()


@pytest.fixture
def session(store):
    """Fresh session backed by the in-memory store."""
    return SessionContext(store)


@pytest.fixture
def simulated_gateway_config():
    """Gateway config in simulation mode with default routing."""
    return GatewayConfig(
        api_url="empresa.digisac.app",
        api_token="token-123",
        default_channel_id="svc-default",
        default_agent_id="user-default",
        simulation=True,
    )


@pytest.fixture
def live_gateway_config():
    """Gateway config pointing at a (mocked) live DigiSac host."""
    return GatewayConfig(
        api_url="https://empresa.digisac.app/v1/",
        api_token=" token-123 ",
        default_channel_id="svc-default",
        default_agent_id="user-default",
    )


@pytest.fixture
def omie_receivables_page():
    """One page of Omie ListarContasReceber output."""
    return {
        "pagina": 1,
        "total_de_paginas": 1,
        "registros": 2,
        "conta_receber_cadastro": [
            {
                "codigo_lancamento": 1,
                "codigo_cliente_fornecedor": 501,
                "nome_cliente": "ACME LTDA",
                "valor_liquido": 150.5,
                "data_vencimento": "10/02/2026",
                "descricao_categoria": "Vendas",
                "vendedor_nome": "Maria",
                "boletos": [
                    {
                        "cLinkBoleto": "https://omie.example/boleto/1",
                        "cCodBarra": "00190500954014481606906809350314337370000000100",
                    }
                ],
            },
            {
                "codigo_lancamento": 2,
                "codigo_cliente_fornecedor": 502,
                "valor_liquido": "99.90",
                "data_vencimento": "15/02/2026",
            },
        ],
    }


@pytest.fixture
def omie_customers():
    """Omie ConsultarCliente output keyed by customer code."""
    return {
        501: {"nome_fantasia": "Acme", "telefone1_ddd": "11", "telefone1_numero": "3333-4444"},
        502: {"nome_fantasia": "Beta Comercio", "celular_ddd": "(21)", "celular_numero": "98888-7777"},
    }

"""External service clients: Omie ERP, DigiSac gateway and Gemini."""

from boleto_flow.clients.digisac import DigiSacClient, SendResult, clean_base_url
from boleto_flow.clients.gemini import ExtractedInvoice, GeminiClient, parse_extraction
from boleto_flow.clients.omie import (
    OmieClient,
    ReceivablesBatch,
    normalize_receivable,
    resolve_customer_phone,
)

__all__ = [
    "DigiSacClient",
    "SendResult",
    "clean_base_url",
    "GeminiClient",
    "ExtractedInvoice",
    "parse_extraction",
    "OmieClient",
    "ReceivablesBatch",
    "normalize_receivable",
    "resolve_customer_phone",
]

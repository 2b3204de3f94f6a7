"""Google Gemini client for invoice reading and message personalization.

Uses the google-genai SDK (v1.0+): structured JSON output for extracting
boleto fields from an image, free text for WhatsApp message drafting.
"""

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog
from google import genai
from google.genai import types

from boleto_flow.config import get_settings
from boleto_flow.exceptions import ValidationError
from boleto_flow.models import Record, format_amount

logger = structlog.get_logger(__name__)

EXTRACTION_PROMPT = (
    "Analise este boleto bancário e extraia: Nome do pagador/cliente, Valor total, "
    "Data de vencimento e o Código de barras (linha digitável). Retorne estritamente em JSON."
)

PERSONALIZATION_SYSTEM_PROMPT = (
    "Você é um assistente de faturamento educado e direto. Use Português do Brasil."
)

INVOICE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "customerName": {"type": "string"},
        "amount": {"type": "number"},
        "dueDate": {"type": "string"},
        "barcode": {"type": "string"},
    },
    "required": ["customerName", "amount", "dueDate"],
}


@dataclass
class ExtractedInvoice:
    """Fields read from a boleto image."""

    customer_name: str
    amount: Decimal
    due_date: str
    barcode: str = ""


def _parse_amount(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    text = str(value).strip().replace("R$", "").strip()
    try:
        return Decimal(text)
    except InvalidOperation:
        pass
    # pt-BR notation: 1.234,56
    try:
        return Decimal(text.replace(".", "").replace(",", "."))
    except InvalidOperation:
        return None


def parse_extraction(text: str | None) -> ExtractedInvoice | None:
    """Validate the model's JSON answer; None when unusable."""
    try:
        data = json.loads(text or "{}")
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    customer_name = str(data.get("customerName") or "").strip()
    if not customer_name:
        return None
    amount = _parse_amount(data.get("amount"))
    if amount is None:
        return None

    return ExtractedInvoice(
        customer_name=customer_name,
        amount=amount,
        due_date=str(data.get("dueDate") or ""),
        barcode=str(data.get("barcode") or ""),
    )


def build_personalization_prompt(record: Record, template: str) -> str:
    return (
        f"Crie uma mensagem curta e profissional para enviar via WhatsApp para o cliente "
        f"{record.customer_name}.\n"
        f"Dados:\n"
        f"- Valor: R$ {format_amount(record.amount)}\n"
        f"- Vencimento: {record.due_date}\n"
        f"- Link: {record.document_url or 'Anexo'}\n"
        f"- Linha Digitável: {record.barcode or 'Não informada'}\n\n"
        f'Use o template como guia: "{template}"\n'
        f"Substitua {{nome}}, {{valor}}, {{data}}, {{link}}, {{barcode}} se existirem no template.\n"
        f'Facilite o "copia e cola" do código de barras colocando-o em uma linha separada.'
    )


class GeminiClient:
    """Client for Google's Gemini API (vision extraction and text generation)."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        configured_key = (
            settings.google_api_key.get_secret_value() if settings.google_api_key else None
        )
        self._api_key = api_key or configured_key
        if not self._api_key:
            raise ValidationError("GOOGLE_API_KEY is not configured")
        self._model_name = model or settings.gemini_model
        self._temperature = temperature

        self._client = genai.Client(api_key=self._api_key)

        self._logger = logger.bind(client="gemini", model=self._model_name)

    def _convert_json_schema_to_gemini(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Convert JSON Schema to Gemini's schema format.

        Gemini uses a subset of OpenAPI schema format.
        """
        gemini_schema: dict[str, Any] = {}

        if "type" in schema:
            type_map = {
                "string": "STRING",
                "integer": "INTEGER",
                "number": "NUMBER",
                "boolean": "BOOLEAN",
                "array": "ARRAY",
                "object": "OBJECT",
            }
            gemini_schema["type"] = type_map.get(schema["type"], "STRING")

        if "description" in schema:
            gemini_schema["description"] = schema["description"]

        if "properties" in schema:
            gemini_schema["properties"] = {
                k: self._convert_json_schema_to_gemini(v)
                for k, v in schema["properties"].items()
            }

        if "required" in schema:
            gemini_schema["required"] = schema["required"]

        if "items" in schema:
            gemini_schema["items"] = self._convert_json_schema_to_gemini(schema["items"])

        return gemini_schema

    async def extract_from_image(self, data: bytes, mime_type: str) -> ExtractedInvoice | None:
        """Read customer, amount, due date and barcode from a boleto image or PDF.

        Returns None on any API, parse or validation failure.
        """
        config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=types.Schema.model_validate(
                self._convert_json_schema_to_gemini(INVOICE_SCHEMA)
            ),
            temperature=self._temperature,
        )

        self._logger.debug("extracting_invoice", mime_type=mime_type, size=len(data))
        try:
            response = await self._client.aio.models.generate_content(
                model=self._model_name,
                contents=[
                    types.Part.from_bytes(data=data, mime_type=mime_type),
                    EXTRACTION_PROMPT,
                ],
                config=config,
            )
        except Exception as e:
            self._logger.error("api_error", operation="extract", error=str(e))
            return None

        extracted = parse_extraction(response.text)
        if extracted is None:
            self._logger.warning("extraction_unusable")
        else:
            self._logger.info("invoice_extracted", customer=extracted.customer_name)
        return extracted

    async def personalize(self, record: Record, template: str) -> str:
        """Draft a WhatsApp message for a record, guided by the operator template.

        Returns the template itself when the model produces no text. API
        failures propagate so the caller can fall back.
        """
        config = types.GenerateContentConfig(
            system_instruction=PERSONALIZATION_SYSTEM_PROMPT,
            temperature=self._temperature,
        )

        try:
            response = await self._client.aio.models.generate_content(
                model=self._model_name,
                contents=build_personalization_prompt(record, template),
                config=config,
            )
        except Exception as e:
            self._logger.error("api_error", operation="personalize", error=str(e))
            raise

        return response.text or template

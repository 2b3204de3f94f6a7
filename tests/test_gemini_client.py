"""Tests for the Gemini client."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from boleto_flow.clients.gemini import (
    INVOICE_SCHEMA,
    GeminiClient,
    build_personalization_prompt,
    parse_extraction,
)
from conftest import make_record


def with_response(client: GeminiClient, text=None, error=None) -> AsyncMock:
    """Replace the SDK client with a mock returning ``text`` or raising ``error``."""
    generate = AsyncMock()
    if error is not None:
        generate.side_effect = error
    else:
        generate.return_value = MagicMock(text=text)
    client._client = MagicMock()
    client._client.aio.models.generate_content = generate
    return generate


class TestParseExtraction:
    """Tests for validating the model's JSON answer."""

    def test_complete_answer(self):
        """Test a full answer maps every field."""
        text = json.dumps(
            {"customerName": "ACME", "amount": 150.5, "dueDate": "10/02/2026", "barcode": "0019"}
        )

        invoice = parse_extraction(text)

        assert invoice.customer_name == "ACME"
        assert invoice.amount == Decimal("150.5")
        assert invoice.due_date == "10/02/2026"
        assert invoice.barcode == "0019"

    def test_pt_br_amount(self):
        """Test amounts written with Brazilian separators are accepted."""
        invoice = parse_extraction(json.dumps({"customerName": "ACME", "amount": "R$ 1.234,56"}))

        assert invoice.amount == Decimal("1234.56")

    @pytest.mark.parametrize(
        "text",
        [
            None,
            "not json",
            "[1, 2]",
            json.dumps({"amount": 10, "dueDate": "01/01/2026"}),
            json.dumps({"customerName": "  ", "amount": 10}),
            json.dumps({"customerName": "ACME", "amount": "abc"}),
            json.dumps({"customerName": "ACME"}),
        ],
    )
    def test_unusable_answers(self, text):
        """Test answers missing a customer name or amount are rejected."""
        assert parse_extraction(text) is None


class TestGeminiClient:
    """Tests for GeminiClient."""

    def test_client_initialization_with_defaults(self):
        """Test client initializes with settings defaults."""
        client = GeminiClient()

        assert client._api_key == "test-key"
        assert client._model_name == "gemini-2.5-flash"

    def test_convert_schema(self):
        """Test JSON Schema conversion to Gemini types."""
        client = GeminiClient(api_key="k")

        converted = client._convert_json_schema_to_gemini(INVOICE_SCHEMA)

        assert converted["type"] == "OBJECT"
        assert converted["properties"]["amount"]["type"] == "NUMBER"
        assert converted["required"] == ["customerName", "amount", "dueDate"]

    @pytest.mark.asyncio
    async def test_extract_from_image(self):
        """Test a valid model answer becomes an extracted invoice."""
        client = GeminiClient(api_key="k")
        generate = with_response(
            client, text=json.dumps({"customerName": "ACME", "amount": 99.9, "dueDate": "01/03/2026"})
        )

        invoice = await client.extract_from_image(b"%PDF-1.4", "application/pdf")

        assert invoice.customer_name == "ACME"
        assert invoice.amount == Decimal("99.9")
        assert generate.await_count == 1
        assert generate.call_args.kwargs["model"] == "gemini-2.5-flash"

    @pytest.mark.asyncio
    async def test_extract_returns_none_on_api_error(self):
        """Test API failures are swallowed into None."""
        client = GeminiClient(api_key="k")
        with_response(client, error=RuntimeError("quota"))

        assert await client.extract_from_image(b"img", "image/png") is None

    @pytest.mark.asyncio
    async def test_extract_returns_none_on_bad_answer(self):
        """Test an answer without a customer name yields None."""
        client = GeminiClient(api_key="k")
        with_response(client, text=json.dumps({"amount": 10}))

        assert await client.extract_from_image(b"img", "image/png") is None

    @pytest.mark.asyncio
    async def test_personalize(self):
        """Test the drafted text is returned as-is."""
        client = GeminiClient(api_key="k")
        with_response(client, text="Olá ACME, segue seu boleto.")

        text = await client.personalize(make_record(), "Olá {nome}")

        assert text == "Olá ACME, segue seu boleto."

    @pytest.mark.asyncio
    async def test_personalize_empty_falls_back_to_template(self):
        """Test an empty answer returns the template."""
        client = GeminiClient(api_key="k")
        with_response(client, text=None)

        assert await client.personalize(make_record(), "Olá {nome}") == "Olá {nome}"

    @pytest.mark.asyncio
    async def test_personalize_raises_on_api_error(self):
        """Test API failures propagate so callers can fall back."""
        client = GeminiClient(api_key="k")
        with_response(client, error=RuntimeError("quota"))

        with pytest.raises(RuntimeError):
            await client.personalize(make_record(), "Olá {nome}")


def test_personalization_prompt_contains_record_data():
    """Test the prompt carries the formatted amount and placeholders."""
    prompt = build_personalization_prompt(make_record(document_url=""), "Olá {nome}")

    assert "ACME LTDA" in prompt
    assert "R$ 150,00" in prompt
    assert "Anexo" in prompt
    assert "{nome}" in prompt

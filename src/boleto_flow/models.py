"""Domain models: records (boletos), operator configuration and routing catalog."""

import re
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

COUNTRY_PREFIX = "55"
MIN_PHONE_DIGITS = 8

DEFAULT_MESSAGE_TEMPLATE = (
    "Olá {nome}, seu boleto de R$ {valor} vence em {data}. "
    "Segue o link para pagamento: {link}\n\nCód. Barras: {barcode}"
)

_NON_DIGITS = re.compile(r"\D")


class RecordStatus(str, Enum):
    """Dispatch state of a record."""

    PENDING = "pending"        # Initial state after import
    PROCESSING = "processing"  # Send accepted, waiting on the gateway
    SENT = "sent"              # Terminal
    FAILED = "failed"          # Terminal but retriable


class Record(BaseModel):
    """One outstanding invoice tracked through import, review and dispatch."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(min_length=1)
    customer_name: str
    phone: str = ""
    amount: Decimal = Decimal("0")
    due_date: str = ""
    document_url: str = ""
    barcode: str = ""
    category: str = ""
    salesperson: str = ""
    status: RecordStatus = RecordStatus.PENDING
    error: str | None = None
    channel_id: str | None = None
    agent_id: str | None = None

    @property
    def phone_digits(self) -> str:
        return digits_only(self.phone)

    @property
    def has_dialable_phone(self) -> bool:
        """Whether the phone passes the minimum-length dispatch precondition."""
        return len(self.phone_digits) >= MIN_PHONE_DIGITS


class Channel(BaseModel):
    """A DigiSac service (WhatsApp number) a message can go out through."""

    id: str
    name: str
    type: str = ""


class Agent(BaseModel):
    """A DigiSac user responsible for the conversation."""

    id: str
    name: str


class GatewayConfig(BaseModel):
    """Operator configuration for the DigiSac messaging gateway."""

    api_url: str = ""
    api_token: str = ""
    default_channel_id: str = ""
    default_agent_id: str = ""
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    simulation: bool = False
    relay_url: str = ""
    channels: list[Channel] = Field(default_factory=list)
    agents: list[Agent] = Field(default_factory=list)

    def resolve_channel(self, record: Record) -> str:
        return (record.channel_id or self.default_channel_id or "").strip()

    def resolve_agent(self, record: Record) -> str:
        """Agent for a record; empty string lets the gateway queue it automatically."""
        return (record.agent_id or self.default_agent_id or "").strip()


class ErpConfig(BaseModel):
    """Operator configuration for the Omie ERP."""

    app_key: str = ""
    app_secret: str = ""
    simulation: bool = False
    relay_url: str = ""
    last_sync: str | None = None


def digits_only(value: str | None) -> str:
    """Strip everything but digits."""
    return _NON_DIGITS.sub("", value or "")


def normalize_phone(value: str | None) -> str:
    """Digits-only phone with the Brazilian country prefix."""
    digits = digits_only(value)
    if digits and not digits.startswith(COUNTRY_PREFIX):
        digits = COUNTRY_PREFIX + digits
    return digits


def format_amount(amount: Decimal | float | int | str) -> str:
    """Format a monetary amount the pt-BR way: 1.234,56."""
    value = Decimal(str(amount or 0)).quantize(Decimal("0.01"))
    text = f"{value:,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")

"""Boleto Flow - boleto import, review and WhatsApp dispatch."""

__version__ = "0.1.0"

from boleto_flow.clients import DigiSacClient, GeminiClient, OmieClient, SendResult
from boleto_flow.config import configure_logging, get_settings
from boleto_flow.dispatch import DispatchSummary, Dispatcher
from boleto_flow.exceptions import (
    BoletoFlowError,
    ConnectivityError,
    ParseError,
    RemoteError,
    ValidationError,
)
from boleto_flow.models import Agent, Channel, ErpConfig, GatewayConfig, Record, RecordStatus
from boleto_flow.reconciliation import ImportOutcome, ReconciliationPipeline
from boleto_flow.runtime import Runtime
from boleto_flow.session import ActivityLog, LogEntry, LogLevel, SessionContext
from boleto_flow.storage import JsonFileStore, MemoryStore
from boleto_flow.views import RecordFilter, StatusFilter, compute_stats

__all__ = [
    # Version
    "__version__",
    # Models
    "Record",
    "RecordStatus",
    "GatewayConfig",
    "ErpConfig",
    "Channel",
    "Agent",
    # Session & storage
    "SessionContext",
    "ActivityLog",
    "LogEntry",
    "LogLevel",
    "JsonFileStore",
    "MemoryStore",
    # Clients
    "OmieClient",
    "DigiSacClient",
    "GeminiClient",
    "SendResult",
    # Workflows
    "ReconciliationPipeline",
    "ImportOutcome",
    "Dispatcher",
    "DispatchSummary",
    "Runtime",
    # Views
    "RecordFilter",
    "StatusFilter",
    "compute_stats",
    # Errors
    "BoletoFlowError",
    "ValidationError",
    "RemoteError",
    "ConnectivityError",
    "ParseError",
    # Config
    "get_settings",
    "configure_logging",
]

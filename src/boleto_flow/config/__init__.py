"""Configuration module for Boleto Flow."""

from boleto_flow.config.logging import configure_logging
from boleto_flow.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging"]

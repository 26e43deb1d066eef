"""
Configuration management for the Coursebook gateway.

Loads settings from environment variables (and an optional .env file) into a
single GatewaySettings object used by the app factory.
"""

from coursebook_gateway.config.settings import GatewaySettings, get_settings  # noqa: F401

__all__ = ["GatewaySettings", "get_settings"]

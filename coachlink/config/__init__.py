"""
Application configuration.

Settings come from environment variables (or .env) via pydantic-settings.
Stripe and Snowflake both have mock modes for local development.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]

"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Cardiac triage server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback so report analysis is never exposed to the LAN/WAN
    # by accident. Opt into `0.0.0.0` explicitly when you intend remote access.
    cardio_host: str = "127.0.0.1"
    cardio_port: int = 8001
    cardio_log_level: str = "info"
    # If binding to non-loopback, refuse to start unless this is set true
    # (there is currently no auth layer).
    cardio_allow_insecure_bind: bool = False

    # Rule sets
    ruleset_id: str = "cardiac_points"
    ruleset_dir: str = ""

    # Analysis output
    text_preview_chars: int = 500
    analysis_version: str = "1.0.0"
    min_document_chars: int = 10


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()

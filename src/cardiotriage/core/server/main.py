"""Cardiac Triage server entry point — ``python -m cardiotriage.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from cardiotriage.core.config.settings import get_settings
from cardiotriage.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the Cardiac Triage MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.cardio_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not _is_loopback_host(settings.cardio_host):
        if not settings.cardio_allow_insecure_bind:
            raise RuntimeError(
                "Refusing to bind cardiac triage server to a non-loopback host without an "
                "auth layer. Set CARDIO_ALLOW_INSECURE_BIND=true to override (unsafe)."
            )
        logger.warning(
            "Binding to non-loopback host %s without authentication", settings.cardio_host
        )
    logger.info(
        "Starting Cardiac Triage server on %s:%d",
        settings.cardio_host,
        settings.cardio_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.cardio_host,
        port=settings.cardio_port,
    )


if __name__ == "__main__":
    run()

"""HealthHub server entry point: ``python -m healthhub.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from healthhub.core.config.settings import get_settings
from healthhub.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the HealthHub MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.healthhub_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger = logging.getLogger(__name__)
    if not settings.healthhub_allow_insecure_bind and not _is_loopback_host(settings.healthhub_host):
        raise RuntimeError(
            "Refusing to bind HealthHub server to a non-loopback host without an auth layer. "
            "Set HEALTHHUB_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting HealthHub insight server on %s:%d",
        settings.healthhub_host,
        settings.healthhub_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.healthhub_host,
        port=settings.healthhub_port,
    )


if __name__ == "__main__":
    run()

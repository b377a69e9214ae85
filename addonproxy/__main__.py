"""Serve the proxy with uvicorn, building a fresh app through the factory."""

from __future__ import annotations

import logging

import uvicorn

from app.config import get_settings

logger = logging.getLogger("addonproxy")


def main() -> None:
    config = get_settings()
    logger.info(
        "Starting %s on %s:%s with tenants from %s",
        config.app_name,
        config.server_host,
        config.server_port,
        config.config_dir,
    )
    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host=config.server_host,
        port=config.server_port,
        reload=config.environment == "development",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()

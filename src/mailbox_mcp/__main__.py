# src/mailbox_mcp/__main__.py
from __future__ import annotations

import asyncio
import sys

import structlog

from mailbox_mcp.config import Settings
from mailbox_mcp.errors import ConfigError
from mailbox_mcp.logging import setup_logging
from mailbox_mcp.server import serve


def main() -> int:
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        setup_logging()
        structlog.get_logger(__name__).error("config_invalid", error=str(e))
        return 1

    setup_logging(json=settings.log_json, level=settings.log_level)
    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())

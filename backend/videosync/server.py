from __future__ import annotations

import logging
import socket
from typing import List, Optional

import uvicorn

from videosync.core.config import get_settings
from videosync.core.logging_config import setup_logging
from videosync.main import create_app
from videosync.services.relay import RelayService

logger = logging.getLogger(__name__)


class RelayServer(uvicorn.Server):
    """uvicorn server that says goodbye to every room before dropping sockets.

    uvicorn closes open WebSockets itself before running the lifespan shutdown,
    so the ``server_shutdown`` notice has to go out first, from here.
    """

    def __init__(self, config: uvicorn.Config, relay: RelayService) -> None:
        super().__init__(config)
        self.relay = relay

    async def shutdown(self, sockets: Optional[List[socket.socket]] = None) -> None:
        try:
            await self.relay.shutdown()
        except Exception:
            logger.exception("relay shutdown failed")
        await super().shutdown(sockets=sockets)


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        ws_per_message_deflate=False,
        ws_ping_interval=settings.heartbeat_interval_s,
        ws_ping_timeout=settings.heartbeat_interval_s,
    )
    server = RelayServer(config, app.state.relay)
    logger.info("video sync relay listening on ws://%s:%d (status: /status)", settings.host, settings.port)
    server.run()


if __name__ == "__main__":
    main()

import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel


class Settings(BaseModel):
    app_env: str = "development"
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"
    cors_origins: List[str] = ["*"]
    max_room_id_length: int = 50
    heartbeat_interval_s: float = 30.0
    room_sweep_interval_s: float = 60.0
    empty_room_grace_s: float = 300.0
    # Per-connection outbound queue; a peer that falls this far behind misses messages
    outbound_queue_size: int = 256
    shutdown_timeout_s: float = 2.0


@lru_cache
def get_settings() -> Settings:
    # Load .env if present (noop if already loaded)
    load_dotenv()
    origins = os.getenv("CORS_ORIGINS", "*")
    origins_list = [o.strip() for o in origins.split(",") if o.strip()]
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_level=os.getenv("LOG_LEVEL", "info"),
        cors_origins=origins_list,
        max_room_id_length=int(os.getenv("MAX_ROOM_ID_LENGTH", "50")),
        heartbeat_interval_s=float(os.getenv("HEARTBEAT_INTERVAL_S", "30")),
        room_sweep_interval_s=float(os.getenv("ROOM_SWEEP_INTERVAL_S", "60")),
        empty_room_grace_s=float(os.getenv("EMPTY_ROOM_GRACE_S", "300")),
        outbound_queue_size=int(os.getenv("OUTBOUND_QUEUE_SIZE", "256")),
        shutdown_timeout_s=float(os.getenv("SHUTDOWN_TIMEOUT_S", "2")),
    )

"""ShipWatch — Application Configuration."""

import json
import logging
from pathlib import Path
from pydantic_settings import BaseSettings
from typing import Optional

_cfg_logger = logging.getLogger("shipwatch.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    app_name: str = "ShipWatch"
    app_version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Upstream stream ("relay" = normalizing worker, "aisstream" = raw provider)
    dialect: str = "relay"
    relay_url: str = "ws://localhost:8787/ws"
    aisstream_url: str = "wss://stream.aisstream.io/v0/stream"
    aisstream_api_key: str = ""
    message_types: list[str] = []
    mmsi_filter: list[str] = []
    open_timeout: float = 10.0
    static_cache_size: int = 50_000
    autostart_stream: bool = True

    # Reconnect backoff (milliseconds) and resubscribe threshold (degrees)
    backoff_base_ms: int = 1000
    backoff_max_ms: int = 30000
    resubscribe_threshold: float = 0.2

    # Render cadence (seconds)
    render_interval: float = 1.5

    # Initial area of interest
    initial_south: float = 35.0
    initial_west: float = -5.0
    initial_north: float = 60.0
    initial_east: float = 25.0

    # Relay REST catalog (optional)
    catalog_url: Optional[str] = None
    catalog_token: str = ""
    catalog_interval: float = 60.0

    # Quick-jump targets: name -> [lat, lon, zoom]
    quick_ports: dict[str, list[float]] = {
        "genoa": [44.405, 8.93, 12],
        "livorno": [43.55, 10.30, 12],
        "haifa": [32.82, 35.00, 12],
        "piraeus": [37.94, 23.63, 12],
        "rotterdam": [51.95, 4.14, 11],
        "gibraltar": [36.13, -5.35, 11],
    }

    model_config = {"env_file": ".env", "env_prefix": "SHIPWATCH_"}


def _load_settings() -> Settings:
    """Load settings, supplementing with credentials.json for upstream secrets."""
    s = Settings()

    creds_path = Path(__file__).resolve().parent.parent / "credentials.json"
    if creds_path.exists():
        try:
            creds = json.loads(creds_path.read_text(encoding="utf-8"))

            if not s.aisstream_api_key:
                s.aisstream_api_key = creds.get("aisstream_api_key", "")
                if s.aisstream_api_key:
                    _cfg_logger.info("AISStream key loaded from %s", creds_path.name)

            if not s.catalog_token:
                s.catalog_token = creds.get("catalog_token", "")
                if s.catalog_token:
                    _cfg_logger.info("Catalog token loaded from %s", creds_path.name)
        except (OSError, ValueError) as e:
            _cfg_logger.warning("Failed to read credentials.json: %s", e)

    return s


settings = _load_settings()

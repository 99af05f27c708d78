"""
Runtime settings, read from environment variables.

CANVAS_STORE_URL      base URL of the canvas REST store; unset = in-memory store
CANVAS_STORE_TOKEN    bearer token sent to the store
CANVAS_STORE_TIMEOUT  request timeout in seconds
CANVAS_MAX_HISTORY    undo depth per session
CANVAS_LOG_LEVEL      logging level name
CANVAS_HOST / CANVAS_PORT  address for the HTTP API
"""

import logging
import os
from typing import Optional

from pydantic import BaseModel


class Settings(BaseModel):
    store_url: Optional[str] = None
    store_token: Optional[str] = None
    store_timeout: float = 30.0
    max_history: int = 100
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8765

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {
            "store_url": env.get("CANVAS_STORE_URL") or None,
            "store_token": env.get("CANVAS_STORE_TOKEN") or None,
            "store_timeout": env.get("CANVAS_STORE_TIMEOUT"),
            "max_history": env.get("CANVAS_MAX_HISTORY"),
            "log_level": env.get("CANVAS_LOG_LEVEL"),
            "host": env.get("CANVAS_HOST"),
            "port": env.get("CANVAS_PORT"),
        }
        return cls(**{k: v for k, v in values.items() if v is not None})


def configure_logging(settings: Settings) -> None:
    """Configure root logging once for the API server or CLI."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

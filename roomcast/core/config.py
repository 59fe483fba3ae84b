# roomcast/core/config.py
from __future__ import annotations

import os
from typing import Any, List

from dotenv import load_dotenv


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


class Settings:
    """
    Setup environment variables.
        - GRACE_PERIOD_SECONDS delay between a dropped connection and the user purge
        - SWEEP_INTERVAL_SECONDS how often the idle room sweeper runs
        - IDLE_ROOM_MAX_AGE_SECONDS age after which an empty room is reclaimed
        - MAX_FILE_SIZE_BYTES largest shared file descriptor accepted
        - MAX_MESSAGE_LENGTH longest text message accepted
        - CORS_ORIGINS comma separated list of allowed origins ("*" for any)
        - OUTBOUND_QUEUE_SIZE frames a socket may lag behind before it is dropped (0 for unbounded)
        - LOG_LEVEL level of the roomcast loggers (DEBUG, INFO, WARNING, ...)
        - HOST / PORT where uvicorn binds

    Any of the values can be overridden with keyword arguments, which is how
    tests build an app with short timers:

        settings = Settings(GRACE_PERIOD_SECONDS=0.05)
    """

    # Load environment variables from the .env file
    load_dotenv()

    def __init__(self, **overrides: Any) -> None:
        self.GRACE_PERIOD_SECONDS: float = _env_float("GRACE_PERIOD_SECONDS", 5)
        self.SWEEP_INTERVAL_SECONDS: float = _env_float("SWEEP_INTERVAL_SECONDS", 300)
        self.IDLE_ROOM_MAX_AGE_SECONDS: float = _env_float("IDLE_ROOM_MAX_AGE_SECONDS", 3600)

        self.MAX_FILE_SIZE_BYTES: int = _env_int("MAX_FILE_SIZE_BYTES", 200 * 1024 * 1024)
        self.MAX_MESSAGE_LENGTH: int = _env_int("MAX_MESSAGE_LENGTH", 4000)
        self.OUTBOUND_QUEUE_SIZE: int = _env_int("OUTBOUND_QUEUE_SIZE", 256)

        self.CORS_ORIGINS: List[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]

        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

        self.HOST: str = os.getenv("HOST", "0.0.0.0")
        self.PORT: int = _env_int("PORT", 3000)

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)


settings = Settings()

"""Runtime settings, read from the environment (and a .env file, if present)."""

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseModel):
    db_path: str = "yakataka.db"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    sse_heartbeat_seconds: float = Field(default=30.0, gt=0)
    log_level: LogLevel = "INFO"


def load_settings(env_file: Path | None = _ENV_FILE) -> Settings:
    """Build Settings from YAKATAKA_* variables. Unset variables keep defaults."""
    if env_file is not None:
        load_dotenv(env_file)

    values: dict = {}
    if db_path := os.environ.get("YAKATAKA_DB_PATH"):
        values["db_path"] = db_path
    if origins := os.environ.get("YAKATAKA_CORS_ORIGINS"):
        values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
    if heartbeat := os.environ.get("YAKATAKA_SSE_HEARTBEAT_SECONDS"):
        values["sse_heartbeat_seconds"] = heartbeat
    if log_level := os.environ.get("YAKATAKA_LOG_LEVEL"):
        values["log_level"] = log_level.upper()
    return Settings.model_validate(values)

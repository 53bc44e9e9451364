# cmdflow/utils/config.py
from __future__ import annotations

import functools
from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------- Enums ----------

class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ---------- Settings ----------

class Settings(BaseSettings):
    """
    Central configuration for the workflow graph engine.

    Values load in this order of precedence:
      1) Environment variables
      2) .env file in project root
      3) Defaults below
    """

    # ---- Editor / history ----
    HISTORY_LIMIT: int = Field(default=100, ge=1, description="Undo/redo stack capacity")
    PASTE_OFFSET: float = Field(default=40.0, description="Canvas offset applied to pasted/duplicated nodes")
    DEFAULT_GRAPH_NAME: str = Field(default="Untitled workflow")
    WORKFLOWS_DIR: Path = Field(default=Path("./workflows"))

    # ---- Step debugger ----
    STEP_GUARD_LIMIT: int = Field(default=2000, ge=1, description="Max nodes visited by continuous stepping")
    STEP_DELAY_MS: int = Field(default=150, ge=0, description="Pause between continuous steps (ms)")

    # ---- Logging ----
    LOG_LEVEL: LogLevel = Field(default=LogLevel.INFO)
    LOG_TO_FILE: bool = Field(default=False)
    LOG_FILE: Path = Field(default=Path("./cmdflow.log"))
    COLORIZED_OUTPUT: bool = Field(default=True)
    DEBUG_MODE: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore unknown envs to keep things flexible
    )

    @field_validator("WORKFLOWS_DIR", "LOG_FILE", mode="before")
    @classmethod
    def _coerce_to_path(cls, v):
        if isinstance(v, Path):
            return v
        return Path(str(v)) if v is not None else v

    @field_validator("WORKFLOWS_DIR", "LOG_FILE", mode="after")
    @classmethod
    def _absolutize(cls, v: Path):
        return v if v.is_absolute() else Path.cwd() / v

    @field_validator("DEFAULT_GRAPH_NAME")
    @classmethod
    def _name_non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("DEFAULT_GRAPH_NAME cannot be empty")
        return v

    def ensure_dirs(self) -> None:
        """Create the log directory when file logging is on (idempotent)."""
        if self.LOG_TO_FILE:
            self.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)


# --------- Public accessor (memoized) ---------

@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache settings once per process.
    Call `get_settings.cache_clear()` if you need to reload after changing env.
    """
    s = Settings()
    s.ensure_dirs()
    return s

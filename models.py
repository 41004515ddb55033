"""Pydantic models for stream evaluation settings."""

import os
from enum import Enum
from typing import Optional

import psutil
from pydantic import BaseModel, Field, field_validator


def _default_workers() -> int:
    return psutil.cpu_count(logical=True) or 4


class ExecutorKind(str, Enum):
    """Backing executor for parallel evaluation."""
    THREAD = "thread"
    PROCESS = "process"


class StreamSettings(BaseModel):
    """Tuning knobs for parallel evaluation and logging."""
    max_workers: int = Field(
        default_factory=_default_workers,
        ge=1,
        le=256,
        description="Number of workers processing partitions in parallel mode"
    )
    chunk_size: int = Field(
        default=256,
        ge=1,
        description="Elements per partition handed to one worker"
    )
    executor: ExecutorKind = Field(
        default=ExecutorKind.THREAD,
        description="Thread pool (any callable) or process pool (picklable callables only)"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level used by setup_logging()"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Normalize and check the level name."""
        level = str(v).strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def wave_size(self) -> int:
        """Elements pulled from the source per parallel wave."""
        return self.max_workers * self.chunk_size

    @classmethod
    def from_env(cls, prefix: str = "LAZYSTREAM_") -> "StreamSettings":
        """Build settings from LAZYSTREAM_* environment variables."""
        values = {}
        for name in ("max_workers", "chunk_size", "executor", "log_level"):
            raw: Optional[str] = os.environ.get(f"{prefix}{name.upper()}")
            if raw is not None and raw.strip():
                values[name] = raw.strip()
        return cls(**values)

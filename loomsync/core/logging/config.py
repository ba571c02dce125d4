"""Logging configuration primitives for structured logging."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class LogConfig(BaseModel):
    """Settings for the loomsync JSON-lines sinks.

    ``console_output`` writes to ``console_stream`` (stderr when unset) and
    ``file_output`` appends to ``file_path``; both carry the trace id and the
    ``collection_key`` / ``view_id`` bound by ``log_context``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    level: str = "INFO"
    console_output: bool = True
    console_stream: Any = None
    file_output: bool = False
    file_path: str | None = None
    extra: dict[str, Any] = {}


__all__ = ["LogConfig"]

"""Lifecycle sub-record models decoded from a record's free-text notes."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Intermediary value meaning "no pass-through party".
DIRECT = "Direct"

_SEGMENT_SEPARATOR = "|"


def _clean_text(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if _SEGMENT_SEPARATOR in text:
        raise ValueError(f"{field_name} must not contain '{_SEGMENT_SEPARATOR}'")
    return text or None


def normalize_note(value: str | None) -> str:
    """Collapse a note to the segment layout produced by the codec."""
    if not value:
        return ""
    parts = (part.strip() for part in str(value).split(_SEGMENT_SEPARATOR))
    return " | ".join(part for part in parts if part)


class StageEntry(BaseModel):
    """Quantity and optional date of one lifecycle stage."""

    model_config = ConfigDict(frozen=True)

    quantity: float = Field(ge=0, allow_inf_nan=False)
    date: str | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _clean_date(cls, value: Any) -> str | None:
        return _clean_text(value, "date")


class Lifecycle(BaseModel):
    """Decoded view of ``Record.raw_notes``.

    ``None`` stages are absent, which is distinct from a stage whose quantity is zero.
    """

    model_config = ConfigDict(frozen=True)

    sent: StageEntry | None = None
    received: StageEntry | None = None
    dispatched: StageEntry | None = None
    intermediary: str = DIRECT
    original_quantity: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    user_note: str = ""

    @field_validator("intermediary", mode="before")
    @classmethod
    def _clean_intermediary(cls, value: Any) -> str:
        return _clean_text(value, "intermediary") or DIRECT

    @field_validator("user_note", mode="before")
    @classmethod
    def _clean_note(cls, value: Any) -> str:
        return normalize_note(value)

    @property
    def is_direct(self) -> bool:
        return self.intermediary == DIRECT

    @property
    def outstanding(self) -> float | None:
        """Quantity received but not yet dispatched onward."""
        if self.received is None:
            return None
        dispatched = self.dispatched.quantity if self.dispatched else 0.0
        return max(self.received.quantity - dispatched, 0.0)

    def apply(self, patch: LifecyclePatch) -> Lifecycle:
        """Return a copy with the fields explicitly set on ``patch`` replaced."""
        updates = {name: getattr(patch, name) for name in patch.model_fields_set}
        if not updates:
            return self
        return Lifecycle.model_validate({**self.model_dump(), **updates})


class LifecyclePatch(BaseModel):
    """Partial lifecycle edit.

    Only fields passed explicitly are applied; passing ``None`` clears a field,
    leaving a field out keeps its stored value.
    """

    model_config = ConfigDict(frozen=True)

    sent: StageEntry | None = None
    received: StageEntry | None = None
    dispatched: StageEntry | None = None
    intermediary: str | None = None
    original_quantity: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    user_note: str | None = None

    @field_validator("intermediary", mode="before")
    @classmethod
    def _clean_intermediary(cls, value: Any) -> str | None:
        return _clean_text(value, "intermediary")

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set


__all__ = ["DIRECT", "Lifecycle", "LifecyclePatch", "StageEntry", "normalize_note"]

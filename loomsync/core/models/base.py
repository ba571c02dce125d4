"""Record model shared by the cache, the engine and remote stores."""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from loomsync.core.models.lifecycle import Lifecycle, StageEntry


class SyncState(str, Enum):
    """Whether the remote store has confirmed a record (or deletion)."""

    SYNCED = "synced"
    PENDING = "pending"


# Columns the cache keeps for itself and never sends to the remote store.
LOCAL_FIELDS = frozenset({"updated_at_local", "sync_state"})


class Record(BaseModel):
    """业务记录 (order / product row)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "_id"))
    collection_key: str = Field(min_length=1, validation_alias=AliasChoices("collection_key", "collectionKey"))
    base_quantity: float = Field(
        default=0.0,
        ge=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("base_quantity", "baseQuantity", "quantity"),
    )
    raw_notes: str = Field(default="", validation_alias=AliasChoices("raw_notes", "rawNotes", "remarks", "notes"))
    sent_date: str | None = Field(default=None, validation_alias=AliasChoices("sent_date", "sentDate"))
    attributes: dict[str, Any] = Field(default_factory=dict)
    updated_at_local: datetime | None = Field(
        default=None, validation_alias=AliasChoices("updated_at_local", "updatedAtLocal")
    )
    sync_state: SyncState = Field(default=SyncState.SYNCED, validation_alias=AliasChoices("sync_state", "syncState"))

    @model_validator(mode="before")
    @classmethod
    def _collect_attributes(cls, data: Any) -> Any:
        """Fold unknown columns into ``attributes`` so they survive a round trip."""
        if not isinstance(data, Mapping):
            return data
        known = set(cls.model_fields)
        for info in cls.model_fields.values():
            if isinstance(info.validation_alias, AliasChoices):
                known.update(choice for choice in info.validation_alias.choices if isinstance(choice, str))
        payload: dict[str, Any] = {}
        extra = data.get("attributes")
        attributes: Any = dict(extra) if isinstance(extra, Mapping) else (extra if extra is not None else {})
        for key, value in data.items():
            if key == "attributes":
                continue
            if key in known:
                payload[key] = value
            elif isinstance(attributes, dict):
                attributes[key] = value
        payload["attributes"] = attributes
        return payload

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValueError("id must be a string or an integer")
        if isinstance(value, int):
            return str(value)
        if not isinstance(value, str):
            raise ValueError("id must be a string or an integer")
        text = value.strip()
        if not text:
            raise ValueError("id must not be empty")
        return text

    @field_validator("raw_notes", mode="before")
    @classmethod
    def _coerce_notes(cls, value: Any) -> str:
        return "" if value is None else value

    @field_validator("sent_date", mode="before")
    @classmethod
    def _coerce_sent_date(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def lifecycle(self) -> Lifecycle:
        """Lifecycle decoded from ``raw_notes``, with the sent stage from the structured columns."""
        from loomsync.core.codec.tags import decode_notes

        decoded = decode_notes(self.raw_notes)
        sent = StageEntry(quantity=self.base_quantity, date=self.sent_date)
        return decoded.model_copy(update={"sent": sent})

    @property
    def display_quantity(self) -> float:
        from loomsync.core.codec.tags import decode_notes

        original = decode_notes(self.raw_notes).original_quantity
        return original if original is not None else self.base_quantity

    @property
    def is_pending(self) -> bool:
        return self.sync_state is SyncState.PENDING

    def to_remote(self) -> dict[str, Any]:
        """Payload sent to a remote store: extra columns flattened, local columns dropped."""
        payload = self.model_dump(mode="json", exclude=set(LOCAL_FIELDS) | {"attributes"})
        for key, value in self.attributes.items():
            payload.setdefault(key, value)
        return payload

"""Tagged micro-format carried in a record's free-text notes.

The remote schema has no columns for the received / dispatched stages, so they
travel inside ``raw_notes`` as ``" | "``-separated segments::

    Needs re-dye | Received: 40kg on 2024-01-05 | Dispatched: 38.5kg | Middleman: Acme

Segments that do not parse as a known tag are kept, in order, as the user's
own note. Parsing is a small hand-written scanner rather than a regular
expression so that malformed tags degrade to note text instead of matching
partially.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from loomsync.core.logging import get_logger
from loomsync.core.models.lifecycle import DIRECT, Lifecycle, StageEntry, normalize_note

logger = get_logger(__name__)

DELIMITER = " | "
QUANTITY_UNIT = "kg"
_SEPARATOR = "|"
_NUMBER_CHARS = frozenset("0123456789.eE+-")


class Tag(str, Enum):
    """Tags understood by the codec, in emit order."""

    RECEIVED = "Received"
    DISPATCHED = "Dispatched"
    ORIGINAL_QTY = "OriginalQty"
    MIDDLEMAN = "Middleman"


_TAG_LOOKUP = {tag.value.lower(): tag for tag in Tag}


@dataclass(frozen=True)
class TagSegment:
    """One parsed tracking segment."""

    tag: Tag
    quantity: float | None = None
    date: str | None = None
    name: str | None = None


def format_quantity(value: float) -> str:
    """Render a quantity as an integer when integral, else the shortest float literal."""
    number = float(value)
    if number.is_integer() and abs(number) < 1e15:
        return str(int(number))
    return repr(number)


def _scan_quantity(body: str) -> tuple[float | None, str]:
    """Split ``body`` into a leading quantity (unit optional) and the remainder."""
    end = 0
    while end < len(body) and body[end] in _NUMBER_CHARS:
        end += 1
    token = body[:end]
    if not token:
        return None, body
    try:
        quantity = float(token)
    except ValueError:
        return None, body
    if not math.isfinite(quantity) or quantity < 0:
        return None, body

    rest = body[end:]
    stripped = rest.lstrip()
    if stripped[: len(QUANTITY_UNIT)].lower() == QUANTITY_UNIT:
        rest = stripped[len(QUANTITY_UNIT) :]
    return quantity, rest


def _scan_date_suffix(rest: str) -> str | None:
    # rest must read "<ws>on<ws><date>"
    if not rest or not rest[0].isspace():
        return None
    text = rest.strip()
    if len(text) < 3 or text[:2].lower() != "on" or not text[2].isspace():
        return None
    return text[2:].strip() or None


def parse_segment(text: str) -> TagSegment | None:
    """Parse a single segment, returning ``None`` when it is not valid tracking data."""
    head, colon, body = text.partition(":")
    if not colon:
        return None
    tag = _TAG_LOOKUP.get(head.strip().lower())
    if tag is None:
        return None
    body = body.strip()

    if tag is Tag.MIDDLEMAN:
        return TagSegment(tag, name=body) if body else None

    quantity, rest = _scan_quantity(body)
    if quantity is None:
        return None
    if not rest.strip():
        return TagSegment(tag, quantity=quantity)
    if tag is Tag.ORIGINAL_QTY:
        return None
    date = _scan_date_suffix(rest)
    if date is None:
        return None
    return TagSegment(tag, quantity=quantity, date=date)


def _split(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(_SEPARATOR) if part.strip()]


def decode_notes(raw: str | None) -> Lifecycle:
    """Decode ``raw_notes`` into a :class:`Lifecycle`. Never raises.

    The last parsable occurrence of each tag wins; everything else is note text.
    The sent stage is not part of the notes and always decodes to ``None``.
    """
    if not raw:
        return Lifecycle()
    text = raw if isinstance(raw, str) else str(raw)

    latest: dict[Tag, TagSegment] = {}
    note_parts: list[str] = []
    for part in _split(text):
        segment = parse_segment(part)
        if segment is None:
            note_parts.append(part)
        else:
            latest[segment.tag] = segment

    received = latest.get(Tag.RECEIVED)
    dispatched = latest.get(Tag.DISPATCHED)
    original = latest.get(Tag.ORIGINAL_QTY)
    middleman = latest.get(Tag.MIDDLEMAN)
    try:
        return Lifecycle(
            received=StageEntry(quantity=received.quantity, date=received.date) if received else None,
            dispatched=StageEntry(quantity=dispatched.quantity, date=dispatched.date) if dispatched else None,
            original_quantity=original.quantity if original else None,
            intermediary=middleman.name if middleman else DIRECT,
            user_note=DELIMITER.join(note_parts),
        )
    except ValidationError as exc:
        logger.warning("notes could not be decoded, keeping them as note text", error=str(exc))
        return Lifecycle(user_note=normalize_note(text))


def _format_stage(tag: Tag, entry: StageEntry) -> str:
    segment = f"{tag.value}: {format_quantity(entry.quantity)}{QUANTITY_UNIT}"
    if entry.date:
        segment += f" on {entry.date}"
    return segment


def encode_lifecycle(lifecycle: Lifecycle) -> str:
    """Encode a lifecycle back into ``raw_notes`` text.

    ``lifecycle.sent`` is ignored: the sent stage lives in structured columns.
    """
    parts: list[str] = []
    if lifecycle.user_note:
        parts.append(lifecycle.user_note)
    if lifecycle.received is not None:
        parts.append(_format_stage(Tag.RECEIVED, lifecycle.received))
    if lifecycle.dispatched is not None:
        parts.append(_format_stage(Tag.DISPATCHED, lifecycle.dispatched))
    if lifecycle.original_quantity is not None:
        parts.append(f"{Tag.ORIGINAL_QTY.value}: {format_quantity(lifecycle.original_quantity)}{QUANTITY_UNIT}")
    if not lifecycle.is_direct:
        parts.append(f"{Tag.MIDDLEMAN.value}: {lifecycle.intermediary}")
    return DELIMITER.join(parts)


def overlay_notes(base: str | None, edited: str | None) -> Lifecycle:
    """Decode ``base`` with the tags and note text written in ``edited`` laid over it.

    A tag ``edited`` does not carry keeps its ``base`` value, and so does the
    note when ``edited`` has no note text of its own.
    """
    lifecycle = decode_notes(base)
    if not edited or edited == base:
        return lifecycle

    present = {segment.tag for segment in map(parse_segment, _split(edited)) if segment is not None}
    decoded = decode_notes(edited)
    updates: dict[str, object] = {}
    if Tag.RECEIVED in present and decoded.received is not None:
        updates["received"] = decoded.received
    if Tag.DISPATCHED in present and decoded.dispatched is not None:
        updates["dispatched"] = decoded.dispatched
    if Tag.ORIGINAL_QTY in present and decoded.original_quantity is not None:
        updates["original_quantity"] = decoded.original_quantity
    if Tag.MIDDLEMAN in present:
        updates["intermediary"] = decoded.intermediary
    if decoded.user_note:
        updates["user_note"] = decoded.user_note
    return lifecycle.model_copy(update=updates) if updates else lifecycle


def strip_tracking_segments(raw: str | None) -> str:
    """Return only the user's own note text from ``raw``."""
    return decode_notes(raw).user_note


def contains_tracking_segments(text: str | None) -> bool:
    if not text:
        return False
    return any(parse_segment(part) is not None for part in _split(text))

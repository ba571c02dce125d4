"""Codec for lifecycle data embedded in record notes."""

from loomsync.core.codec.tags import (
    DELIMITER,
    QUANTITY_UNIT,
    Tag,
    TagSegment,
    contains_tracking_segments,
    decode_notes,
    encode_lifecycle,
    format_quantity,
    overlay_notes,
    parse_segment,
    strip_tracking_segments,
)

__all__ = [
    "DELIMITER",
    "QUANTITY_UNIT",
    "Tag",
    "TagSegment",
    "contains_tracking_segments",
    "decode_notes",
    "encode_lifecycle",
    "format_quantity",
    "overlay_notes",
    "parse_segment",
    "strip_tracking_segments",
]

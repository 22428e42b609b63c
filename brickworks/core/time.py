"""brickworks.core.time

The only time helper surface in the codebase.

Factory serials carry their own clock: the first five bytes are a 16-bit day
offset from 2000-01-01 followed by a 24-bit millisecond-of-day.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

SERIAL_EPOCH = datetime(2000, 1, 1, tzinfo=UTC)
MS_FIELD_MASK = (1 << 24) - 1


def utc_now() -> datetime:
    """Return an aware UTC datetime."""

    return datetime.now(tz=UTC)


def decode_manufacturing_time(serial_hex: str) -> datetime | None:
    """Decode the manufacturing timestamp embedded in a serial.

    Returns None when the serial is shorter than five bytes or is not hex.
    """

    if not serial_hex or len(serial_hex) < 10:
        return None
    try:
        head = bytes.fromhex(serial_hex[:10])
    except ValueError:
        return None

    days = int.from_bytes(head[0:2], "big")
    ms_of_day = int.from_bytes(head[2:5], "big")
    return SERIAL_EPOCH + timedelta(days=days, milliseconds=ms_of_day)


def encode_manufacturing_time(when: datetime) -> bytes:
    """Five bytes for a serial header.

    The millisecond field is 24 bits wide; times of day past it wrap.
    """

    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    delta = when.astimezone(UTC) - SERIAL_EPOCH
    days = delta.days
    if not 0 <= days < 1 << 16:
        raise ValueError(f"date outside serial range: {when.isoformat()}")
    ms_of_day = (delta.seconds * 1000 + delta.microseconds // 1000) & MS_FIELD_MASK
    return days.to_bytes(2, "big") + ms_of_day.to_bytes(3, "big")

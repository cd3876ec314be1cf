"""Handoff token codec — a location snapshot as a printable, QR-friendly string.

Layout (big-endian), then URL-safe base64 without padding::

    magic "FW" | version u8 | latitude f64 | longitude f64 | accuracy f64
    | captured_at i64 (µs since epoch, UTC)
    | u16 len + address utf-8 | u16 len + device tag utf-8
    | crc32 u32 over everything before it

The transform is pure: the same snapshot always yields the same token.
"""

from __future__ import annotations

import base64
import binascii
import struct
import zlib
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from firewatch.schemas.location import LocationSnapshot
from firewatch.tracker.errors import HandoffDecodeError

MAGIC = b"FW"
VERSION = 1
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MAX_TEXT_BYTES = 0xFFFF

_HEADER = struct.Struct(">2sBdddq")
_LENGTH = struct.Struct(">H")
_CRC = struct.Struct(">I")


def _pack_text(value: str, field: str) -> bytes:
    raw = value.encode("utf-8")
    if len(raw) > MAX_TEXT_BYTES:
        raise ValueError(f"{field} exceeds {MAX_TEXT_BYTES} bytes")
    return _LENGTH.pack(len(raw)) + raw


def _unpack_text(buf: bytes, offset: int, field: str) -> tuple[str, int]:
    if offset + _LENGTH.size > len(buf):
        raise HandoffDecodeError(f"truncated before {field} length")
    (length,) = _LENGTH.unpack_from(buf, offset)
    offset += _LENGTH.size
    if offset + length > len(buf):
        raise HandoffDecodeError(f"truncated {field}")
    try:
        value = buf[offset:offset + length].decode("utf-8")
    except UnicodeDecodeError as e:
        raise HandoffDecodeError(f"{field} is not valid UTF-8") from e
    return value, offset + length


def encode_handoff(snapshot: LocationSnapshot) -> str:
    """Encode a snapshot into a handoff token."""
    micros = (snapshot.captured_at - EPOCH) // timedelta(microseconds=1)
    body = (
        _HEADER.pack(
            MAGIC,
            VERSION,
            snapshot.latitude,
            snapshot.longitude,
            snapshot.accuracy_m,
            micros,
        )
        + _pack_text(snapshot.approximate_address, "approximate_address")
        + _pack_text(snapshot.device_tag, "device_tag")
    )
    payload = body + _CRC.pack(zlib.crc32(body))
    return base64.urlsafe_b64encode(payload).rstrip(b"=").decode("ascii")


def decode_handoff(token: str) -> LocationSnapshot:
    """Decode a handoff token.

    Raises:
        HandoffDecodeError: if the token is malformed in any way.
    """
    if not isinstance(token, str) or not token:
        raise HandoffDecodeError("empty token")
    try:
        padded = token.encode("ascii") + b"=" * (-len(token) % 4)
        payload = base64.b64decode(padded, altchars=b"-_", validate=True)
    except (UnicodeEncodeError, binascii.Error) as e:
        raise HandoffDecodeError("token is not valid base64") from e

    if len(payload) < _HEADER.size + _CRC.size:
        raise HandoffDecodeError("token too short")

    body, trailer = payload[:-_CRC.size], payload[-_CRC.size:]
    if zlib.crc32(body) != _CRC.unpack(trailer)[0]:
        raise HandoffDecodeError("checksum mismatch")

    magic, version, lat, lng, acc, micros = _HEADER.unpack_from(body, 0)
    if magic != MAGIC:
        raise HandoffDecodeError("not a handoff token")
    if version != VERSION:
        raise HandoffDecodeError(f"unsupported token version {version}")

    address, offset = _unpack_text(body, _HEADER.size, "approximate_address")
    device_tag, offset = _unpack_text(body, offset, "device_tag")
    if offset != len(body):
        raise HandoffDecodeError("trailing bytes in token")

    try:
        captured_at = EPOCH + timedelta(microseconds=micros)
    except OverflowError as e:
        raise HandoffDecodeError("timestamp out of range") from e

    try:
        return LocationSnapshot(
            latitude=lat,
            longitude=lng,
            accuracy_m=acc,
            approximate_address=address,
            captured_at=captured_at,
            device_tag=device_tag,
        )
    except ValidationError as e:
        raise HandoffDecodeError(f"invalid snapshot fields: {e.error_count()} error(s)") from e

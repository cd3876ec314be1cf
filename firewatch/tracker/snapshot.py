"""Redis-backed store for the latest location snapshot of a device."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from pydantic import ValidationError

from firewatch.schemas.location import LocationSnapshot
from firewatch.tracker.errors import StorageWriteError
from firewatch.tracker.handoff import decode_handoff, encode_handoff

logger = structlog.get_logger()

DEFAULT_MAX_AGE = timedelta(hours=1)
DEFAULT_TTL_S = 86400  # housekeeping only; validity is decided by is_valid()

SNAPSHOT_FIELDS = (
    "latitude",
    "longitude",
    "accuracy_m",
    "approximate_address",
    "captured_at",
    "device_tag",
)


def _snapshot_key(device_tag: str) -> str:
    """Build the storage key for a device's snapshot slot."""
    return f"firewatch:snapshot:{device_tag.strip()}"


def _to_record(snapshot: LocationSnapshot) -> dict[str, str]:
    """Flatten a snapshot into string fields."""
    return {
        "latitude": repr(snapshot.latitude),
        "longitude": repr(snapshot.longitude),
        "accuracy_m": repr(snapshot.accuracy_m),
        "approximate_address": snapshot.approximate_address,
        "captured_at": snapshot.captured_at.isoformat(),
        "device_tag": snapshot.device_tag,
    }


def _from_record(record: dict) -> LocationSnapshot | None:
    """Rebuild a snapshot; a missing or unparseable field means no snapshot."""
    if not record or any(name not in record for name in SNAPSHOT_FIELDS):
        return None
    try:
        return LocationSnapshot(
            latitude=float(record["latitude"]),
            longitude=float(record["longitude"]),
            accuracy_m=float(record["accuracy_m"]),
            approximate_address=record["approximate_address"],
            captured_at=datetime.fromisoformat(record["captured_at"]),
            device_tag=record["device_tag"],
        )
    except (TypeError, ValueError, ValidationError):
        return None


class SnapshotStore:
    """One snapshot slot per device, with graceful fallback when Redis is unavailable."""

    def __init__(
        self,
        redis_client=None,
        device_tag: str = "web-default",
        max_age: timedelta = DEFAULT_MAX_AGE,
        ttl_s: int = DEFAULT_TTL_S,
    ):
        self._redis = redis_client
        self.device_tag = device_tag
        self.max_age = max_age
        self.ttl_s = ttl_s

    @property
    def key(self) -> str:
        return _snapshot_key(self.device_tag)

    async def write(self, snapshot: LocationSnapshot) -> None:
        """Replace the stored snapshot. Failures are logged, never raised."""
        try:
            await self._write(snapshot)
        except StorageWriteError as e:
            logger.warning("snapshot_write_failed", key=self.key, error=str(e))

    async def _write(self, snapshot: LocationSnapshot) -> None:
        if self._redis is None:
            return
        try:
            # Every field goes out in one HSET, so readers see the old
            # record or the new one, never a mix.
            await self._redis.hset(self.key, mapping=_to_record(snapshot))
            if self.ttl_s:
                await self._redis.expire(self.key, self.ttl_s)
        except Exception as e:
            raise StorageWriteError(str(e)) from e
        logger.debug("snapshot_written", key=self.key)

    async def read_latest(self) -> LocationSnapshot | None:
        """Return the stored snapshot, or None if absent, unreadable or unavailable."""
        if self._redis is None:
            return None
        try:
            record = await self._redis.hgetall(self.key)
        except Exception as e:
            logger.warning("snapshot_read_error", key=self.key, error=str(e))
            return None

        snapshot = _from_record(record)
        if snapshot is None and record:
            logger.warning("snapshot_record_invalid", key=self.key)
        return snapshot

    def is_valid(self, snapshot: LocationSnapshot, now: datetime) -> bool:
        """Staleness rule: valid iff younger than ``max_age``."""
        return now - snapshot.captured_at < self.max_age

    def encode_handoff(self, snapshot: LocationSnapshot) -> str:
        return encode_handoff(snapshot)

    def decode_handoff(self, token: str) -> LocationSnapshot:
        """Decode a token; raises HandoffDecodeError when malformed."""
        return decode_handoff(token)

"""TTL-bounded JSON cache with day-boundary expiry.

Records are stored as ``{"data": ..., "expiresAt": <epoch ms>}`` strings in a
:class:`~feedboard.storage.Storage`. A record is valid while the current time
is strictly before ``expiresAt``. Reads never raise: an expired or unreadable
record is deleted and reported as a miss. Writes are best effort.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Iterable, Optional, TypeVar

from .storage import Storage, StorageError

logger = logging.getLogger(__name__)

FEEDS_CACHE_KEY = "feeds-cache"
TRANSLATION_CACHE_KEY = "hn-translations"
ALL_CACHE_KEYS = (FEEDS_CACHE_KEY, TRANSLATION_CACHE_KEY)

# Shared secret for the operator reset control. Only guards against
# accidental resets.
RESET_PASSPHRASE = "feedboard-reset"

DEFAULT_UTC_OFFSET_HOURS = 9

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)

T = TypeVar("T")
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Return integer epoch milliseconds for an aware datetime."""
    return (value - _EPOCH) // _ONE_MS


def from_epoch_ms(value: int) -> datetime:
    return _EPOCH + value * _ONE_MS


def end_of_day(now: datetime, utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS) -> datetime:
    """Return 23:59:59.999 of ``now``'s calendar day in the fixed zone."""
    zone = timezone(timedelta(hours=utc_offset_hours))
    local = now.astimezone(zone)
    return datetime.combine(local.date(), time(23, 59, 59, 999000), tzinfo=zone)


class CacheStore:
    """Expiring JSON records on top of a string store."""

    def __init__(
        self,
        storage: Storage,
        utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS,
        clock: Optional[Clock] = None,
    ):
        self.storage = storage
        self.utc_offset_hours = utc_offset_hours
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    def end_of_day(self, now: Optional[datetime] = None) -> datetime:
        return end_of_day(now or self.now(), self.utc_offset_hours)

    def load(self, key: str, decode: Optional[Callable[[Any], T]] = None) -> Optional[T]:
        """Return the cached payload for ``key`` or ``None`` on any miss."""
        try:
            raw = self.storage.get(key)
        except StorageError as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            self._discard(key)
            return None

        if raw is None:
            logger.debug("Cache miss for %s", key)
            return None

        try:
            record = json.loads(raw)
            payload = record["data"]
            expires_at = record["expiresAt"]
            if isinstance(expires_at, bool) or not isinstance(expires_at, int):
                raise ValueError(f"invalid expiresAt {expires_at!r}")
            if to_epoch_ms(self.now()) >= expires_at:
                logger.info("Cache entry %s expired at %s", key, from_epoch_ms(expires_at))
                self._discard(key)
                return None
            if decode is not None:
                payload = decode(payload)
        except Exception as exc:  # noqa: BLE001 - any bad record is a miss
            logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
            self._discard(key)
            return None

        logger.debug("Cache hit for %s", key)
        return payload

    def save(self, key: str, payload: Any, expires_at: Optional[datetime] = None) -> bool:
        """Persist ``payload`` until ``expires_at`` (end of day by default)."""
        expiry = expires_at or self.end_of_day()
        try:
            raw = json.dumps(
                {"data": payload, "expiresAt": to_epoch_ms(expiry)}, ensure_ascii=False
            )
            self.storage.set(key, raw)
        except (StorageError, TypeError, ValueError) as exc:
            logger.warning("Skipping cache write for %s: %s", key, exc)
            return False
        logger.debug("Cached %s until %s", key, expiry.isoformat())
        return True

    def reset(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._discard(key)

    def _discard(self, key: str) -> None:
        try:
            self.storage.remove(key)
        except StorageError as exc:
            logger.warning("Failed to remove cache entry %s: %s", key, exc)


def reset_caches(
    cache: CacheStore,
    passphrase: Optional[str],
    expected: str = RESET_PASSPHRASE,
    keys: Iterable[str] = ALL_CACHE_KEYS,
) -> bool:
    """Clear the feed and translation caches when the passphrase matches."""
    if passphrase != expected:
        logger.warning("Cache reset refused: passphrase mismatch")
        return False
    keys = list(keys)
    cache.reset(keys)
    logger.info("Cache reset: cleared %s", ", ".join(keys))
    return True

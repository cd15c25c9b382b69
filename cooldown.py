from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import redis

from config import CLAIM_COOLDOWN_HOURS, CLAIM_TIMER_PREFIX
from streak_storage import normalize_wallet

logger = logging.getLogger(__name__)


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class CooldownGate:
    """Rolling claim lock per wallet (next eligible time kept in redis).

    Nothing ticks the timer; a read after expiry deletes it. Streak counters
    are never touched here.
    """

    def __init__(self, client, key_prefix: str = CLAIM_TIMER_PREFIX, hours: int = CLAIM_COOLDOWN_HOURS):
        self.client = client
        self.key_prefix = key_prefix
        self.window = timedelta(hours=hours)

    def key_for(self, wallet: str) -> str:
        return f"{self.key_prefix}{normalize_wallet(wallet)}"

    def next_eligible_at(self, wallet: str, now: datetime) -> datetime | None:
        key = self.key_for(wallet)
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            # Fail open: the contract still enforces its own cooldown.
            logger.error("Claim timer read failed for %s: %s", wallet, e)
            return None
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")

        try:
            next_at = datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            logger.warning("Dropping unreadable claim timer for %s: %r", wallet, raw)
            self._delete(key)
            return None

        if _as_utc(now) >= next_at:
            self._delete(key)
            return None
        return next_at

    def is_eligible(self, wallet: str, now: datetime) -> bool:
        return self.next_eligible_at(wallet, now) is None

    def remaining_time(self, wallet: str, now: datetime) -> timedelta:
        next_at = self.next_eligible_at(wallet, now)
        if next_at is None:
            return timedelta(0)
        return max(timedelta(0), next_at - _as_utc(now))

    def arm(self, wallet: str, now: datetime) -> datetime:
        next_at = _as_utc(now) + self.window
        try:
            self.client.set(self.key_for(wallet), str(int(next_at.timestamp() * 1000)))
        except redis.RedisError as e:
            logger.error("Claim timer write failed for %s: %s", wallet, e)
        return next_at

    def reset(self, wallet: str) -> None:
        self._delete(self.key_for(wallet))

    def _delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.error("Claim timer delete failed for %s: %s", key, e)

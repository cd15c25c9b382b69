"""Two-tier durable storage for streak records.

Primary tier: the ``streak_records`` SQL table. Fallback tier: a flat redis
string per wallet, rewritten on every save so it stays a warm second copy.
Storage faults never leave this module; callers only see "record" or "None".
"""

from __future__ import annotations

import json
import logging
import re
import threading
from datetime import datetime

import redis
from sqlalchemy.exc import SQLAlchemyError

from config import STREAK_KEY_PREFIX
from extensions import db
from models_streaks import ClaimRecord, StreakRecordRow
from streak_codec import canonical_json, compute_tag, record_from_dict, record_to_dict, verify

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


def normalize_wallet(wallet: str) -> str:
    if not isinstance(wallet, str):
        return ""
    return wallet.strip().lower()


def is_valid_wallet(wallet: str) -> bool:
    if not wallet or not isinstance(wallet, str):
        return False
    return re.fullmatch(r"0x[a-fA-F0-9]{40}", wallet) is not None


def _parse_updated(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.min


class SqlRecordStore:
    """Primary tier backed by Flask-SQLAlchemy. Needs an app context."""

    def get(self, key: str) -> tuple[dict, str, datetime] | None:
        row = db.session.get(StreakRecordRow, key)
        if row is None:
            return None
        return json.loads(row.payload_json), row.integrity_tag, row.last_updated

    def put(self, key: str, wallet: str, record: ClaimRecord, tag: str, updated_at: datetime) -> None:
        row = db.session.get(StreakRecordRow, key)
        if row is None:
            row = StreakRecordRow(storage_key=key, wallet=wallet)
            db.session.add(row)
        row.payload_json = canonical_json(record)
        row.integrity_tag = tag
        row.last_updated = updated_at
        db.session.commit()

    def clear(self) -> int:
        deleted = db.session.query(StreakRecordRow).delete()
        db.session.commit()
        return deleted


class FlatRecordStore:
    """Fallback tier: whole-value JSON strings in redis (SET replaces atomically)."""

    def __init__(self, client):
        self.client = client

    def get(self, key: str) -> tuple[dict, str, datetime] | None:
        raw = self.client.get(key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("fallback value is not an object")
        return data.get("record"), data.get("integrity_tag"), _parse_updated(data.get("last_updated"))

    def put(self, key: str, record: ClaimRecord, tag: str, updated_at: datetime) -> None:
        value = json.dumps(
            {
                "record": record_to_dict(record),
                "integrity_tag": tag,
                "last_updated": updated_at.isoformat(),
            },
            separators=(",", ":"),
        )
        self.client.set(key, value)


class DurableStore:
    def __init__(self, primary: SqlRecordStore, fallback: FlatRecordStore, key_prefix: str = STREAK_KEY_PREFIX):
        self.primary = primary
        self.fallback = fallback
        self.key_prefix = key_prefix
        # Striped so the lock table stays bounded however many wallets show up.
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def key_for(self, wallet: str) -> str:
        return f"{self.key_prefix}{normalize_wallet(wallet)}"

    def _lock(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def save(self, wallet: str, record: ClaimRecord) -> ClaimRecord:
        """Persist ``record`` to both tiers and return it with a fresh tag."""
        wallet = normalize_wallet(wallet)
        key = self.key_for(wallet)
        tag = compute_tag(record)
        record = record.with_tag(tag)
        updated_at = datetime.utcnow()

        with self._lock(key):
            try:
                self.primary.put(key, wallet, record, tag, updated_at)
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error("Primary streak store unavailable for %s, using fallback only: %s", wallet, e)

            try:
                self.fallback.put(key, record, tag, updated_at)
            except redis.RedisError as e:
                logger.error("Fallback streak store write failed for %s: %s", wallet, e)

        return record

    def load(self, wallet: str) -> ClaimRecord | None:
        """Newest copy that passes its integrity check, primary winning ties."""
        wallet = normalize_wallet(wallet)
        key = self.key_for(wallet)

        with self._lock(key):
            primary = None
            try:
                primary = self._verified(self.primary.get(key))
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error("Primary streak store unavailable for %s, trying fallback: %s", wallet, e)
            except (ValueError, RecursionError) as e:
                logger.warning("Streak data integrity check failed for %s, trying fallback: %s", wallet, e)

            fallback = None
            try:
                fallback = self._verified(self.fallback.get(key))
            except redis.RedisError as e:
                logger.error("Fallback streak store unavailable for %s: %s", wallet, e)
            except (ValueError, RecursionError) as e:
                logger.warning("Fallback streak data integrity check failed for %s: %s", wallet, e)

        if primary is None:
            return fallback[0] if fallback else None
        if fallback is not None and fallback[1] > primary[1]:
            # A primary write failed after this copy was made.
            logger.warning("Primary streak record for %s is stale, using newer fallback copy", wallet)
            return fallback[0]
        return primary[0]

    @staticmethod
    def _verified(found) -> tuple[ClaimRecord, datetime] | None:
        # The tag covers the stored form, so check it before any catalog reconciliation.
        if found is None:
            return None
        data, tag, updated_at = found
        if not verify(data, tag):
            raise ValueError("integrity tag mismatch")
        return record_from_dict(data).with_tag(tag), _parse_updated(updated_at)

    def clear_all(self) -> None:
        """Erase the primary tier. The fallback copies are left alone."""
        try:
            deleted = self.primary.clear()
            logger.info("Cleared %s streak records from primary store", deleted)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Error clearing primary streak store: %s", e)

"""Integrity tag and backup-code encoding for streak records.

The tag is a plain 32-bit rolling hash. It catches accidental corruption of a
stored copy; it is not a signature and anyone can recompute it.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import date, datetime

from config import BACKUP_FORMAT_VERSION
from models_streaks import BadgeState, ClaimRecord, reconcile_badges
from streak_errors import BackupDecodeError


@dataclass(frozen=True)
class BackupPayload:
    wallet: str
    record: ClaimRecord
    created_at: datetime
    version: str = BACKUP_FORMAT_VERSION


# -------------------------------
# Record <-> dict
# -------------------------------

def record_to_dict(record: ClaimRecord) -> dict:
    return {
        "current_streak": record.current_streak,
        "longest_streak": record.longest_streak,
        "last_claim_date": record.last_claim_date.isoformat() if record.last_claim_date else None,
        "total_claims": record.total_claims,
        "badges": [
            {
                "id": b.id,
                "earned": b.earned,
                "earned_date": b.earned_date.isoformat() if b.earned_date else None,
            }
            for b in record.badges
        ],
    }


def _counter(data: dict, key: str) -> int:
    value = data.get(key, 0)
    # bool is an int subclass; "true" streaks are not a thing
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer")
    return value


def _parse_badge(raw) -> BadgeState:
    if not isinstance(raw, dict) or not isinstance(raw.get("id"), str):
        raise ValueError("badge entries need a string id")
    earned = raw.get("earned", False)
    if not isinstance(earned, bool):
        raise ValueError("badge earned flag must be a boolean")
    earned_date = raw.get("earned_date")
    if earned_date is not None:
        if not isinstance(earned_date, str):
            raise ValueError("badge earned_date must be an ISO timestamp")
        earned_date = datetime.fromisoformat(earned_date)
    return BadgeState(id=raw["id"], earned=earned, earned_date=earned_date)


def record_from_dict(data) -> ClaimRecord:
    """Build a ClaimRecord from its dict form. Raises ValueError on bad input."""
    if not isinstance(data, dict):
        raise ValueError("record must be an object")

    last_claim_date = data.get("last_claim_date")
    if last_claim_date is not None:
        if not isinstance(last_claim_date, str):
            raise ValueError("last_claim_date must be an ISO date")
        last_claim_date = date.fromisoformat(last_claim_date)

    raw_badges = data.get("badges") or []
    if not isinstance(raw_badges, list):
        raise ValueError("badges must be a list")

    tag = data.get("integrity_tag")
    return ClaimRecord(
        current_streak=_counter(data, "current_streak"),
        longest_streak=_counter(data, "longest_streak"),
        last_claim_date=last_claim_date,
        total_claims=_counter(data, "total_claims"),
        badges=reconcile_badges([_parse_badge(b) for b in raw_badges]),
        integrity_tag=tag if isinstance(tag, str) else None,
    )


def canonical_json(data) -> str:
    if isinstance(data, ClaimRecord):
        data = record_to_dict(data)
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


# -------------------------------
# Integrity tag
# -------------------------------

def _string_hash(s: str) -> int:
    h = 0
    for ch in s:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return h


def compute_tag(record) -> str:
    """Tag for a ClaimRecord, or for its stored dict form (same result)."""
    return str(_string_hash(canonical_json(record)))


def verify(record, stored_tag: str | None) -> bool:
    if not stored_tag:
        return False
    return compute_tag(record) == stored_tag


# -------------------------------
# Backup codes
# -------------------------------

def encode_backup(payload: BackupPayload) -> str:
    body = {
        "wallet": payload.wallet,
        "record": record_to_dict(payload.record),
        "created_at": payload.created_at.isoformat(),
        "version": payload.version,
    }
    raw = json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_backup(code: str) -> BackupPayload:
    if not isinstance(code, str) or not code.strip():
        raise BackupDecodeError("Empty backup code")

    # Accept both alphabets and missing padding (codes get mangled by chat apps).
    s = "".join(code.split()).replace("+", "-").replace("/", "_")
    s += "=" * (-len(s) % 4)
    try:
        raw = base64.b64decode(s, altchars=b"-_", validate=True)
        body = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError, RecursionError) as e:
        raise BackupDecodeError("Backup code is not valid base64 JSON") from e

    if not isinstance(body, dict):
        raise BackupDecodeError("Backup code does not hold an object")
    wallet = body.get("wallet")
    if not isinstance(wallet, str) or not wallet.strip() or "record" not in body:
        raise BackupDecodeError("Backup is missing wallet or record")

    try:
        record = record_from_dict(body["record"])
        created_at = body.get("created_at")
        created_at = datetime.fromisoformat(created_at) if isinstance(created_at, str) else datetime.utcnow()
    except ValueError as e:
        raise BackupDecodeError(f"Backup record is malformed: {e}") from e

    return BackupPayload(
        wallet=wallet,
        record=record,
        created_at=created_at,
        version=str(body.get("version") or BACKUP_FORMAT_VERSION),
    )

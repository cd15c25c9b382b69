from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from config import BACKUP_FORMAT_VERSION
from streak_codec import BackupPayload, decode_backup, encode_backup
from streak_errors import BackupDecodeError, NoStreakDataError
from streak_storage import DurableStore, is_valid_wallet, normalize_wallet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportResult:
    wallet: str
    success: bool
    message: str = ""


class BackupWorkflow:
    def __init__(self, store: DurableStore):
        self.store = store

    def export_backup(self, wallet: str, now: datetime | None = None) -> str:
        wallet = normalize_wallet(wallet)
        record = self.store.load(wallet)
        if record is None:
            raise NoStreakDataError(wallet)
        payload = BackupPayload(
            wallet=wallet,
            record=record.with_tag(None),
            created_at=now or datetime.now(timezone.utc),
            version=BACKUP_FORMAT_VERSION,
        )
        return encode_backup(payload)

    def import_backup(self, code: str) -> ImportResult:
        """Restore a backup code, replacing whatever is stored for its wallet."""
        try:
            payload = decode_backup(code)
            problems = payload.record.check_invariants()
            if problems:
                raise BackupDecodeError("Backup record is inconsistent: " + ", ".join(problems))
        except BackupDecodeError as e:
            logger.warning("Rejected backup code: %s", e.reason)
            return ImportResult(wallet="", success=False, message="Invalid backup code")

        wallet = normalize_wallet(payload.wallet)
        if not is_valid_wallet(wallet):
            logger.warning("Rejected backup code: bad wallet address %r", payload.wallet[:64])
            return ImportResult(wallet="", success=False, message="Invalid backup code")

        self.store.save(wallet, payload.record)
        logger.info("Restored streak backup for %s (created %s)", wallet, payload.created_at.isoformat())
        return ImportResult(wallet=wallet, success=True, message="Streak data restored")

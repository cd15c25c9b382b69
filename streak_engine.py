from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta

from config import STREAK_RISK_WARNING_HOURS
from models_streaks import BadgeState, ClaimRecord, reconcile_badges
from streak_storage import DurableStore, normalize_wallet

logger = logging.getLogger(__name__)


# Streak titles (minimum current streak => title)
TITLES: list[tuple[str, int]] = [
    ("Newcomer", 0),
    ("Starter", 3),
    ("Regular", 7),
    ("Expert", 30),
    ("Master", 100),
    ("Legend", 365),
]

# Reward multipliers (minimum current streak => multiplier)
MULTIPLIERS: list[tuple[int, int]] = [
    (0, 1),
    (7, 2),
    (30, 3),
    (100, 5),
]


def streak_title(current_streak: int) -> str:
    title = "Newcomer"
    for name, threshold in TITLES:
        if current_streak >= threshold:
            title = name
    return title


def streak_multiplier(current_streak: int) -> int:
    mult = 1
    for threshold, value in MULTIPLIERS:
        if current_streak >= threshold:
            mult = value
    return mult


def has_claimed_today(record: ClaimRecord, today: date) -> bool:
    return record.last_claim_date == today


def streak_risk(record: ClaimRecord, now: datetime, warn_hours: int = STREAK_RISK_WARNING_HOURS) -> timedelta | None:
    """Time left to keep the streak alive, when it is about to break.

    Only reported when the last claim was yesterday and fewer than
    ``warn_hours`` remain before the claimant's midnight.
    """
    if not record.last_claim_date or record.current_streak == 0:
        return None
    today = now.date()
    if record.last_claim_date != today - timedelta(days=1):
        return None
    end_of_day = datetime.combine(today + timedelta(days=1), time.min, tzinfo=now.tzinfo)
    left = end_of_day - now
    if left < timedelta(hours=warn_hours):
        return left
    return None


def apply_badges(badges: list[BadgeState], current_streak: int, now: datetime) -> tuple[list[BadgeState], BadgeState | None]:
    """Mark the highest newly reached milestone as earned.

    Only one badge changes per call, even when several thresholds were crossed
    at once (lower ones stay unearned).
    """
    candidates = [b for b in badges if not b.earned and b.requirement <= current_streak]
    if not candidates:
        return badges, None
    best = max(candidates, key=lambda b: b.requirement)
    awarded = replace(best, earned=True, earned_date=now)
    return [awarded if b.id == best.id else b for b in badges], awarded


def next_record(prior: ClaimRecord, now: datetime) -> tuple[ClaimRecord, BadgeState | None, bool]:
    """Pure claim transition: (new record, new badge, updated?)."""
    today = now.date()
    if has_claimed_today(prior, today):
        return prior, None, False

    if prior.last_claim_date == today - timedelta(days=1):
        current = prior.current_streak + 1
    else:
        # first claim, missed day(s), or a last claim "in the future" (clock skew)
        current = 1

    badges, new_badge = apply_badges(reconcile_badges(prior.badges), current, now)
    record = ClaimRecord(
        current_streak=current,
        longest_streak=max(prior.longest_streak, current),
        last_claim_date=today,
        total_claims=prior.total_claims + 1,
        badges=badges,
    )
    return record, new_badge, True


@dataclass(frozen=True)
class ClaimOutcome:
    record: ClaimRecord
    updated: bool
    new_badge: BadgeState | None = None


class StreakEngine:
    def __init__(self, store: DurableStore):
        self.store = store

    def get_record(self, wallet: str) -> ClaimRecord:
        return self.store.load(wallet) or ClaimRecord()

    def record_claim(self, wallet: str, now: datetime) -> ClaimOutcome:
        """Apply one confirmed claim made at ``now`` (claimant's local time)."""
        wallet = normalize_wallet(wallet)
        prior = self.get_record(wallet)
        record, new_badge, updated = next_record(prior, now)

        if not updated:
            logger.info("Already claimed today for %s, no streak update", wallet)
            return ClaimOutcome(record=prior, updated=False)

        record = self.store.save(wallet, record)
        logger.info(
            "Streak updated for %s: current=%s longest=%s total=%s",
            wallet, record.current_streak, record.longest_streak, record.total_claims,
        )
        if new_badge:
            logger.info("Badge %s earned by %s", new_badge.id, wallet)
        return ClaimOutcome(record=record, updated=True, new_badge=new_badge)

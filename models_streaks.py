from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime

from sqlalchemy import Column, DateTime, Index, String, Text

from extensions import db


# Bump when requirements change; earned badges stay earned across versions.
BADGE_CATALOG_VERSION = "1"

# Milestone badges (streak days => badge), ordered by requirement.
BADGES: list[dict] = [
    {
        "id": "first_steps",
        "name": "First Steps",
        "description": "Complete your first daily claim",
        "icon": "star",
        "color": "from-gray-400 to-gray-600",
        "requirement": 1,
    },
    {
        "id": "getting_started",
        "name": "Getting Started",
        "description": "Maintain a 3-day streak",
        "icon": "flame",
        "color": "from-orange-400 to-red-500",
        "requirement": 3,
    },
    {
        "id": "weekly_warrior",
        "name": "Weekly Warrior",
        "description": "Achieve a 7-day streak",
        "icon": "shield",
        "color": "from-blue-400 to-blue-600",
        "requirement": 7,
    },
    {
        "id": "dedicated_user",
        "name": "Dedicated User",
        "description": "Reach a 14-day streak",
        "icon": "award",
        "color": "from-green-400 to-green-600",
        "requirement": 14,
    },
    {
        "id": "streak_master",
        "name": "Streak Master",
        "description": "Maintain a 30-day streak",
        "icon": "trophy",
        "color": "from-yellow-400 to-orange-500",
        "requirement": 30,
    },
    {
        "id": "consistency_king",
        "name": "Consistency King",
        "description": "Achieve a 60-day streak",
        "icon": "crown",
        "color": "from-purple-400 to-pink-500",
        "requirement": 60,
    },
    {
        "id": "century_achiever",
        "name": "Century Achiever",
        "description": "Reach the legendary 100-day streak",
        "icon": "zap",
        "color": "from-amber-400 via-yellow-400 to-orange-500",
        "requirement": 100,
    },
    {
        "id": "streak_legend",
        "name": "Streak Legend",
        "description": "The ultimate 365-day streak",
        "icon": "crown",
        "color": "from-purple-500 via-pink-500 to-red-500",
        "requirement": 365,
    },
]

BADGES_BY_ID = {b["id"]: b for b in BADGES}


@dataclass(frozen=True)
class BadgeState:
    id: str
    earned: bool = False
    earned_date: datetime | None = None

    @property
    def template(self) -> dict:
        return BADGES_BY_ID.get(self.id, {})

    @property
    def requirement(self) -> int:
        return int(self.template.get("requirement", 0))

    def to_public(self) -> dict:
        t = self.template
        return {
            "id": self.id,
            "name": t.get("name"),
            "description": t.get("description"),
            "icon": t.get("icon"),
            "color": t.get("color"),
            "requirement": self.requirement,
            "earned": self.earned,
            "earned_date": self.earned_date.isoformat() if self.earned_date else None,
        }


def default_badges() -> list[BadgeState]:
    return [BadgeState(id=b["id"]) for b in BADGES]


def reconcile_badges(badges: list[BadgeState]) -> list[BadgeState]:
    """Return one entry per catalog badge, keeping stored earned state.

    Catalog badges missing from ``badges`` are added unearned. Entries for ids
    the catalog no longer knows are dropped.
    """
    stored = {b.id: b for b in badges}
    return [stored.get(b["id"]) or BadgeState(id=b["id"]) for b in BADGES]


@dataclass(frozen=True)
class ClaimRecord:
    """Per-wallet streak state. ``integrity_tag`` is filled in by the store."""

    current_streak: int = 0
    longest_streak: int = 0
    last_claim_date: date | None = None
    total_claims: int = 0
    badges: list[BadgeState] = field(default_factory=default_badges)
    integrity_tag: str | None = None

    def with_tag(self, tag: str | None) -> "ClaimRecord":
        return replace(self, integrity_tag=tag)

    def earned_badges(self) -> list[BadgeState]:
        return [b for b in self.badges if b.earned]

    def check_invariants(self) -> list[str]:
        problems = []
        if min(self.current_streak, self.longest_streak, self.total_claims) < 0:
            problems.append("negative counter")
        if self.longest_streak < self.current_streak:
            problems.append("longest_streak < current_streak")
        if self.total_claims < self.longest_streak:
            problems.append("total_claims < longest_streak")
        return problems


class StreakRecordRow(db.Model):
    """Primary (structured) copy of a wallet's streak record."""

    __tablename__ = "streak_records"

    # streak_data_<wallet>
    storage_key = Column(String(96), primary_key=True)
    wallet = Column(String(42), nullable=False)
    # Canonical JSON of the ClaimRecord fields (tag excluded)
    payload_json = Column(Text, nullable=False)
    integrity_tag = Column(String(16), nullable=False)
    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_streak_records_last_updated", "last_updated"),
    )

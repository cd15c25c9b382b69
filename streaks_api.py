import secrets
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import Blueprint, current_app, jsonify, request

from config import ADMIN_API_KEY
from cooldown import CooldownGate
from extensions import limiter
from models_streaks import BADGE_CATALOG_VERSION, ClaimRecord
from streak_backup import BackupWorkflow
from streak_engine import StreakEngine, streak_multiplier, streak_risk, streak_title
from streak_errors import NoStreakDataError
from streak_storage import DurableStore, FlatRecordStore, SqlRecordStore, is_valid_wallet, normalize_wallet


streaks_api = Blueprint("streaks_api", __name__)


class StreakServices:
    """The streak components one app instance works with."""

    def __init__(self, redis_client):
        self.store = DurableStore(SqlRecordStore(), FlatRecordStore(redis_client))
        self.engine = StreakEngine(self.store)
        self.cooldown = CooldownGate(redis_client)
        self.backups = BackupWorkflow(self.store)


def init_streaks(app, redis_client) -> StreakServices:
    services = StreakServices(redis_client)
    app.extensions["streaks"] = services
    app.register_blueprint(streaks_api)
    return services


def _services() -> StreakServices:
    return current_app.extensions["streaks"]


# -------------------------------
# Helpers
# -------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_body():
    """Request JSON as a dict; missing body is {}, any other shape is None."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def _zone(name):
    """IANA zone for the claimant's calendar day, or None if unknown."""
    if name is None:
        name = "UTC"
    if not isinstance(name, str):
        return None
    try:
        return ZoneInfo(name.strip() or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return None


def _admin_ok(req) -> bool:
    key = req.headers.get("X-Admin-Key", "")
    expected = current_app.config.get("ADMIN_API_KEY") or ADMIN_API_KEY
    return bool(expected) and secrets.compare_digest(key, expected)


def _bad_request(message: str):
    return jsonify({"success": False, "message": message}), 400


def _record_json(record: ClaimRecord) -> dict:
    return {
        "current_streak": record.current_streak,
        "longest_streak": record.longest_streak,
        "last_claim_date": record.last_claim_date.isoformat() if record.last_claim_date else None,
        "total_claims": record.total_claims,
        "title": streak_title(record.current_streak),
        "multiplier": streak_multiplier(record.current_streak),
        "earned_badges": len(record.earned_badges()),
        "badges": [b.to_public() for b in record.badges],
        "badge_catalog_version": BADGE_CATALOG_VERSION,
    }


# -------------------------------
# Public endpoints
# -------------------------------

@streaks_api.route("/api/streak/status", methods=["GET"])
def streak_status():
    wallet = normalize_wallet(request.args.get("wallet"))
    if not is_valid_wallet(wallet):
        return _bad_request("Valid wallet is required")
    zone = _zone(request.args.get("tz"))
    if zone is None:
        return _bad_request("Unknown timezone")

    svc = _services()
    now = _utcnow()
    record = svc.engine.get_record(wallet)
    next_at = svc.cooldown.next_eligible_at(wallet, now)
    remaining = svc.cooldown.remaining_time(wallet, now)
    risk = streak_risk(record, now.astimezone(zone))

    return jsonify(
        {
            "success": True,
            "wallet": wallet,
            "streak": _record_json(record),
            "can_claim": next_at is None,
            "seconds_remaining": int(remaining.total_seconds()),
            "next_claim_at": next_at.isoformat() if next_at else None,
            "streak_at_risk": risk is not None,
            "seconds_until_break": int(risk.total_seconds()) if risk is not None else None,
        }
    )


@streaks_api.route("/api/streak/claim", methods=["POST"])
@limiter.limit("20 per hour")
def streak_claim():
    """Record a claim the caller has already confirmed on-chain."""
    data = _json_body()
    if data is None:
        return _bad_request("Request body must be a JSON object")
    wallet = normalize_wallet(data.get("wallet"))
    if not is_valid_wallet(wallet):
        return _bad_request("Valid wallet is required")
    zone = _zone(data.get("tz"))
    if zone is None:
        return _bad_request("Unknown timezone")

    svc = _services()
    now = _utcnow()

    if not svc.cooldown.is_eligible(wallet, now):
        next_at = svc.cooldown.next_eligible_at(wallet, now)
        return jsonify(
            {
                "success": False,
                "message": "Not ready yet",
                "reasons": ["cooldown"],
                "seconds_remaining": int(svc.cooldown.remaining_time(wallet, now).total_seconds()),
                "next_claim_at": next_at.isoformat() if next_at else None,
            }
        ), 429

    outcome = svc.engine.record_claim(wallet, now.astimezone(zone))
    next_at = svc.cooldown.arm(wallet, now)

    return jsonify(
        {
            "success": True,
            "message": "Streak updated" if outcome.updated else "Already claimed today",
            "streak_updated": outcome.updated,
            "streak": _record_json(outcome.record),
            "new_badge": outcome.new_badge.to_public() if outcome.new_badge else None,
            "next_claim_at": next_at.isoformat(),
        }
    )


@streaks_api.route("/api/streak/backup/export", methods=["POST"])
@limiter.limit("10 per hour")
def streak_backup_export():
    data = _json_body()
    if data is None:
        return _bad_request("Request body must be a JSON object")
    wallet = normalize_wallet(data.get("wallet"))
    if not is_valid_wallet(wallet):
        return _bad_request("Valid wallet is required")

    try:
        code = _services().backups.export_backup(wallet)
    except NoStreakDataError:
        return jsonify({"success": False, "message": "Failed to create backup. No streak data found."}), 404

    return jsonify({"success": True, "wallet": wallet, "backup_code": code})


@streaks_api.route("/api/streak/backup/import", methods=["POST"])
@limiter.limit("10 per hour")
def streak_backup_import():
    data = _json_body()
    if data is None:
        return _bad_request("Request body must be a JSON object")
    code = data.get("backup_code")
    if not isinstance(code, str) or not code.strip():
        return _bad_request("Please enter a backup code")

    result = _services().backups.import_backup(code)
    if not result.success:
        return jsonify({"success": False, "message": "Invalid backup code. Please check and try again."}), 400

    record = _services().engine.get_record(result.wallet)
    return jsonify(
        {
            "success": True,
            "message": "Streak data restored successfully!",
            "wallet": result.wallet,
            "streak": _record_json(record),
        }
    )


# -------------------------------
# Admin endpoints (recovery)
# -------------------------------

@streaks_api.route("/api/admin/streak/cooldown/reset", methods=["POST"])
def admin_reset_cooldown():
    if not _admin_ok(request):
        return jsonify({"success": False, "message": "Unauthorized"}), 401
    data = _json_body()
    if data is None:
        return _bad_request("Request body must be a JSON object")
    wallet = normalize_wallet(data.get("wallet"))
    if not is_valid_wallet(wallet):
        return _bad_request("Valid wallet is required")

    _services().cooldown.reset(wallet)
    return jsonify({"success": True, "wallet": wallet})


@streaks_api.route("/api/admin/streak/clear-all", methods=["POST"])
def admin_clear_all():
    if not _admin_ok(request):
        return jsonify({"success": False, "message": "Unauthorized"}), 401
    _services().store.clear_all()
    return jsonify({"success": True})

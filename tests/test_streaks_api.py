import base64
import json
from datetime import datetime, timedelta, timezone

import pytest

import streaks_api
from conftest import WALLET

ADMIN = {"X-Admin-Key": "test-admin-key"}


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock(monkeypatch):
    c = Clock(datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc))
    monkeypatch.setattr(streaks_api, "_utcnow", c)
    return c


def _claim(client, wallet=WALLET, **extra):
    return client.post("/api/streak/claim", json={"wallet": wallet, **extra})


def test_status_for_new_wallet(client, clock):
    resp = client.get("/api/streak/status", query_string={"wallet": WALLET})
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["success"] is True
    assert body["wallet"] == WALLET.lower()
    assert body["can_claim"] is True
    assert body["streak"]["current_streak"] == 0
    assert body["streak"]["title"] == "Newcomer"
    assert len(body["streak"]["badges"]) == 8
    assert body["streak_at_risk"] is False


@pytest.mark.parametrize("wallet", ["", "0x123", "not-a-wallet"])
def test_invalid_wallet_is_rejected(client, clock, wallet):
    assert client.get("/api/streak/status", query_string={"wallet": wallet}).status_code == 400
    assert _claim(client, wallet).status_code == 400


def test_unknown_timezone_is_rejected(client, clock):
    resp = _claim(client, tz="Mars/Olympus_Mons")
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Unknown timezone"


def test_claim_updates_streak_and_arms_cooldown(client, clock):
    resp = _claim(client)
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["streak_updated"] is True
    assert body["streak"]["current_streak"] == 1
    assert body["new_badge"]["id"] == "first_steps"
    assert body["next_claim_at"] == "2025-01-02T12:00:00+00:00"

    status = client.get("/api/streak/status", query_string={"wallet": WALLET}).get_json()
    assert status["can_claim"] is False
    assert status["seconds_remaining"] == 24 * 3600


def test_claim_during_cooldown_is_refused(client, clock):
    _claim(client)
    clock.advance(hours=23)

    resp = _claim(client)
    body = resp.get_json()

    assert resp.status_code == 429
    assert body["reasons"] == ["cooldown"]
    assert body["seconds_remaining"] == 3600
    status = client.get("/api/streak/status", query_string={"wallet": WALLET}).get_json()
    assert status["streak"]["total_claims"] == 1


def test_daily_claims_build_a_streak(client, clock):
    for expected in (1, 2, 3):
        body = _claim(client).get_json()
        assert body["streak"]["current_streak"] == expected
        clock.advance(hours=24)
    assert body["new_badge"]["id"] == "getting_started"
    assert body["streak"]["title"] == "Starter"


def test_missed_day_resets_streak(client, clock):
    _claim(client)
    clock.advance(hours=24)
    _claim(client)
    clock.advance(hours=72)

    body = _claim(client).get_json()

    assert body["streak"]["current_streak"] == 1
    assert body["streak"]["longest_streak"] == 2
    assert body["streak"]["total_claims"] == 3


def test_same_local_day_after_cooldown_reset_is_no_op(client, clock):
    _claim(client)
    client.post("/api/admin/streak/cooldown/reset", json={"wallet": WALLET}, headers=ADMIN)
    clock.advance(hours=2)

    body = _claim(client).get_json()

    assert body["success"] is True
    assert body["streak_updated"] is False
    assert body["streak"]["total_claims"] == 1


def test_claimant_timezone_decides_the_day(client, clock):
    # 12:00 UTC on Jan 1 and 02:00 UTC on Jan 3 are consecutive days in Los Angeles
    _claim(client, tz="America/Los_Angeles")
    clock.advance(hours=38)

    body = _claim(client, tz="America/Los_Angeles").get_json()

    assert body["streak"]["current_streak"] == 2
    assert body["streak"]["last_claim_date"] == "2025-01-02"


def test_status_reports_streak_at_risk(client, clock):
    _claim(client)
    clock.now = datetime(2025, 1, 2, 21, 0, tzinfo=timezone.utc)

    body = client.get("/api/streak/status", query_string={"wallet": WALLET}).get_json()

    assert body["streak_at_risk"] is True
    assert body["seconds_until_break"] == 3 * 3600


def test_backup_export_without_data(client, clock):
    resp = client.post("/api/streak/backup/export", json={"wallet": WALLET})
    assert resp.status_code == 404
    assert "No streak data found" in resp.get_json()["message"]


def test_backup_export_and_import(client, clock, services, redis_client):
    _claim(client)
    clock.advance(hours=24)
    _claim(client)
    code = client.post("/api/streak/backup/export", json={"wallet": WALLET}).get_json()["backup_code"]

    services.store.clear_all()
    redis_client.data.clear()

    resp = client.post("/api/streak/backup/import", json={"backup_code": code})
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["wallet"] == WALLET.lower()
    assert body["streak"]["current_streak"] == 2


def test_backup_import_rejects_garbage(client, clock):
    resp = client.post("/api/streak/backup/import", json={"backup_code": "definitely-not-valid"})
    assert resp.status_code == 400
    assert resp.get_json()["message"].startswith("Invalid backup code")


def test_backup_import_requires_code(client, clock):
    resp = client.post("/api/streak/backup/import", json={})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Please enter a backup code"


def test_admin_endpoints_require_key(client, clock):
    assert client.post("/api/admin/streak/clear-all").status_code == 401
    assert client.post("/api/admin/streak/clear-all", headers={"X-Admin-Key": "wrong"}).status_code == 401
    assert client.post("/api/admin/streak/cooldown/reset", json={"wallet": WALLET}).status_code == 401


def test_admin_clear_all(client, clock, services):
    _claim(client)
    resp = client.post("/api/admin/streak/clear-all", headers=ADMIN)
    assert resp.status_code == 200
    # warm copy in redis still answers
    assert services.store.load(WALLET).total_claims == 1


def test_responses_are_not_cacheable(client, clock):
    resp = client.get("/api/streak/status", query_string={"wallet": WALLET})
    assert resp.headers["Cache-Control"] == "no-store"


def test_healthz(client):
    assert client.get("/healthz").get_json() == {"ok": True}


@pytest.mark.parametrize(
    "path,headers",
    [
        ("/api/streak/claim", {}),
        ("/api/streak/backup/export", {}),
        ("/api/streak/backup/import", {}),
        ("/api/admin/streak/cooldown/reset", ADMIN),
    ],
)
@pytest.mark.parametrize("body", [[1], "0xabc", 7])
def test_non_object_json_body_is_rejected(client, clock, path, headers, body):
    resp = client.post(path, json=body, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Request body must be a JSON object"


def test_import_with_bad_wallet_in_backup_is_rejected(client, clock, services):
    body = {"wallet": "foo", "record": {"current_streak": 1, "longest_streak": 1, "total_claims": 1}}
    code = base64.b64encode(json.dumps(body).encode()).decode()

    resp = client.post("/api/streak/backup/import", json={"backup_code": code})

    assert resp.status_code == 400
    assert services.store.load("foo") is None

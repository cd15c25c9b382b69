from datetime import datetime, timedelta, timezone

from conftest import WALLET, DownRedis, MemoryRedis
from cooldown import CooldownGate

T0 = datetime(2025, 1, 10, 18, 0, tzinfo=timezone.utc)


def test_eligible_without_timer():
    gate = CooldownGate(MemoryRedis())
    assert gate.is_eligible(WALLET, T0)
    assert gate.remaining_time(WALLET, T0) == timedelta(0)
    assert gate.next_eligible_at(WALLET, T0) is None


def test_arm_sets_24_hour_lock():
    gate = CooldownGate(MemoryRedis())
    next_at = gate.arm(WALLET, T0)

    assert next_at == T0 + timedelta(hours=24)
    assert not gate.is_eligible(WALLET, T0 + timedelta(hours=23, minutes=59))
    assert gate.remaining_time(WALLET, T0 + timedelta(hours=20)) == timedelta(hours=4)


def test_eligible_exactly_at_expiry():
    gate = CooldownGate(MemoryRedis())
    gate.arm(WALLET, T0)
    assert gate.is_eligible(WALLET, T0 + timedelta(hours=24))


def test_expired_timer_clears_itself_on_read():
    client = MemoryRedis()
    gate = CooldownGate(client)
    gate.arm(WALLET, T0)

    assert gate.is_eligible(WALLET, T0 + timedelta(days=2))
    assert gate.key_for(WALLET) not in client.data


def test_timer_is_stored_per_normalized_wallet():
    client = MemoryRedis()
    gate = CooldownGate(client)
    gate.arm(WALLET, T0)

    assert client.data == {"claim_timer_" + WALLET.lower(): str(int((T0 + timedelta(hours=24)).timestamp() * 1000))}
    assert not gate.is_eligible(WALLET.lower(), T0)
    assert gate.is_eligible("0x" + "1" * 40, T0)


def test_reset_clears_immediately():
    gate = CooldownGate(MemoryRedis())
    gate.arm(WALLET, T0)
    gate.reset(WALLET)
    assert gate.is_eligible(WALLET, T0 + timedelta(minutes=1))


def test_naive_now_is_treated_as_utc():
    gate = CooldownGate(MemoryRedis())
    gate.arm(WALLET, T0.replace(tzinfo=None))
    assert not gate.is_eligible(WALLET, T0 + timedelta(hours=1))


def test_custom_window():
    gate = CooldownGate(MemoryRedis(), hours=6)
    assert gate.arm(WALLET, T0) == T0 + timedelta(hours=6)


def test_unreadable_timer_is_dropped():
    client = MemoryRedis()
    gate = CooldownGate(client)
    client.set(gate.key_for(WALLET), "soon")

    assert gate.is_eligible(WALLET, T0)
    assert gate.key_for(WALLET) not in client.data


def test_redis_outage_fails_open():
    gate = CooldownGate(DownRedis())
    assert gate.arm(WALLET, T0) == T0 + timedelta(hours=24)
    assert gate.is_eligible(WALLET, T0)
    gate.reset(WALLET)


def test_arming_does_not_touch_streak(services):
    services.engine.record_claim(WALLET, T0)
    before = services.store.load(WALLET)

    services.cooldown.arm(WALLET, T0)
    services.cooldown.reset(WALLET)

    assert services.store.load(WALLET) == before

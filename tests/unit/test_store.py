from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from scanner.alerts.store import AlertStateStore

TZ = "Asia/Jakarta"


def ts(y, m, d, hh=12, mm=0):
    return datetime(y, m, d, hh, mm, tzinfo=ZoneInfo(TZ)).timestamp()


T0 = ts(2024, 5, 1, 12, 0)


@pytest.fixture
def store():
    return AlertStateStore(cooldown_seconds=1800, tz_name=TZ, clock=lambda: T0)


def test_fresh_symbol_emits(store):
    d = store.should_alert("BTC", T0, 100.0, 60.0)
    assert d.emit and d.reason == "first_alert"
    assert "BTC" not in store


def test_inside_cooldown_without_movement_suppresses(store):
    store.record_alert("BTC", T0 - 60, 100.0, 60.0)
    d = store.should_alert("BTC", T0, 100.0, 60.0)
    assert not d.emit and d.reason == "cooldown"


def test_cooldown_elapsed_emits(store):
    store.record_alert("BTC", T0 - 1800, 100.0, 60.0)
    d = store.should_alert("BTC", T0, 100.0, 60.0)
    assert d.emit and d.reason == "cooldown_elapsed"


def test_price_break_overrides_cooldown(store):
    store.record_alert("BTC", T0 - 60, 100.0, 60.0)
    d = store.should_alert("BTC", T0, 102.5, 60.0)
    assert d.emit and d.reason == "cooldown_break_price"
    # exactly 2% also breaks
    assert store.should_alert("BTC", T0, 102.0, 60.0).emit
    # a drop never breaks
    assert not store.should_alert("BTC", T0, 90.0, 60.0).emit


def test_rsi_break_overrides_cooldown(store):
    store.record_alert("BTC", T0 - 60, 100.0, 60.0)
    assert store.should_alert("BTC", T0, 100.5, 65.0).reason == "cooldown_break_rsi"
    assert not store.should_alert("BTC", T0, 100.5, 64.9).emit


def test_should_alert_does_not_mutate(store):
    store.record_alert("ETH", T0 - 60, 50.0, 55.0)
    before = (store.get("ETH").alert_count, store.get("ETH").last_alert_at)
    for _ in range(5):
        store.should_alert("ETH", T0, 60.0, 90.0)
        store.should_alert("XRP", T0, 1.0, 60.0)
    st = store.get("ETH")
    assert (st.alert_count, st.last_alert_at) == before
    assert "XRP" not in store
    assert len(store) == 1


def test_record_increments_by_one(store):
    for i in range(1, 4):
        st = store.record_alert("BTC", T0 + i, 100.0 + i, 60.0, volume=2e9)
        assert st.alert_count == i
    st = store.get("BTC")
    assert st.last_alert_at == T0 + 3
    assert st.last_alert_price == 103.0
    assert st.last_known_volume == 2e9
    assert store.next_count("BTC", T0 + 4) == 4


def test_daily_rollover_clears_counts_keeps_cooldown():
    store = AlertStateStore(cooldown_seconds=1800, tz_name=TZ, clock=lambda: ts(2024, 5, 1, 23, 50))
    late = ts(2024, 5, 1, 23, 55)
    store.record_alert("BTC", late, 100.0, 60.0)
    store.record_alert("BTC", late + 1, 100.0, 60.0)
    store.record_alert("ETH", late, 10.0, 60.0)

    after_midnight = ts(2024, 5, 2, 0, 5)
    assert store.next_count("BTC", after_midnight) == 1
    assert store.roll_day(after_midnight) is True
    assert store.roll_day(after_midnight) is False
    assert store.get("BTC").alert_count == 0
    assert store.get("ETH").alert_count == 0
    assert store.get("BTC").last_alert_at == late + 1
    assert set(store.symbols()) == {"BTC", "ETH"}
    # cooldown from before midnight still applies
    assert not store.should_alert("BTC", after_midnight, 100.0, 60.0).emit


def test_record_alert_rolls_day_itself():
    store = AlertStateStore(tz_name=TZ, clock=lambda: ts(2024, 5, 1, 10))
    store.record_alert("BTC", ts(2024, 5, 1, 10), 100.0, 60.0)
    st = store.record_alert("BTC", ts(2024, 5, 2, 10), 100.0, 60.0)
    assert st.alert_count == 1
    assert store.current_day.isoformat() == "2024-05-02"


def test_default_clock_used_when_now_missing():
    now = {"t": T0}
    store = AlertStateStore(cooldown_seconds=600, tz_name=TZ, clock=lambda: now["t"])
    store.record_alert("BTC", None, 100.0, 60.0)
    now["t"] = T0 + 599
    assert not store.should_alert("BTC", None, 100.0, 60.0).emit
    now["t"] = T0 + 600
    assert store.should_alert("BTC", None, 100.0, 60.0).emit

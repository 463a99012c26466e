import asyncio
import json

import pytest

from stockboard.models import IntradaySnapshot
from stockboard.services.price_log import (
    ALREADY_COMPLETE,
    BACKFILLED,
    SKIPPED_BEFORE_CUTOFF,
    SKIPPED_NON_TRADING_DAY,
    extract_price_at_slot,
    log_key,
    merge_prices,
)

from kis_fakes import FakeClock, kst, minute_rows

CODE = "005930"
SLOTS = ["0930", "0935", "0940", "0945", "0950", "0955", "1000", "1005", "1010", "1015", "1020", "1025", "1030"]


def _prices(start: str, end: str, skip: tuple[str, ...] = ()) -> dict[str, int]:
    prices = {}
    for hour in (9, 10, 11):
        for minute in range(60):
            hhmm = f"{hour:02d}{minute:02d}"
            if start <= hhmm <= end and hhmm not in skip:
                prices[hhmm] = 68000 + hour * 100 + minute
    return prices


def _snap(time: str, price: int) -> IntradaySnapshot:
    return IntradaySnapshot(time=time, price=price, cumulative_volume=0)


async def _raw(services) -> str:
    return await services.store.get(log_key(CODE))


def test_backfill_records_every_slot(make_services, fake_kis):
    fake_kis.minutes[(CODE, "20261016")] = minute_rows(
        "20261016", _prices("0900", "1130", skip=("0945", "0954", "0955", "0956"))
    )
    services = make_services(FakeClock(kst(2026, 10, 16, 11, 5)))

    outcome = asyncio.run(services.price_log.backfill_today(CODE))

    assert outcome.status == BACKFILLED
    assert outcome.performed
    prices = outcome.entry["prices"]
    assert sorted(prices) == SLOTS
    assert prices["0930"] == 68930
    # 0945 없음 -> 1분 이내 가장 가까운 분봉(동률이면 이른 쪽)
    assert prices["0945"] == 68944
    assert prices["0955"] is None
    assert prices["1030"] == 69030


def test_backfill_is_idempotent_once_complete(make_services, fake_kis):
    fake_kis.minutes[(CODE, "20261016")] = minute_rows("20261016", _prices("0900", "1130"))
    services = make_services(FakeClock(kst(2026, 10, 16, 11, 5)))

    async def run():
        first = await services.price_log.backfill_today(CODE)
        raw_first = await _raw(services)
        second = await services.price_log.backfill_today(CODE)
        return first, raw_first, second, await _raw(services)

    first, raw_first, second, raw_second = asyncio.run(run())
    assert first.status == BACKFILLED
    assert second.status == ALREADY_COMPLETE
    assert raw_first == raw_second
    assert fake_kis.calls_to("/inquire-time-dailychartprice") == 3


def test_repeated_backfill_with_missing_last_slot_writes_identical_bytes(make_services, fake_kis):
    fake_kis.minutes[(CODE, "20261016")] = minute_rows("20261016", _prices("0900", "1020"))
    services = make_services(FakeClock(kst(2026, 10, 16, 12, 0)))

    async def run():
        await services.price_log.backfill_today(CODE)
        raw_first = await _raw(services)
        second = await services.price_log.backfill_today(CODE)
        return raw_first, second, await _raw(services)

    raw_first, second, raw_second = asyncio.run(run())
    assert second.status == BACKFILLED
    assert raw_first == raw_second
    assert json.loads(raw_second)[0]["prices"]["1030"] is None


def test_backfill_skips_weekend_without_network(make_services, fake_kis):
    services = make_services(FakeClock(kst(2026, 10, 17, 12, 0)))

    outcome = asyncio.run(services.price_log.backfill_today(CODE))

    assert outcome.status == SKIPPED_NON_TRADING_DAY
    assert not outcome.performed
    assert fake_kis.requests == []


def test_backfill_skips_before_cutoff_hour(make_services, fake_kis):
    services = make_services(FakeClock(kst(2026, 10, 16, 10, 59)))

    outcome = asyncio.run(services.price_log.backfill_today(CODE))

    assert outcome.status == SKIPPED_BEFORE_CUTOFF
    assert asyncio.run(_raw(services)) is None
    assert fake_kis.requests == []


def test_backfill_records_null_slots_when_intraday_unavailable(make_services, fake_kis):
    services = make_services(FakeClock(kst(2026, 10, 16, 11, 0)))

    outcome = asyncio.run(services.price_log.backfill_today(CODE))

    assert outcome.status == BACKFILLED
    assert outcome.entry["prices"] == {slot: None for slot in SLOTS}


def test_backfill_never_overwrites_logged_price_with_null(make_services, fake_kis):
    fake_kis.minutes[(CODE, "20261016")] = minute_rows("20261016", _prices("0932", "1130"))
    services = make_services(FakeClock(kst(2026, 10, 16, 11, 30)))

    async def run():
        await services.price_log.record_snapshot(CODE, "2026-10-16", "0930", 70000)
        return await services.price_log.backfill_today(CODE)

    outcome = asyncio.run(run())
    assert outcome.entry["prices"]["0930"] == 70000
    assert outcome.entry["prices"]["0935"] == 68935


def test_writes_prune_sort_and_dedupe(make_services):
    services = make_services(FakeClock(kst(2026, 10, 16, 9, 35)))
    stale = [
        {"date": "2026-08-01", "prices": {"0930": 1}},
        {"date": "2026-08-17", "prices": {"0930": 2}},
        {"date": "2026-10-14", "prices": {"0930": 3, "0935": None}},
        {"date": "2026-10-15", "prices": {"0930": 4}},
        {"date": "2026-10-14", "prices": {"0935": 5}, "condition1": True},
    ]

    async def run():
        await services.store.set(log_key(CODE), json.dumps(stale))
        await services.price_log.record_snapshot(CODE, "2026-10-16", "0935", 68100)
        return json.loads(await _raw(services))

    saved = asyncio.run(run())
    assert [entry["date"] for entry in saved] == ["2026-10-16", "2026-10-15", "2026-10-14", "2026-08-17"]
    merged = saved[2]
    assert merged["prices"] == {"0930": 3, "0935": 5}
    assert merged["condition1"] is True
    assert saved[0]["prices"] == {"0935": 68100}


def test_record_snapshot_rejects_invalid_input(make_services):
    services = make_services(FakeClock(kst(2026, 10, 16, 9, 35)))

    with pytest.raises(ValueError):
        asyncio.run(services.price_log.record_snapshot(CODE, "20261016", "0935", 100))
    with pytest.raises(ValueError):
        asyncio.run(services.price_log.record_snapshot(CODE, "2026-10-16", "9:35", 100))
    with pytest.raises(ValueError):
        asyncio.run(services.price_log.record_snapshot(CODE, "2026-10-16", "0935", -1))


def test_delete_removes_only_that_date(make_services):
    services = make_services(FakeClock(kst(2026, 10, 16, 12, 0)))
    entries = [
        {"date": "2026-10-15", "prices": {"0930": 4}},
        {"date": "2026-08-01", "prices": {"0930": 1}},
    ]

    async def run():
        await services.store.set(log_key(CODE), json.dumps(entries))
        removed = await services.price_log.delete_log(CODE, "2026-10-15")
        missing = await services.price_log.delete_log(CODE, "2026-10-15")
        return removed, missing, json.loads(await _raw(services))

    removed, missing, remaining = asyncio.run(run())
    assert removed is True
    assert missing is False
    assert remaining == [{"date": "2026-08-01", "prices": {"0930": 1}}]


def test_save_conditions_keeps_prices(make_services):
    services = make_services(FakeClock(kst(2026, 10, 16, 12, 0)))

    async def run():
        await services.price_log.record_snapshot(CODE, "2026-10-16", "0930", 68100)
        await services.price_log.save_conditions(
            CODE,
            "2026-10-16",
            {"condition1": True, "condition2": False, "condition3": True, "closePrice": 68300, "prices": {}},
        )
        return await services.price_log.get_entry(CODE, "2026-10-16")

    entry = asyncio.run(run())
    assert entry["prices"] == {"0930": 68100}
    assert (entry["condition1"], entry["condition2"], entry["condition3"]) == (True, False, True)
    assert entry["closePrice"] == 68300


def test_get_log_ignores_corrupt_payload(make_services):
    services = make_services(FakeClock(kst(2026, 10, 16, 12, 0)))

    async def run():
        await services.store.set(log_key(CODE), "{not json")
        return await services.price_log.get_log(CODE)

    assert asyncio.run(run()) == []


def test_extract_price_exact_match_wins():
    snapshots = [_snap("0929", 1), _snap("0930", 2), _snap("0931", 3)]
    assert extract_price_at_slot(snapshots, "0930") == 2


def test_extract_price_nearest_within_one_minute_prefers_earlier():
    assert extract_price_at_slot([_snap("0931", 3), _snap("0929", 1)], "0930") == 1
    assert extract_price_at_slot([_snap("0931", 3)], "0930") == 3
    assert extract_price_at_slot([_snap("0932", 3)], "0930") is None


def test_extract_price_does_not_cross_hour():
    assert extract_price_at_slot([_snap("0959", 7)], "1000") is None


def test_merge_prices_is_monotonic():
    existing = {"0930": 100, "0935": None}
    merge_prices(existing, {"0930": None, "0935": 200, "0940": None})
    assert existing == {"0930": 100, "0935": 200, "0940": None}

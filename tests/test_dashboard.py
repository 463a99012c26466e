import asyncio

import pytest

from stockboard.kis.errors import DataUnavailable, IssuanceError

from kis_fakes import FakeClock, kst, minute_rows

CODE = "005930"


def _window_prices(base: int) -> dict[str, int]:
    return {f"{h:02d}{m:02d}": base + m for h in (9, 10) for m in range(60)}


@pytest.fixture
def market(fake_kis):
    fake_kis.names[CODE] = "삼성전자"
    fake_kis.current_prices[CODE] = 68400
    fake_kis.set_daily(
        CODE,
        [
            ("20261016", 67800, 68200, 68500, 67600),
            ("20261015", 67500, 67900, 68100, 67400),
        ],
    )
    fake_kis.minutes[(CODE, "20261016")] = minute_rows("20261016", _window_prices(68000), volume=200)
    fake_kis.minutes[(CODE, "20261015")] = minute_rows("20261015", _window_prices(67000), volume=100)
    return fake_kis


def test_get_stock_returns_latest_trading_day(make_services, market):
    services = make_services(FakeClock(kst(2026, 10, 16, 12, 0)))

    stock = asyncio.run(services.dashboard.get_stock(CODE))

    assert stock == {
        "code": CODE,
        "name": "삼성전자",
        "date": "2026-10-16",
        "open": 67800,
        "close": 68200,
        "high": 68500,
        "low": 67600,
        "middle": 68050,
        "change": 400,
    }


def test_daily_reference_is_cached_once_the_day_is_closed(make_services, market):
    services = make_services(FakeClock(kst(2026, 10, 17, 12, 0)))

    async def run():
        await services.dashboard.get_stock(CODE)
        await services.dashboard.get_stock(CODE)

    asyncio.run(run())
    assert market.calls_to("/inquire-daily-price") == 1


def test_daily_reference_is_not_cached_during_the_trading_day(make_services, market):
    services = make_services(FakeClock(kst(2026, 10, 16, 12, 0)))

    async def run():
        await services.dashboard.get_stock(CODE)
        await services.dashboard.get_stock(CODE)

    asyncio.run(run())
    assert market.calls_to("/inquire-daily-price") == 2


def test_daily_reference_before_the_open_is_refreshed_after_it(make_services, market):
    clock = FakeClock(kst(2026, 10, 16, 8, 0))
    services = make_services(clock)
    market.set_daily(
        CODE,
        [
            ("20261015", 67500, 67900, 68100, 67400),
            ("20261014", 67300, 67500, 67700, 67200),
        ],
    )

    async def run():
        before_open = await services.dashboard.get_stock(CODE)
        market.set_daily(
            CODE,
            [
                ("20261016", 67800, 68200, 68500, 67600),
                ("20261015", 67500, 67900, 68100, 67400),
            ],
        )
        clock.advance(hours=4)
        at_noon = await services.dashboard.get_stock(CODE)
        return before_open["date"], at_noon["date"]

    assert asyncio.run(run()) == ("2026-10-15", "2026-10-16")
    assert market.calls_to("/inquire-daily-price") == 2


def test_get_stock_unknown_code_raises(make_services, market):
    services = make_services(FakeClock(kst(2026, 10, 16, 12, 0)))

    with pytest.raises(DataUnavailable):
        asyncio.run(services.dashboard.get_stock("123456"))


def test_get_stocks_splits_results_and_errors(make_services, market):
    services = make_services(FakeClock(kst(2026, 10, 16, 12, 0)))

    batch = asyncio.run(services.dashboard.get_stocks([CODE, "123456"]))

    assert batch["success"] == 1
    assert batch["failed"] == 1
    assert "123456" in batch["errors"]
    summary = batch["results"][CODE]
    assert summary["date"] == "2026-10-15"
    assert summary["middle"] == 67750
    assert summary["latestDate"] == "2026-10-16"
    assert summary["prevClose"] == 68200
    assert summary["currentPrice"] == 68400
    assert (summary["condition1"], summary["condition2"], summary["condition3"]) == (True, True, True)
    assert market.token_calls == 1


def test_get_stocks_stores_and_reuses_conditions(make_services, market):
    services = make_services(FakeClock(kst(2026, 10, 17, 12, 0)))

    async def run():
        await services.dashboard.get_stocks([CODE])
        calls = market.calls_to("/inquire-time-dailychartprice")
        await services.dashboard.get_stocks([CODE])
        return calls, await services.price_log.get_entry(CODE, "2026-10-16")

    calls_after_first, entry = asyncio.run(run())
    assert calls_after_first > 0
    assert market.calls_to("/inquire-time-dailychartprice") == calls_after_first
    assert entry["condition1"] is True
    assert entry["priceAt10am"] == 68000
    assert entry["closePrice"] == 68200


def test_conditions_unknown_before_volume_window_closes(make_services, market):
    services = make_services(FakeClock(kst(2026, 10, 16, 9, 45)))

    batch = asyncio.run(services.dashboard.get_stocks([CODE]))

    summary = batch["results"][CODE]
    assert summary["condition1"] is None
    assert market.calls_to("/inquire-time-dailychartprice") == 0


def test_token_failure_aborts_the_whole_batch(make_services, market):
    market.token_rate_limited = True
    services = make_services(FakeClock(kst(2026, 10, 16, 12, 0)))

    with pytest.raises(IssuanceError):
        asyncio.run(services.dashboard.get_stocks([CODE]))


def test_log_prices_records_watch_list(make_services, market):
    market.current_prices.update({"000660": 180000, "005380": 250000, "207940": 900000})
    services = make_services(FakeClock(kst(2026, 10, 16, 9, 35)))

    async def run():
        outcome = await services.dashboard.log_prices()
        return outcome, await services.price_log.get_entry(CODE, "2026-10-16")

    outcome, entry = asyncio.run(run())
    assert outcome["success"] is True
    assert outcome["time"] == "0935"
    assert sorted(outcome["results"]) == ["000660", "005380", "005930", "207940"]
    assert list(outcome["errors"]) == ["006400"]
    assert entry["prices"] == {"0935": 68400}


def test_log_prices_outside_slots(make_services, market):
    services = make_services(FakeClock(kst(2026, 10, 16, 9, 33)))

    outcome = asyncio.run(services.dashboard.log_prices())

    assert outcome == {"success": False, "message": "Current time KST 0933 is not a logging time"}
    assert market.requests == []


def test_log_prices_market_closed(make_services, market):
    services = make_services(FakeClock(kst(2026, 10, 18, 9, 35)))

    outcome = asyncio.run(services.dashboard.log_prices())

    assert outcome == {"success": False, "message": "Market is closed today"}


def test_fetch_today_prices_reports_status(make_services, market):
    services = make_services(FakeClock(kst(2026, 10, 16, 11, 10)))

    async def run():
        return await services.dashboard.fetch_today_prices(CODE), await services.dashboard.fetch_today_prices(CODE)

    first, second = asyncio.run(run())
    assert first["success"] is True
    assert first["status"] == "backfilled"
    assert first["log"]["prices"]["0930"] == 68030
    assert second["status"] == "already_complete"
    assert second["message"] == "이미 로그가 존재합니다."

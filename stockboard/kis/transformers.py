"""
KIS API 응답에서 값을 추출하는 규칙

같은 값이 응답마다 다른 필드명으로 내려오는 경우가 있어,
값마다 "먼저 나온 필드가 이긴다" 순서의 필드 목록을 한 곳에서 관리합니다.
"""

from __future__ import annotations

import re
from datetime import timedelta, timezone
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar

from zoneinfo import ZoneInfo

from stockboard.models import DailyPriceRecord, IntradaySnapshot

try:
    KST = ZoneInfo("Asia/Seoul")
except Exception:
    # 시스템 tzdata가 없을 때의 폴백
    KST = timezone(timedelta(hours=9))

T = TypeVar("T")

# 응답 레코드: output > output1
RECORD_FIELDS = ("output", "output1")
# 행 목록: output2 > output
ROWS_FIELDS = ("output2", "output")

STOCK_NAME_FIELDS = ("hts_kor_isnm", "isu_kor_nm", "isu_nm", "itms_nm")
CURRENT_PRICE_FIELDS = ("stck_prpr",)

DAILY_DATE_FIELDS = ("stck_bsop_date", "bsop_date")
DAILY_OPEN_FIELDS = ("stck_oprc",)
DAILY_CLOSE_FIELDS = ("stck_clpr", "stck_prpr")
DAILY_HIGH_FIELDS = ("stck_hgpr",)
DAILY_LOW_FIELDS = ("stck_lwpr",)

MINUTE_DATE_FIELDS = ("stck_bsop_date", "bsop_date")
MINUTE_TIME_FIELDS = ("stck_cntg_hour", "stck_std_time", "time")
MINUTE_PRICE_FIELDS = ("stck_prpr", "price")
MINUTE_CUMULATIVE_VOLUME_FIELDS = ("acml_vol",)
MINUTE_VOLUME_FIELDS = ("cntg_vol",)

_HANGUL_RE = re.compile(r"[가-힣]")


def parse_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).replace(",", "").strip()
    if text == "":
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def parse_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def extract_first(
    record: dict[str, Any],
    fields: Sequence[str],
    parser: Callable[[Any], Optional[T]],
) -> Optional[T]:
    """fields 순서대로 처음 파싱에 성공한 값을 반환합니다."""
    for field in fields:
        parsed = parser(record.get(field))
        if parsed is not None:
            return parsed
    return None


def response_record(data: dict[str, Any]) -> dict[str, Any]:
    for field in RECORD_FIELDS:
        value = data.get(field)
        if isinstance(value, dict) and value:
            return value
    return {}


def response_rows(data: dict[str, Any]) -> list[dict[str, Any]]:
    for field in ROWS_FIELDS:
        value = data.get(field)
        if isinstance(value, list) and value:
            return [row for row in value if isinstance(row, dict)]
    return []


def normalize_hhmm(value: Any) -> Optional[str]:
    """HHMM / HHMMSS 문자열을 HHMM 으로 정규화합니다."""
    text = parse_text(value)
    if text is None or not text.isdigit():
        return None
    if len(text) == 3:
        text = f"0{text}"
    if len(text) == 5:
        text = f"0{text}"
    if len(text) not in (4, 6):
        return None
    hour = int(text[:2])
    minute = int(text[2:4])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return text[:4]


def normalize_yyyymmdd(value: Any) -> Optional[str]:
    text = parse_text(value)
    if text is None:
        return None
    digits = "".join(ch for ch in text if ch.isdigit())
    if len(digits) != 8:
        return None
    return digits


def is_valid_stock_name(name: Optional[str]) -> bool:
    if not name or name == "알 수 없음":
        return False
    if name.strip().isdigit():
        return False
    return bool(_HANGUL_RE.search(name))


def extract_stock_name(data: dict[str, Any]) -> Optional[str]:
    record = response_record(data)
    return extract_first(record, STOCK_NAME_FIELDS, parse_text)


def extract_current_price(data: dict[str, Any]) -> Optional[int]:
    record = response_record(data)
    price = extract_first(record, CURRENT_PRICE_FIELDS, parse_int)
    if price is None or price <= 0:
        return None
    return price


def transform_daily_records(data: dict[str, Any]) -> list[DailyPriceRecord]:
    """
    일자별 시세 행을 최신 날짜가 앞에 오도록 정렬해 반환합니다.
    필수 값이 빠진 행과 중복 날짜는 버립니다.
    """
    records: dict[str, DailyPriceRecord] = {}
    for row in response_rows(data):
        date = extract_first(row, DAILY_DATE_FIELDS, normalize_yyyymmdd)
        o = extract_first(row, DAILY_OPEN_FIELDS, parse_int)
        c = extract_first(row, DAILY_CLOSE_FIELDS, parse_int)
        h = extract_first(row, DAILY_HIGH_FIELDS, parse_int)
        l = extract_first(row, DAILY_LOW_FIELDS, parse_int)
        if date is None or o is None or c is None or h is None or l is None:
            continue
        records.setdefault(date, DailyPriceRecord(date=date, open=o, close=c, high=h, low=l))
    return sorted(records.values(), key=lambda r: r.date, reverse=True)


def transform_intraday_rows(
    rows: Iterable[dict[str, Any]],
    *,
    date: Optional[str] = None,
) -> list[IntradaySnapshot]:
    """
    분봉 행을 시간 오름차순 IntradaySnapshot 목록으로 변환합니다.

    - date(YYYYMMDD)가 주어지면 해당 날짜 행만 남긴다 (날짜 필드가 없으면 통과)
    - 같은 HHMM 이 여러 번 나오면 처음 것만 쓴다
    - 누적거래량(acml_vol)이 없으면 체결량(cntg_vol)의 누계로 채운다
    """
    parsed: dict[str, tuple[int, Optional[int], int]] = {}
    for row in rows:
        if date is not None:
            row_date = extract_first(row, MINUTE_DATE_FIELDS, normalize_yyyymmdd)
            if row_date is not None and row_date != date:
                continue
        hhmm = extract_first(row, MINUTE_TIME_FIELDS, normalize_hhmm)
        price = extract_first(row, MINUTE_PRICE_FIELDS, parse_int)
        if hhmm is None or price is None or price <= 0:
            continue
        if hhmm in parsed:
            continue
        cumulative = extract_first(row, MINUTE_CUMULATIVE_VOLUME_FIELDS, parse_int)
        volume = extract_first(row, MINUTE_VOLUME_FIELDS, parse_int) or 0
        parsed[hhmm] = (price, cumulative, max(volume, 0))

    snapshots: list[IntradaySnapshot] = []
    running = 0
    for hhmm in sorted(parsed):
        price, cumulative, volume = parsed[hhmm]
        running += volume
        snapshots.append(
            IntradaySnapshot(
                time=hhmm,
                price=price,
                cumulative_volume=cumulative if cumulative is not None else running,
                volume=volume,
            )
        )
    return snapshots

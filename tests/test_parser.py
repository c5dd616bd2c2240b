from __future__ import annotations

from datetime import date

import pytest

from idxmarket.errors import DataError, ParseError
from idxmarket.historical.parser import (
    filter_by_date_range,
    parse_date,
    parse_number,
    parse_series,
    period_start,
    resolve_columns,
    slice_for_period,
)


def test_exact_header_beats_substring_match() -> None:
    headers = ["delisting_date", "date", "open", "high", "low", "close", "volume"]
    mapping = resolve_columns(headers)
    assert mapping["date"] == 1
    assert mapping["close"] == 5


def test_substring_pass_never_reuses_claimed_column() -> None:
    headers = ["Trade Date", "Open Price", "High Price", "Low Price", "Close Price", "Adj Close", "Vol"]
    mapping = resolve_columns(headers)
    assert mapping == {
        "date": 0,
        "open": 1,
        "high": 2,
        "low": 3,
        "close": 4,
        "adjusted_close": 5,
        "volume": 6,
    }


def test_indonesian_headers_resolve() -> None:
    mapping = resolve_columns(["Tanggal", "Buka", "Tertinggi", "Terendah", "Penutupan", "Volume"])
    assert [mapping[r] for r in ("date", "open", "high", "low", "close", "volume")] == [0, 1, 2, 3, 4, 5]


def test_parse_series_skips_invalid_rows_and_sorts() -> None:
    raw = "\n".join(
        [
            "date,open,high,low,close,volume",
            "2024-01-03,105,110,100,108,1000",
            "2024-01-02,100,106,99,105,900",
            "2024-01-04,100,90,95,96,100",  # high < low
            "2024-01-05,-1,10,1,5,100",  # non-positive open
            "not-a-date,1,2,1,2,100",
            "2024-01-06,1,2",  # wrong field count
            "2024-01-07,100,101,99,102,100",  # close above high
        ]
    )
    series = parse_series(raw, "bbca")
    assert series.symbol == "BBCA"
    assert [p.date for p in series.points] == [date(2024, 1, 2), date(2024, 1, 3)]
    assert series.total_points == 2
    assert series.start_date == date(2024, 1, 2)
    assert series.end_date == date(2024, 1, 3)
    for p in series.points:
        assert p.high >= max(p.open, p.close)
        assert p.low <= min(p.open, p.close)


def test_parse_series_day_first_dates_quotes_and_semicolons() -> None:
    raw = 'Tanggal;Buka;Tinggi;Rendah;Tutup;Vol\n15/01/2024;"1,000";"1,050";"990";"1,020";"12,345"\n'
    series = parse_series(raw, "TLKM")
    point = series.points[0]
    assert point.date == date(2024, 1, 15)
    assert point.open == 1000.0
    assert point.close == 1020.0
    assert point.volume == 12345.0


def test_duplicate_dates_keep_last_occurrence() -> None:
    raw = "date,open,high,low,close\n2024-01-02,10,12,9,11\n2024-01-02,20,22,19,21\n"
    series = parse_series(raw, "X")
    assert series.total_points == 1
    assert series.points[0].close == 21


def test_missing_volume_defaults_to_zero() -> None:
    series = parse_series("date,open,high,low,close\n2024-02-01,10,12,9,11\n", "X")
    assert series.points[0].volume == 0.0
    assert series.points[0].adjusted_close is None


def test_single_line_input_is_parse_error() -> None:
    with pytest.raises(ParseError):
        parse_series("date,open,high,low,close\n", "X")


def test_no_surviving_rows_is_data_error() -> None:
    with pytest.raises(DataError):
        parse_series("date,open,high,low,close\n2024-01-01,0,0,0,0\n", "X")


def test_parse_number_and_date_helpers() -> None:
    assert parse_number('"1,234.5"') == 1234.5
    assert parse_number("") is None
    assert parse_number("-") is None
    assert parse_date("2024-3-7") == date(2024, 3, 7)
    assert parse_date("07-03-2024") == date(2024, 3, 7)
    assert parse_date("2024/03/07") == date(2024, 3, 7)
    assert parse_date("2024-03-07T00:00:00Z") == date(2024, 3, 7)


def test_period_start_clamps_month_end() -> None:
    assert period_start("1m", date(2024, 3, 31)) == date(2024, 2, 29)
    assert period_start("1y", date(2024, 2, 29)) == date(2023, 2, 28)
    assert period_start("1w", date(2024, 1, 8)) == date(2024, 1, 1)
    assert period_start("6MONTHS", date(2024, 8, 15)) == date(2024, 2, 15)
    assert period_start("bogus", date(2024, 1, 1)) is None


def test_slice_for_period_and_unknown_token() -> None:
    raw = "date,open,high,low,close\n" + "\n".join(
        f"2024-{m:02d}-01,10,12,9,11" for m in range(1, 7)
    )
    series = parse_series(raw, "X")
    recent = slice_for_period(series, "3m", date(2024, 6, 15))
    assert [p.date.month for p in recent] == [4, 5, 6]
    assert len(slice_for_period(series, "weird", date(2024, 6, 15))) == 6


def test_filter_by_date_range_is_inclusive() -> None:
    raw = "date,open,high,low,close\n" + "\n".join(
        f"2024-01-{d:02d},10,12,9,11" for d in range(1, 11)
    )
    series = parse_series(raw, "X")
    window = filter_by_date_range(series, date(2024, 1, 3), date(2024, 1, 5))
    assert [p.date.day for p in window] == [3, 4, 5]
    assert len(filter_by_date_range(series, end=date(2024, 1, 2))) == 2

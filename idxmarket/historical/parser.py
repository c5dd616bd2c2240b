"""Delimited-text parser for historical OHLCV files with column-role inference.

Dataset files come from several exporters and use different header names,
some of them Indonesian (``tanggal``, ``buka``, ``tutup``...). Column roles are
resolved in two passes over a single synonym table:

1. exact match of the normalized header against a role's synonyms;
2. for roles still unresolved, substring match, never re-using a column
   already claimed by another role.

Exact matches must win: the IDX dataset ships a ``delisting_date`` column that
would otherwise shadow the real ``date`` column.
"""

from __future__ import annotations

import calendar
import csv
import logging
import re
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

from idxmarket.errors import DataError, ParseError
from idxmarket.models import ParsedSeries, TimeSeriesPoint
from idxmarket.utils import parse_iso, utc_now

logger = logging.getLogger(__name__)

_ROLE_SYNONYMS: dict[str, tuple[str, ...]] = {
    "date": ("date", "tanggal", "time", "timestamp", "datetime"),
    "open": ("open", "openprice", "buka", "pembukaan"),
    "high": ("high", "highprice", "tinggi", "tertinggi", "max"),
    "low": ("low", "lowprice", "rendah", "terendah", "min"),
    "close": ("close", "closeprice", "tutup", "penutupan", "akhir"),
    "volume": ("volume", "vol"),
    "adjusted_close": ("adjclose", "adjustedclose", "adjcloseprice"),
}

# Adjusted close goes first in the substring pass so "adj_close" is never
# taken as the plain close column.
_SUBSTRING_ORDER = ("adjusted_close", "date", "open", "high", "low", "close", "volume")
_REQUIRED_ROLES = ("date", "open", "high", "low", "close")

_CANDIDATE_DELIMITERS = (",", ";", "\t", "|")

# (pattern, group order as year/month/day indexes)
_DATE_PATTERNS: tuple[tuple[re.Pattern[str], tuple[int, int, int]], ...] = (
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), (0, 1, 2)),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), (2, 1, 0)),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), (2, 1, 0)),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), (0, 1, 2)),
)
_FALLBACK_DATE_FORMATS = ("%d %b %Y", "%d %B %Y", "%b %d, %Y", "%B %d, %Y", "%Y%m%d")

# token -> (unit, amount)
_PERIODS: dict[str, tuple[str, int]] = {
    "1d": ("days", 1),
    "1day": ("days", 1),
    "1w": ("days", 7),
    "1week": ("days", 7),
    "1m": ("months", 1),
    "1month": ("months", 1),
    "3m": ("months", 3),
    "3months": ("months", 3),
    "6m": ("months", 6),
    "6months": ("months", 6),
    "1y": ("months", 12),
    "1year": ("months", 12),
    "2y": ("months", 24),
    "2years": ("months", 24),
    "5y": ("months", 60),
    "5years": ("months", 60),
}
PERIODS = ("1d", "1w", "1m", "3m", "6m", "1y", "2y", "5y")


class _RowRejected(ValueError):
    """A data row failed validation and is skipped."""


# ── Column resolution ─────────────────────────────────────────────────


def normalize_header(header: str) -> str:
    return re.sub(r"[^a-z0-9]", "", header.lower())


def resolve_columns(headers: Sequence[str]) -> dict[str, int]:
    """Map each OHLCV role to a header index."""
    normalized = [normalize_header(h) for h in headers]
    mapping: dict[str, int] = {}
    claimed: set[int] = set()

    for role, synonyms in _ROLE_SYNONYMS.items():
        for idx, name in enumerate(normalized):
            if idx not in claimed and name in synonyms:
                mapping[role] = idx
                claimed.add(idx)
                break

    for role in _SUBSTRING_ORDER:
        if role in mapping:
            continue
        synonyms = _ROLE_SYNONYMS[role]
        for idx, name in enumerate(normalized):
            if idx in claimed or not name:
                continue
            if any(s in name for s in synonyms):
                mapping[role] = idx
                claimed.add(idx)
                break

    return mapping


def sniff_delimiter(header_line: str) -> str:
    counts = {d: header_line.count(d) for d in _CANDIDATE_DELIMITERS}
    best = max(counts, key=lambda d: counts[d])
    return best if counts[best] > 0 else ","


# ── Field parsing ─────────────────────────────────────────────────────


def parse_number(raw: str | None) -> float | None:
    """Parse a numeric cell, tolerating quotes and thousands separators."""
    if raw is None:
        return None
    cleaned = raw.replace('"', "").replace("'", "").replace(",", "").strip()
    cleaned = re.sub(r"[^\d.\-]", "", cleaned)
    if cleaned in ("", "-", ".", "-."):
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_date(raw: str) -> date:
    """Parse a date cell; ISO first, then day-first layouts, then generic fallbacks."""
    cleaned = raw.replace('"', "").replace("'", "").strip()
    if not cleaned:
        raise _RowRejected("empty date")

    for pattern, (yi, mi, di) in _DATE_PATTERNS:
        m = pattern.match(cleaned)
        if m:
            parts = m.groups()
            try:
                return date(int(parts[yi]), int(parts[mi]), int(parts[di]))
            except ValueError as exc:
                raise _RowRejected(f"invalid date {raw!r}") from exc

    try:
        return parse_iso(cleaned.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    raise _RowRejected(f"unparseable date {raw!r}")


def _cell(values: Sequence[str], mapping: dict[str, int], role: str) -> str | None:
    idx = mapping.get(role)
    if idx is None:
        return None
    return values[idx]


def _parse_row(values: Sequence[str], mapping: dict[str, int]) -> TimeSeriesPoint:
    date_cell = _cell(values, mapping, "date")
    if date_cell is None:
        raise _RowRejected("date column not found")
    day = parse_date(date_cell)

    o = parse_number(_cell(values, mapping, "open"))
    h = parse_number(_cell(values, mapping, "high"))
    lo = parse_number(_cell(values, mapping, "low"))
    c = parse_number(_cell(values, mapping, "close"))
    if o is None or h is None or lo is None or c is None:
        raise _RowRejected("missing OHLC value")
    if o <= 0 or h <= 0 or lo <= 0 or c <= 0:
        raise _RowRejected("non-positive OHLC value")
    if h < max(o, c) or lo > min(o, c) or h < lo:
        raise _RowRejected("inconsistent OHLC values")

    volume = parse_number(_cell(values, mapping, "volume")) or 0.0
    adjusted = parse_number(_cell(values, mapping, "adjusted_close")) or None

    return TimeSeriesPoint(
        date=day,
        open=o,
        high=h,
        low=lo,
        close=c,
        volume=volume,
        adjusted_close=adjusted,
    )


# ── Public API ────────────────────────────────────────────────────────


def parse_series(raw_text: str, symbol: str) -> ParsedSeries:
    """Turn raw delimited text into a validated, ascending :class:`ParsedSeries`.

    Rows that fail validation are skipped. Raises :class:`ParseError` when
    there is no data row at all and :class:`DataError` when no row survives.
    """
    symbol = symbol.upper()
    lines = [ln for ln in raw_text.strip().splitlines() if ln.strip()]
    if len(lines) < 2:
        raise ParseError(f"{symbol}: insufficient rows ({len(lines)} line(s))")

    delimiter = sniff_delimiter(lines[0])
    rows = list(csv.reader(lines, delimiter=delimiter, skipinitialspace=True))
    headers = [h.strip().lower() for h in rows[0]]
    mapping = resolve_columns(headers)
    logger.debug("%s: headers=%s roles=%s", symbol, headers, mapping)

    missing = [role for role in _REQUIRED_ROLES if role not in mapping]
    if missing:
        logger.warning("%s: unresolved columns %s in header %s", symbol, missing, headers)

    by_date: dict[date, TimeSeriesPoint] = {}
    skipped = 0
    for line_no, values in enumerate(rows[1:], start=2):
        if len(values) != len(headers):
            skipped += 1
            logger.debug("%s: line %d has %d fields, expected %d", symbol, line_no, len(values), len(headers))
            continue
        try:
            point = _parse_row([v.strip() for v in values], mapping)
        except _RowRejected as exc:
            skipped += 1
            logger.debug("%s: skipping line %d: %s", symbol, line_no, exc)
            continue
        by_date[point.date] = point

    if not by_date:
        detail = f" (unresolved columns: {', '.join(missing)})" if missing else ""
        raise DataError(f"{symbol}: no valid data points{detail}")

    if skipped:
        logger.info("%s: parsed %d rows, skipped %d", symbol, len(by_date), skipped)

    points = sorted(by_date.values(), key=lambda p: p.date)
    return ParsedSeries.from_points(symbol, points, headers)


def period_start(token: str, now: datetime | date | None = None) -> date | None:
    """Cutoff date for a period token, or ``None`` for an unknown token."""
    entry = _PERIODS.get(token.strip().lower())
    if entry is None:
        return None
    today = now or utc_now()
    if isinstance(today, datetime):
        today = today.date()

    unit, amount = entry
    if unit == "days":
        return today - timedelta(days=amount)
    total = today.year * 12 + (today.month - 1) - amount
    year, month0 = divmod(total, 12)
    day = min(today.day, calendar.monthrange(year, month0 + 1)[1])
    return date(year, month0 + 1, day)


def slice_for_period(
    series: ParsedSeries, token: str, now: datetime | date | None = None
) -> list[TimeSeriesPoint]:
    """Points on or after the period cutoff; unknown tokens return the full series."""
    cutoff = period_start(token, now)
    if cutoff is None:
        return list(series.points)
    return [p for p in series.points if p.date >= cutoff]


def filter_by_date_range(
    points: ParsedSeries | Iterable[TimeSeriesPoint],
    start: date | None = None,
    end: date | None = None,
) -> list[TimeSeriesPoint]:
    """Points with ``start <= date <= end`` (either bound optional)."""
    if isinstance(points, ParsedSeries):
        points = points.points
    return [
        p
        for p in points
        if (start is None or p.date >= start) and (end is None or p.date <= end)
    ]

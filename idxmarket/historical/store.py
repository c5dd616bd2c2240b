"""Durable per-symbol JSON records: parsed series plus a sibling metadata file.

Layout::

    <root>/historical/<SYMBOL>.json   parsed series
    <root>/metadata/<SYMBOL>.json     {symbol, last_updated, data_points, date_range, raw_byte_size}

Writers in separate processes targeting the same root are not coordinated.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from datetime import date
from pathlib import Path
from typing import Any

from idxmarket.models import ParsedSeries, StockMetadata, TimeSeriesPoint
from idxmarket.utils import parse_iso, utc_now

logger = logging.getLogger(__name__)


def _series_from_dict(raw: dict[str, Any]) -> ParsedSeries:
    points = [
        TimeSeriesPoint(
            date=date.fromisoformat(p["date"]),
            open=float(p["open"]),
            high=float(p["high"]),
            low=float(p["low"]),
            close=float(p["close"]),
            volume=float(p.get("volume") or 0.0),
            adjusted_close=float(p["adjusted_close"]) if p.get("adjusted_close") is not None else None,
        )
        for p in raw["points"]
    ]
    return ParsedSeries.from_points(raw["symbol"], points, raw.get("columns") or ())


def _metadata_from_dict(raw: dict[str, Any]) -> StockMetadata:
    return StockMetadata(
        symbol=raw["symbol"],
        last_updated=parse_iso(raw["last_updated"]),
        data_points=int(raw["data_points"]),
        start_date=date.fromisoformat(raw["date_range"]["start"]),
        end_date=date.fromisoformat(raw["date_range"]["end"]),
        raw_byte_size=int(raw["raw_byte_size"]),
    )


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    # One temp file per writer; only the final rename touches the record path.
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=f"{path.stem}.", suffix=".tmp", delete=False
    ) as fh:
        json.dump(payload, fh, indent=2)
        tmp = Path(fh.name)
    try:
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


class SeriesStore:
    """File-backed store keyed by upper-cased symbol."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)
        self._data_dir = self._root / "historical"
        self._meta_dir = self._root / "metadata"

    def _ensure_dirs(self) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._meta_dir.mkdir(parents=True, exist_ok=True)

    def _paths(self, symbol: str) -> tuple[Path, Path]:
        name = f"{symbol.upper()}.json"
        return self._data_dir / name, self._meta_dir / name

    # ── reads ──────────────────────────────────────────────────────────

    def _load_metadata_sync(self, symbol: str) -> StockMetadata | None:
        _, meta_path = self._paths(symbol)
        if not meta_path.exists():
            return None
        return _metadata_from_dict(json.loads(meta_path.read_text(encoding="utf-8")))

    def _load_series_sync(self, symbol: str) -> ParsedSeries | None:
        data_path, _ = self._paths(symbol)
        if not data_path.exists():
            return None
        return _series_from_dict(json.loads(data_path.read_text(encoding="utf-8")))

    async def load_metadata(self, symbol: str) -> StockMetadata | None:
        try:
            return await asyncio.to_thread(self._load_metadata_sync, symbol)
        except (OSError, ValueError, KeyError):
            logger.warning("Unreadable metadata record for %s", symbol, exc_info=True)
            return None

    async def load_series(self, symbol: str) -> ParsedSeries | None:
        try:
            return await asyncio.to_thread(self._load_series_sync, symbol)
        except (OSError, ValueError, KeyError):
            logger.warning("Unreadable series record for %s", symbol, exc_info=True)
            return None

    def _all_metadata_sync(self) -> list[StockMetadata]:
        if not self._meta_dir.exists():
            return []
        out: list[StockMetadata] = []
        for path in sorted(self._meta_dir.glob("*.json")):
            try:
                out.append(_metadata_from_dict(json.loads(path.read_text(encoding="utf-8"))))
            except (OSError, ValueError, KeyError):
                logger.warning("Failed to read metadata file %s", path.name)
        return out

    async def all_metadata(self) -> list[StockMetadata]:
        return await asyncio.to_thread(self._all_metadata_sync)

    # ── writes ─────────────────────────────────────────────────────────

    def _save_sync(self, series: ParsedSeries, metadata: StockMetadata) -> None:
        self._ensure_dirs()
        data_path, meta_path = self._paths(series.symbol)
        _write_json(data_path, series.to_dict())
        _write_json(meta_path, metadata.to_dict())

    async def save(self, series: ParsedSeries, raw_byte_size: int) -> StockMetadata:
        metadata = StockMetadata(
            symbol=series.symbol,
            last_updated=utc_now(),
            data_points=series.total_points,
            start_date=series.start_date,
            end_date=series.end_date,
            raw_byte_size=raw_byte_size,
        )
        await asyncio.to_thread(self._save_sync, series, metadata)
        logger.debug("Stored %s (%d points)", series.symbol, series.total_points)
        return metadata

    def _delete_sync(self, symbol: str | None) -> int:
        if symbol is not None:
            paths = list(self._paths(symbol))
        else:
            paths = [p for d in (self._data_dir, self._meta_dir) if d.exists() for p in d.glob("*.json")]
        removed = 0
        for path in paths:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        return removed

    async def delete(self, symbol: str | None = None) -> int:
        """Remove one symbol's records, or every record when ``symbol`` is None."""
        return await asyncio.to_thread(self._delete_sync, symbol)

"""HTTP client for the Dataset-Saham-IDX repository (raw CSV files + GitHub contents API)."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from idxmarket.errors import DatasetUnavailable
from idxmarket.models import RepositoryInfo
from idxmarket.utils import retry

logger = logging.getLogger(__name__)

_DIRECTORIES = ("LQ45", "Semua")
_HEADERS = {
    "Accept": "application/vnd.github+json",
    "User-Agent": "idxmarket/0.1",
}


class DatasetClient:
    """Raw-text fetch for per-symbol CSV files plus repository listing.

    Files live under ``Saham/<directory>/<SYMBOL>.csv``; ``LQ45`` holds the
    index constituents and ``Semua`` every listed stock. Directory listings
    are memoized for ``listing_ttl`` seconds.
    """

    def __init__(
        self,
        api_url: str,
        raw_url: str,
        *,
        timeout: float = 15.0,
        listing_ttl: float = 604800,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._raw_url = raw_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=_HEADERS)
        self._listing_ttl = listing_ttl
        self._clock = clock
        self._listing: dict[str, tuple[float, list[dict[str, Any]]]] = {}

    async def aclose(self) -> None:
        await self._client.aclose()

    @retry(max_attempts=2, base_delay=0.5, exceptions=(httpx.TransportError,))
    async def _get(self, url: str) -> httpx.Response:
        return await self._client.get(url)

    # ── raw CSV ────────────────────────────────────────────────────────

    async def download_csv(self, symbol: str, directory: str | None = None) -> str:
        """Return the CSV text for ``symbol``; without a directory hint try LQ45 then Semua."""
        symbol = symbol.upper()
        directories = (directory,) if directory else _DIRECTORIES
        for d in directories:
            resp = await self._get(f"{self._raw_url}/Saham/{d}/{symbol}.csv")
            if resp.status_code == 200:
                return resp.text
            logger.info("%s not found in %s (HTTP %d)", symbol, d, resp.status_code)
        raise DatasetUnavailable(f"stock data not available for {symbol}")

    # ── listings ───────────────────────────────────────────────────────

    async def list_files(self, directory: str) -> list[dict[str, Any]]:
        cached = self._listing.get(directory)
        now = self._clock()
        if cached and now - cached[0] < self._listing_ttl:
            return cached[1]

        resp = await self._get(f"{self._api_url}/contents/Saham/{directory}")
        resp.raise_for_status()
        files = [
            f
            for f in resp.json()
            if f.get("type") == "file" and str(f.get("name", "")).endswith(".csv")
        ]
        self._listing[directory] = (now, files)
        return files

    async def list_symbols(self) -> list[str]:
        """Every symbol with a CSV file; falls back to LQ45 when Semua is unreachable."""
        try:
            files = await self.list_files("Semua")
        except httpx.HTTPError:
            logger.warning("Semua listing unavailable, falling back to LQ45", exc_info=True)
            files = await self.list_files("LQ45")
        return sorted(str(f["name"])[: -len(".csv")].upper() for f in files)

    async def repository_info(self) -> RepositoryInfo:
        resp = await self._get(self._api_url)
        resp.raise_for_status()
        symbols = await self.list_symbols()
        return RepositoryInfo(
            last_updated=resp.json().get("updated_at"),
            total_files=len(symbols),
            available_symbols=symbols,
        )

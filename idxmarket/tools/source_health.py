"""CLI: probe every registered source once and print its stats and health."""

from __future__ import annotations

import asyncio
import json

from idxmarket.bootstrap import build_services
from idxmarket.models import Found

_PROBE_SYMBOL = "BBCA"


async def _amain() -> None:
    services = build_services()
    try:
        probes = {
            "market_overview": await services.coordinator.market_overview(),
            "stock_info": await services.coordinator.stock_info(_PROBE_SYMBOL),
            "historical_series": await services.coordinator.historical_series(_PROBE_SYMBOL, "1m"),
        }
        report = {
            "probes": {
                name: {"found": isinstance(r, Found), "source": r.source}
                for name, r in probes.items()
            },
            "healthy_sources": services.coordinator.healthy_sources(),
            "sources": services.coordinator.stats(),
        }
        print(json.dumps(report, indent=2, default=str))
    finally:
        await services.aclose()


if __name__ == "__main__":
    asyncio.run(_amain())

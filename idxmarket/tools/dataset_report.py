"""CLI: summarize dataset coverage and the local series store.

    python -m idxmarket.tools.dataset_report [--refresh BBCA BBRI ...]
"""

from __future__ import annotations

import argparse
import asyncio
import json

from idxmarket.bootstrap import build_services


async def _amain(refresh: list[str]) -> None:
    services = build_services()
    try:
        if refresh:
            loaded = await services.orchestrator.get_multiple(refresh, force_refresh=True)
            print(f"refreshed {len(loaded)}/{len(refresh)} symbols")
        report = await services.orchestrator.repository_metadata()
        print(json.dumps(report, indent=2, default=str))
    finally:
        await services.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--refresh", nargs="*", default=[], help="Symbols to re-download first")
    asyncio.run(_amain(parser.parse_args().refresh))

from __future__ import annotations

from datetime import date, timedelta

import pytest


def make_csv(
    n: int = 300,
    *,
    start_price: float = 1000.0,
    daily_change: float = 0.005,
    start: date = date(2023, 1, 2),
) -> str:
    """Dataset-style CSV with a steady compounding trend."""
    lines = ["date,previous,open_price,first_trade,high,low,close,change,volume,delisting_date"]
    price = start_price
    for i in range(n):
        day = start + timedelta(days=i)
        close = price * (1 + daily_change)
        high = max(price, close) * 1.01
        low = min(price, close) * 0.99
        lines.append(
            f"{day.isoformat()},{price:.4f},{price:.4f},{price:.4f},{high:.4f},{low:.4f},"
            f"{close:.4f},{close - price:.4f},{1000 + i},"
        )
        price = close
    return "\n".join(lines) + "\n"


@pytest.fixture
def uptrend_csv() -> str:
    return make_csv()


@pytest.fixture
def month_csv() -> str:
    return make_csv(30)


@pytest.fixture
def recent_csv() -> str:
    """Uptrend whose last row is today, so period windows always overlap it."""
    return make_csv(start=date.today() - timedelta(days=299))

"""Static configuration for storage, price feeds and request bounds."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR_ENV = "BTCFUND_DATA_DIR"

HISTORICAL_DATA_FILE = "historical_data.json"
SUMMARY_FILE = "fund_summary.json"
AUDIT_LOG_FILE = "audit-log.jsonl"

COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
BINANCE_TICKER_URL = "https://api.binance.com/api/v3/ticker/price"
FOREX_RATES_URL = "https://open.er-api.com/v6/latest/USD"
HISTORY_SYMBOL = "BTC-ZAR"

PRICE_CACHE_TTL_SECONDS = 120
RATE_LIMIT_BACKOFF_SECONDS = 300
PRICE_TIMEOUT_SECONDS = 10
FALLBACK_TIMEOUT_SECONDS = 8
FALLBACK_USD_ZAR_RATE = 16.1

HISTORY_MIN_DAYS = 1
HISTORY_MAX_DAYS = 365

LEDGER_PAGE_MIN = 10
LEDGER_PAGE_MAX = 100
AUDIT_LOG_MIN = 1
AUDIT_LOG_MAX = 200


def data_dir() -> Path:
    """Directory holding the fund files; ``BTCFUND_DATA_DIR`` overrides ``./data``."""
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override)
    return Path.cwd() / "data"

"""BTC price retrieval with a last-known-good cache."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

import pandas as pd
import requests
import yfinance as yf

from ..config import (
    BINANCE_TICKER_URL,
    COINGECKO_PRICE_URL,
    FALLBACK_TIMEOUT_SECONDS,
    FALLBACK_USD_ZAR_RATE,
    FOREX_RATES_URL,
    HISTORY_MAX_DAYS,
    HISTORY_MIN_DAYS,
    HISTORY_SYMBOL,
    PRICE_CACHE_TTL_SECONDS,
    PRICE_TIMEOUT_SECONDS,
    RATE_LIMIT_BACKOFF_SECONDS,
)
from ..messages import ServiceMessage
from ..models import BtcPrice, PricePoint
from .valuation import round_half_up

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PriceCache:
    """Holds the last quote and how long it stays fresh."""

    def __init__(
        self,
        ttl_seconds: float = PRICE_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._value: Optional[BtcPrice] = None
        self._expires_at = 0.0

    @property
    def last_known(self) -> Optional[BtcPrice]:
        return self._value

    def fresh(self) -> Optional[BtcPrice]:
        if self._value is not None and self._clock() < self._expires_at:
            return self._value
        return None

    def store(self, price: BtcPrice) -> None:
        self._value = price
        self._expires_at = self._clock() + self._ttl

    def extend(self, seconds: Optional[float] = None) -> None:
        self._expires_at = self._clock() + (self._ttl if seconds is None else seconds)


@dataclass(frozen=True)
class PriceHistoryResult:
    points: List[PricePoint]
    messages: List[ServiceMessage]

    def to_series(self) -> pd.Series:
        return pd.Series(
            [p.price_zar for p in self.points],
            index=pd.to_datetime([p.date for p in self.points]),
            name="price_zar",
            dtype=float,
        )


class BtcPriceService:
    """Fetches BTC quotes in ZAR and USD.

    Never raises: when CoinGecko is rate limited or down the last good quote is
    served with ``source="cache"``; with nothing cached it tries Binance plus an
    FX conversion, and finally returns a zero quote marked ``unavailable``.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        cache: Optional[PriceCache] = None,
        history_symbol: str = HISTORY_SYMBOL,
    ) -> None:
        self._session = session or requests.Session()
        self._cache = cache or PriceCache()
        self._history_symbol = history_symbol

    def get_current_price(self) -> BtcPrice:
        cached = self._cache.fresh()
        if cached is not None:
            return cached

        try:
            response = self._session.get(
                COINGECKO_PRICE_URL,
                params={
                    "ids": "bitcoin",
                    "vs_currencies": "zar,usd",
                    "include_24hr_change": "true",
                },
                timeout=PRICE_TIMEOUT_SECONDS,
            )
            if response.status_code == 429 and self._cache.last_known is not None:
                logger.warning("CoinGecko rate limited; backing off with cached quote")
                self._cache.extend(RATE_LIMIT_BACKOFF_SECONDS)
                return replace(self._cache.last_known, source="cache")
            response.raise_for_status()
            quote = response.json()["bitcoin"]
            price = BtcPrice(
                zar=float(quote["zar"]),
                usd=float(quote["usd"]),
                zar_24h_change=float(quote.get("zar_24h_change") or 0.0),
                usd_24h_change=float(quote.get("usd_24h_change") or 0.0),
                timestamp=_now_iso(),
                source="coingecko",
            )
            self._cache.store(price)
            return price
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            logger.warning("CoinGecko quote failed: %s", exc)

        if self._cache.last_known is not None:
            self._cache.extend()
            return replace(self._cache.last_known, source="cache")

        fallback = self._binance_fallback()
        if fallback is not None:
            self._cache.store(fallback)
            return fallback

        logger.error("No BTC quote available from any source")
        return BtcPrice(zar=0.0, usd=0.0, timestamp=_now_iso(), source="unavailable")

    def _binance_fallback(self) -> Optional[BtcPrice]:
        try:
            btc_response = self._session.get(
                BINANCE_TICKER_URL,
                params={"symbol": "BTCUSDT"},
                timeout=FALLBACK_TIMEOUT_SECONDS,
            )
            fx_response = self._session.get(FOREX_RATES_URL, timeout=FALLBACK_TIMEOUT_SECONDS)
            btc_response.raise_for_status()
            fx_response.raise_for_status()
            usd_price = float(btc_response.json()["price"])
            zar_rate = float((fx_response.json().get("rates") or {}).get("ZAR", FALLBACK_USD_ZAR_RATE))
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            logger.warning("Binance fallback quote failed: %s", exc)
            return None

        return BtcPrice(
            zar=round_half_up(usd_price * zar_rate),
            usd=round_half_up(usd_price),
            timestamp=_now_iso(),
            source="binance-fallback",
        )

    def get_history(self, days: int = 30) -> PriceHistoryResult:
        """Daily ZAR closes for the last ``days`` days (clamped to 1..365)."""
        days = min(HISTORY_MAX_DAYS, max(HISTORY_MIN_DAYS, int(days)))
        messages: List[ServiceMessage] = []
        try:
            hist = yf.Ticker(self._history_symbol).history(period=f"{days}d")
            if hist.empty or "Close" not in hist:
                raise ValueError("no closing prices")
            serie = hist["Close"].copy()
            serie.index = serie.index.tz_localize(None)
            serie = serie.astype(float).dropna().sort_index()
            points = [
                PricePoint(date=ts.date().isoformat(), price_zar=round_half_up(value))
                for ts, value in serie.items()
            ]
            return PriceHistoryResult(points=points, messages=messages)
        except Exception as exc:  # noqa: BLE001 - reported as a message
            logger.warning("BTC history for %s failed: %s", self._history_symbol, exc)
            messages.append(
                ServiceMessage.warning(f"Could not load BTC history ({self._history_symbol}): {exc}")
            )
            return PriceHistoryResult(points=[], messages=messages)

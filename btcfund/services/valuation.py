"""Live valuation of the fund against a BTC quote."""
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal
from typing import Optional

from ..models import BtcPrice, FundInfo, FundSummary, MemberValue, PortfolioSnapshot

SECONDS_PER_DAY = 86_400


def round_half_up(value: float, places: int = 0) -> float:
    """Round to ``places`` decimals with halves going toward +infinity.

    ``2.5`` becomes ``3`` and ``-2.5`` becomes ``-2``.
    """
    if not math.isfinite(value):
        return 0.0
    quantum = Decimal(1).scaleb(-places)
    rounding = ROUND_HALF_UP if value >= 0 else ROUND_HALF_DOWN
    return float(Decimal(str(value)).quantize(quantum, rounding=rounding))


def _finite(value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def days_until(target_date: str, now: datetime) -> int:
    """Whole days left until ``target_date`` (UTC midnight), never negative."""
    try:
        target = date.fromisoformat(target_date)
    except (TypeError, ValueError):
        return 0
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    target_dt = datetime(target.year, target.month, target.day, tzinfo=timezone.utc)
    seconds = (target_dt - now).total_seconds()
    return max(0, math.ceil(seconds / SECONDS_PER_DAY))


def calculate_portfolio(
    summary: FundSummary,
    fund_info: FundInfo,
    price: BtcPrice,
    *,
    now: Optional[datetime] = None,
) -> PortfolioSnapshot:
    """Value the fund holdings at ``price``.

    Pure apart from the clock used for ``days_to_target``; pass ``now`` to make
    it fully deterministic. Degraded quotes (zero or non-finite prices) still
    produce a numeric snapshot.
    """
    now = now or datetime.now(timezone.utc)
    price_zar = _finite(price.zar)
    price_usd = _finite(price.usd)

    total_btc = _finite(summary.total_btc_acquired)
    invested = _finite(summary.total_contributions_zar)
    value_zar = total_btc * price_zar
    value_usd = total_btc * price_usd
    pnl = value_zar - invested
    pnl_pct = (pnl / invested) * 100 if invested > 0 else 0.0

    target = _finite(fund_info.target_amount_zar)
    progress = min(100.0, (value_zar / target) * 100) if target > 0 else 0.0

    breakdown = {
        name: MemberValue(
            btc_share=share.btc_share,
            value_zar=round_half_up(share.btc_share * price_zar),
            share_pct=share.share_pct,
        )
        for name, share in summary.member_shares.items()
    }

    return PortfolioSnapshot(
        total_btc=total_btc,
        value_zar=round_half_up(value_zar),
        value_usd=round_half_up(value_usd),
        total_invested_zar=invested,
        profit_loss_zar=round_half_up(pnl),
        profit_loss_pct=round_half_up(pnl_pct, 2),
        target_progress=round_half_up(progress, 2),
        days_to_target=days_until(fund_info.target_date, now),
        per_member_breakdown=breakdown,
    )

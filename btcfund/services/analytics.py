"""Historical analytics over contributions and purchases."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence

import pandas as pd
from dateutil.relativedelta import relativedelta

from ..models import BtcPurchase, Contribution, Member
from .valuation import round_half_up


@dataclass(frozen=True)
class MonthlySnapshot:
    month: str
    contributions_zar: float
    cumulative_invested_zar: float
    btc_bought: float
    cumulative_btc: float
    avg_cost_basis: float
    active_members: int
    contributors: List[str]


@dataclass(frozen=True)
class MemberAnalytics:
    """Contribution-proportional view of a member, used for reporting only.

    ``share_percent`` is the member's slice of everything ever contributed and
    has nothing to do with the equal-split ``MemberShare`` used for valuation.
    """

    name: str
    total_contributed: float
    contribution_count: int
    first_contribution: str
    last_contribution: str
    share_percent: float
    status: str


@dataclass(frozen=True)
class Streaks:
    current_monthly_streak: int
    longest_monthly_streak: int
    missed_months: List[str]


@dataclass(frozen=True)
class CostBasis:
    weighted_avg_zar: float
    total_invested_zar: float
    total_btc: float


@dataclass(frozen=True)
class ContributionStats:
    avg_monthly_zar: float
    max_month_zar: float
    max_month_label: str
    total_months: int


@dataclass(frozen=True)
class AnalyticsResult:
    monthly_snapshots: List[MonthlySnapshot]
    member_analytics: List[MemberAnalytics]
    streaks: Streaks
    cost_basis: CostBasis
    contribution_stats: ContributionStats

    def snapshots_frame(self) -> pd.DataFrame:
        columns = list(MonthlySnapshot.__dataclass_fields__)
        return pd.DataFrame([asdict(s) for s in self.monthly_snapshots], columns=columns)


def _month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def month_end(month: str) -> date:
    """Last calendar day of a ``YYYY-MM`` month."""
    return date.fromisoformat(f"{month}-01") + relativedelta(day=31)


def active_members_at(members: Iterable[Member], as_of: date) -> int:
    count = 0
    for member in members:
        joined = _parse_date(member.joined_date)
        if joined is None or joined > as_of:
            continue
        if member.leave_date:
            left = _parse_date(member.leave_date)
            if left is None or left < as_of:
                continue
        count += 1
    return count


def expected_months(first_month: str, current_month: str) -> List[str]:
    months: List[str] = []
    cursor = date.fromisoformat(f"{first_month}-01")
    while _month_key(cursor) <= current_month:
        months.append(_month_key(cursor))
        cursor += relativedelta(months=1)
    return months


def _contributions_frame(contributions: Sequence[Contribution]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"month": c.month, "date": c.date, "name": c.member_name, "amount": c.amount_zar}
            for c in contributions
        ],
        columns=["month", "date", "name", "amount"],
    ).astype({"amount": float})


def _purchases_frame(purchases: Sequence[BtcPurchase]) -> pd.DataFrame:
    return pd.DataFrame(
        [{"month": p.month, "btc": p.btc_bought, "spent": p.cost_zar} for p in purchases],
        columns=["month", "btc", "spent"],
    ).astype({"btc": float, "spent": float})


def _monthly_snapshots(
    contrib_df: pd.DataFrame,
    purchase_df: pd.DataFrame,
    members: Sequence[Member],
) -> List[MonthlySnapshot]:
    contrib_by_month = contrib_df.groupby("month")["amount"].sum()
    purchase_by_month = purchase_df.groupby("month")[["btc", "spent"]].sum()
    contributors = {
        month: list(dict.fromkeys(group["name"]))
        for month, group in contrib_df.groupby("month", sort=False)
    }

    months = sorted(set(contrib_by_month.index) | set(purchase_by_month.index))
    index = pd.Index(months, name="month")
    monthly = pd.DataFrame(
        {
            "contributions": contrib_by_month.reindex(index, fill_value=0.0),
            "btc": purchase_by_month["btc"].reindex(index, fill_value=0.0),
            "spent": purchase_by_month["spent"].reindex(index, fill_value=0.0),
        },
        index=index,
    ).astype(float)
    monthly["cum_invested"] = monthly["contributions"].cumsum()
    monthly["cum_btc"] = monthly["btc"].cumsum()
    monthly["cum_spent"] = monthly["spent"].cumsum()

    snapshots: List[MonthlySnapshot] = []
    for month, row in monthly.iterrows():
        cum_btc = float(row["cum_btc"])
        snapshots.append(
            MonthlySnapshot(
                month=month,
                contributions_zar=float(row["contributions"]),
                cumulative_invested_zar=float(row["cum_invested"]),
                btc_bought=float(row["btc"]),
                cumulative_btc=cum_btc,
                avg_cost_basis=(
                    round_half_up(float(row["cum_spent"]) / cum_btc) if cum_btc > 0 else 0.0
                ),
                active_members=active_members_at(members, month_end(month)),
                contributors=contributors.get(month, []),
            )
        )
    return snapshots


def _member_analytics(contrib_df: pd.DataFrame, members: Sequence[Member]) -> List[MemberAnalytics]:
    if contrib_df.empty:
        totals = pd.DataFrame(columns=["total", "count", "first", "last"])
    else:
        totals = contrib_df.groupby("name").agg(
            total=("amount", "sum"),
            count=("amount", "size"),
            first=("date", "min"),
            last=("date", "max"),
        )
    grand_total = float(totals["total"].sum()) if not totals.empty else 0.0

    rows: List[MemberAnalytics] = []
    for member in members:
        if member.name in totals.index:
            stats = totals.loc[member.name]
            total = float(stats["total"])
            count = int(stats["count"])
            first, last = str(stats["first"]), str(stats["last"])
        else:
            total, count, first, last = 0.0, 0, "", ""
        rows.append(
            MemberAnalytics(
                name=member.name,
                total_contributed=total,
                contribution_count=count,
                first_contribution=first,
                last_contribution=last,
                share_percent=round_half_up(total / grand_total * 100, 2) if grand_total > 0 else 0.0,
                status=member.status.value,
            )
        )
    return sorted(rows, key=lambda r: r.total_contributed, reverse=True)


def _streaks(first_month: str, current_month: str, hit_months: set) -> Streaks:
    expected = expected_months(first_month, current_month)
    missed = [m for m in expected if m not in hit_months]

    current = 0
    for month in reversed(expected):
        if month not in hit_months:
            break
        current += 1

    longest = running = 0
    for month in expected:
        if month in hit_months:
            running += 1
            longest = max(longest, running)
        else:
            running = 0

    return Streaks(
        current_monthly_streak=current,
        longest_monthly_streak=longest,
        missed_months=missed,
    )


def _cost_basis(purchases: Sequence[BtcPurchase]) -> CostBasis:
    total_cost = sum(p.cost_zar for p in purchases)
    total_btc = sum(p.btc_bought for p in purchases)
    return CostBasis(
        weighted_avg_zar=round_half_up(total_cost / total_btc) if total_btc > 0 else 0.0,
        total_invested_zar=float(total_cost),
        total_btc=float(total_btc),
    )


def _contribution_stats(monthly_totals: pd.Series) -> ContributionStats:
    if monthly_totals.empty:
        return ContributionStats(0.0, 0.0, "", 0)
    max_amount = max(0.0, float(monthly_totals.max()))
    max_label = next(
        (month for month, total in monthly_totals.items() if float(total) == max_amount), ""
    )
    return ContributionStats(
        avg_monthly_zar=round_half_up(float(monthly_totals.mean())),
        max_month_zar=max_amount,
        max_month_label=max_label,
        total_months=int(len(monthly_totals)),
    )


def compute_analytics(
    contributions: Sequence[Contribution],
    purchases: Sequence[BtcPurchase],
    members: Sequence[Member],
    *,
    today: Optional[date] = None,
) -> AnalyticsResult:
    """Compute monthly snapshots, member analytics, streaks and cost basis.

    Pure: the inputs are only read. ``today`` fixes the end of the streak
    window and defaults to the current date.
    """
    today = today or date.today()
    contrib_df = _contributions_frame(contributions)
    purchase_df = _purchases_frame(purchases)

    snapshots = _monthly_snapshots(contrib_df, purchase_df, members)
    current_month = _month_key(today)
    first_month = snapshots[0].month if snapshots else current_month
    monthly_totals: pd.Series = contrib_df.groupby("month")["amount"].sum()

    return AnalyticsResult(
        monthly_snapshots=snapshots,
        member_analytics=_member_analytics(contrib_df, members),
        streaks=_streaks(first_month, current_month, set(monthly_totals.index)),
        cost_basis=_cost_basis(purchases),
        contribution_stats=_contribution_stats(monthly_totals),
    )

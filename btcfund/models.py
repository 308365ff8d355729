"""Domain models for the pooled Bitcoin fund."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class MemberStatus(str, Enum):
    ACTIVE = "active"
    LEFT = "left"


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


@dataclass(frozen=True)
class Member:
    """A participant in the fund. Members are never deleted, only marked as left."""

    id: int
    name: str
    joined_date: str
    leave_date: Optional[str] = None
    status: MemberStatus = MemberStatus.ACTIVE
    role: MemberRole = MemberRole.MEMBER

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Member":
        return cls(
            id=int(record["id"]),
            name=record["name"],
            joined_date=record.get("joined_date", ""),
            leave_date=record.get("leave_date"),
            status=MemberStatus(record.get("status", "active")),
            role=MemberRole(record.get("role", "member")),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "joined_date": self.joined_date,
            "leave_date": self.leave_date,
            "status": self.status.value,
            "role": self.role.value,
        }


@dataclass(frozen=True)
class Contribution:
    """An immutable ZAR payment into the fund.

    ``member_name`` is a snapshot taken when the contribution was recorded; a
    later rename of the member does not relabel it.
    """

    date: str
    member_id: int
    member_name: str
    amount_zar: float
    type: str = "contribution"

    @property
    def month(self) -> str:
        return self.date[:7]

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Contribution":
        return cls(
            date=record["date"],
            member_id=int(record["member_id"]),
            member_name=record["member_name"],
            amount_zar=float(record["amount_zar"]),
            type=record.get("type", "contribution"),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "member_id": self.member_id,
            "member_name": self.member_name,
            "amount_zar": self.amount_zar,
            "type": self.type,
        }


@dataclass(frozen=True)
class BtcPurchase:
    """A BTC acquisition. ``total_holdings`` is the running total after this entry."""

    date: str
    btc_bought: float
    total_holdings: float
    price_zar: float
    amount_invested: Optional[float] = None
    notes: Optional[str] = None
    recorded_at: Optional[str] = None

    @property
    def month(self) -> str:
        return self.date[:7]

    @property
    def cost_zar(self) -> float:
        if self.amount_invested is not None:
            return self.amount_invested
        return self.btc_bought * self.price_zar

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "BtcPurchase":
        amount = record.get("amount_invested")
        return cls(
            date=record["date"],
            btc_bought=float(record["btc_bought"]),
            total_holdings=float(record["total_holdings"]),
            price_zar=float(record["price_zar"]),
            amount_invested=float(amount) if amount is not None else None,
            notes=record.get("notes"),
            recorded_at=record.get("recorded_at"),
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "date": self.date,
            "btc_bought": self.btc_bought,
            "total_holdings": self.total_holdings,
            "price_zar": self.price_zar,
        }
        for key in ("amount_invested", "notes", "recorded_at"):
            value = getattr(self, key)
            if value is not None:
                record[key] = value
        return record


@dataclass(frozen=True)
class Buyout:
    """Transfer of contribution credit from a departing member to a buyer."""

    date: str
    buyer: str
    seller: str
    amount_zar: float
    notes: str = ""

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Buyout":
        return cls(
            date=record.get("date", ""),
            buyer=record["buyer"],
            seller=record["seller"],
            amount_zar=float(record["amount_zar"]),
            notes=record.get("notes", ""),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "buyer": self.buyer,
            "seller": self.seller,
            "amount_zar": self.amount_zar,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class FundInfo:
    """Fund metadata. ``current_btc_holdings`` caches the latest purchase total."""

    name: str = ""
    target_date: str = ""
    target_amount_zar: float = 0.0
    created_date: str = ""
    description: str = ""
    btc_purchaser: str = ""
    current_btc_holdings: float = 0.0
    last_purchase_date: str = ""
    member_transitions: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "FundInfo":
        return cls(
            name=record.get("name", ""),
            target_date=record.get("target_date", ""),
            target_amount_zar=float(record.get("target_amount_zar") or 0),
            created_date=record.get("created_date", ""),
            description=record.get("description", ""),
            btc_purchaser=record.get("btc_purchaser", ""),
            current_btc_holdings=float(record.get("current_btc_holdings") or 0),
            last_purchase_date=record.get("last_purchase_date") or "",
            member_transitions=dict(record.get("member_transitions") or {}),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "target_date": self.target_date,
            "target_amount_zar": self.target_amount_zar,
            "created_date": self.created_date,
            "description": self.description,
            "btc_purchaser": self.btc_purchaser,
            "current_btc_holdings": self.current_btc_holdings,
            "last_purchase_date": self.last_purchase_date,
            "member_transitions": dict(self.member_transitions),
        }


@dataclass(frozen=True)
class FundState:
    """Everything persisted in the historical data file."""

    members: Tuple[Member, ...] = ()
    contributions: Tuple[Contribution, ...] = ()
    purchases: Tuple[BtcPurchase, ...] = ()
    buyouts: Tuple[Buyout, ...] = ()
    fund_info: FundInfo = field(default_factory=FundInfo)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "FundState":
        fund_info_raw = dict(record.get("fund_info") or {})
        # Older files kept buyouts inside fund_info.
        legacy_buyouts = fund_info_raw.pop("buyouts", None) or []
        buyouts = list(record.get("buyouts") or []) + list(legacy_buyouts)
        return cls(
            members=tuple(Member.from_record(m) for m in record.get("members") or []),
            contributions=tuple(
                Contribution.from_record(c) for c in record.get("contributions") or []
            ),
            purchases=tuple(
                BtcPurchase.from_record(p) for p in record.get("btc_purchases") or []
            ),
            buyouts=tuple(Buyout.from_record(b) for b in buyouts),
            fund_info=FundInfo.from_record(fund_info_raw),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "members": [m.to_record() for m in self.members],
            "btc_purchases": [p.to_record() for p in self.purchases],
            "contributions": [c.to_record() for c in self.contributions],
            "buyouts": [b.to_record() for b in self.buyouts],
            "fund_info": self.fund_info.to_record(),
        }


@dataclass(frozen=True)
class MemberShare:
    """Equal-split claim of an active member on the fund holdings."""

    contributed_zar: float
    share_pct: float
    btc_share: float


@dataclass(frozen=True)
class FundSummary:
    """Derived view of the fund, rebuilt after every mutation."""

    total_contributions_zar: float
    total_btc_acquired: float
    number_of_purchases: int
    number_of_contributions: int
    active_members: int
    total_members_all_time: int
    member_contributions: Dict[str, float]
    member_shares: Dict[str, MemberShare]
    data_updated: str
    last_btc_purchase: str
    member_transitions: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HoldingsAdjustment:
    previous: float
    current: float
    reason: str


@dataclass(frozen=True)
class BtcPrice:
    """A BTC quote. ``source`` tells whether it is live, cached or a fallback."""

    zar: float
    usd: float
    zar_24h_change: float = 0.0
    usd_24h_change: float = 0.0
    timestamp: str = ""
    source: str = "unknown"


@dataclass(frozen=True)
class PricePoint:
    date: str
    price_zar: float


@dataclass(frozen=True)
class MemberValue:
    btc_share: float
    value_zar: float
    share_pct: float


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Point-in-time valuation of the fund against a live quote."""

    total_btc: float
    value_zar: float
    value_usd: float
    total_invested_zar: float
    profit_loss_zar: float
    profit_loss_pct: float
    target_progress: float
    days_to_target: int
    per_member_breakdown: Dict[str, MemberValue]


@dataclass(frozen=True)
class LedgerEntry:
    date: str
    type: str
    member: Optional[str]
    amount_zar: float
    btc: Optional[float] = None
    price_zar: Optional[float] = None
    notes: str = ""


@dataclass(frozen=True)
class LedgerPage:
    entries: List[LedgerEntry]
    total: int
    page: int
    limit: int
    pages: int

"""Fund ledger: the single owner of every mutation of the fund state."""
from __future__ import annotations

import copy
import logging
import math
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .config import AUDIT_LOG_MAX, AUDIT_LOG_MIN, LEDGER_PAGE_MAX, LEDGER_PAGE_MIN
from .exceptions import MemberNotFoundError, ValidationError
from .models import (
    BtcPurchase,
    Buyout,
    Contribution,
    FundInfo,
    FundState,
    FundSummary,
    HoldingsAdjustment,
    LedgerEntry,
    LedgerPage,
    Member,
    MemberRole,
    MemberShare,
    MemberStatus,
)
from .repositories import AuditLog, FundRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_positive(value: float, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field_name} must be a number")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError(f"{field_name} must be greater than 0")
    return float(value)


def _require_text(value: Optional[str], field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must not be empty")
    return value.strip()


def _require_iso_date(value: str, field_name: str) -> str:
    try:
        return date.fromisoformat(value).isoformat()
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an ISO date (YYYY-MM-DD)") from None


def build_summary(state: FundState, updated_at: str) -> FundSummary:
    """Derive the fund summary from the persisted state.

    Ownership is split equally between active members regardless of how much
    each contributed. Buyouts are applied in order after summing contributions:
    the buyer is credited and the seller's total drops to zero.
    """
    member_contributions: Dict[str, float] = {}
    for contribution in state.contributions:
        name = contribution.member_name
        member_contributions[name] = member_contributions.get(name, 0.0) + contribution.amount_zar

    for buyout in state.buyouts:
        member_contributions[buyout.buyer] = (
            member_contributions.get(buyout.buyer, 0.0) + buyout.amount_zar
        )
        member_contributions[buyout.seller] = 0.0

    active = [m for m in state.members if m.is_active]
    holdings = state.fund_info.current_btc_holdings
    share_pct = 100 / len(active) if active else 0.0
    btc_share = holdings / len(active) if active else 0.0

    member_shares = {
        m.name: MemberShare(
            contributed_zar=member_contributions.get(m.name, 0.0),
            share_pct=share_pct,
            btc_share=btc_share,
        )
        for m in active
    }

    return FundSummary(
        total_contributions_zar=sum(member_contributions.values()),
        total_btc_acquired=holdings,
        number_of_purchases=len(state.purchases),
        number_of_contributions=len(state.contributions),
        active_members=len(active),
        total_members_all_time=len(state.members),
        member_contributions=member_contributions,
        member_shares=member_shares,
        data_updated=updated_at,
        last_btc_purchase=state.fund_info.last_purchase_date,
        member_transitions=dict(state.fund_info.member_transitions),
    )


class FundLedger:
    """Authoritative in-memory view of the fund backed by a ``FundRepository``.

    Every mutation validates its input, writes the new state through the
    repository, then swaps it in and rebuilds the summary. A failed write
    leaves the in-memory state untouched. Audit entries are best effort.
    Not safe for concurrent writers.
    """

    def __init__(
        self,
        repository: FundRepository,
        audit_log: AuditLog | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._repository = repository
        self._audit = audit_log or AuditLog.in_directory(repository.base_path)
        self._clock = clock or _utc_now
        self._state = repository.load()
        self._summary = build_summary(self._state, self._clock().isoformat())

    # ------------------ Reads ------------------ #
    def get_members(self) -> List[Member]:
        return list(self._state.members)

    def get_active_members(self) -> List[Member]:
        return [m for m in self._state.members if m.is_active]

    def get_member_by_id(self, member_id: int) -> Optional[Member]:
        for member in self._state.members:
            if member.id == member_id:
                return member
        return None

    def get_contributions(self) -> List[Contribution]:
        return list(self._state.contributions)

    def get_purchases(self) -> List[BtcPurchase]:
        return list(self._state.purchases)

    def get_buyouts(self) -> List[Buyout]:
        return list(self._state.buyouts)

    def get_fund_info(self) -> FundInfo:
        return self._state.fund_info

    def get_summary(self) -> FundSummary:
        # Callers get their own copy of the member dicts.
        return copy.deepcopy(self._summary)

    def get_audit_log(self, limit: int = 50) -> List[dict]:
        limit = min(AUDIT_LOG_MAX, max(AUDIT_LOG_MIN, int(limit)))
        return self._audit.tail(limit)

    def ledger_entries(
        self,
        entry_type: str = "all",
        member: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> LedgerPage:
        """Unified contribution and purchase history, newest first."""
        if entry_type not in ("all", "contribution", "purchase"):
            raise ValidationError("entry_type must be 'all', 'contribution' or 'purchase'")

        entries: List[LedgerEntry] = []
        if entry_type in ("all", "contribution"):
            for c in self._state.contributions:
                if member and c.member_name != member:
                    continue
                entries.append(
                    LedgerEntry(
                        date=c.date,
                        type="contribution",
                        member=c.member_name,
                        amount_zar=c.amount_zar,
                    )
                )
        if entry_type in ("all", "purchase"):
            for p in self._state.purchases:
                entries.append(
                    LedgerEntry(
                        date=p.date,
                        type="purchase",
                        member=None,
                        amount_zar=p.amount_invested or 0.0,
                        btc=p.btc_bought,
                        price_zar=p.price_zar,
                        notes=p.notes or "",
                    )
                )

        entries.sort(key=lambda e: e.date, reverse=True)
        page = max(1, int(page))
        limit = min(LEDGER_PAGE_MAX, max(LEDGER_PAGE_MIN, int(limit)))
        total = len(entries)
        start = (page - 1) * limit
        return LedgerPage(
            entries=entries[start : start + limit],
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit),
        )

    # ------------------ Mutations ------------------ #
    def add_contribution(self, member_id: int, member_name: str, amount_zar: float) -> Contribution:
        amount = _require_positive(amount_zar, "amount_zar")
        name = _require_text(member_name, "member_name")
        if self.get_member_by_id(member_id) is None:
            raise MemberNotFoundError(member_id)

        entry = Contribution(
            date=self._today(),
            member_id=member_id,
            member_name=name,
            amount_zar=amount,
        )
        self._commit(
            replace(self._state, contributions=self._state.contributions + (entry,)),
            "addContribution",
            memberId=member_id,
            memberName=name,
            amountZar=amount,
        )
        return entry

    def record_payment_round(
        self,
        payments: Iterable[Tuple[int, str, float]],
        round_date: str,
    ) -> List[Contribution]:
        """Record a batch of contributions dated ``round_date`` in a single write."""
        day = _require_iso_date(round_date, "round_date")
        entries: List[Contribution] = []
        for member_id, member_name, amount_zar in payments:
            amount = _require_positive(amount_zar, "amount_zar")
            name = _require_text(member_name, "member_name")
            if self.get_member_by_id(member_id) is None:
                raise MemberNotFoundError(member_id)
            entries.append(
                Contribution(date=day, member_id=member_id, member_name=name, amount_zar=amount)
            )
        if not entries:
            raise ValidationError("A payment round needs at least one payment")

        self._commit(
            replace(self._state, contributions=self._state.contributions + tuple(entries)),
            "paymentRound",
            date=day,
            paymentsRecorded=len(entries),
            totalZar=sum(e.amount_zar for e in entries),
        )
        return entries

    def add_purchase(
        self,
        btc_bought: float,
        price_zar: float,
        amount_invested: Optional[float] = None,
        notes: str = "",
    ) -> BtcPurchase:
        btc = _require_positive(btc_bought, "btc_bought")
        price = _require_positive(price_zar, "price_zar")
        invested = (
            _require_positive(amount_invested, "amount_invested")
            if amount_invested is not None
            else None
        )

        purchases = self._state.purchases
        last_holdings = purchases[-1].total_holdings if purchases else 0.0
        now = self._clock()
        entry = BtcPurchase(
            date=now.date().isoformat(),
            btc_bought=btc,
            total_holdings=last_holdings + btc,
            price_zar=price,
            amount_invested=invested,
            notes=notes,
            recorded_at=now.isoformat(),
        )
        fund_info = replace(
            self._state.fund_info,
            current_btc_holdings=entry.total_holdings,
            last_purchase_date=entry.date,
        )
        self._commit(
            replace(self._state, purchases=purchases + (entry,), fund_info=fund_info),
            "addPurchase",
            btcBought=btc,
            priceZar=price,
            amountInvested=invested,
            notes=notes,
        )
        return entry

    def add_member(
        self,
        name: str,
        role: str = MemberRole.MEMBER.value,
        joined_date: Optional[str] = None,
    ) -> Member:
        name = _require_text(name, "name")
        try:
            member_role = MemberRole(role)
        except ValueError:
            raise ValidationError(f"role must be one of {[r.value for r in MemberRole]}") from None
        joined = _require_iso_date(joined_date, "joined_date") if joined_date else self._today()
        if any(m.name == name for m in self._state.members):
            raise ValidationError(f"A member named {name!r} already exists")

        next_id = max((m.id for m in self._state.members), default=0) + 1
        member = Member(id=next_id, name=name, joined_date=joined, role=member_role)
        self._commit(
            replace(self._state, members=self._state.members + (member,)),
            "addMember",
            id=next_id,
            name=name,
            role=member_role.value,
            joinedDate=joined,
        )
        return member

    def update_member(
        self,
        member_id: int,
        *,
        status: Optional[str] = None,
        leave_date: Optional[str] = None,
    ) -> Member:
        """Patch a member's status and/or leave date.

        Leaving without a date stamps today; reactivating clears the leave date.
        """
        if status is None and leave_date is None:
            raise ValidationError("Provide status and/or leave_date")
        current = self.get_member_by_id(member_id)
        if current is None:
            raise MemberNotFoundError(member_id)

        try:
            new_status = MemberStatus(status) if status is not None else current.status
        except ValueError:
            raise ValidationError(f"status must be one of {[s.value for s in MemberStatus]}") from None
        if leave_date is not None:
            leave_date = _require_iso_date(leave_date, "leave_date")

        if new_status == MemberStatus.LEFT:
            new_leave = leave_date or current.leave_date or self._today()
        elif leave_date is not None:
            raise ValidationError("leave_date can only be set on a member who has left")
        else:
            new_leave = None

        updated = replace(current, status=new_status, leave_date=new_leave)
        members = tuple(updated if m.id == member_id else m for m in self._state.members)
        self._commit(
            replace(self._state, members=members),
            "updateMember",
            id=member_id,
            patch={"status": status, "leaveDate": leave_date},
        )
        return updated

    def adjust_holdings(self, new_holdings: float, reason: str) -> HoldingsAdjustment:
        """Overwrite the cached BTC holdings, e.g. to reconcile with the wallet."""
        if isinstance(new_holdings, bool) or not isinstance(new_holdings, (int, float)):
            raise ValidationError("new_holdings must be a number")
        if not math.isfinite(new_holdings) or new_holdings < 0:
            raise ValidationError("new_holdings must be zero or greater")
        reason = _require_text(reason, "reason")

        previous = self._state.fund_info.current_btc_holdings
        fund_info = replace(self._state.fund_info, current_btc_holdings=float(new_holdings))
        self._commit(
            replace(self._state, fund_info=fund_info),
            "adjustHoldings",
            previous=previous,
            current=float(new_holdings),
            reason=reason,
        )
        return HoldingsAdjustment(previous=previous, current=float(new_holdings), reason=reason)

    def record_buyout(self, buyer: str, seller: str, amount_zar: float, notes: str = "") -> Buyout:
        """Transfer a departing member's contribution credit to ``buyer``."""
        buyer = _require_text(buyer, "buyer")
        seller = _require_text(seller, "seller")
        amount = _require_positive(amount_zar, "amount_zar")
        if buyer == seller:
            raise ValidationError("buyer and seller must differ")
        known = {m.name for m in self._state.members}
        for name in (buyer, seller):
            if name not in known:
                raise ValidationError(f"Unknown member {name!r}")

        buyout = Buyout(date=self._today(), buyer=buyer, seller=seller, amount_zar=amount, notes=notes)
        self._commit(
            replace(self._state, buyouts=self._state.buyouts + (buyout,)),
            "recordBuyout",
            buyer=buyer,
            seller=seller,
            amountZar=amount,
        )
        return buyout

    # ------------------ Internals ------------------ #
    def _today(self) -> str:
        return self._clock().date().isoformat()

    def _commit(self, state: FundState, action: str, **audit_fields) -> None:
        summary = build_summary(state, self._clock().isoformat())
        self._repository.save(state, summary)
        self._state = state
        self._summary = summary
        logger.info("Fund ledger %s committed", action)
        self._audit.append(action, **audit_fields)

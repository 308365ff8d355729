"""Pooled Bitcoin fund domain package."""

from .exceptions import FundError, MemberNotFoundError, StorageError, ValidationError
from .ledger import FundLedger, build_summary
from .messages import MessageLevel, ServiceMessage
from .models import (
    BtcPrice,
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
    MemberValue,
    PortfolioSnapshot,
    PricePoint,
)
from .repositories import AuditLog, FundRepository
from .services import (
    AnalyticsResult,
    BtcPriceService,
    MemberAnalytics,
    PriceCache,
    calculate_portfolio,
    compute_analytics,
)

__all__ = [
    "AnalyticsResult",
    "AuditLog",
    "BtcPrice",
    "BtcPriceService",
    "BtcPurchase",
    "Buyout",
    "Contribution",
    "FundError",
    "FundInfo",
    "FundLedger",
    "FundRepository",
    "FundState",
    "FundSummary",
    "HoldingsAdjustment",
    "LedgerEntry",
    "LedgerPage",
    "Member",
    "MemberAnalytics",
    "MemberNotFoundError",
    "MemberRole",
    "MemberShare",
    "MemberStatus",
    "MemberValue",
    "MessageLevel",
    "PortfolioSnapshot",
    "PriceCache",
    "PricePoint",
    "ServiceMessage",
    "StorageError",
    "ValidationError",
    "build_summary",
    "calculate_portfolio",
    "compute_analytics",
]

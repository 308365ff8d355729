import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from btcfund import FundLedger, FundRepository

FIXED_NOW = datetime(2024, 6, 15, 10, 30, tzinfo=timezone.utc)

FUND_DATA = {
    "members": [
        {"id": 1, "name": "Alice", "joined_date": "2021-10-31", "leave_date": None, "status": "active", "role": "admin"},
        {"id": 2, "name": "Bob", "joined_date": "2021-10-31", "leave_date": None, "status": "active", "role": "member"},
        {"id": 3, "name": "Charlie", "joined_date": "2022-01-01", "leave_date": "2023-06-01", "status": "left", "role": "member"},
    ],
    "btc_purchases": [
        {"date": "2022-01-15", "btc_bought": 0.01, "total_holdings": 0.01, "price_zar": 500000, "amount_invested": 5000},
        {"date": "2022-06-15", "btc_bought": 0.02, "total_holdings": 0.03, "price_zar": 600000, "amount_invested": 12000},
    ],
    "contributions": [
        {"date": "2021-11-01", "member_id": 1, "member_name": "Alice", "amount_zar": 5000, "type": "contribution"},
        {"date": "2021-11-01", "member_id": 2, "member_name": "Bob", "amount_zar": 3000, "type": "contribution"},
        {"date": "2022-01-01", "member_id": 1, "member_name": "Alice", "amount_zar": 2000, "type": "contribution"},
    ],
    "fund_info": {
        "name": "Ryder Cup 2031 Fund",
        "target_date": "2031-09-26",
        "target_amount_zar": 1000000,
        "created_date": "2021-10-01",
        "description": "Pooled Bitcoin investment to fund a Ryder Cup trip",
        "btc_purchaser": "Alice",
        "current_btc_holdings": 0.03,
        "last_purchase_date": "2022-06-15",
        "member_transitions": {"Frank_left": "2023-09-30", "Mearp_joined": "2023-10-01"},
    },
}


@pytest.fixture()
def data_dir(tmp_path) -> Path:
    (tmp_path / "historical_data.json").write_text(json.dumps(FUND_DATA), encoding="utf-8")
    return tmp_path


@pytest.fixture()
def repository(data_dir) -> FundRepository:
    return FundRepository(data_dir)


@pytest.fixture()
def ledger(repository) -> FundLedger:
    return FundLedger(repository, clock=lambda: FIXED_NOW)


@pytest.fixture()
def audit_entries(data_dir):
    def _read() -> list:
        path = data_dir / "audit-log.jsonl"
        return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]

    return _read

"""
models.py
Domain records (transactions, members, check-ins) and derived report types.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date

logger = logging.getLogger(__name__)

ALL = "all"

MEMBERSHIP_TYPES = ["Bronze", "Silver", "Gold", "VIP", "Guest"]
PAYMENT_METHODS = ["cash", "card", "mobile"]


@dataclass(frozen=True)
class LineItem:
    name: str
    unit_price: float
    quantity: int

    @property
    def revenue(self) -> float:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        # Stored shape of one cart line
        return {"name": self.name, "price": self.unit_price, "quantity": self.quantity}


def _quantity(value) -> int:
    number = float(value)
    if not number.is_integer():
        raise ValueError(f"quantity {value!r} is not a whole number")
    return int(number)


def parse_items(raw, transaction_id=None) -> tuple[LineItem, ...]:
    """
    Decode the JSON item list stored with a transaction.
    A payload that can't be decoded (bad JSON, wrong shape, non-numeric price/quantity)
    is treated as an empty list so one bad record doesn't break a whole report.
    """
    if raw is None or raw == "":
        return ()
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if not isinstance(data, list):
            raise ValueError("item payload is not a list")
        return tuple(
            LineItem(name=str(it["name"]), unit_price=float(it["price"]), quantity=_quantity(it["quantity"]))
            for it in data
        )
    except (ValueError, TypeError, KeyError) as exc:
        logger.warning("Ignoring malformed items for transaction %s: %s", transaction_id, exc)
        return ()


def dump_items(items) -> str:
    return json.dumps([it.to_dict() for it in items])


@dataclass(frozen=True)
class Transaction:
    id: int | None
    member_name: str
    membership_type: str
    items: tuple[LineItem, ...]
    original_amount: float
    discount_amount: float
    final_amount: float
    payment_method: str
    transaction_date: str  # ISO datetime, e.g. 2024-01-01T22:15:00
    cashier_name: str
    is_refund: bool = False
    refund_reason: str | None = None

    @property
    def day(self) -> date:
        return date.fromisoformat(self.transaction_date[:10])

    @classmethod
    def from_row(cls, row) -> "Transaction":
        return cls(
            id=row["id"],
            member_name=row["member_name"],
            membership_type=row["membership_type"],
            items=parse_items(row["items"], row["id"]),
            original_amount=float(row["original_amount"]),
            discount_amount=float(row["discount_amount"]),
            final_amount=float(row["final_amount"]),
            payment_method=row["payment_method"],
            transaction_date=row["transaction_date"],
            cashier_name=row["cashier_name"],
            is_refund=bool(row["is_refund"]),
            refund_reason=row["refund_reason"],
        )

    def export_record(self) -> dict:
        """Flat shape used for table display and CSV export."""
        return {
            "id": self.id,
            "transaction_date": self.transaction_date,
            "member_name": self.member_name,
            "membership_type": self.membership_type,
            "items": ", ".join(f"{it.name} ({it.quantity})" for it in self.items),
            "original_amount": self.original_amount,
            "discount_amount": self.discount_amount,
            "final_amount": self.final_amount,
            "payment_method": self.payment_method,
            "cashier_name": self.cashier_name,
            "is_refund": self.is_refund,
            "refund_reason": self.refund_reason or "",
        }


@dataclass(frozen=True)
class Member:
    id: int | None
    name: str
    email: str
    phone: str
    membership_type: str
    join_date: str
    last_visit: str | None
    total_spent: float
    visit_count: int

    @classmethod
    def from_row(cls, row) -> "Member":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            membership_type=row["membership_type"],
            join_date=row["join_date"],
            last_visit=row["last_visit"],
            total_spent=float(row["total_spent"]),
            visit_count=int(row["visit_count"]),
        )


@dataclass(frozen=True)
class CheckIn:
    id: int | None
    member_id: int | None
    member_name: str
    check_in_time: str  # ISO datetime

    @property
    def day(self) -> date:
        return date.fromisoformat(self.check_in_time[:10])

    @classmethod
    def from_row(cls, row) -> "CheckIn":
        return cls(
            id=row["id"],
            member_id=row["member_id"],
            member_name=row["member_name"],
            check_in_time=row["check_in_time"],
        )


@dataclass(frozen=True)
class StaffUser:
    id: int
    username: str
    name: str
    role: str  # cashier/manager/admin


@dataclass(frozen=True)
class ReportCriteria:
    """Date window (inclusive, day granularity) plus equality filters."""
    start_date: date
    end_date: date
    membership_type: str = ALL
    payment_method: str = ALL


@dataclass(frozen=True)
class ItemSales:
    item: str
    quantity: int
    revenue: float


@dataclass(frozen=True)
class PaymentBreakdown:
    method: str
    amount: float
    count: int


@dataclass(frozen=True)
class DailyReport:
    date: str
    total_sales: float
    total_refunds: float
    net_revenue: float
    transaction_count: int
    member_check_ins: int
    top_items: list[ItemSales] = field(default_factory=list)
    payment_methods: list[PaymentBreakdown] = field(default_factory=list)

    def export_record(self) -> dict:
        """Flat shape for CSV export; ranked lists become `name xN (amount)` text."""
        return {
            "date": self.date,
            "total_sales": self.total_sales,
            "total_refunds": self.total_refunds,
            "net_revenue": self.net_revenue,
            "transaction_count": self.transaction_count,
            "member_check_ins": self.member_check_ins,
            "top_items": "; ".join(f"{i.item} x{i.quantity} ({i.revenue:.2f})" for i in self.top_items),
            "payment_methods": "; ".join(f"{p.method} x{p.count} ({p.amount:.2f})" for p in self.payment_methods),
        }


@dataclass(frozen=True)
class SummaryStats:
    total_sales: float = 0.0
    total_refunds: float = 0.0
    net_revenue: float = 0.0
    total_transactions: int = 0
    sales_count: int = 0
    refund_count: int = 0
    average_transaction: float = 0.0
    top_membership_type: str = "None"
    top_payment_method: str = "None"

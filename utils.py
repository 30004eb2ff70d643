"""
utils.py
Billing math, validation, dates, exports, sample data.
"""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timedelta

import pandas as pd

import config
import db
from models import MEMBERSHIP_TYPES, PAYMENT_METHODS, LineItem, Transaction

# Bar / door menu (price in USD)
MENU = {
    "Entry Fee": 20.0,
    "Beer": 8.0,
    "House Wine": 10.0,
    "Cocktail": 14.0,
    "Shot": 7.0,
    "Soft Drink": 4.0,
    "Water": 3.0,
    "Bottle Service": 250.0,
}

# Member discount on the cart subtotal
DISCOUNT_RATES = {
    "Bronze": 0.05,
    "Silver": 0.10,
    "Gold": 0.15,
    "VIP": 0.20,
    "Guest": 0.0,
}


def today_iso() -> str:
    return date.today().isoformat()


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def default_report_range(today: date | None = None) -> tuple[date, date]:
    end = today or date.today()
    return end - timedelta(days=config.DEFAULT_REPORT_DAYS), end


def format_currency(amount: float) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def discount_rate(membership_type: str) -> float:
    return DISCOUNT_RATES.get(membership_type, 0.0)


def cart_totals(cart: list[LineItem], membership_type: str) -> tuple[float, float, float]:
    """
    Returns (original, discount, final) rounded to cents.
    final is derived from the rounded parts so final == original - discount always holds.
    """
    original = round(sum(line.revenue for line in cart), 2)
    discount = round(original * discount_rate(membership_type), 2)
    return original, discount, round(original - discount, 2)


def add_to_cart(cart: list[LineItem], name: str, quantity: int = 1) -> list[LineItem]:
    """Return a new cart with `quantity` more of a menu item (merged into an existing line)."""
    if name not in MENU:
        raise ValueError(f"Unknown item: {name}")
    if quantity <= 0:
        raise ValueError("Quantity must be > 0.")
    updated = []
    merged = False
    for line in cart:
        if line.name == name:
            line = LineItem(name=name, unit_price=line.unit_price, quantity=line.quantity + quantity)
            merged = True
        updated.append(line)
    if not merged:
        updated.append(LineItem(name=name, unit_price=MENU[name], quantity=quantity))
    return updated


def remove_from_cart(cart: list[LineItem], name: str) -> list[LineItem]:
    return [line for line in cart if line.name != name]


def build_sale(cart: list[LineItem], member_name: str, membership_type: str, payment_method: str,
               cashier_name: str, when: datetime | None = None) -> Transaction:
    original, discount, final = cart_totals(cart, membership_type)
    return Transaction(
        id=None,
        member_name=member_name,
        membership_type=membership_type,
        items=tuple(cart),
        original_amount=original,
        discount_amount=discount,
        final_amount=final,
        payment_method=payment_method,
        transaction_date=(when or datetime.now()).isoformat(timespec="seconds"),
        cashier_name=cashier_name,
    )


def search_members(members, query: str):
    q = query.strip().lower()
    if not q:
        return list(members)
    return [m for m in members if q in m.name.lower() or q in m.email.lower() or q in m.phone.lower()]


def validate_member_inputs(name: str, email: str, phone: str, membership_type: str) -> list[str]:
    errors: list[str] = []
    if not name.strip():
        errors.append("Name is required.")
    if "@" not in email:
        errors.append("A valid email is required.")
    if not phone.strip():
        errors.append("Phone is required.")
    if membership_type not in MEMBERSHIP_TYPES:
        errors.append("Unknown membership type.")
    return errors


def validate_checkout(cart: list[LineItem], payment_method: str) -> list[str]:
    errors: list[str] = []
    if not cart:
        errors.append("Cart is empty.")
    if payment_method not in PAYMENT_METHODS:
        errors.append("Choose a payment method.")
    return errors


def validate_refund(txn: Transaction | None, reason: str, already_refunded: bool = False) -> list[str]:
    errors: list[str] = []
    if txn is None:
        errors.append("Transaction not found.")
    elif txn.is_refund:
        errors.append("Refund transactions can't be refunded.")
    elif already_refunded:
        errors.append("Transaction already refunded.")
    if not reason.strip():
        errors.append("A refund reason is required.")
    return errors


def frame(records, columns: list[str] | None = None) -> pd.DataFrame:
    rows = []
    for r in records:
        if hasattr(r, "export_record"):
            rows.append(r.export_record())
        elif is_dataclass(r):
            rows.append(asdict(r))
        else:
            rows.append(dict(r))
    if not rows:
        return pd.DataFrame(columns=columns or [])
    return pd.DataFrame(rows)


def to_csv_bytes(csv_rows) -> bytes:
    return "\n".join([csv_rows.header, *csv_rows.rows]).encode("utf-8")


def insert_sample_data(owner_id: int = config.VENUE_ID) -> None:
    """
    Insert 4 members, a few sales over the last days, one refund and some check-ins
    (safe to run multiple times: adds new rows each time).
    """
    today = datetime.now().replace(microsecond=0)

    members = [
        ("Lena Park", "lena@example.com", "555-0101", "VIP"),
        ("Marco Diaz", "marco@example.com", "555-0102", "Gold"),
        ("Sam Reed", "sam@example.com", "555-0103", "Silver"),
        ("Guest Walk-in", "guest@example.com", "555-0100", "Guest"),
    ]
    ids = [db.insert_member(owner_id, *m) for m in members]

    carts = [
        (0, [("Entry Fee", 1), ("Cocktail", 3)], "card", 0),
        (1, [("Entry Fee", 1), ("Beer", 4)], "cash", 0),
        (2, [("Beer", 2), ("Shot", 2)], "mobile", 1),
        (0, [("Bottle Service", 1)], "card", 2),
        (3, [("Entry Fee", 1), ("Soft Drink", 1)], "cash", 3),
    ]
    sale_ids = []
    for member_idx, lines, method, days_ago in carts:
        name, _, _, mtype = members[member_idx]
        cart: list[LineItem] = []
        for item, qty in lines:
            cart = add_to_cart(cart, item, qty)
        when = today - timedelta(days=days_ago)
        sale = build_sale(cart, name, mtype, method, "admin", when=when)
        sale_ids.append(db.insert_transaction(owner_id, sale, member_id=ids[member_idx]))
        db.insert_check_in(owner_id, ids[member_idx], when=when.isoformat())

    db.insert_refund(owner_id, sale_ids[2], "Drinks spilled", "admin")

"""
db.py
SQLite helpers + initialization (tables, default admin) and the list queries
the Reports page aggregates over.
"""

from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta

import config
from models import ALL, CheckIn, Member, ReportCriteria, Transaction, dump_items

logger = logging.getLogger(__name__)


class UpstreamFetchError(Exception):
    """Report data could not be loaded; the page shows a retryable notice."""


@contextmanager
def get_conn():
    conn = sqlite3.connect(config.DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def executemany(sql: str, seq_of_params: list[tuple]) -> None:
    with get_conn() as conn:
        conn.executemany(sql, seq_of_params)


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchall()


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _create_tables() -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS staff_users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL CHECK(role IN ('cashier','manager','admin')),
            created_at TEXT NOT NULL
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS members (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            email TEXT NOT NULL,
            phone TEXT NOT NULL,
            membership_type TEXT NOT NULL,
            join_date TEXT NOT NULL,
            last_visit TEXT,
            total_spent REAL NOT NULL DEFAULT 0,
            visit_count INTEGER NOT NULL DEFAULT 0
        )
        """
    )

    # items holds a JSON array of {name, price, quantity}
    execute(
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id INTEGER NOT NULL,
            member_id INTEGER,
            member_name TEXT NOT NULL,
            membership_type TEXT NOT NULL,
            items TEXT NOT NULL DEFAULT '[]',
            original_amount REAL NOT NULL,
            discount_amount REAL NOT NULL,
            final_amount REAL NOT NULL,
            payment_method TEXT NOT NULL,
            transaction_date TEXT NOT NULL,
            cashier_name TEXT NOT NULL,
            is_refund INTEGER NOT NULL DEFAULT 0,
            refund_reason TEXT,
            refunded_transaction_id INTEGER,
            FOREIGN KEY(member_id) REFERENCES members(id) ON DELETE SET NULL
        )
        """
    )
    # Databases created before refunds were linked to their sale
    columns = {r["name"] for r in fetch_all("PRAGMA table_info(transactions)")}
    if "refunded_transaction_id" not in columns:
        execute("ALTER TABLE transactions ADD COLUMN refunded_transaction_id INTEGER")

    execute(
        """
        CREATE TABLE IF NOT EXISTS check_ins (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id INTEGER NOT NULL,
            member_id INTEGER,
            member_name TEXT NOT NULL,
            check_in_time TEXT NOT NULL,
            FOREIGN KEY(member_id) REFERENCES members(id) ON DELETE SET NULL
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )


def _get_setting(key: str, default: str | None = None) -> str | None:
    row = fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,))
    if row:
        return str(row["value"])
    return default


def _set_setting(key: str, value: str) -> None:
    execute(
        """
        INSERT INTO app_settings(key, value) VALUES(?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
    )


def init_db(default_admin_hash: str) -> None:
    """
    Initialize the database.
    - Create tables
    - Insert default admin (admin/admin123) if no staff exists
    - Force password change on first login
    """
    _create_tables()

    staff = fetch_one("SELECT id FROM staff_users LIMIT 1")
    if not staff:
        insert_staff("admin", "Administrator", default_admin_hash, "admin")
        _set_setting("force_password_change", "1")
        logger.info("Created default admin account")
    elif _get_setting("force_password_change") is None:
        _set_setting("force_password_change", "0")


def is_force_password_change() -> bool:
    return _get_setting("force_password_change") == "1"


def clear_force_password_change() -> None:
    _set_setting("force_password_change", "0")


# ---------- Staff ----------

def insert_staff(username: str, name: str, password_hash: str, role: str) -> int:
    return execute(
        "INSERT INTO staff_users(username, name, password_hash, role, created_at) VALUES(?,?,?,?,?)",
        (username, name, password_hash, role, now_iso()),
    )


def list_staff() -> list[sqlite3.Row]:
    return fetch_all("SELECT id, username, name, role, created_at FROM staff_users ORDER BY username ASC")


# ---------- Members ----------

def list_members(owner_id: int, search: str = "") -> list[Member]:
    sql = "SELECT * FROM members WHERE owner_id = ?"
    params: list = [owner_id]
    if search.strip():
        sql += " AND (name LIKE ? OR email LIKE ? OR phone LIKE ?)"
        like = f"%{search.strip()}%"
        params.extend([like, like, like])
    sql += " ORDER BY total_spent DESC, id ASC"
    return [Member.from_row(r) for r in fetch_all(sql, tuple(params))]


def get_member(member_id: int) -> Member | None:
    row = fetch_one("SELECT * FROM members WHERE id = ?", (member_id,))
    return Member.from_row(row) if row else None


def insert_member(owner_id: int, name: str, email: str, phone: str, membership_type: str,
                  join_date: str | None = None) -> int:
    return execute(
        """
        INSERT INTO members(owner_id, name, email, phone, membership_type, join_date)
        VALUES(?,?,?,?,?,?)
        """,
        (owner_id, name, email, phone, membership_type, join_date or date.today().isoformat()),
    )


def update_member(member_id: int, name: str, email: str, phone: str, membership_type: str) -> None:
    execute(
        "UPDATE members SET name=?, email=?, phone=?, membership_type=? WHERE id=?",
        (name, email, phone, membership_type, member_id),
    )


def delete_member(member_id: int) -> None:
    execute("DELETE FROM members WHERE id = ?", (member_id,))


# ---------- Transactions ----------

def _day_bounds(start_date: date, end_date: date) -> tuple[str, str]:
    # [start 00:00, day after end 00:00) covers the whole end day
    return start_date.isoformat(), (end_date + timedelta(days=1)).isoformat()


def list_transactions(owner_id: int, start_date: date, end_date: date,
                      membership_type: str = ALL, payment_method: str = ALL) -> list[Transaction]:
    lo, hi = _day_bounds(start_date, end_date)
    sql = "SELECT * FROM transactions WHERE owner_id = ? AND transaction_date >= ? AND transaction_date < ?"
    params: list = [owner_id, lo, hi]
    if membership_type != ALL:
        sql += " AND membership_type = ?"
        params.append(membership_type)
    if payment_method != ALL:
        sql += " AND payment_method = ?"
        params.append(payment_method)
    sql += " ORDER BY transaction_date DESC, id DESC"
    return [Transaction.from_row(r) for r in fetch_all(sql, tuple(params))]


def get_transaction(transaction_id: int) -> Transaction | None:
    row = fetch_one("SELECT * FROM transactions WHERE id = ?", (transaction_id,))
    return Transaction.from_row(row) if row else None


def _insert_transaction(conn, owner_id: int, txn: Transaction, member_id: int | None,
                        refunded_transaction_id: int | None = None) -> int:
    cur = conn.execute(
        """
        INSERT INTO transactions(owner_id, member_id, member_name, membership_type, items,
            original_amount, discount_amount, final_amount, payment_method,
            transaction_date, cashier_name, is_refund, refund_reason, refunded_transaction_id)
        VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?)
        """,
        (
            owner_id, member_id, txn.member_name, txn.membership_type, dump_items(txn.items),
            txn.original_amount, txn.discount_amount, txn.final_amount, txn.payment_method,
            txn.transaction_date, txn.cashier_name, int(txn.is_refund), txn.refund_reason,
            refunded_transaction_id,
        ),
    )
    if member_id is not None:
        delta = -txn.final_amount if txn.is_refund else txn.final_amount
        conn.execute("UPDATE members SET total_spent = total_spent + ? WHERE id = ?", (delta, member_id))
    return cur.lastrowid


def insert_transaction(owner_id: int, txn: Transaction, member_id: int | None = None) -> int:
    """Store a checkout. Sales add to the member's total spent."""
    with get_conn() as conn:
        return _insert_transaction(conn, owner_id, txn, member_id)


def is_refunded(transaction_id: int) -> bool:
    row = fetch_one("SELECT 1 FROM transactions WHERE refunded_transaction_id = ? LIMIT 1", (transaction_id,))
    return row is not None


def insert_refund(owner_id: int, original_id: int, reason: str, cashier_name: str) -> int:
    """
    Record a refund of a sale as its own transaction linked to the sale.
    The sale itself is left untouched; each sale can be refunded once.
    """
    with get_conn() as conn:
        row = conn.execute("SELECT * FROM transactions WHERE id = ?", (original_id,)).fetchone()
        if row is None:
            raise ValueError(f"Transaction {original_id} not found.")
        original = Transaction.from_row(row)
        if original.is_refund:
            raise ValueError("A refund can't be refunded.")
        already = conn.execute(
            "SELECT 1 FROM transactions WHERE refunded_transaction_id = ? LIMIT 1", (original_id,)
        ).fetchone()
        if already:
            raise ValueError("Transaction already refunded.")
        refund = Transaction(
            id=None,
            member_name=original.member_name,
            membership_type=original.membership_type,
            items=original.items,
            original_amount=original.original_amount,
            discount_amount=original.discount_amount,
            final_amount=original.final_amount,
            payment_method=original.payment_method,
            transaction_date=now_iso(),
            cashier_name=cashier_name,
            is_refund=True,
            refund_reason=reason,
        )
        refund_id = _insert_transaction(conn, owner_id, refund, row["member_id"], refunded_transaction_id=original_id)
    logger.info("Refunded transaction %s as %s", original_id, refund_id)
    return refund_id


# ---------- Check-ins ----------

def list_check_ins(owner_id: int, start_date: date, end_date: date) -> list[CheckIn]:
    lo, hi = _day_bounds(start_date, end_date)
    rows = fetch_all(
        """
        SELECT * FROM check_ins
        WHERE owner_id = ? AND check_in_time >= ? AND check_in_time < ?
        ORDER BY check_in_time DESC
        """,
        (owner_id, lo, hi),
    )
    return [CheckIn.from_row(r) for r in rows]


def insert_check_in(owner_id: int, member_id: int, when: str | None = None) -> int:
    member = get_member(member_id)
    if member is None:
        raise ValueError(f"Member {member_id} not found.")
    when = when or now_iso()
    with get_conn() as conn:
        cur = conn.execute(
            "INSERT INTO check_ins(owner_id, member_id, member_name, check_in_time) VALUES(?,?,?,?)",
            (owner_id, member_id, member.name, when),
        )
        conn.execute(
            "UPDATE members SET visit_count = visit_count + 1, last_visit = ? WHERE id = ?",
            (when, member_id),
        )
        return cur.lastrowid


# ---------- Report snapshot ----------

@dataclass(frozen=True)
class ReportInputs:
    transactions: list[Transaction]
    check_ins: list[CheckIn]
    members: list[Member]


def fetch_report_inputs(owner_id: int, criteria: ReportCriteria) -> ReportInputs:
    """
    Load transactions, check-ins and members in parallel (independent reads,
    one connection each) and hand back one snapshot for aggregation.
    """
    with ThreadPoolExecutor(max_workers=3) as pool:
        txns = pool.submit(
            list_transactions, owner_id, criteria.start_date, criteria.end_date,
            criteria.membership_type, criteria.payment_method,
        )
        checks = pool.submit(list_check_ins, owner_id, criteria.start_date, criteria.end_date)
        members = pool.submit(list_members, owner_id)
        try:
            return ReportInputs(transactions=txns.result(), check_ins=checks.result(), members=members.result())
        except sqlite3.Error as exc:
            logger.exception("Failed to load report data")
            raise UpstreamFetchError("Failed to load reports data.") from exc

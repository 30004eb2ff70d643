"""
reports.py
Transaction aggregation for the Reports page: summary stats, daily breakdowns,
filtered views and CSV rows.

Everything here is a pure function of its arguments (no session or DB access).
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import asdict, dataclass, is_dataclass
from datetime import date, timedelta
from typing import Iterable, Mapping, Sequence

import config
from models import (
    ALL,
    CheckIn,
    DailyReport,
    ItemSales,
    PaymentBreakdown,
    ReportCriteria,
    SummaryStats,
    Transaction,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportRows:
    fields: list[str]
    rows: list[list[str]]


@dataclass(frozen=True)
class CsvRows:
    header: str
    rows: list[str]


def filter_transactions(transactions: Iterable[Transaction], criteria: ReportCriteria) -> list[Transaction]:
    return [
        t for t in transactions
        if criteria.start_date <= t.day <= criteria.end_date
        and (criteria.membership_type == ALL or t.membership_type == criteria.membership_type)
        and (criteria.payment_method == ALL or t.payment_method == criteria.payment_method)
    ]


def sales(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [t for t in transactions if not t.is_refund]


def refunds(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [t for t in transactions if t.is_refund]


def _top_key(transactions: Sequence[Transaction], attr: str) -> str:
    totals: dict[str, float] = {}
    for t in transactions:
        key = getattr(t, attr)
        totals[key] = totals.get(key, 0.0) + t.final_amount
    if not totals:
        return "None"
    # max() keeps the first key on ties; dicts keep insertion order
    return max(totals, key=totals.get)


def summarize(transactions: Sequence[Transaction]) -> SummaryStats:
    sold = sales(transactions)
    refunded = refunds(transactions)
    total_sales = sum((t.final_amount for t in sold), 0.0)
    total_refunds = sum((t.final_amount for t in refunded), 0.0)
    net_revenue = total_sales - total_refunds
    count = len(transactions)

    stats = SummaryStats(
        total_sales=total_sales,
        total_refunds=total_refunds,
        net_revenue=net_revenue,
        total_transactions=count,
        sales_count=len(sold),
        refund_count=len(refunded),
        average_transaction=net_revenue / count if count else 0.0,
        top_membership_type=_top_key(transactions, "membership_type"),
        top_payment_method=_top_key(transactions, "payment_method"),
    )
    logger.debug("Summary: %d transactions, net revenue %.2f", count, net_revenue)
    return stats


def top_items(day_sales: Iterable[Transaction], limit: int = config.TOP_ITEMS_LIMIT) -> list[ItemSales]:
    grouped: dict[str, list] = {}
    for t in day_sales:
        for line in t.items:
            entry = grouped.setdefault(line.name, [0, 0.0])
            entry[0] += line.quantity
            entry[1] += line.revenue
    ranked = sorted(grouped.items(), key=lambda kv: kv[1][1], reverse=True)
    return [ItemSales(item=name, quantity=qty, revenue=rev) for name, (qty, rev) in ranked[:limit]]


def payment_breakdown(day_transactions: Iterable[Transaction]) -> list[PaymentBreakdown]:
    grouped: dict[str, list] = {}
    for t in day_transactions:
        entry = grouped.setdefault(t.payment_method, [0.0, 0])
        entry[0] += t.final_amount
        entry[1] += 1
    ranked = sorted(grouped.items(), key=lambda kv: kv[1][0], reverse=True)
    return [PaymentBreakdown(method=m, amount=amount, count=n) for m, (amount, n) in ranked]


def build_daily_reports(
    transactions: Iterable[Transaction],
    check_ins: Iterable[CheckIn],
    start_date: date,
    end_date: date,
) -> list[DailyReport]:
    """
    One report per calendar day in [start_date, end_date], most recent day first.
    Days without activity still get a report with zero totals and empty lists.
    """
    by_day: dict[date, list[Transaction]] = {}
    for t in transactions:
        by_day.setdefault(t.day, []).append(t)

    check_ins_by_day: dict[date, int] = {}
    for c in check_ins:
        check_ins_by_day[c.day] = check_ins_by_day.get(c.day, 0) + 1

    reports: list[DailyReport] = []
    day = start_date
    while day <= end_date:
        day_transactions = by_day.get(day, [])
        day_sales = sales(day_transactions)
        total_sales = sum((t.final_amount for t in day_sales), 0.0)
        total_refunds = sum((t.final_amount for t in refunds(day_transactions)), 0.0)
        reports.append(
            DailyReport(
                date=day.isoformat(),
                total_sales=total_sales,
                total_refunds=total_refunds,
                net_revenue=total_sales - total_refunds,
                transaction_count=len(day_transactions),
                member_check_ins=check_ins_by_day.get(day, 0),
                top_items=top_items(day_sales),
                payment_methods=payment_breakdown(day_transactions),
            )
        )
        day += timedelta(days=1)

    reports.reverse()
    return reports


def _as_mapping(record) -> Mapping:
    if hasattr(record, "export_record"):
        return record.export_record()
    if is_dataclass(record) and not isinstance(record, type):
        return asdict(record)
    return record


def _cell(value) -> str:
    return "" if value is None else str(value)


def export_rows(records: Sequence) -> ExportRows | None:
    """
    Flatten records (dataclasses or dicts) into string rows.
    Header comes from the first record's fields. Returns None when there is nothing to export.
    """
    if not records:
        return None
    mapped = [_as_mapping(r) for r in records]
    fields = list(mapped[0].keys())
    rows = [[_cell(m.get(f)) for f in fields] for m in mapped]
    return ExportRows(fields=fields, rows=rows)


def _csv_line(values: list[str], delimiter: str) -> str:
    buf = io.StringIO()
    csv.writer(buf, delimiter=delimiter, lineterminator="").writerow(values)
    return buf.getvalue()


# ---------- Page-facing API ----------

def get_summary(transactions: Sequence[Transaction], criteria: ReportCriteria | None = None) -> SummaryStats:
    if criteria is not None:
        transactions = filter_transactions(transactions, criteria)
    return summarize(transactions)


def get_daily_reports(transactions, check_ins, start_date: date, end_date: date) -> list[DailyReport]:
    return build_daily_reports(transactions, check_ins, start_date, end_date)


def to_csv_rows(records: Sequence, delimiter: str = config.CSV_DELIMITER) -> CsvRows | None:
    """CSV lines (QUOTE_MINIMAL: cells holding the delimiter, quotes or newlines get quoted)."""
    exported = export_rows(records)
    if exported is None:
        return None
    return CsvRows(
        header=_csv_line(exported.fields, delimiter),
        rows=[_csv_line(r, delimiter) for r in exported.rows],
    )


def export_filename(name: str, criteria: ReportCriteria) -> str:
    return f"{name}_{criteria.start_date.isoformat()}_to_{criteria.end_date.isoformat()}.csv"

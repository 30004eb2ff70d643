import csv
import io
from dataclasses import replace
from datetime import date

import pytest

import reports
from models import CheckIn, LineItem, ReportCriteria, Transaction, parse_items

JAN_1 = date(2024, 1, 1)
JAN_3 = date(2024, 1, 3)


def make_txn(amount, day="2024-01-01", refund=False, items=(), membership="Gold", method="cash", txn_id=None):
    return Transaction(
        id=txn_id,
        member_name="Test Member",
        membership_type=membership,
        items=tuple(items),
        original_amount=amount,
        discount_amount=0.0,
        final_amount=amount,
        payment_method=method,
        transaction_date=f"{day}T22:00:00",
        cashier_name="admin",
        is_refund=refund,
        refund_reason="spilled" if refund else None,
    )


def beer(qty):
    return LineItem(name="Beer", unit_price=8.0, quantity=qty)


def test_summary_example():
    """A sale of 25 and a refund of 10 on the same day"""
    txns = [make_txn(25), make_txn(10, refund=True)]
    stats = reports.summarize(txns)

    assert stats.total_sales == 25
    assert stats.total_refunds == 10
    assert stats.net_revenue == 15
    assert stats.average_transaction == 7.5
    assert stats.sales_count == 1
    assert stats.refund_count == 1


def test_summary_empty_has_zero_average():
    stats = reports.summarize([])
    assert stats.average_transaction == 0.0
    assert stats.total_transactions == 0
    assert stats.top_membership_type == "None"
    assert stats.top_payment_method == "None"


def test_summary_net_revenue_is_sales_minus_refunds():
    txns = [make_txn(12.5), make_txn(40), make_txn(7.25, refund=True), make_txn(3, refund=True)]
    stats = reports.summarize(txns)
    assert stats.net_revenue == stats.total_sales - stats.total_refunds


def test_top_keys_count_refunds_and_break_ties_by_first_seen():
    txns = [
        make_txn(10, membership="Silver", method="card"),
        make_txn(10, membership="VIP", method="cash"),
        make_txn(5, membership="Gold", method="mobile", refund=True),
        make_txn(6, membership="Gold", method="mobile"),
    ]
    stats = reports.summarize(txns)
    # Gold: 5 + 6 = 11 (refund amounts are included)
    assert stats.top_membership_type == "Gold"
    assert stats.top_payment_method == "mobile"

    tied = reports.summarize([make_txn(10, method="card"), make_txn(10, method="cash")])
    assert tied.top_payment_method == "card"


def test_filter_by_range_and_equality():
    txns = [
        make_txn(1, day="2024-01-04", membership="VIP", method="card"),
        make_txn(2, day="2024-01-03", membership="VIP", method="cash"),
        make_txn(3, day="2024-01-02", membership="Gold", method="card"),
        make_txn(4, day="2023-12-31", membership="VIP", method="card"),
    ]
    criteria = ReportCriteria(JAN_1, JAN_3, membership_type="VIP")
    assert [t.final_amount for t in reports.filter_transactions(txns, criteria)] == [2]

    by_method = ReportCriteria(JAN_1, JAN_3, payment_method="card")
    assert [t.final_amount for t in reports.filter_transactions(txns, by_method)] == [3]


def test_filter_all_all_returns_input_unchanged():
    txns = [make_txn(1, day="2024-01-03"), make_txn(2, day="2024-01-02"), make_txn(3, day="2024-01-01")]
    result = reports.filter_transactions(txns, ReportCriteria(JAN_1, JAN_3))
    assert result == txns


def test_filter_includes_end_of_last_day():
    late = replace(make_txn(9, day="2024-01-03"), transaction_date="2024-01-03T23:59:59")
    assert reports.filter_transactions([late], ReportCriteria(JAN_1, JAN_3)) == [late]


def test_sales_and_refunds_views():
    txns = [make_txn(1), make_txn(2, refund=True), make_txn(3)]
    assert [t.final_amount for t in reports.sales(txns)] == [1, 3]
    assert [t.final_amount for t in reports.refunds(txns)] == [2]


def test_daily_reports_cover_every_day_newest_first():
    txns = [make_txn(20, day="2024-01-02")]
    daily = reports.build_daily_reports(txns, [], JAN_1, JAN_3)

    assert len(daily) == (JAN_3 - JAN_1).days + 1
    assert [d.date for d in daily] == ["2024-01-03", "2024-01-02", "2024-01-01"]

    empty = daily[0]
    assert empty.total_sales == 0
    assert empty.total_refunds == 0
    assert empty.net_revenue == 0
    assert empty.transaction_count == 0
    assert empty.member_check_ins == 0
    assert empty.top_items == []
    assert empty.payment_methods == []

    assert daily[1].total_sales == 20


def test_daily_reports_reversed_range_is_empty():
    assert reports.build_daily_reports([], [], JAN_3, JAN_1) == []


def test_top_items_merges_same_item():
    """Two sales of Beer on one day collapse into one ranked line"""
    txns = [make_txn(16, items=[beer(2)]), make_txn(8, items=[beer(1)])]
    day = reports.build_daily_reports(txns, [], JAN_1, JAN_1)[0]

    assert len(day.top_items) == 1
    top = day.top_items[0]
    assert (top.item, top.quantity, top.revenue) == ("Beer", 3, 24)


def test_top_items_ignore_refunds_and_keep_five_best():
    items = [LineItem(name=f"Item {i}", unit_price=float(i), quantity=1) for i in range(1, 8)]
    txns = [
        make_txn(28, items=items),
        make_txn(500, refund=True, items=[LineItem(name="Bottle Service", unit_price=500.0, quantity=1)]),
    ]
    day = reports.build_daily_reports(txns, [], JAN_1, JAN_1)[0]

    assert len(day.top_items) == 5
    assert [i.item for i in day.top_items] == ["Item 7", "Item 6", "Item 5", "Item 4", "Item 3"]
    revenues = [i.revenue for i in day.top_items]
    assert revenues == sorted(revenues, reverse=True)


def test_top_items_ties_keep_first_seen_order():
    txns = [make_txn(10, items=[LineItem("Shot", 5.0, 2), LineItem("Water", 10.0, 1)])]
    day = reports.build_daily_reports(txns, [], JAN_1, JAN_1)[0]
    assert [i.item for i in day.top_items] == ["Shot", "Water"]


def test_payment_methods_include_refunds_and_count_everything():
    txns = [
        make_txn(30, method="card"),
        make_txn(10, method="cash"),
        make_txn(15, method="cash", refund=True),
        make_txn(5, method="mobile"),
    ]
    day = reports.build_daily_reports(txns, [], JAN_1, JAN_1)[0]

    assert [(p.method, p.amount, p.count) for p in day.payment_methods] == [
        ("card", 30, 1),
        ("cash", 25, 2),
        ("mobile", 5, 1),
    ]
    assert sum(p.count for p in day.payment_methods) == day.transaction_count


def test_daily_check_ins_are_counted_per_day():
    check_ins = [
        CheckIn(id=1, member_id=1, member_name="A", check_in_time="2024-01-01T21:00:00"),
        CheckIn(id=2, member_id=2, member_name="B", check_in_time="2024-01-01T23:30:00"),
        CheckIn(id=3, member_id=1, member_name="A", check_in_time="2024-01-03T01:00:00"),
    ]
    daily = reports.build_daily_reports([], check_ins, JAN_1, JAN_3)
    assert [d.member_check_ins for d in daily] == [1, 0, 2]


def test_malformed_items_do_not_break_report():
    bad = make_txn(50, items=parse_items("{not json", transaction_id=7))
    good = make_txn(16, items=[beer(2)])
    day = reports.build_daily_reports([bad, good], [], JAN_1, JAN_1)[0]

    assert day.total_sales == 66
    assert [i.item for i in day.top_items] == ["Beer"]


def test_export_rows_empty_is_no_data():
    assert reports.export_rows([]) is None
    assert reports.to_csv_rows([]) is None


def test_export_rows_stringifies_fields():
    records = [
        {"id": 1, "member_name": "Park, Lena", "final_amount": 25.0, "is_refund": False},
        {"id": 2, "member_name": "Sam", "final_amount": 10.0, "refund_reason": None},
    ]
    exported = reports.export_rows(records)

    assert exported.fields == ["id", "member_name", "final_amount", "is_refund"]
    assert exported.rows[0] == ["1", "Park, Lena", "25.0", "False"]
    assert exported.rows[1] == ["2", "Sam", "10.0", ""]


def test_csv_rows_quote_values_with_delimiter():
    records = [
        {"id": 1, "member_name": "Park, Lena", "final_amount": 25.0, "is_refund": False},
        {"id": 2, "member_name": "Sam", "final_amount": 10.0, "is_refund": True},
    ]
    csv_rows = reports.to_csv_rows(records)

    assert csv_rows.header == "id,member_name,final_amount,is_refund"
    assert csv_rows.rows[0] == '1,"Park, Lena",25.0,False'
    assert csv_rows.rows[1] == "2,Sam,10.0,True"


def test_csv_rows_read_back_with_quotes_and_newlines():
    records = [
        {"id": 1, "member_name": 'Lena "DJ", Park', "refund_reason": "spilled\nat the bar", "final_amount": 25.0},
    ]
    csv_rows = reports.to_csv_rows(records)
    text = "\n".join([csv_rows.header, *csv_rows.rows])

    parsed = list(csv.reader(io.StringIO(text)))
    assert parsed == [
        ["id", "member_name", "refund_reason", "final_amount"],
        ["1", 'Lena "DJ", Park', "spilled\nat the bar", "25.0"],
    ]


def test_daily_export_is_flat_text_with_float_money():
    daily = reports.build_daily_reports([make_txn(8, items=[beer(1)])], [], JAN_1, JAN_1)
    csv_rows = reports.to_csv_rows(daily)

    assert csv_rows.header == (
        "date,total_sales,total_refunds,net_revenue,transaction_count,member_check_ins,top_items,payment_methods"
    )
    assert csv_rows.rows[0] == "2024-01-01,8.0,0.0,8.0,1,0,Beer x1 (8.00),cash x1 (8.00)"


def test_money_totals_are_floats_even_when_empty():
    empty_day = reports.build_daily_reports([], [], JAN_1, JAN_1)[0]
    assert isinstance(empty_day.total_sales, float)
    assert isinstance(empty_day.total_refunds, float)
    assert isinstance(empty_day.net_revenue, float)

    stats = reports.summarize([make_txn(25)])
    assert isinstance(stats.total_sales, float)
    assert isinstance(stats.total_refunds, float)


def test_get_summary_applies_criteria():
    txns = [make_txn(10, method="card"), make_txn(30, method="cash")]
    stats = reports.get_summary(txns, ReportCriteria(JAN_1, JAN_1, payment_method="cash"))
    assert stats.total_sales == 30
    assert stats.total_transactions == 1


def test_export_filename():
    name = reports.export_filename("daily_reports", ReportCriteria(JAN_1, JAN_3))
    assert name == "daily_reports_2024-01-01_to_2024-01-03.csv"


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        '{"name": "Beer"}',
        '[{"name": "Beer", "price": "eight", "quantity": 1}]',
        '[{"name": "Beer", "quantity": 1}]',
        '["Beer"]',
        '[{"name": "Beer", "price": 8, "quantity": 1.5}]',
    ],
)
def test_parse_items_tolerates_bad_payloads(raw):
    assert parse_items(raw) == ()


def test_parse_items_reads_stored_shape():
    items = parse_items('[{"name": "Beer", "price": 8, "quantity": 2}]')
    assert items == (LineItem(name="Beer", unit_price=8.0, quantity=2),)
    assert parse_items(None) == ()


def test_parse_items_accepts_whole_float_quantity():
    items = parse_items('[{"name": "Beer", "price": 8, "quantity": 2.0}]')
    assert items == (LineItem(name="Beer", unit_price=8.0, quantity=2),)
    assert isinstance(items[0].quantity, int)

"""
app.py
Streamlit nightclub POS: staff login, members, billing, check-in, reports.
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
from datetime import date

import pandas as pd
import streamlit as st

import auth
import config
import db
import reports
import utils
from auth import Role
from models import ALL, MEMBERSHIP_TYPES, PAYMENT_METHODS, ReportCriteria

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

st.set_page_config(page_title="Nightclub POS", layout="wide")

GUEST = "(walk-in guest)"


def init_once():
    # Initialize DB + default admin if needed
    default_hash = auth.hash_password("admin123")
    db.init_db(default_hash)


def require_login():
    if "user" not in st.session_state:
        st.session_state.user = None
    if "cart" not in st.session_state:
        st.session_state.cart = []


def logout():
    st.session_state.user = None
    st.session_state.cart = []
    st.success("Logged out.")


def login_screen():
    st.title("🎵 Staff Login")

    col1, col2 = st.columns([1, 1])
    with col1:
        username = st.text_input("Username", value="admin")
        password = st.text_input("Password", type="password")
        if st.button("Login", type="primary"):
            user = auth.login(username.strip(), password)
            if user:
                st.session_state.user = user
                st.rerun()
            else:
                st.error("Invalid username or password.")

    with col2:
        st.info(
            "First run creates a default admin:\n\n"
            "- username: **admin**\n"
            "- password: **admin123**\n\n"
            "You will be forced to change it on first login. "
            "New staff accounts are created by an admin under Settings."
        )


def force_change_password_screen():
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the app.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        if len(new1) < 6:
            st.error("Password must be at least 6 characters.")
            return
        if new1 != new2:
            st.error("Passwords do not match.")
            return
        auth.change_password(st.session_state.user.username, new1)
        st.success("Password updated. You can continue.")
        st.rerun()


def dashboard_page():
    st.header("📊 Dashboard")

    today = date.today()
    month_start = today.replace(day=1)
    members = db.list_members(config.VENUE_ID)
    today_stats = reports.summarize(db.list_transactions(config.VENUE_ID, today, today))
    month_stats = reports.summarize(db.list_transactions(config.VENUE_ID, month_start, today))
    checked_in = db.list_check_ins(config.VENUE_ID, today, today)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total members", len(members))
    c2.metric("Checked in today", len(checked_in))
    c3.metric("Today's revenue", utils.format_currency(today_stats.net_revenue))
    c4.metric("Monthly revenue", utils.format_currency(month_stats.net_revenue))

    st.divider()

    st.subheader("Tonight's check-ins")
    if checked_in:
        st.dataframe(utils.frame(checked_in), use_container_width=True, hide_index=True)
    else:
        st.caption("No check-ins yet today.")


def member_form(existing=None):
    if existing:
        st.subheader(f"✏️ Edit Member (ID: {existing.id})")
    else:
        st.subheader("➕ Add Member")

    col1, col2 = st.columns(2)
    with col1:
        name = st.text_input("Name", value=(existing.name if existing else ""))
        email = st.text_input("Email", value=(existing.email if existing else ""))
    with col2:
        phone = st.text_input("Phone", value=(existing.phone if existing else ""))
        membership_type = st.selectbox(
            "Membership type",
            options=MEMBERSHIP_TYPES,
            index=(MEMBERSHIP_TYPES.index(existing.membership_type) if existing else 0),
        )

    errors = utils.validate_member_inputs(name, email, phone, membership_type)
    if errors:
        for e in errors:
            st.error(e)

    if st.button("Save", type="primary", disabled=bool(errors)):
        if existing:
            db.update_member(existing.id, name.strip(), email.strip(), phone.strip(), membership_type)
            st.success("Member updated.")
        else:
            db.insert_member(config.VENUE_ID, name.strip(), email.strip(), phone.strip(), membership_type)
            st.success("Member added.")
        st.rerun()


def members_page():
    st.header("👥 Members")

    with st.sidebar:
        st.subheader("Search")
        search = st.text_input("Search (name/email/phone)")

    members = db.list_members(config.VENUE_ID, search=search)
    st.dataframe(utils.frame(members), use_container_width=True, hide_index=True)

    st.divider()

    colA, colB = st.columns([1, 2])
    with colA:
        st.subheader("Select member")
        selected_id = st.selectbox("Member ID", options=["(none)"] + [str(m.id) for m in members])

    with colB:
        if selected_id != "(none)":
            st.subheader("Member actions")
            c1, c2 = st.columns(2)
            with c1:
                if st.button("Edit"):
                    st.session_state.edit_member_id = int(selected_id)
                    st.rerun()
            with c2:
                can_delete = auth.can_access(st.session_state.user.role, Role.MANAGER)
                delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm", disabled=not can_delete)
                if st.button("Delete", type="secondary", disabled=not delete_confirm):
                    db.delete_member(int(selected_id))
                    st.success("Member deleted.")
                    st.rerun()

    st.divider()

    if st.session_state.get("edit_member_id"):
        existing = db.get_member(st.session_state.edit_member_id)
        if existing:
            member_form(existing=existing)
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.rerun()
    else:
        member_form(existing=None)


def _member_picker(label: str):
    query = st.text_input(f"{label}: search name/email/phone")
    found = utils.search_members(db.list_members(config.VENUE_ID), query)
    options = {GUEST: None}
    options.update({f"{m.name} ({m.membership_type}) - {m.phone}": m for m in found})
    chosen = st.selectbox(label, list(options.keys()))
    return options[chosen]


def billing_page():
    st.header("💳 Billing")

    user = st.session_state.user
    member = _member_picker("Member")
    membership_type = member.membership_type if member else "Guest"
    rate = utils.discount_rate(membership_type)
    st.caption(f"Membership: **{membership_type}** | Discount: **{rate:.0%}**")

    st.subheader("Add to cart")
    c1, c2, c3 = st.columns([2, 1, 1])
    with c1:
        item = st.selectbox("Item", list(utils.MENU.keys()), format_func=lambda n: f"{n} ({utils.format_currency(utils.MENU[n])})")
    with c2:
        qty = st.number_input("Quantity", min_value=1, value=1, step=1)
    with c3:
        st.write("")
        if st.button("Add"):
            st.session_state.cart = utils.add_to_cart(st.session_state.cart, item, int(qty))
            st.rerun()

    cart = st.session_state.cart
    if cart:
        st.dataframe(
            pd.DataFrame([{"item": line.name, "price": line.unit_price, "quantity": line.quantity, "total": line.revenue} for line in cart]),
            use_container_width=True,
            hide_index=True,
        )
        remove = st.selectbox("Remove line", ["(none)"] + [line.name for line in cart])
        if remove != "(none)" and st.button("Remove"):
            st.session_state.cart = utils.remove_from_cart(cart, remove)
            st.rerun()
    else:
        st.caption("Cart is empty.")

    original, discount, final = utils.cart_totals(cart, membership_type)
    m1, m2, m3 = st.columns(3)
    m1.metric("Subtotal", utils.format_currency(original))
    m2.metric("Discount", utils.format_currency(-discount))
    m3.metric("Total", utils.format_currency(final))

    payment_method = st.selectbox("Payment method", PAYMENT_METHODS)
    errors = utils.validate_checkout(cart, payment_method)
    if st.button("Checkout", type="primary", disabled=bool(errors)):
        sale = utils.build_sale(
            cart,
            member.name if member else "Guest",
            membership_type,
            payment_method,
            user.name,
        )
        txn_id = db.insert_transaction(config.VENUE_ID, sale, member_id=(member.id if member else None))
        logger.info("Checkout %s by %s: %.2f", txn_id, user.username, sale.final_amount)
        st.session_state.cart = []
        st.success(f"Payment recorded (transaction #{txn_id}).")
        st.rerun()

    if auth.can_access(user.role, Role.MANAGER):
        st.divider()
        with st.expander("Issue refund"):
            txn_id = st.number_input("Transaction ID", min_value=1, step=1)
            reason = st.text_input("Reason")
            if st.button("Refund"):
                errors = utils.validate_refund(
                    db.get_transaction(int(txn_id)), reason, already_refunded=db.is_refunded(int(txn_id))
                )
                if errors:
                    for e in errors:
                        st.error(e)
                else:
                    try:
                        refund_id = db.insert_refund(config.VENUE_ID, int(txn_id), reason.strip(), user.name)
                    except ValueError as exc:
                        st.error(str(exc))
                    else:
                        st.success(f"Refund recorded (transaction #{refund_id}).")


def checkin_page():
    st.header("✅ Check-in")

    member = _member_picker("Member to check in")
    if member is None:
        st.caption("Pick a member to check in.")
    else:
        st.write(f"Visits: **{member.visit_count}** | Last visit: **{member.last_visit or 'Never'}**")
        if st.button("Check in", type="primary"):
            db.insert_check_in(config.VENUE_ID, member.id)
            st.success(f"{member.name} checked in.")
            st.rerun()

    st.divider()
    st.subheader("Today")
    today = date.today()
    rows = db.list_check_ins(config.VENUE_ID, today, today)
    if rows:
        st.dataframe(utils.frame(rows), use_container_width=True, hide_index=True)
    else:
        st.caption("No check-ins yet today.")


def _export_button(records, name: str, criteria: ReportCriteria, label: str):
    csv_rows = reports.to_csv_rows(records)
    if csv_rows is None:
        st.caption("No data to export for the selected filters.")
        return
    st.download_button(
        label,
        data=utils.to_csv_bytes(csv_rows),
        file_name=reports.export_filename(name, criteria),
        mime="text/csv",
        key=f"export_{name}",
    )


def _transaction_tab(txns, name: str, criteria: ReportCriteria, empty: str):
    _export_button([t.export_record() for t in txns], name, criteria, f"Download {name}.csv")
    if txns:
        st.dataframe(utils.frame(txns), use_container_width=True, hide_index=True)
    else:
        st.caption(empty)


def reports_page():
    st.header("🧾 Reports")

    default_start, default_end = utils.default_report_range()
    c1, c2, c3, c4 = st.columns(4)
    with c1:
        start_date = st.date_input("Start date", value=default_start)
    with c2:
        end_date = st.date_input("End date", value=default_end)
    with c3:
        membership_type = st.selectbox("Membership type", [ALL] + MEMBERSHIP_TYPES)
    with c4:
        payment_method = st.selectbox("Payment method", [ALL] + PAYMENT_METHODS)

    if end_date < start_date:
        st.error("End date must be on or after start date.")
        return

    criteria = ReportCriteria(start_date, end_date, membership_type, payment_method)
    try:
        inputs = db.fetch_report_inputs(config.VENUE_ID, criteria)
    except db.UpstreamFetchError:
        st.error("Failed to load reports data. Please try again.")
        return

    txns = reports.filter_transactions(inputs.transactions, criteria)
    stats = reports.get_summary(txns)

    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Total sales", utils.format_currency(stats.total_sales), f"{stats.sales_count} transactions")
    m2.metric("Refunds", utils.format_currency(stats.total_refunds), f"{stats.refund_count} refunds", delta_color="inverse")
    m3.metric("Net revenue", utils.format_currency(stats.net_revenue))
    m4.metric("Average transaction", utils.format_currency(stats.average_transaction))
    st.caption(f"Top membership: **{stats.top_membership_type}** | Top payment method: **{stats.top_payment_method}**")

    tabs = st.tabs(["All transactions", "Sales", "Refunds", "Members", "Daily"])
    with tabs[0]:
        _transaction_tab(txns, "all_transactions", criteria, "No transactions found.")
    with tabs[1]:
        _transaction_tab(reports.sales(txns), "sales_transactions", criteria, "No sales found.")
    with tabs[2]:
        _transaction_tab(reports.refunds(txns), "refund_transactions", criteria, "No refunds found.")
    with tabs[3]:
        _export_button(inputs.members, "member_details", criteria, "Download member_details.csv")
        if inputs.members:
            st.dataframe(utils.frame(inputs.members), use_container_width=True, hide_index=True)
        else:
            st.caption("No members found.")
    with tabs[4]:
        daily = reports.get_daily_reports(txns, inputs.check_ins, start_date, end_date)
        _export_button(daily, "daily_reports", criteria, "Download daily_reports.csv")
        for day in daily:
            with st.expander(f"{day.date}: net {utils.format_currency(day.net_revenue)} ({day.transaction_count} transactions)"):
                d1, d2, d3, d4 = st.columns(4)
                d1.metric("Sales", utils.format_currency(day.total_sales))
                d2.metric("Refunds", utils.format_currency(day.total_refunds))
                d3.metric("Transactions", day.transaction_count)
                d4.metric("Check-ins", day.member_check_ins)
                if day.top_items:
                    st.caption("Top items")
                    st.dataframe(utils.frame(day.top_items), use_container_width=True, hide_index=True)
                if day.payment_methods:
                    st.caption("Payment methods")
                    st.dataframe(utils.frame(day.payment_methods), use_container_width=True, hide_index=True)


def settings_page():
    st.header("⚙️ Settings")

    st.subheader("Change password")
    p1 = st.text_input("New password", type="password")
    p2 = st.text_input("Confirm new password", type="password")
    if st.button("Update password", type="primary"):
        if len(p1) < 6:
            st.error("Password must be at least 6 characters.")
        elif p1 != p2:
            st.error("Passwords do not match.")
        else:
            auth.change_password(st.session_state.user.username, p1)
            st.success("Password updated.")

    st.divider()

    st.subheader("Staff accounts")
    st.dataframe(pd.DataFrame([dict(r) for r in db.list_staff()]), use_container_width=True, hide_index=True)
    c1, c2 = st.columns(2)
    with c1:
        new_username = st.text_input("Username", key="new_staff_username")
        new_name = st.text_input("Full name", key="new_staff_name")
    with c2:
        new_password = st.text_input("Initial password", type="password", key="new_staff_password")
        new_role = st.selectbox("Role", [r.value for r in Role], key="new_staff_role")
    if st.button("Create staff account"):
        if not new_username.strip() or not new_name.strip() or len(new_password) < 6:
            st.error("Username, name and a 6+ character password are required.")
        else:
            try:
                auth.register_staff(new_username.strip(), new_name.strip(), new_password, new_role)
            except ValueError as exc:
                st.error(str(exc))
            else:
                st.success("Staff account created.")
                st.rerun()

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert sample members, sales, a refund and check-ins (adds new rows each run).")
    if st.button("Insert sample data"):
        utils.insert_sample_data()
        st.success("Sample data inserted.")
        st.rerun()


PAGES = {
    "Dashboard": (dashboard_page, Role.CASHIER),
    "Members": (members_page, Role.CASHIER),
    "Billing": (billing_page, Role.CASHIER),
    "Check-in": (checkin_page, Role.CASHIER),
    "Reports": (reports_page, Role.MANAGER),
    "Settings": (settings_page, Role.ADMIN),
}


def main_app():
    user = st.session_state.user
    st.sidebar.title("🎵 Nightclub POS")
    st.sidebar.caption(f"Logged in as: {user.name} ({user.role})")

    pages = [name for name, (_, required) in PAGES.items() if auth.can_access(user.role, required)]
    if st.session_state.get("page") not in pages:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    render, _ = PAGES[st.session_state.page]
    render()


# --------- App entry ---------

def run():
    init_once()
    require_login()

    if st.session_state.user is None:
        login_screen()
        return

    # Force password change on first login after DB creation
    if db.is_force_password_change():
        force_change_password_screen()
        return

    main_app()


if __name__ == "__main__":
    run()

from __future__ import annotations

import logging
from datetime import date
from typing import Sequence

import matplotlib.pyplot as plt
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from btcfund import (
    BtcPriceService,
    FundError,
    FundLedger,
    FundRepository,
    MemberStatus,
    MessageLevel,
    ServiceMessage,
    calculate_portfolio,
    compute_analytics,
)


# ------------------ Utilities ------------------ #
def _pie_label_colour(white_labels: bool) -> str:
    base = st.get_option("theme.base")
    if white_labels or (isinstance(base, str) and base.lower() == "dark"):
        return "white"
    return "black"


def _display_messages(messages: Sequence[ServiceMessage]) -> None:
    for message in messages:
        if message.level == MessageLevel.ERROR:
            st.error(message.text)
        elif message.level == MessageLevel.WARNING:
            st.warning(message.text)
        else:
            st.info(message.text)


@st.cache_resource
def _ledger() -> FundLedger:
    return FundLedger(FundRepository())


@st.cache_resource
def _price_service() -> BtcPriceService:
    return BtcPriceService()


def _treasurer_forms(ledger: FundLedger) -> None:
    st.sidebar.header("Treasurer")
    members = ledger.get_active_members()

    with st.sidebar.form("contribution"):
        st.markdown("**Record contribution**")
        member = st.selectbox("Member", members, format_func=lambda m: m.name)
        amount = st.number_input("Amount (ZAR)", min_value=0.0, step=100.0)
        if st.form_submit_button("Save contribution") and member is not None:
            _run(lambda: ledger.add_contribution(member.id, member.name, amount))

    with st.sidebar.form("payment_round"):
        st.markdown("**Record payment round**")
        round_date = st.date_input("Round date", value=date.today())
        amounts = {
            m.id: st.number_input(m.name, min_value=0.0, step=100.0, key=f"round_{m.id}")
            for m in members
        }
        if st.form_submit_button("Save round"):
            payments = [(m.id, m.name, amounts[m.id]) for m in members if amounts[m.id] > 0]
            _run(lambda: ledger.record_payment_round(payments, round_date.isoformat()))

    with st.sidebar.form("purchase"):
        st.markdown("**Record BTC purchase**")
        btc = st.number_input("BTC bought", min_value=0.0, step=0.0001, format="%.8f")
        price = st.number_input("Price (ZAR/BTC)", min_value=0.0, step=1000.0)
        invested = st.number_input("Amount invested (ZAR)", min_value=0.0, step=100.0)
        notes = st.text_input("Notes")
        if st.form_submit_button("Save purchase"):
            _run(lambda: ledger.add_purchase(btc, price, invested or None, notes))

    with st.sidebar.form("member"):
        st.markdown("**Add member**")
        name = st.text_input("Name")
        role = st.selectbox("Role", ["member", "admin"])
        joined = st.date_input("Joined", value=date.today())
        if st.form_submit_button("Add member"):
            _run(lambda: ledger.add_member(name, role, joined.isoformat()))

    with st.sidebar.form("member_status"):
        st.markdown("**Change member status**")
        target = st.selectbox(
            "Member",
            ledger.get_members(),
            format_func=lambda m: f"{m.name} ({m.status.value})",
            key="status_member",
        )
        status = st.selectbox("Status", [s.value for s in MemberStatus])
        left_on = st.date_input("Leave date", value=date.today())
        if st.form_submit_button("Update member") and target is not None:
            leave_date = left_on.isoformat() if status == MemberStatus.LEFT.value else None
            _run(lambda: ledger.update_member(target.id, status=status, leave_date=leave_date))

    with st.sidebar.form("buyout"):
        st.markdown("**Record buyout**")
        all_names = [m.name for m in ledger.get_members()]
        buyer = st.selectbox("Buyer", [m.name for m in members])
        seller = st.selectbox("Seller", all_names)
        buyout_amount = st.number_input("Amount (ZAR)", min_value=0.0, step=100.0, key="buyout_amount")
        buyout_notes = st.text_input("Notes", key="buyout_notes")
        if st.form_submit_button("Save buyout"):
            _run(lambda: ledger.record_buyout(buyer, seller, buyout_amount, buyout_notes))

    with st.sidebar.form("adjust"):
        st.markdown("**Reconcile holdings**")
        holdings = st.number_input(
            "Wallet BTC",
            min_value=0.0,
            value=float(ledger.get_fund_info().current_btc_holdings),
            format="%.8f",
        )
        reason = st.text_input("Reason")
        if st.form_submit_button("Adjust holdings"):
            _run(lambda: ledger.adjust_holdings(holdings, reason))


def _run(action) -> None:
    try:
        action()
    except FundError as exc:
        st.sidebar.error(str(exc))
    else:
        st.sidebar.success("Saved")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    st.set_page_config(page_title="BTC Fund Tracker", layout="centered")

    ledger = _ledger()
    prices = _price_service()
    fund_info = ledger.get_fund_info()
    st.title(f"🏌️ {fund_info.name or 'BTC Fund Tracker'}")

    white_labels = st.sidebar.toggle(
        "White pie chart labels",
        value=False,
        help="Use when the share labels are hard to read on a dark background.",
    )
    _treasurer_forms(ledger)

    summary = ledger.get_summary()
    price = prices.get_current_price()
    if price.source != "coingecko":
        st.warning(f"Using {price.source} BTC quote from {price.timestamp}")
    snapshot = calculate_portfolio(summary, fund_info, price)

    # ------------------ Summary ------------------ #
    st.subheader("📈 Fund Summary")
    col1, col2, col3 = st.columns(3)
    col1.metric("Invested (ZAR)", f"R{snapshot.total_invested_zar:,.0f}")
    col2.metric("Value (ZAR)", f"R{snapshot.value_zar:,.0f}")
    col3.metric("Profit/Loss", f"R{snapshot.profit_loss_zar:,.0f}", f"{snapshot.profit_loss_pct:.2f}%")

    col4, col5, col6 = st.columns(3)
    col4.metric("Holdings (BTC)", f"{snapshot.total_btc:.8f}")
    col5.metric("Target progress", f"{snapshot.target_progress:.2f}%")
    col6.metric("Days to target", f"{snapshot.days_to_target:,}")
    st.progress(snapshot.target_progress / 100)

    # ------------------ Members (equal split) ------------------ #
    breakdown = pd.DataFrame(
        [
            {
                "Member": name,
                "Share (%)": value.share_pct,
                "BTC": value.btc_share,
                "Value (ZAR)": value.value_zar,
                "Contributed (ZAR)": summary.member_shares[name].contributed_zar,
            }
            for name, value in snapshot.per_member_breakdown.items()
        ]
    )
    st.subheader("👥 Member Shares")
    if breakdown.empty:
        st.info("No active members yet.")
    else:
        st.dataframe(
            breakdown.set_index("Member").style.format(
                {
                    "Share (%)": "{:.2f}",
                    "BTC": "{:.8f}",
                    "Value (ZAR)": "R{:,.0f}",
                    "Contributed (ZAR)": "R{:,.0f}",
                }
            )
        )

        txt_col = _pie_label_colour(white_labels)
        fig1, ax1 = plt.subplots(facecolor="none")
        ax1.set_facecolor("none")
        _, texts, autotexts = ax1.pie(
            breakdown["BTC"],
            labels=breakdown["Member"],
            autopct="%1.1f%%",
            startangle=90,
            counterclock=False,
        )
        for t in [*texts, *autotexts]:
            t.set_color(txt_col)
        ax1.axis("equal")
        st.pyplot(fig1, transparent=True)

    # ------------------ Analytics ------------------ #
    analytics = compute_analytics(
        ledger.get_contributions(), ledger.get_purchases(), ledger.get_members()
    )
    monthly = analytics.snapshots_frame()

    st.subheader("📊 Monthly History")
    if monthly.empty:
        st.info("No contributions or purchases recorded yet.")
    else:
        fig2 = px.line(
            monthly,
            x="month",
            y="cumulative_invested_zar",
            title="Cumulative contributions (ZAR)",
            markers=True,
        )
        st.plotly_chart(fig2, use_container_width=True)

        fig3 = go.Figure(go.Bar(x=monthly["month"], y=monthly["btc_bought"], name="BTC bought"))
        fig3.update_layout(title="BTC bought per month", yaxis_title="BTC")
        st.plotly_chart(fig3, use_container_width=True)

    streaks = analytics.streaks
    cost = analytics.cost_basis
    col7, col8, col9 = st.columns(3)
    col7.metric("Current streak", f"{streaks.current_monthly_streak} months")
    col8.metric("Longest streak", f"{streaks.longest_monthly_streak} months")
    col9.metric("Avg cost basis", f"R{cost.weighted_avg_zar:,.0f}/BTC")
    if streaks.missed_months:
        st.caption("Missed months: " + ", ".join(streaks.missed_months))

    st.markdown("**Contribution history by member**")
    st.dataframe(pd.DataFrame([vars(m) for m in analytics.member_analytics]))

    history = prices.get_history(90)
    _display_messages(history.messages)
    if history.points:
        series = history.to_series().rename("BTC/ZAR").reset_index()
        st.plotly_chart(
            px.line(series, x="index", y="BTC/ZAR", title="BTC price, last 90 days"),
            use_container_width=True,
        )

    with st.expander("🧾 Audit log"):
        st.dataframe(pd.DataFrame(ledger.get_audit_log(50)))


if __name__ == "__main__":
    main()

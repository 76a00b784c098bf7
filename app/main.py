import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dataclasses import replace
from datetime import date

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from budget_core.aggregation import top_categories
from budget_core.categories import FALLBACK_COLOR, ICONS, CategoryIndex
from budget_core.config import configure_logging, settings
from budget_core.currency import SUPPORTED_CURRENCIES, RateProvider, format_amount
from budget_core.domain import HOUSEHOLD, PERIODS, PERSONAL, CurrentUser
from budget_core.errors import BudgetAppError, ValidationError
from budget_core.family import FamilyService, user_id_for_email
from budget_core.filters import (
    apply_filters, by_category, by_date_range, in_month, matching_text, sort_transactions,
)
from budget_core.services import ReportContext, ReportService
from budget_core.storage import JsonFileStorage
from budget_core.store import AppStore
from budget_core.transforms import collection_for, load_seed

configure_logging()
st.set_page_config(page_title=settings.PROJECT_NAME, layout="wide")


@st.cache_resource
def get_storage():
    if settings.STORAGE == "sql":
        from budget_core.db import SqlStorage
        return SqlStorage(settings.DATABASE_URL)
    return JsonFileStorage(settings.DATA_DIR)


@st.cache_resource
def get_rate_provider():
    return RateProvider(settings.RATES_URL, ttl=settings.RATES_TTL, cache_path=settings.RATES_CACHE_PATH)


CLASS_LABELS = {PERSONAL: "Personal", HOUSEHOLD: "Household"}

# --- Profile ---------------------------------------------------------------
st.sidebar.markdown("### 👤 Profile")
name = st.sidebar.text_input("Name", value=st.session_state.get("profile_name", ""))
email = st.sidebar.text_input("Email", value=st.session_state.get("profile_email", ""))
st.session_state["profile_name"] = name
st.session_state["profile_email"] = email

if not name or not email:
    st.title(f"💰 {settings.PROJECT_NAME}")
    st.info("Enter your name and email in the sidebar to open your budget.")
    st.stop()

user_id = user_id_for_email(email)
family_code = st.sidebar.text_input("Family code (optional)", value=st.session_state.get("family_id", "")).strip()
user = CurrentUser(id=user_id, name=name, email=email)
if family_code:
    try:
        user = FamilyService(get_storage(), user).join(family_code)
    except BudgetAppError as e:
        st.sidebar.error(f"❌ {e}")
        family_code = ""
st.session_state["family_id"] = family_code

if st.session_state.get("store_user") != user:
    st.session_state.store = AppStore(get_storage(), user)
    st.session_state.store_user = user
    st.session_state.loaded = False

store: AppStore = st.session_state.store

if not st.session_state.loaded:
    with st.spinner("Loading your data..."):
        try:
            store.load()
            st.session_state.loaded = True
        except BudgetAppError:
            pass

if store.error and not st.session_state.loaded:
    st.error(store.error)
    if st.button("🔄 Retry"):
        st.rerun()
    st.stop()

# --- Currency --------------------------------------------------------------
st.sidebar.markdown("### 💱 Currency")
currency = st.sidebar.selectbox(
    "Display currency",
    SUPPORTED_CURRENCIES,
    index=SUPPORTED_CURRENCIES.index(settings.DISPLAY_CURRENCY) if settings.DISPLAY_CURRENCY in SUPPORTED_CURRENCIES else 0,
)
provider = get_rate_provider()
if st.sidebar.button("Update rates"):
    if provider.refresh(force=True):
        st.sidebar.success("Rates updated")
    else:
        st.sidebar.warning("Could not reach the rate service, using cached rates")
rates = provider.rates()
if provider.updated_at:
    st.sidebar.caption(f"Rates updated {pd.Timestamp(provider.updated_at, unit='s'):%Y-%m-%d %H:%M} UTC")


def money(amount: float) -> str:
    return format_amount(amount, currency, rates)


menu = st.sidebar.radio(
    "Menu",
    ["🏠 Overview", "💸 Expenses", "💵 Income", "🏡 Household", "🎯 Budgets", "🙏 Tithes", "🏷️ Categories", "👪 Family"]
)

snap = store.snapshot
today = date.today()
expense_index = CategoryIndex(snap.expense_categories)
income_index = CategoryIndex(snap.income_categories)

for alert in store.pop_alerts():
    st.warning(f"⚠️ {alert['alert']}")


def run_mutation(fn, success: str) -> bool:
    """Apply a store mutation and report the outcome; failures are shown, never dropped."""
    try:
        fn()
    except ValidationError as e:
        st.error(f"❌ {e.details.get('message', e)}")
        return False
    except BudgetAppError as e:
        st.error(f"❌ {e}")
        return False
    st.session_state["flash"] = success
    st.rerun()
    return True


if "flash" in st.session_state:
    st.success(st.session_state.pop("flash"))


def transactions_frame(records, index: CategoryIndex) -> pd.DataFrame:
    rows = [{
        "Date": t.date,
        "Title": t.title,
        "Category": f"{t.category} ({index.icon(t.category)})",
        "Type": CLASS_LABELS.get(t.classification, t.classification),
        "Amount": money(t.amount),
        "Description": t.description,
    } for t in records]
    return pd.DataFrame(rows, columns=["Date", "Title", "Category", "Type", "Amount", "Description"])


def category_donut(records, index: CategoryIndex, title: str):
    breakdown = list(top_categories(records, k=len(records)))
    if not breakdown:
        return None
    names = [n for n, _ in breakdown]
    fig = px.pie(
        names=names,
        values=[a for _, a in breakdown],
        hole=0.5,
        title=title,
        color=names,
        color_discrete_map={n: index.color(n) for n in names},
    )
    fig.update_layout(template="plotly_dark")
    return fig


def transaction_page(kind: str):
    is_expense = kind == "expenses"
    records = snap.expenses if is_expense else snap.incomes
    index = expense_index if is_expense else income_index
    class_field = "paid_by" if is_expense else "earned_by"
    noun = "Expense" if is_expense else "Income"

    st.title(f"{'💸' if is_expense else '💵'} {noun}s")

    with st.expander(f"➕ Add {noun.lower()}", expanded=not records):
        with st.form(f"add_{kind}", clear_on_submit=True):
            c1, c2 = st.columns(2)
            with c1:
                title = st.text_input("Title")
                amount = st.number_input("Amount (USD)", min_value=0.0, step=1.0, format="%.2f")
                when = st.date_input("Date", value=today)
            with c2:
                category = st.selectbox("Category", index.names())
                who = st.radio("Type", (PERSONAL, HOUSEHOLD), format_func=CLASS_LABELS.get, horizontal=True)
                description = st.text_input("Description (optional)")
            if st.form_submit_button(f"Add {noun.lower()}"):
                add = store.add_expense if is_expense else store.add_income
                run_mutation(lambda: add(title, amount, category, when, who, description), f"✅ {noun} added!")

    c1, c2, c3 = st.columns([2, 1, 1])
    with c1:
        term = st.text_input("Search", key=f"search_{kind}")
    with c2:
        selected = st.selectbox("Category", ("",) + index.names(), key=f"cat_{kind}",
                                format_func=lambda n: n or "All categories")
    with c3:
        sort_by = st.selectbox("Sort by", ("date", "amount", "title"), key=f"sort_{kind}")

    predicates = [matching_text(term)]
    if selected:
        predicates.append(by_category(selected))
    shown = sort_transactions(apply_filters(records, *predicates), by=sort_by)

    if not shown:
        st.info(f"No {noun.lower()}s match the selected filters")
        return

    st.metric("Total shown", money(sum(t.amount for t in shown)), f"{len(shown)} entries")
    st.dataframe(transactions_frame(shown, index), use_container_width=True, hide_index=True)
    st.download_button(
        "⬇️ Download",
        transactions_frame(shown, index).to_csv(index=False),
        file_name=f"{kind}.csv",
        mime="text/csv",
    )

    st.subheader("✏️ Edit")
    for t in shown:
        cat = index.resolve(t.category)
        with st.expander(f"{t.date:%Y-%m-%d} · {t.title} · {money(t.amount)}"):
            st.markdown(f"<span style='color:{cat.color}'>●</span> {cat.name} ({cat.icon})", unsafe_allow_html=True)
            with st.form(f"edit_{kind}_{t.id}"):
                new_title = st.text_input("Title", value=t.title)
                new_amount = st.number_input("Amount (USD)", min_value=0.0, value=float(t.amount), format="%.2f")
                new_date = st.date_input("Date", value=t.date)
                names = index.names() if t.category in index else (t.category,) + index.names()
                new_category = st.selectbox("Category", names, index=names.index(t.category))
                new_who = st.radio("Type", (PERSONAL, HOUSEHOLD), index=(PERSONAL, HOUSEHOLD).index(t.classification),
                                   format_func=CLASS_LABELS.get, horizontal=True)
                new_description = st.text_input("Description", value=t.description)
                if st.form_submit_button("Save"):
                    updated = replace(t, title=new_title, amount=new_amount, date=new_date,
                                      category=new_category, description=new_description,
                                      **{class_field: new_who})
                    run_mutation(lambda: store.update(collection_for(updated), updated), f"✅ {noun} updated!")
            if st.button("🗑️ Delete", key=f"del_{kind}_{t.id}"):
                run_mutation(lambda: store.delete(kind, t.id), f"🗑️ {noun} deleted")


ctx = ReportContext(today=today, scope_budgets_to_period=st.session_state.get("scope_budgets", False))
report = ReportService().build(snap, ctx)["result"]

if menu == "🏠 Overview":
    st.title(f"🏠 Overview · {today:%B %Y}")
    if not snap.expenses and not snap.incomes and settings.SEED_PATH.exists():
        if st.button("📥 Load demo data"):
            run_mutation(lambda: store.import_records(load_seed(settings.SEED_PATH, user.id)), "✅ Demo data loaded!")
    k1, k2, k3, k4 = st.columns(4)
    with k1:
        st.metric("Total income", money(report["total_income"]))
    with k2:
        st.metric("Total expenses", money(report["total_expenses"]))
    with k3:
        st.metric("Net income", money(report["net_income"]))
    with k4:
        mom = report["month_over_month"]
        st.metric("This month", money(mom["current"]), f"{mom['change_percent']:+.1f}% vs last month",
                  delta_color="inverse")
    st.caption(f"Average per expense: {money(report['average_per_transaction'])}")

    for label, key in (("Monthly", "monthly"), ("Yearly", "yearly")):
        summary = report["periods"][key]
        fig = go.Figure()
        fig.add_trace(go.Bar(y=["Income"], x=[summary["income_bar"]], orientation="h",
                             marker_color="#10b981", text=[money(summary["income"])]))
        fig.add_trace(go.Bar(y=["Expenses"], x=[summary["expense_bar"]], orientation="h",
                             marker_color="#ef4444", text=[money(summary["expenses"])]))
        fig.update_layout(title=f"{label} comparison · balance {money(summary['balance'])}",
                          showlegend=False, template="plotly_dark", height=220,
                          xaxis=dict(range=[0, 100], title="% of larger total"))
        st.plotly_chart(fig, use_container_width=True)

    months = pd.period_range(end=pd.Period(today, freq="M"), periods=12, freq="M")
    exp_m = np.array([sum(e.amount for e in apply_filters(snap.expenses, in_month(p.month, p.year))) for p in months])
    inc_m = np.array([sum(i.amount for i in apply_filters(snap.incomes, in_month(p.month, p.year))) for p in months])
    fig_ts = go.Figure()
    fig_ts.add_trace(go.Scatter(x=months.astype(str), y=inc_m, name="Income", mode="lines+markers"))
    fig_ts.add_trace(go.Scatter(x=months.astype(str), y=exp_m, name="Expenses", mode="lines+markers"))
    fig_ts.add_trace(go.Bar(x=months.astype(str), y=inc_m - exp_m, name="Balance", opacity=0.4))
    fig_ts.update_layout(title="Last 12 months (USD)", template="plotly_dark")
    st.plotly_chart(fig_ts, use_container_width=True)

    c1, c2 = st.columns(2)
    for col, key, index, title in (
        (c1, "top_expense_categories", expense_index, "Top expense categories"),
        (c2, "top_income_categories", income_index, "Top income categories"),
    ):
        with col:
            st.subheader(title)
            if not report[key]:
                st.info("Nothing recorded yet")
            for name_, amount, pct in report[key]:
                cat = index.resolve(name_)
                st.markdown(f"<span style='color:{cat.color}'>●</span> **{name_}** · {money(amount)} ({pct:.1f}%)",
                            unsafe_allow_html=True)
                st.progress(min(pct, 100.0) / 100)

    st.subheader("Date range")
    picked = st.date_input("Range", value=(today.replace(day=1), today))
    if len(picked) == 2:
        start, end = picked
        ranged = apply_filters(snap.expenses, by_date_range(start, end))
        fig = category_donut(ranged, expense_index, f"Expenses {start} → {end}")
        if fig:
            st.plotly_chart(fig, use_container_width=True)
        else:
            st.info("No expenses in this range")

elif menu == "💸 Expenses":
    transaction_page("expenses")

elif menu == "💵 Income":
    transaction_page("incomes")

elif menu == "🏡 Household":
    st.title("🏡 Household finances")
    view = st.radio("View", ("household", "personal"), format_func=str.title, horizontal=True)
    data = report[view]
    k1, k2, k3 = st.columns(3)
    k1.metric("Income", money(data["total_income"]))
    k2.metric("Expenses", money(data["total_expenses"]))
    k3.metric("Balance", money(data["balance"]), "surplus" if data["balance"] >= 0 else "deficit",
              delta_color="normal" if data["balance"] >= 0 else "inverse")

    c1, c2 = st.columns(2)
    with c1:
        st.subheader("Expenses")
        if data["expenses"]:
            st.dataframe(transactions_frame(data["expenses"], expense_index), hide_index=True)
        else:
            st.info(f"No {view} expenses yet")
    with c2:
        st.subheader("Income")
        if data["incomes"]:
            st.dataframe(transactions_frame(data["incomes"], income_index), hide_index=True)
        else:
            st.info(f"No {view} income yet")

elif menu == "🎯 Budgets":
    st.title("🎯 Budgets")
    scope = st.checkbox("Only count spending inside each budget's current period",
                        value=st.session_state.get("scope_budgets", False))
    if scope != st.session_state.get("scope_budgets", False):
        st.session_state["scope_budgets"] = scope
        st.rerun()

    with st.expander("➕ Add budget", expanded=not snap.budgets):
        with st.form("add_budget", clear_on_submit=True):
            category = st.selectbox("Category", expense_index.names())
            amount = st.number_input("Limit (USD)", min_value=0.0, step=10.0, format="%.2f")
            period = st.selectbox("Period", PERIODS, index=1)
            if st.form_submit_button("Add budget"):
                run_mutation(lambda: store.add_budget(category, amount, period), "✅ Budget added!")

    if not snap.budgets:
        st.info("No budgets defined")
    for status in report["budget_status"]:
        b = status.budget
        c1, c2 = st.columns([5, 1])
        with c1:
            pct = "n/a" if status.raw_percentage is None else f"{status.raw_percentage:.1f}%"
            icon = {"over": "🔴", "warning": "🟡", "ok": "🟢"}[status.level]
            st.markdown(f"{icon} **{b.category}** · {b.period} · {money(status.spent)} of {money(b.amount)} ({pct})")
            st.progress((status.percentage or 0) / 100)
            label = "Remaining" if status.remaining >= 0 else "Over budget"
            st.caption(f"{label}: {money(abs(status.remaining))}")
        with c2:
            if st.button("🗑️", key=f"del_budget_{b.id}"):
                run_mutation(lambda: store.delete("budgets", b.id), "🗑️ Budget deleted")
        with st.expander(f"✏️ Edit {b.category}"):
            with st.form(f"edit_budget_{b.id}"):
                new_amount = st.number_input("Limit (USD)", min_value=0.0, value=float(b.amount), format="%.2f")
                new_period = st.selectbox("Period", PERIODS, index=PERIODS.index(b.period))
                if st.form_submit_button("Save"):
                    updated = replace(b, amount=new_amount, period=new_period)
                    run_mutation(lambda: store.update("budgets", updated), "✅ Budget updated!")

elif menu == "🙏 Tithes":
    st.title("🙏 Tithes")
    k1, k2, k3 = st.columns(3)
    k1.metric("Total given", money(report["total_tithes"]))
    k2.metric("This month", money(report["current_month_tithes"]))
    k3.metric("Giving (of expenses)", f"{report['giving_percentage']:.1f}%")

    goal = report["active_goal"]
    if goal:
        progress = report["goal_progress"]
        color = {"reached": "🟢", "close": "🟡", "progress": "🔵"}[report["goal_level"]]
        st.markdown(f"{color} Goal: **{goal.target_percentage:.1f}%** ({goal.period}) · {progress:.0f}% reached")
        st.progress(min(progress, 100.0) / 100)

    c1, c2 = st.columns(2)
    with c1:
        with st.form("tithe_goal", clear_on_submit=True):
            st.subheader("🎯 Set goal")
            target = st.number_input("Target percentage", min_value=0.0, max_value=100.0, step=1.0)
            period = st.selectbox("Period", PERIODS, index=1)
            if st.form_submit_button("Save goal"):
                run_mutation(lambda: store.set_tithe_goal(target, period), "✅ Goal saved!")
    with c2:
        with st.form("add_tithe", clear_on_submit=True):
            st.subheader("➕ Add tithe")
            amount = st.number_input("Amount (USD)", min_value=0.0, step=1.0, format="%.2f")
            when = st.date_input("Date", value=today)
            recipient = st.text_input("Recipient")
            description = st.text_input("Description (optional)")
            if st.form_submit_button("Add tithe"):
                run_mutation(lambda: store.add_tithe(amount, when, recipient, description), "✅ Tithe added!")

    for t in snap.tithes:
        c1, c2 = st.columns([5, 1])
        c1.markdown(f"**{t.recipient}** · {money(t.amount)} · {t.date:%Y-%m-%d} {t.description}")
        if c2.button("🗑️", key=f"del_tithe_{t.id}"):
            run_mutation(lambda: store.delete("tithes", t.id), "🗑️ Tithe deleted")
        with st.expander(f"✏️ Edit {t.recipient} · {t.date:%Y-%m-%d}"):
            with st.form(f"edit_tithe_{t.id}"):
                new_amount = st.number_input("Amount (USD)", min_value=0.0, value=float(t.amount), format="%.2f")
                new_date = st.date_input("Date", value=t.date)
                new_recipient = st.text_input("Recipient", value=t.recipient)
                new_description = st.text_input("Description", value=t.description)
                if st.form_submit_button("Save"):
                    updated = replace(t, amount=new_amount, date=new_date,
                                      recipient=new_recipient, description=new_description)
                    run_mutation(lambda: store.update("tithes", updated), "✅ Tithe updated!")

elif menu == "🏷️ Categories":
    st.title("🏷️ Categories")
    tab_exp, tab_inc = st.tabs(["Expense categories", "Income categories"])
    for tab, kind, records in (
        (tab_exp, "expense_categories", snap.expense_categories),
        (tab_inc, "income_categories", snap.income_categories),
    ):
        with tab:
            with st.form(f"add_{kind}", clear_on_submit=True):
                c1, c2, c3 = st.columns(3)
                cat_name = c1.text_input("Name")
                color = c2.color_picker("Color", value=FALLBACK_COLOR)
                icon = c3.selectbox("Icon", ICONS)
                if st.form_submit_button("Add category"):
                    run_mutation(lambda: store.add_category(kind, cat_name, color, icon), "✅ Category added!")
            for cat in records:
                c1, c2 = st.columns([5, 1])
                c1.markdown(f"<span style='color:{cat.color}'>●</span> **{cat.name}** · {cat.icon}",
                            unsafe_allow_html=True)
                if c2.button("🗑️", key=f"del_{kind}_{cat.id}"):
                    run_mutation(lambda: store.delete(kind, cat.id), "🗑️ Category deleted")
                with st.expander(f"✏️ Edit {cat.name}"):
                    with st.form(f"edit_{kind}_{cat.id}"):
                        new_name = st.text_input("Name", value=cat.name)
                        new_color = st.color_picker("Color", value=cat.color)
                        icons = ICONS if cat.icon in ICONS else ICONS + (cat.icon,)
                        new_icon = st.selectbox("Icon", icons, index=icons.index(cat.icon))
                        if st.form_submit_button("Save"):
                            updated = replace(cat, name=new_name, color=new_color, icon=new_icon)
                            run_mutation(lambda: store.update(kind, updated), "✅ Category updated!")

elif menu == "👪 Family":
    st.title("👪 Family")
    family = FamilyService(get_storage(), user)
    if not user.family_id:
        st.info("You are not part of a family yet.")
        if st.button("Start a family"):
            started = family.start_family()
            st.session_state["family_id"] = started.family_id
            st.rerun()
    else:
        st.caption(f"Family code: `{user.family_id}`")
        try:
            members = family.members()
        except BudgetAppError as e:
            st.error(f"Could not load family members: {e}")
            members = ()
        if user.is_admin:
            with st.form("add_member", clear_on_submit=True):
                st.subheader("➕ Add family member")
                m_name = st.text_input("Name")
                m_email = st.text_input("Email")
                m_nick = st.text_input("Nickname")
                if st.form_submit_button("Add member"):
                    run_mutation(lambda: family.add_member(m_name, m_email, m_nick), "✅ Member added! Share the family code with them.")
        else:
            st.info("Only administrators can add new family members.")

        for m in members:
            c1, c2 = st.columns([5, 1])
            badge = "👑 Administrator" if m.is_admin else "User"
            c1.markdown(f"**{m.nickname}** · {m.profile.name} · {m.profile.email} · {badge}")
            if user.is_admin and not m.is_admin and m.user_id != user.id:
                if c2.button("🗑️", key=f"del_member_{m.id}"):
                    run_mutation(lambda: family.remove_member(m.id), "🗑️ Member removed")

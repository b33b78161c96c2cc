"""
Streamlit Frontend for R2R

The screens a user works with day to day: upload receipts and messages,
see where the money went, set budgets, check upcoming bills, export
business expenses and chat about their spending.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Clear error messages in simple language
3. Visual feedback for all operations
4. Numbers always come from stored transactions, never from the AI

The AI can fail without breaking a page: extraction, insights and
predictions fall back to empty results and the page says so.
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st

from r2r.config import validate_all_settings
from r2r.models.finance import (
    Budget,
    BudgetBand,
    BudgetLine,
    CategoryBudget,
    ImageUpload,
    SourceType,
    TransactionCategory,
)
from r2r.orchestrator import AppComponents, create_app_components
from r2r.services import NotFoundError, ValidationFailure
from r2r.validation import UserInputFailure


# Page configuration
st.set_page_config(
    page_title="R2R Finance",
    page_icon="💸",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .band-under { color: #28a745; font-weight: bold; }
    .band-near_limit { color: #d39e00; font-weight: bold; }
    .band-over { color: #dc3545; font-weight: bold; }
    .band-unknown { color: #6c757d; }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)

BAND_LABELS = {
    BudgetBand.UNDER: "On track",
    BudgetBand.NEAR_LIMIT: "Near limit",
    BudgetBand.OVER: "Over budget",
    BudgetBand.UNKNOWN: "No budget set",
}

SOURCE_LABELS = {
    SourceType.RECEIPT_IMAGE: "🧾 Receipt",
    SourceType.EMAIL: "📧 Email",
    SourceType.SMS: "💬 SMS",
    SourceType.MANUAL: "✍️ Manual",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    return create_app_components()


def money(amount) -> str:
    return f"${Decimal(amount):,.2f}"


def main():
    """Main application entry point."""
    try:
        components = get_components()
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        render_settings_page()
        return

    if "user_id" not in st.session_state:
        render_login_page(components)
        return

    st.sidebar.title("💸 R2R Finance")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "📤 Upload",
            "🏠 Dashboard",
            "📊 Analysis",
            "🎯 Budget",
            "📅 Bills",
            "🧾 Tax",
            "👪 Household",
            "💬 Chat",
            "⚙️ Settings",
        ],
        index=1,
    )

    st.sidebar.markdown("---")
    if st.sidebar.button("Log out"):
        st.session_state.clear()
        st.rerun()

    user_id = st.session_state.user_id
    if page == "📤 Upload":
        render_upload_page(components, user_id)
    elif page == "🏠 Dashboard":
        render_dashboard_page(components, user_id)
    elif page == "📊 Analysis":
        render_analysis_page(components, user_id)
    elif page == "🎯 Budget":
        render_budget_page(components, user_id)
    elif page == "📅 Bills":
        render_bills_page(components, user_id)
    elif page == "🧾 Tax":
        render_tax_page(components, user_id)
    elif page == "👪 Household":
        render_household_page(components, user_id)
    elif page == "💬 Chat":
        render_chat_page(components, user_id)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_login_page(components: AppComponents):
    st.title("💸 R2R Finance")
    st.markdown("Receipts to reports: upload what you spend, see where it goes.")

    login_tab, signup_tab = st.tabs(["Log in", "Sign up"])

    with login_tab:
        email = st.text_input("Email", key="login_email")
        password = st.text_input("Password", type="password", key="login_password")
        if st.button("Log in", type="primary"):
            try:
                user = run_async(components.accounts.login(email, password))
            except ValidationFailure as e:
                st.error(str(e))
            else:
                st.session_state.user_id = user.id
                st.rerun()

    with signup_tab:
        name = st.text_input("Name", key="signup_name")
        email = st.text_input("Email", key="signup_email")
        password = st.text_input("Password", type="password", key="signup_password")
        if st.button("Create account", type="primary"):
            try:
                user = run_async(components.accounts.signup(name, email, password))
            except ValidationFailure as e:
                st.error(str(e))
            else:
                st.session_state.user_id = user.id
                st.rerun()


def render_upload_page(components: AppComponents, user_id: str):
    """Render the ingest page."""
    st.title("📤 Upload")
    st.markdown("Paste a bank SMS or email, or attach photos of your receipts.")

    source_type = st.radio(
        "What are you adding?",
        options=list(SourceType),
        format_func=lambda s: SOURCE_LABELS[s],
        horizontal=True,
    )
    raw_text = st.text_area(
        "Text",
        height=150,
        placeholder="e.g. Your a/c was debited USD 12.40 at UBER EATS on 03/05/2025",
    )
    uploaded_files = st.file_uploader(
        "Receipt photos",
        type=["jpg", "jpeg", "png", "webp"],
        accept_multiple_files=True,
    )

    if st.button("🔍 Extract transactions", type="primary"):
        try:
            images = [
                ImageUpload(filename=f.name, mime_type=f.type, data=f.getvalue())
                for f in uploaded_files or []
            ]
        except ValueError as e:
            st.error(f"Could not read the upload: {e}")
            return

        with st.spinner("Reading your data... Please wait."):
            try:
                saved, issues, message = run_async(
                    components.ingest.ingest(user_id, source_type, raw_text, images)
                )
            except UserInputFailure as e:
                st.warning(str(e))
                return

        if saved:
            st.success(message)
            st.dataframe(
                [
                    {
                        "Date": t.occurred_at.strftime("%Y-%m-%d %H:%M"),
                        "Merchant": t.merchant,
                        "Amount": money(t.amount),
                        "Category": t.category.value,
                        "Business": t.is_business,
                    }
                    for t in saved
                ],
                use_container_width=True,
            )
        else:
            st.warning(message)


def render_dashboard_page(components: AppComponents, user_id: str):
    st.title("🏠 Dashboard")
    snapshot = run_async(components.dashboard.snapshot(user_id))

    col1, col2, col3 = st.columns(3)
    with col1:
        spend = snapshot.latest_summary.total_spend if snapshot.latest_summary else 0
        st.metric("Spend (last analysis)", money(spend))
    with col2:
        st.metric("Business expenses", money(snapshot.business_total))
    with col3:
        st.metric("Daily streak", f"🔥 {snapshot.streak_count}")

    st.markdown("### Recent transactions")
    if not snapshot.recent_transactions:
        st.info("No transactions yet. Use the Upload page to add your first receipt.")
        return
    for t in snapshot.recent_transactions:
        badge = " · BUSINESS" if t.is_business else ""
        st.markdown(
            f"**{t.merchant}** {money(t.amount)} "
            f"({t.category.value}) {t.occurred_at:%d %b %Y}{badge}"
        )

    if snapshot.latest_summary and snapshot.latest_summary.top_categories:
        st.markdown("### Top categories")
        st.bar_chart({
            agg.category.value: float(agg.amount)
            for agg in snapshot.latest_summary.top_categories
        })


def render_budget_line(label: str, line: BudgetLine):
    st.markdown(
        f"{label}: {money(line.actual)} of {money(line.budget_amount)} "
        f"<span class='band-{line.band.value}'>{BAND_LABELS[line.band]} "
        f"({line.percent_used:.0f}%)</span>",
        unsafe_allow_html=True,
    )
    if line.budget_amount > 0:
        st.progress(min(line.percent_used / 100, 1.0))


def render_analysis_page(components: AppComponents, user_id: str):
    st.title("📊 Analysis")

    default_start, default_end = components.analysis.default_period()
    col1, col2 = st.columns(2)
    with col1:
        start = st.date_input("From", value=default_start)
    with col2:
        end = st.date_input("To", value=default_end)

    if st.button("Analyze", type="primary"):
        with st.spinner("Crunching your numbers..."):
            try:
                run_async(components.analysis.analyze(user_id, start, end))
            except UserInputFailure as e:
                st.error(str(e))
                return

    summary = run_async(components.analysis.latest_summary(user_id))
    if summary is None:
        st.info("Run an analysis to see your spending breakdown.")
        return

    st.caption(
        f"Latest analysis: {summary.period_start:%d %b %Y} to {summary.period_end:%d %b %Y}"
    )
    col1, col2 = st.columns(2)
    with col1:
        st.metric("Total spend", money(summary.total_spend))
    with col2:
        st.metric("Transactions", summary.total_transactions)

    if summary.top_categories:
        st.markdown("### Where it went")
        st.dataframe(
            [
                {
                    "Category": agg.category.value,
                    "Amount": money(agg.amount),
                    "Share": f"{agg.percentage:.1f}%",
                }
                for agg in summary.top_categories
            ],
            use_container_width=True,
        )

    st.markdown("### Budget")
    comparison = run_async(components.analysis.budget_comparison(user_id, summary))
    render_budget_line("Overall", comparison.overall)
    for line in comparison.categories:
        render_budget_line(line.category.value, line)

    st.markdown("### Leaks")
    if summary.leaks:
        for leak in summary.leaks:
            st.markdown(f"**{leak.title}** ({money(leak.amount)}/month): {leak.description}")
    else:
        st.caption("No leaks found.")

    st.markdown("### Suggestions")
    if summary.suggestions:
        for suggestion in summary.suggestions:
            st.markdown(
                f"- **{suggestion.action}**: {suggestion.rationale} "
                f"(saves about {money(suggestion.estimated_monthly_saving)}/month)"
            )
    else:
        st.caption("No suggestions yet.")


def render_budget_page(components: AppComponents, user_id: str):
    st.title("🎯 Budget")

    today = date.today()
    col1, col2 = st.columns(2)
    with col1:
        month = st.selectbox("Month", options=list(range(1, 13)), index=today.month - 1)
    with col2:
        year = st.number_input("Year", min_value=2000, max_value=2100, value=today.year)

    budget = run_async(components.budgets.get_or_default(user_id, month, int(year)))
    limits = {entry.category: entry.amount for entry in budget.category_budgets}

    overall = st.number_input(
        "Overall monthly budget",
        min_value=0.0,
        value=float(budget.overall_budget),
        step=50.0,
    )
    st.markdown("### Per category")
    category_amounts = {}
    for category in TransactionCategory:
        category_amounts[category] = st.number_input(
            category.value,
            min_value=0.0,
            value=float(limits.get(category, 0)),
            step=10.0,
            key=f"budget_{category.name}",
        )

    if st.button("💾 Save budget", type="primary"):
        updated = Budget(
            id=budget.id,
            user_id=user_id,
            month=month,
            year=int(year),
            overall_budget=Decimal(str(overall)),
            category_budgets=[
                CategoryBudget(category=category, amount=Decimal(str(amount)))
                for category, amount in category_amounts.items()
            ],
        )
        run_async(components.budgets.save_budget(updated))
        st.success(f"Budget for {month}/{year} saved.")


def render_bills_page(components: AppComponents, user_id: str):
    st.title("📅 Upcoming Bills")
    st.markdown("Recurring payments predicted from your recent transactions.")

    if st.button("🔮 Predict bills", type="primary"):
        with st.spinner("Looking for patterns..."):
            st.session_state.predictions = run_async(components.bills.predict(user_id))

    predictions = st.session_state.get("predictions")
    if predictions is None:
        return
    if not predictions:
        st.info("No recurring bills found. Upload more receipts to train the predictor.")
        return

    for prediction in predictions:
        kind = "Subscription" if prediction.is_subscription else "Bill"
        st.markdown(
            f"**{prediction.merchant}** ({kind}, {prediction.frequency.value}): "
            f"{money(prediction.estimated_amount)} due "
            f"{prediction.next_expected_date:%d %b %Y} "
            f"(confidence {prediction.confidence:.0%})"
        )


def render_tax_page(components: AppComponents, user_id: str):
    st.title("🧾 Tax")
    st.markdown("Flag business expenses, then export them for your accountant.")

    transactions = run_async(components.transactions.list_for_user(user_id))
    show_business_only = st.toggle("Business only")
    shown = [t for t in transactions if t.is_business or not show_business_only]

    for t in reversed(shown):
        col1, col2, col3 = st.columns([4, 2, 2])
        with col1:
            st.markdown(f"**{t.merchant}** {money(t.amount)} · {t.occurred_at:%d %b %Y}")
        with col2:
            category = st.selectbox(
                "Category",
                options=list(TransactionCategory),
                index=list(TransactionCategory).index(t.category),
                format_func=lambda c: c.value,
                key=f"category_{t.id}",
                label_visibility="collapsed",
            )
            if category != t.category:
                run_async(components.transactions.correct_category(user_id, t.id, category))
                st.rerun()
        with col3:
            label = "Business" if t.is_business else "Personal"
            if st.button(label, key=f"toggle_{t.id}"):
                try:
                    run_async(components.transactions.toggle_business(user_id, t.id))
                except NotFoundError as e:
                    st.error(str(e))
                st.rerun()

    st.markdown("---")
    filename, csv_text = run_async(components.transactions.export_tax(user_id))
    st.download_button(
        "⬇️ Export business expenses (CSV)",
        data=csv_text,
        file_name=filename,
        mime="text/csv",
    )


def render_household_page(components: AppComponents, user_id: str):
    st.title("👪 Household")
    user = run_async(components.accounts.get_user(user_id))

    if user.household_id:
        st.success(f"You are sharing transactions with household **{user.household_id}**.")
        st.caption(
            "Transactions you added while in a household stay shared with it, "
            "even if you leave."
        )
        if st.button("Leave household"):
            run_async(components.accounts.leave_household(user_id))
            st.rerun()
    else:
        st.info("Join a household to see each other's spending.")

    household_id = st.text_input("Household code", value=user.household_id or "")
    if st.button("Join household", type="primary"):
        run_async(components.accounts.join_household(user_id, household_id))
        st.rerun()


def render_chat_page(components: AppComponents, user_id: str):
    st.title("💬 Ask R2R")

    if "chat" not in st.session_state:
        st.session_state.chat = run_async(components.chat.start(user_id))
    chat = st.session_state.chat

    for message in chat.history:
        with st.chat_message("assistant" if message.role == "model" else "user"):
            st.markdown(message.text)

    prompt = st.chat_input("e.g. How much did I spend on groceries this month?")
    if prompt:
        with st.spinner("Thinking..."):
            run_async(chat.send(prompt))
        st.rerun()


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Configuration Status")

    status = validate_all_settings()

    sections = [
        ("Gemini (AI)", "gemini"),
        ("Storage", "storage"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()

"""
Streamlit Frontend for Finance Pro

This is the user interface for tracking accounts, stocks and spending.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Every form is validated before it touches the ledger
3. Clear error messages in simple language
4. Visible sync state: the user always knows if changes are saved

Streamlit reruns this script on every interaction, but the save queue's
debounce timers must outlive a rerun. All async work therefore runs on one
long-lived event loop in a background thread, and ledger mutations are
dispatched onto that same loop.
"""

import asyncio
import html
import logging
import threading
from datetime import date
from decimal import Decimal

import streamlit as st

from finance_pro.config import get_settings, validate_all_settings
from finance_pro.ledger import LedgerError
from finance_pro.models.finance import (
    DEFAULT_CATEGORIES,
    Account,
    AccountType,
    TradeAction,
    TransactionType,
)
from finance_pro.orchestrator import AppSession, create_app_components
from finance_pro.queries import (
    account_name_lookup,
    portfolio_summary,
    sorted_transactions,
)
from finance_pro.validation import FormValidator


SAVING_SUSPENDED_MESSAGE = (
    "Could not load your saved data, so changes in this session are not "
    "saved. Log out and back in to retry."
)


# Page configuration
st.set_page_config(
    page_title="Finance Pro",
    page_icon="💰",
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
    .info-box {
        padding: 20px;
        background-color: #cce5ff;
        border-radius: 10px;
        border-left: 5px solid #004085;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_event_loop() -> asyncio.AbstractEventLoop:
    """One event loop for the lifetime of the process."""
    loop = asyncio.new_event_loop()
    threading.Thread(target=loop.run_forever, name="finance-pro-loop", daemon=True).start()
    return loop


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    return asyncio.run_coroutine_threadsafe(coro, get_event_loop()).result()


async def _dispatch(action, *args, **kwargs):
    return action(*args, **kwargs)


def run_on_loop(action, *args, **kwargs):
    """Run a synchronous ledger call on the event loop the save queue uses."""
    return run_async(_dispatch(action, *args, **kwargs))


@st.cache_resource
def get_components() -> tuple[AppSession, FormValidator]:
    """Get or create application components (cached)."""
    settings = get_settings().app
    logging.basicConfig(level=logging.DEBUG if settings.debug_mode else logging.INFO)
    return create_app_components(settings)


def money(value: Decimal, currency: str = "") -> str:
    text = f"{value:,.0f}"
    return f"{currency} {text}" if currency else text


def advice_markup(advice: str) -> str:
    """Advice box HTML. The advice is model output and is escaped."""
    return f"""
    <div class="info-box">
        <h4>💡 Advice</h4>
        <p>{html.escape(advice)}</p>
    </div>
    """


def flash(message: str, state=None):
    """Keep a success message for the next run, so it survives st.rerun()."""
    state = st.session_state if state is None else state
    state["flash"] = message


def show_flash(state=None):
    state = st.session_state if state is None else state
    message = state.pop("flash", None)
    if message:
        st.success(message)


def show_validation(validator: FormValidator, result) -> bool:
    """Show issues next to a form. True if the form may be submitted."""
    if result.issues:
        summary = validator.get_user_friendly_summary(result)
        if result.has_errors:
            st.error(summary)
        else:
            st.warning(summary)
    return result.is_valid


def main():
    """Main application entry point."""
    session, validator = get_components()

    if not session.is_logged_in and not st.session_state.get("restore_attempted"):
        st.session_state.restore_attempted = True
        run_async(session.restore())

    if not session.is_logged_in:
        render_login_page(session)
        return

    # Sidebar navigation
    st.sidebar.title("💰 Finance Pro")
    st.sidebar.markdown(f"Signed in as **{session.state.user.username}**")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "🏦 Accounts", "📈 Stocks", "🧾 Transactions", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    render_sync_status(session)
    if st.sidebar.button("🚪 Log out"):
        run_async(session.logout())
        st.rerun()

    show_flash()

    # Route to appropriate page
    if page == "📊 Dashboard":
        render_dashboard_page(session)
    elif page == "🏦 Accounts":
        render_accounts_page(session, validator)
    elif page == "📈 Stocks":
        render_stocks_page(session, validator)
    elif page == "🧾 Transactions":
        render_transactions_page(session, validator)
    elif page == "⚙️ Settings":
        render_settings_page(session)


def render_login_page(session: AppSession):
    """Render the login screen."""
    st.title("💰 Finance Pro")
    st.markdown("Track your accounts, stocks and spending in one place.")

    if session.storage.is_remote:
        st.success("☁️ Cloud sync is on: your data is stored in Google Sheets.")
    else:
        st.info("💾 Local mode: your data is stored on this computer only.")

    with st.form("login"):
        username = st.text_input(
            "Your name",
            placeholder="e.g. Alice",
            help="There is no password. Use the same name to see your data again.",
        )
        submitted = st.form_submit_button("Start", type="primary")

    if submitted:
        with st.spinner("Loading your data..."):
            run_async(session.login(username))
        st.rerun()


def render_sync_status(session: AppSession):
    if session.saving_suspended:
        st.sidebar.error(f"⚠️ {SAVING_SUSPENDED_MESSAGE}")
        return
    queue = session.save_queue
    if queue is None:
        return
    if queue.last_error:
        st.sidebar.error(f"⚠️ {queue.last_error}")
    elif session.is_syncing:
        st.sidebar.caption("🔄 Saving...")
    elif queue.last_saved_at:
        st.sidebar.caption(f"✅ Saved at {queue.last_saved_at:%H:%M:%S} UTC")
    else:
        st.sidebar.caption(f"Storage: {session.storage.name}")


def render_dashboard_page(session: AppSession):
    """Render the dashboard page."""
    st.title("📊 Dashboard")

    with st.spinner("Crunching the numbers..."):
        stats, advice = run_async(session.dashboard())

    st.markdown(advice_markup(advice), unsafe_allow_html=True)

    col1, col2, col3 = st.columns(3)
    col1.metric("Net worth", money(stats.net_worth))
    col2.metric("Cash", money(stats.total_cash))
    col3.metric("Stocks", money(stats.stock_value))

    col1, col2 = st.columns(2)
    col1.metric("Income this month", money(stats.monthly_income))
    col2.metric("Spending this month", money(stats.monthly_expense))

    st.markdown("### Spending by category")
    if stats.expense_by_category:
        st.bar_chart({
            "Amount": {
                category: float(amount)
                for category, amount in stats.expense_by_category.items()
            }
        })
    else:
        st.info("No spending recorded this month.")

    st.markdown("### Recent transactions")
    names = account_name_lookup(session.ledger.accounts)
    if not stats.recent_transactions:
        st.info("No transactions this month yet.")
    for t in stats.recent_transactions:
        sign = "+" if t.transaction_type == TransactionType.INCOME else "-"
        st.markdown(
            f"**{t.transaction_date}** · {t.category} · {names.get(t.account_id, 'Unknown')} · "
            f"{sign}{money(t.amount)}" + (f" · _{t.note}_" if t.note else "")
        )


def render_accounts_page(session: AppSession, validator: FormValidator):
    """Render the accounts page."""
    st.title("🏦 Accounts")
    ledger = session.ledger

    if not ledger.accounts:
        st.info("No accounts yet. Add your first one below.")

    for account in ledger.accounts:
        label = f"{account.name} ({account.bank_name}) · {money(account.balance, account.currency)}"
        with st.expander(label):
            with st.form(f"edit_{account.id}"):
                name = st.text_input("Name", value=account.name)
                bank_name = st.text_input("Bank", value=account.bank_name)
                balance = st.number_input("Balance", value=float(account.balance), step=100.0)
                currency = st.text_input("Currency", value=account.currency)
                account_type = st.selectbox(
                    "Type",
                    options=list(AccountType),
                    index=list(AccountType).index(account.account_type),
                    format_func=lambda x: x.value.title(),
                )
                save = st.form_submit_button("💾 Save")

            if save:
                result = validator.validate_account_form(name, bank_name, currency)
                if show_validation(validator, result):
                    updated = Account.model_validate({
                        **account.model_dump(),
                        "name": name,
                        "bank_name": bank_name,
                        "balance": Decimal(str(balance)),
                        "currency": currency,
                        "account_type": account_type,
                    })
                    run_on_loop(ledger.edit_account, updated)
                    st.rerun()

            if st.button("🗑️ Delete account", key=f"delete_{account.id}"):
                run_on_loop(ledger.delete_account, account.id)
                st.rerun()

    st.markdown("---")
    st.markdown("### Add account")
    with st.form("add_account", clear_on_submit=True):
        name = st.text_input("Name", placeholder="e.g. Salary account")
        bank_name = st.text_input("Bank", placeholder="e.g. Taipei Fubon Bank")
        balance = st.number_input("Opening balance", value=0.0, step=100.0)
        currency = st.text_input("Currency", value=get_settings().app.app_default_currency)
        account_type = st.selectbox(
            "Type",
            options=list(AccountType),
            format_func=lambda x: x.value.title(),
        )
        add = st.form_submit_button("➕ Add account", type="primary")

    if add:
        result = validator.validate_account_form(name, bank_name, currency)
        if show_validation(validator, result):
            account = run_on_loop(
                ledger.add_account,
                name=name,
                bank_name=bank_name,
                balance=Decimal(str(balance)),
                account_type=account_type,
                currency=currency,
            )
            flash(f"✅ Added {account.name}")
            st.rerun()


def render_stocks_page(session: AppSession, validator: FormValidator):
    """Render the portfolio page."""
    st.title("📈 Stocks")
    ledger = session.ledger
    summary = portfolio_summary(ledger.stocks)

    col1, col2, col3 = st.columns(3)
    col1.metric("Market value", money(summary.market_value))
    col2.metric("Cost", money(summary.total_cost))
    col3.metric(
        "Profit / loss",
        money(summary.profit_loss),
        delta=f"{summary.profit_loss_percent:.2f}%",
    )

    if st.button("🔄 Refresh prices"):
        with st.spinner("Asking for current prices..."):
            updated = run_async(session.refresh_prices())
        if updated:
            st.success(f"✅ Updated {updated} price(s)")
        else:
            st.warning("No prices could be refreshed right now.")

    if summary.holdings:
        st.dataframe(
            [
                {
                    "Symbol": h.symbol,
                    "Name": h.name,
                    "Quantity": h.quantity,
                    "Avg cost": float(h.average_cost),
                    "Price": float(h.current_price),
                    "Value": float(h.market_value),
                    "P/L": float(h.profit_loss),
                    "P/L %": round(float(h.profit_loss_percent), 2),
                }
                for h in summary.holdings
            ],
            use_container_width=True,
        )
    else:
        st.info("No holdings yet.")

    st.markdown("---")
    st.markdown("### Trade")
    accounts = ledger.accounts
    if not accounts:
        st.warning("Add an account first: trades are paid from an account.")
        return

    with st.form("trade"):
        action = st.radio(
            "Action",
            options=list(TradeAction),
            format_func=lambda x: x.value.title(),
            horizontal=True,
        )
        col1, col2 = st.columns(2)
        symbol = col1.text_input("Symbol", placeholder="e.g. AAPL or 2330.TW")
        name = col2.text_input("Name", placeholder="e.g. Apple Inc.")
        quantity = col1.number_input("Quantity", min_value=0, value=0, step=1)
        price = col2.number_input("Price per share", min_value=0.0, value=0.0, step=1.0)
        account_id = st.selectbox(
            "Account",
            options=[a.id for a in accounts],
            format_func=account_name_lookup(accounts).get,
        )
        submitted = st.form_submit_button("Submit trade", type="primary")

    if submitted:
        price = Decimal(str(price))
        quantity = int(quantity)
        result = validator.validate_trade_form(
            action, symbol, name, quantity, price, account_id, ledger.stocks
        )
        if show_validation(validator, result):
            try:
                run_on_loop(
                    ledger.execute_trade,
                    action, symbol, name, quantity, price, account_id,
                )
            except LedgerError as e:
                st.error(f"❌ {e}")
            else:
                flash("✅ Trade recorded")
                st.rerun()


def render_transactions_page(session: AppSession, validator: FormValidator):
    """Render the transactions page."""
    st.title("🧾 Transactions")
    ledger = session.ledger
    accounts = ledger.accounts
    names = account_name_lookup(accounts)

    if not accounts:
        st.warning("Add an account first: every transaction belongs to an account.")
    else:
        with st.form("record_transaction", clear_on_submit=True):
            transaction_type = st.radio(
                "Type",
                options=list(TransactionType),
                index=1,
                format_func=lambda x: x.value.title(),
                horizontal=True,
            )
            col1, col2 = st.columns(2)
            account_id = col1.selectbox(
                "Account",
                options=[a.id for a in accounts],
                format_func=names.get,
            )
            amount = col2.number_input("Amount", min_value=0.0, value=0.0, step=10.0)
            category = col1.selectbox("Category", options=DEFAULT_CATEGORIES)
            transaction_date = col2.date_input("Date", value=date.today())
            note = st.text_input("Note (optional)")
            submitted = st.form_submit_button("➕ Record", type="primary")

        if submitted:
            amount = Decimal(str(amount))
            result = validator.validate_transaction_form(
                account_id, amount, category, transaction_date, ledger.accounts, note=note
            )
            if show_validation(validator, result):
                run_on_loop(
                    ledger.record_transaction,
                    account_id=account_id,
                    amount=amount,
                    transaction_type=transaction_type,
                    category=category,
                    transaction_date=transaction_date,
                    note=note,
                )
                st.rerun()

    st.markdown("### History")
    transactions = sorted_transactions(ledger.transactions)
    if not transactions:
        st.info("No transactions recorded yet.")
        return

    st.dataframe(
        [
            {
                "Date": t.transaction_date.isoformat(),
                "Account": names.get(t.account_id, "Unknown"),
                "Category": t.category,
                "Type": t.transaction_type.value.title(),
                "Amount": float(t.signed_amount),
                "Note": t.note or "",
            }
            for t in transactions
        ],
        use_container_width=True,
    )


def render_settings_page(session: AppSession):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Google Sheets (Cloud sync)", "google_sheets"),
        ("Gemini (Advice & prices)", "gemini"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown(f"**Active storage:** {session.storage.name}")

    st.markdown("### Recent activity")
    events = session.audit_logger.recent_events(limit=20)
    if not events:
        st.info("Nothing logged yet.")
    for event in events:
        st.caption(f"{event.timestamp:%Y-%m-%d %H:%M:%S} · {event.description}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()

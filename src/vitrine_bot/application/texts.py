"""Textos exibidos ao usuário (texto puro, sem parse_mode)."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

LOADING = "⏳ Loading..."
LOADING_CATEGORIES = "🛍️ Shop Categories\n\nLoading categories..."
CHECKING_AVAILABILITY = "🔍 Checking availability..."
PROCESSING_CHECKOUT = "⏳ Processing your purchase..."
PROCESSING_DEPOSIT = "⏳ Creating deposit..."

THROTTLED_TAP = "⏳ Too many requests. Please wait a moment."
THROTTLED_TEXT = "⏳ You're sending messages too quickly. Please wait a moment before trying again."
THROTTLED_COMMAND = "⏳ Please wait a moment before using this command again."
DUPLICATE_TAP = "⏳ Please wait..."
COMING_SOON = "🚧 Feature coming soon!"
CATEGORY_SELECTED = "✅ Category selected"
REGION_SELECTED = "✅ State selected"

SESSION_EXPIRED = "⏰ Session expired, please start again."
GENERIC_ERROR = "❌ Something went wrong. Please try again."
SERVICE_UNAVAILABLE = (
    "⚠️ Service Temporarily Unavailable\n\n"
    "We're experiencing technical difficulties. Please try again in a few moments."
)
USERNAME_REQUIRED = (
    "❌ Username Required\n\n"
    "Please set a Telegram username in your profile settings, then send /start again."
)
USE_MENU = "🤖 Please use the menu buttons to navigate, or send /start to begin."
INVALID_CATEGORY = "❌ Invalid category selection. Please choose again."
NO_CATEGORIES = "❌ No categories available right now."
NO_RESULTS = (
    "📭 No Products Found\n\n"
    "No products match your current filters. Try a different year range or state."
)
CHOOSE_CURRENCY = "💸 Deposit Funds\n\nSelect the currency you want to pay with:"
NO_CURRENCIES = "❌ No currencies available right now."
SESSION_CLEARED = "🧹 Your session and limits were cleared. Send /start to begin again."
FILE_SEND_FAILED = (
    "⚠️ Your purchase was completed, but the file could not be delivered here. "
    "Please contact support with your purchase details."
)


def welcome(display_name: str, first_name: str | None) -> str:
    name = first_name or "there"
    return (
        f"🎉 Welcome to {display_name}, {name}!\n\n"
        "🏠 Main Menu\n\nWhat would you like to do?"
    )


def main_menu(display_name: str) -> str:
    return f"🎉 Welcome to {display_name}\n\n🏠 Main Menu\n\nWhat would you like to do?"


def help_text(display_name: str) -> str:
    return (
        f"🤖 {display_name} Help\n\n"
        "Commands:\n"
        "/start - Open the main menu\n"
        "/wallet - Show balance and recent transactions\n"
        "/deposit - Add funds\n"
        "/status - Show your session status\n"
        "/clear - Reset your session\n"
        "/help - Show this message\n\n"
        "Browse the shop with the buttons: pick a category, optionally narrow "
        "by year range and state, then type the quantity you want."
    )


def format_money(amount: Any) -> str:
    try:
        return f"${float(amount):,.2f}"
    except (TypeError, ValueError):
        return "$0.00"


def wallet(balance: Any, transactions: Sequence[Mapping[str, Any]], limit: int) -> str:
    lines = ["💰 Your Wallet", "", f"Balance: {format_money(balance)}"]
    recent = list(transactions)[:limit]
    if recent:
        lines += ["", "Recent transactions:"]
        for tx in recent:
            kind = str(tx.get("type") or "transaction").capitalize()
            status = tx.get("status")
            suffix = f" ({status})" if status else ""
            lines.append(f"• {kind}: {format_money(tx.get('amount'))}{suffix}")
    else:
        lines += ["", "No transactions yet."]
    return "\n".join(lines)


def choose_category(count: int) -> str:
    return f"🛍️ Shop Categories\n\nSelect a category ({count} available):"


def choose_year(category_label: str) -> str:
    return (
        f"📂 Category: {category_label}\n\n"
        "📅 Select a year range, or skip this filter:"
    )


def choose_region(filters: Mapping[str, Any]) -> str:
    return f"{describe_filters(filters)}\n\n🗺️ Select a state, or skip this filter:"


def describe_filters(filters: Mapping[str, Any]) -> str:
    lines = ["🔎 Current filters:"]
    if filters.get("year_from") and filters.get("year_to"):
        lines.append(f"• Years: {filters['year_from']}-{filters['year_to']}")
    if filters.get("state"):
        lines.append(f"• State: {filters['state']}")
    if len(lines) == 1:
        lines.append("• None")
    return "\n".join(lines)


def enter_quantity(available: int, filters: Mapping[str, Any]) -> str:
    return (
        f"{describe_filters(filters)}\n\n"
        f"📦 Available: {available}\n\n"
        f"Type how many you want to buy (1-{available}):"
    )


def invalid_quantity(available: int) -> str:
    return f"❌ Please enter a valid number between 1 and {available}."


def quantity_exceeds(available: int) -> str:
    return f"❌ Only {available} available. Please enter a number between 1 and {available}."


def confirm_checkout(quantity: int, filters: Mapping[str, Any]) -> str:
    return (
        "🛒 Confirm Purchase\n\n"
        f"{describe_filters(filters)}\n"
        f"• Quantity: {quantity}\n\n"
        "Confirm to complete the purchase."
    )


def checkout_success(quantity: int, filename: str, size: int, message: str | None) -> str:
    if message:
        return f"✅ {message}"
    return (
        "✅ Purchase completed successfully!\n\n"
        f"📦 Quantity: {quantity}\n"
        f"📄 File: {filename}\n"
        f"📊 Size: {size / 1024:.2f} KB"
    )


def checkout_failed(error: str | None) -> str:
    return f"❌ Purchase Failed\n\n{error or 'Checkout failed'}\n\nPlease check your balance and try again."


def choose_amount(currency: str) -> str:
    return f"💸 Deposit with {currency.upper()}\n\nSelect an amount:"


def custom_amount_prompt(currency: str, min_deposit: float, max_deposit: float) -> str:
    return (
        f"💰 Custom Deposit ({currency.upper()})\n\n"
        f"Type the amount in USD ({format_money(min_deposit)} - {format_money(max_deposit)}):"
    )


def invalid_amount(min_deposit: float, max_deposit: float) -> str:
    return (
        "❌ Invalid Amount\n\n"
        f"Please enter a number between {format_money(min_deposit)} and {format_money(max_deposit)}."
    )


def deposit_created(amount: float, currency: str, payment: Mapping[str, Any], transaction_id: Any) -> str:
    lines = [
        "⏳ Deposit Pending",
        "",
        f"Amount: {format_money(amount)}",
        f"Currency: {currency.upper()}",
    ]
    address = payment.get("address") or payment.get("pay_address")
    pay_amount = payment.get("amount") or payment.get("pay_amount")
    payment_url = payment.get("url") or payment.get("payment_url")
    if pay_amount:
        lines.append(f"Send exactly: {pay_amount} {currency.upper()}")
    if address:
        lines.append(f"To address: {address}")
    if payment_url:
        lines.append(f"Payment link: {payment_url}")
    if transaction_id:
        lines.append(f"Transaction: {transaction_id}")
    lines += ["", "Your balance updates once the payment is confirmed."]
    return "\n".join(lines)


def deposit_failed(error: str | None) -> str:
    return f"❌ Deposit Failed\n\n{error or 'Failed to create deposit'}"


def status(
    step: str | None,
    age_minutes: int | None,
    counts: Mapping[str, int],
    session_stats: Mapping[str, Any],
) -> str:
    lines = ["📊 Your Status", ""]
    if step:
        lines.append(f"Current step: {step}")
        lines.append(f"Session age: {age_minutes or 0} min")
    else:
        lines.append("No active session.")
    lines.append("")
    lines.append("Requests in the last minute:")
    for category in ("command", "tap", "text"):
        lines.append(f"• {category}: {counts.get(category, 0)}")
    lines += ["", f"Active sessions: {session_stats.get('total', 0)}"]
    return "\n".join(lines)

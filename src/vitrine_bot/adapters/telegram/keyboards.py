"""Teclados inline do bot.

Todo callback_data é gerado a partir de um gatilho tipado
(`trigger.action_data`), então o que o teclado emite é exatamente o que
`parse_action` entende. Botões cujo callback_data excede 64 bytes são
descartados (com log) em vez de truncados.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from vitrine_bot.adapters.telegram.models import InlineButton, InlineKeyboard
from vitrine_bot.config.settings import TELEGRAM_MAX_CALLBACK_DATA_BYTES
from vitrine_bot.domain.workflow import (
    CURRENCY_CODE_PATTERN,
    ButtonTrigger,
    CategoryChosen,
    CheckoutConfirmed,
    CurrencyChosen,
    DepositAmountChosen,
    DepositCustomAmount,
    NoAction,
    OpenDeposit,
    OpenHelp,
    OpenShop,
    OpenWallet,
    RegionChosen,
    RegionSkipped,
    ReturnToMenu,
    YearRangeChosen,
    YearSkipped,
)
from vitrine_bot.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


def action_button(text: str, trigger: ButtonTrigger) -> InlineButton | None:
    """Botão de callback, ou None se o callback_data não couber no limite."""
    data = trigger.action_data
    if len(data.encode("utf-8")) > TELEGRAM_MAX_CALLBACK_DATA_BYTES:
        logger.error(
            "Callback data too long, button dropped",
            extra={"length": len(data.encode("utf-8"))},
        )
        return None
    return InlineButton(text=text, callback_data=data)


def _rows(buttons: Iterable[InlineButton | None], per_row: int) -> list[list[InlineButton]]:
    kept = [b for b in buttons if b is not None]
    return [kept[i : i + per_row] for i in range(0, len(kept), per_row)]


def _single(text: str, trigger: ButtonTrigger) -> list[InlineButton]:
    button = action_button(text, trigger)
    return [button] if button else []


def back_to_main() -> InlineKeyboard:
    return InlineKeyboard(rows=[_single("⬅️ Back to Main", ReturnToMenu())])


def back_to_shop() -> InlineKeyboard:
    return InlineKeyboard(rows=[_single("⬅️ Back to Shop", OpenShop())])


def main_menu() -> InlineKeyboard:
    top = [
        action_button("🛒 Shop", OpenShop()),
        action_button("💰 Wallet", OpenWallet()),
        action_button("💸 Deposit", OpenDeposit()),
    ]
    return InlineKeyboard(
        rows=[
            [b for b in top if b is not None],
            _single("📞 Help & Support", OpenHelp()),
        ]
    )


def help_menu(support_url: str | None = None, channel_url: str | None = None) -> InlineKeyboard:
    rows: list[list[InlineButton]] = []
    if support_url:
        rows.append([InlineButton(text="💬 Contact Support", url=support_url)])
    if channel_url:
        rows.append([InlineButton(text="📢 Join Channel", url=channel_url)])
    rows.append(_single("⬅️ Back to Main", ReturnToMenu()))
    return InlineKeyboard(rows=rows)


def category_label(category: Any) -> str:
    """Rótulo de uma categoria do backend (dict com name/base e price)."""
    if isinstance(category, dict):
        name = category.get("name") or category.get("base") or "Category"
        price = category.get("price")
        return f"{name} - {price}" if price is not None else str(name)
    return str(category)


def categories_keyboard(categories: Sequence[Any]) -> InlineKeyboard:
    if not categories:
        return InlineKeyboard(
            rows=[
                _single("❌ No categories available", NoAction()),
                _single("⬅️ Back to Main", ReturnToMenu()),
            ]
        )
    rows = [
        _single(category_label(category), CategoryChosen(index=index))
        for index, category in enumerate(categories)
    ]
    rows.append(_single("⬅️ Back to Main", ReturnToMenu()))
    return InlineKeyboard(rows=rows)


def year_range_keyboard(start: int, end: int, step: int) -> InlineKeyboard:
    buttons = []
    for year in range(start, end + 1, step):
        last = min(year + step - 1, end)
        buttons.append(
            action_button(f"{year}-{last}", YearRangeChosen(year_from=year, year_to=last))
        )
    rows = _rows(buttons, per_row=2)
    rows.append(_single("⏭️ Skip Year Filter", YearSkipped()))
    rows.append(_single("⬅️ Back to Categories", OpenShop()))
    return InlineKeyboard(rows=rows)


def region_keyboard(codes: Sequence[str]) -> InlineKeyboard:
    rows = _rows((action_button(code, RegionChosen(code=code)) for code in codes), per_row=5)
    rows.append(_single("⏭️ Skip State Filter", RegionSkipped()))
    rows.append(_single("⬅️ Back to Shop", OpenShop()))
    return InlineKeyboard(rows=rows)


def quantity_keyboard(available: int) -> InlineKeyboard:
    return InlineKeyboard(
        rows=[
            _single(f"📦 Available: {available}", NoAction()),
            _single("⬅️ Back to Shop", OpenShop()),
        ]
    )


def checkout_keyboard(quantity: int) -> InlineKeyboard:
    row = [
        action_button("✅ Confirm Purchase", CheckoutConfirmed(quantity=quantity)),
        action_button("❌ Cancel", OpenShop()),
    ]
    return InlineKeyboard(rows=[[b for b in row if b is not None]])


def currency_code(currency: Any) -> tuple[str, str]:
    """(código para callback, rótulo) de uma moeda do backend."""
    if isinstance(currency, dict):
        code = str(currency.get("code") or currency.get("symbol") or "")
        name = currency.get("name") or code
        return code.lower(), f"{code.upper()} - {name}"
    code = str(currency)
    return code.lower(), code.upper()


def _decodable(code: str) -> bool:
    if CURRENCY_CODE_PATTERN.fullmatch(code):
        return True
    if code:
        logger.warning("Currency code not representable in callback data, skipped")
    return False


def currencies_keyboard(currencies: Sequence[Any]) -> InlineKeyboard:
    entries = [currency_code(c) for c in currencies]
    entries = [(code, label) for code, label in entries if _decodable(code)]
    if not entries:
        return InlineKeyboard(
            rows=[
                _single("❌ No currencies available", NoAction()),
                _single("⬅️ Back to Main", ReturnToMenu()),
            ]
        )
    rows = [_single(label, CurrencyChosen(code=code)) for code, label in entries]
    rows.append(_single("⬅️ Back to Main", ReturnToMenu()))
    return InlineKeyboard(rows=[row for row in rows if row])


def amount_keyboard(currency: str, options: Sequence[int]) -> InlineKeyboard:
    buttons = [
        action_button(f"${amount}", DepositAmountChosen(currency=currency, amount=amount))
        for amount in options
    ]
    rows = _rows(buttons, per_row=3)
    rows.append(_single("💰 Custom Amount", DepositCustomAmount(currency=currency)))
    rows.append(_single("⬅️ Back to Currencies", OpenDeposit()))
    return InlineKeyboard(rows=rows)

"""Fluxo de carteira e depósito.

Depósito: moedas → currency_<code> → amount_<code>_<usd> → create_deposit.
`deposit_custom_<code>` pede o valor digitado (passo entering_deposit_amount),
validado contra min_deposit/max_deposit.
"""

from __future__ import annotations

import logging
from typing import Any

from vitrine_bot.adapters.telegram import keyboards
from vitrine_bot.adapters.telegram.models import InboundEvent
from vitrine_bot.application import texts
from vitrine_bot.application.context import FlowContext, Screen
from vitrine_bot.domain.errors import ValidationFailed
from vitrine_bot.domain.workflow import (
    CurrencyChosen,
    DepositAmountChosen,
    DepositAmountEntered,
    DepositCustomAmount,
    require_transition,
)
from vitrine_bot.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


def parse_amount(raw: str, min_deposit: float, max_deposit: float) -> float:
    """Valor em USD dentro dos limites.

    Raises:
        ValidationFailed: não numérico ou fora de [min_deposit, max_deposit]
    """
    try:
        amount = float(raw.strip().lstrip("$").replace(",", ""))
    except ValueError as exc:
        raise ValidationFailed("amount is not a number") from exc
    if not min_deposit <= amount <= max_deposit:
        raise ValidationFailed("amount out of bounds")
    return round(amount, 2)


class WalletFlow:
    def __init__(self, ctx: FlowContext) -> None:
        self._ctx = ctx

    async def show_wallet(self, event: InboundEvent, screen: Screen) -> None:
        ctx = self._ctx
        username = await ctx.require_username(event, screen)
        if username is None:
            return

        screen = await ctx.loading(screen)
        async with ctx.unavailable_on(screen):
            data = (await ctx.backend.get_wallet(username)).unwrap()
            await ctx.show(
                screen,
                texts.wallet(
                    data["balance"], data["transactions"], ctx.settings.recent_transactions_limit
                ),
                keyboards.back_to_main(),
            )

    async def open_deposit(self, event: InboundEvent, screen: Screen) -> None:
        ctx = self._ctx
        screen = await ctx.loading(screen)
        async with ctx.unavailable_on(screen):
            currencies = (await ctx.backend.list_currencies()).unwrap()["currencies"]
            text = texts.CHOOSE_CURRENCY if currencies else texts.NO_CURRENCIES
            await ctx.show(screen, text, keyboards.currencies_keyboard(currencies))

    async def choose_currency(
        self, event: InboundEvent, screen: Screen, trigger: CurrencyChosen
    ) -> None:
        ctx = self._ctx
        await ctx.show(
            screen,
            texts.choose_amount(trigger.code),
            keyboards.amount_keyboard(trigger.code, ctx.settings.deposit_amount_options),
        )

    async def choose_amount(
        self, event: InboundEvent, screen: Screen, trigger: DepositAmountChosen
    ) -> None:
        ctx = self._ctx
        s = ctx.settings
        try:
            amount = parse_amount(str(trigger.amount), s.min_deposit, s.max_deposit)
        except ValidationFailed:
            await ctx.show(
                screen, texts.invalid_amount(s.min_deposit, s.max_deposit), keyboards.back_to_main()
            )
            return
        await self._create_deposit(event, screen, amount, trigger.currency)

    async def ask_custom_amount(
        self, event: InboundEvent, screen: Screen, trigger: DepositCustomAmount
    ) -> None:
        ctx = self._ctx
        next_step = require_transition(ctx.sessions.get(event.user_id), trigger)
        ctx.sessions.set(
            event.user_id, {"step": next_step, "deposit_currency": trigger.currency}
        )
        s = ctx.settings
        await ctx.show(
            screen,
            texts.custom_amount_prompt(trigger.currency, s.min_deposit, s.max_deposit),
            keyboards.back_to_main(),
        )

    async def enter_amount(self, event: InboundEvent, session: dict[str, Any] | None) -> None:
        """Valor digitado no passo entering_deposit_amount."""
        ctx = self._ctx
        trigger = DepositAmountEntered(raw=event.text or "")
        require_transition(session, trigger)
        screen = Screen(event.chat_id)
        s = ctx.settings

        try:
            amount = parse_amount(trigger.raw, s.min_deposit, s.max_deposit)
        except ValidationFailed:
            await ctx.show(
                screen, texts.invalid_amount(s.min_deposit, s.max_deposit), keyboards.back_to_main()
            )
            return

        await self._create_deposit(
            event, screen, amount, str(session["deposit_currency"]), clear_session=True
        )

    async def _create_deposit(
        self,
        event: InboundEvent,
        screen: Screen,
        amount: float,
        currency: str,
        clear_session: bool = False,
    ) -> None:
        """Cria o depósito; `clear_session` só descarta a sessão após sucesso."""
        ctx = self._ctx
        username = await ctx.require_username(event, screen)
        if username is None:
            return

        screen = await ctx.loading(screen, texts.PROCESSING_DEPOSIT)
        result = await ctx.backend.create_deposit(amount, currency, username)
        if not result.success:
            await ctx.show(screen, texts.deposit_failed(result.error), keyboards.back_to_main())
            return

        if clear_session:
            ctx.sessions.clear(event.user_id)
        logger.info("Deposit created", extra={"user_id": event.user_id, "currency": currency})
        await ctx.show(
            screen,
            texts.deposit_created(
                amount, currency, result.data["payment"], result.data["transaction_id"]
            ),
            keyboards.back_to_main(),
        )

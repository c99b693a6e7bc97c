"""Fluxo de compra: categoria → anos → estado → quantidade → checkout.

Cada handler valida o gatilho contra o passo exigido
(`require_transition`) antes de qualquer chamada ao backend; sessão
obsoleta lança StaleSession e nada é alterado.
"""

from __future__ import annotations

import logging
from typing import Any

from vitrine_bot.adapters.telegram import keyboards
from vitrine_bot.adapters.telegram.models import InboundEvent
from vitrine_bot.application import texts
from vitrine_bot.application.context import FlowContext, Screen
from vitrine_bot.domain.errors import StaleSession, TransportError
from vitrine_bot.domain.workflow import (
    CategoryChosen,
    CheckoutConfirmed,
    QuantityEntered,
    RegionChosen,
    RegionSkipped,
    WorkflowStep,
    YearRangeChosen,
    YearSkipped,
    require_transition,
)
from vitrine_bot.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


def category_id(category: Any) -> str:
    """Identificador usado como filtro `base` no backend."""
    if isinstance(category, dict):
        for key in ("id", "_id", "base", "name"):
            if category.get(key):
                return str(category[key])
    return str(category)


def parse_quantity(raw: str) -> int | None:
    text = raw.strip()
    if not text.isdecimal():
        return None
    return int(text)


class ShopFlow:
    def __init__(self, ctx: FlowContext) -> None:
        self._ctx = ctx

    async def open_shop(self, event: InboundEvent, screen: Screen) -> None:
        """Lista categorias e recomeça a seleção (filtros descartados)."""
        ctx = self._ctx
        screen = await ctx.loading(screen, texts.LOADING_CATEGORIES)
        async with ctx.unavailable_on(screen):
            categories = (await ctx.backend.list_categories()).unwrap()["categories"]
            ctx.sessions.set(
                event.user_id, {"step": WorkflowStep.SELECTING_CATEGORY, "filters": {}}
            )
            text = texts.choose_category(len(categories)) if categories else texts.NO_CATEGORIES
            await ctx.show(screen, text, keyboards.categories_keyboard(categories))

    async def choose_category(
        self, event: InboundEvent, screen: Screen, trigger: CategoryChosen
    ) -> None:
        ctx = self._ctx
        session = ctx.sessions.get(event.user_id)
        require_transition(session, trigger)

        # Índice refere-se à lista exibida; a lista é buscada de novo
        async with ctx.unavailable_on(screen, keyboards.back_to_shop()):
            categories = (await ctx.backend.list_categories()).unwrap()["categories"]
            await self._select_category(event, screen, trigger, categories)

    async def _select_category(
        self,
        event: InboundEvent,
        screen: Screen,
        trigger: CategoryChosen,
        categories: list[Any],
    ) -> None:
        ctx = self._ctx
        if trigger.index >= len(categories):
            await ctx.show(screen, texts.INVALID_CATEGORY, keyboards.back_to_shop())
            return

        category = categories[trigger.index]
        chosen_id = category_id(category)
        label = keyboards.category_label(category)
        ctx.sessions.set(
            event.user_id,
            {
                "step": WorkflowStep.SELECTING_YEAR,
                "category_id": chosen_id,
                "category_index": trigger.index,
                "category_label": label,
                "filters": {"base": chosen_id},
            },
        )
        s = ctx.settings
        await ctx.show(
            screen,
            texts.choose_year(label),
            keyboards.year_range_keyboard(s.year_range_start, s.year_range_end, s.year_range_step),
        )

    async def choose_year(
        self,
        event: InboundEvent,
        screen: Screen,
        trigger: YearRangeChosen | YearSkipped,
    ) -> None:
        ctx = self._ctx
        session = ctx.sessions.get(event.user_id)
        next_step = require_transition(session, trigger)

        filters = dict(session.get("filters") or {"base": session["category_id"]})
        if isinstance(trigger, YearRangeChosen):
            filters["year_from"] = trigger.year_from
            filters["year_to"] = trigger.year_to

        ctx.sessions.merge(event.user_id, {"step": next_step, "filters": filters})
        await ctx.show(
            screen,
            texts.choose_region(filters),
            keyboards.region_keyboard(ctx.settings.region_options),
        )

    async def choose_region(
        self,
        event: InboundEvent,
        screen: Screen,
        trigger: RegionChosen | RegionSkipped,
    ) -> None:
        """Consulta a disponibilidade; sem resultados a sessão volta a idle."""
        ctx = self._ctx
        session = ctx.sessions.get(event.user_id)
        require_transition(session, trigger)
        if isinstance(trigger, RegionChosen) and trigger.code not in ctx.settings.region_options:
            raise StaleSession(type(trigger).__name__, expected="known region")

        username = await ctx.require_username(event, screen)
        if username is None:
            return

        filters = dict(session["filters"])
        if isinstance(trigger, RegionChosen):
            filters["state"] = trigger.code

        screen = await ctx.loading(screen, texts.CHECKING_AVAILABILITY)
        async with ctx.unavailable_on(screen, keyboards.back_to_shop()):
            result = (await ctx.backend.list_products(username, filters)).unwrap()
            await self._show_availability(event, screen, filters, result["available_quantity"])

    async def _show_availability(
        self,
        event: InboundEvent,
        screen: Screen,
        filters: dict[str, Any],
        available: int,
    ) -> None:
        ctx = self._ctx
        if available <= 0:
            ctx.sessions.clear(event.user_id)
            await ctx.show(screen, texts.NO_RESULTS, keyboards.back_to_shop())
            return

        ctx.sessions.set(
            event.user_id,
            {
                "step": WorkflowStep.ENTERING_QUANTITY,
                "filters": filters,
                "available_quantity": available,
            },
        )
        await ctx.show(
            screen,
            texts.enter_quantity(available, filters),
            keyboards.quantity_keyboard(available),
        )

    async def enter_quantity(
        self, event: InboundEvent, session: dict[str, Any] | None
    ) -> None:
        """Texto livre no passo entering_quantity; re-pergunta até ser válido."""
        ctx = self._ctx
        trigger = QuantityEntered(raw=event.text or "")
        next_step = require_transition(session, trigger)
        screen = Screen(event.chat_id)

        available = int(session["available_quantity"])
        quantity = parse_quantity(trigger.raw)
        if quantity is None or quantity <= 0:
            await ctx.show(screen, texts.invalid_quantity(available), keyboards.back_to_shop())
            return
        if quantity > available:
            await ctx.show(screen, texts.quantity_exceeds(available), keyboards.back_to_shop())
            return

        filters = dict(session["filters"])
        ctx.sessions.set(
            event.user_id,
            {
                "step": next_step,
                "filters": filters,
                "quantity": quantity,
                "available_quantity": available,
            },
        )
        await ctx.show(
            screen,
            texts.confirm_checkout(quantity, filters),
            keyboards.checkout_keyboard(quantity),
        )

    async def confirm_checkout(
        self, event: InboundEvent, screen: Screen, trigger: CheckoutConfirmed
    ) -> None:
        """Checkout com a quantidade e filtros da sessão (nunca retentado)."""
        ctx = self._ctx
        session = ctx.sessions.get(event.user_id)
        require_transition(session, trigger)
        if int(session["quantity"]) != trigger.quantity:
            raise StaleSession(type(trigger).__name__, expected="matching quantity")

        username = await ctx.require_username(event, screen)
        if username is None:
            return

        quantity = int(session["quantity"])
        filters = dict(session["filters"])
        screen = await ctx.loading(screen, texts.PROCESSING_CHECKOUT)
        result = await ctx.backend.checkout(username, filters, quantity)
        if not result.success:
            await ctx.show(screen, texts.checkout_failed(result.error), keyboards.back_to_shop())
            return

        ctx.sessions.clear(event.user_id)
        data = result.data
        await ctx.show(
            screen,
            texts.checkout_success(quantity, data["filename"], data["size"], data["message"]),
            keyboards.back_to_main(),
        )
        await self._deliver_artifact(event.chat_id, data["filename"], data["download_ref"])

    async def _deliver_artifact(self, chat_id: int, filename: str, download_ref: str) -> None:
        """Envia o arquivo da compra; falha vira aviso (a compra já ocorreu)."""
        ctx = self._ctx
        download = await ctx.backend.download_artifact(download_ref)
        if download.success:
            try:
                await ctx.presenter.send_document(chat_id, filename, download.data["content"])
                return
            except TransportError as exc:
                logger.error(
                    "Artifact delivery failed",
                    extra={"chat_id": chat_id, "status_code": exc.status_code},
                )
        await ctx.guard.safe_send(chat_id, texts.FILE_SEND_FAILED, keyboards.back_to_main())

"""Workflow de compra: passos, gatilhos tipados e tabela de transições.

Os dados dos botões (callback_data) são decodificados uma única vez em
`parse_action`, produzindo um conjunto fechado de gatilhos. Formatos
desconhecidos viram None e nunca tocam o estado.

TRANSITIONS[tipo_do_gatilho] = (passo exigido, campos exigidos, próximo passo)
- passo exigido None: o gatilho vale a partir de qualquer passo
- próximo passo None: decidido pelo handler (ex.: depende do backend)
Validação pura: sem side effects.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from vitrine_bot.domain.errors import StaleSession


class WorkflowStep(StrEnum):
    """Passos do workflow de um usuário."""

    IDLE = "idle"
    SELECTING_CATEGORY = "selecting_category"
    SELECTING_YEAR = "selecting_year"
    SELECTING_STATE = "selecting_state"
    ENTERING_QUANTITY = "entering_quantity"
    CONFIRMING_CHECKOUT = "confirming_checkout"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ENTERING_DEPOSIT_AMOUNT = "entering_deposit_amount"


# Passos em que o texto livre é entrada esperada
TEXT_INPUT_STEPS = frozenset(
    {WorkflowStep.ENTERING_QUANTITY, WorkflowStep.ENTERING_DEPOSIT_AMOUNT}
)


# ---------------------------------------------------------------------------
# Gatilhos de botão
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class OpenShop:
    @property
    def action_data(self) -> str:
        return "shop"


@dataclass(frozen=True, slots=True)
class CategoryChosen:
    index: int

    @property
    def action_data(self) -> str:
        return f"category_{self.index}"


@dataclass(frozen=True, slots=True)
class YearRangeChosen:
    year_from: int
    year_to: int

    @property
    def action_data(self) -> str:
        return f"year_range_{self.year_from}_{self.year_to}"


@dataclass(frozen=True, slots=True)
class YearSkipped:
    @property
    def action_data(self) -> str:
        return "skip_year"


@dataclass(frozen=True, slots=True)
class RegionChosen:
    code: str

    @property
    def action_data(self) -> str:
        return f"state_{self.code}"


@dataclass(frozen=True, slots=True)
class RegionSkipped:
    @property
    def action_data(self) -> str:
        return "skip_state"


@dataclass(frozen=True, slots=True)
class CheckoutConfirmed:
    quantity: int

    @property
    def action_data(self) -> str:
        return f"checkout_{self.quantity}"


@dataclass(frozen=True, slots=True)
class ReturnToMenu:
    """`main_menu` ou `cancel`: descarta filtros e volta ao menu."""

    @property
    def action_data(self) -> str:
        return "main_menu"


@dataclass(frozen=True, slots=True)
class OpenWallet:
    @property
    def action_data(self) -> str:
        return "wallet"


@dataclass(frozen=True, slots=True)
class OpenDeposit:
    @property
    def action_data(self) -> str:
        return "deposit"


@dataclass(frozen=True, slots=True)
class CurrencyChosen:
    code: str

    @property
    def action_data(self) -> str:
        return f"currency_{self.code}"


@dataclass(frozen=True, slots=True)
class DepositAmountChosen:
    currency: str
    amount: int

    @property
    def action_data(self) -> str:
        return f"amount_{self.currency}_{self.amount}"


@dataclass(frozen=True, slots=True)
class DepositCustomAmount:
    currency: str

    @property
    def action_data(self) -> str:
        return f"deposit_custom_{self.currency}"


@dataclass(frozen=True, slots=True)
class OpenHelp:
    @property
    def action_data(self) -> str:
        return "help_support"


@dataclass(frozen=True, slots=True)
class NoAction:
    @property
    def action_data(self) -> str:
        return "no_action"


# ---------------------------------------------------------------------------
# Gatilhos de texto (decodificados pelo passo atual, não pelo conteúdo)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class QuantityEntered:
    raw: str


@dataclass(frozen=True, slots=True)
class DepositAmountEntered:
    raw: str


ButtonTrigger = (
    OpenShop
    | CategoryChosen
    | YearRangeChosen
    | YearSkipped
    | RegionChosen
    | RegionSkipped
    | CheckoutConfirmed
    | ReturnToMenu
    | OpenWallet
    | OpenDeposit
    | CurrencyChosen
    | DepositAmountChosen
    | DepositCustomAmount
    | OpenHelp
    | NoAction
)
Trigger = ButtonTrigger | QuantityEntered | DepositAmountEntered


_SIMPLE_ACTIONS: dict[str, ButtonTrigger] = {
    "shop": OpenShop(),
    "skip_year": YearSkipped(),
    "skip_state": RegionSkipped(),
    "main_menu": ReturnToMenu(),
    "cancel": ReturnToMenu(),
    "wallet": OpenWallet(),
    "deposit": OpenDeposit(),
    "help_support": OpenHelp(),
    "no_action": NoAction(),
}

_CATEGORY_RE = re.compile(r"^category_(\d+)$")
_YEAR_RANGE_RE = re.compile(r"^year_range_(\d{4})_(\d{4})$")
_REGION_RE = re.compile(r"^state_([A-Za-z]{2})$")
_CHECKOUT_RE = re.compile(r"^(?:confirm_)?checkout_(\d+)$")
# Códigos de moeda do backend: "btc", "usdt.trc20", "usdc-erc20"
CURRENCY_CODE_PATTERN = re.compile(r"[A-Za-z0-9_.-]+")
_CODE = CURRENCY_CODE_PATTERN.pattern
_CURRENCY_RE = re.compile(rf"^(?:currency|crypto)_({_CODE})$")
_AMOUNT_RE = re.compile(rf"^amount_({_CODE})_(\d+)$")
_CUSTOM_AMOUNT_RE = re.compile(rf"^deposit_custom_({_CODE})$")


def parse_action(data: str | None) -> ButtonTrigger | None:
    """Decodifica o callback_data de um botão em um gatilho tipado.

    Retorna None para formatos desconhecidos ou malformados.
    """
    if not data:
        return None

    simple = _SIMPLE_ACTIONS.get(data)
    if simple is not None:
        return simple

    if match := _CATEGORY_RE.match(data):
        return CategoryChosen(index=int(match.group(1)))

    if match := _YEAR_RANGE_RE.match(data):
        year_from, year_to = int(match.group(1)), int(match.group(2))
        if year_from > year_to:
            return None
        return YearRangeChosen(year_from=year_from, year_to=year_to)

    if match := _REGION_RE.match(data):
        return RegionChosen(code=match.group(1).upper())

    if match := _CHECKOUT_RE.match(data):
        return CheckoutConfirmed(quantity=int(match.group(1)))

    if match := _CUSTOM_AMOUNT_RE.match(data):
        return DepositCustomAmount(currency=match.group(1))

    if match := _AMOUNT_RE.match(data):
        return DepositAmountChosen(currency=match.group(1), amount=int(match.group(2)))

    if match := _CURRENCY_RE.match(data):
        return CurrencyChosen(code=match.group(1))

    return None


# ---------------------------------------------------------------------------
# Tabela de transições
# ---------------------------------------------------------------------------

TRANSITIONS: dict[type, tuple[WorkflowStep | None, tuple[str, ...], WorkflowStep | None]] = {
    OpenShop: (None, (), WorkflowStep.SELECTING_CATEGORY),
    CategoryChosen: (None, (), WorkflowStep.SELECTING_YEAR),
    YearRangeChosen: (WorkflowStep.SELECTING_YEAR, ("category_id",), WorkflowStep.SELECTING_STATE),
    YearSkipped: (WorkflowStep.SELECTING_YEAR, ("category_id",), WorkflowStep.SELECTING_STATE),
    # Próximo passo depende da quantidade disponível (entering_quantity ou idle)
    RegionChosen: (WorkflowStep.SELECTING_STATE, ("filters",), None),
    RegionSkipped: (WorkflowStep.SELECTING_STATE, ("filters",), None),
    QuantityEntered: (
        WorkflowStep.ENTERING_QUANTITY,
        ("filters", "available_quantity"),
        WorkflowStep.CONFIRMING_CHECKOUT,
    ),
    CheckoutConfirmed: (
        WorkflowStep.CONFIRMING_CHECKOUT,
        ("filters", "quantity"),
        WorkflowStep.COMPLETED,
    ),
    ReturnToMenu: (None, (), WorkflowStep.IDLE),
    OpenWallet: (None, (), None),
    OpenDeposit: (None, (), None),
    CurrencyChosen: (None, (), None),
    DepositAmountChosen: (None, (), None),
    DepositCustomAmount: (None, (), WorkflowStep.ENTERING_DEPOSIT_AMOUNT),
    DepositAmountEntered: (
        WorkflowStep.ENTERING_DEPOSIT_AMOUNT,
        ("deposit_currency",),
        WorkflowStep.IDLE,
    ),
    OpenHelp: (None, (), None),
    NoAction: (None, (), None),
}


def current_step(session: Mapping[str, Any] | None) -> WorkflowStep:
    """Passo atual da sessão (IDLE se ausente ou inválido)."""
    if not session:
        return WorkflowStep.IDLE
    try:
        return WorkflowStep(session.get("step", WorkflowStep.IDLE))
    except ValueError:
        return WorkflowStep.IDLE


def validate_transition(
    session: Mapping[str, Any] | None, trigger: Trigger
) -> tuple[bool, WorkflowStep | None, str]:
    """Valida se o gatilho é aceito no estado atual.

    Retorna:
    - (True, next_step, ""): transição válida (next_step pode ser None)
    - (False, None, motivo): sessão obsoleta para esse gatilho

    Nunca lança exceção; apenas valida.
    """
    required_step, required_fields, next_step = TRANSITIONS[type(trigger)]

    if required_step is not None and current_step(session) != required_step:
        return False, None, f"expected step {required_step}"

    for name in required_fields:
        if session is None or session.get(name) in (None, {}, ""):
            return False, None, f"missing {name}"

    return True, next_step, ""


def require_transition(
    session: Mapping[str, Any] | None, trigger: Trigger
) -> WorkflowStep | None:
    """Como validate_transition, mas lança StaleSession se inválida."""
    ok, next_step, reason = validate_transition(session, trigger)
    if not ok:
        required_step = TRANSITIONS[type(trigger)][0]
        raise StaleSession(
            type(trigger).__name__,
            expected=str(required_step) if required_step else reason,
        )
    return next_step

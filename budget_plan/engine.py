"""Core projection engine for the budget planner.

This module walks a plan month by month from its start date and applies every
event's effect on two running balances: liquidity (cash on hand) and assets
(net equity in financed items such as a house or a car). Loans are amortized
with the standard annuity formula and vehicles depreciate on a fixed schedule
that depends on their age.

Each event type has a pure calculator returning a ``Delta``. Loan balances
carried from one month to the next live in a ``BalanceState`` that belongs to
a single ``project`` call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, getcontext
import logging
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple

from .data_models import (
    CarLoanData,
    CashFlowData,
    ChartDataPoint,
    Event,
    EventType,
    MortgageData,
    MortgageRepaymentData,
    PCPData,
)
from .utils import DateLike, add_months, month_start, months_between, parse_iso_date, round_money

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
TWELVE = Decimal(12)


@dataclass(frozen=True)
class Delta:
    """Change in the running balances caused by one event in one month.

    ``new_balance`` is set only by calculators that track a loan balance and
    only in months where they are active.
    """

    liquidity: Decimal = ZERO
    assets: Decimal = ZERO
    new_balance: Optional[Decimal] = None


NO_CHANGE = Delta()


def calculate_annuity_payment(principal: Decimal, rate_per_month: Decimal, term: int) -> Decimal:
    """Return the annuity (equal installment) monthly payment for a loan.

    The formula is:

        payment = P * (i * (1 + i)^n) / ((1 + i)^n - 1)

    where ``P`` is the principal, ``i`` is the monthly interest rate and
    ``n`` is the number of payments. When the interest rate is zero, the
    payment simplifies to ``P / n``.
    """
    if term <= 0:
        raise ValueError("Term must be positive")
    if rate_per_month == 0:
        return principal / Decimal(term)
    factor = (1 + rate_per_month) ** term
    return principal * (rate_per_month * factor) / (factor - 1)


def calculate_car_depreciation(purchase_price: Decimal, months_since_purchase: int) -> Decimal:
    """Return the value a vehicle loses in one month.

    The monthly rate is a share of the original purchase price: 2 % during
    the first two years, 1.2 % during years three and four, 1 % afterwards.
    """
    years_since_purchase = months_since_purchase // 12
    if years_since_purchase < 2:
        rate = Decimal("0.02")
    elif years_since_purchase < 4:
        rate = Decimal("0.012")
    else:
        rate = Decimal("0.01")
    return max(purchase_price * rate, ZERO)


def _cash_flow_amount(data: CashFlowData, current_month: date) -> Decimal:
    """Amount an income or expense applies in ``current_month``, else zero."""
    start = month_start(data.start_date)
    if current_month < start:
        return ZERO
    if data.end_date is not None and current_month > month_start(data.end_date):
        return ZERO
    if not data.is_recurrent:
        return data.amount if current_month == start else ZERO
    if not data.months or current_month.month in data.months:
        return data.amount
    return ZERO


def income_delta(data: CashFlowData, current_month: date) -> Delta:
    amount = _cash_flow_amount(data, current_month)
    return Delta(liquidity=amount) if amount else NO_CHANGE


def expense_delta(data: CashFlowData, current_month: date) -> Delta:
    amount = _cash_flow_amount(data, current_month)
    return Delta(liquidity=-amount) if amount else NO_CHANGE


def mortgage_initial_balance(data: MortgageData) -> Decimal:
    """Part of the loan that is repaid on an annuity schedule."""
    return data.loaned_amount * data.repayment_percentage


def mortgage_term_months(data: MortgageData) -> int:
    """Number of monthly payments; part-months of a fractional term are dropped."""
    return int(data.years * 12)


def mortgage_delta(data: MortgageData, current_month: date, balance: Decimal) -> Delta:
    """Mortgage effect for ``current_month`` given the repayment balance.

    In the purchase month the deposit is recorded as equity and the balance is
    (re)initialized. Afterwards, for ``years * 12`` months, the loan is paid as
    two tranches: an interest-only tranche and an annuity tranche whose
    principal portion builds equity.
    """
    start = month_start(data.start_date)
    elapsed = months_between(start, current_month)
    term = mortgage_term_months(data)
    if elapsed < 0 or elapsed > term:
        return NO_CHANGE

    if elapsed == 0:
        deposit = data.purchase_price - data.loaned_amount
        return Delta(liquidity=ZERO, assets=deposit, new_balance=mortgage_initial_balance(data))

    rate_per_month = data.interest_rate / TWELVE
    interest_only_payment = data.loaned_amount * (1 - data.repayment_percentage) * rate_per_month
    amortized_payment = calculate_annuity_payment(mortgage_initial_balance(data), rate_per_month, term)

    interest_portion = balance * rate_per_month
    principal_portion = min(amortized_payment - interest_portion, balance)
    new_balance = max(ZERO, balance - principal_portion)

    return Delta(
        liquidity=-(amortized_payment + interest_only_payment),
        assets=principal_portion,
        new_balance=new_balance,
    )


def mortgage_repayment_delta(data: MortgageRepaymentData, current_month: date, balance: Decimal) -> Delta:
    """Lump sum moved from cash into home equity in the month of ``data.date``."""
    if current_month != month_start(data.date):
        return NO_CHANGE
    return Delta(
        liquidity=-data.amount,
        assets=data.amount,
        new_balance=max(ZERO, balance - data.amount),
    )


def pcp_delta(data: PCPData, current_month: date, months_since_purchase: int) -> Delta:
    """PCP effect: payments are a running cost, equity only depreciates."""
    if months_since_purchase < 0 or months_since_purchase >= data.years * 12:
        return NO_CHANGE
    if months_since_purchase == 0:
        return Delta(liquidity=-data.deposit, assets=data.purchase_price - data.deposit)

    amount_to_finance = data.purchase_price - data.deposit - data.residual_value
    monthly_payment = calculate_annuity_payment(amount_to_finance, data.interest_rate / TWELVE, data.years * 12)
    depreciation = calculate_car_depreciation(data.purchase_price, months_since_purchase)
    return Delta(liquidity=-monthly_payment, assets=-depreciation)


def car_loan_initial_balance(data: CarLoanData) -> Decimal:
    return data.purchase_price - data.deposit


def car_loan_delta(data: CarLoanData, current_month: date, months_since_purchase: int, balance: Decimal) -> Delta:
    """Car loan effect: principal repaid builds equity, depreciation erodes it."""
    if months_since_purchase < 0 or months_since_purchase >= data.years * 12:
        return NO_CHANGE
    if months_since_purchase == 0:
        financed = car_loan_initial_balance(data)
        return Delta(liquidity=-data.deposit, assets=financed, new_balance=financed)

    rate_per_month = data.interest_rate / TWELVE
    monthly_payment = calculate_annuity_payment(car_loan_initial_balance(data), rate_per_month, data.years * 12)
    interest_portion = balance * rate_per_month
    principal_portion = min(monthly_payment - interest_portion, balance)
    depreciation = calculate_car_depreciation(data.purchase_price, months_since_purchase)
    return Delta(
        liquidity=-monthly_payment,
        assets=principal_portion - depreciation,
        new_balance=max(ZERO, balance - principal_portion),
    )


@dataclass
class BalanceState:
    """Remaining loan principal per stateful event for one projection.

    Keys are ``(event_type, event_key)`` tuples so mortgages and car loans
    never collide even when they share an id.
    """

    balances: Dict[Tuple[str, Hashable], Decimal] = field(default_factory=dict)

    def get(self, kind: str, key: Hashable, default: Decimal) -> Decimal:
        return self.balances.get((kind, key), default)

    def apply(self, kind: str, key: Hashable, delta: Delta) -> None:
        if delta.new_balance is not None:
            self.balances[(kind, key)] = delta.new_balance


Handler = Callable[[Event, Hashable, date, BalanceState], Delta]


def _apply_income(event: Event, key: Hashable, current_month: date, state: BalanceState) -> Delta:
    return income_delta(event.data, current_month)


def _apply_expense(event: Event, key: Hashable, current_month: date, state: BalanceState) -> Delta:
    return expense_delta(event.data, current_month)


def _apply_mortgage(event: Event, key: Hashable, current_month: date, state: BalanceState) -> Delta:
    balance = state.get(EventType.MORTGAGE, key, mortgage_initial_balance(event.data))
    delta = mortgage_delta(event.data, current_month, balance)
    state.apply(EventType.MORTGAGE, key, delta)
    return delta


def _apply_mortgage_repayment(event: Event, key: Hashable, current_month: date, state: BalanceState) -> Delta:
    mortgage_key = event.data.mortgage_event_id
    balance = state.get(EventType.MORTGAGE, mortgage_key, ZERO)
    delta = mortgage_repayment_delta(event.data, current_month, balance)
    state.apply(EventType.MORTGAGE, mortgage_key, delta)
    return delta


def _apply_pcp(event: Event, key: Hashable, current_month: date, state: BalanceState) -> Delta:
    elapsed = months_between(event.data.start_date, current_month)
    return pcp_delta(event.data, current_month, elapsed)


def _apply_car_loan(event: Event, key: Hashable, current_month: date, state: BalanceState) -> Delta:
    elapsed = months_between(event.data.start_date, current_month)
    balance = state.get(EventType.CAR_LOAN, key, car_loan_initial_balance(event.data))
    delta = car_loan_delta(event.data, current_month, elapsed, balance)
    state.apply(EventType.CAR_LOAN, key, delta)
    return delta


# Event type -> (expected payload class, handler).
_HANDLERS: Dict[str, Tuple[type, Handler]] = {
    EventType.INCOME: (CashFlowData, _apply_income),
    EventType.EXPENSE: (CashFlowData, _apply_expense),
    EventType.MORTGAGE: (MortgageData, _apply_mortgage),
    EventType.MORTGAGE_REPAYMENT: (MortgageRepaymentData, _apply_mortgage_repayment),
    EventType.PCP: (PCPData, _apply_pcp),
    EventType.CAR_LOAN: (CarLoanData, _apply_car_loan),
}


def _resolve_handler(event: Event) -> Optional[Handler]:
    """Return the handler for ``event`` or ``None`` when it should be skipped.

    Skipping unknown types and mismatched payloads is intentional: one bad
    event contributes nothing instead of aborting the whole projection.
    Callers are expected to validate events before projecting them.
    """
    entry = _HANDLERS.get(event.type)
    if entry is None:
        logger.debug("Ignoring event %s of unknown type %r", event.id, event.type)
        return None
    payload_cls, handler = entry
    if not isinstance(event.data, payload_cls):
        logger.debug("Ignoring event %s: %s payload is not %s", event.id, event.type, payload_cls.__name__)
        return None
    return handler


def project(events: Sequence[Event], start_date: DateLike, range_years: int) -> List[ChartDataPoint]:
    """Project cumulative liquidity and assets month by month.

    Parameters
    ----------
    events: Sequence[Event]
        Events of one plan, visited in the given order every month.
    start_date: date, datetime or ISO string
        Plan start; truncated to the first day of its month (month 0).
    range_years: int
        Projection horizon. Exactly ``range_years * 12`` points are returned.

    Returns
    -------
    List[ChartDataPoint]
        One point per month in ascending order. Balances accumulate without
        rounding and are rounded to cents only when a point is emitted.

    Raises
    ------
    ValueError
        If ``range_years`` is not a positive integer or ``start_date`` cannot
        be parsed.
    """
    if isinstance(range_years, bool) or not isinstance(range_years, int) or range_years <= 0:
        raise ValueError(f"range_years must be a positive integer; got {range_years!r}")
    anchor = month_start(parse_iso_date(start_date))
    total_months = range_years * 12

    handlers = [(event, index, _resolve_handler(event)) for index, event in enumerate(events)]
    logger.debug("Projecting %d events from %s over %d months", len(handlers), anchor, total_months)

    state = BalanceState()
    liquidity = ZERO
    assets = ZERO
    points: List[ChartDataPoint] = []
    for month_index in range(total_months):
        current_month = add_months(anchor, month_index)
        for event, index, handler in handlers:
            if handler is None:
                continue
            # events without an id still need a stable key for their own balance
            key = event.id if event.id is not None else ("position", index)
            delta = handler(event, key, current_month, state)
            liquidity += delta.liquidity
            assets += delta.assets
        points.append(
            ChartDataPoint(month=current_month, liquidity=round_money(liquidity), assets=round_money(assets))
        )
    return points


def summarize_projection(points: Sequence[ChartDataPoint]) -> Dict[str, object]:
    """Aggregate metrics for a projection.

    Monetary values are floats so the summary can be dumped as JSON directly.
    """
    if not points:
        return {
            "months": 0,
            "first_month": None,
            "last_month": None,
            "final_liquidity": 0.0,
            "final_assets": 0.0,
            "final_net_position": 0.0,
            "lowest_liquidity": 0.0,
            "lowest_liquidity_month": None,
            "peak_assets": 0.0,
        }
    last = points[-1]
    lowest = min(points, key=lambda p: p.liquidity)
    peak_assets = max(p.assets for p in points)
    return {
        "months": len(points),
        "first_month": points[0].month.strftime("%Y-%m"),
        "last_month": last.month.strftime("%Y-%m"),
        "final_liquidity": float(last.liquidity),
        "final_assets": float(last.assets),
        "final_net_position": float(last.liquidity + last.assets),
        "lowest_liquidity": float(lowest.liquidity),
        "lowest_liquidity_month": lowest.month.strftime("%Y-%m"),
        "peak_assets": float(peak_assets),
    }

"""Data models for the budget planner.

This module defines dataclasses for plans, the six kinds of financial event a
plan can hold and the monthly chart points produced by a projection. Events
share a common envelope (``id``, ``plan_id``, ``type``) and carry a
type-specific payload in ``data``.

Plans travel as JSON using camelCase keys::

    {"name": "Base", "startDate": "2025-01-01",
     "events": [{"id": 1, "type": "income",
                 "data": {"amount": 5000, "isRecurrent": true, "months": [],
                          "startDate": "2025-01-01"}}]}

Parsing validates every payload and raises ``EventDataError`` with a message
naming the offending field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import json
import logging
from pathlib import Path
import re
from typing import Any, Dict, FrozenSet, List, Optional, Union

from .utils import decimal_from_str

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class EventDataError(ValueError):
    """Raised when a plan or event payload fails validation."""


class EventType:
    INCOME = "income"
    EXPENSE = "expense"
    MORTGAGE = "mortgage"
    MORTGAGE_REPAYMENT = "mortgage_repayment"
    PCP = "pcp"
    CAR_LOAN = "car_loan"

    ALL = (INCOME, EXPENSE, MORTGAGE, MORTGAGE_REPAYMENT, PCP, CAR_LOAN)


def _require(data: Dict[str, Any], key: str, path: str) -> Any:
    if key not in data or data[key] is None:
        raise EventDataError(f"{path}.{key}: missing required field")
    return data[key]


def _number(value: Any, path: str) -> Decimal:
    if isinstance(value, bool):
        raise EventDataError(f"{path}: expected a number")
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise EventDataError(f"{path}: expected a finite number")
        return value
    if isinstance(value, (int, float, str)):
        try:
            return decimal_from_str(str(value))
        except ValueError as exc:
            raise EventDataError(f"{path}: expected a number") from exc
    raise EventDataError(f"{path}: expected a number")


def _positive(value: Any, path: str) -> Decimal:
    number = _number(value, path)
    if number <= 0:
        raise EventDataError(f"{path}: must be a positive number")
    return number


def _non_negative(value: Any, path: str) -> Decimal:
    number = _number(value, path)
    if number < 0:
        raise EventDataError(f"{path}: must be a non-negative number")
    return number


def _rate(value: Any, path: str) -> Decimal:
    number = _number(value, path)
    if number < 0 or number > 1:
        raise EventDataError(f"{path}: must be a number between 0 and 1")
    return number


def _integer(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EventDataError(f"{path}: expected an integer")
    return value


def _payload_date(value: Any, path: str) -> date:
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise EventDataError(f"{path}: must be in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise EventDataError(f"{path}: {value} is not a calendar date") from exc


@dataclass(frozen=True)
class CashFlowData:
    """Payload shared by income and expense events.

    Attributes
    ----------
    amount: Decimal
        Amount received (income) or paid (expense) in each active month.
    is_recurrent: bool
        One-off events only apply in the month of ``start_date``.
    months: FrozenSet[int]
        Calendar months (1-12) a recurrent event applies in. Empty means
        every month.
    start_date: date
    end_date: Optional[date]
        Last month (inclusive) a recurrent event applies in.
    """

    amount: Decimal
    is_recurrent: bool
    months: FrozenSet[int]
    start_date: date
    end_date: Optional[date] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str) -> "CashFlowData":
        is_recurrent = _require(data, "isRecurrent", path)
        if not isinstance(is_recurrent, bool):
            raise EventDataError(f"{path}.isRecurrent: must be a boolean")
        months = data.get("months", [])
        if not isinstance(months, list):
            raise EventDataError(f"{path}.months: must be an array")
        for month in months:
            if isinstance(month, bool) or not isinstance(month, int) or month < 1 or month > 12:
                raise EventDataError(f"{path}.months: must contain numbers between 1 and 12")
        end_raw = data.get("endDate")
        return cls(
            amount=_positive(_require(data, "amount", path), f"{path}.amount"),
            is_recurrent=is_recurrent,
            months=frozenset(months),
            start_date=_payload_date(_require(data, "startDate", path), f"{path}.startDate"),
            end_date=_payload_date(end_raw, f"{path}.endDate") if end_raw else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "amount": float(self.amount),
            "isRecurrent": self.is_recurrent,
            "months": sorted(self.months),
            "startDate": self.start_date.isoformat(),
        }
        if self.end_date is not None:
            result["endDate"] = self.end_date.isoformat()
        return result


@dataclass(frozen=True)
class MortgageData:
    """A house purchase financed by a mortgage.

    ``repayment_percentage`` is the share of ``loaned_amount`` repaid on an
    annuity schedule; the rest of the loan is interest-only for its whole term.
    """

    start_date: date
    purchase_price: Decimal
    loaned_amount: Decimal
    interest_rate: Decimal  # annual rate as a decimal, e.g. 0.05 for 5 %
    repayment_percentage: Decimal
    years: Decimal  # may be fractional, e.g. 2.5

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str) -> "MortgageData":
        purchase_price = _positive(_require(data, "purchasePrice", path), f"{path}.purchasePrice")
        loaned_amount = _positive(_require(data, "loanedAmount", path), f"{path}.loanedAmount")
        if loaned_amount > purchase_price:
            raise EventDataError(f"{path}.loanedAmount: cannot exceed purchasePrice")
        years = _positive(_require(data, "years", path), f"{path}.years")
        return cls(
            start_date=_payload_date(_require(data, "startDate", path), f"{path}.startDate"),
            purchase_price=purchase_price,
            loaned_amount=loaned_amount,
            interest_rate=_rate(_require(data, "interestRate", path), f"{path}.interestRate"),
            repayment_percentage=_rate(
                _require(data, "repaymentPercentage", path), f"{path}.repaymentPercentage"
            ),
            years=years,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat(),
            "purchasePrice": float(self.purchase_price),
            "loanedAmount": float(self.loaned_amount),
            "interestRate": float(self.interest_rate),
            "repaymentPercentage": float(self.repayment_percentage),
            "years": float(self.years),
        }


@dataclass(frozen=True)
class MortgageRepaymentData:
    """A lump sum paid off the principal of the mortgage ``mortgage_event_id``."""

    mortgage_event_id: int
    date: date
    amount: Decimal

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str) -> "MortgageRepaymentData":
        mortgage_event_id = _integer(_require(data, "mortgageEventId", path), f"{path}.mortgageEventId")
        if mortgage_event_id <= 0:
            raise EventDataError(f"{path}.mortgageEventId: must be a positive number")
        return cls(
            mortgage_event_id=mortgage_event_id,
            date=_payload_date(_require(data, "date", path), f"{path}.date"),
            amount=_positive(_require(data, "amount", path), f"{path}.amount"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mortgageEventId": self.mortgage_event_id,
            "date": self.date.isoformat(),
            "amount": float(self.amount),
        }


def _vehicle_price_and_deposit(data: Dict[str, Any], path: str):
    purchase_price = _positive(_require(data, "purchasePrice", path), f"{path}.purchasePrice")
    deposit = _non_negative(_require(data, "deposit", path), f"{path}.deposit")
    if deposit > purchase_price:
        raise EventDataError(f"{path}.deposit: cannot exceed purchasePrice")
    return purchase_price, deposit


@dataclass(frozen=True)
class PCPData:
    """Personal contract purchase of a vehicle.

    The monthly payments cover ``purchase_price - deposit - residual_value``;
    the residual (balloon) value is never amortized.
    """

    start_date: date
    purchase_price: Decimal
    deposit: Decimal
    years: int  # 2, 3 or 5
    residual_value: Decimal
    interest_rate: Decimal

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str) -> "PCPData":
        purchase_price, deposit = _vehicle_price_and_deposit(data, path)
        years = _require(data, "years", path)
        if isinstance(years, bool) or years not in (2, 3, 5):
            raise EventDataError(f"{path}.years: must be 2, 3, or 5")
        return cls(
            start_date=_payload_date(_require(data, "startDate", path), f"{path}.startDate"),
            purchase_price=purchase_price,
            deposit=deposit,
            years=int(years),
            residual_value=_non_negative(_require(data, "residualValue", path), f"{path}.residualValue"),
            interest_rate=_rate(_require(data, "interestRate", path), f"{path}.interestRate"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat(),
            "purchasePrice": float(self.purchase_price),
            "deposit": float(self.deposit),
            "years": self.years,
            "residualValue": float(self.residual_value),
            "interestRate": float(self.interest_rate),
        }


@dataclass(frozen=True)
class CarLoanData:
    """A vehicle bought with a conventional amortizing loan."""

    start_date: date
    purchase_price: Decimal
    deposit: Decimal
    years: int  # 3 to 10
    interest_rate: Decimal

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str) -> "CarLoanData":
        purchase_price, deposit = _vehicle_price_and_deposit(data, path)
        years = _integer(_require(data, "years", path), f"{path}.years")
        if years < 3 or years > 10:
            raise EventDataError(f"{path}.years: must be between 3 and 10")
        return cls(
            start_date=_payload_date(_require(data, "startDate", path), f"{path}.startDate"),
            purchase_price=purchase_price,
            deposit=deposit,
            years=years,
            interest_rate=_rate(_require(data, "interestRate", path), f"{path}.interestRate"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat(),
            "purchasePrice": float(self.purchase_price),
            "deposit": float(self.deposit),
            "years": self.years,
            "interestRate": float(self.interest_rate),
        }


EventData = Union[CashFlowData, MortgageData, MortgageRepaymentData, PCPData, CarLoanData]

PAYLOAD_TYPES = {
    EventType.INCOME: CashFlowData,
    EventType.EXPENSE: CashFlowData,
    EventType.MORTGAGE: MortgageData,
    EventType.MORTGAGE_REPAYMENT: MortgageRepaymentData,
    EventType.PCP: PCPData,
    EventType.CAR_LOAN: CarLoanData,
}


@dataclass(frozen=True)
class Event:
    """A dated financial occurrence attached to a plan."""

    type: str
    data: EventData
    id: Optional[int] = None
    plan_id: Optional[int] = None


@dataclass
class Plan:
    """A named scenario: a start date anchoring the projection plus its events."""

    name: str
    start_date: date
    events: List[Event] = field(default_factory=list)
    id: Optional[int] = None


@dataclass(frozen=True)
class ChartDataPoint:
    """Cumulative balances at the end of one projected month.

    ``month`` is the first day of the month; ``liquidity`` and ``assets`` are
    rounded to cents.
    """

    month: date
    liquidity: Decimal
    assets: Decimal


def event_from_dict(raw: Any, path: str = "event") -> Event:
    """Build a validated ``Event`` from its JSON representation."""
    if not isinstance(raw, dict):
        raise EventDataError(f"{path}: expected object")
    event_type = raw.get("type")
    payload_cls = PAYLOAD_TYPES.get(event_type)
    if payload_cls is None:
        raise EventDataError(f"{path}.type: invalid event type {event_type!r}")
    data = raw.get("data")
    if not isinstance(data, dict):
        raise EventDataError(f"{path}.data: event data must be an object")
    event_id = raw.get("id")
    if event_id is not None:
        event_id = _integer(event_id, f"{path}.id")
    plan_id = raw.get("planId")
    if plan_id is not None:
        plan_id = _integer(plan_id, f"{path}.planId")
    return Event(
        type=event_type,
        data=payload_cls.from_dict(data, f"{path}.data"),
        id=event_id,
        plan_id=plan_id,
    )


def event_to_dict(event: Event) -> Dict[str, Any]:
    result: Dict[str, Any] = {"type": event.type, "data": event.data.to_dict()}
    if event.id is not None:
        result["id"] = event.id
    if event.plan_id is not None:
        result["planId"] = event.plan_id
    return result


def plan_from_dict(raw: Any, path: str = "plan") -> Plan:
    """Build a validated ``Plan`` from its JSON representation.

    Event ids must be unique within the plan. A mortgage repayment that points
    at an id which is not a mortgage of the same plan is allowed but logged.
    """
    if not isinstance(raw, dict):
        raise EventDataError(f"{path}: expected object")
    name = raw.get("name") or "Plan"
    if not isinstance(name, str):
        raise EventDataError(f"{path}.name: expected a string")
    start_date = _payload_date(_require(raw, "startDate", path), f"{path}.startDate")
    events_raw = raw.get("events", [])
    if not isinstance(events_raw, list):
        raise EventDataError(f"{path}.events: expected array")
    events = [event_from_dict(item, f"{path}.events[{i}]") for i, item in enumerate(events_raw)]

    seen_ids = set()
    for i, event in enumerate(events):
        if event.id is None:
            continue
        if event.id in seen_ids:
            raise EventDataError(f"{path}.events[{i}].id: duplicate event id {event.id}")
        seen_ids.add(event.id)

    mortgage_ids = {e.id for e in events if e.type == EventType.MORTGAGE and e.id is not None}
    for event in events:
        if event.type == EventType.MORTGAGE_REPAYMENT and event.data.mortgage_event_id not in mortgage_ids:
            logger.warning(
                "Plan %r: repayment %s references unknown mortgage %s",
                name,
                event.id,
                event.data.mortgage_event_id,
            )

    plan_id = raw.get("id")
    if plan_id is not None:
        plan_id = _integer(plan_id, f"{path}.id")
    return Plan(name=name, start_date=start_date, events=events, id=plan_id)


def plan_to_dict(plan: Plan) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "name": plan.name,
        "startDate": plan.start_date.isoformat(),
        "events": [event_to_dict(e) for e in plan.events],
    }
    if plan.id is not None:
        result["id"] = plan.id
    return result


def chart_point_to_dict(point: ChartDataPoint) -> Dict[str, Any]:
    return {
        "month": point.month.isoformat(),
        "liquidity": float(point.liquidity),
        "assets": float(point.assets),
    }


def load_plan(path: Union[str, Path]) -> Plan:
    """Read and validate a plan JSON file."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise EventDataError(f"{path}: invalid JSON ({exc})") from exc
    return plan_from_dict(raw)

from datetime import date, datetime
from decimal import Decimal

import pytest

from budget_plan.data_models import CashFlowData, Event
from budget_plan.engine import (
    calculate_annuity_payment,
    calculate_car_depreciation,
    car_loan_delta,
    mortgage_delta,
    project,
    summarize_projection,
)
from budget_plan.utils import add_months
from tests.helpers import car_loan, expense, income, mortgage, pcp, repayment


def monthly_payment(principal, annual_rate, months):
    r = annual_rate / 12
    factor = (1 + r) ** months
    return principal * r * factor / (factor - 1)


def test_empty_plan_yields_zero_series():
    points = project([], "2025-01-01", 5)

    assert len(points) == 60
    assert all(p.liquidity == 0 and p.assets == 0 for p in points)


@pytest.mark.parametrize("years", [1, 5, 10, 20])
def test_output_length_matches_range(years):
    assert len(project([income(100)], "2025-01-01", years)) == years * 12


def test_months_are_consecutive_from_anchor():
    points = project([], "2025-03-17", 2)
    anchor = date(2025, 3, 1)

    assert points[0].month == anchor
    assert points[10].month == date(2026, 1, 1)
    assert all(p.month == add_months(anchor, i) for i, p in enumerate(points))


def test_start_date_accepts_date_and_datetime():
    events = [income(5000)]
    from_string = project(events, "2025-01-01", 1)

    assert project(events, date(2025, 1, 1), 1) == from_string
    assert project(events, datetime(2025, 1, 20, 9, 30), 1) == from_string
    assert project(events, "2025-01-20T09:30:00", 1) == from_string


def test_recurrent_income_and_expense_accumulate():
    points = project([income(5000), expense(1500)], "2025-01-01", 1)

    assert points[0].liquidity == Decimal("3500")
    assert points[1].liquidity == Decimal("7000")
    assert points[11].liquidity == Decimal("42000")
    assert all(p.assets == 0 for p in points)


def test_one_time_income_is_carried_forward():
    points = project([income(10000, recurrent=False)], "2025-01-01", 1)

    assert all(p.liquidity == Decimal("10000") for p in points)


def test_one_time_expense_applies_in_start_month_only():
    points = project([expense(750, recurrent=False, start="2025-04-12")], "2025-01-01", 1)

    assert [p.liquidity for p in points[:3]] == [0, 0, 0]
    assert all(p.liquidity == Decimal("-750") for p in points[3:])


def test_recurrent_income_with_specific_months():
    points = project([income(2000, months=[1, 6, 12])], "2025-01-01", 1)

    assert points[0].liquidity == Decimal("2000")
    assert points[4].liquidity == Decimal("2000")
    assert points[5].liquidity == Decimal("4000")
    assert points[10].liquidity == Decimal("4000")
    assert points[11].liquidity == Decimal("6000")


def test_recurrent_expense_with_specific_months():
    points = project([expense(300, months=[3])], "2025-01-01", 2)

    assert points[1].liquidity == 0
    assert points[2].liquidity == Decimal("-300")
    assert points[14].liquidity == Decimal("-600")


def test_end_date_month_is_inclusive():
    points = project([income(100, end="2025-03-15")], "2025-01-01", 1)

    assert points[2].liquidity == Decimal("300")
    assert points[11].liquidity == Decimal("300")


def test_events_starting_later_contribute_from_their_month():
    points = project([income(1000, start="2025-06-01")], "2025-01-01", 1)

    assert all(p.liquidity == 0 for p in points[:5])
    assert points[5].liquidity == Decimal("1000")
    assert points[11].liquidity == Decimal("7000")


def test_events_before_anchor_still_apply_when_recurrent():
    points = project([income(100, start="2020-01-01")], "2025-01-01", 1)

    assert points[0].liquidity == Decimal("100")


def test_values_are_rounded_at_emission():
    points = project([income(1234.567, recurrent=False)], "2025-01-01", 1)

    assert points[0].liquidity == Decimal("1234.57")
    assert points[0].liquidity.as_tuple().exponent == -2


def test_rounding_does_not_compound():
    points = project([income("0.004")], "2025-01-01", 1)

    # 0.004 rounds to 0.00 but the running total keeps accumulating
    assert points[0].liquidity == Decimal("0.00")
    assert points[1].liquidity == Decimal("0.01")
    assert points[11].liquidity == Decimal("0.05")


def test_negative_half_cent_rounds_towards_zero():
    points = project([expense("0.005", recurrent=False)], "2025-01-01", 1)

    assert points[0].liquidity == Decimal("0.00")
    assert str(points[0].liquidity) == "0.00"
    assert project([income("0.005", recurrent=False)], "2025-01-01", 1)[0].liquidity == Decimal("0.01")
    assert project([expense("0.015", recurrent=False)], "2025-01-01", 1)[0].liquidity == Decimal("-0.01")


def test_projection_is_repeatable():
    events = [income(3210.55), expense(99.99, months=[2, 8]), mortgage(interest_rate=0.043), car_loan(interest_rate=0.07)]

    assert project(events, "2025-01-01", 10) == project(events, "2025-01-01", 10)


def test_mortgage_first_month_records_deposit():
    points = project([mortgage()], "2025-01-01", 1)

    assert points[0].assets == Decimal("60000")
    assert points[0].liquidity == 0


def test_mortgage_payments_build_equity():
    points = project([mortgage()], "2025-01-01", 2)
    payment = monthly_payment(240000, 0.05, 300)

    assert float(points[1].liquidity) == pytest.approx(-payment, abs=0.01)
    assert float(points[1].assets) == pytest.approx(60000 + payment - 1000, abs=0.01)
    for previous, current in zip(points[1:], points[2:]):
        assert current.liquidity < previous.liquidity
        assert current.assets > Decimal("60000")


def test_mortgage_interest_only_tranche():
    event = mortgage(purchase_price=200000, loaned_amount=150000, interest_rate=0.06, repayment_percentage=0, years=10)
    points = project([event], "2025-01-01", 1)

    assert points[1].liquidity == Decimal("-750")
    assert points[11].liquidity == Decimal("-8250")
    assert all(p.assets == Decimal("50000") for p in points)


def test_mortgage_stops_after_term():
    event = mortgage(purchase_price=20000, loaned_amount=12000, interest_rate=0, years=1)
    points = project([event], "2025-01-01", 2)

    assert points[0].assets == Decimal("8000")
    assert points[12].liquidity == Decimal("-12000")
    assert points[12].assets == Decimal("20000")
    assert all(p.liquidity == points[12].liquidity for p in points[13:])
    assert all(p.assets == points[12].assets for p in points[13:])


def test_mortgage_starting_later_is_inactive_until_start():
    points = project([mortgage(start="2025-07-15")], "2025-01-01", 1)

    assert all(p.assets == 0 and p.liquidity == 0 for p in points[:6])
    assert points[6].assets == Decimal("60000")


def test_mortgage_repayment_moves_cash_into_equity():
    events = [
        mortgage(purchase_price=100000, loaned_amount=60000, interest_rate=0, years=5, event_id=1),
        repayment(1, "2025-04-10", 10000),
    ]
    points = project(events, "2025-01-01", 1)

    assert points[2].liquidity == Decimal("-2000")
    assert points[3].liquidity == Decimal("-13000")
    assert points[3].assets == Decimal("53000")
    assert points[4].liquidity == Decimal("-14000")


def test_mortgage_repayment_reduces_future_interest():
    base = [mortgage(interest_rate=0.06, event_id=1)]
    with_repayment = base + [repayment(1, "2025-03-01", 50000)]

    without = project(base, "2025-01-01", 1)
    repaid = project(with_repayment, "2025-01-01", 1)

    # the payment is unchanged, so a lower balance means a larger principal portion
    assert repaid[5].liquidity - repaid[4].liquidity == without[5].liquidity - without[4].liquidity
    assert repaid[5].assets - repaid[4].assets > without[5].assets - without[4].assets


def test_equity_stops_growing_once_mortgage_is_repaid():
    events = [
        mortgage(purchase_price=100000, loaned_amount=60000, interest_rate=0.05, years=5, event_id=1),
        repayment(1, "2025-02-01", 60000),
    ]
    points = project(events, "2025-01-01", 6)

    # payments continue but there is no principal left to turn into equity
    assert points[2].liquidity < points[1].liquidity
    assert points[60].liquidity < points[59].liquidity
    assert all(p.assets == points[1].assets for p in points[2:])


def test_fractional_mortgage_term_counts_whole_months():
    events = [mortgage(purchase_price=5000, loaned_amount=3000, interest_rate=0, years=2.5)]
    points = project(events, "2025-01-01", 5)

    assert points[1].liquidity == Decimal("-100")
    assert points[30].liquidity == Decimal("-3000")
    assert points[30].assets == Decimal("5000")
    assert all(p.liquidity == points[30].liquidity for p in points[31:])


def test_repayment_for_unknown_mortgage_still_moves_cash():
    points = project([repayment(99, "2025-02-01", 500)], "2025-01-01", 1)

    assert points[0].liquidity == 0
    assert points[1].liquidity == Decimal("-500")
    assert points[1].assets == Decimal("500")


def test_car_loan_purchase_and_first_payment():
    points = project([car_loan()], "2025-01-01", 1)

    assert points[0].liquidity == Decimal("-2000")
    assert points[0].assets == Decimal("10000")
    # 10000 over 60 months at 0 %, 2 % depreciation of 12000
    assert points[1].liquidity == Decimal("-2166.67")
    assert points[1].assets == Decimal("9926.67")


def test_car_loan_stops_after_term():
    points = project([car_loan(years=3)], "2025-01-01", 5)

    assert points[35].liquidity != points[34].liquidity
    assert all(p.liquidity == points[35].liquidity for p in points[36:])
    assert all(p.assets == points[35].assets for p in points[36:])


def test_car_loan_interest_decreases_over_time():
    points = project([car_loan(purchase_price=30000, deposit=0, interest_rate=0.08)], "2025-01-01", 1)
    payment = monthly_payment(30000, 0.08, 60)

    assert float(points[1].liquidity - points[0].liquidity) == pytest.approx(-payment, abs=0.01)
    first_gain = points[1].assets - points[0].assets
    second_gain = points[2].assets - points[1].assets
    assert second_gain > first_gain


def test_pcp_payments_and_depreciation():
    points = project([pcp()], "2025-01-01", 5)

    assert points[0].liquidity == Decimal("-2000")
    assert points[0].assets == Decimal("18000")
    assert points[1].liquidity == Decimal("-2277.78")
    assert points[1].assets == Decimal("17600")
    assert points[35].liquidity == Decimal("-11722.22")
    assert points[35].assets == Decimal("5920")
    assert all(p.liquidity == points[35].liquidity for p in points[36:])
    assert all(p.assets == points[35].assets for p in points[36:])


def test_pcp_with_interest_finances_price_less_deposit_and_residual():
    points = project([pcp(interest_rate=0.06)], "2025-01-01", 5)
    # 20000 - 2000 deposit - 8000 residual
    payment = monthly_payment(10000, 0.06, 36)

    assert points[0].liquidity == Decimal("-2000")
    assert float(points[1].liquidity) == pytest.approx(-2000 - payment, abs=0.01)
    assert float(points[35].liquidity) == pytest.approx(-2000 - 35 * payment, abs=0.01)
    # interest does not change the asset side, only depreciation does
    assert points[1].assets == Decimal("17600")
    assert points[35].assets == Decimal("5920")


def test_pcp_mid_month_purchase_uses_calendar_months():
    points = project([pcp(start="2025-03-20")], "2025-01-01", 1)

    assert points[1].liquidity == 0
    assert points[2].liquidity == Decimal("-2000")
    assert points[3].liquidity == Decimal("-2277.78")


def test_loans_without_ids_keep_separate_balances():
    single = project([car_loan(interest_rate=0.09)], "2025-01-01", 5)
    double = project([car_loan(interest_rate=0.09), car_loan(interest_rate=0.09)], "2025-01-01", 5)

    for one, two in zip(single, double):
        assert abs(two.assets - 2 * one.assets) <= Decimal("0.01")
        assert abs(two.liquidity - 2 * one.liquidity) <= Decimal("0.01")


def test_mortgage_and_car_loan_with_same_id_do_not_share_balance():
    house = mortgage(interest_rate=0.05, event_id=1)
    car = car_loan(interest_rate=0.09, event_id=1)
    combined = project([house, car], "2025-01-01", 5)
    apart = [project([house], "2025-01-01", 5), project([car], "2025-01-01", 5)]

    for point, a, b in zip(combined, *apart):
        assert abs(point.assets - (a.assets + b.assets)) <= Decimal("0.01")
        assert abs(point.liquidity - (a.liquidity + b.liquidity)) <= Decimal("0.01")


def test_unknown_event_types_contribute_nothing():
    events = [
        Event(type="lottery", data={"amount": 1000000}, id=1),
        Event(type="mortgage", data=income(10).data, id=2),
        income(100),
    ]
    points = project(events, "2025-01-01", 1)

    assert points[11].liquidity == Decimal("1200")
    assert all(p.assets == 0 for p in points)


@pytest.mark.parametrize("range_years", [0, -1, 2.5, True, "10"])
def test_invalid_range_years_raises(range_years):
    with pytest.raises(ValueError):
        project([], "2025-01-01", range_years)


@pytest.mark.parametrize("start", ["not-a-date", "2025-13-01", "", 20250101])
def test_invalid_start_date_raises(start):
    with pytest.raises(ValueError):
        project([], start, 5)


def test_cash_flow_data_can_be_built_directly():
    data = CashFlowData(amount=Decimal("50"), is_recurrent=True, months=frozenset(), start_date=date(2025, 1, 1))
    points = project([Event(type="expense", data=data)], date(2025, 1, 1), 1)

    assert points[11].liquidity == Decimal("-600")


def test_summary_reports_final_and_extreme_values():
    points = project([expense(1000, recurrent=False, start="2025-03-01"), income(200)], "2025-01-01", 1)
    summary = summarize_projection(points)

    assert summary["months"] == 12
    assert summary["first_month"] == "2025-01"
    assert summary["last_month"] == "2025-12"
    assert summary["final_liquidity"] == pytest.approx(1400.0)
    assert summary["lowest_liquidity"] == pytest.approx(-400.0)
    assert summary["lowest_liquidity_month"] == "2025-03"
    assert summary["final_net_position"] == pytest.approx(1400.0)


def test_summary_of_empty_projection():
    summary = summarize_projection([])

    assert summary["months"] == 0
    assert summary["lowest_liquidity_month"] is None


@pytest.mark.parametrize(
    "months, expected",
    [(0, "200"), (23, "200"), (24, "120"), (47, "120"), (48, "100"), (120, "100")],
)
def test_depreciation_slows_with_age(months, expected):
    assert calculate_car_depreciation(Decimal("10000"), months) == Decimal(expected)


def test_annuity_payment():
    assert calculate_annuity_payment(Decimal("12000"), Decimal("0"), 12) == Decimal("1000")
    payment = calculate_annuity_payment(Decimal("240000"), Decimal("0.05") / 12, 300)
    assert float(payment) == pytest.approx(monthly_payment(240000, 0.05, 300))
    with pytest.raises(ValueError):
        calculate_annuity_payment(Decimal("1000"), Decimal("0.01"), 0)


def test_mortgage_balance_never_goes_negative():
    data = mortgage(interest_rate=0.12).data
    delta = mortgage_delta(data, date(2025, 2, 1), Decimal("10"))

    assert delta.new_balance == 0
    assert delta.liquidity < 0


def test_car_loan_principal_is_capped_at_balance():
    data = car_loan(purchase_price=12000, deposit=2000, interest_rate=0.09).data
    delta = car_loan_delta(data, date(2025, 6, 1), 5, Decimal("50"))

    assert delta.new_balance == 0
    assert delta.assets == Decimal("50") - calculate_car_depreciation(Decimal("12000"), 5)

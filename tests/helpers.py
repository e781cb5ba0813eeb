import copy
import json
from pathlib import Path

from budget_plan.data_models import event_from_dict


def write_plan(tmp_path: Path, data: dict, filename: str = "plan.json") -> Path:
    path = tmp_path / filename
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def clone_plan(data: dict) -> dict:
    return copy.deepcopy(data)


def cash_flow(kind, amount, start="2025-01-01", recurrent=True, months=None, end=None, event_id=None):
    data = {
        "amount": amount,
        "isRecurrent": recurrent,
        "months": months or [],
        "startDate": start,
    }
    if end:
        data["endDate"] = end
    return event_from_dict({"id": event_id, "type": kind, "data": data})


def income(amount, **kwargs):
    return cash_flow("income", amount, **kwargs)


def expense(amount, **kwargs):
    return cash_flow("expense", amount, **kwargs)


def mortgage(
    purchase_price=300000,
    loaned_amount=240000,
    interest_rate=0.05,
    repayment_percentage=1,
    years=25,
    start="2025-01-01",
    event_id=1,
):
    return event_from_dict(
        {
            "id": event_id,
            "type": "mortgage",
            "data": {
                "startDate": start,
                "purchasePrice": purchase_price,
                "loanedAmount": loaned_amount,
                "interestRate": interest_rate,
                "repaymentPercentage": repayment_percentage,
                "years": years,
            },
        }
    )


def repayment(mortgage_event_id, date, amount, event_id=None):
    return event_from_dict(
        {
            "id": event_id,
            "type": "mortgage_repayment",
            "data": {"mortgageEventId": mortgage_event_id, "date": date, "amount": amount},
        }
    )


def pcp(purchase_price=20000, deposit=2000, years=3, residual_value=8000, interest_rate=0, start="2025-01-01", event_id=None):
    return event_from_dict(
        {
            "id": event_id,
            "type": "pcp",
            "data": {
                "startDate": start,
                "purchasePrice": purchase_price,
                "deposit": deposit,
                "years": years,
                "residualValue": residual_value,
                "interestRate": interest_rate,
            },
        }
    )


def car_loan(purchase_price=12000, deposit=2000, years=5, interest_rate=0, start="2025-01-01", event_id=None):
    return event_from_dict(
        {
            "id": event_id,
            "type": "car_loan",
            "data": {
                "startDate": start,
                "purchasePrice": purchase_price,
                "deposit": deposit,
                "years": years,
                "interestRate": interest_rate,
            },
        }
    )

import os
from datetime import date
from decimal import Decimal

import pytest

# The web module builds its store at import time; keep it off disk.
os.environ.setdefault("LOAN_TRACKER_DATABASE_URL", "sqlite://")

from loan_tracker.data_models import LoanRecord, PaymentRecord  # noqa: E402
from loan_tracker_web.loan_store import LoanStore  # noqa: E402

TODAY = date(2025, 6, 15)


def make_loan(
    id,
    balance,
    rate="0.12",
    payment="50000",
    original=None,
    active=True,
    description=None,
    owner=None,
    lender=None,
    term=None,
):
    return LoanRecord(
        id=id,
        current_balance=Decimal(str(balance)),
        original_amount=Decimal(str(original if original is not None else balance)),
        annual_interest_rate=Decimal(str(rate)),
        monthly_payment=Decimal(str(payment)),
        is_active=active,
        description=description,
        owner_id=owner,
        lender=lender,
        term_months=term,
    )


def make_payment(amount, on, payment_type="regular", source="salary", loan_id=None):
    return PaymentRecord(
        amount=Decimal(str(amount)),
        payment_date=on,
        payment_type=payment_type,
        source=source,
        loan_id=loan_id,
    )


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def store():
    return LoanStore("sqlite://")


@pytest.fixture
def web_app(monkeypatch, store):
    from loan_tracker_web import app as app_module

    monkeypatch.setattr(app_module, "loan_store", store)
    app_module.app.config["TESTING"] = True
    return app_module.app


@pytest.fixture
def client(web_app):
    return web_app.test_client()

from datetime import date
from decimal import Decimal

from loan_tracker.data_models import LoanState
from loan_tracker.ledger import apply_payment, apply_payments

from conftest import make_payment


def state(balance, rate="0.12", payment="111222"):
    return LoanState(Decimal(str(balance)), Decimal(rate), Decimal(payment))


def test_payment_split_against_current_balance():
    split = apply_payment(state(1_000_000), 111_222, date(2025, 1, 5))

    assert split.interest_portion == Decimal("10000.00")
    assert split.principal_portion == Decimal("101222.00")
    assert split.new_balance == Decimal("898778.00")
    assert not split.paid_off
    assert split.paid_off_date is None


def test_payment_below_interest_leaves_balance():
    split = apply_payment(state(1_000_000), 5_000)

    assert split.principal_portion == 0
    assert split.new_balance == Decimal("1000000.00")


def test_overpayment_clears_loan_and_records_date():
    split = apply_payment(state(1_000), 2_000, date(2025, 3, 1))

    assert split.interest_portion == Decimal("10.00")
    assert split.principal_portion == Decimal("1990.00")
    assert split.new_balance == 0
    assert split.paid_off
    assert split.paid_off_date == date(2025, 3, 1)


def test_payoff_without_date_uses_today():
    split = apply_payment(state(100), 500)

    assert split.paid_off_date == date.today()


def test_interest_portion_rounds_half_up():
    split = apply_payment(state("1234.50"), 100)

    assert split.interest_portion == Decimal("12.35")


def test_zero_rate_payment_is_all_principal():
    split = apply_payment(state(10_000, rate="0"), 2_500)

    assert split.interest_portion == 0
    assert split.new_balance == Decimal("7500.00")


def test_batch_is_replayed_in_date_order():
    loan = state(1_000_000)
    march = make_payment(111_222, date(2025, 3, 1))
    january = make_payment(111_222, date(2025, 1, 1))
    february = make_payment(50_000, date(2025, 2, 1))

    splits, final = apply_payments(loan, [march, january, february])
    ordered_splits, ordered_final = apply_payments(loan, [january, february, march])

    assert splits == ordered_splits
    assert final == ordered_final
    assert splits[0].interest_portion == Decimal("10000.00")
    assert splits[1].interest_portion == Decimal("8987.78")

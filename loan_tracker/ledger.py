"""Payment ledger processing.

Splits recorded payments into interest and principal against the loan
balance as it stood right before each payment, and derives the new balance.
The interest portion uses the same monthly-rate formula as the simulator.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional, Tuple

from .data_models import LoanState, PaymentRecord, PaymentSplit
from .utils import ZERO, Numeric, round_money, to_decimal


def apply_payment(
    loan: LoanState, amount: Numeric, payment_date: Optional[date] = None
) -> PaymentSplit:
    """Split ``amount`` into interest and principal and return the new balance.

    When the payment clears the loan, ``paid_off_date`` is the payment date,
    or today when no date was given.
    """
    amount = to_decimal(amount)
    balance = max(to_decimal(loan.current_balance), ZERO)
    interest = round_money(balance * max(loan.monthly_rate, ZERO))
    principal = round_money(max(ZERO, amount - interest))
    new_balance = round_money(max(ZERO, balance - principal))
    paid_off = new_balance <= 0
    return PaymentSplit(
        interest_portion=interest,
        principal_portion=principal,
        new_balance=new_balance,
        paid_off=paid_off,
        paid_off_date=(payment_date or date.today()) if paid_off else None,
    )


def apply_payments(
    loan: LoanState, payments: Iterable[PaymentRecord]
) -> Tuple[List[PaymentSplit], LoanState]:
    """Replay a batch of payments in date order.

    Payments sharing a date keep their given order. Each split is computed
    against the balance left by the previous one, so the result does not
    depend on the order the batch arrived in.
    """
    state = LoanState(
        current_balance=to_decimal(loan.current_balance),
        annual_interest_rate=to_decimal(loan.annual_interest_rate),
        monthly_payment=to_decimal(loan.monthly_payment),
    )
    splits: List[PaymentSplit] = []
    for payment in sorted(payments, key=lambda p: p.payment_date):
        split = apply_payment(state, payment.amount, payment.payment_date)
        splits.append(split)
        state = LoanState(
            current_balance=split.new_balance,
            annual_interest_rate=state.annual_interest_rate,
            monthly_payment=state.monthly_payment,
        )
    return splits, state

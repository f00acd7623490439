"""Payoff progress scores.

Both the milestone insights and the benchmark percentiles read progress from
here so the two views always agree.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from .data_models import LoanRecord
from .utils import ZERO, to_decimal


def loan_progress(loan: LoanRecord) -> Decimal:
    """Percentage of the original amount already repaid (0 for a zero original)."""
    original = to_decimal(loan.original_amount)
    if original <= 0:
        return ZERO
    current = to_decimal(loan.current_balance)
    return (original - current) / original * Decimal(100)


def user_progress(loans: Iterable[LoanRecord]) -> Decimal:
    """Mean progress over a user's active loans, 0 when there are none."""
    scores = [loan_progress(loan) for loan in loans if loan.is_active]
    if not scores:
        return ZERO
    return sum(scores, ZERO) / Decimal(len(scores))

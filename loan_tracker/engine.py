"""Core amortization engine for the loan tracker.

This module implements the month-by-month payoff simulation used everywhere
a balance has to be projected forward: the baseline payoff of a loan, every
what-if scenario with periodic extra payments and the printable schedule.
All of them run through the same month iterator so their numbers can never
disagree.

The simulation stops when the balance is cleared or after ``MAX_MONTHS``
months. A run that reaches the cap with balance left is reported as
``non_amortizing`` instead of as a 30-year payoff.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Iterator, List, Optional

from .data_models import ExtraPayment, ScheduleEntry, SimulationResult
from .utils import ZERO, Numeric, add_months, round_money, to_decimal

log = logging.getLogger(__name__)

MAX_MONTHS = 360  # 30 years


def annuity_payment(principal: Numeric, annual_rate: Numeric, term_months: int) -> Decimal:
    """Return the equal monthly installment that clears ``principal`` in ``term_months``.

    The formula is:

        payment = P * (i * (1 + i)^n) / ((1 + i)^n - 1)

    where ``P`` is the principal, ``i`` is the monthly interest rate and
    ``n`` is the number of payments. When the interest rate is zero, the
    payment simplifies to ``P / n``.
    """
    if term_months <= 0:
        raise ValueError("Term must be positive")
    principal = to_decimal(principal)
    rate_per_month = to_decimal(annual_rate) / Decimal(12)
    if rate_per_month <= 0:
        return round_money(principal / Decimal(term_months))
    factor = (1 + rate_per_month) ** term_months
    return round_money(principal * (rate_per_month * factor) / (factor - 1))


def _iterate_months(
    balance: Decimal,
    annual_rate: Decimal,
    monthly_payment: Decimal,
    extra: Optional[ExtraPayment],
) -> Iterator[ScheduleEntry]:
    rate_per_month = max(annual_rate, ZERO) / Decimal(12)
    extra_amount = ZERO
    frequency = 0
    if extra is not None and extra.frequency_months and extra.frequency_months > 0:
        extra_amount = max(to_decimal(extra.amount), ZERO)
        frequency = extra.frequency_months

    remaining = round_money(max(balance, ZERO))
    month = 0
    while remaining > 0 and month < MAX_MONTHS:
        month += 1
        interest = round_money(remaining * rate_per_month)
        extra_this_month = extra_amount if frequency and month % frequency == 0 else ZERO
        payment = monthly_payment + extra_this_month
        # Payments that do not cover interest leave the balance untouched.
        principal = max(min(payment - interest, remaining), ZERO)
        starting = remaining
        remaining = max(remaining - principal, ZERO)
        yield ScheduleEntry(
            month=month,
            starting_balance=starting,
            payment=interest + principal,
            interest=interest,
            principal=principal,
            extra=extra_this_month,
            ending_balance=remaining,
        )


def amortization_schedule(
    balance: Numeric,
    annual_rate: Numeric,
    monthly_payment: Numeric,
    extra: Optional[ExtraPayment] = None,
) -> List[ScheduleEntry]:
    """Return every simulated month as a ``ScheduleEntry``.

    ``payment`` on each entry is the cash actually applied, so the final
    month shows the reduced closing payment rather than the full installment.
    """
    return list(
        _iterate_months(
            to_decimal(balance), to_decimal(annual_rate), to_decimal(monthly_payment), extra
        )
    )


def simulate(
    balance: Numeric,
    annual_rate: Numeric,
    monthly_payment: Numeric,
    extra: Optional[ExtraPayment] = None,
) -> SimulationResult:
    """Simulate the payoff of a loan month by month.

    Parameters
    ----------
    balance: Numeric
        Outstanding balance at the start of the simulation.
    annual_rate: Numeric
        Annual interest rate as a fraction (``0.12`` for 12 %).
    monthly_payment: Numeric
        Regular monthly installment.
    extra: ExtraPayment, optional
        Additional amount paid on every ``frequency_months``-th month. ``None``
        or a frequency of zero runs the plain baseline.

    Returns
    -------
    SimulationResult
        Months until payoff, total interest and, when the loan does not clear
        within ``MAX_MONTHS``, the remaining balance with ``non_amortizing``
        set.
    """
    months = 0
    total_interest = ZERO
    remaining = round_money(max(to_decimal(balance), ZERO))
    for entry in _iterate_months(
        to_decimal(balance), to_decimal(annual_rate), to_decimal(monthly_payment), extra
    ):
        months = entry.month
        total_interest += entry.interest
        remaining = entry.ending_balance

    paid_off = remaining <= 0
    if not paid_off:
        log.warning(
            "Balance %s still outstanding after %d months; payment %s does not amortize the loan",
            remaining,
            months,
            monthly_payment,
        )
    return SimulationResult(
        months=months,
        total_interest=round_money(total_interest),
        remaining_balance=remaining,
        paid_off=paid_off,
        non_amortizing=not paid_off,
    )


def projected_payoff_date(result: SimulationResult, start: date) -> Optional[date]:
    """Date of the final payment when the first one falls on ``start``.

    Returns ``None`` for runs that never pay off.
    """
    if result.non_amortizing:
        return None
    if result.months == 0:
        return start
    return add_months(start, result.months - 1)

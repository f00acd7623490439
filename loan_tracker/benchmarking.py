"""Anonymized cross-user benchmarks.

Works on data from users who opted in to benchmarking. Percentiles use the
nearest-rank method (no interpolation) so results are reproducible from the
raw scores alone.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .data_models import LoanRecord, PaymentRecord, PercentileSummary
from .progress import user_progress
from .utils import ZERO, Numeric, round_half_up, to_decimal

MIN_PARTICIPANTS = 2
PERCENTILES = (25, 50, 75, 90)


def nearest_rank(sorted_scores: List[Decimal], p: int) -> int:
    """Return the ``p``-th percentile of an ascending list, rounded to an integer."""
    n = len(sorted_scores)
    idx = -(-p * n // 100) - 1  # ceil(p/100 * n) in integer arithmetic
    idx = min(max(idx, 0), n - 1)
    return round_half_up(sorted_scores[idx])


def compute_percentiles(
    scores: Iterable[Numeric], caller_score: Optional[Numeric] = None
) -> PercentileSummary:
    """Summarize the progress-score distribution and place the caller in it.

    Fewer than ``MIN_PARTICIPANTS`` scores is reported as insufficient data
    instead of degenerate percentiles. ``caller_percentile`` is the share of
    participants scoring strictly below the caller, or ``None`` when no
    caller score is given.
    """
    values = sorted(to_decimal(s) for s in scores)
    n = len(values)
    if n < MIN_PARTICIPANTS:
        return PercentileSummary(participant_count=n, insufficient=True)

    caller_percentile = None
    if caller_score is not None:
        caller = to_decimal(caller_score)
        below = sum(1 for s in values if s < caller)
        caller_percentile = round_half_up(Decimal(100 * below) / Decimal(n))

    p25, p50, p75, p90 = (nearest_rank(values, p) for p in PERCENTILES)
    return PercentileSummary(
        participant_count=n,
        insufficient=False,
        p25=p25,
        p50=p50,
        p75=p75,
        p90=p90,
        caller_percentile=caller_percentile,
    )


def participant_scores(loans: Iterable[LoanRecord]) -> Dict[str, Decimal]:
    """Progress score per owner; owners without an active loan do not take part."""
    grouped: Dict[str, List[LoanRecord]] = {}
    for loan in loans:
        grouped.setdefault(loan.owner_id, []).append(loan)
    return {
        owner: user_progress(owned)
        for owner, owned in grouped.items()
        if any(loan.is_active for loan in owned)
    }


def lender_averages(loans: Iterable[LoanRecord]) -> List[Dict[str, object]]:
    """Average term and rate per lender for loans with a known term.

    Loans without a lender are pooled under ``"Other"``.
    """
    grouped: Dict[str, List[LoanRecord]] = {}
    for loan in loans:
        if loan.term_months is None:
            continue
        grouped.setdefault(loan.lender or "Other", []).append(loan)
    rows = []
    for lender, members in grouped.items():
        count = len(members)
        avg_months = sum(Decimal(l.term_months) for l in members) / count
        avg_rate = sum((to_decimal(l.annual_interest_rate) for l in members), ZERO) / count
        rows.append(
            {
                "lender": lender,
                "avg_months": round_half_up(avg_months),
                "avg_rate": avg_rate.quantize(Decimal("0.0001")),
                "loan_count": count,
            }
        )
    return rows


def extra_payment_stats(payments: Iterable[PaymentRecord]) -> Dict[str, object]:
    amounts = [to_decimal(p.amount) for p in payments if p.payment_type == "extra"]
    if not amounts:
        return {"avg_amount": 0, "total_count": 0}
    return {
        "avg_amount": round_half_up(sum(amounts, ZERO) / len(amounts)),
        "total_count": len(amounts),
    }


def payment_source_breakdown(payments: Iterable[PaymentRecord]) -> List[Dict[str, object]]:
    """Count and average amount of payments per funding source."""
    grouped: Dict[str, List[Decimal]] = {}
    for payment in payments:
        grouped.setdefault(payment.source, []).append(to_decimal(payment.amount))
    return [
        {
            "source": source,
            "count": len(amounts),
            "avg_amount": round_half_up(sum(amounts, ZERO) / len(amounts)),
        }
        for source, amounts in grouped.items()
    ]

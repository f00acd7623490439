"""Rule-based financial insights.

Each rule is a plain function that looks at an ``InsightContext`` and returns
an ``Insight`` (or ``None`` when it has nothing to say). Rules never see each
other's output. ``evaluate`` runs them in the declared order, isolates
failures so one bad input cannot hide the other rules' advice, and sorts the
result by priority while keeping rule order among equal priorities.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from .data_models import PRIORITY_RANK, FinancialProfile, Insight, LoanRecord, PaymentRecord
from .progress import user_progress
from .utils import ZERO, parse_date, to_decimal

log = logging.getLogger(__name__)

DTI_HIGH = Decimal(50)
DTI_HEALTHY = Decimal(36)
MIN_SAVINGS_RATE = Decimal(20)
GRATUITY_WINDOW_DAYS = 90
RECENT_PAYMENT_DAYS = 30
MILESTONES = (25, 50, 75, 90)
MILESTONE_WINDOW = 5
EMERGENCY_FUND_MONTHS = Decimal(3)
BUDGET_LEFTOVER_SHARE = Decimal("0.3")
BUDGET_BALANCE_SHARE = Decimal("0.05")
BUDGET_MIN_SUGGESTION = Decimal(10000)


def _optional_amount(value) -> Decimal:
    if value is None or value == "":
        return ZERO
    return to_decimal(value)


@dataclass
class InsightContext:
    """Aggregate view of a user's loans, payments and profile."""

    loans: List[LoanRecord]
    payments: List[PaymentRecord]
    profile: FinancialProfile
    today: date

    @property
    def active_loans(self) -> List[LoanRecord]:
        return [loan for loan in self.loans if loan.is_active]

    @property
    def total_balance(self) -> Decimal:
        return sum((to_decimal(l.current_balance) for l in self.active_loans), ZERO)

    @property
    def total_monthly(self) -> Decimal:
        return sum((to_decimal(l.monthly_payment) for l in self.active_loans), ZERO)

    @property
    def monthly_income(self) -> Decimal:
        return _optional_amount(self.profile.monthly_income)


def _highest_rate_loan(loans: List[LoanRecord]) -> Optional[LoanRecord]:
    best = None
    for loan in loans:
        if best is None or to_decimal(loan.annual_interest_rate) > to_decimal(best.annual_interest_rate):
            best = loan
    return best


def _lowest_balance_loan(loans: List[LoanRecord]) -> Optional[LoanRecord]:
    best = None
    for loan in loans:
        if best is None or to_decimal(loan.current_balance) < to_decimal(best.current_balance):
            best = loan
    return best


def debt_to_income(ctx: InsightContext) -> Optional[Insight]:
    income = ctx.monthly_income
    if income <= 0:
        return None
    dti = ctx.total_monthly / income * 100
    if dti > DTI_HIGH:
        return Insight(
            id="dti-critical",
            category="warning",
            title="High Debt-to-Income Ratio",
            message=(
                f"Your DTI is {dti:.1f}%, well above the recommended 36%. Consider increasing "
                "income or accelerating payoff on your highest-rate loan."
            ),
            priority="high",
        )
    if dti > DTI_HEALTHY:
        return Insight(
            id="dti-elevated",
            category="warning",
            title="Elevated Debt-to-Income",
            message=(
                f"Your DTI is {dti:.1f}%. Aim to bring this below 36% for better financial "
                "health. Extra payments on high-interest loans help most."
            ),
            priority="medium",
        )
    return Insight(
        id="dti-healthy",
        category="milestone",
        title="Healthy Debt-to-Income Ratio",
        message=f"Your DTI is {dti:.1f}%, within the healthy range. Keep it up!",
        priority="low",
    )


def savings_rate(ctx: InsightContext) -> Optional[Insight]:
    income = ctx.monthly_income
    if income <= 0:
        return None
    rate = (income - ctx.total_monthly) / income * 100
    if rate >= MIN_SAVINGS_RATE:
        return None
    return Insight(
        id="savings-low",
        category="tip",
        title="Boost Your Savings Rate",
        message=(
            f"After loan payments, you're saving ~{rate:.0f}% of income. Aim to save at least "
            "20%. Even small additional savings compound over time."
        ),
        priority="medium",
    )


def avalanche_target(ctx: InsightContext) -> Optional[Insight]:
    active = ctx.active_loans
    if len(active) < 2:
        return None
    target = _highest_rate_loan(active)
    rate = to_decimal(target.annual_interest_rate) * 100
    return Insight(
        id="avalanche-strategy",
        category="strategy",
        title="Avalanche Strategy Opportunity",
        message=(
            f"Your {target.label} has the highest rate ({rate:.1f}%). Directing extra payments "
            "here saves the most in interest over time."
        ),
        priority="high",
    )


def snowball_target(ctx: InsightContext) -> Optional[Insight]:
    active = ctx.active_loans
    if len(active) < 2:
        return None
    target = _lowest_balance_loan(active)
    if target is _highest_rate_loan(active):
        return None
    return Insight(
        id="snowball-strategy",
        category="strategy",
        title="Quick Win Available",
        message=(
            f"Your {target.label} has the lowest balance ({to_decimal(target.current_balance):,.0f}). "
            f"Paying it off first gives you momentum and frees up "
            f"{to_decimal(target.monthly_payment):,.0f}/mo."
        ),
        priority="medium",
    )


def gratuity_optimizer(ctx: InsightContext) -> Optional[Insight]:
    gratuity = _optional_amount(ctx.profile.expected_gratuity)
    if gratuity <= 0 or not ctx.profile.next_gratuity_date:
        return None
    days_until = (parse_date(ctx.profile.next_gratuity_date) - ctx.today).days
    if not 0 <= days_until <= GRATUITY_WINDOW_DAYS:
        return None
    target = _highest_rate_loan(ctx.active_loans)
    if target is None:
        return None
    # One year of interest avoided on the gratuity amount.
    interest_saved = gratuity * to_decimal(target.annual_interest_rate)
    return Insight(
        id="gratuity-optimizer",
        category="optimization",
        title="Gratuity Coming Soon",
        message=(
            f"Your gratuity of {gratuity:,.0f} arrives in ~{days_until} days. Applying it to your "
            f"{target.description or 'highest-rate loan'} could save ~{interest_saved:,.0f} in "
            "interest over the next year."
        ),
        priority="high",
    )


def payment_gap(ctx: InsightContext) -> Optional[Insight]:
    # Only users with a payment history can fall behind on it.
    if not ctx.active_loans or not ctx.payments:
        return None
    cutoff = ctx.today - timedelta(days=RECENT_PAYMENT_DAYS)
    if any(parse_date(p.payment_date) >= cutoff for p in ctx.payments):
        return None
    return Insight(
        id="payment-gap",
        category="warning",
        title="No Recent Payments",
        message=(
            "No payments recorded in the last 30 days. Staying on schedule prevents interest "
            "accumulation and keeps your progress on track."
        ),
        priority="high",
    )


def extra_payment_impact(ctx: InsightContext) -> Optional[Insight]:
    extras = [p for p in ctx.payments if p.payment_type == "extra"]
    if not extras:
        return None
    total_extra = sum((to_decimal(p.amount) for p in extras), ZERO)
    active = ctx.active_loans
    avg_rate = sum((to_decimal(l.annual_interest_rate) for l in active), ZERO) / max(len(active), 1)
    # Rough estimate: half a year of interest on the prepaid amount.
    estimated_saved = total_extra * avg_rate * Decimal("0.5")
    return Insight(
        id="extra-payment-impact",
        category="milestone",
        title="Extra Payments Making Impact",
        message=(
            f"You've made {total_extra:,.0f} in extra payments across {len(extras)} transactions. "
            f"This has saved you an estimated {estimated_saved:,.0f} in interest!"
        ),
        priority="low",
    )


_MILESTONE_NOTES = {
    50: "You're halfway there!",
    75: "The finish line is in sight!",
    90: "Almost debt-free! Final push!",
}


def progress_milestone(ctx: InsightContext) -> Optional[Insight]:
    progress = user_progress(ctx.loans)
    for milestone in MILESTONES:
        if milestone <= progress < milestone + MILESTONE_WINDOW:
            note = _MILESTONE_NOTES.get(milestone, "Great progress, keep going!")
            title = f"{milestone}% Milestone Reached!"
            if milestone >= 75:
                title = f"{milestone}% Milestone Reached! Nearly there!"
            return Insight(
                id=f"milestone-{milestone}",
                category="milestone",
                title=title,
                message=f"You've paid off {progress:.1f}% of your loans. {note}",
                priority="medium",
            )
    return None


def emergency_fund(ctx: InsightContext) -> Optional[Insight]:
    if ctx.monthly_income <= 0:
        return None
    fund = _optional_amount(ctx.profile.emergency_fund)
    total_monthly = ctx.total_monthly
    months_covered = fund / total_monthly if total_monthly > 0 else ZERO
    if months_covered >= EMERGENCY_FUND_MONTHS:
        return None
    return Insight(
        id="emergency-fund",
        category="tip",
        title="Build Emergency Fund",
        message=(
            f"Your emergency fund covers ~{months_covered:.1f} months of loan payments. Aim for "
            "3-6 months to protect against unexpected disruptions."
        ),
        priority="medium",
    )


def budget_suggestion(ctx: InsightContext) -> Optional[Insight]:
    income = ctx.monthly_income
    if income <= 0:
        return None
    available = income - ctx.total_monthly
    if available <= 0:
        return None
    suggested = min(available * BUDGET_LEFTOVER_SHARE, ctx.total_balance * BUDGET_BALANCE_SHARE)
    if suggested <= BUDGET_MIN_SUGGESTION:
        return None
    return Insight(
        id="budget-extra",
        category="optimization",
        title="Optimal Extra Payment",
        message=(
            f"Based on your income and payments, you could comfortably allocate "
            f"~{suggested:,.0f}/month as extra payments."
        ),
        priority="medium",
    )


Rule = Callable[[InsightContext], Optional[Insight]]

RULES: List[Rule] = [
    debt_to_income,
    savings_rate,
    avalanche_target,
    snowball_target,
    gratuity_optimizer,
    payment_gap,
    extra_payment_impact,
    progress_milestone,
    emergency_fund,
    budget_suggestion,
]


def evaluate(
    loans: Iterable[LoanRecord],
    payments: Iterable[PaymentRecord],
    profile: Optional[FinancialProfile] = None,
    today: Optional[date] = None,
    rules: Optional[List[Rule]] = None,
) -> List[Insight]:
    """Run every rule and return the insights ordered high, medium, low."""
    ctx = InsightContext(
        loans=list(loans),
        payments=list(payments),
        profile=profile or FinancialProfile(),
        today=today or date.today(),
    )
    if not ctx.loans:
        return []

    insights: List[Insight] = []
    for rule in rules if rules is not None else RULES:
        try:
            insight = rule(ctx)
        except Exception:
            log.exception("Insight rule %s failed; skipping it", rule.__name__)
            continue
        if insight is not None:
            insights.append(insight)
    return sorted(insights, key=lambda i: PRIORITY_RANK[i.priority])

"""Data models for the loan tracker.

This module defines dataclasses for the entities the engine works with: the
numeric loan snapshot, stored loan and payment records, simulation and
scenario results, the user's financial profile, advisory insights and
benchmark percentiles. Money fields hold ``Decimal`` values; rates are annual
fractions (``0.12`` for 12 % APR), never percentages.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from .utils import to_decimal

PAYMENT_TYPES = ("regular", "extra")
PAYMENT_SOURCES = ("salary", "gratuity", "bonus", "investment", "savings", "other")
INSIGHT_CATEGORIES = ("strategy", "warning", "milestone", "tip", "optimization")
PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}


@dataclass
class LoanState:
    """The minimal numeric snapshot the engine operates on."""

    current_balance: Decimal
    annual_interest_rate: Decimal
    monthly_payment: Decimal

    @property
    def monthly_rate(self) -> Decimal:
        return self.annual_interest_rate / Decimal(12)


@dataclass
class LoanRecord:
    """A stored loan as handed over by the persistence layer.

    ``owner_id`` and ``lender`` are only used for grouping (benchmarks,
    insight messages); the engine never reads anything else from storage.
    """

    id: Any
    current_balance: Decimal
    original_amount: Decimal
    annual_interest_rate: Decimal
    monthly_payment: Decimal
    is_active: bool = True
    start_date: Optional[date] = None
    term_months: Optional[int] = None
    description: Optional[str] = None
    lender: Optional[str] = None
    owner_id: Optional[str] = None
    paid_off_date: Optional[date] = None

    def state(self) -> LoanState:
        return LoanState(
            current_balance=to_decimal(self.current_balance),
            annual_interest_rate=to_decimal(self.annual_interest_rate),
            monthly_payment=to_decimal(self.monthly_payment),
        )

    @property
    def label(self) -> str:
        return self.description or "loan"


@dataclass
class PaymentRecord:
    """A recorded payment. Immutable once the ledger has split it."""

    amount: Decimal
    payment_date: date
    payment_type: str = "regular"  # "regular" or "extra"
    source: str = "other"
    notes: Optional[str] = None
    loan_id: Any = None
    interest_portion: Optional[Decimal] = None
    principal_portion: Optional[Decimal] = None


@dataclass
class PaymentSplit:
    """How a single payment divides into interest and principal."""

    interest_portion: Decimal
    principal_portion: Decimal
    new_balance: Decimal
    paid_off: bool
    paid_off_date: Optional[date] = None


@dataclass
class ExtraPayment:
    """An extra amount injected every ``frequency_months`` months.

    A frequency of zero disables the injection entirely.
    """

    amount: Decimal
    frequency_months: int


@dataclass
class ScheduleEntry:
    """One simulated month of the payoff timeline."""

    month: int
    starting_balance: Decimal
    payment: Decimal
    interest: Decimal
    principal: Decimal
    extra: Decimal
    ending_balance: Decimal


@dataclass
class SimulationResult:
    """Outcome of an amortization run.

    ``non_amortizing`` is set when the run hit the month cap with balance
    still outstanding, i.e. the payments never clear the debt. Callers must
    render that differently from a genuine payoff at the cap.
    """

    months: int
    total_interest: Decimal
    remaining_balance: Decimal
    paid_off: bool
    non_amortizing: bool


@dataclass
class ScenarioDefinition:
    name: str
    extra_amount: Decimal = Decimal("0")
    frequency: Optional[int] = None  # months between extras; 0/None = baseline

    @property
    def extra(self) -> Optional[ExtraPayment]:
        if not self.frequency:
            return None
        return ExtraPayment(amount=to_decimal(self.extra_amount), frequency_months=self.frequency)


@dataclass
class ScenarioResult:
    name: str
    extra_amount: Decimal
    frequency: Optional[int]
    total_months: int
    total_interest: Decimal
    total_paid: Decimal
    months_saved: int = 0
    interest_saved: Decimal = Decimal("0")
    non_amortizing: bool = False


@dataclass
class ScenarioComparison:
    baseline: ScenarioResult
    results: List[ScenarioResult] = field(default_factory=list)

    def best(self) -> Optional[ScenarioResult]:
        """Return the scenario saving the most interest.

        Ties go to the one saving more months, then to the one declared
        first.
        """
        best: Optional[ScenarioResult] = None
        for result in self.results:
            if best is None or (result.interest_saved, result.months_saved) > (
                best.interest_saved,
                best.months_saved,
            ):
                best = result
        return best


@dataclass
class FinancialProfile:
    """Read-only profile inputs for the insight rules.

    Values are stored as received and converted when a rule reads them, so a
    malformed field only affects the rules that depend on it.
    """

    monthly_income: Any = None
    emergency_fund: Any = None
    expected_gratuity: Any = None
    next_gratuity_date: Any = None


@dataclass
class Insight:
    id: str
    category: str  # one of INSIGHT_CATEGORIES
    title: str
    message: str
    priority: str  # "high", "medium" or "low"


@dataclass
class PercentileSummary:
    participant_count: int
    insufficient: bool
    p25: Optional[int] = None
    p50: Optional[int] = None
    p75: Optional[int] = None
    p90: Optional[int] = None
    caller_percentile: Optional[int] = None

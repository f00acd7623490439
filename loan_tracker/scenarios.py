"""What-if comparison of extra-payment strategies.

A comparison runs the amortization engine once without extras to get the
baseline and once per scenario, then reports how many months and how much
interest each scenario saves relative to that baseline. Savings keep their
sign: a scenario that somehow does worse shows negative savings.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List

from .data_models import LoanState, ScenarioComparison, ScenarioDefinition, ScenarioResult, SimulationResult
from .engine import simulate
from .utils import round_money, to_decimal

# Quick-pick strategies offered next to custom scenarios.
PRESET_SCENARIOS = (
    ScenarioDefinition(name="50K every 6 months", extra_amount=Decimal("50000"), frequency=6),
    ScenarioDefinition(name="100K every 6 months", extra_amount=Decimal("100000"), frequency=6),
    ScenarioDefinition(name="200K every 6 months", extra_amount=Decimal("200000"), frequency=6),
)


def _to_result(scenario: ScenarioDefinition, balance: Decimal, run: SimulationResult) -> ScenarioResult:
    return ScenarioResult(
        name=scenario.name,
        extra_amount=to_decimal(scenario.extra_amount),
        frequency=scenario.frequency or None,
        total_months=run.months,
        total_interest=run.total_interest,
        total_paid=round_money(balance + run.total_interest),
        non_amortizing=run.non_amortizing,
    )


def run_scenario(loan: LoanState, scenario: ScenarioDefinition) -> ScenarioResult:
    """Simulate a single scenario without comparing it to anything."""
    balance = to_decimal(loan.current_balance)
    run = simulate(balance, loan.annual_interest_rate, loan.monthly_payment, scenario.extra)
    return _to_result(scenario, balance, run)


def compare(loan: LoanState, scenarios: Iterable[ScenarioDefinition]) -> ScenarioComparison:
    """Compare each scenario against the regular-payments baseline."""
    baseline = run_scenario(loan, ScenarioDefinition(name="Baseline"))
    results: List[ScenarioResult] = []
    for scenario in scenarios:
        result = run_scenario(loan, scenario)
        result.months_saved = baseline.total_months - result.total_months
        result.interest_saved = baseline.total_interest - result.total_interest
        results.append(result)
    return ScenarioComparison(baseline=baseline, results=results)

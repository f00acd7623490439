"""Output helpers for the loan tracker.

This module renders simulations, schedules, scenario comparisons, insights
and benchmarks as plain text tables for the terminal, and converts the same
results into JSON-ready dictionaries. Money is serialized as fixed
two-decimal strings so consumers never see binary float drift.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import click

from .data_models import (
    Insight,
    PaymentSplit,
    PercentileSummary,
    ScenarioComparison,
    ScenarioResult,
    ScheduleEntry,
    SimulationResult,
)


def money(value: Decimal) -> str:
    return f"{value:.2f}"


# Fractional rates keep their full precision instead of being cut to cents.
_RATE_KEYS = {"annual_interest_rate", "avg_rate"}


def _jsonable(value: Any, key: Optional[str] = None) -> Any:
    if isinstance(value, Decimal):
        if key in _RATE_KEYS:
            return f"{value.normalize():f}"
        return money(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v, k) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def to_json_dict(obj: Any) -> Dict[str, Any]:
    """Convert a result dataclass (or a plain dict) into JSON-ready values."""
    data = obj if isinstance(obj, dict) else asdict(obj)
    return _jsonable(data)


def comparison_to_dict(comparison: ScenarioComparison) -> Dict[str, Any]:
    best = comparison.best()
    return {
        "baseline": to_json_dict(comparison.baseline),
        "results": [to_json_dict(r) for r in comparison.results],
        "best": best.name if best else None,
    }


def schedule_to_rows(schedule: Iterable[ScheduleEntry]) -> List[Dict[str, Any]]:
    return [to_json_dict(entry) for entry in schedule]


def print_simulation(result: SimulationResult, payoff_date: Optional[date] = None) -> None:
    """Print the outcome of a payoff simulation."""
    click.echo("Simulation")
    click.echo("-" * 72)
    if result.non_amortizing:
        click.secho(
            "Payments never clear this loan: balance is still outstanding after "
            f"{result.months} months.",
            fg="red",
        )
        click.echo(f"Remaining balance  : {money(result.remaining_balance)}")
    else:
        click.echo(f"Months to payoff   : {result.months}")
    click.echo(f"Total interest     : {money(result.total_interest)}")
    if payoff_date is not None:
        click.echo(f"Payoff date        : {payoff_date.strftime('%Y-%m')}")
    click.echo("-" * 72)


def print_schedule(schedule: Iterable[ScheduleEntry]) -> None:
    """Print the simulated months as a tab separated table."""
    headers = ["Month", "StartBal", "Payment", "Principal", "Interest", "Extra", "EndBal"]
    click.echo("\t".join(headers))
    for entry in schedule:
        row = [
            str(entry.month),
            money(entry.starting_balance),
            money(entry.payment),
            money(entry.principal),
            money(entry.interest),
            money(entry.extra),
            money(entry.ending_balance),
        ]
        click.echo("\t".join(row))


def print_split(split: PaymentSplit) -> None:
    click.echo(f"Interest portion   : {money(split.interest_portion)}")
    click.echo(f"Principal portion  : {money(split.principal_portion)}")
    click.echo(f"New balance        : {money(split.new_balance)}")
    if split.paid_off:
        click.secho(f"Loan paid off on {split.paid_off_date.isoformat()}", fg="green")


def _months_label(result: ScenarioResult) -> str:
    if result.non_amortizing:
        return "never"
    return str(result.total_months)


def print_comparison(comparison: ScenarioComparison) -> None:
    """Print every scenario next to the baseline.

    Savings are relative to the baseline; a negative value means the
    scenario is worse.
    """
    base = comparison.baseline
    click.echo("Comparison")
    click.echo("=" * 88)
    click.echo(
        f"{'Scenario':24s} {'Extra':>12s} {'Every':>6s} {'Months':>7s} "
        f"{'Interest':>14s} {'Saved mo':>9s} {'Saved':>12s}"
    )
    click.echo(
        f"{base.name:24s} {'-':>12s} {'-':>6s} {_months_label(base):>7s} "
        f"{money(base.total_interest):>14s} {'-':>9s} {'-':>12s}"
    )
    for r in comparison.results:
        every = str(r.frequency) if r.frequency else "-"
        click.echo(
            f"{r.name[:24]:24s} {money(r.extra_amount):>12s} {every:>6s} {_months_label(r):>7s} "
            f"{money(r.total_interest):>14s} {r.months_saved:>9d} {money(r.interest_saved):>12s}"
        )
    click.echo("=" * 88)
    best = comparison.best()
    if best is not None:
        click.echo(
            f"Best scenario: {best.name} saves {money(best.interest_saved)} in interest "
            f"and {best.months_saved} months."
        )


_PRIORITY_COLORS = {"high": "red", "medium": "yellow", "low": "green"}


def print_insights(insights: List[Insight]) -> None:
    if not insights:
        click.echo("No insights right now.")
        return
    for insight in insights:
        click.secho(
            f"[{insight.priority.upper()}] {insight.title}",
            fg=_PRIORITY_COLORS.get(insight.priority),
            bold=True,
        )
        click.echo(f"  {insight.message}")


def print_percentiles(summary: PercentileSummary) -> None:
    if summary.insufficient:
        click.echo(
            f"Not enough participants yet for meaningful benchmarks ({summary.participant_count})."
        )
        return
    click.echo(f"Participants       : {summary.participant_count}")
    click.echo(f"25th percentile    : {summary.p25}")
    click.echo(f"Median             : {summary.p50}")
    click.echo(f"75th percentile    : {summary.p75}")
    click.echo(f"90th percentile    : {summary.p90}")
    if summary.caller_percentile is not None:
        click.echo(f"Your percentile    : {summary.caller_percentile}")

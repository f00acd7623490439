"""Command-line interface for the loan tracker.

This module uses the ``click`` library to implement a multi-command
interface. Users can simulate a loan payoff, split a single payment, compare
extra-payment scenarios, evaluate insights for a saved portfolio and compute
benchmark percentiles. Results can be printed to the terminal or exported to
JSON/CSV files.

The parsing helpers here are shared with the web API so both front ends
accept the same inputs.
"""

from __future__ import annotations

import csv
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from .benchmarking import compute_percentiles
from .data_models import (
    PAYMENT_SOURCES,
    PAYMENT_TYPES,
    ExtraPayment,
    FinancialProfile,
    LoanRecord,
    LoanState,
    PaymentRecord,
    ScenarioDefinition,
    ScheduleEntry,
)
from .engine import amortization_schedule, projected_payoff_date, simulate
from .formatter import (
    comparison_to_dict,
    print_comparison,
    print_insights,
    print_percentiles,
    print_schedule,
    print_simulation,
    print_split,
    schedule_to_rows,
    to_json_dict,
)
from .insights import evaluate
from .ledger import apply_payment
from .scenarios import PRESET_SCENARIOS, compare as compare_scenarios
from .utils import parse_date, to_decimal


def parse_amount(value: str) -> Decimal:
    """Parse a money string with optional suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000).
    """
    value = str(value).strip().lower().replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    amount = to_decimal(value) * factor
    if amount < 0:
        raise ValueError(f"Amount must not be negative: {value}")
    return amount


def parse_rate(value: str) -> Decimal:
    """Parse an annual rate into a fraction.

    "12%" and "12" both mean 12 %; values of 1 or below are taken as
    fractions already ("0.12").
    """
    text = str(value).strip()
    if text.endswith("%"):
        rate = to_decimal(text[:-1]) / Decimal(100)
    else:
        rate = to_decimal(text)
        if rate > 1:
            rate = rate / Decimal(100)
    if not 0 <= rate <= 1:
        raise ValueError(f"Rate must be between 0% and 100%: {value}")
    return rate


def parse_extra(value: str) -> ExtraPayment:
    """Parse ``AMOUNT:EVERY`` (e.g. ``100k:6``) into an ``ExtraPayment``."""
    parts = value.split(":")
    if len(parts) != 2:
        raise ValueError(f"Extra payment must be in AMOUNT:EVERY format; got {value}")
    amount, every = parts
    try:
        frequency = int(every)
    except ValueError as exc:
        raise ValueError(f"Extra payment frequency must be a whole number of months; got {every}") from exc
    if frequency < 0:
        raise ValueError("Extra payment frequency must not be negative")
    return ExtraPayment(amount=parse_amount(amount), frequency_months=frequency)


def parse_scenario(value: str) -> ScenarioDefinition:
    """Parse ``NAME:AMOUNT:EVERY`` into a ``ScenarioDefinition``."""
    name, sep, rest = value.partition(":")
    if not sep or not name.strip():
        raise ValueError(f"Scenario must be in NAME:AMOUNT:EVERY format; got {value}")
    extra = parse_extra(rest)
    return ScenarioDefinition(
        name=name.strip(), extra_amount=extra.amount, frequency=extra.frequency_months
    )


def loan_state_from_dict(data: Dict[str, Any]) -> LoanState:
    try:
        return LoanState(
            current_balance=parse_amount(data["balance"]),
            annual_interest_rate=parse_rate(data["annual_rate"]),
            monthly_payment=parse_amount(data["monthly_payment"]),
        )
    except KeyError as exc:
        raise ValueError(f"Missing loan field: {exc.args[0]}") from exc


def loan_from_dict(data: Dict[str, Any]) -> LoanRecord:
    """Build a ``LoanRecord`` from a JSON object."""
    try:
        balance = parse_amount(data["current_balance"])
        return LoanRecord(
            id=data.get("id"),
            current_balance=balance,
            original_amount=parse_amount(data.get("original_amount", balance)),
            annual_interest_rate=parse_rate(data["annual_interest_rate"]),
            monthly_payment=parse_amount(data["monthly_payment"]),
            is_active=bool(data.get("is_active", True)),
            start_date=parse_date(data["start_date"]) if data.get("start_date") else None,
            term_months=int(data["term_months"]) if data.get("term_months") else None,
            description=data.get("description"),
            lender=data.get("lender"),
            owner_id=data.get("owner_id"),
        )
    except KeyError as exc:
        raise ValueError(f"Missing loan field: {exc.args[0]}") from exc


LOAN_UPDATE_FIELDS = ("description", "lender", "current_balance", "monthly_payment", "annual_interest_rate", "is_active")


def loan_changes_from_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a partial loan update; keys that are absent stay unchanged."""
    unknown = sorted(set(data) - set(LOAN_UPDATE_FIELDS))
    if unknown:
        raise ValueError(f"Loan fields cannot be updated: {', '.join(unknown)}")
    changes: Dict[str, Any] = {}
    for key in ("description", "lender"):
        if key in data:
            changes[key] = data[key]
    for key in ("current_balance", "monthly_payment"):
        if key in data:
            amount = parse_amount(data[key])
            if amount <= 0:
                raise ValueError(f"{key} must be positive")
            changes[key] = amount
    if "annual_interest_rate" in data:
        changes["annual_interest_rate"] = parse_rate(data["annual_interest_rate"])
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise ValueError("is_active must be true or false")
        changes["is_active"] = data["is_active"]
    return changes


def payment_from_dict(data: Dict[str, Any]) -> PaymentRecord:
    """Build a ``PaymentRecord`` from a JSON object, validating its enums."""
    payment_type = data.get("payment_type", "regular")
    source = data.get("source", "other")
    if payment_type not in PAYMENT_TYPES:
        raise ValueError(f"Payment type must be one of {', '.join(PAYMENT_TYPES)}; got {payment_type}")
    if source not in PAYMENT_SOURCES:
        raise ValueError(f"Payment source must be one of {', '.join(PAYMENT_SOURCES)}; got {source}")
    try:
        amount = parse_amount(data["amount"])
        payment_date = parse_date(data["payment_date"])
    except KeyError as exc:
        raise ValueError(f"Missing payment field: {exc.args[0]}") from exc
    if amount <= 0:
        raise ValueError("Payment amount must be positive")
    return PaymentRecord(
        amount=amount,
        payment_date=payment_date,
        payment_type=payment_type,
        source=source,
        notes=data.get("notes"),
        loan_id=data.get("loan_id"),
    )


def profile_from_dict(data: Optional[Dict[str, Any]]) -> FinancialProfile:
    data = data or {}
    return FinancialProfile(
        monthly_income=data.get("monthly_income"),
        emergency_fund=data.get("emergency_fund"),
        expected_gratuity=data.get("expected_gratuity"),
        next_gratuity_date=data.get("next_gratuity_date"),
    )


def export_to_json(path: Path, data: Dict[str, Any]) -> None:
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, schedule: List[ScheduleEntry]) -> None:
    """Export schedule to a CSV file."""
    header = ["Month", "Starting_Balance", "Payment", "Principal", "Interest", "Extra", "Ending_Balance"]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for e in schedule:
            writer.writerow(
                [
                    e.month,
                    f"{e.starting_balance:.2f}",
                    f"{e.payment:.2f}",
                    f"{e.principal:.2f}",
                    f"{e.interest:.2f}",
                    f"{e.extra:.2f}",
                    f"{e.ending_balance:.2f}",
                ]
            )


def _bad_parameter(func, value, *args):
    try:
        return func(value, *args)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log engine diagnostics to stderr")
def cli(verbose: bool) -> None:
    """Track car loans, project payoff and compare prepayment strategies."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("simulate")
@click.option("--balance", "-b", "balance", required=True, help="Outstanding balance")
@click.option("--rate", "-r", "rate", required=True, help="Annual interest rate (12, 12% or 0.12)")
@click.option("--payment", "-m", "payment", required=True, help="Regular monthly payment")
@click.option("--extra", "extra", help="Extra payment in AMOUNT:EVERY format, e.g. 100k:6")
@click.option("--start-date", "-s", "start_date", help="First payment date (YYYY-MM)")
@click.option("--schedule", "show_schedule", is_flag=True, help="Print the month by month schedule")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def simulate_command(
    balance: str,
    rate: str,
    payment: str,
    extra: Optional[str],
    start_date: Optional[str],
    show_schedule: bool,
    output: Optional[str],
) -> None:
    """Simulate the payoff of a loan."""
    balance_value = _bad_parameter(parse_amount, balance)
    rate_value = _bad_parameter(parse_rate, rate)
    payment_value = _bad_parameter(parse_amount, payment)
    if payment_value <= 0:
        raise click.BadParameter("Monthly payment must be positive")
    extra_value = _bad_parameter(parse_extra, extra) if extra else None
    start = _bad_parameter(parse_date, start_date) if start_date else None

    result = simulate(balance_value, rate_value, payment_value, extra_value)
    schedule_entries = amortization_schedule(balance_value, rate_value, payment_value, extra_value)
    payoff = projected_payoff_date(result, start) if start else None

    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            data = {
                "summary": to_json_dict(result),
                "payoff_date": payoff.isoformat() if payoff else None,
                "schedule": schedule_to_rows(schedule_entries),
            }
            export_to_json(path, data)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, schedule_entries)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Simulation exported to {path}")
        return

    print_simulation(result, payoff)
    if show_schedule:
        print_schedule(schedule_entries)


@cli.command()
@click.option("--balance", "-b", "balance", required=True, help="Balance before the payment")
@click.option("--rate", "-r", "rate", required=True, help="Annual interest rate (12, 12% or 0.12)")
@click.option("--amount", "-a", "amount", required=True, help="Payment amount")
@click.option("--date", "-d", "payment_date", help="Payment date (YYYY-MM-DD), defaults to today")
def pay(balance: str, rate: str, amount: str, payment_date: Optional[str]) -> None:
    """Split a payment into interest and principal."""
    amount_value = _bad_parameter(parse_amount, amount)
    if amount_value <= 0:
        raise click.BadParameter("Payment amount must be positive")
    state = LoanState(
        current_balance=_bad_parameter(parse_amount, balance),
        annual_interest_rate=_bad_parameter(parse_rate, rate),
        monthly_payment=amount_value,
    )
    on = _bad_parameter(parse_date, payment_date) if payment_date else None
    print_split(apply_payment(state, amount_value, on))


@cli.command()
@click.option("--balance", "-b", "balance", required=True, help="Outstanding balance")
@click.option("--rate", "-r", "rate", required=True, help="Annual interest rate (12, 12% or 0.12)")
@click.option("--payment", "-m", "payment", required=True, help="Regular monthly payment")
@click.option("--scenario", "scenario", multiple=True, help="Scenario in NAME:AMOUNT:EVERY format")
@click.option("--presets", is_flag=True, help="Add the preset 50K/100K/200K every 6 months scenarios")
@click.option("--output", "output", type=str, help="Output file path (.json)")
def compare(
    balance: str,
    rate: str,
    payment: str,
    scenario: Tuple[str, ...],
    presets: bool,
    output: Optional[str],
) -> None:
    """Compare extra-payment scenarios against regular payments.

    Example:

        loan-tracker compare -b 5m -r 12 -m 111222 --scenario "Bonus:100k:6"
    """
    state = LoanState(
        current_balance=_bad_parameter(parse_amount, balance),
        annual_interest_rate=_bad_parameter(parse_rate, rate),
        monthly_payment=_bad_parameter(parse_amount, payment),
    )
    scenarios = [_bad_parameter(parse_scenario, s) for s in scenario]
    if presets:
        scenarios.extend(PRESET_SCENARIOS)
    if not scenarios:
        raise click.UsageError("Give at least one --scenario or use --presets")
    comparison = compare_scenarios(state, scenarios)
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Comparison export must use .json extension")
        export_to_json(path, comparison_to_dict(comparison))
        click.echo(f"Comparison exported to {path}")
    else:
        print_comparison(comparison)


@cli.command()
@click.argument("portfolio", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--today", "today", help="Evaluate as of this date (YYYY-MM-DD)")
@click.option("--json", "as_json", is_flag=True, help="Print insights as JSON")
def insights(portfolio: Path, today: Optional[str], as_json: bool) -> None:
    """Evaluate insights for a JSON portfolio of loans, payments and profile."""
    try:
        data = json.loads(portfolio.read_text(encoding="utf-8"))
        loans = [loan_from_dict(d) for d in data.get("loans", [])]
        payments = [payment_from_dict(d) for d in data.get("payments", [])]
        profile = profile_from_dict(data.get("profile"))
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="PORTFOLIO")
    as_of = _bad_parameter(parse_date, today) if today else None
    results = evaluate(loans, payments, profile, today=as_of)
    if as_json:
        click.echo(json.dumps([to_json_dict(i) for i in results], indent=2))
    else:
        print_insights(results)


@cli.command()
@click.option("--score", "score", multiple=True, type=float, required=True, help="Participant progress score")
@click.option("--caller", "caller", type=float, help="Your own progress score")
def benchmark(score: Tuple[float, ...], caller: Optional[float]) -> None:
    """Show progress percentiles across participants."""
    print_percentiles(compute_percentiles(score, caller))


if __name__ == "__main__":
    cli()

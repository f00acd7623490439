import json
from decimal import Decimal

import click
import pytest
from click.testing import CliRunner

from loan_tracker.main import cli, parse_amount, parse_extra, parse_rate, parse_scenario


@pytest.fixture
def runner():
    return CliRunner()


@pytest.mark.parametrize("text, expected", [("500000", "500000"), ("500k", "500000"), ("5m", "5000000"), ("1,250.50", "1250.50")])
def test_parse_amount(text, expected):
    assert parse_amount(text) == Decimal(expected)


@pytest.mark.parametrize("text", ["12", "12%", "0.12"])
def test_parse_rate_always_returns_a_fraction(text):
    assert parse_rate(text) == Decimal("0.12")


@pytest.mark.parametrize("text", ["-5%", "-0.1", "-12", "150", "101%"])
def test_parse_rate_rejects_rates_outside_zero_to_hundred_percent(text):
    with pytest.raises(ValueError):
        parse_rate(text)


def test_parse_rate_accepts_the_bounds():
    assert parse_rate("0") == 0
    assert parse_rate("100%") == 1
    assert parse_rate("100") == 1


def test_parse_scenario():
    scenario = parse_scenario("Bonus:100k:6")

    assert scenario.name == "Bonus"
    assert scenario.extra_amount == Decimal("100000")
    assert scenario.frequency == 6
    with pytest.raises(ValueError):
        parse_scenario("100k:6")
    with pytest.raises(ValueError):
        parse_extra("100k:often")


def test_simulate_prints_payoff(runner):
    result = runner.invoke(cli, ["simulate", "-b", "5m", "-r", "12", "-m", "111222", "--start-date", "2025-01"])

    assert result.exit_code == 0, result.output
    assert "Months to payoff" in result.output
    assert "Payoff date" in result.output


def test_simulate_flags_non_amortizing_loan(runner):
    result = runner.invoke(cli, ["simulate", "-b", "1m", "-r", "12", "-m", "10000"])

    assert result.exit_code == 0
    assert "never clear" in result.output
    assert "Months to payoff" not in result.output


def test_simulate_schedule(runner):
    result = runner.invoke(cli, ["simulate", "-b", "1200", "-r", "0", "-m", "100", "--extra", "100:6", "--schedule"])

    assert result.exit_code == 0
    lines = [line for line in result.output.splitlines() if "\t" in line]
    assert lines[0].startswith("Month\tStartBal")
    assert len(lines) == 1 + 11


def test_simulate_rejects_bad_extra(runner):
    result = runner.invoke(cli, ["simulate", "-b", "1200", "-r", "0", "-m", "100", "--extra", "lots"])

    assert result.exit_code == 2
    assert "AMOUNT:EVERY" in result.output


def test_simulate_exports(runner, tmp_path):
    json_path = tmp_path / "plan.json"
    csv_path = tmp_path / "plan.csv"

    assert runner.invoke(cli, ["simulate", "-b", "1200", "-r", "0", "-m", "100", "--output", str(json_path)]).exit_code == 0
    assert runner.invoke(cli, ["simulate", "-b", "1200", "-r", "0", "-m", "100", "--output", str(csv_path)]).exit_code == 0

    data = json.loads(json_path.read_text())
    assert data["summary"]["months"] == 12
    assert data["summary"]["total_interest"] == "0.00"
    assert len(data["schedule"]) == 12
    assert csv_path.read_text().splitlines()[0].startswith("Month,Starting_Balance")


def test_pay_splits_payment(runner):
    result = runner.invoke(cli, ["pay", "-b", "1000000", "-r", "0.12", "-a", "111222"])

    assert result.exit_code == 0
    assert "10000.00" in result.output
    assert "101222.00" in result.output
    assert "898778.00" in result.output


def test_pay_reports_payoff(runner):
    result = runner.invoke(cli, ["pay", "-b", "1000", "-r", "12", "-a", "5000", "-d", "2025-03-01"])

    assert "Loan paid off on 2025-03-01" in result.output


def test_compare_scenarios(runner):
    result = runner.invoke(
        cli,
        ["compare", "-b", "5m", "-r", "12", "-m", "111222", "--scenario", "Small:10k:6", "--scenario", "Bonus:100k:6"],
    )

    assert result.exit_code == 0, result.output
    assert "Baseline" in result.output
    assert "Best scenario: Bonus" in result.output


def test_compare_needs_a_scenario(runner):
    result = runner.invoke(cli, ["compare", "-b", "5m", "-r", "12", "-m", "111222"])

    assert result.exit_code == 2


def test_compare_exports_json(runner, tmp_path):
    path = tmp_path / "compare.json"

    result = runner.invoke(cli, ["compare", "-b", "5m", "-r", "12", "-m", "111222", "--presets", "--output", str(path)])

    assert result.exit_code == 0
    data = json.loads(path.read_text())
    assert data["best"] == "200K every 6 months"
    assert len(data["results"]) == 3


def test_insights_from_portfolio(runner, tmp_path):
    portfolio = tmp_path / "portfolio.json"
    portfolio.write_text(
        json.dumps(
            {
                "loans": [
                    {
                        "id": "car",
                        "description": "Car",
                        "current_balance": "900000",
                        "original_amount": "1000000",
                        "annual_interest_rate": "0.12",
                        "monthly_payment": "60000",
                    }
                ],
                "payments": [
                    {"amount": "20000", "payment_date": "2025-06-10", "payment_type": "extra", "source": "bonus"}
                ],
                "profile": {"monthly_income": "100000"},
            }
        )
    )

    text = runner.invoke(cli, ["insights", str(portfolio), "--today", "2025-06-15"])
    as_json = runner.invoke(cli, ["insights", str(portfolio), "--today", "2025-06-15", "--json"])

    assert text.exit_code == 0, text.output
    assert text.output.splitlines()[0] == "[HIGH] High Debt-to-Income Ratio"
    ids = [i["id"] for i in json.loads(as_json.output)]
    assert ids == ["dti-critical", "emergency-fund", "budget-extra", "extra-payment-impact"]


def test_insights_rejects_bad_payment_source(runner, tmp_path):
    portfolio = tmp_path / "portfolio.json"
    portfolio.write_text(json.dumps({"loans": [], "payments": [{"amount": 1, "payment_date": "2025-01-01", "source": "lottery"}]}))

    result = runner.invoke(cli, ["insights", str(portfolio)])

    assert result.exit_code == 2
    assert "lottery" in result.output


def test_benchmark(runner):
    args = ["benchmark"] + [x for s in (10, 20, 30, 40, 50) for x in ("--score", str(s))] + ["--caller", "35"]

    result = runner.invoke(cli, args)

    assert result.exit_code == 0
    assert "Median             : 30" in result.output
    assert "Your percentile    : 60" in result.output


def test_benchmark_insufficient(runner):
    result = runner.invoke(cli, ["benchmark", "--score", "10"])

    assert "Not enough participants" in result.output

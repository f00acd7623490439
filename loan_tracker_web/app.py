import logging
import os
from uuid import uuid4

from flask import Flask, jsonify, request, session

from loan_tracker.benchmarking import (
    compute_percentiles,
    extra_payment_stats,
    lender_averages,
    participant_scores,
    payment_source_breakdown,
)
from loan_tracker.data_models import FinancialProfile, ScenarioDefinition
from loan_tracker.engine import amortization_schedule, annuity_payment, projected_payoff_date, simulate
from loan_tracker.formatter import comparison_to_dict, money, schedule_to_rows, to_json_dict
from loan_tracker.insights import evaluate
from loan_tracker.main import (
    loan_changes_from_dict,
    loan_from_dict,
    loan_state_from_dict,
    parse_amount,
    parse_extra,
    parse_rate,
    payment_from_dict,
    profile_from_dict,
)
from loan_tracker.progress import loan_progress, user_progress
from loan_tracker.scenarios import PRESET_SCENARIOS, compare
from loan_tracker.utils import parse_date
from loan_tracker_web.loan_store import create_store_from_env

log = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
loan_store = create_store_from_env(os.environ.get("LOAN_TRACKER_DATABASE_URL"))


def _ensure_user_token() -> str:
    token = session.get("user_token")
    if not token:
        token = uuid4().hex
        session["user_token"] = token
        session.modified = True
    return token


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _scenario_from_dict(data: dict) -> ScenarioDefinition:
    name = str(data.get("name", "")).strip() or "Scenario"
    try:
        frequency = int(data.get("frequency") or 0)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Scenario frequency must be a whole number of months; got {data.get('frequency')}") from exc
    if frequency < 0:
        raise ValueError("Scenario frequency must not be negative")
    return ScenarioDefinition(
        name=name, extra_amount=parse_amount(data.get("extra_amount", 0)), frequency=frequency
    )


def _loan_view(loan) -> dict:
    view = to_json_dict(loan)
    view["progress"] = money(loan_progress(loan))
    if loan.is_active:
        projection = simulate(loan.current_balance, loan.annual_interest_rate, loan.monthly_payment)
        view["months_remaining"] = None if projection.non_amortizing else projection.months
        view["non_amortizing"] = projection.non_amortizing
    return view


@app.errorhandler(ValueError)
def _bad_request(exc):
    return jsonify({"error": str(exc)}), 400


@app.errorhandler(LookupError)
def _not_found(exc):
    return jsonify({"error": str(exc)}), 404


@app.post("/api/simulate")
def simulate_loan():
    data = _json_body()
    state = loan_state_from_dict(data)
    extra = None
    if data.get("extra"):
        extra = parse_extra(f"{data['extra'].get('amount', 0)}:{data['extra'].get('frequency', 0)}")
    result = simulate(state.current_balance, state.annual_interest_rate, state.monthly_payment, extra)
    payload = {"summary": to_json_dict(result)}
    if data.get("start_date"):
        payoff = projected_payoff_date(result, parse_date(data["start_date"]))
        payload["payoff_date"] = payoff.isoformat() if payoff else None
    if data.get("schedule"):
        payload["schedule"] = schedule_to_rows(
            amortization_schedule(state.current_balance, state.annual_interest_rate, state.monthly_payment, extra)
        )
    return jsonify(payload)


@app.post("/api/scenarios")
def compare_scenarios():
    data = _json_body()
    if data.get("loan_id"):
        state = loan_store.get_loan(_ensure_user_token(), data["loan_id"]).state()
    else:
        state = loan_state_from_dict(data.get("loan") or {})
    scenarios = [_scenario_from_dict(s) for s in data.get("scenarios", [])]
    if data.get("presets"):
        scenarios.extend(PRESET_SCENARIOS)
    return jsonify(comparison_to_dict(compare(state, scenarios)))


@app.get("/api/loans")
def list_loans():
    loans = loan_store.list_loans(_ensure_user_token())
    return jsonify([_loan_view(loan) for loan in loans])


@app.post("/api/loans")
def create_loan():
    data = _json_body()
    if not data.get("monthly_payment") and data.get("term_months"):
        # Suggest the installment that clears the loan within its term.
        principal = parse_amount(data.get("original_amount", data.get("current_balance", 0)))
        rate = parse_rate(data.get("annual_interest_rate", 0))
        data = {**data, "monthly_payment": str(annuity_payment(principal, rate, int(data["term_months"])))}
    loan = loan_from_dict(data)
    if loan.monthly_payment <= 0:
        raise ValueError("Monthly payment must be positive")
    saved = loan_store.add_loan(_ensure_user_token(), loan)
    return jsonify(_loan_view(saved)), 201


@app.get("/api/loans/<loan_id>")
def get_loan(loan_id):
    token = _ensure_user_token()
    view = _loan_view(loan_store.get_loan(token, loan_id))
    view["recent_payments"] = [to_json_dict(p) for p in loan_store.list_payments(token, loan_id)[:10]]
    return jsonify(view)


@app.put("/api/loans/<loan_id>")
def update_loan(loan_id):
    changes = loan_changes_from_dict(_json_body())
    loan = loan_store.update_loan(_ensure_user_token(), loan_id, changes)
    return jsonify(_loan_view(loan))


@app.delete("/api/loans/<loan_id>")
def delete_loan(loan_id):
    loan_store.delete_loan(_ensure_user_token(), loan_id)
    return jsonify({"deleted": loan_id})


@app.get("/api/payments")
def list_payments():
    payments = loan_store.list_payments(_ensure_user_token(), request.args.get("loan_id"))
    return jsonify([to_json_dict(p) for p in payments])


@app.post("/api/payments")
def record_payment():
    payment = payment_from_dict(_json_body())
    if not payment.loan_id:
        raise ValueError("Missing payment field: loan_id")
    split = loan_store.record_payment(_ensure_user_token(), payment)
    return jsonify(to_json_dict(split)), 201


@app.get("/api/profile")
def get_profile():
    return jsonify(to_json_dict(loan_store.get_profile(_ensure_user_token())))


@app.put("/api/profile")
def save_profile():
    raw = profile_from_dict(_json_body())
    profile = FinancialProfile(
        monthly_income=parse_amount(raw.monthly_income) if raw.monthly_income is not None else None,
        emergency_fund=parse_amount(raw.emergency_fund) if raw.emergency_fund is not None else None,
        expected_gratuity=parse_amount(raw.expected_gratuity) if raw.expected_gratuity is not None else None,
        next_gratuity_date=parse_date(raw.next_gratuity_date) if raw.next_gratuity_date else None,
    )
    loan_store.save_profile(_ensure_user_token(), profile)
    return jsonify(to_json_dict(profile))


@app.get("/api/insights")
def insights():
    token = _ensure_user_token()
    results = evaluate(
        loan_store.list_loans(token),
        loan_store.list_payments(token),
        loan_store.get_profile(token),
    )
    return jsonify({"insights": [to_json_dict(i) for i in results]})


@app.get("/api/benchmarking")
def benchmarking():
    token = _ensure_user_token()
    if not loan_store.is_opted_in(token):
        return jsonify({"opted_in": False, "message": "Opt in to see anonymized benchmarking data"})

    owners = loan_store.opted_in_owners()
    data = loan_store.benchmark_data(owners)
    scores = participant_scores(data["loans"])
    own_loans = [loan for loan in data["loans"] if loan.owner_id == token]
    caller = user_progress(own_loans) if any(l.is_active for l in own_loans) else None
    summary = compute_percentiles(scores.values(), caller)
    if summary.insufficient:
        return jsonify(
            {
                "opted_in": True,
                "insufficient": True,
                "message": "Not enough participants yet for meaningful benchmarks",
                "participant_count": summary.participant_count,
            }
        )
    return jsonify(
        {
            "opted_in": True,
            "insufficient": False,
            "participant_count": summary.participant_count,
            "percentiles": to_json_dict(summary),
            "lenders": [to_json_dict(row) for row in lender_averages(data["loans"])],
            "extra_payments": extra_payment_stats(data["payments"]),
            "payment_sources": payment_source_breakdown(data["payments"]),
        }
    )


@app.post("/api/benchmarking")
def benchmarking_opt_in():
    opted_in = bool(_json_body().get("opt_in"))
    loan_store.set_opt_in(_ensure_user_token(), opted_in)
    log.info("Benchmark opt-in set to %s", opted_in)
    return jsonify({"opted_in": opted_in})


if __name__ == "__main__":
    print("Starting Loan Tracker web app...")
    app.run(host="0.0.0.0", port=8710, debug=True)

LOAN = {
    "description": "Corolla",
    "lender": "Bank A",
    "current_balance": "1000000",
    "original_amount": "1200000",
    "annual_interest_rate": "0.12",
    "monthly_payment": "111222",
    "term_months": 12,
}


def add_loan(client, **overrides):
    response = client.post("/api/loans", json={**LOAN, **overrides})
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def pay(client, loan_id, amount, on="2025-01-05", **extra):
    body = {"loan_id": loan_id, "amount": amount, "payment_date": on, "payment_type": "regular", "source": "salary"}
    body.update(extra)
    return client.post("/api/payments", json=body)


def test_simulate(client):
    response = client.post(
        "/api/simulate",
        json={"balance": "5000000", "annual_rate": "0.12", "monthly_payment": "111222", "start_date": "2025-01-01"},
    )

    summary = response.get_json()["summary"]
    assert response.status_code == 200
    assert summary["paid_off"] is True
    assert summary["non_amortizing"] is False
    assert response.get_json()["payoff_date"].startswith("20")


def test_simulate_non_amortizing_with_schedule(client):
    response = client.post(
        "/api/simulate",
        json={"balance": "1000000", "annual_rate": "12", "monthly_payment": "10000", "schedule": True},
    )

    data = response.get_json()
    assert data["summary"]["non_amortizing"] is True
    assert data["summary"]["months"] == 360
    assert len(data["schedule"]) == 360


def test_simulate_validation(client):
    assert client.post("/api/simulate", json={"balance": "1000"}).status_code == 400
    assert client.post("/api/simulate", data="nope").status_code == 400


def test_create_and_list_loans(client):
    loan = add_loan(client)

    loans = client.get("/api/loans").get_json()
    assert [l["id"] for l in loans] == [loan["id"]]
    assert loans[0]["progress"] == "16.67"
    assert loans[0]["annual_interest_rate"] == "0.12"
    assert loans[0]["months_remaining"] > 0


def test_loan_payment_suggested_from_term(client):
    loan = add_loan(client, current_balance="12000", original_amount="12000", monthly_payment=None)

    assert loan["monthly_payment"] == "1066.19"


def test_record_payments(client):
    loan = add_loan(client)

    first = pay(client, loan["id"], 111222)
    second = pay(client, loan["id"], 111222, on="2025-02-05", payment_type="extra", source="gratuity")

    assert first.status_code == 201
    assert first.get_json() == {
        "interest_portion": "10000.00",
        "principal_portion": "101222.00",
        "new_balance": "898778.00",
        "paid_off": False,
        "paid_off_date": None,
    }
    assert second.get_json()["interest_portion"] == "8987.78"
    assert client.get("/api/loans").get_json()[0]["current_balance"] == second.get_json()["new_balance"]
    history = client.get("/api/payments", query_string={"loan_id": loan["id"]}).get_json()
    assert [p["payment_type"] for p in history] == ["extra", "regular"]


def test_payoff_marks_loan_inactive(client):
    loan = add_loan(client)

    split = pay(client, loan["id"], 2_000_000, on="2025-03-01").get_json()

    saved = client.get("/api/loans").get_json()[0]
    assert split["paid_off"] is True
    assert saved["is_active"] is False
    assert saved["paid_off_date"] == "2025-03-01"


def test_payment_errors(client, web_app):
    loan = add_loan(client)

    assert pay(client, "missing", 100).status_code == 404
    assert pay(client, loan["id"], 100, payment_type="bonus").status_code == 400
    assert pay(client, loan["id"], -5).status_code == 400
    assert pay(web_app.test_client(), loan["id"], 100).status_code == 404


def test_loan_detail_includes_recent_payments(client):
    loan = add_loan(client)
    pay(client, loan["id"], 111222)

    detail = client.get(f"/api/loans/{loan['id']}").get_json()

    assert detail["description"] == "Corolla"
    assert detail["progress"] == "25.10"
    assert [p["amount"] for p in detail["recent_payments"]] == ["111222.00"]
    assert client.get("/api/loans/missing").status_code == 404


def test_update_loan_terms(client, web_app):
    loan = add_loan(client)

    response = client.put(
        f"/api/loans/{loan['id']}",
        json={"annual_interest_rate": "9%", "monthly_payment": "90000", "description": "Corolla 2020"},
    )

    updated = response.get_json()
    assert response.status_code == 200
    assert updated["annual_interest_rate"] == "0.09"
    assert updated["monthly_payment"] == "90000.00"
    assert updated["description"] == "Corolla 2020"
    assert updated["current_balance"] == "1000000.00"
    assert client.get("/api/loans").get_json()[0]["description"] == "Corolla 2020"


def test_update_loan_validation(client, web_app):
    loan = add_loan(client)
    url = f"/api/loans/{loan['id']}"

    assert client.put(url, json={"current_balance": "0"}).status_code == 400
    assert client.put(url, json={"annual_interest_rate": "150"}).status_code == 400
    assert client.put(url, json={"is_active": "no"}).status_code == 400
    assert client.put(url, json={"owner_id": "mallory"}).status_code == 400
    assert web_app.test_client().put(url, json={"description": "Mine"}).status_code == 404


def test_deactivate_and_delete_loan(client, web_app):
    loan = add_loan(client)
    pay(client, loan["id"], 111222)
    url = f"/api/loans/{loan['id']}"

    closed = client.put(url, json={"is_active": False}).get_json()
    assert closed["is_active"] is False
    assert "months_remaining" not in closed

    assert web_app.test_client().delete(url).status_code == 404
    assert client.delete(url).get_json() == {"deleted": loan["id"]}
    assert client.get("/api/loans").get_json() == []
    assert client.get("/api/payments").get_json() == []
    assert client.delete(url).status_code == 404


def test_scenarios_for_saved_loan(client):
    loan = add_loan(client, current_balance="5000000", original_amount="5000000")

    response = client.post(
        "/api/scenarios",
        json={"loan_id": loan["id"], "scenarios": [{"name": "Bonus", "extra_amount": "100000", "frequency": 6}], "presets": True},
    )

    data = response.get_json()
    assert response.status_code == 200
    assert [r["name"] for r in data["results"]][0] == "Bonus"
    assert data["best"] == "200K every 6 months"
    assert data["results"][0]["months_saved"] > 0


def test_scenarios_for_adhoc_loan(client):
    response = client.post(
        "/api/scenarios",
        json={
            "loan": {"balance": "5000000", "annual_rate": "0.12", "monthly_payment": "111222"},
            "scenarios": [{"name": "Bad", "extra_amount": "1", "frequency": "often"}],
        },
    )

    assert response.status_code == 400


def test_profile_and_insights(client):
    add_loan(client, monthly_payment="60000", current_balance="900000", original_amount="1000000")

    saved = client.put("/api/profile", json={"monthly_income": "100000", "next_gratuity_date": "2099-01-01"})
    insights = client.get("/api/insights").get_json()["insights"]

    assert saved.get_json()["monthly_income"] == "100000.00"
    assert client.get("/api/profile").get_json()["next_gratuity_date"] == "2099-01-01"
    assert insights[0]["id"] == "dti-critical"
    assert "emergency-fund" in {i["id"] for i in insights}
    assert "payment-gap" not in {i["id"] for i in insights}


def test_benchmarking(client, web_app):
    other = web_app.test_client()
    add_loan(client)
    add_loan(other, current_balance="500000", original_amount="1000000")

    assert client.get("/api/benchmarking").get_json()["opted_in"] is False

    client.post("/api/benchmarking", json={"opt_in": True})
    lonely = client.get("/api/benchmarking").get_json()
    assert lonely["insufficient"] is True
    assert lonely["participant_count"] == 1

    other.post("/api/benchmarking", json={"opt_in": True})
    data = client.get("/api/benchmarking").get_json()
    assert data["insufficient"] is False
    assert data["participant_count"] == 2
    assert data["percentiles"]["p50"] == 17
    assert data["percentiles"]["caller_percentile"] == 0
    assert data["lenders"][0]["lender"] == "Bank A"
    assert data["lenders"][0]["avg_rate"] == "0.12"

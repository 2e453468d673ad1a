def seed_january(client, headers):
    client.post(
        "/api/incomes",
        json={"title": "Pay", "amount": 1000, "category": "Salary", "date": "2024-01-15T00:00:00Z"},
        headers=headers,
    )
    client.post(
        "/api/expenses",
        json={"amount": 300, "category": "Food", "date": "2024-01-20T00:00:00Z"},
        headers=headers,
    )


def test_dashboard_for_january(client, user):
    _, headers = user
    seed_january(client, headers)

    response = client.get("/api/dashboard", params={"as_of": "2024-01-31"}, headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["summary"]["balance"] == 700
    assert data["summary"]["current_period_income"] == 1000
    assert data["summary"]["current_period_expense"] == 300
    salary = data["charts"]["income_by_category"][0]
    assert salary["category"] == "Salary"
    assert salary["total"] == 1000
    assert salary["percentage"] == 100.0
    assert data["charts"]["monthly_trend"][-1]["month"] == "Jan 2024"
    assert data["recent_transactions"]["incomes"][0]["date"] == "2024-01-15"
    assert data["is_empty"] is False


def test_dashboard_empty_account(client, user):
    _, headers = user
    body = client.get("/api/dashboard", headers=headers).json()
    assert body["data"]["is_empty"] is True
    assert "message" in body


def test_overview(client, user):
    _, headers = user
    seed_january(client, headers)
    data = client.get("/api/dashboard/overview", params={"as_of": "2024-01-10"}, headers=headers).json()["data"]
    assert data["net"] == 700
    assert data["income"]["count"] == 1
    assert data["period"] == {"start_date": "2024-01-01", "end_date": "2024-01-31"}


def test_ai_insights_use_rules_without_llm(client, user):
    _, headers = user
    seed_january(client, headers)
    data = client.post("/api/ai/insights", headers=headers).json()["data"]
    assert data["source"] == "rules"
    assert data["llm"]["status"] == "fallback"
    assert data["income_tips"][0]["type"] == "DIVERSIFICATION"
    assert {tip["priority"] for tip in data["saving_tips"]} <= {"HIGH", "MEDIUM", "LOW"}


def test_ai_tips_for_one_group(client, user):
    _, headers = user
    seed_january(client, headers)
    data = client.post("/api/ai/tips", json={"category": "income"}, headers=headers).json()["data"]
    assert data["category"] == "income"
    assert [tip["type"] for tip in data["tips"]] == ["DIVERSIFICATION", "GROWTH"]


def test_ai_tips_defaults_for_new_account(client, user):
    _, headers = user
    data = client.post("/api/ai/tips", headers=headers).json()["data"]
    assert [tip["type"] for tip in data["tips"]] == ["DIVERSIFICATION", "TRACKING", "EMERGENCY_FUND"]


def test_ai_analysis_and_investments(client, user):
    _, headers = user
    seed_january(client, headers)
    analysis = client.post("/api/ai/analysis", headers=headers).json()["data"]
    assert analysis["predictions"]["next_month_prediction"] == 300
    assert analysis["risk_assessment"] == "VERY_LOW"

    investments = client.post("/api/ai/investment-suggestions", headers=headers).json()["data"]
    assert investments["current_savings"] == 700
    assert investments["suggestions"] == []


def test_ai_categorize(client, user):
    _, headers = user
    response = client.post(
        "/api/ai/categorize", json={"title": "Netflix", "amount": 15}, headers=headers
    )
    assert response.json()["data"] == {"category": "Entertainment", "confidence": "high"}

from datetime import datetime, timezone
from decimal import Decimal

from app.utils.analyzer import FinanceAnalyzer, month_bounds, months_before

sample_expenses = [
    {"category": "Food", "amount": 250.0, "date": "2025-11-01T12:00:00Z", "description": "Groceries"},
    {"category": "Bills", "amount": 1000.0, "date": "2025-11-02T12:00:00Z", "description": "Rent"},
    {"category": "Food", "amount": 150.0, "date": "2025-11-03T12:00:00Z", "description": "Restaurant"},
    {"category": "Shopping", "amount": 1200.0, "date": "2025-10-04T12:00:00Z", "description": "Laptop"},
]

sample_incomes = [
    {"category": "Salary", "amount": 3000.0, "date": "2025-11-01T09:00:00Z", "title": "Pay"},
    {"category": "Freelance", "amount": 500.0, "date": "2025-10-15T09:00:00Z", "title": "Logo"},
]

NOW = datetime(2025, 11, 20, tzinfo=timezone.utc)


def test_calculate_totals():
    analyzer = FinanceAnalyzer()
    assert analyzer.total(sample_expenses) == Decimal("2600.0")


def test_category_breakdown_empty():
    assert FinanceAnalyzer().category_breakdown([]) == []


def test_category_breakdown_sorted_with_percentages():
    result = FinanceAnalyzer().category_breakdown(sample_expenses)
    assert [item.category for item in result] == ["Shopping", "Bills", "Food"]
    food = result[2]
    assert food.total == Decimal("400.0")
    assert food.count == 2
    assert food.average == Decimal("200.00")
    assert abs(sum(item.percentage for item in result) - 100) < 0.05


def test_basic_stats_empty_is_all_zero():
    stats = FinanceAnalyzer().basic_stats([])
    assert stats == {"total": 0, "count": 0, "average": 0, "max": 0, "min": 0}


def test_basic_stats():
    stats = FinanceAnalyzer().basic_stats(sample_expenses)
    assert stats["count"] == 4
    assert stats["max"] == Decimal("1200.0")
    assert stats["min"] == Decimal("150.0")
    assert stats["average"] == Decimal("650.00")


def test_window_total_is_inclusive():
    analyzer = FinanceAnalyzer()
    start = datetime(2025, 11, 1, 12, tzinfo=timezone.utc)
    end = datetime(2025, 11, 3, 12, tzinfo=timezone.utc)
    assert analyzer.window_total(sample_expenses, start, end) == Decimal("1400.0")


def test_month_bounds_crosses_year():
    start, end = month_bounds(datetime(2024, 1, 15, tzinfo=timezone.utc), 1)
    assert start == datetime(2023, 12, 1, tzinfo=timezone.utc)
    assert end.month == 12 and end.day == 31


def test_monthly_trend_oldest_first():
    trend = FinanceAnalyzer().monthly_trend(sample_incomes, sample_expenses, NOW, months_back=3)
    assert [m["month"] for m in trend] == ["Sep 2025", "Oct 2025", "Nov 2025"]
    assert trend[1]["income"] == Decimal("500.0")
    assert trend[1]["expense"] == Decimal("1200.0")
    assert trend[2]["savings"] == Decimal("1600.0")


def test_savings_rate():
    assert FinanceAnalyzer.savings_rate(Decimal("1000"), Decimal("950")) == 5.0
    assert FinanceAnalyzer.savings_rate(Decimal("0"), Decimal("50")) == 0.0


def test_january_dashboard():
    incomes = [{"category": "Salary", "amount": Decimal("1000"), "date": "2024-01-15T00:00:00Z"}]
    expenses = [{"category": "Food", "amount": Decimal("300"), "date": "2024-01-20T00:00:00Z"}]
    now = datetime(2024, 1, 31, 23, 59, tzinfo=timezone.utc)

    dashboard = FinanceAnalyzer().dashboard(incomes, expenses, now)

    assert dashboard["summary"]["balance"] == Decimal("700")
    assert dashboard["summary"]["current_period_income"] == Decimal("1000")
    salary = dashboard["charts"]["income_by_category"][0]
    assert salary["category"] == "Salary"
    assert salary["total"] == Decimal("1000")
    assert salary["percentage"] == 100.0
    assert dashboard["charts"]["monthly_trend"][-1]["month"] == "Jan 2024"
    assert dashboard["is_empty"] is False


def test_dashboard_empty():
    dashboard = FinanceAnalyzer().dashboard([], [], NOW)
    assert dashboard["is_empty"] is True
    assert dashboard["summary"]["balance"] == 0
    assert dashboard["recent_transactions"] == {"incomes": [], "expenses": []}


def test_recent_limited_and_newest_first():
    recent = FinanceAnalyzer().recent(sample_expenses, "expense", limit=2)
    assert [r["date"] for r in recent] == ["2025-11-03", "2025-11-02"]
    assert all(r["type"] == "expense" for r in recent)


def test_overview_period_is_current_month():
    overview = FinanceAnalyzer().overview(sample_incomes, sample_expenses, NOW)
    assert overview["period"] == {"start_date": "2025-11-01", "end_date": "2025-11-30"}
    assert overview["net"] == Decimal("900.0")


def test_savings_opportunities_large_expenses():
    opportunities = FinanceAnalyzer().savings_opportunities(sample_expenses)
    titles = [o["title"] for o in opportunities]
    assert titles == ["Large expense: Laptop", "Large expense: Rent"]


def test_recurring_labels_need_more_than_three():
    coffee = [{"category": "Food", "amount": 4, "description": "Coffee"} for _ in range(4)]
    analyzer = FinanceAnalyzer()
    assert list(analyzer.recurring_labels(coffee)) == ["coffee"]
    assert analyzer.recurring_labels(coffee[:3]) == {}


def test_predict_next_month():
    prediction = FinanceAnalyzer().predict_next_month(sample_expenses)
    assert prediction["next_month_prediction"] == Decimal("1300.00")
    assert prediction["confidence"] == "MEDIUM"
    assert FinanceAnalyzer().predict_next_month([])["confidence"] == "LOW"


def test_months_before_clamps_to_month_end():
    assert months_before(datetime(2024, 3, 31, tzinfo=timezone.utc), 1) == datetime(2024, 2, 29, tzinfo=timezone.utc)
    assert months_before(datetime(2024, 3, 31, tzinfo=timezone.utc), 3) == datetime(2023, 12, 31, tzinfo=timezone.utc)


def test_projection_averages_the_last_three_months():
    now = datetime(2024, 3, 31, tzinfo=timezone.utc)
    expenses = [
        {"category": "Food", "amount": 100, "date": "2023-12-02T12:00:00Z"},
        {"category": "Food", "amount": 100, "date": "2024-01-15T12:00:00Z"},
        {"category": "Food", "amount": 100, "date": "2024-02-15T12:00:00Z"},
        {"category": "Food", "amount": 100, "date": "2024-03-15T12:00:00Z"},
    ]
    analyzer = FinanceAnalyzer()
    metrics = analyzer.financial_metrics([], expenses, now)

    projection = analyzer.project_next_month(metrics, expenses, now)

    assert projection["projected_expenses"] == Decimal("100.00")
    assert projection["confidence"] == "MEDIUM"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from openai import OpenAIError

from app.utils.advisor import Advisor, Priority, build_prompt, suggest_category
from app.utils.analyzer import FinanceAnalyzer
from app.utils.llm import LLMClient, LLMStatus
from conftest import StubOpenAI

NOW = datetime(2024, 3, 20, tzinfo=timezone.utc)


def tx(category, amount, days_ago=30, **extra):
    record = {
        "category": category,
        "amount": Decimal(str(amount)),
        "date": (NOW - timedelta(days=days_ago)).isoformat(),
    }
    record.update(extra)
    return record


def make_advisor(**kwargs):
    return Advisor(FinanceAnalyzer(), **kwargs)


def tip_types(tips):
    return [tip.type for tip in tips]


def saving_tips(incomes, expenses, advisor=None):
    advisor = advisor or make_advisor()
    return advisor.tips(advisor.context(incomes, expenses, NOW), "saving")


def test_low_savings_rate_gets_high_priority_tip():
    tips = saving_tips([tx("Salary", 1000)], [tx("Food", 950)])
    increase = [t for t in tips if t.type == "INCREASE_SAVINGS"]
    assert len(increase) == 1
    assert increase[0].priority == Priority.HIGH
    assert "5.0%" in increase[0].message


def test_good_savings_rate_skips_increase_tip():
    tips = saving_tips([tx("Salary", 1000)], [tx("Food", 750)])
    types = tip_types(tips)
    assert "INCREASE_SAVINGS" not in types
    assert "INVESTMENT" in types


def test_middle_savings_rate_gets_growth_tip():
    types = tip_types(saving_tips([tx("Salary", 1000)], [tx("Food", 850)]))
    assert "SAVINGS_GROWTH" in types
    assert "INCREASE_SAVINGS" not in types
    assert "INVESTMENT" not in types


def test_emergency_fund_when_savings_below_three_months():
    # 250 saved does not cover three months at this month's 750
    types = tip_types(saving_tips([tx("Salary", 1000)], [tx("Food", 750, days_ago=1)]))
    assert "EMERGENCY_FUND" in types

    types = tip_types(saving_tips([tx("Salary", 10000)], [tx("Food", 100, days_ago=1)]))
    assert "EMERGENCY_FUND" not in types


def test_reduction_tip_per_concentrated_category():
    advisor = make_advisor()
    expenses = [tx("Food", 600), tx("Bills", 300), tx("Other", 100)]
    ctx = advisor.context([tx("Salary", 2000)], expenses, NOW)
    reductions = [t for t in advisor.tips(ctx, "expense") if t.type == "REDUCTION"]
    assert [t.title for t in reductions] == ["Reduce Food Spending"]
    assert reductions[0].to_dict()["current_spending"] == "$600.00"


def test_recurring_label_tip():
    advisor = make_advisor()
    coffee = [tx("Food", 5, description="Coffee") for _ in range(4)]
    ctx = advisor.context([tx("Salary", 2000)], coffee, NOW)
    assert "RECURRING" in tip_types(advisor.tips(ctx, "expense"))

    ctx = advisor.context([tx("Salary", 2000)], coffee[:3], NOW)
    assert "RECURRING" not in tip_types(advisor.tips(ctx, "expense"))


def test_impulse_tip_after_many_recent_expenses():
    advisor = make_advisor()
    recent = [tx("Shopping", 10, days_ago=1, description=f"item {i}") for i in range(11)]
    ctx = advisor.context([tx("Salary", 2000)], recent, NOW)
    assert "IMPULSE" in tip_types(advisor.tips(ctx, "expense"))

    ctx = advisor.context([tx("Salary", 2000)], recent[:10], NOW)
    assert "IMPULSE" not in tip_types(advisor.tips(ctx, "expense"))


def test_income_tips_in_table_order_and_truncated():
    incomes = [tx("Freelance", 5000)]
    advisor = make_advisor()
    ctx = advisor.context(incomes, [], NOW)
    assert tip_types(advisor.tips(ctx, "income")) == [
        "DIVERSIFICATION",
        "STABILITY",
        "GROWTH",
        "PASSIVE_INCOME",
    ]

    limited = make_advisor(max_tips=2)
    ctx = limited.context(incomes, [], NOW)
    assert tip_types(limited.tips(ctx, "income")) == ["DIVERSIFICATION", "STABILITY"]


def test_salary_income_is_stable():
    advisor = make_advisor()
    ctx = advisor.context([tx("Salary", 1000), tx("Bonus", 100)], [], NOW)
    types = tip_types(advisor.tips(ctx, "income"))
    assert "STABILITY" not in types
    assert "DIVERSIFICATION" not in types


def test_no_data_returns_default_tips():
    result = make_advisor().insights([], [], NOW)
    assert tip_types(result.income_tips) == ["DIVERSIFICATION"]
    assert tip_types(result.expense_tips) == ["TRACKING"]
    assert tip_types(result.saving_tips) == ["EMERGENCY_FUND"]
    assert result.risk_level == "LOW"
    assert result.source == "rules"


def test_group_tips_for_one_group():
    tips = make_advisor().group_tips([tx("Salary", 1000)], [tx("Food", 950)], NOW, "saving")
    assert "INCREASE_SAVINGS" in tip_types(tips)
    assert "GROWTH" not in tip_types(tips)


def test_insights_without_llm_configured_fall_back_to_rules():
    result = make_advisor().insights([tx("Salary", 1000)], [tx("Food", 950)], NOW)
    assert result.llm.status == LLMStatus.FALLBACK
    assert result.ai_summary is None
    assert result.saving_tips
    data = result.to_dict()
    assert data["source"] == "rules"
    assert data["risk_level"] == "MEDIUM"


def test_insights_with_llm_narrative():
    stub = StubOpenAI(reply="Cut dining by 20%.")
    advisor = make_advisor(llm=LLMClient(stub))
    result = advisor.insights([tx("Salary", 1000)], [tx("Food", 950)], NOW)
    assert result.ai_summary == "Cut dining by 20%."
    assert result.source == "llm"
    assert result.saving_tips
    prompt = stub.completions.calls[0]["messages"][1]["content"]
    assert "Savings Rate: 5.0%" in prompt


def test_insights_llm_failure_keeps_rules():
    advisor = make_advisor(llm=LLMClient(StubOpenAI(error=OpenAIError("timeout"))))
    result = advisor.insights([tx("Salary", 1000)], [tx("Food", 950)], NOW)
    assert result.llm.status == LLMStatus.FAILED
    assert result.ai_summary is None
    assert "INCREASE_SAVINGS" in tip_types(result.saving_tips)


def test_financial_analysis_negative_balance():
    advisor = make_advisor()
    metrics = advisor.analyzer.financial_metrics([tx("Salary", 1000)], [tx("Food", 1200)], NOW)
    analysis = advisor.financial_analysis(metrics)
    assert analysis[0]["status"] == "NEGATIVE"
    assert analysis[1]["status"] == "CRITICAL"


def test_investment_suggestions_scale_with_savings():
    advisor = make_advisor()
    rich = advisor.analyzer.financial_metrics([tx("Salary", 10000)], [tx("Food", 1000)], NOW)
    types = [s["type"] for s in advisor.investment_suggestions(rich)]
    assert types == ["STOCK_MARKET", "HIGH_YIELD_SAVINGS", "REAL_ESTATE"]

    poor = advisor.analyzer.financial_metrics([tx("Salary", 1000)], [tx("Food", 900)], NOW)
    assert advisor.investment_suggestions(poor) == []


def test_quick_wins():
    expenses = [
        tx("Entertainment", 15, description="Netflix"),
        tx("Food", 100, description="Restaurant dinner"),
    ]
    wins = make_advisor().quick_wins(expenses)
    assert [w["type"] for w in wins] == ["SUBSCRIPTION_REVIEW", "DINING_REDUCTION"]
    assert wins[0]["potential_savings"] == Decimal("4.50")


def test_suggest_category():
    assert suggest_category("Uber ride home", Decimal("20")) == {"category": "Transport", "confidence": "high"}
    assert suggest_category("misc", Decimal("30"))["category"] == "Food"
    assert suggest_category("misc", Decimal("100"))["category"] == "Shopping"
    assert suggest_category("misc", Decimal("500")) == {"category": "Other", "confidence": "low"}


def test_build_prompt_lists_categories():
    metrics = FinanceAnalyzer().financial_metrics([tx("Salary", 1000)], [tx("Food", 300)], NOW)
    prompt = build_prompt(metrics)
    assert "- Food: $300.00 (100.0%)" in prompt
    assert "Net Savings: $700.00" in prompt

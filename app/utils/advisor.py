"""
Rule-based financial advice.

Each rule is evaluated on its own against the computed metrics; every rule
that fires contributes one tip (or one per matching category) and the list
for each group is truncated to `max_tips` in table order. An optional
language model narrative is layered on top but never replaces the rules.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from app.utils.analyzer import FinanceAnalyzer, FinancialMetrics, date_of, field_of, label_of, money
from app.utils.llm import LLMClient, LLMOutcome

logger = logging.getLogger(__name__)

GROUPS = ("income", "expense", "saving")


class Priority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass
class AdviceContext:
    metrics: FinancialMetrics
    incomes: Sequence[Any]
    expenses: Sequence[Any]
    now: datetime
    analyzer: FinanceAnalyzer

    @property
    def monthly_expenses(self) -> Decimal:
        if self.metrics.current_month_expense:
            return self.metrics.current_month_expense
        return self.metrics.total_expenses / 12


@dataclass
class Tip:
    type: str
    title: str
    message: str
    priority: Priority
    action: str
    potential_impact: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["priority"] = self.priority.value
        extra = data.pop("extra")
        data.update(extra)
        return data


Trigger = Callable[[AdviceContext], Iterable[Dict[str, Any]]]


@dataclass(frozen=True)
class Rule:
    name: str
    group: str
    priority: Priority
    title: str
    message: str
    action: str
    trigger: Trigger
    impact: str = "Medium"

    def apply(self, ctx: AdviceContext) -> List[Tip]:
        tips = []
        for params in ctx_params(ctx, self.trigger):
            extra = params.pop("extra", {})
            tips.append(Tip(
                type=self.name,
                title=self.title.format(**params),
                message=self.message.format(**params),
                priority=self.priority,
                action=self.action.format(**params),
                potential_impact=self.impact,
                extra=extra,
            ))
        return tips


def ctx_params(ctx: AdviceContext, trigger: Trigger) -> Iterable[Dict[str, Any]]:
    base = {
        "savings_rate": ctx.metrics.savings_rate,
        "net_savings": ctx.metrics.net_savings,
        "total_income": ctx.metrics.total_income,
        "total_expenses": ctx.metrics.total_expenses,
    }
    for params in trigger(ctx):
        yield {**base, **params}


def when(predicate: Callable[[AdviceContext], bool]) -> Trigger:
    """Trigger that fires once when the predicate holds."""
    def trigger(ctx: AdviceContext) -> List[Dict[str, Any]]:
        return [{}] if predicate(ctx) else []
    return trigger


def _concentrated_categories(ctx: AdviceContext) -> List[Dict[str, Any]]:
    return [
        {
            "category": item.category,
            "category_lower": item.category.lower(),
            "percentage": item.percentage,
            "extra": {"current_spending": f"${money(item.total):,}"},
        }
        for item in ctx.metrics.expense_by_category
        if item.percentage > 30
    ]


def _subscriptions(ctx: AdviceContext) -> List[Dict[str, Any]]:
    matches = [
        tx for tx in ctx.expenses
        if field_of(tx, "category") in ("Entertainment", "Bills", "Other")
        and "subscription" in label_of(tx).lower()
    ]
    if len(matches) <= 3:
        return []
    return [{"count": len(matches), "total": money(ctx.analyzer.total(matches))}]


def _recurring(ctx: AdviceContext) -> List[Dict[str, Any]]:
    return [
        {"label": label, "count": len(items), "total": money(ctx.analyzer.total(items))}
        for label, items in ctx.analyzer.recurring_labels(ctx.expenses).items()
    ]


def _impulse(ctx: AdviceContext) -> List[Dict[str, Any]]:
    since = ctx.now - timedelta(days=7)
    recent = [tx for tx in ctx.expenses if (date_of(tx) or since) > since]
    return [{"count": len(recent)}] if len(recent) > 10 else []


def _emergency_fund(ctx: AdviceContext) -> List[Dict[str, Any]]:
    monthly = ctx.monthly_expenses
    if ctx.metrics.net_savings >= monthly * 3:
        return []
    coverage = ctx.metrics.net_savings / (monthly or 1)
    return [{"extra": {"current": f"{coverage:.1f} months coverage"}}]


RULES: List[Rule] = [
    # income
    Rule(
        name="DIVERSIFICATION",
        group="income",
        priority=Priority.HIGH,
        title="Diversify Income Sources",
        message="Consider adding multiple income streams for financial stability",
        action="Explore freelance work, investments, or side businesses",
        trigger=when(lambda c: len(c.metrics.income_by_category) <= 1),
        impact="High",
    ),
    Rule(
        name="STABILITY",
        group="income",
        priority=Priority.MEDIUM,
        title="Create Income Stability",
        message="Irregular income can make budgeting challenging",
        action="Set aside funds during high-income months for low-income periods",
        trigger=when(
            lambda c: "Salary" not in c.metrics.category_share("income") and c.metrics.total_income > 0
        ),
    ),
    Rule(
        name="GROWTH",
        group="income",
        priority=Priority.LOW,
        title="Increase Earnings Potential",
        message="Look for opportunities to increase your primary income source",
        action="Consider skill development or asking for a raise",
        trigger=when(lambda c: c.metrics.total_income > 0),
        impact="High",
    ),
    Rule(
        name="PASSIVE_INCOME",
        group="income",
        priority=Priority.MEDIUM,
        title="Build Passive Income",
        message="You have savings that could generate passive income",
        action="Research dividend stocks, peer-to-peer lending, or rental income",
        trigger=when(lambda c: c.metrics.net_savings > 1000),
    ),
    # expense
    Rule(
        name="REDUCTION",
        group="expense",
        priority=Priority.HIGH,
        title="Reduce {category} Spending",
        message="You're spending {percentage:.1f}% of your expenses on {category}",
        action="Review {category_lower} expenses and identify areas to cut back",
        trigger=_concentrated_categories,
        impact="High",
    ),
    Rule(
        name="SUBSCRIPTION",
        group="expense",
        priority=Priority.MEDIUM,
        title="Review Subscriptions",
        message="You have {count} subscriptions costing ${total:,}",
        action="Cancel unused subscriptions and bundle services",
        trigger=_subscriptions,
    ),
    Rule(
        name="RECURRING",
        group="expense",
        priority=Priority.MEDIUM,
        title="Frequent Expense: {label}",
        message="'{label}' appears {count} times for a total of ${total:,}",
        action="Check whether this recurring expense can be reduced or replaced",
        trigger=_recurring,
    ),
    Rule(
        name="IMPULSE",
        group="expense",
        priority=Priority.MEDIUM,
        title="Monitor Impulse Spending",
        message="{count} transactions in the last 7 days may indicate impulse spending",
        action="Implement a 24-hour waiting period for non-essential purchases",
        trigger=_impulse,
    ),
    # saving
    Rule(
        name="INCREASE_SAVINGS",
        group="saving",
        priority=Priority.HIGH,
        title="Increase Your Savings",
        message="Your savings rate is {savings_rate:.1f}%. Aim for at least 20%",
        action="Automate savings transfers and reduce discretionary spending",
        trigger=when(lambda c: c.metrics.savings_rate < 10),
        impact="High",
    ),
    Rule(
        name="SAVINGS_GROWTH",
        group="saving",
        priority=Priority.MEDIUM,
        title="Grow Your Savings Rate",
        message="Good start! Try to increase your savings rate gradually",
        action="Save 50% of any income increases or windfalls",
        trigger=when(lambda c: 10 <= c.metrics.savings_rate < 20),
    ),
    Rule(
        name="INVESTMENT",
        group="saving",
        priority=Priority.LOW,
        title="Optimize Savings",
        message="Excellent savings rate! Consider investment options",
        action="Explore high-yield savings accounts or low-risk investments",
        trigger=when(lambda c: c.metrics.savings_rate >= 20),
        impact="High",
    ),
    Rule(
        name="EMERGENCY_FUND",
        group="saving",
        priority=Priority.HIGH,
        title="Strengthen Emergency Fund",
        message="Aim for 3-6 months of expenses in your emergency fund",
        action="Set aside funds until you reach this safety net",
        trigger=_emergency_fund,
        impact="High",
    ),
]

DEFAULT_TIPS: Dict[str, List[Tip]] = {
    "income": [
        Tip(
            type="DIVERSIFICATION",
            title="Start Multiple Income Streams",
            message="Consider having at least 2-3 different income sources",
            priority=Priority.HIGH,
            action="Explore freelance opportunities or part-time work",
            potential_impact="High",
        )
    ],
    "expense": [
        Tip(
            type="TRACKING",
            title="Track Every Expense",
            message="Start by recording all your expenses for better visibility",
            priority=Priority.HIGH,
            action="Use this app to log daily expenses",
            potential_impact="High",
        )
    ],
    "saving": [
        Tip(
            type="EMERGENCY_FUND",
            title="Build Basic Emergency Fund",
            message="Aim to save 3 months of essential expenses",
            priority=Priority.HIGH,
            action="Set aside a fixed amount from each income",
            potential_impact="High",
        )
    ],
}

CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "Food": ["food", "grocery", "restaurant", "dining", "meal", "cafe", "supermarket"],
    "Transport": ["transport", "fuel", "gas", "uber", "lyft", "taxi", "bus", "train", "metro"],
    "Bills": ["bill", "utility", "electric", "water", "internet", "phone", "rent", "mortgage"],
    "Shopping": ["shopping", "buy", "purchase", "mall", "store", "amazon", "online"],
    "Entertainment": ["movie", "concert", "game", "netflix", "spotify", "entertainment"],
    "Healthcare": ["medical", "doctor", "hospital", "medicine", "pharmacy", "health"],
    "Education": ["education", "course", "book", "tuition", "school", "learning"],
}

SUBSCRIPTION_KEYWORDS = ["netflix", "spotify", "prime", "disney", "hulu", "subscription"]


def suggest_category(title: str = "", amount: Decimal = Decimal("0"), description: str = "") -> Dict[str, str]:
    """Keyword match on title and description; falls back to amount bands."""
    text = f"{title or ''} {description or ''}".lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return {"category": category, "confidence": "high"}

    if amount < 50:
        return {"category": "Food", "confidence": "low"}
    if amount < 200:
        return {"category": "Shopping", "confidence": "medium"}
    return {"category": "Other", "confidence": "low"}


def build_prompt(metrics: FinancialMetrics, question: Optional[str] = None) -> str:
    lines = [
        "User's Financial Summary:",
        f"- Total Income: ${money(metrics.total_income)}",
        f"- Total Expenses: ${money(metrics.total_expenses)}",
        f"- Net Savings: ${money(metrics.net_savings)}",
        f"- Savings Rate: {metrics.savings_rate:.1f}%",
        f"- This Month: income ${money(metrics.current_month_income)}, "
        f"expenses ${money(metrics.current_month_expense)}",
        "",
        "Spending by Category:",
    ]
    for item in metrics.expense_by_category:
        lines.append(f"- {item.category}: ${money(item.total)} ({item.percentage:.1f}%)")
    lines.append("")
    lines.append(
        f"User question: {question}" if question
        else "Give three personalised suggestions to improve this user's finances."
    )
    return "\n".join(lines)


@dataclass
class InsightResult:
    income_tips: List[Tip]
    expense_tips: List[Tip]
    saving_tips: List[Tip]
    analysis: List[Dict[str, str]]
    risk_level: str
    monthly_projection: Optional[Dict[str, Any]] = None
    quick_wins: List[Dict[str, Any]] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    ai_summary: Optional[str] = None
    llm: Optional[LLMOutcome] = None

    @property
    def source(self) -> str:
        return "llm" if self.llm is not None and self.llm.ok else "rules"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "income_tips": [t.to_dict() for t in self.income_tips],
            "expense_tips": [t.to_dict() for t in self.expense_tips],
            "saving_tips": [t.to_dict() for t in self.saving_tips],
            "analysis": self.analysis,
            "risk_level": self.risk_level,
            "monthly_projection": self.monthly_projection,
            "quick_wins": self.quick_wins,
            "recommendations": self.recommendations,
            "ai_summary": self.ai_summary,
            "source": self.source,
            "llm": self.llm.to_dict() if self.llm else None,
        }


class Advisor:
    def __init__(
        self,
        analyzer: FinanceAnalyzer,
        llm: Optional[LLMClient] = None,
        max_tips: int = 5,
        rules: Optional[List[Rule]] = None,
    ) -> None:
        self.analyzer = analyzer
        self.llm = llm or LLMClient(None)
        self.max_tips = max_tips
        self.rules = list(RULES if rules is None else rules)

    def context(self, incomes: Sequence[Any], expenses: Sequence[Any], now: datetime) -> AdviceContext:
        return AdviceContext(
            metrics=self.analyzer.financial_metrics(incomes, expenses, now),
            incomes=incomes,
            expenses=expenses,
            now=now,
            analyzer=self.analyzer,
        )

    def tips(self, ctx: AdviceContext, group: str) -> List[Tip]:
        collected: List[Tip] = []
        for rule in self.rules:
            if rule.group == group:
                collected.extend(rule.apply(ctx))
        return collected[: self.max_tips]

    def all_tips(self, ctx: AdviceContext, group: Optional[str] = None) -> List[Tip]:
        groups = [group] if group in GROUPS else list(GROUPS)
        tips: List[Tip] = []
        for name in groups:
            tips.extend(self.tips(ctx, name))
        return tips

    def group_tips(
        self,
        incomes: Sequence[Any],
        expenses: Sequence[Any],
        now: datetime,
        group: Optional[str] = None,
    ) -> List[Tip]:
        """Tips for one group, or every group when `group` is not a known name."""
        if not incomes and not expenses:
            groups = [group] if group in GROUPS else list(GROUPS)
            return [tip for name in groups for tip in DEFAULT_TIPS[name]]
        return self.all_tips(self.context(incomes, expenses, now), group)

    @staticmethod
    def financial_analysis(metrics: FinancialMetrics) -> List[Dict[str, str]]:
        analysis = []
        if metrics.net_savings > 0:
            analysis.append({
                "aspect": "Financial Health",
                "status": "POSITIVE",
                "message": f"You're saving ${money(metrics.net_savings):,} ({metrics.savings_rate:.1f}% of income)",
                "details": "Your income exceeds expenses, which is excellent for financial growth",
            })
        else:
            analysis.append({
                "aspect": "Financial Health",
                "status": "NEGATIVE",
                "message": f"You're spending ${money(abs(metrics.net_savings)):,} more than you earn",
                "details": "Focus on reducing expenses or increasing income to achieve balance",
            })

        ratio = metrics.expense_ratio
        if ratio > 90:
            analysis.append({
                "aspect": "Expense Management",
                "status": "CRITICAL",
                "message": f"Expenses are {ratio:.1f}% of your income",
                "details": "High expense ratio leaves little room for savings and investments",
            })
        elif ratio > 70:
            analysis.append({
                "aspect": "Expense Management",
                "status": "WARNING",
                "message": f"Expenses are {ratio:.1f}% of your income",
                "details": "Consider optimizing expenses to increase savings capacity",
            })

        if metrics.savings_rate >= 20:
            analysis.append({
                "aspect": "Savings Rate",
                "status": "EXCELLENT",
                "message": f"Savings rate of {metrics.savings_rate:.1f}% is excellent",
                "details": "You are building wealth effectively through disciplined saving",
            })
        elif metrics.savings_rate >= 10:
            analysis.append({
                "aspect": "Savings Rate",
                "status": "GOOD",
                "message": f"Savings rate of {metrics.savings_rate:.1f}% is good",
                "details": "Continue working towards a 20% savings rate for optimal wealth building",
            })
        return analysis

    def quick_wins(self, expenses: Sequence[Any]) -> List[Dict[str, Any]]:
        wins = []
        subscriptions = [
            tx for tx in expenses
            if any(k in (field_of(tx, "description") or "").lower() for k in SUBSCRIPTION_KEYWORDS)
        ]
        if subscriptions:
            wins.append({
                "type": "SUBSCRIPTION_REVIEW",
                "title": "Review Subscriptions",
                "potential_savings": money(self.analyzer.total(subscriptions) * Decimal("0.3")),
                "effort": "LOW",
                "impact": "MEDIUM",
                "action": "Cancel 1-2 unused subscriptions",
            })

        dining = [
            tx for tx in expenses
            if field_of(tx, "category") == "Food"
            and any(k in label_of(tx).lower() for k in ("restaurant", "dining"))
        ]
        if dining:
            wins.append({
                "type": "DINING_REDUCTION",
                "title": "Reduce Dining Out",
                "potential_savings": money(self.analyzer.total(dining) * Decimal("0.2")),
                "effort": "MEDIUM",
                "impact": "HIGH",
                "action": "Cook at home 2 more times per week",
            })
        return wins

    def investment_suggestions(self, metrics: FinancialMetrics) -> List[Dict[str, str]]:
        suggestions = []
        if metrics.net_savings > 5000 and metrics.savings_rate > 15:
            suggestions.append({
                "type": "STOCK_MARKET",
                "title": "Stock Market Investment",
                "description": "Consider low-cost index funds for long-term growth",
                "risk": "MEDIUM",
                "potential_return": "7-10% annually",
                "minimum": "$1000",
                "timeframe": "5+ years",
            })
        if metrics.net_savings > 1000:
            suggestions.append({
                "type": "HIGH_YIELD_SAVINGS",
                "title": "High-Yield Savings Account",
                "description": "Earn better interest than traditional savings accounts",
                "risk": "LOW",
                "potential_return": "4-5% annually",
                "minimum": "$0",
                "timeframe": "Flexible",
            })
        if metrics.net_savings > 3000:
            suggestions.append({
                "type": "REAL_ESTATE",
                "title": "Real Estate Investment Trusts (REITs)",
                "description": "Invest in real estate without buying property directly",
                "risk": "MEDIUM",
                "potential_return": "8-12% annually",
                "minimum": "$500",
                "timeframe": "3+ years",
            })
        return suggestions

    def insights(
        self,
        incomes: Sequence[Any],
        expenses: Sequence[Any],
        now: datetime,
        use_llm: bool = True,
    ) -> InsightResult:
        if not incomes and not expenses:
            return InsightResult(
                income_tips=list(DEFAULT_TIPS["income"]),
                expense_tips=list(DEFAULT_TIPS["expense"]),
                saving_tips=list(DEFAULT_TIPS["saving"]),
                analysis=[],
                risk_level="LOW",
                recommendations=[
                    "Start by adding your regular income sources",
                    "Track your daily expenses for better visibility",
                    "Set up basic budget categories",
                ],
            )

        ctx = self.context(incomes, expenses, now)
        result = InsightResult(
            income_tips=self.tips(ctx, "income"),
            expense_tips=self.tips(ctx, "expense"),
            saving_tips=self.tips(ctx, "saving"),
            analysis=self.financial_analysis(ctx.metrics),
            risk_level=self.analyzer.risk_level(ctx.metrics),
            monthly_projection=self.analyzer.project_next_month(ctx.metrics, expenses, now),
            quick_wins=self.quick_wins(expenses),
        )

        if use_llm:
            outcome = self.llm.complete(build_prompt(ctx.metrics))
            result.llm = outcome
            if outcome.ok:
                result.ai_summary = outcome.text
        return result

    def spending_analysis(self, incomes: Sequence[Any], expenses: Sequence[Any], now: datetime) -> Dict[str, Any]:
        ctx = self.context(incomes, expenses, now)
        weekly = self.analyzer.weekly_average(expenses)
        return {
            "spending_patterns": [
                {
                    "pattern": "WEEKLY_SPENDING",
                    "average": weekly,
                    "trend": "STABLE",
                    "insight": f"You spend about ${weekly} weekly on average",
                },
                {
                    "pattern": "CATEGORY_BREAKDOWN",
                    "categories": [c.to_dict() for c in ctx.metrics.expense_by_category],
                    "insight": "Your spending is distributed across different categories",
                },
            ],
            "predictions": self.analyzer.predict_next_month(expenses),
            "savings_opportunities": self.analyzer.savings_opportunities(expenses),
            "budget_suggestions": self.analyzer.budget_suggestions(ctx.metrics),
            "risk_assessment": self.analyzer.risk_level(ctx.metrics),
        }

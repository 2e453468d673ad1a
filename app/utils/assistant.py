"""
Conversational money management on top of the advisor.

A request carries either an explicit action (with its data) or a free-text
message. Messages are routed by keyword to the same handlers; anything that
matches nothing is answered by the language model, or by a fixed help text
when the model is unavailable.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from app.db.dynamo import Database
from app.utils.advisor import Advisor, Priority, build_prompt, suggest_category
from app.utils.analyzer import FinancialMetrics, date_of, field_of, money, month_bounds, percent

logger = logging.getLogger(__name__)

ACTIONS = [
    {"action": "add_income", "label": "Add Income", "description": "Record new income"},
    {"action": "add_expense", "label": "Add Expense", "description": "Record new expense"},
    {"action": "analyze_spending", "label": "Analyze Spending", "description": "Get spending analysis"},
    {"action": "savings_advice", "label": "Savings Advice", "description": "Get savings tips"},
    {"action": "budget_suggestions", "label": "Budget Tips", "description": "Get budgeting advice"},
]

HELP_MESSAGE = (
    "I can help you manage your finances. You can add income or expenses, "
    "analyze spending, or get savings advice."
)

FALLBACK_ANSWER = (
    "I can help you manage your finances! You can ask me to add income or expenses, "
    "analyze your spending, or get savings advice. Try: 'Add $50 expense for lunch' "
    "or 'How am I spending my money?'"
)

AMOUNT_PATTERN = re.compile(r"\$?(\d+(?:\.\d{1,2})?)")

# keyword -> (title, category)
INCOME_KEYWORDS = [
    ("salary", ("Salary", "Salary")),
    ("freelance", ("Freelance Work", "Freelance")),
    ("investment", ("Investment", "Investment")),
]

EXPENSE_KEYWORDS = [
    (("food", "restaurant", "grocer"), ("Food Expense", "Food")),
    (("transport", "fuel", "uber"), ("Transportation", "Transport")),
    (("bill", "utility", "electric"), ("Utility Bill", "Bills")),
    (("shopping", "buy", "purchase"), ("Shopping", "Shopping")),
]

QUERY_CATEGORIES = ["food", "transport", "bills", "shopping", "entertainment", "healthcare", "education"]


@dataclass
class Reply:
    message: str
    data: Dict[str, Any] = field(default_factory=dict)


def parse_amount(text: str) -> Optional[Decimal]:
    match = AMOUNT_PATTERN.search(text)
    if not match:
        return None
    amount = Decimal(match.group(1))
    return amount if amount > 0 else None


def income_from_text(message: str) -> Dict[str, Any]:
    lowered = message.lower()
    title, category = "Income", "Other"
    for keyword, (keyword_title, keyword_category) in INCOME_KEYWORDS:
        if keyword in lowered:
            title, category = keyword_title, keyword_category
            break
    return {
        "title": title,
        "amount": parse_amount(message),
        "category": category,
        "description": f"Added via assistant: {message}",
    }


def expense_from_text(message: str) -> Dict[str, Any]:
    lowered = message.lower()
    title, category = "Expense", "Other"
    for keywords, (keyword_title, keyword_category) in EXPENSE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            title, category = keyword_title, keyword_category
            break
    return {
        "title": title,
        "amount": parse_amount(message),
        "category": category,
        "description": f"Added via assistant: {message}",
    }


def intent_of(message: str) -> str:
    """Keyword routing for free text; questions are checked before expense verbs."""
    lowered = message.lower()
    if "add income" in lowered or "new income" in lowered:
        return "add_income"
    if any(phrase in lowered for phrase in ("how much", "show me", "tell me")):
        return "query"
    if any(phrase in lowered for phrase in ("add expense", "spent", "bought")):
        return "add_expense"
    if "savings" in lowered or "save money" in lowered:
        return "savings_advice"
    if "budget" in lowered or "spending limit" in lowered:
        return "budget_suggestions"
    return "ask"


def monthly_savings_rate(metrics: FinancialMetrics) -> float:
    return percent(metrics.current_month_savings, metrics.current_month_income)


def spending_rate(metrics: FinancialMetrics) -> float:
    """Current month expense as a share of income; 100 when there is spending but no income."""
    if metrics.current_month_income == 0:
        return 100.0 if metrics.current_month_expense > 0 else 0.0
    return percent(metrics.current_month_expense, metrics.current_month_income)


class Assistant:
    def __init__(self, advisor: Advisor) -> None:
        self.advisor = advisor
        self.analyzer = advisor.analyzer

    def manage(
        self,
        database: Database,
        user_id: str,
        now: datetime,
        action: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        message: Optional[str] = None,
    ) -> Reply:
        incomes = database.incomes.list(user_id)
        expenses = database.expenses.list(user_id)
        metrics = self.analyzer.financial_metrics(incomes, expenses, now)

        if action:
            return self.run_action(action, data or {}, database, user_id, incomes, expenses, now, metrics)
        if message and message.strip():
            return self.converse(message.strip(), database, user_id, incomes, expenses, now, metrics)
        return Reply(
            self.greeting(metrics),
            {
                "summary": self.summary(metrics),
                "suggestions": self.quick_suggestions(metrics),
                "actions": ACTIONS,
            },
        )

    def run_action(
        self,
        action: str,
        data: Dict[str, Any],
        database: Database,
        user_id: str,
        incomes: Sequence[Any],
        expenses: Sequence[Any],
        now: datetime,
        metrics: FinancialMetrics,
    ) -> Reply:
        if action == "add_income":
            return self.add_income(database, user_id, data, incomes, expenses, now)
        if action == "add_expense":
            return self.add_expense(database, user_id, data, incomes, expenses, now)
        if action == "analyze_spending":
            return self.spending_analysis(metrics)
        if action == "savings_advice":
            return self.savings_advice(metrics)
        if action == "budget_suggestions":
            return self.budget_suggestions(metrics)
        return Reply(HELP_MESSAGE, {"actions": ACTIONS})

    def converse(
        self,
        message: str,
        database: Database,
        user_id: str,
        incomes: Sequence[Any],
        expenses: Sequence[Any],
        now: datetime,
        metrics: FinancialMetrics,
    ) -> Reply:
        intent = intent_of(message)
        if intent == "add_income":
            fields = income_from_text(message)
            if fields["amount"] is None:
                return Reply(
                    "I'd be happy to add income for you! Please specify the amount, "
                    "for example: 'Add income of $500 for freelance work'",
                    {"requires": ["amount", "description"]},
                )
            return self.add_income(database, user_id, fields, incomes, expenses, now)
        if intent == "add_expense":
            fields = expense_from_text(message)
            if fields["amount"] is None:
                return Reply(
                    "I can help you record that expense! Please specify the amount, "
                    "for example: 'Spent $45 on groceries'",
                    {"requires": ["amount"]},
                )
            return self.add_expense(database, user_id, fields, incomes, expenses, now)
        if intent == "query":
            return self.answer_query(message, metrics, expenses, now)
        if intent == "savings_advice":
            return self.savings_advice(metrics)
        if intent == "budget_suggestions":
            return self.budget_suggestions(metrics)
        return self.ask(message, metrics)

    # Recording

    def add_income(
        self,
        database: Database,
        user_id: str,
        data: Dict[str, Any],
        incomes: Sequence[Any],
        expenses: Sequence[Any],
        now: datetime,
    ) -> Reply:
        fields = {
            "title": data.get("title"),
            "amount": data.get("amount"),
            "category": data.get("category") or "Other",
            "description": data.get("description"),
            "date": data.get("date"),
        }
        record = database.incomes.create(user_id, fields)
        metrics = self.analyzer.financial_metrics(list(incomes) + [record], expenses, now)

        if metrics.current_month_income < 1000:
            suggestion = "Consider exploring additional income sources to boost your earnings."
        else:
            suggestion = "Great income level! Consider setting aside 20% for savings."
        return Reply(
            f"Income added successfully! {record.title or 'Income'} - ${money(record.amount)}",
            {"income": record.model_dump(), "summary": self.summary(metrics), "suggestion": suggestion},
        )

    def add_expense(
        self,
        database: Database,
        user_id: str,
        data: Dict[str, Any],
        incomes: Sequence[Any],
        expenses: Sequence[Any],
        now: datetime,
    ) -> Reply:
        title = data.get("title") or ""
        category = data.get("category")
        if not category:
            amount = parse_amount(str(data.get("amount", ""))) or Decimal("0")
            category = suggest_category(title, amount, data.get("description") or "")["category"]
        fields = {
            "amount": data.get("amount"),
            "category": category,
            "description": data.get("description") or title,
            "date": data.get("date"),
        }
        record = database.expenses.create(user_id, fields)
        metrics = self.analyzer.financial_metrics(incomes, list(expenses) + [record], now)

        warning = None
        if record.amount > metrics.current_month_income * Decimal("0.3"):
            warning = "This is a significant expense. Ensure it fits your budget."
        if metrics.current_month_expense > metrics.current_month_income * Decimal("0.8"):
            suggestion = "Your expenses are high relative to income. Review discretionary spending."
        else:
            suggestion = "Your expenses are well-managed. Keep tracking!"
        return Reply(
            f"Expense recorded! {title or record.description or 'Expense'} - ${money(record.amount)} ({record.category})",
            {
                "expense": record.model_dump(),
                "summary": self.summary(metrics),
                "warning": warning,
                "suggestion": suggestion,
            },
        )

    # Analysis

    def summary(self, metrics: FinancialMetrics) -> Dict[str, Any]:
        return {
            "current_month_income": metrics.current_month_income,
            "current_month_expense": metrics.current_month_expense,
            "current_month_savings": metrics.current_month_savings,
            "savings_rate": monthly_savings_rate(metrics),
            "top_categories": [item.to_dict() for item in metrics.expense_by_category[:3]],
            "income_count": metrics.income_count,
            "expense_count": metrics.expense_count,
        }

    def greeting(self, metrics: FinancialMetrics) -> str:
        if metrics.current_month_income == 0 and metrics.current_month_expense == 0:
            return (
                "Welcome! I'm your financial assistant. I can help you manage income and expenses, "
                "analyze spending, and provide savings advice. Start by adding your first transaction!"
            )
        return (
            f"This month you've earned ${money(metrics.current_month_income)} and spent "
            f"${money(metrics.current_month_expense)}, saving ${money(metrics.current_month_savings)} "
            f"({monthly_savings_rate(metrics):.1f}% savings rate). How can I help you today?"
        )

    def quick_suggestions(self, metrics: FinancialMetrics) -> List[str]:
        suggestions = []
        if metrics.current_month_savings < 0:
            suggestions.append("You're spending more than you earn. Let's review your expenses.")
        if metrics.expense_by_category:
            top = metrics.expense_by_category[0]
            if top.percentage > 40:
                suggestions.append(
                    f"Your {top.category} spending is {top.percentage:.1f}% of total expenses. "
                    "Consider optimizing this category."
                )
        if metrics.current_month_savings > metrics.current_month_income * Decimal("0.2"):
            suggestions.append("Great savings rate! Consider investment options for your surplus.")
        return suggestions or ["Your finances look healthy! Keep tracking your expenses regularly."]

    def spending_analysis(self, metrics: FinancialMetrics) -> Reply:
        rate = spending_rate(metrics)
        message = f"Your current spending rate is {rate:.1f}% of income. "
        if rate > 80:
            message += "Your spending is quite high. Consider reviewing discretionary expenses."
            recommendation = "Focus on reducing discretionary expenses first."
        elif rate > 60:
            message += "Your spending is moderate. Look for opportunities to optimize."
            recommendation = "Look for optimization opportunities in your top categories."
        else:
            message += "Great! Your spending is well-controlled."
            recommendation = "Your spending is well-balanced. Maintain this pattern."

        top = metrics.expense_by_category[0] if metrics.expense_by_category else None
        if top is not None:
            message += f" Your top spending category is {top.category} ({top.percentage:.1f}%)."
        return Reply(
            message,
            {
                "analysis": {
                    "spending_rate": rate,
                    "top_category": top.category if top else None,
                    "recommendation": recommendation,
                }
            },
        )

    def savings_advice(self, metrics: FinancialMetrics) -> Reply:
        rate = monthly_savings_rate(metrics)
        message = f"Your current savings rate is {rate:.1f}%. "
        if rate < 10:
            message += (
                "Consider increasing your savings. Try to save at least 20% of your income. "
                "Review your expenses in Food, Entertainment, and Shopping categories."
            )
            tips = [
                "Set up automatic transfers to savings on payday",
                "Review and reduce subscription services",
                "Cook at home more often to save on food expenses",
            ]
        elif rate < 20:
            message += "Good start! Aim for 20% savings rate. Consider setting up automatic transfers to savings account."
            tips = [
                "Increase your savings rate by 1% each month",
                "Consider a high-yield savings account",
                "Set specific savings goals for motivation",
            ]
        else:
            message += "Excellent savings habit! Consider investing your surplus for long-term growth."
            tips = [
                "Explore investment options for long-term growth",
                "Consider maxing out retirement contributions",
                "Build an emergency fund covering 6 months of expenses",
            ]
        return Reply(message, {"savings_rate": rate, "tips": tips})

    def budget_suggestions(self, metrics: FinancialMetrics) -> Reply:
        return Reply(
            "Here are your personalized budget suggestions based on your income and spending patterns:",
            {
                "suggestions": self.analyzer.budget_suggestions(metrics),
                "note": "These are general guidelines. Adjust based on your personal financial goals.",
            },
        )

    def answer_query(
        self, message: str, metrics: FinancialMetrics, expenses: Sequence[Any], now: datetime
    ) -> Reply:
        lowered = message.lower()
        if "balance" in lowered or "how much money" in lowered:
            balance = metrics.current_month_income - metrics.current_month_expense
            return Reply(
                f"Your current monthly balance is ${money(balance)}. You've earned "
                f"${money(metrics.current_month_income)} and spent ${money(metrics.current_month_expense)} this month.",
                {
                    "balance": balance,
                    "income": metrics.current_month_income,
                    "expenses": metrics.current_month_expense,
                },
            )

        if "spent on" in lowered or "spending on" in lowered:
            category = next((c.capitalize() for c in QUERY_CATEGORIES if c in lowered), None)
            if category is not None:
                start, end = month_bounds(now)
                matching = [
                    tx for tx in expenses
                    if field_of(tx, "category") == category
                    and date_of(tx) is not None
                    and start <= date_of(tx) <= end
                ]
                total = self.analyzer.total(matching)
                return Reply(
                    f"You've spent ${money(total)} on {category} this month.",
                    {"category": category, "total": total, "transactions": len(matching)},
                )

        if "saved" in lowered or "savings" in lowered:
            rate = monthly_savings_rate(metrics)
            return Reply(
                f"You've saved ${money(metrics.current_month_savings)} this month, "
                f"which is {rate:.1f}% of your income.",
                {"savings": metrics.current_month_savings, "rate": rate},
            )

        return Reply(
            "I can tell you about your balance, spending by category, or savings. "
            "Try: 'How much have I spent on food?' or 'What's my current balance?'",
            {
                "examples": [
                    "How much have I spent on transportation?",
                    "What's my current balance?",
                    "How much have I saved this month?",
                ]
            },
        )

    def ask(self, question: str, metrics: FinancialMetrics) -> Reply:
        outcome = self.advisor.llm.complete(build_prompt(metrics, question=question))
        if outcome.ok:
            return Reply(outcome.text, {"type": "ai_response", "llm": outcome.to_dict()})
        logger.info(f"Assistant question answered with help text: {outcome.status.value}")
        return Reply(FALLBACK_ANSWER, {"type": "fallback", "llm": outcome.to_dict()})

    # Recommendations

    def recommendations(self, metrics: FinancialMetrics) -> List[Dict[str, Any]]:
        recommendations = []
        if metrics.expense_by_category:
            top = metrics.expense_by_category[0]
            if top.percentage > 35:
                recommendations.append({
                    "type": "spending_optimization",
                    "title": f"Reduce {top.category} Spending",
                    "description": (
                        f"Your {top.category} expenses account for {top.percentage:.1f}% of total spending. "
                        "Consider ways to optimize this category."
                    ),
                    "priority": Priority.HIGH.value,
                })

        rate = monthly_savings_rate(metrics)
        if rate < 15:
            recommendations.append({
                "type": "savings_boost",
                "title": "Increase Savings Rate",
                "description": (
                    f"Your current savings rate is {rate:.1f}%. "
                    "Aim for 20% by reducing discretionary expenses."
                ),
                "priority": Priority.MEDIUM.value,
            })

        if metrics.current_month_income < 3000 and metrics.income_count < 3:
            recommendations.append({
                "type": "income_diversification",
                "title": "Diversify Income Sources",
                "description": (
                    "Consider adding additional income streams through freelancing, "
                    "investments, or side projects."
                ),
                "priority": Priority.LOW.value,
            })
        return recommendations

from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

ZERO = Decimal("0")
CENT = Decimal("0.01")

# Share of monthly income suggested per expense category
DEFAULT_BUDGET_SHARES: Dict[str, Decimal] = {
    "Food": Decimal("0.15"),
    "Transport": Decimal("0.10"),
    "Bills": Decimal("0.25"),
    "Shopping": Decimal("0.10"),
    "Entertainment": Decimal("0.05"),
    "Healthcare": Decimal("0.05"),
    "Education": Decimal("0.05"),
    "Other": Decimal("0.05"),
}


def field_of(tx: Any, name: str, default: Any = None) -> Any:
    if isinstance(tx, dict):
        return tx.get(name, default)
    return getattr(tx, name, default)


def amount_of(tx: Any) -> Decimal:
    value = field_of(tx, "amount", 0)
    return value if isinstance(value, Decimal) else Decimal(str(value or 0))


def date_of(tx: Any) -> Optional[datetime]:
    value = field_of(tx, "date")
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def label_of(tx: Any) -> str:
    return (field_of(tx, "title") or field_of(tx, "description") or "").strip()


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent(part: Decimal, whole: Decimal) -> float:
    if whole == 0:
        return 0.0
    return float((part / whole * 100).quantize(CENT, rounding=ROUND_HALF_UP))


def month_bounds(now: datetime, months_ago: int = 0) -> Tuple[datetime, datetime]:
    """First and last instant of the calendar month `months_ago` before `now`."""
    index = now.year * 12 + (now.month - 1) - months_ago
    year, month = divmod(index, 12)
    start = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    next_year, next_month = divmod(index + 1, 12)
    end = datetime(next_year, next_month + 1, 1, tzinfo=timezone.utc) - timedelta(microseconds=1)
    return start, end


def months_before(now: datetime, months: int) -> datetime:
    """Same time of day `months` calendar months earlier, clamped to the month's last day."""
    index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(index, 12)
    day = min(now.day, calendar.monthrange(year, month + 1)[1])
    return now.replace(year=year, month=month + 1, day=day)


@dataclass
class CategoryInsight:
    """Aggregated figures for a single category."""

    category: str
    total: Decimal
    count: int
    average: Decimal
    percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FinancialMetrics:
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_savings: Decimal = ZERO
    savings_rate: float = 0.0
    current_month_income: Decimal = ZERO
    current_month_expense: Decimal = ZERO
    current_month_savings: Decimal = ZERO
    income_by_category: List[CategoryInsight] = field(default_factory=list)
    expense_by_category: List[CategoryInsight] = field(default_factory=list)
    income_count: int = 0
    expense_count: int = 0

    @property
    def expense_ratio(self) -> float:
        return percent(self.total_expenses, self.total_income)

    def category_share(self, kind: str) -> Dict[str, CategoryInsight]:
        items = self.income_by_category if kind == "income" else self.expense_by_category
        return {item.category: item for item in items}

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["expense_ratio"] = self.expense_ratio
        return data


class FinanceAnalyzer:
    """
    Aggregation helpers shared by the dashboard and advisor routes.
    All methods are pure over the transactions they are given; `now` is the
    reference instant for anything windowed.
    """

    def __init__(
        self,
        budget_shares: Optional[Dict[str, Decimal]] = None,
        large_expense_threshold: Decimal = Decimal("500"),
        recurring_min_count: int = 4,
        months_back: int = 6,
    ) -> None:
        self._budget_shares = dict(budget_shares or DEFAULT_BUDGET_SHARES)
        self._large_expense_threshold = large_expense_threshold
        self._recurring_min_count = recurring_min_count
        self._months_back = months_back

    def total(self, transactions: Iterable[Any]) -> Decimal:
        return sum((amount_of(tx) for tx in transactions), ZERO)

    def category_breakdown(self, transactions: Sequence[Any]) -> List[CategoryInsight]:
        totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        counts: Dict[str, int] = defaultdict(int)
        for tx in transactions:
            category = field_of(tx, "category")
            if not category:
                continue
            totals[category] += amount_of(tx)
            counts[category] += 1

        grand_total = sum(totals.values(), ZERO)
        insights = [
            CategoryInsight(
                category=category,
                total=total,
                count=counts[category],
                average=money(total / counts[category]),
                percentage=percent(total, grand_total),
            )
            for category, total in totals.items()
        ]
        insights.sort(key=lambda item: item.total, reverse=True)
        return insights

    def window_total(self, transactions: Iterable[Any], start: datetime, end: datetime) -> Decimal:
        """Sum of amounts whose occurrence date falls in [start, end]."""
        total = ZERO
        for tx in transactions:
            occurred = date_of(tx)
            if occurred is not None and start <= occurred <= end:
                total += amount_of(tx)
        return total

    def current_month_total(self, transactions: Iterable[Any], now: datetime) -> Decimal:
        start, end = month_bounds(now)
        return self.window_total(transactions, start, end)

    def monthly_trend(
        self,
        incomes: Sequence[Any],
        expenses: Sequence[Any],
        now: datetime,
        months_back: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        months_back = self._months_back if months_back is None else months_back
        trend = []
        for months_ago in range(months_back - 1, -1, -1):
            start, end = month_bounds(now, months_ago)
            income = self.window_total(incomes, start, end)
            expense = self.window_total(expenses, start, end)
            trend.append({
                "month": start.strftime("%b %Y"),
                "income": income,
                "expense": expense,
                "savings": income - expense,
            })
        return trend

    def basic_stats(self, transactions: Sequence[Any]) -> Dict[str, Any]:
        if not transactions:
            return {"total": ZERO, "count": 0, "average": ZERO, "max": ZERO, "min": ZERO}
        amounts = [amount_of(tx) for tx in transactions]
        total = sum(amounts, ZERO)
        return {
            "total": total,
            "count": len(amounts),
            "average": money(total / len(amounts)),
            "max": max(amounts),
            "min": min(amounts),
        }

    @staticmethod
    def savings_rate(income: Decimal, expense: Decimal) -> float:
        return percent(income - expense, income)

    def financial_metrics(
        self, incomes: Sequence[Any], expenses: Sequence[Any], now: datetime
    ) -> FinancialMetrics:
        total_income = self.total(incomes)
        total_expenses = self.total(expenses)
        month_income = self.current_month_total(incomes, now)
        month_expense = self.current_month_total(expenses, now)
        return FinancialMetrics(
            total_income=total_income,
            total_expenses=total_expenses,
            net_savings=total_income - total_expenses,
            savings_rate=self.savings_rate(total_income, total_expenses),
            current_month_income=month_income,
            current_month_expense=month_expense,
            current_month_savings=month_income - month_expense,
            income_by_category=self.category_breakdown(incomes),
            expense_by_category=self.category_breakdown(expenses),
            income_count=len(incomes),
            expense_count=len(expenses),
        )

    def recent(self, transactions: Sequence[Any], kind: str, limit: int = 5) -> List[Dict[str, Any]]:
        ordered = sorted(
            transactions,
            key=lambda tx: date_of(tx) or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        items = []
        for tx in ordered[:limit]:
            item = tx.model_dump() if hasattr(tx, "model_dump") else dict(tx)
            occurred = date_of(tx)
            item["type"] = kind
            item["date"] = occurred.strftime("%Y-%m-%d") if occurred else None
            items.append(item)
        return items

    def dashboard(self, incomes: Sequence[Any], expenses: Sequence[Any], now: datetime) -> Dict[str, Any]:
        metrics = self.financial_metrics(incomes, expenses, now)
        income_stats = self.basic_stats(incomes)
        expense_stats = self.basic_stats(expenses)

        return {
            "summary": {
                "total_income": metrics.total_income,
                "total_expense": metrics.total_expenses,
                "balance": metrics.net_savings,
                "current_period_income": metrics.current_month_income,
                "current_period_expense": metrics.current_month_expense,
                "current_period_savings": metrics.current_month_savings,
                "record_count": {"incomes": len(incomes), "expenses": len(expenses)},
                "period": "month",
            },
            "charts": {
                "income_by_category": [c.to_dict() for c in metrics.income_by_category],
                "expense_by_category": [c.to_dict() for c in metrics.expense_by_category],
                "monthly_trend": self.monthly_trend(incomes, expenses, now),
                "top_categories": {
                    "income": [c.to_dict() for c in metrics.income_by_category[:3]],
                    "expense": [c.to_dict() for c in metrics.expense_by_category[:3]],
                },
            },
            "recent_transactions": {
                "incomes": self.recent(incomes, "income"),
                "expenses": self.recent(expenses, "expense"),
            },
            "insights": {
                "highest_income": income_stats["max"],
                "highest_expense": expense_stats["max"],
                "average_income": income_stats["average"],
                "average_expense": expense_stats["average"],
                "savings_rate": self.savings_rate(
                    metrics.current_month_income, metrics.current_month_expense
                ),
                "total_transactions": len(incomes) + len(expenses),
            },
            "is_empty": not incomes and not expenses,
        }

    def overview(self, incomes: Sequence[Any], expenses: Sequence[Any], now: datetime) -> Dict[str, Any]:
        income = self.basic_stats(incomes)
        expense = self.basic_stats(expenses)
        start, end = month_bounds(now)
        return {
            "income": income,
            "expense": expense,
            "net": income["total"] - expense["total"],
            "period": {
                "start_date": start.strftime("%Y-%m-%d"),
                "end_date": end.strftime("%Y-%m-%d"),
            },
        }

    def weekly_average(self, expenses: Sequence[Any]) -> Decimal:
        weekly: Dict[Tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
        for tx in expenses:
            occurred = date_of(tx)
            if occurred is None:
                continue
            year, week, _ = occurred.isocalendar()
            weekly[(year, week)] += amount_of(tx)
        if not weekly:
            return ZERO
        return money(sum(weekly.values(), ZERO) / len(weekly))

    def predict_next_month(self, expenses: Sequence[Any]) -> Dict[str, Any]:
        if not expenses:
            return {
                "next_month_prediction": ZERO,
                "confidence": "LOW",
                "factors": ["Insufficient data for prediction"],
                "recommendation": "Start tracking expenses to get accurate predictions",
            }

        monthly: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for tx in expenses:
            occurred = date_of(tx)
            if occurred is not None:
                monthly[occurred.strftime("%Y-%m")] += amount_of(tx)
        average = money(sum(monthly.values(), ZERO) / len(monthly)) if monthly else ZERO

        return {
            "next_month_prediction": average,
            "confidence": "HIGH" if len(monthly) >= 3 else "MEDIUM",
            "factors": [
                "Historical spending patterns",
                "Seasonal variations",
                "Recent spending trends",
            ],
            "recommendation": "Budget 10-15% more than predicted for unexpected expenses",
        }

    def recurring_labels(self, transactions: Sequence[Any]) -> Dict[str, List[Any]]:
        """Labels (case-insensitive) shared by more than three records."""
        groups: Dict[str, List[Any]] = defaultdict(list)
        for tx in transactions:
            label = label_of(tx).lower()
            if label:
                groups[label].append(tx)
        return {
            label: items
            for label, items in groups.items()
            if len(items) >= self._recurring_min_count
        }

    def savings_opportunities(self, expenses: Sequence[Any], limit: int = 5) -> List[Dict[str, Any]]:
        opportunities: List[Dict[str, Any]] = []

        for label, items in self.recurring_labels(expenses).items():
            total = self.total(items)
            opportunities.append({
                "type": "RECURRING_EXPENSE",
                "title": f"Frequent: {label}",
                "frequency": f"{len(items)} times",
                "total_amount": total,
                "suggestion": "Consider if this recurring expense can be reduced or eliminated",
                "potential_savings": money(total * Decimal("0.2")),
            })

        large = sorted(
            (tx for tx in expenses if amount_of(tx) > self._large_expense_threshold),
            key=amount_of,
            reverse=True,
        )[:5]
        for tx in large:
            occurred = date_of(tx)
            opportunities.append({
                "type": "HIGH_VALUE",
                "title": f"Large expense: {label_of(tx) or 'Unknown'}",
                "amount": amount_of(tx),
                "date": occurred.strftime("%Y-%m-%d") if occurred else None,
                "suggestion": "Review if this large expense was necessary or could be optimized",
                "category": field_of(tx, "category") or "Unknown",
            })

        return opportunities[:limit]

    @staticmethod
    def risk_level(metrics: FinancialMetrics) -> str:
        if metrics.net_savings < 0:
            return "HIGH"
        if metrics.savings_rate < 10:
            return "MEDIUM"
        if metrics.savings_rate < 20:
            return "LOW"
        return "VERY_LOW"

    def project_next_month(
        self, metrics: FinancialMetrics, expenses: Sequence[Any], now: datetime
    ) -> Dict[str, Any]:
        start = months_before(now, 3)
        recent = [tx for tx in expenses if (date_of(tx) or start) > start]
        if recent:
            projected_expenses = money(self.total(recent) / 3)
        else:
            projected_expenses = metrics.current_month_expense
        return {
            "projected_income": metrics.current_month_income,
            "projected_expenses": projected_expenses,
            "projected_savings": metrics.current_month_income - projected_expenses,
            "confidence": "HIGH" if len(recent) >= 10 else "MEDIUM",
        }

    def budget_suggestions(self, metrics: FinancialMetrics) -> List[Dict[str, Any]]:
        suggestions = []
        for item in metrics.expense_by_category:
            share = self._budget_shares.get(item.category, Decimal("0.05"))
            suggested = money(metrics.current_month_income * share)
            if item.total > suggested:
                recommendation = f"Reduce {item.category} spending by ${money(item.total - suggested)}"
            else:
                recommendation = f"Your {item.category} spending is within recommended limits"
            suggestions.append({
                "category": item.category,
                "current_spending": item.total,
                "suggested_budget": suggested,
                "difference": suggested - item.total,
                "recommendation": recommendation,
            })
        return suggestions

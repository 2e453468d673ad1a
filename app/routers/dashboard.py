from datetime import date, datetime, time, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.auth import get_current_account, get_database
from app.core.responses import ok
from app.db.dynamo import Database
from app.models.user import UserInDB
from app.utils.analyzer import FinanceAnalyzer

router = APIRouter()
finance_analyzer = FinanceAnalyzer()


def reference_time(as_of: Optional[date]) -> datetime:
    """End of the given day in UTC, or now when no date is given."""
    if as_of is None:
        return datetime.now(timezone.utc)
    return datetime.combine(as_of, time.max, tzinfo=timezone.utc)


@router.get("")
def get_dashboard(
    as_of: Optional[date] = Query(None, description="Reference date (YYYY-MM-DD) for the current period"),
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
):
    """
    Totals, category charts, the monthly trend and recent activity for the
    signed-in account. The "current period" is the calendar month of `as_of`.
    """
    incomes = database.incomes.list(account.user_id)
    expenses = database.expenses.list(account.user_id)
    data = finance_analyzer.dashboard(incomes, expenses, reference_time(as_of))
    message = "Add your first transactions to see your dashboard" if data["is_empty"] else None
    return ok(data, message=message)


@router.get("/overview")
def get_overview(
    as_of: Optional[date] = Query(None, description="Reference date (YYYY-MM-DD) for the current period"),
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
):
    incomes = database.incomes.list(account.user_id)
    expenses = database.expenses.list(account.user_id)
    return ok(finance_analyzer.overview(incomes, expenses, reference_time(as_of)))

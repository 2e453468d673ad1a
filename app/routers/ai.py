"""
Advisor routes: rule-based tips, spending analysis, categorization and the
conversational assistant, with an optional generated narrative on /insights
and /manage.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.core.auth import get_advisor, get_current_account, get_database
from app.core.responses import ok
from app.db.dynamo import Database
from app.models.user import UserInDB
from app.utils.advisor import Advisor, suggest_category
from app.utils.assistant import Assistant

router = APIRouter()
logger = logging.getLogger(__name__)


class InsightsRequest(BaseModel):
    use_llm: bool = True


class TipsRequest(BaseModel):
    category: Optional[str] = None


class CategorizeRequest(BaseModel):
    title: str = ""
    amount: Decimal = Decimal("0")
    description: Optional[str] = ""


class ManageRequest(BaseModel):
    action: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    message: Optional[str] = None


def load_transactions(database: Database, user_id: str):
    return database.incomes.list(user_id), database.expenses.list(user_id)


@router.post("/insights")
def get_insights(
    body: Optional[InsightsRequest] = None,
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
    advisor: Advisor = Depends(get_advisor),
):
    incomes, expenses = load_transactions(database, account.user_id)
    use_llm = body.use_llm if body is not None else True
    result = advisor.insights(incomes, expenses, datetime.now(timezone.utc), use_llm=use_llm)
    if result.llm is not None and not result.llm.ok:
        logger.info(f"Insights for {account.user_id} served from rules: {result.llm.status.value}")
    return ok(result.to_dict())


@router.post("/tips")
def get_tips(
    body: Optional[TipsRequest] = None,
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
    advisor: Advisor = Depends(get_advisor),
):
    """Tips for one group (income, expense or saving); every group when omitted."""
    incomes, expenses = load_transactions(database, account.user_id)
    group = body.category if body is not None else None
    tips = advisor.group_tips(incomes, expenses, datetime.now(timezone.utc), group)
    return ok({"tips": [tip.to_dict() for tip in tips], "category": group or "all"})


@router.post("/analysis")
def get_spending_analysis(
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
    advisor: Advisor = Depends(get_advisor),
):
    incomes, expenses = load_transactions(database, account.user_id)
    return ok(advisor.spending_analysis(incomes, expenses, datetime.now(timezone.utc)))


@router.post("/investment-suggestions")
def get_investment_suggestions(
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
    advisor: Advisor = Depends(get_advisor),
):
    incomes, expenses = load_transactions(database, account.user_id)
    metrics = advisor.analyzer.financial_metrics(incomes, expenses, datetime.now(timezone.utc))
    return ok({
        "suggestions": advisor.investment_suggestions(metrics),
        "current_savings": metrics.net_savings,
        "savings_rate": metrics.savings_rate,
        "risk_profile": "CONSERVATIVE" if metrics.savings_rate < 20 else "MODERATE",
    })


@router.post("/categorize")
def categorize(body: CategorizeRequest, account: UserInDB = Depends(get_current_account)):
    suggestion = suggest_category(body.title, body.amount, body.description or "")
    return ok(suggestion)


@router.post("/manage")
def manage(
    body: Optional[ManageRequest] = None,
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
    advisor: Advisor = Depends(get_advisor),
):
    """Run an explicit action, answer a free-text message, or greet with a summary."""
    body = body or ManageRequest()
    reply = Assistant(advisor).manage(
        database,
        account.user_id,
        datetime.now(timezone.utc),
        action=body.action,
        data=body.data,
        message=body.message,
    )
    return ok(reply.data, message=reply.message)


@router.get("/recommendations")
def get_recommendations(
    account: UserInDB = Depends(get_current_account),
    database: Database = Depends(get_database),
    advisor: Advisor = Depends(get_advisor),
):
    incomes, expenses = load_transactions(database, account.user_id)
    metrics = advisor.analyzer.financial_metrics(incomes, expenses, datetime.now(timezone.utc))
    return ok({"recommendations": Assistant(advisor).recommendations(metrics)})

"""
CRUD routes for incomes and expenses. Both variants share one router
factory; each is bound to its own repository on the Database.
"""
import logging
from typing import Type

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from app.core.auth import get_current_account, get_database
from app.core.responses import ok
from app.db.dynamo import Database, TransactionRepository
from app.models.transaction import ExpenseCreate, ExpenseUpdate, IncomeCreate, IncomeUpdate
from app.models.user import UserInDB
from app.utils.report import report_filename

logger = logging.getLogger(__name__)


def build_router(kind: str, create_model: Type[BaseModel], update_model: Type[BaseModel]) -> APIRouter:
    router = APIRouter()
    label = kind.capitalize()

    def get_repository(database: Database = Depends(get_database)) -> TransactionRepository:
        return getattr(database, f"{kind}s")

    @router.get("")
    def list_transactions(
        account: UserInDB = Depends(get_current_account),
        repository: TransactionRepository = Depends(get_repository),
    ):
        records = repository.list(account.user_id)
        return ok([r.model_dump() for r in records], count=len(records))

    @router.post("", status_code=status.HTTP_201_CREATED)
    def create_transaction(
        payload: create_model = Body(...),
        account: UserInDB = Depends(get_current_account),
        repository: TransactionRepository = Depends(get_repository),
    ):
        record = repository.create(account.user_id, payload.model_dump())
        logger.info(f"Created {kind} {record.transaction_id} for user {account.user_id}")
        return ok(record.model_dump(), message=f"{label} added successfully")

    # Declared before /{transaction_id} so the literal path wins
    @router.get("/download/report")
    def download_report(
        account: UserInDB = Depends(get_current_account),
        repository: TransactionRepository = Depends(get_repository),
    ):
        content = repository.export_report(account.user_id)
        return PlainTextResponse(
            content,
            headers={"Content-Disposition": f'attachment; filename="{report_filename(kind)}"'},
        )

    @router.get("/{transaction_id}")
    def get_transaction(
        transaction_id: str,
        account: UserInDB = Depends(get_current_account),
        repository: TransactionRepository = Depends(get_repository),
    ):
        return ok(repository.get_owned(transaction_id, account.user_id).model_dump())

    @router.put("/{transaction_id}")
    def update_transaction(
        transaction_id: str,
        payload: update_model = Body(...),
        account: UserInDB = Depends(get_current_account),
        repository: TransactionRepository = Depends(get_repository),
    ):
        record = repository.update(
            transaction_id, account.user_id, payload.model_dump(exclude_unset=True)
        )
        return ok(record.model_dump(), message=f"{label} updated successfully")

    @router.delete("/{transaction_id}")
    def delete_transaction(
        transaction_id: str,
        account: UserInDB = Depends(get_current_account),
        repository: TransactionRepository = Depends(get_repository),
    ):
        repository.delete(transaction_id, account.user_id)
        return ok(message=f"{label} deleted successfully")

    return router


incomes_router = build_router("income", IncomeCreate, IncomeUpdate)
expenses_router = build_router("expense", ExpenseCreate, ExpenseUpdate)

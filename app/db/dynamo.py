import logging
from datetime import datetime
from decimal import Decimal, DecimalException, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Type

import boto3
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import DYNAMODB_CONTEXT, TypeSerializer
from botocore.exceptions import ClientError

from app.core.config import Settings
from app.core.errors import Conflict, Forbidden, InternalError, NotFound, ValidationError
from app.models.transaction import ExpenseInDB, IncomeInDB, as_utc, utcnow
from app.models.user import UserInDB
from app.utils import report

logger = logging.getLogger(__name__)

EMAIL_INDEX = "email-index"
EMAIL_CLAIM_PREFIX = "EMAIL#"
USER_DATE_INDEX = "user-date-index"

# Everything but password_hash; status and role are DynamoDB reserved words
PUBLIC_ACCOUNT_FIELDS = [
    "user_id",
    "email",
    "first_name",
    "last_name",
    "profile_image_url",
    "status",
    "role",
    "created_at",
]


class AccountRepository:
    """
    Account documents in the Users table.

    Each account has a companion claim item keyed `EMAIL#<email>` in the same
    table. Accounts and claims are written in one transaction conditioned on
    the claim being absent, so an email belongs to at most one account. Claims
    carry no `email` attribute and never appear in the email index.
    """

    def __init__(self, table) -> None:
        self.table = table
        self._client = table.meta.client
        self._serializer = TypeSerializer()

    def get_by_id(self, user_id: str, include_password: bool = False) -> Optional[UserInDB]:
        kwargs: Dict[str, Any] = {"Key": {"user_id": user_id}}
        if not include_password:
            names = {f"#a{idx}": field for idx, field in enumerate(PUBLIC_ACCOUNT_FIELDS)}
            kwargs["ProjectionExpression"] = ", ".join(names)
            kwargs["ExpressionAttributeNames"] = names
        try:
            response = self.table.get_item(**kwargs)
        except ClientError as e:
            logger.error(f"get_user_by_id failed: {e.response['Error']['Message']}")
            raise InternalError("Error loading account") from e
        item = response.get("Item")
        return UserInDB(**item) if item else None

    def get_by_email(self, email: str) -> Optional[UserInDB]:
        """Case-insensitive lookup; emails are stored lower-cased."""
        try:
            response = self.table.query(
                IndexName=EMAIL_INDEX,
                KeyConditionExpression=Key("email").eq(email.strip().lower()),
            )
        except ClientError as e:
            logger.error(f"get_user_by_email failed: {e.response['Error']['Message']}")
            raise InternalError("Error loading account") from e
        items = response.get("Items", [])
        return UserInDB(**items[0]) if items else None

    def create(self, user: UserInDB) -> UserInDB:
        user.email = user.email.strip().lower()
        try:
            self._transact([
                {"Put": {"Item": _convert_for_dynamo(user.model_dump())}},
                self._claim_email(user.email, user.user_id),
            ])
        except ClientError as e:
            if e.response["Error"]["Code"] == "TransactionCanceledException":
                raise Conflict("User already exists with this email address") from e
            logger.error(f"put_user failed: {e.response['Error']['Message']}")
            raise InternalError("Error saving user") from e
        return user

    def update(self, user_id: str, updates: Dict[str, Any]) -> UserInDB:
        updates = {k: v for k, v in updates.items() if v is not None}
        if not updates:
            account = self.get_by_id(user_id)
            if account is None:
                raise NotFound("User not found")
            return account

        if "email" in updates:
            updates["email"] = updates["email"].strip().lower()
            current = self.get_by_id(user_id)
            if current is None:
                raise NotFound("User not found")
            if updates["email"] != current.email:
                return self._change_email(current, updates)

        try:
            attributes = _update_item(self.table, {"user_id": user_id}, updates, "user_id")
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise NotFound("User not found") from e
            logger.error(f"update_user failed: {e.response['Error']['Message']}")
            raise InternalError("Error updating user") from e
        attributes.pop("password_hash", None)
        return UserInDB(**attributes)

    def delete(self, user_id: str) -> bool:
        account = self.get_by_id(user_id)
        if account is None:
            return False
        try:
            self._transact([
                {"Delete": {"Key": {"user_id": user_id}}},
                {"Delete": {"Key": _email_key(account.email)}},
            ])
        except ClientError as e:
            logger.error(f"delete_user failed: {e.response['Error']['Message']}")
            raise InternalError("Error deleting user") from e
        return True

    def _change_email(self, current: UserInDB, updates: Dict[str, Any]) -> UserInDB:
        """Move the email claim and update the account in one transaction."""
        update = _update_expression(updates, "user_id")
        update["Key"] = {"user_id": current.user_id}
        try:
            self._transact([
                self._claim_email(updates["email"], current.user_id),
                {"Delete": {"Key": _email_key(current.email)}},
                {"Update": update},
            ])
        except ClientError as e:
            if e.response["Error"]["Code"] == "TransactionCanceledException":
                raise Conflict("Email already exists") from e
            logger.error(f"update_user failed: {e.response['Error']['Message']}")
            raise InternalError("Error updating user") from e
        return self.get_by_id(current.user_id)

    def _claim_email(self, email: str, user_id: str) -> Dict[str, Any]:
        item = dict(_email_key(email), owner_id=user_id)
        return {"Put": {"Item": item, "ConditionExpression": "attribute_not_exists(user_id)"}}

    def _transact(self, actions: List[Dict[str, Any]]) -> None:
        """Run table-level actions through the client, serializing keys and values."""
        items = []
        for action in actions:
            operation, params = next(iter(action.items()))
            params = dict(params, TableName=self.table.name)
            for field in ("Item", "Key"):
                if field in params:
                    params[field] = self._serialize(params[field])
            if "ExpressionAttributeValues" in params:
                params["ExpressionAttributeValues"] = self._serialize(params["ExpressionAttributeValues"])
            items.append({operation: params})
        self._client.transact_write_items(TransactItems=items)

    def _serialize(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return {name: self._serializer.serialize(value) for name, value in values.items()}


class TransactionRepository:
    """
    Income or expense documents. One instance per variant, each with its own
    table and closed category enumeration.
    """

    def __init__(self, kind: str, table, model: Type[ExpenseInDB], categories: Iterable[str]) -> None:
        self.kind = kind
        self.table = table
        self.model = model
        self.categories = list(categories)

    def validate(self, fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        errors: List[str] = []
        cleaned = dict(fields)

        if "amount" in fields or not partial:
            amount = fields.get("amount")
            if amount is None:
                errors.append("amount: Amount is required")
            else:
                try:
                    cleaned["amount"] = Decimal(str(amount))
                except (InvalidOperation, ValueError):
                    errors.append("amount: Amount must be a number")
                else:
                    if not cleaned["amount"].is_finite():
                        errors.append("amount: Amount must be a number")
                    elif cleaned["amount"] < 0:
                        errors.append("amount: Amount must not be negative")
                    elif not _fits_number_type(cleaned["amount"]):
                        errors.append("amount: Amount has more than 38 significant digits")

        if "category" in fields or not partial:
            category = fields.get("category")
            if not category:
                errors.append("category: Category is required")
            elif category not in self.categories:
                errors.append(
                    f"category: '{category}' is not one of {', '.join(self.categories)}"
                )

        if errors:
            raise ValidationError(errors, message=f"Invalid {self.kind} data")
        return cleaned

    def list(self, user_id: str) -> List[ExpenseInDB]:
        """All of the account's records, most recent occurrence first."""
        items: List[Dict[str, Any]] = []
        kwargs: Dict[str, Any] = {
            "IndexName": USER_DATE_INDEX,
            "KeyConditionExpression": Key("user_id").eq(user_id),
            "ScanIndexForward": False,
        }
        try:
            while True:
                response = self.table.query(**kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            logger.error(f"list_{self.kind}s failed: {e.response['Error']['Message']}")
            raise InternalError(f"Error loading {self.kind}s") from e
        records = [self.model(**item) for item in items]
        records.sort(key=lambda r: r.date, reverse=True)
        return records

    def create(self, user_id: str, fields: Dict[str, Any]) -> ExpenseInDB:
        fields = {k: v for k, v in fields.items() if v is not None}
        cleaned = self.validate(fields)
        record = self.model(user_id=user_id, date=cleaned.pop("date", None) or utcnow(), **cleaned)
        try:
            self.table.put_item(Item=_convert_for_dynamo(record.model_dump()))
        except ClientError as e:
            logger.error(f"put_{self.kind} failed: {e.response['Error']['Message']}")
            raise InternalError(f"Failed to save {self.kind}") from e
        return record

    def get(self, transaction_id: str) -> ExpenseInDB:
        """Unscoped fetch; callers check ownership separately."""
        try:
            response = self.table.get_item(Key={"transaction_id": transaction_id})
        except ClientError as e:
            logger.error(f"get_{self.kind} failed: {e.response['Error']['Message']}")
            raise InternalError(f"Error loading {self.kind}") from e
        item = response.get("Item")
        if not item:
            raise NotFound(f"{self.kind.capitalize()} not found")
        return self.model(**item)

    def get_owned(self, transaction_id: str, user_id: str) -> ExpenseInDB:
        try:
            record = self.get(transaction_id)
        except NotFound as e:
            raise Forbidden("Not authorized") from e
        if record.user_id != user_id:
            logger.warning(f"User {user_id} attempted to access {self.kind} {transaction_id}")
            raise Forbidden("Not authorized")
        return record

    def update(self, transaction_id: str, user_id: str, updates: Dict[str, Any]) -> ExpenseInDB:
        """Apply only the provided fields; omitted ones keep their value."""
        record = self.get_owned(transaction_id, user_id)
        updates = {
            k: v for k, v in updates.items()
            if v is not None and k not in ("transaction_id", "user_id", "created_at")
        }
        if not updates:
            return record

        cleaned = self.validate(updates, partial=True)
        if "date" in cleaned:
            cleaned["date"] = as_utc(cleaned["date"])
        try:
            attributes = _update_item(
                self.table, {"transaction_id": transaction_id}, cleaned, "transaction_id"
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise Forbidden("Not authorized") from e
            logger.error(f"update_{self.kind} failed: {e.response['Error']['Message']}")
            raise InternalError(f"Failed to update {self.kind}") from e
        return self.model(**attributes)

    def delete(self, transaction_id: str, user_id: str) -> ExpenseInDB:
        record = self.get_owned(transaction_id, user_id)
        try:
            self.table.delete_item(Key={"transaction_id": transaction_id})
        except ClientError as e:
            logger.error(f"delete_{self.kind} failed: {e.response['Error']['Message']}")
            raise InternalError(f"Failed to delete {self.kind}") from e
        return record

    def delete_all(self, user_id: str) -> int:
        records = self.list(user_id)
        try:
            with self.table.batch_writer() as batch:
                for record in records:
                    batch.delete_item(Key={"transaction_id": record.transaction_id})
        except ClientError as e:
            logger.error(f"delete_all_{self.kind}s failed: {e.response['Error']['Message']}")
            raise InternalError(f"Failed to delete {self.kind}s") from e
        return len(records)

    def count(self, user_id: str) -> int:
        return len(self.list(user_id))

    def export_report(self, user_id: str) -> str:
        return report.render_text_report(self.kind, self.list(user_id))


class Database:
    """Table handles and repositories, built once from settings."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.resource = boto3.resource(
            "dynamodb",
            region_name=settings.DYNAMO_REGION,
            endpoint_url=settings.DYNAMO_ENDPOINT_URL,
        )
        self.users_table = self.resource.Table(settings.DYNAMO_USERS_TABLE)
        self.incomes_table = self.resource.Table(settings.DYNAMO_INCOMES_TABLE)
        self.expenses_table = self.resource.Table(settings.DYNAMO_EXPENSES_TABLE)

        self.accounts = AccountRepository(self.users_table)
        self.incomes = TransactionRepository(
            "income", self.incomes_table, IncomeInDB, settings.INCOME_CATEGORIES
        )
        self.expenses = TransactionRepository(
            "expense", self.expenses_table, ExpenseInDB, settings.EXPENSE_CATEGORIES
        )

    def delete_account(self, user_id: str) -> Dict[str, int]:
        """Remove the account and every income and expense it owns."""
        removed = {
            "incomes": self.incomes.delete_all(user_id),
            "expenses": self.expenses.delete_all(user_id),
        }
        self.accounts.delete(user_id)
        return removed

    def create_tables(self) -> None:
        """Create the three tables with their indexes (local development and tests)."""
        self.resource.create_table(
            TableName=self.settings.DYNAMO_USERS_TABLE,
            KeySchema=[{"AttributeName": "user_id", "KeyType": "HASH"}],
            AttributeDefinitions=[
                {"AttributeName": "user_id", "AttributeType": "S"},
                {"AttributeName": "email", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": EMAIL_INDEX,
                    "KeySchema": [{"AttributeName": "email", "KeyType": "HASH"}],
                    "Projection": {"ProjectionType": "ALL"},
                }
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        for table_name in (self.settings.DYNAMO_INCOMES_TABLE, self.settings.DYNAMO_EXPENSES_TABLE):
            self.resource.create_table(
                TableName=table_name,
                KeySchema=[{"AttributeName": "transaction_id", "KeyType": "HASH"}],
                AttributeDefinitions=[
                    {"AttributeName": "transaction_id", "AttributeType": "S"},
                    {"AttributeName": "user_id", "AttributeType": "S"},
                    {"AttributeName": "date", "AttributeType": "S"},
                ],
                GlobalSecondaryIndexes=[
                    {
                        "IndexName": USER_DATE_INDEX,
                        "KeySchema": [
                            {"AttributeName": "user_id", "KeyType": "HASH"},
                            {"AttributeName": "date", "KeyType": "RANGE"},
                        ],
                        "Projection": {"ProjectionType": "ALL"},
                    }
                ],
                BillingMode="PAY_PER_REQUEST",
            )


def _email_key(email: str) -> Dict[str, str]:
    return {"user_id": f"{EMAIL_CLAIM_PREFIX}{email}"}


def _update_expression(updates: Dict[str, Any], key_name: str) -> Dict[str, Any]:
    """SET expression for partial updates, conditioned on the key already existing."""
    update_expression_parts = []
    expression_attribute_values = {}
    expression_attribute_names = {"#pk": key_name}

    for idx, (field, value) in enumerate(updates.items()):
        placeholder = f"#f{idx}"
        value_placeholder = f":v{idx}"
        update_expression_parts.append(f"{placeholder} = {value_placeholder}")
        expression_attribute_names[placeholder] = field
        expression_attribute_values[value_placeholder] = value

    return {
        "UpdateExpression": "SET " + ", ".join(update_expression_parts),
        "ConditionExpression": "attribute_exists(#pk)",
        "ExpressionAttributeNames": expression_attribute_names,
        "ExpressionAttributeValues": _convert_for_dynamo(expression_attribute_values),
    }


def _update_item(table, key: Dict[str, Any], updates: Dict[str, Any], key_name: str) -> Dict[str, Any]:
    """Apply partial updates and return the full updated item."""
    response = table.update_item(Key=key, ReturnValues="ALL_NEW", **_update_expression(updates, key_name))
    return response.get("Attributes", {})


def _convert_for_dynamo(obj: Any):
    """
    Recursively convert values DynamoDB cannot store: floats become Decimal,
    datetimes become UTC ISO strings and enums their values. None entries are dropped.
    """
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, datetime):
        return as_utc(obj).isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: _convert_for_dynamo(v) for k, v in obj.items() if v is not None}
    if isinstance(obj, list):
        return [_convert_for_dynamo(v) for v in obj]
    return obj


def _fits_number_type(value: Decimal) -> bool:
    """DynamoDB numbers hold at most 38 significant digits."""
    try:
        DYNAMODB_CONTEXT.create_decimal(value)
    except DecimalException:
        return False
    return True

from decimal import Decimal

import pytest
from boto3.dynamodb.conditions import Key
from fastapi.testclient import TestClient
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import Conflict
from app.core.security import get_password_hash
from app.db.dynamo import EMAIL_INDEX
from app.main import create_app
from app.models.user import UserInDB
from app.utils.llm import LLMClient
from conftest import make_settings, register


def make_account(email="a@example.com"):
    return UserInDB(
        email=email,
        password_hash=get_password_hash("secret123"),
        first_name="Ann",
        last_name="Lee",
    )


def test_get_by_id_hides_password_hash(database):
    account = database.accounts.create(make_account())
    loaded = database.accounts.get_by_id(account.user_id)
    assert loaded.email == "a@example.com"
    assert loaded.password_hash is None
    assert database.accounts.get_by_id(account.user_id, include_password=True).password_hash


def test_email_lookup_is_case_insensitive(database):
    database.accounts.create(make_account("Mixed@Example.com"))
    assert database.accounts.get_by_email("  MIXED@example.COM ").email == "mixed@example.com"


def test_duplicate_email_conflicts(database):
    database.accounts.create(make_account("a@example.com"))
    with pytest.raises(Conflict):
        database.accounts.create(make_account("A@Example.com"))


def test_duplicate_email_conflicts_without_index_lookup(database, monkeypatch):
    # An email index that has not caught up yet must not let a duplicate through
    database.accounts.create(make_account("a@example.com"))
    monkeypatch.setattr(database.accounts, "get_by_email", lambda email: None)

    with pytest.raises(Conflict):
        database.accounts.create(make_account("a@example.com"))

    monkeypatch.undo()
    response = database.users_table.query(
        IndexName=EMAIL_INDEX, KeyConditionExpression=Key("email").eq("a@example.com")
    )
    assert response["Count"] == 1


def test_email_change_moves_the_claim(database):
    account = database.accounts.create(make_account("old@example.com"))
    database.accounts.create(make_account("taken@example.com"))

    with pytest.raises(Conflict):
        database.accounts.update(account.user_id, {"email": "Taken@example.com"})
    assert database.accounts.get_by_id(account.user_id).email == "old@example.com"

    updated = database.accounts.update(account.user_id, {"email": "New@Example.com", "first_name": "Ana"})
    assert updated.email == "new@example.com"
    assert updated.first_name == "Ana"
    assert updated.password_hash is None

    # The old address is free again, the new one is held
    database.accounts.create(make_account("old@example.com"))
    with pytest.raises(Conflict):
        database.accounts.create(make_account("new@example.com"))


def test_deleted_account_releases_its_email(database):
    account = database.accounts.create(make_account("a@example.com"))
    assert database.accounts.delete(account.user_id) is True
    assert database.accounts.delete(account.user_id) is False

    assert database.accounts.create(make_account("a@example.com")).email == "a@example.com"


def test_update_with_no_changes_returns_account(database):
    account = database.accounts.create(make_account())
    assert database.accounts.update(account.user_id, {"first_name": None}).first_name == "Ann"


def test_delete_account_cascades(database):
    account = database.accounts.create(make_account())
    database.incomes.create(account.user_id, {"amount": Decimal("10"), "category": "Salary"})
    database.expenses.create(account.user_id, {"amount": Decimal("5"), "category": "Food"})
    database.expenses.create("someone-else", {"amount": Decimal("5"), "category": "Food"})

    removed = database.delete_account(account.user_id)

    assert removed == {"incomes": 1, "expenses": 1}
    assert database.incomes.list(account.user_id) == []
    assert database.expenses.list(account.user_id) == []
    assert database.accounts.get_by_id(account.user_id) is None
    assert len(database.expenses.list("someone-else")) == 1


# HTTP surface


def test_register_returns_user_and_token(client):
    user, headers = register(client, email="New@Example.com")
    assert user["email"] == "new@example.com"
    assert user["status"] == "active"
    assert user["role"] == "user"
    assert "password_hash" not in user
    assert client.get("/api/auth/profile", headers=headers).status_code == 200


def test_register_duplicate_is_409(client, user):
    response = client.post(
        "/api/auth/register",
        json={
            "first_name": "Jane",
            "last_name": "Doe",
            "email": "JANE@example.com",
            "password": "secret123",
            "confirm_password": "secret123",
        },
    )
    assert response.status_code == 409
    assert response.json()["success"] is False


def test_register_password_mismatch_is_400(client):
    response = client.post(
        "/api/auth/register",
        json={
            "first_name": "Jane",
            "last_name": "Doe",
            "email": "jane@example.com",
            "password": "secret123",
            "confirm_password": "different",
        },
    )
    assert response.status_code == 400


def test_login(client, user):
    response = client.post("/api/auth/login", json={"email": "Jane@Example.com", "password": "secret123"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token"]
    assert data["stats"] == {"income_count": 0, "expense_count": 0}


def test_login_wrong_password(client, user):
    response = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "nope123"})
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_credentials"


def test_update_profile(client, user):
    _, headers = user
    response = client.put("/api/auth/profile", json={"first_name": " Janet "}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["user"]["first_name"] == "Janet"
    assert response.json()["data"]["user"]["last_name"] == "Doe"


def test_update_profile_email_taken(client, user, other_user):
    _, headers = user
    response = client.put("/api/auth/profile", json={"email": "john@example.com"}, headers=headers)
    assert response.status_code == 409


def test_delete_profile_removes_transactions(client, database, user):
    account, headers = user
    client.post("/api/incomes", json={"amount": 100, "category": "Salary"}, headers=headers)
    client.post("/api/expenses", json={"amount": 10, "category": "Food"}, headers=headers)

    response = client.delete("/api/auth/profile", headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["deleted"] == {"incomes": 1, "expenses": 1}
    assert database.incomes.list(account["user_id"]) == []
    assert database.expenses.list(account["user_id"]) == []


def test_welcome_income_when_enabled(database, storage):
    settings = make_settings(
        CREATE_WELCOME_INCOME=True,
        WELCOME_INCOME_AMOUNT=Decimal("25"),
        WELCOME_INCOME_CATEGORY="Bonus",
    )
    app = create_app(settings, database=database, llm=LLMClient(None), storage=storage)
    user, _ = register(TestClient(app))

    incomes = database.incomes.list(user["user_id"])
    assert [(i.amount, i.category) for i in incomes] == [(Decimal("25"), "Bonus")]


def test_welcome_category_must_be_an_income_category():
    with pytest.raises(PydanticValidationError):
        make_settings(CREATE_WELCOME_INCOME=True, WELCOME_INCOME_CATEGORY="Nope")


def test_rejected_welcome_income_creates_no_account(database, storage):
    # The app accepts "Gift" but the repository's category list does not
    settings = make_settings(
        CREATE_WELCOME_INCOME=True,
        INCOME_CATEGORIES=["Gift"],
        WELCOME_INCOME_CATEGORY="Gift",
    )
    client = TestClient(create_app(settings, database=database, llm=LLMClient(None), storage=storage))

    response = client.post(
        "/api/auth/register",
        json={
            "first_name": "Jane",
            "last_name": "Doe",
            "email": "jane@example.com",
            "password": "secret123",
            "confirm_password": "secret123",
        },
    )

    assert response.status_code == 400
    assert database.accounts.get_by_email("jane@example.com") is None


def test_no_welcome_income_by_default(client, database, user):
    account, _ = user
    assert database.incomes.list(account["user_id"]) == []


def test_avatar_upload(client, database, user):
    account, headers = user
    response = client.post(
        "/api/auth/profile/avatar",
        files={"file": ("me.png", b"\x89PNG fake", "image/png")},
        headers=headers,
    )
    assert response.status_code == 200
    url = response.json()["data"]["user"]["profile_image_url"]
    assert url.endswith(".png")
    assert f"/profiles/{account['user_id']}/" in url
    assert database.accounts.get_by_id(account["user_id"]).profile_image_url == url


def test_avatar_rejects_non_image(client, user):
    _, headers = user
    response = client.post(
        "/api/auth/profile/avatar",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=headers,
    )
    assert response.status_code == 400

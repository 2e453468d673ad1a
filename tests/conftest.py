import os

# Fake credentials so boto3 never reaches a real account
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")

from types import SimpleNamespace

import boto3
import pytest
from fastapi.testclient import TestClient
from moto import mock_aws

from app.core.config import Settings
from app.core.security import TokenCodec
from app.db.dynamo import Database
from app.main import create_app
from app.utils.llm import LLMClient
from app.utils.storage import AvatarStorage

REGION = "eu-west-1"
BUCKET = "test-avatars"


class StubCompletions:
    def __init__(self, reply="Keep going!", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class StubOpenAI:
    """Stands in for the OpenAI client object; only chat.completions.create is used."""

    def __init__(self, reply="Keep going!", error=None):
        self.completions = StubCompletions(reply, error)
        self.chat = SimpleNamespace(completions=self.completions)


def make_settings(**overrides) -> Settings:
    values = dict(
        JWT_SECRET_KEY="test-secret",
        DYNAMO_REGION=REGION,
        DYNAMO_USERS_TABLE="test-users",
        DYNAMO_INCOMES_TABLE="test-incomes",
        DYNAMO_EXPENSES_TABLE="test-expenses",
        S3_BUCKET_NAME=BUCKET,
        S3_REGION=REGION,
        UPLOAD_RETRY_BACKOFF_SECONDS=0,
        OPENAI_API_KEY=None,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def aws():
    with mock_aws():
        yield


@pytest.fixture
def database(settings, aws):
    db = Database(settings)
    db.create_tables()
    return db


@pytest.fixture
def storage(settings, aws):
    boto3.client("s3", region_name=REGION).create_bucket(
        Bucket=BUCKET,
        CreateBucketConfiguration={"LocationConstraint": REGION},
    )
    return AvatarStorage.from_settings(settings)


@pytest.fixture
def codec(settings):
    return TokenCodec.from_settings(settings)


@pytest.fixture
def app(settings, database, storage):
    return create_app(settings, database=database, llm=LLMClient(None), storage=storage)


@pytest.fixture
def client(app):
    return TestClient(app)


def register(client, email="jane@example.com", password="secret123", first_name="Jane", last_name="Doe"):
    response = client.post(
        "/api/auth/register",
        json={
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "password": password,
            "confirm_password": password,
        },
    )
    assert response.status_code == 201, response.text
    data = response.json()["data"]
    return data["user"], {"Authorization": f"Bearer {data['token']}"}


@pytest.fixture
def user(client):
    return register(client)


@pytest.fixture
def other_user(client):
    return register(client, email="john@example.com", first_name="John")

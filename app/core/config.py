from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


EXPENSE_CATEGORIES = [
    "Food",
    "Transport",
    "Entertainment",
    "Healthcare",
    "Shopping",
    "Bills",
    "Education",
    "Other",
]

INCOME_CATEGORIES = EXPENSE_CATEGORIES + [
    "Salary",
    "Freelance",
    "Investment",
    "Bonus",
    "Business",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App settings
    PROJECT_NAME: str = "FinanceTracker"
    API_PREFIX: str = "/api"
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )

    # DynamoDB
    DYNAMO_REGION: str = Field(default="eu-west-1")
    DYNAMO_ENDPOINT_URL: Optional[str] = Field(default=None)
    DYNAMO_USERS_TABLE: str = Field(default="finance-tracker-users")
    DYNAMO_INCOMES_TABLE: str = Field(default="finance-tracker-incomes")
    DYNAMO_EXPENSES_TABLE: str = Field(default="finance-tracker-expenses")

    # AWS S3 (profile images)
    S3_BUCKET_NAME: str = Field(default="finance-tracker-avatars")
    S3_REGION: str = Field(default="eu-west-1")
    S3_AVATAR_PREFIX: str = "profiles"
    S3_TIMEOUT_SECONDS: int = 30
    UPLOAD_MAX_ATTEMPTS: int = 3
    UPLOAD_RETRY_BACKOFF_SECONDS: float = 2.0
    AVATAR_MAX_BYTES: int = 5 * 1024 * 1024

    # JWT Authentication
    JWT_SECRET_KEY: str = Field(default="change-me-in-production")
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # Text generation
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_SECONDS: float = 30.0

    # Transactions
    INCOME_CATEGORIES: List[str] = Field(default_factory=lambda: list(INCOME_CATEGORIES))
    EXPENSE_CATEGORIES: List[str] = Field(default_factory=lambda: list(EXPENSE_CATEGORIES))
    MAX_TIPS: int = 5

    # Registration policy
    CREATE_WELCOME_INCOME: bool = False
    WELCOME_INCOME_AMOUNT: Decimal = Decimal("0")
    WELCOME_INCOME_CATEGORY: str = "Other"

    @model_validator(mode="after")
    def check_welcome_income(self) -> "Settings":
        if self.WELCOME_INCOME_CATEGORY not in self.INCOME_CATEGORIES:
            raise ValueError(
                f"WELCOME_INCOME_CATEGORY '{self.WELCOME_INCOME_CATEGORY}' is not an income category"
            )
        if self.WELCOME_INCOME_AMOUNT < 0:
            raise ValueError("WELCOME_INCOME_AMOUNT must not be negative")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()

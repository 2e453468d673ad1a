from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class AccountRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


def _normalize_email(value: str) -> str:
    return value.strip().lower() if isinstance(value, str) else value


class UserCreate(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: str

    normalize_email = field_validator("email", mode="before")(_normalize_email)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class UserLogin(BaseModel):
    email: EmailStr
    password: str

    normalize_email = field_validator("email", mode="before")(_normalize_email)


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None

    normalize_email = field_validator("email", mode="before")(_normalize_email)


class StatusUpdate(BaseModel):
    status: AccountStatus


class UserInDB(BaseModel):
    user_id: str = Field(default_factory=lambda: str(uuid4()))
    email: EmailStr
    password_hash: Optional[str] = None
    first_name: str
    last_name: str
    profile_image_url: Optional[str] = None
    status: AccountStatus = AccountStatus.ACTIVE
    role: AccountRole = AccountRole.USER
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_suspended(self) -> bool:
        return self.status == AccountStatus.SUSPENDED

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN


class UserPublic(BaseModel):
    user_id: str
    email: EmailStr
    first_name: str
    last_name: str
    profile_image_url: Optional[str] = None
    status: AccountStatus
    role: AccountRole
    created_at: datetime

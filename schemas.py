# schemas.py
import math
from datetime import datetime
from typing import Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, field_validator

MIN_PASSWORD_LENGTH = 8
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def _check_name(value: str, message: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(message)
    return value


def _check_email(value: str) -> str:
    try:
        result = validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        raise ValueError("Email is not valid")
    return result.normalized


def _check_new_password(value: str) -> str:
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


def _check_token(value: str) -> str:
    if len(value) != 6 or not value.isdigit():
        raise ValueError("Token is not valid")
    return value


def _check_amount(value: float, message: str) -> float:
    if not math.isfinite(value) or value <= 0:
        raise ValueError(message)
    return value


# Auth


class UserCreate(BaseModel):
    name: str
    email: str
    password: str

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        return _check_name(v, "Name is required")

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return _check_new_password(v)


class UserLogin(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def password_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class UserUpdate(BaseModel):
    name: str
    email: str

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        return _check_name(v, "Name is required")

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _check_email(v)


class TokenIn(BaseModel):
    token: str

    @field_validator("token")
    @classmethod
    def token_format(cls, v: str) -> str:
        return _check_token(v)


class EmailIn(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _check_email(v)


class NewPassword(BaseModel):
    password: str

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return _check_new_password(v)


class PasswordCheck(BaseModel):
    password: str

    @field_validator("password")
    @classmethod
    def password_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class PasswordUpdate(BaseModel):
    current_password: str
    password: str

    @field_validator("current_password")
    @classmethod
    def current_password_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Current password is required")
        return v

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        return _check_new_password(v)


class UserProfile(BaseModel):
    id: int
    name: str
    email: str
    confirmed: bool

    class Config:
        from_attributes = True


class CurrentUser(BaseModel):
    """Request-scoped identity; never carries the password hash or token."""

    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    name: str
    email: str
    token: str


class ForgotPasswordResponse(BaseModel):
    email: str
    token: Optional[str] = None


class Message(BaseModel):
    message: str


# Budgets and expenses


class BudgetIn(BaseModel):
    name: str
    amount: float

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        return _check_name(v, "Name is required")

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float) -> float:
        return _check_amount(v, "Amount must be greater than zero")


class ExpenseIn(BaseModel):
    name: str
    amount: float

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        return _check_name(v, "Name of expense is required")

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float) -> float:
        return _check_amount(v, "Amount of expense must be greater than zero")


class ExpenseOut(BaseModel):
    id: int
    name: str
    amount: float
    budget_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BudgetOut(BaseModel):
    id: int
    name: str
    amount: float
    user_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BudgetDetail(BudgetOut):
    expenses: list[ExpenseOut] = []

    class Config:
        from_attributes = True

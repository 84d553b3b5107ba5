"""Auth request/response schemas: signup, login, sessions, password reset, mobile tokens."""

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("invalid email address")
    return value


def _check_password(value: str) -> str:
    if len(value) < 8:
        raise ValueError("password must be at least 8 characters")
    if not re.search(r"[A-Z]", value) or not re.search(r"[a-z]", value) or not re.search(r"\d", value):
        raise ValueError("password must contain an upper-case letter, a lower-case letter and a digit")
    return value


class SignupRequest(BaseModel):
    email: str = Field(max_length=255)
    username: str = Field(min_length=3, max_length=30)
    password: str = Field(max_length=128)
    recaptcha_token: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip().lower()
        if not USERNAME_PATTERN.match(v):
            raise ValueError("username may only contain letters, digits and underscores")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)


class LoginRequest(BaseModel):
    login: str = Field(min_length=1, max_length=255, description="Email or username")
    password: str = Field(min_length=1, max_length=128)
    recaptcha_token: Optional[str] = None


class SessionUser(BaseModel):
    username: str
    email: str
    role: str
    name: Optional[str] = None
    picture: Optional[str] = None
    is_email_verified: bool
    is_premium: bool


class SessionResponse(BaseModel):
    user: SessionUser


class PasswordResetRequest(BaseModel):
    email: str = Field(max_length=255)
    recaptcha_token: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class TokenRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128)


class TokenValidationResponse(BaseModel):
    valid: bool


class ChangePasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128)
    password: str = Field(max_length=128)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")
    user: SessionUser


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)

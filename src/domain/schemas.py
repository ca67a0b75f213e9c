"""Pydantic schemas validating credentials before they reach an engine."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field, field_validator


class LoginRequest(BaseModel):
    """Request schema for password login."""

    email: str = Field(..., min_length=1, description="User email address")
    password: str = Field(..., description="User password")

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class SignupRequest(BaseModel):
    """Request schema for account creation."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(
        ...,
        min_length=8,
        max_length=72,
        description="Password (8-72 characters)",
    )
    first_name: str = Field(..., min_length=1, max_length=128)
    last_name: str = Field(..., min_length=1, max_length=128)
    organization: str = Field(default="", max_length=200)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("first_name", "last_name", "organization")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

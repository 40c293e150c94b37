"""
Pydantic schemas for the portfolio API.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator


class CertificateStatus(str, Enum):
    IN_PROGRESS = "In Progress"
    UPCOMING = "Upcoming"
    PLANNED = "Planned"
    COMPLETED = "Completed"


def parse_tech_stack(value: Any) -> list[str]:
    """
    Accept a JSON array string, a comma-separated string or a list.

    List and JSON array input is kept exactly as sent. Only the
    comma-separated form, which is what a plain text input submits, is
    trimmed and has its empty entries dropped.
    """
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if not text.startswith("["):
            return [tag.strip() for tag in text.split(",") if tag.strip()]
        value = json.loads(text)
    if not isinstance(value, (list, tuple)) or not all(
        isinstance(item, str) for item in value
    ):
        raise ValueError("tech_stack must be a list of strings")
    return list(value)


def require_text(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        raise ValueError("must not be blank")
    return value


def describe_validation_errors(errors: list[dict]) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


class LoginRequest(BaseModel):
    username: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("username", "email")
    )
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    success: bool
    message: str


class AdminIdentity(BaseModel):
    id: Union[int, str]
    username: str


class CheckAuthResponse(BaseModel):
    authenticated: bool
    user: AdminIdentity


class MessageResponse(BaseModel):
    message: str


class ProjectFields(BaseModel):
    title: str = Field(..., min_length=1)
    short_description: Optional[str] = None
    full_description: Optional[str] = None
    tech_stack: list[str] = Field(default_factory=list)
    demo_url: Optional[str] = None
    repo_url: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: Any) -> Any:
        return require_text(value)

    @field_validator("tech_stack", mode="before")
    @classmethod
    def split_tech_stack(cls, value: Any) -> list[str]:
        return parse_tech_stack(value)


class CertificateFields(BaseModel):
    title: str = Field(..., min_length=1)
    issuer: Optional[str] = None
    issue_date: Optional[str] = None
    credential_url: Optional[str] = None
    status: CertificateStatus = CertificateStatus.COMPLETED
    progress_percent: int = Field(default=100, ge=0, le=100)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: Any) -> Any:
        return require_text(value)

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return CertificateStatus.COMPLETED
        return value

    @field_validator("progress_percent", mode="before")
    @classmethod
    def default_progress(cls, value: Any) -> Any:
        # Form submissions send an empty string for an untouched input.
        if value is None or (isinstance(value, str) and not value.strip()):
            return 100
        return value


class Project(BaseModel):
    id: Union[int, str]
    title: str
    short_description: Optional[str] = None
    full_description: Optional[str] = None
    tech_stack: list[str] = Field(default_factory=list)
    image_url: Optional[str] = None
    demo_url: Optional[str] = None
    repo_url: Optional[str] = None
    created_at: Optional[datetime] = None


class Certificate(BaseModel):
    id: Union[int, str]
    title: str
    issuer: Optional[str] = None
    issue_date: Optional[str] = None
    credential_url: Optional[str] = None
    image_url: Optional[str] = None
    status: str
    progress_percent: int
    created_at: Optional[datetime] = None

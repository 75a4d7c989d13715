"""Account schemas: user and organization registration, login, profiles."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, UUID4, field_validator, model_validator

from .common import AccountKind


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class UserRegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    confirm_password: str
    mobile_number: Optional[str] = None
    organization_id: Optional[UUID4] = None

    @field_validator("name", "username")
    @classmethod
    def strip_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def passwords_match(self) -> "UserRegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class OrganizationRegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    org_code: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    mobile: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=6, max_length=72)
    confirm_password: str
    description: Optional[str] = None
    address: Optional[str] = None

    @field_validator("org_code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def passwords_match(self) -> "OrganizationRegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class OrganizationLoginRequest(BaseModel):
    org_code: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserProfileUpdate(BaseModel):
    """Partial profile update. Only fields that are sent are applied."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    username: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    mobile_number: Optional[str] = None


class OrganizationProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    mobile: Optional[str] = Field(default=None, min_length=1, max_length=50)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserResponse(BaseModel):
    id: UUID4
    name: str
    username: str
    email: str
    mobile_number: Optional[str] = None
    organization_id: Optional[UUID4] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserSummary(BaseModel):
    id: UUID4
    name: str
    username: str
    email: Optional[str] = None

    model_config = {"from_attributes": True}


class OrganizationResponse(BaseModel):
    id: UUID4
    name: str
    org_code: str
    email: str
    description: Optional[str] = None
    address: Optional[str] = None
    mobile: str
    created_at: datetime

    model_config = {"from_attributes": True}


class OrganizationSummary(BaseModel):
    id: UUID4
    name: str
    org_code: str
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    account_kind: AccountKind
    account_id: str
    token: str
    message: str


class MeResponse(BaseModel):
    account_kind: AccountKind
    user: Optional[UserResponse] = None
    organization: Optional[OrganizationResponse] = None


class UserListResponse(BaseModel):
    users: List[UserSummary]


class OrganizationListResponse(BaseModel):
    organizations: List[OrganizationSummary]

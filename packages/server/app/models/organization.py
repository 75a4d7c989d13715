"""Organization account model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    org_code: str = Field(unique=True, nullable=False, index=True)  # upper-cased
    email: str = Field(unique=True, nullable=False, index=True)
    password_hash: str = Field(nullable=False)
    description: Optional[str] = None
    address: Optional[str] = None
    mobile: str = Field(nullable=False)

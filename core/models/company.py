"""Company domain models."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class CompanyType(str, Enum):
    PROSPECT = "prospect"
    CUSTOMER = "customer"
    PARTNER = "partner"
    VENDOR = "vendor"
    COMPETITOR = "competitor"
    OTHER = "other"


class CompanyProfile(BaseModel):
    """The company fields health scoring reads."""

    type: CompanyType = CompanyType.PROSPECT
    website: str | None = None
    phone_main: str | None = None
    email: str | None = None
    industry: str = "other"
    size: str | None = None
    annual_revenue: Decimal | None = Field(None, ge=0)

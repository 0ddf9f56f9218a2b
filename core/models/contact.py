"""Contact domain models."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.custom_fields import CustomFieldValue


class ContactStatus(str, Enum):
    """Relationship status."""

    LEAD = "lead"
    PROSPECT = "prospect"
    CUSTOMER = "customer"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class LifecycleStage(str, Enum):
    """Marketing/sales funnel position."""

    SUBSCRIBER = "subscriber"
    LEAD = "lead"
    MARKETING_QUALIFIED = "marketing_qualified"
    SALES_QUALIFIED = "sales_qualified"
    OPPORTUNITY = "opportunity"
    CUSTOMER = "customer"
    EVANGELIST = "evangelist"


class ContactProfile(BaseModel):
    """The contact fields lead scoring reads."""

    status: ContactStatus = ContactStatus.LEAD
    lifecycle_stage: LifecycleStage = LifecycleStage.LEAD
    email_opt_in: bool = True
    job_title: str | None = Field(None, max_length=100)
    phone_primary: str | None = None
    phone_mobile: str | None = None
    company_id: UUID | None = None
    linkedin_url: str | None = None
    custom_fields: dict[str, CustomFieldValue] = Field(default_factory=dict)

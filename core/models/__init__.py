"""Core domain models."""

from core.models.contact import ContactProfile, ContactStatus, LifecycleStage
from core.models.company import CompanyProfile, CompanyType
from core.models.deal import DealStage, ForecastCategory, StageHistoryEntry

__all__ = [
    # Contact
    "ContactProfile", "ContactStatus", "LifecycleStage",
    # Company
    "CompanyProfile", "CompanyType",
    # Deal
    "DealStage", "ForecastCategory", "StageHistoryEntry",
]

"""Derived fields computed before a record is saved.

Pure functions: callers pass the record's current values and store the
results. Nothing here touches the database.
"""

import math
from datetime import datetime
from uuid import UUID

from core.models.company import CompanyProfile, CompanyType
from core.models.contact import ContactProfile, LifecycleStage
from core.models.deal import DealStage, ForecastCategory, StageHistoryEntry

MAX_SCORE = 100

LIFECYCLE_STAGE_SCORES = {
    LifecycleStage.SUBSCRIBER: 5,
    LifecycleStage.LEAD: 10,
    LifecycleStage.MARKETING_QUALIFIED: 20,
    LifecycleStage.SALES_QUALIFIED: 30,
    LifecycleStage.OPPORTUNITY: 40,
    LifecycleStage.CUSTOMER: 50,
    LifecycleStage.EVANGELIST: 60,
}

STAGE_PROBABILITIES = {
    DealStage.QUALIFICATION: 10,
    DealStage.NEEDS_ANALYSIS: 25,
    DealStage.PROPOSAL: 50,
    DealStage.NEGOTIATION: 75,
    DealStage.CLOSED_WON: 100,
    DealStage.CLOSED_LOST: 0,
}


def compute_lead_score(contact: ContactProfile) -> int:
    """Engagement + profile completeness + funnel position, capped at 100."""
    score = 0

    if contact.email_opt_in:
        score += 10

    if contact.job_title:
        score += 10
    if contact.phone_primary or contact.phone_mobile:
        score += 10
    if contact.company_id:
        score += 15
    if contact.linkedin_url:
        score += 5

    score += LIFECYCLE_STAGE_SCORES.get(contact.lifecycle_stage, 0)

    return min(score, MAX_SCORE)


def compute_health_score(company: CompanyProfile) -> int:
    """Base 50 plus profile completeness and relationship bonuses, capped at 100."""
    score = 50

    for present in (
        company.website,
        company.phone_main,
        company.email,
        company.industry != "other",
        company.size,
    ):
        if present:
            score += 5

    if company.type == CompanyType.CUSTOMER:
        score += 20
    elif company.type == CompanyType.PARTNER:
        score += 15

    if company.annual_revenue:
        score += 5

    return min(score, MAX_SCORE)


def stage_probability(stage: DealStage) -> int:
    """Default win probability (percent) for a pipeline stage."""
    return STAGE_PROBABILITIES[stage]


def forecast_category(stage: DealStage, probability: int) -> ForecastCategory:
    if stage.is_closed:
        return ForecastCategory.CLOSED
    if probability >= 75:
        return ForecastCategory.COMMIT
    if probability >= 50:
        return ForecastCategory.BEST_CASE
    return ForecastCategory.PIPELINE


def rotate_stage_history(
    history: list[StageHistoryEntry],
    new_stage: DealStage,
    now: datetime,
    moved_by: UUID | None = None,
) -> list[StageHistoryEntry]:
    """
    Record a stage change.

    Closes the current entry with its whole-day duration and appends the
    new stage. Returns a new list; the input is not modified. Moving to
    the stage the deal is already in is not a change.
    """
    if history and history[-1].stage == new_stage:
        return list(history)

    rotated = list(history)
    if rotated:
        current = rotated[-1]
        elapsed_days = math.floor((now - current.entered_at).total_seconds() / 86400)
        rotated[-1] = current.model_copy(update={"duration_days": max(elapsed_days, 0)})

    rotated.append(StageHistoryEntry(stage=new_stage, entered_at=now, moved_by=moved_by))
    return rotated

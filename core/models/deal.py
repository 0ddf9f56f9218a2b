"""Deal domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class DealStage(str, Enum):
    """Pipeline stage, in pipeline order."""

    QUALIFICATION = "qualification"
    NEEDS_ANALYSIS = "needs_analysis"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"

    @property
    def is_closed(self) -> bool:
        return self in (DealStage.CLOSED_WON, DealStage.CLOSED_LOST)


class ForecastCategory(str, Enum):
    PIPELINE = "pipeline"
    BEST_CASE = "best_case"
    COMMIT = "commit"
    CLOSED = "closed"


class StageHistoryEntry(BaseModel):
    """One visit to a stage. duration_days is set when the deal leaves it."""

    stage: DealStage
    entered_at: datetime
    duration_days: int | None = Field(None, ge=0)
    moved_by: UUID | None = None

"""Pydantic schemas for AI venue recommendations."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from outing_planner.models.venue_option import VerificationStatus


class VenueSuggestion(BaseModel):
    """One venue returned by the recommendation service."""

    place_id: Optional[UUID] = None
    external_place_name: Optional[str] = None
    ai_score: Optional[float] = None
    reasoning: Optional[str] = None
    verification_status: Optional[VerificationStatus] = None


class RecommendationProgress(BaseModel):
    """Progress record stored in ``events.ai_analysis_progress``."""

    current_step: int
    current_step_name: str
    progress_percentage: int = 0
    preferences_collected: int = 0
    total_participants: int = 0
    search_radius_km: Optional[float] = None
    venues_found: Optional[int] = None
    final_recommendations_count: Optional[int] = None
    timed_out: bool = False
    error: Optional[str] = None
    last_updated: datetime


class RecommendationTrigger(BaseModel):
    actor_id: UUID
    location: Optional[str] = None
    radius_km: Optional[float] = Field(None, gt=0)


class RecommendationTriggerOut(BaseModel):
    event_id: UUID
    status: str
    accepted: bool = True

"""AI recommendation API routes."""
import logging
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, status

from outing_planner.models.event import EventStatus
from outing_planner.schemas.recommendation import (
    RecommendationProgress,
    RecommendationTrigger,
    RecommendationTriggerOut,
)
from outing_planner.services.recommendation_coordinator import RecommendationCoordinator, get_coordinator

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/{event_id}/recommendations",
    response_model=RecommendationTriggerOut,
    status_code=status.HTTP_202_ACCEPTED,
)
def trigger_recommendations(
    event_id: UUID,
    payload: RecommendationTrigger,
    coordinator: RecommendationCoordinator = Depends(get_coordinator),
):
    """Start recommendation generation; the result arrives asynchronously."""
    coordinator.trigger(event_id, payload.actor_id, payload.location, payload.radius_km)
    return RecommendationTriggerOut(event_id=event_id, status=EventStatus.ai_recommending.value)


@router.get("/{event_id}/recommendations/progress", response_model=Optional[RecommendationProgress])
def recommendation_progress(
    event_id: UUID,
    coordinator: RecommendationCoordinator = Depends(get_coordinator),
):
    return coordinator.progress(event_id)

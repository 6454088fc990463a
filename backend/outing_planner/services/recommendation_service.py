"""External venue recommendation service.

The coordinator only depends on ``generate_recommendations``; the default
implementation asks an OpenAI chat model for a JSON list of venues.
"""
import json
import logging
import uuid
from typing import Optional, Protocol

from openai import OpenAI

from outing_planner.config import settings
from outing_planner.schemas.recommendation import VenueSuggestion

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You recommend venues for corporate group outings.
Given the participants' preferences, answer with a JSON object of the form
{"venues": [{"name": "...", "score": 0.0-1.0, "reasoning": "..."}]}.
Return at most 5 venues, best first. Return an empty list if nothing fits."""


class RecommendationService(Protocol):
    def generate_recommendations(
        self,
        event_id: uuid.UUID,
        preferences: list[dict],
        location: Optional[str] = None,
        radius_km: Optional[float] = None,
    ) -> list[VenueSuggestion]:
        ...


class OpenAIRecommendationService:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL

    def generate_recommendations(
        self,
        event_id: uuid.UUID,
        preferences: list[dict],
        location: Optional[str] = None,
        radius_km: Optional[float] = None,
    ) -> list[VenueSuggestion]:
        if not self.api_key or self.api_key == "your-api-key-here":
            logger.warning("OpenAI API key not configured; no recommendations for event %s", event_id)
            return []

        request = {
            "preferences": preferences,
            "location": location,
            "radius_km": radius_km,
        }
        client = OpenAI(api_key=self.api_key)
        response = client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps(request, default=str)},
            ],
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content or "{}"
        if response.usage:
            logger.info("Recommendation call for event %s used %d tokens", event_id, response.usage.total_tokens)
        return parse_venues(content)


def parse_venues(content: str) -> list[VenueSuggestion]:
    try:
        payload = json.loads(content)
    except json.JSONDecodeError:
        logger.error("Recommendation service returned invalid JSON: %.200s", content)
        return []
    if not isinstance(payload, dict):
        return []

    items = payload.get("venues") or []
    if not isinstance(items, list):
        return []

    venues = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not name:
            continue
        venues.append(VenueSuggestion(
            external_place_name=name,
            ai_score=item.get("score"),
            reasoning=item.get("reasoning"),
        ))
    return venues

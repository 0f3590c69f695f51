"""Next-best-action recommendations.

``NextBestActionAgent`` asks the LLM for structured recommendations about a
contact. Any failure of the completion (error, timeout) degrades to
deterministic heuristics over the request context, so the agent always
answers with at least one recommendation.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import Field, TypeAdapter, ValidationError

from ..completion import TextCompletion
from ..schemas.base import BaseSchema
from ..schemas.domain import AgentRequest

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECOMMENDATIONS = 3


class Recommendation(BaseSchema):
    action_type: str = "follow_up"
    priority: int = Field(default=1, ge=1)
    description: str
    reasoning: str = ""
    timing: str = "As soon as possible"
    expected_outcome: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


_RECOMMENDATIONS = TypeAdapter(List[Recommendation])


def action_type_for(text: str) -> str:
    lowered = text.lower()
    if "call" in lowered or "phone" in lowered:
        return "call"
    if "email" in lowered or "send" in lowered:
        return "email"
    if "meeting" in lowered or "schedule" in lowered:
        return "schedule_meeting"
    if "nurture" in lowered or "content" in lowered:
        return "nurture"
    return "follow_up"


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def rule_based_recommendations(
    context: Mapping[str, Any], *, max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS
) -> List[Recommendation]:
    """Deterministic recommendations derived from well-known context keys."""
    out: List[Recommendation] = []

    days_idle = _as_int(context.get("days_since_last_contact"))
    if days_idle >= 14:
        out.append(
            Recommendation(
                action_type="call",
                description=f"Call the contact; no interaction in {days_idle} days",
                reasoning="Long gap since last contact",
                timing="Today",
                expected_outcome="Re-engaged contact",
                confidence=0.6,
            )
        )

    sentiment = str(context.get("last_interaction_sentiment") or "").lower()
    if sentiment == "negative":
        out.append(
            Recommendation(
                action_type="call",
                description="Reach out personally to address concerns raised in the last interaction",
                reasoning="Last interaction sentiment was negative",
                timing="Within 24 hours",
                expected_outcome="Resolved concerns",
                confidence=0.6,
            )
        )

    pending = _as_int(context.get("pending_tasks"))
    if pending > 0:
        out.append(
            Recommendation(
                action_type="follow_up",
                description=f"Complete or follow up on {pending} pending task(s)",
                reasoning="Open tasks are waiting",
                timing="This week",
                expected_outcome="No outstanding commitments",
            )
        )

    if context.get("has_upcoming_appointment"):
        out.append(
            Recommendation(
                action_type="schedule_meeting",
                description="Confirm the upcoming appointment with the contact",
                reasoning="An appointment is scheduled",
                timing="One day before the appointment",
                expected_outcome="Confirmed attendance",
            )
        )

    stage = str(context.get("stage") or context.get("current_stage") or "").lower()
    if stage in ("new", "lead", "prospect"):
        out.append(
            Recommendation(
                action_type="nurture",
                description="Send relevant introductory content to the new lead",
                reasoning=f"Contact is in the '{stage}' stage",
                timing="This week",
                expected_outcome="Warmer lead",
            )
        )

    if not out:
        out.append(
            Recommendation(
                action_type="follow_up",
                description="Follow up with contact to maintain engagement",
                reasoning="Default recommendation",
                timing="Within 24 hours",
                expected_outcome="Maintain contact relationship",
            )
        )

    ranked = out[: max(1, max_recommendations)]
    return [r.model_copy(update={"priority": i}) for i, r in enumerate(ranked, start=1)]


def parse_recommendations(text: str, *, max_recommendations: int) -> List[Recommendation]:
    """
    Parse an LLM answer into recommendations.

    A JSON object with a ``recommendations`` list (or a bare JSON list) is
    preferred; otherwise each sufficiently long line becomes one
    recommendation.
    """
    start, end = text.find("{"), text.rfind("}")
    list_start, list_end = text.find("["), text.rfind("]")
    try:
        if start >= 0 and end > start and (list_start < 0 or start < list_start):
            payload = json.loads(text[start : end + 1]).get("recommendations")
        elif list_start >= 0 and list_end > list_start:
            payload = json.loads(text[list_start : list_end + 1])
        else:
            payload = None
        if payload is not None:
            parsed = _RECOMMENDATIONS.validate_python(payload)
            if parsed:
                return parsed[:max_recommendations]
    except (ValueError, AttributeError, ValidationError) as exc:
        logger.debug("Recommendation JSON not usable; parsing lines; error=%s", type(exc).__name__)

    out: List[Recommendation] = []
    for line in text.splitlines():
        stripped = line.strip().lstrip("-*0123456789. )").strip()
        if len(stripped) <= 10:
            continue
        out.append(
            Recommendation(
                action_type=action_type_for(stripped),
                priority=len(out) + 1,
                description=stripped,
                reasoning="Generated by LLM analysis",
            )
        )
        if len(out) >= max_recommendations:
            break
    return out


class NextBestActionAgent:
    """
    Recommend next actions for a contact.

    Args:
        completion: LLM boundary; ``None`` uses the rule-based path only.
        timeout: Seconds allowed for one completion.
    """

    def __init__(self, completion: Optional[TextCompletion] = None, *, timeout: float = 15.0) -> None:
        self._completion = completion
        self._timeout = timeout

    async def recommend_next_best_actions(
        self, context: Mapping[str, Any], *, max_recommendations: int = DEFAULT_MAX_RECOMMENDATIONS
    ) -> List[Recommendation]:
        if self._completion is None:
            return rule_based_recommendations(context, max_recommendations=max_recommendations)

        prompt = self._build_prompt(context, max_recommendations)
        try:
            text = await asyncio.wait_for(
                self._completion.complete(prompt, max_tokens=600, temperature=0.2),
                timeout=self._timeout,
            )
            recommendations = parse_recommendations(text, max_recommendations=max_recommendations)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "NBA recommendation failed; falling back to rule-based recommendations; error=%s",
                type(exc).__name__,
            )
            return rule_based_recommendations(context, max_recommendations=max_recommendations)

        if not recommendations:
            logger.warning("NBA recommendation returned nothing usable; falling back to rule-based recommendations")
            return rule_based_recommendations(context, max_recommendations=max_recommendations)
        return recommendations

    @staticmethod
    def _build_prompt(context: Mapping[str, Any], max_recommendations: int) -> str:
        return (
            f"Recommend up to {max_recommendations} next best actions for this contact.\n"
            "Respond with JSON: {\"recommendations\": [{\"action_type\", \"priority\", "
            "\"description\", \"reasoning\", \"timing\", \"expected_outcome\", \"confidence\"}]}\n\n"
            f"Contact context:\n{json.dumps(dict(context), default=str, indent=2)}\n"
        )

    async def handle(self, request: AgentRequest) -> Dict[str, Any]:
        max_recs = _as_int(request.context.get("max_recommendations"), DEFAULT_MAX_RECOMMENDATIONS)
        recommendations = await self.recommend_next_best_actions(request.context, max_recommendations=max_recs)
        return {"recommendations": [r.model_dump() for r in recommendations]}

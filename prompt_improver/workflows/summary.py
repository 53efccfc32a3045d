"""Improvement summary stored with a finished task."""

import logging
from typing import Any, Dict, List, Optional

from .orchestrator import ImprovementRequest, OrchestrationResult, RunStatus
from .session import FinalDecision, Session

logger = logging.getLogger(__name__)


BASELINE_SCORE = 80

# keyword -> technique, matched in lower-cased agent feedback
TECHNIQUE_KEYWORDS = [
    (("chain", "reasoning"), "Chain-of-Thought"),
    (("example", "demonstration"), "Few-Shot"),
    (("role", "persona"), "Role-Based"),
    (("context", "background"), "Context-Enhanced"),
]
DEFAULT_TECHNIQUES = ["Multi-Agent Collaboration", "Iterative Refinement"]

EXPECTED_RESULTS = [
    "Improved prompt clarity through multi-agent review",
    "Enhanced specificity via iterative feedback",
    "Better target audience alignment",
    "Reduced ambiguity through collaborative analysis",
]


def quality_score(session: Session) -> int:
    """Heuristic 0..100 score for the run as a whole."""
    score = BASELINE_SCORE
    if session.final_decision == FinalDecision.approve:
        score += 10
    score += min(session.rounds_completed * 2, 10)
    if session.final_decision == FinalDecision.reject:
        score -= 15
    if session.latest_recommendation == "APPROVE":
        score += 5
    elif session.latest_recommendation == "APPROVE_WITH_NOTES":
        score += 3
    return max(0, min(100, score))


def applied_techniques(session: Session) -> List[str]:
    techniques: List[str] = []
    for record in session.records:
        content = " ".join(
            [record.review.reasoning, *record.review.suggestions, record.engineer.reasoning]
        ).lower()
        for keywords, technique in TECHNIQUE_KEYWORDS:
            if technique not in techniques and any(k in content for k in keywords):
                techniques.append(technique)
    return techniques or list(DEFAULT_TECHNIQUES)


def identified_problems(session: Session) -> List[str]:
    problems: List[str] = []
    for record in session.records:
        for weakness in record.review.weaknesses:
            if weakness not in problems:
                problems.append(weakness)
    return problems


def collaboration_quality(session: Session) -> str:
    if session.rounds_completed == 0:
        return "poor"
    if session.rounds_completed >= 3 and session.final_decision == FinalDecision.approve:
        return "excellent"
    if session.rounds_completed >= 2:
        return "good"
    return "acceptable"


def build_improvement(
    result: OrchestrationResult,
    request: ImprovementRequest,
    duration_seconds: Optional[float] = None,
) -> Optional[Dict[str, Any]]:
    """
    Summarize a finished run for storage and API responses.

    Returns None unless the run finished with a usable prompt
    (approved or exhausted).
    """
    if result.status not in (RunStatus.approved, RunStatus.exhausted) or result.final_prompt is None:
        logger.info(f"Run {request.task_id}: no improvement recorded for {result.status.value} run")
        return None

    session = result.session
    score = quality_score(session)
    return {
        "improved_prompt": result.final_prompt,
        "quality_score": score,
        "provider_used": request.provider.provider.value,
        "model_used": request.provider.model_name,
        "analysis": {
            "main_goal": f"Multi-agent prompt improvement with {session.rounds_completed} rounds",
            "session_summary": session.summary(),
            "final_decision": session.final_decision.value,
            "feedback_count": session.feedback_count,
            "latest_recommendation": session.latest_recommendation,
            "identified_problems": identified_problems(session),
        },
        "metadata": {
            "quality_score": score,
            "applied_techniques": applied_techniques(session),
            "expected_results": list(EXPECTED_RESULTS),
            "multi_agent_metrics": {
                "rounds_completed": session.rounds_completed,
                "feedback_interactions": session.feedback_count,
                "final_decision": session.final_decision.value,
                "session_duration": duration_seconds,
                "collaboration_quality": collaboration_quality(session),
            },
        },
    }

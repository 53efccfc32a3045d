"""
Validated agent outputs.

Each agent role has one pydantic model listing the fields that role must
produce. The models are joined into ``AgentResult``, a union discriminated
on ``role``, so the rest of the workflow never inspects raw dictionaries.
"""

import logging
import math
from enum import Enum
from typing import Annotated, Any, List, Literal, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)


class AgentRole(str, Enum):
    """The three members of the collaboration team."""
    ENGINEER = "engineer"
    REVIEWER = "reviewer"
    LEAD = "lead"


class Decision(str, Enum):
    """Lead verdict that drives the orchestrator state machine."""
    CONTINUE = "continue"
    APPROVE = "approve"
    RESTART = "restart"

    @classmethod
    def parse(cls, token: Any) -> Tuple["Decision", bool]:
        """
        Normalize a free-text decision token.

        Returns:
            Tuple of (decision, recognized). Unrecognized tokens map to
            CONTINUE with recognized=False.
        """
        normalized = str(token or "").strip().strip(".!\"'").lower()
        try:
            return cls(normalized), True
        except ValueError:
            return cls.CONTINUE, False


# Word-valued confidence seen in older agent replies
_WORD_SCORES = {"high": 90, "medium": 70, "low": 40}

# Score assumed when the reviewer gives a recommendation but no number
RECOMMENDATION_SCORES = {
    "APPROVE": 95,
    "APPROVE_WITH_NOTES": 80,
    "NEEDS_IMPROVEMENT": 65,
    "NEEDS_REVISION": 65,
    "REJECT": 45,
}
DEFAULT_REVIEW_SCORE = 75


def clamp_score(value: Any) -> int:
    """Coerce a model-reported score into an integer in [0, 100]."""
    if isinstance(value, bool):
        raise ValueError("score must be a number")
    if isinstance(value, str):
        text = value.strip().rstrip("%").lower()
        if text in _WORD_SCORES:
            return _WORD_SCORES[text]
        value = float(text)
    if not isinstance(value, (int, float)):
        raise ValueError("score must be a number")
    if isinstance(value, float):
        if math.isnan(value):
            raise ValueError("score must be a number")
        if math.isinf(value):
            return 100 if value > 0 else 0
    return max(0, min(100, int(round(value))))


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return [str(value)]


class _AgentOutput(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class EngineerResult(_AgentOutput):
    """Improved prompt proposed by the Engineer."""
    role: Literal["engineer"] = "engineer"
    improved_prompt: str = Field(..., min_length=1)
    reasoning: str = ""
    techniques: List[str] = Field(default_factory=list)
    changes_made: List[str] = Field(default_factory=list)

    @field_validator("improved_prompt")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("improved_prompt is blank")
        return v.strip()

    @field_validator("techniques", "changes_made", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> List[str]:
        return _string_list(v)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v)


class ReviewerResult(_AgentOutput):
    """Quality assessment of a candidate prompt against the original."""
    role: Literal["reviewer"] = "reviewer"
    recommendation: str = Field(..., min_length=1)
    quality_score: int = DEFAULT_REVIEW_SCORE
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    reasoning: str = Field(default="", validation_alias=AliasChoices("reasoning", "feedback"))

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        assessment = data.get("quality_assessment")
        if data.get("quality_score") is None and isinstance(assessment, dict):
            data["quality_score"] = assessment.get("overall_score")
        analysis = data.get("detailed_analysis")
        if isinstance(analysis, dict):
            data.setdefault("strengths", analysis.get("strengths"))
            data.setdefault("weaknesses", analysis.get("identified_issues"))
            data.setdefault("suggestions", analysis.get("improvement_opportunities"))
        if data.get("quality_score") is None:
            recommendation = str(data.get("recommendation") or "").strip().upper()
            data["quality_score"] = RECOMMENDATION_SCORES.get(recommendation, DEFAULT_REVIEW_SCORE)
        return data

    @field_validator("recommendation")
    @classmethod
    def _upper(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("recommendation is blank")
        return v.strip().upper()

    @field_validator("quality_score", mode="before")
    @classmethod
    def _score(cls, v: Any) -> int:
        return clamp_score(v)

    @field_validator("strengths", "weaknesses", "suggestions", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> List[str]:
        return _string_list(v)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v)


class LeadResult(_AgentOutput):
    """Lead verdict for the round."""
    role: Literal["lead"] = "lead"
    decision_token: str = Field(..., min_length=1, validation_alias=AliasChoices("decision", "action", "decision_token"))
    reasoning: str = Field(..., min_length=1, validation_alias=AliasChoices("reasoning", "reason"))
    confidence: int = Field(default=85, validation_alias=AliasChoices("confidence_level", "confidence"))
    next_steps: str = ""

    @field_validator("decision_token", "reasoning", mode="before")
    @classmethod
    def _required_text(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            raise ValueError("value is blank")
        return str(v).strip()

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v: Any) -> int:
        return clamp_score(v)

    @field_validator("next_steps", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @computed_field
    @property
    def decision(self) -> Decision:
        return Decision.parse(self.decision_token)[0]

    @computed_field
    @property
    def decision_recognized(self) -> bool:
        return Decision.parse(self.decision_token)[1]


AgentResult = Annotated[
    Union[EngineerResult, ReviewerResult, LeadResult],
    Field(discriminator="role"),
]

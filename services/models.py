from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class RiskLevel(str, Enum):
    SAFE = "safe"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Canonical thresholds, highest first. Every risk level in the service is
# derived from this table.
RISK_LEVEL_THRESHOLDS = [
    (80, RiskLevel.CRITICAL),
    (60, RiskLevel.HIGH),
    (40, RiskLevel.MEDIUM),
    (20, RiskLevel.LOW),
]

CLASSIFICATIONS = {
    RiskLevel.SAFE: "Safe",
    RiskLevel.LOW: "Safe",
    RiskLevel.MEDIUM: "Suspicious",
    RiskLevel.HIGH: "Phishing",
    RiskLevel.CRITICAL: "Phishing",
}


def risk_level_for(score: int) -> RiskLevel:
    for threshold, level in RISK_LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return RiskLevel.SAFE


def clamp_score(score: int) -> int:
    return max(0, min(100, int(score)))


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmailSample(CamelModel):
    """Raw email text submitted for analysis. Nothing here is validated."""

    subject: str = ""
    sender: str = ""
    content: str = ""

    @field_validator("subject", "sender", "content", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value


class AnalysisResult(CamelModel):
    risk_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    flagged_keywords: List[str] = Field(default_factory=list)
    suspicious_links: List[str] = Field(default_factory=list)
    reasoning: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    classification: str = "Safe"
    threats: List[str] = Field(default_factory=list)
    analysis_method: str = "heuristic"

    @classmethod
    def build(cls, risk_score: int, **kwargs) -> "AnalysisResult":
        """Clamp the score and derive level and classification from it."""
        score = clamp_score(risk_score)
        level = risk_level_for(score)
        return cls(
            risk_score=score,
            risk_level=level,
            classification=CLASSIFICATIONS[level],
            **kwargs,
        )

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---------- Request / response bodies ----------

class AnalyzeEmailRequest(CamelModel):
    email_content: str
    user_id: Optional[str] = None


class ScanRequest(BaseModel):
    action: str


class ScanResultItem(BaseModel):
    email: str
    risk: RiskLevel
    score: int


class ScanSummary(BaseModel):
    success: bool = True
    message: str
    results: List[ScanResultItem] = Field(default_factory=list)


class LoginRequest(BaseModel):
    email: str
    password: str


class EmailAccountCreate(BaseModel):
    email_address: str
    provider: str = "gmail"

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, value: str) -> str:
        value = value.lower()
        if value not in {"gmail", "outlook", "yahoo", "imap"}:
            raise ValueError(f"unsupported provider: {value}")
        return value

    @field_validator("email_address")
    @classmethod
    def _looks_like_email(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value:
            raise ValueError("email_address must contain '@'")
        return value

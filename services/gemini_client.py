import json
from typing import List, Literal, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from services.config import Settings
from services.errors import AIAnalysisError
from services.logging_utils import get_logger
from services.models import AnalysisResult, EmailSample
from services.url_analysis import analyze_url_reputation, extract_links

logger = get_logger(__name__)

MAX_BODY_CHARS = 8000

EMAIL_ANALYSIS_PROMPT = """
Analyze this email for phishing and security threats.

You MUST respond ONLY in valid JSON with this exact structure:

{{
  "riskScore": 0-100,
  "classification": "Safe" | "Suspicious" | "Phishing",
  "explanation": "detailed explanation",
  "highlightedKeywords": ["array", "of", "suspicious", "keywords"],
  "suspiciousLinks": ["array", "of", "suspicious", "urls"],
  "threats": ["array", "of", "identified", "threats"],
  "confidence": 0-1
}}

Email Metadata:
From: {sender}
Subject: {subject}

System Detected Warnings (heuristic analysis):
{warnings_section}

Email content to analyze:
{body}
"""


class GeminiVerdict(BaseModel):
    """The JSON object we ask Gemini to return. Anything else is rejected."""

    riskScore: int = Field(ge=0, le=100)
    classification: Literal["Safe", "Suspicious", "Phishing"]
    explanation: str
    highlightedKeywords: List[str] = Field(default_factory=list)
    suspiciousLinks: List[str] = Field(default_factory=list)
    threats: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)


def build_prompt(sample: EmailSample) -> str:
    warnings = analyze_url_reputation(extract_links(sample.content))
    if warnings:
        warnings_section = "\n".join(f"CRITICAL: {w}" for w in warnings)
    else:
        warnings_section = "None."

    body = sample.content
    if len(body) > MAX_BODY_CHARS:
        body = body[:MAX_BODY_CHARS] + "\n...[TRUNCATED]..."

    return EMAIL_ANALYSIS_PROMPT.format(
        sender=sample.sender or "(unknown)",
        subject=sample.subject or "(none)",
        warnings_section=warnings_section,
        body=body,
    )


def parse_verdict(data: dict) -> GeminiVerdict:
    """
    Pull the candidate text out of a generateContent response and decode
    it as a GeminiVerdict. Raises AIAnalysisError on any mismatch.
    """
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        raise AIAnalysisError("No analysis result from Gemini")

    try:
        return GeminiVerdict.model_validate(json.loads(text))
    except (TypeError, json.JSONDecodeError, ValidationError) as exc:
        raise AIAnalysisError(f"Gemini response did not match schema: {exc}") from exc


def verdict_to_result(verdict: GeminiVerdict) -> AnalysisResult:
    # Level and classification come from the score, not from the model's label
    return AnalysisResult.build(
        verdict.riskScore,
        flagged_keywords=verdict.highlightedKeywords,
        suspicious_links=verdict.suspiciousLinks,
        reasoning=verdict.explanation,
        confidence=verdict.confidence,
        threats=verdict.threats,
        analysis_method="ai",
    )


class GeminiClient:
    """Calls the Gemini generateContent API to classify an email."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    @property
    def model_name(self) -> str:
        return self.settings.gemini_model

    def _endpoint(self) -> str:
        return f"{self.settings.gemini_api_base}/models/{self.settings.gemini_model}:generateContent"

    async def classify(self, sample: EmailSample) -> AnalysisResult:
        if not self.settings.gemini_api_key:
            raise AIAnalysisError("Gemini API key not configured")

        payload = {
            "contents": [{"parts": [{"text": build_prompt(sample)}]}],
            "generationConfig": {
                "temperature": 0.1,
                "topK": 1,
                "topP": 1,
                "maxOutputTokens": 2048,
                "responseMimeType": "application/json",
            },
        }

        async with httpx.AsyncClient(
            timeout=self.settings.ai_timeout_seconds,
            transport=self._transport,
        ) as client:
            resp = await client.post(
                self._endpoint(),
                params={"key": self.settings.gemini_api_key},
                json=payload,
            )

        if resp.status_code != 200:
            logger.error(
                "gemini api error",
                extra={"status_code": resp.status_code, "body": resp.text[:500]},
            )
            raise AIAnalysisError(f"Gemini API error: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise AIAnalysisError("Gemini returned a non-JSON body") from exc

        verdict = parse_verdict(data)
        logger.debug("gemini verdict", extra={"risk_score": verdict.riskScore})
        return verdict_to_result(verdict)

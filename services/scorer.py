from services.models import AnalysisResult, EmailSample, RiskLevel
from services.url_analysis import extract_links, is_suspicious_link

PHISHING_KEYWORDS = [
    "urgent",
    "verify",
    "suspended",
    "click here",
    "banking details",
    "won",
    "lottery",
    "congratulations",
    "claim",
    "prize",
]

SUSPICIOUS_SENDER_MARKERS = ["update", "security", ".biz"]

KEYWORD_WEIGHT = 15
LINK_WEIGHT = 20
SENDER_WEIGHT = 10

HEURISTIC_REASONING = (
    "Email analysis based on content patterns, sender reputation, and link safety."
)


def score_email(sample: EmailSample, confidence=None) -> AnalysisResult:
    """
    Deterministic keyword/link/sender scoring of an email sample.

    Used directly by batch scans and as the fallback when the AI path
    fails. Never raises: empty fields just match nothing.
    """
    subject = (sample.subject or "").lower()
    content = sample.content or ""
    sender = sample.sender or ""

    score = 0
    flagged_keywords = []
    suspicious_links = []

    lowered = content.lower()
    for keyword in PHISHING_KEYWORDS:
        if keyword in subject or keyword in lowered:
            flagged_keywords.append(keyword)
            score += KEYWORD_WEIGHT

    for link in extract_links(content):
        if is_suspicious_link(link):
            suspicious_links.append(link)
            score += LINK_WEIGHT

    if any(marker in sender for marker in SUSPICIOUS_SENDER_MARKERS):
        score += SENDER_WEIGHT

    result = AnalysisResult.build(
        score,
        flagged_keywords=flagged_keywords,
        suspicious_links=suspicious_links,
        reasoning=HEURISTIC_REASONING,
        confidence=confidence,
        analysis_method="heuristic",
    )
    if result.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        result.threats = ["Potential phishing attempt"]
    return result

import asyncio
import time
import uuid
from typing import Optional

import httpx

from services.config import Settings
from services.db import MANUAL_SCAN_ACCOUNT_ID, ScanStore
from services.errors import AIAnalysisError, NoActiveAccountsError
from services.gemini_client import GeminiClient
from services.logging_utils import get_logger
from services.models import (
    AnalysisResult,
    EmailSample,
    ScanResultItem,
    ScanSummary,
)
from services.samples import SAMPLE_EMAILS
from services.scorer import score_email

HEURISTIC_MODEL = "PhishGuard AI v1.0"

logger = get_logger(__name__)


def _millis() -> int:
    return int(time.time() * 1000)


class EmailAnalyzer:
    """
    Runs analyses and records them.

    Single emails go to Gemini first and fall back to the keyword scorer
    on any AI failure. Batch scans use the scorer only. Storage failures
    are logged and never fail the analysis itself.
    """

    def __init__(self, settings: Settings, store: ScanStore, ai_client: Optional[GeminiClient] = None):
        self.settings = settings
        self.store = store
        self.ai_client = ai_client or GeminiClient(settings)

    def fallback(self, sample: EmailSample) -> AnalysisResult:
        return score_email(sample, confidence=self.settings.fallback_confidence)

    async def _classify(self, sample: EmailSample) -> AnalysisResult:
        try:
            return await asyncio.wait_for(
                self.ai_client.classify(sample),
                timeout=self.settings.ai_timeout_seconds,
            )
        except (AIAnalysisError, httpx.HTTPError, asyncio.TimeoutError) as exc:
            logger.warning(
                "AI analysis unavailable, using heuristic fallback",
                extra={"error": str(exc) or type(exc).__name__},
            )
        except Exception:
            logger.exception("unexpected error from AI client, using heuristic fallback")
        return self.fallback(sample)

    async def analyze(self, sample: EmailSample, user_id: Optional[str] = None) -> AnalysisResult:
        started = time.perf_counter()
        result = await self._classify(sample)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        logger.info(
            "analysis completed",
            extra={
                "risk_score": result.risk_score,
                "risk_level": result.risk_level.value,
                "method": result.analysis_method,
                "elapsed_ms": elapsed_ms,
            },
        )

        if user_id:
            await asyncio.to_thread(self._record_manual_scan, user_id, sample, result, elapsed_ms)
        return result

    def _record_manual_scan(self, user_id: str, sample: EmailSample, result: AnalysisResult, elapsed_ms: int):
        try:
            record = self.store.insert_scanned_email(
                user_id=user_id,
                email_account_id=MANUAL_SCAN_ACCOUNT_ID,
                message_id=f"manual-{_millis()}",
                sender="Manual Scan",
                subject="Manual Email Scan",
                content=sample.content,
                risk_score=result.risk_score,
                risk_level=result.risk_level.value,
                flagged_keywords=result.flagged_keywords,
                suspicious_links=result.suspicious_links,
                scan_details=result.to_response(),
            )
            model_used = (
                self.ai_client.model_name if result.analysis_method == "ai" else HEURISTIC_MODEL
            )
            confidence = result.confidence if result.confidence is not None else 0.0
            self.store.insert_ai_analysis(
                scanned_email_id=record["id"],
                analysis_type="phishing_detection",
                model_used=model_used,
                analysis_result=result.to_response(),
                confidence_score=confidence * 100,
                processing_time_ms=elapsed_ms,
            )
        except Exception:
            logger.exception("failed to save manual scan", extra={"user_id": user_id})
            return
        logger.info("saved manual scan", extra={"user_id": user_id, "record_id": record["id"]})

    def scan_recent(self, user_id: str) -> ScanSummary:
        """
        Score the sample inbox for a user with at least one active account
        and record every result against that account.
        """
        accounts = self.store.list_email_accounts(user_id, active_only=True)
        if not accounts:
            raise NoActiveAccountsError()
        account = accounts[0]

        results = []
        for email in SAMPLE_EMAILS:
            analysis = score_email(email)
            self._record_batch_scan(user_id, account["id"], email, analysis)
            results.append(
                ScanResultItem(
                    email=email.subject,
                    risk=analysis.risk_level,
                    score=analysis.risk_score,
                )
            )

        try:
            self.store.touch_last_sync(account["id"])
        except Exception:
            logger.exception("failed to update last_sync", extra={"account_id": account["id"]})

        logger.info(
            "batch scan finished",
            extra={"user_id": user_id, "account_id": account["id"], "count": len(results)},
        )
        return ScanSummary(message=f"Scanned {len(results)} emails", results=results)

    def _record_batch_scan(self, user_id: str, account_id: str, email: EmailSample, analysis: AnalysisResult):
        try:
            record = self.store.insert_scanned_email(
                user_id=user_id,
                email_account_id=account_id,
                message_id=f"mock_{_millis()}_{uuid.uuid4().hex[:12]}",
                sender=email.sender,
                subject=email.subject,
                content=email.content,
                risk_score=analysis.risk_score,
                risk_level=analysis.risk_level.value,
                flagged_keywords=analysis.flagged_keywords,
                suspicious_links=analysis.suspicious_links,
            )
            self.store.insert_ai_analysis(
                scanned_email_id=record["id"],
                analysis_type="content_analysis",
                model_used=HEURISTIC_MODEL,
                analysis_result={
                    "reasoning": analysis.reasoning,
                    "patterns_detected": analysis.flagged_keywords,
                    "links_analyzed": len(analysis.suspicious_links),
                },
                confidence_score=analysis.risk_score,
            )
        except Exception:
            logger.exception(
                "failed to save scanned email",
                extra={"user_id": user_id, "subject": email.subject},
            )

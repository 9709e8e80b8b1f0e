"""
Unit tests for the Gemini client (HTTP mocked with httpx.MockTransport).
"""
import asyncio
import json

import pytest

from services.errors import AIAnalysisError
from services.gemini_client import GeminiClient, build_prompt, parse_verdict
from services.models import EmailSample, RiskLevel
from services.url_analysis import analyze_url_reputation

from conftest import gemini_body, gemini_transport, verdict_json


def classify(client, sample):
    return asyncio.run(client.classify(sample))


class TestPrompt:
    """Tests for prompt construction."""

    def test_prompt_includes_content(self):
        """Test that the email body is in the prompt."""
        prompt = build_prompt(EmailSample(content="Please wire the funds today"))

        assert "Please wire the funds today" in prompt
        assert '"riskScore"' in prompt

    def test_prompt_includes_link_warnings(self):
        """Test that reputation warnings reach the prompt."""
        prompt = build_prompt(EmailSample(content="go to http://192.168.0.10/login"))

        assert "CRITICAL: URL contains IP address: 192.168.0.10" in prompt

    def test_long_body_is_truncated(self):
        """Test that huge bodies are cut."""
        prompt = build_prompt(EmailSample(content="A" * 20000))

        assert "[TRUNCATED]" in prompt
        assert "A" * 8001 not in prompt


class TestUrlReputation:
    """Tests for static URL warnings."""

    def test_suspicious_tld(self):
        """Test that abused TLDs are reported."""
        warnings = analyze_url_reputation(["https://prize.click/claim"])

        assert warnings == ["URL uses suspicious TLD: .click (prize.click)"]

    def test_clean_links_have_no_warnings(self):
        """Test that ordinary links produce nothing."""
        assert analyze_url_reputation(["https://example.com"]) == []


class TestParseVerdict:
    """Tests for strict response decoding."""

    def test_parse_clean_json(self):
        """Test decoding a well-formed verdict."""
        verdict = parse_verdict(gemini_body(verdict_json()))

        assert verdict.riskScore == 72
        assert verdict.confidence == 0.9

    def test_markdown_wrapped_json_is_rejected(self):
        """Test that JSON inside prose or fences is not salvaged."""
        text = "Here is my analysis:\n```json\n" + verdict_json() + "\n```"

        with pytest.raises(AIAnalysisError):
            parse_verdict(gemini_body(text))

    def test_missing_field_is_rejected(self):
        """Test that a verdict without explanation is rejected."""
        data = json.loads(verdict_json())
        del data["explanation"]

        with pytest.raises(AIAnalysisError):
            parse_verdict(gemini_body(json.dumps(data)))

    @pytest.mark.parametrize("overrides", [
        {"riskScore": 150},
        {"confidence": 1.5},
        {"classification": "Dangerous"},
        {"highlightedKeywords": "verify"},
    ])
    def test_out_of_schema_values_are_rejected(self, overrides):
        """Test that out-of-range or mistyped fields are rejected."""
        with pytest.raises(AIAnalysisError):
            parse_verdict(gemini_body(verdict_json(**overrides)))

    def test_no_candidates(self):
        """Test a response with no candidates."""
        with pytest.raises(AIAnalysisError):
            parse_verdict({"candidates": []})


class TestClassify:
    """Tests for the full classify call."""

    def test_successful_classification(self, settings):
        """Test that a good response becomes an AI analysis result."""
        calls = []
        client = GeminiClient(settings, transport=gemini_transport(200, gemini_body(verdict_json()), calls))

        result = classify(client, EmailSample(content="verify your account"))

        assert result.risk_score == 72
        assert result.risk_level == RiskLevel.HIGH
        assert result.classification == "Phishing"
        assert result.flagged_keywords == ["verify"]
        assert result.reasoning == "Credential harvesting attempt"
        assert result.analysis_method == "ai"
        assert len(calls) == 1
        assert calls[0].url.params["key"] == "test-key"
        assert calls[0].url.path.endswith("/models/gemini-pro:generateContent")

    def test_level_comes_from_score_not_label(self, settings):
        """Test that the model's label doesn't override the threshold table."""
        body = gemini_body(verdict_json(riskScore=45, classification="Phishing"))
        client = GeminiClient(settings, transport=gemini_transport(200, body))

        result = classify(client, EmailSample(content="x"))

        assert result.risk_level == RiskLevel.MEDIUM
        assert result.classification == "Suspicious"

    def test_http_error_status(self, settings):
        """Test that a non-200 status raises AIAnalysisError."""
        client = GeminiClient(settings, transport=gemini_transport(500, "boom"))

        with pytest.raises(AIAnalysisError):
            classify(client, EmailSample(content="x"))

    def test_non_json_body(self, settings):
        """Test that a non-JSON HTTP body raises AIAnalysisError."""
        client = GeminiClient(settings, transport=gemini_transport(200, "<html>"))

        with pytest.raises(AIAnalysisError):
            classify(client, EmailSample(content="x"))

    def test_missing_api_key(self, settings):
        """Test that no request is made without an API key."""
        settings.gemini_api_key = None
        calls = []
        client = GeminiClient(settings, transport=gemini_transport(200, {}, calls))

        with pytest.raises(AIAnalysisError):
            classify(client, EmailSample(content="x"))
        assert calls == []

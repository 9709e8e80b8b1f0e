import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.dirname(__file__))

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1"


@dataclass
class Settings:
    """
    Runtime configuration for the API, the analyzer and the Gemini client.

    Built once by load_settings() and passed down explicitly; nothing else
    reads the environment.
    """

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-pro"
    gemini_api_base: str = GEMINI_API_BASE
    ai_timeout_seconds: float = 30.0
    fallback_confidence: float = 0.6
    db_path: str = os.path.join(BASE_DIR, "data", "phishguard.db")
    cors_allow_origin: str = "*"
    session_ttl_seconds: float = 12 * 60 * 60
    # email -> password for the built-in login provider
    accounts: Dict[str, str] = field(default_factory=dict)


def parse_accounts(raw: str) -> Dict[str, str]:
    """Parse "alice@x.com:pw1,bob@y.com:pw2" into a dict."""
    accounts = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry or ":" not in entry:
            continue
        email, password = entry.split(":", 1)
        accounts[email.strip().lower()] = password
    return accounts


def load_settings() -> Settings:
    load_dotenv()
    defaults = Settings()
    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL", defaults.gemini_model),
        gemini_api_base=os.getenv("GEMINI_API_BASE", defaults.gemini_api_base).rstrip("/"),
        ai_timeout_seconds=float(os.getenv("AI_TIMEOUT_SECONDS", defaults.ai_timeout_seconds)),
        fallback_confidence=float(os.getenv("FALLBACK_CONFIDENCE", defaults.fallback_confidence)),
        db_path=os.getenv("PHISHGUARD_DB_PATH", defaults.db_path),
        cors_allow_origin=os.getenv("CORS_ALLOW_ORIGIN", defaults.cors_allow_origin),
        session_ttl_seconds=float(os.getenv("SESSION_TTL_SECONDS", defaults.session_ttl_seconds)),
        accounts=parse_accounts(os.getenv("PHISHGUARD_ACCOUNTS", "")),
    )

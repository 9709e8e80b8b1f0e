"""
Tests for the SQLite store, configuration loading and the login provider.
"""
from unittest.mock import Mock, patch

import pytest

from services.auth import StaticAuthProvider, user_id_for
from services.config import load_settings, parse_accounts
from services.db import ScanStore
from services.errors import AuthenticationError


def insert(store, user_id="user-1", score=10, level="safe"):
    return store.insert_scanned_email(
        user_id=user_id,
        email_account_id="acct",
        message_id="m-1",
        sender="a@b.com",
        subject="hi",
        content="hello",
        risk_score=score,
        risk_level=level,
        flagged_keywords=["urgent"],
        suspicious_links=[],
    )


class TestScanStore:
    """Tests for scanned-email records."""

    def test_insert_assigns_id_and_timestamp(self, store):
        """Test that new records get a uuid and a UTC timestamp."""
        record = insert(store)

        assert len(record["id"]) == 36
        assert record["created_at"].endswith("Z")
        assert record["scan_status"] == "completed"
        assert record["flagged_keywords"] == ["urgent"]

    def test_list_is_newest_first_and_limited(self, store):
        """Test ordering and the limit."""
        first = insert(store)
        second = insert(store)

        records = store.list_scanned_emails("user-1", limit=1)

        assert [r["id"] for r in records] == [second["id"]]
        assert first["id"] != second["id"]

    def test_delete_is_owner_scoped(self, store):
        """Test that only the owner can delete a record."""
        record = insert(store)
        store.insert_ai_analysis(record["id"], "phishing_detection", "gemini-pro", {"x": 1})

        assert store.delete_scanned_email("intruder", record["id"]) is False
        assert store.delete_scanned_email("user-1", record["id"]) is True
        assert store.get_scanned_email("user-1", record["id"]) is None
        assert store.list_ai_analysis(record["id"]) == []

    def test_stats(self, store):
        """Test per-level counts and the average."""
        insert(store, score=0, level="safe")
        insert(store, score=90, level="critical")
        insert(store, score=60, level="high")

        stats = store.get_dashboard_stats("user-1")

        assert stats["total"] == 3
        assert stats["by_level"]["critical"] == 1
        assert stats["threats_blocked"] == 2
        assert stats["average_risk_score"] == 50.0

    def test_empty_stats(self, store):
        """Test stats for a user with no records."""
        stats = store.get_dashboard_stats("nobody")

        assert stats["total"] == 0
        assert stats["average_risk_score"] == 0.0

    def test_connection_closed_when_query_fails(self, tmp_path):
        """Test that a failing statement still closes the connection."""
        store = ScanStore(str(tmp_path / "x.db"))
        conn = Mock()
        conn.execute.side_effect = RuntimeError("disk I/O error")

        with patch.object(store, "_connect", return_value=conn):
            with pytest.raises(RuntimeError):
                store.touch_last_sync("acct-1")

        conn.close.assert_called_once()
        conn.commit.assert_not_called()

    def test_lock_released_after_failure(self, store):
        """Test that the store keeps working after a failed call."""
        with patch.object(store, "_connect", side_effect=RuntimeError("cannot open")):
            with pytest.raises(RuntimeError):
                store.list_scanned_emails("user-1")

        assert insert(store)["user_id"] == "user-1"


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_parse_accounts(self):
        """Test parsing of the accounts string."""
        accounts = parse_accounts("A@x.com:pw:with:colons, b@y.org:pw2,,broken")

        assert accounts == {"a@x.com": "pw:with:colons", "b@y.org": "pw2"}

    def test_load_settings_from_env(self, monkeypatch, tmp_path):
        """Test that load_settings reads the environment."""
        monkeypatch.setenv("GEMINI_API_KEY", "k")
        monkeypatch.setenv("AI_TIMEOUT_SECONDS", "5")
        monkeypatch.setenv("PHISHGUARD_DB_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("GEMINI_API_BASE", "http://localhost:9000/v1/")
        monkeypatch.setenv("SESSION_TTL_SECONDS", "600")

        settings = load_settings()

        assert settings.gemini_api_key == "k"
        assert settings.ai_timeout_seconds == 5.0
        assert settings.db_path == str(tmp_path / "x.db")
        assert settings.gemini_api_base == "http://localhost:9000/v1"
        assert settings.session_ttl_seconds == 600.0


class TestAuthProvider:
    """Tests for the built-in login provider."""

    def test_login_and_current_user(self):
        """Test a round of login, lookup and logout."""
        provider = StaticAuthProvider({"me@x.com": "pw"})

        session = provider.login("ME@x.com", "pw")

        assert session.user.id == user_id_for("me@x.com")
        assert provider.current_user(session.access_token) == session.user
        provider.logout(session.access_token)
        assert provider.current_user(session.access_token) is None

    @pytest.mark.parametrize("email,password", [
        ("me@x.com", "wrong"),
        ("stranger@x.com", "pw"),
    ])
    def test_bad_credentials(self, email, password):
        """Test that wrong passwords and unknown users are rejected."""
        provider = StaticAuthProvider({"me@x.com": "pw"})

        with pytest.raises(AuthenticationError):
            provider.login(email, password)

    def test_sessions_expire(self):
        """Test that tokens older than the TTL stop resolving and are dropped."""
        now = [1000.0]
        provider = StaticAuthProvider({"me@x.com": "pw"}, session_ttl_seconds=60, clock=lambda: now[0])
        old = provider.login("me@x.com", "pw")
        now[0] += 30
        fresh = provider.login("me@x.com", "pw")

        now[0] += 29
        assert provider.current_user(old.access_token) == old.user
        assert provider.active_sessions() == 2

        now[0] += 1
        assert provider.current_user(old.access_token) is None
        assert provider.current_user(fresh.access_token) == fresh.user
        assert provider.active_sessions() == 1

        now[0] += 30
        assert provider.current_user(fresh.access_token) is None
        assert provider.active_sessions() == 0

    def test_empty_token(self):
        """Test that an empty token never resolves."""
        provider = StaticAuthProvider({"me@x.com": "pw"})

        assert provider.current_user("") is None

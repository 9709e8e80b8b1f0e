import json
import os
import sqlite3
import uuid
from contextlib import closing
from datetime import datetime, timezone
from threading import Lock

MANUAL_SCAN_ACCOUNT_ID = "00000000-0000-0000-0000-000000000000"

SCHEMA = """
CREATE TABLE IF NOT EXISTS email_accounts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    email_address TEXT NOT NULL,
    provider TEXT NOT NULL,
    is_active INTEGER DEFAULT 1,
    last_sync TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS scanned_emails (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    email_account_id TEXT NOT NULL,
    message_id TEXT NOT NULL,
    sender TEXT NOT NULL,
    subject TEXT,
    content TEXT,
    risk_score INTEGER,
    risk_level TEXT,
    scan_status TEXT DEFAULT 'completed',
    flagged_keywords TEXT,
    suspicious_links TEXT,
    scan_details TEXT,
    scanned_at TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS ai_analysis (
    id TEXT PRIMARY KEY,
    scanned_email_id TEXT NOT NULL REFERENCES scanned_emails(id),
    analysis_type TEXT NOT NULL,
    model_used TEXT NOT NULL,
    analysis_result TEXT NOT NULL,
    confidence_score REAL,
    processing_time_ms INTEGER,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_scanned_emails_user
    ON scanned_emails (user_id, created_at);
"""

SCANNED_EMAIL_COLUMNS = (
    "id, user_id, email_account_id, message_id, sender, subject, content, "
    "risk_score, risk_level, scan_status, flagged_keywords, suspicious_links, "
    "scan_details, scanned_at, created_at"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _account_row(row) -> dict:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "email_address": row["email_address"],
        "provider": row["provider"],
        "is_active": bool(row["is_active"]),
        "last_sync": row["last_sync"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _scanned_email_row(row) -> dict:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "email_account_id": row["email_account_id"],
        "message_id": row["message_id"],
        "sender": row["sender"],
        "subject": row["subject"],
        "content": row["content"],
        "risk_score": row["risk_score"],
        "risk_level": row["risk_level"],
        "scan_status": row["scan_status"],
        "flagged_keywords": json.loads(row["flagged_keywords"] or "[]"),
        "suspicious_links": json.loads(row["suspicious_links"] or "[]"),
        "scan_details": json.loads(row["scan_details"] or "null"),
        "scanned_at": row["scanned_at"],
        "created_at": row["created_at"],
    }


def _analysis_row(row) -> dict:
    return {
        "id": row["id"],
        "scanned_email_id": row["scanned_email_id"],
        "analysis_type": row["analysis_type"],
        "model_used": row["model_used"],
        "analysis_result": json.loads(row["analysis_result"]),
        "confidence_score": row["confidence_score"],
        "processing_time_ms": row["processing_time_ms"],
        "created_at": row["created_at"],
    }


class ScanStore:
    """
    SQLite-backed store for connected email accounts, scanned-email records
    and their AI analysis details.

    Scanned-email records are insert-only; the only way to change one is to
    delete it. Every read and delete is scoped to the owning user.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._lock = Lock()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self):
        """Create the SQLite database and tables if they don't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        with self._lock, closing(self._connect()) as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    # ---------- Email accounts ----------

    def add_email_account(self, user_id: str, email_address: str, provider: str) -> dict:
        now = _now()
        account_id = str(uuid.uuid4())
        with self._lock, closing(self._connect()) as conn:
            conn.execute(
                """
                INSERT INTO email_accounts
                    (id, user_id, email_address, provider, is_active, created_at, updated_at)
                VALUES (?, ?, ?, ?, 1, ?, ?)
                """,
                (account_id, user_id, email_address, provider, now, now),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM email_accounts WHERE id = ?", (account_id,)
            ).fetchone()
        return _account_row(row)

    def list_email_accounts(self, user_id: str, active_only: bool = False) -> list:
        query = "SELECT * FROM email_accounts WHERE user_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY created_at DESC"
        with self._lock, closing(self._connect()) as conn:
            rows = conn.execute(query, (user_id,)).fetchall()
        return [_account_row(r) for r in rows]

    def delete_email_account(self, user_id: str, account_id: str) -> bool:
        with self._lock, closing(self._connect()) as conn:
            cur = conn.execute(
                "DELETE FROM email_accounts WHERE id = ? AND user_id = ?",
                (account_id, user_id),
            )
            deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def touch_last_sync(self, account_id: str):
        now = _now()
        with self._lock, closing(self._connect()) as conn:
            conn.execute(
                "UPDATE email_accounts SET last_sync = ?, updated_at = ? WHERE id = ?",
                (now, now, account_id),
            )
            conn.commit()

    # ---------- Scanned emails ----------

    def insert_scanned_email(
        self,
        user_id: str,
        email_account_id: str,
        message_id: str,
        sender: str,
        subject: str,
        content: str,
        risk_score: int,
        risk_level: str,
        flagged_keywords: list,
        suspicious_links: list,
        scan_details=None,
    ) -> dict:
        """Insert a record for a completed scan and return it."""
        now = _now()
        record_id = str(uuid.uuid4())
        with self._lock, closing(self._connect()) as conn:
            conn.execute(
                f"""
                INSERT INTO scanned_emails ({SCANNED_EMAIL_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'completed', ?, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    user_id,
                    email_account_id,
                    message_id,
                    sender,
                    subject,
                    content,
                    risk_score,
                    risk_level,
                    json.dumps(flagged_keywords),
                    json.dumps(suspicious_links),
                    json.dumps(scan_details),
                    now,
                    now,
                ),
            )
            conn.commit()
            row = conn.execute(
                f"SELECT {SCANNED_EMAIL_COLUMNS} FROM scanned_emails WHERE id = ?",
                (record_id,),
            ).fetchone()
        return _scanned_email_row(row)

    def list_scanned_emails(self, user_id: str, limit: int = 10) -> list:
        """Return a user's most recent scanned emails, newest first."""
        with self._lock, closing(self._connect()) as conn:
            rows = conn.execute(
                f"""
                SELECT {SCANNED_EMAIL_COLUMNS}
                FROM scanned_emails
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [_scanned_email_row(r) for r in rows]

    def get_scanned_email(self, user_id: str, record_id: str):
        with self._lock, closing(self._connect()) as conn:
            row = conn.execute(
                f"""
                SELECT {SCANNED_EMAIL_COLUMNS}
                FROM scanned_emails
                WHERE id = ? AND user_id = ?
                """,
                (record_id, user_id),
            ).fetchone()
        if not row:
            return None
        return _scanned_email_row(row)

    def delete_scanned_email(self, user_id: str, record_id: str) -> bool:
        """Delete a record and its analysis rows. False if the user doesn't own it."""
        with self._lock, closing(self._connect()) as conn:
            cur = conn.execute(
                "SELECT id FROM scanned_emails WHERE id = ? AND user_id = ?",
                (record_id, user_id),
            )
            if cur.fetchone() is None:
                return False
            conn.execute("DELETE FROM ai_analysis WHERE scanned_email_id = ?", (record_id,))
            conn.execute("DELETE FROM scanned_emails WHERE id = ?", (record_id,))
            conn.commit()
        return True

    # ---------- AI analysis ----------

    def insert_ai_analysis(
        self,
        scanned_email_id: str,
        analysis_type: str,
        model_used: str,
        analysis_result: dict,
        confidence_score=None,
        processing_time_ms=None,
    ) -> str:
        analysis_id = str(uuid.uuid4())
        with self._lock, closing(self._connect()) as conn:
            conn.execute(
                """
                INSERT INTO ai_analysis
                    (id, scanned_email_id, analysis_type, model_used, analysis_result,
                     confidence_score, processing_time_ms, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    analysis_id,
                    scanned_email_id,
                    analysis_type,
                    model_used,
                    json.dumps(analysis_result),
                    confidence_score,
                    processing_time_ms,
                    _now(),
                ),
            )
            conn.commit()
        return analysis_id

    def list_ai_analysis(self, scanned_email_id: str) -> list:
        with self._lock, closing(self._connect()) as conn:
            rows = conn.execute(
                """
                SELECT * FROM ai_analysis
                WHERE scanned_email_id = ?
                ORDER BY created_at
                """,
                (scanned_email_id,),
            ).fetchall()
        return [_analysis_row(r) for r in rows]

    # ---------- Dashboard ----------

    def get_dashboard_stats(self, user_id: str) -> dict:
        """
        Simple statistics for the dashboard:
        - Total emails scanned
        - Count per risk level
        - Threats blocked (high + critical)
        - Average risk score
        """
        with self._lock, closing(self._connect()) as conn:
            rows = conn.execute(
                """
                SELECT risk_level, COUNT(*), AVG(risk_score)
                FROM scanned_emails
                WHERE user_id = ?
                GROUP BY risk_level
                """,
                (user_id,),
            ).fetchall()

        by_level = {level: 0 for level in ("safe", "low", "medium", "high", "critical")}
        total = 0
        score_sum = 0.0
        for level, count, avg in rows:
            by_level[level] = count
            total += count
            score_sum += (avg or 0) * count

        return {
            "total": total,
            "by_level": by_level,
            "threats_blocked": by_level["high"] + by_level["critical"],
            "average_risk_score": round(score_sum / total, 1) if total else 0.0,
        }

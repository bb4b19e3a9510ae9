"""
Submission Store — Users, Judgments, and the Feed

SQLite-backed persistence for accounts and judged submissions.

Tables are created on first use. Databases written by older releases
are migrated in place by adding any missing columns, so an existing
file never needs to be rebuilt.

Feed visibility:
  - "mine" view:   only the viewer's own submissions, names always shown
  - signed in:     every public submission plus the viewer's private ones
  - signed out:    public submissions only
Outside the "mine" view, anonymous submissions never expose a username.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from aita.logging import get_logger

logger = get_logger("store")


class DuplicateUserError(Exception):
    """Raised when a username or email is already registered."""


# Columns added after the first release: (table, column, DDL)
_MIGRATIONS = (
    ("submissions", "judgment", "TEXT"),
    ("submissions", "reasoning", "TEXT"),
    ("submissions", "user_id", "INTEGER"),
    ("submissions", "follow_up_context", "TEXT"),
    ("submissions", "score", "INTEGER DEFAULT 5"),
    ("submissions", "is_anonymous", "INTEGER DEFAULT 0"),
    ("submissions", "is_public", "INTEGER DEFAULT 1"),
    ("users", "is_admin", "INTEGER DEFAULT 0"),
)


class SubmissionStore:
    """SQLite store for users and submissions."""

    def __init__(self, db_path: str = "aita.db"):
        self.db_path = db_path
        self._lock = threading.Lock()
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT UNIQUE NOT NULL,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    is_admin INTEGER DEFAULT 0,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS submissions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER,
                    situation TEXT NOT NULL,
                    follow_up_context TEXT,
                    judgment TEXT,
                    score INTEGER DEFAULT 5,
                    reasoning TEXT,
                    is_anonymous INTEGER DEFAULT 0,
                    is_public INTEGER DEFAULT 1,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            """)
            self._migrate(conn)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_submissions_user
                ON submissions(user_id)
            """)

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Add columns missing from databases created by older releases."""
        existing: dict[str, set[str]] = {}
        for table, column, ddl in _MIGRATIONS:
            if table not in existing:
                existing[table] = {
                    row["name"]
                    for row in conn.execute(f"PRAGMA table_info({table})")
                }
            if column not in existing[table]:
                logger.info(f"Migrating schema: adding {table}.{column}")
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
                existing[table].add(column)

    # ============================================================
    # USERS
    # ============================================================

    def promote_admins(self, usernames: tuple[str, ...] | list[str]) -> int:
        """
        Mark the given accounts as admins. Safe to run on every startup.

        Returns the number of matching accounts. Usernames that are not
        registered yet are skipped and picked up on a later run.
        """
        if not usernames:
            return 0
        promoted = 0
        with self._lock, self._connect() as conn:
            for username in usernames:
                cur = conn.execute(
                    "UPDATE users SET is_admin = 1 WHERE username = ?",
                    (username,),
                )
                if cur.rowcount:
                    promoted += cur.rowcount
                else:
                    logger.info(f"Admin user {username!r} not registered yet")
        return promoted

    def set_admin(self, user_id: int, is_admin: bool = True) -> bool:
        with self._lock, self._connect() as conn:
            cur = conn.execute(
                "UPDATE users SET is_admin = ? WHERE id = ?",
                (1 if is_admin else 0, user_id),
            )
            return cur.rowcount > 0

    def create_user(self, username: str, email: str, password_hash: str) -> dict:
        """Insert a new account. Raises DuplicateUserError on collision."""
        with self._lock, self._connect() as conn:
            existing = conn.execute(
                "SELECT id FROM users WHERE username = ? OR email = ?",
                (username, email),
            ).fetchone()
            if existing:
                raise DuplicateUserError("Username or email already exists")
            cur = conn.execute(
                "INSERT INTO users (username, email, password_hash) VALUES (?, ?, ?)",
                (username, email, password_hash),
            )
            user_id = cur.lastrowid
        return {"id": user_id, "username": username, "email": email}

    def get_user(self, user_id: int) -> Optional[dict]:
        """Public account fields (no password hash)."""
        with self._connect() as conn:
            row = conn.execute(
                """SELECT id, username, email, is_admin, created_at
                   FROM users WHERE id = ?""",
                (user_id,),
            ).fetchone()
        return _user_row(row) if row else None

    def get_user_by_login(self, login: str) -> Optional[dict]:
        """Look an account up by username or email, including its hash."""
        with self._connect() as conn:
            row = conn.execute(
                """SELECT id, username, email, password_hash, is_admin, created_at
                   FROM users WHERE username = ? OR email = ?""",
                (login, login),
            ).fetchone()
        return _user_row(row) if row else None

    def is_admin(self, user_id: int) -> bool:
        user = self.get_user(user_id)
        return bool(user and user["is_admin"])

    def list_users(self) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT id, username, email, is_admin, created_at,
                    (SELECT COUNT(*) FROM submissions WHERE user_id = users.id)
                        AS submission_count
                FROM users
                ORDER BY created_at DESC, id DESC
            """).fetchall()
        return [_user_row(r) for r in rows]

    # ============================================================
    # SUBMISSIONS
    # ============================================================

    def create_submission(
        self,
        user_id: int,
        situation: str,
        judgment: str,
        score: int,
        reasoning: str,
        is_anonymous: bool = False,
        is_public: bool = True,
    ) -> int:
        with self._lock, self._connect() as conn:
            cur = conn.execute(
                """INSERT INTO submissions
                   (user_id, situation, judgment, score, reasoning, is_anonymous, is_public)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (user_id, situation, judgment, score, reasoning,
                 int(is_anonymous), int(is_public)),
            )
            return cur.lastrowid

    def get_submission(self, submission_id: int) -> Optional[dict]:
        """A submission with its author's name, hidden when anonymous."""
        with self._connect() as conn:
            row = conn.execute(
                """SELECT s.*,
                       CASE WHEN s.is_anonymous = 1 THEN NULL ELSE u.username END
                           AS username
                   FROM submissions s
                   LEFT JOIN users u ON s.user_id = u.id
                   WHERE s.id = ?""",
                (submission_id,),
            ).fetchone()
        return _submission_row(row) if row else None

    def update_followup(
        self,
        submission_id: int,
        follow_up_context: str,
        judgment: str,
        score: int,
        reasoning: str,
    ) -> bool:
        with self._lock, self._connect() as conn:
            cur = conn.execute(
                """UPDATE submissions
                   SET follow_up_context = ?, judgment = ?, score = ?, reasoning = ?
                   WHERE id = ?""",
                (follow_up_context, judgment, score, reasoning, submission_id),
            )
            return cur.rowcount > 0

    def list_feed(
        self,
        viewer_id: Optional[int],
        mine: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[dict], int]:
        """Submissions visible to the viewer, newest first, with a total."""
        own_view = mine and viewer_id is not None
        if own_view:
            where, params = "s.user_id = ?", [viewer_id]
        elif viewer_id is not None:
            where, params = "(s.is_public = 1 OR s.user_id = ?)", [viewer_id]
        else:
            where, params = "s.is_public = 1", []

        username = "u.username" if own_view else (
            "CASE WHEN s.is_anonymous = 1 THEN NULL ELSE u.username END"
        )

        with self._connect() as conn:
            rows = conn.execute(
                f"""SELECT s.*, {username} AS username
                    FROM submissions s
                    LEFT JOIN users u ON s.user_id = u.id
                    WHERE {where}
                    ORDER BY s.created_at DESC, s.id DESC
                    LIMIT ? OFFSET ?""",
                (*params, limit, offset),
            ).fetchall()
            total = conn.execute(
                f"SELECT COUNT(*) FROM submissions s WHERE {where}", params,
            ).fetchone()[0]

        return [_submission_row(r) for r in rows], total

    def list_all_submissions(
        self, limit: int = 100, offset: int = 0,
    ) -> tuple[list[dict], int]:
        """Every submission with author name and email. Admin view."""
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT s.*, u.username, u.email
                   FROM submissions s
                   LEFT JOIN users u ON s.user_id = u.id
                   ORDER BY s.created_at DESC, s.id DESC
                   LIMIT ? OFFSET ?""",
                (limit, offset),
            ).fetchall()
            total = conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0]
        return [_submission_row(r) for r in rows], total

    def get_count(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0]

    # ============================================================
    # STATS
    # ============================================================

    def get_stats(self) -> dict:
        with self._connect() as conn:
            total_users = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
            total_submissions = conn.execute(
                "SELECT COUNT(*) FROM submissions"
            ).fetchone()[0]
            avg_score = conn.execute(
                "SELECT AVG(score) FROM submissions WHERE score IS NOT NULL"
            ).fetchone()[0]
            yta_count = conn.execute(
                "SELECT COUNT(*) FROM submissions WHERE judgment = 'YTA'"
            ).fetchone()[0]
            nta_count = conn.execute(
                "SELECT COUNT(*) FROM submissions WHERE judgment = 'NTA'"
            ).fetchone()[0]
            by_user = conn.execute("""
                SELECT u.username,
                       COUNT(s.id) AS submission_count,
                       AVG(s.score) AS avg_score
                FROM users u
                LEFT JOIN submissions s ON u.id = s.user_id
                GROUP BY u.id, u.username
                ORDER BY submission_count DESC, u.username ASC
            """).fetchall()

        return {
            "total_users": total_users,
            "total_submissions": total_submissions,
            "average_score": round(avg_score, 2) if avg_score else 0,
            "yta_count": yta_count,
            "nta_count": nta_count,
            "submissions_by_user": [
                {
                    "username": r["username"],
                    "submission_count": r["submission_count"],
                    "avg_score": (
                        round(r["avg_score"], 2) if r["avg_score"] is not None else None
                    ),
                }
                for r in by_user
            ],
        }


def _user_row(row: sqlite3.Row) -> dict:
    user = dict(row)
    user["is_admin"] = bool(user.get("is_admin"))
    return user


def _submission_row(row: sqlite3.Row) -> dict:
    sub = dict(row)
    sub["is_anonymous"] = bool(sub.get("is_anonymous"))
    sub["is_public"] = bool(sub.get("is_public"))
    return sub


# Shared store, opened on first use
_store: Optional[SubmissionStore] = None


def get_store() -> SubmissionStore:
    """Factory — reads db path from config. Also a FastAPI dependency."""
    global _store
    if _store is None:
        from aita.config import settings
        _store = SubmissionStore(db_path=settings.DB_PATH)
    return _store

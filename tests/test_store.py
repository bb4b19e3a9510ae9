"""
Submission Store Tests

Covers schema creation and in-place migration, accounts, admin
promotion, feed visibility rules, follow-up updates, and stats.
"""

from __future__ import annotations

import sqlite3

import pytest

from aita.store import DuplicateUserError, SubmissionStore


def _user(store, name):
    return store.create_user(name, f"{name}@example.com", "hash")["id"]


def _submit(store, user_id, situation="s", judgment="NTA", score=3,
            is_anonymous=False, is_public=True):
    return store.create_submission(
        user_id, situation, judgment, score, "because",
        is_anonymous=is_anonymous, is_public=is_public,
    )


# ============================================================
# SCHEMA
# ============================================================

class TestSchema:

    def test_fresh_database(self, store):
        assert store.get_count() == 0
        assert store.list_users() == []

    def test_reopen_is_harmless(self, tmp_path):
        path = str(tmp_path / "reopen.db")
        first = SubmissionStore(db_path=path)
        uid = _user(first, "alice")
        _submit(first, uid)
        second = SubmissionStore(db_path=path)
        assert second.get_count() == 1

    def test_migrates_legacy_database(self, tmp_path):
        path = str(tmp_path / "legacy.db")
        conn = sqlite3.connect(path)
        conn.execute("""
            CREATE TABLE users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT UNIQUE NOT NULL,
                email TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.execute("""
            CREATE TABLE submissions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                situation TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.execute("INSERT INTO submissions (situation) VALUES ('old story')")
        conn.commit()
        conn.close()

        store = SubmissionStore(db_path=path)

        conn = sqlite3.connect(path)
        sub_cols = {r[1] for r in conn.execute("PRAGMA table_info(submissions)")}
        user_cols = {r[1] for r in conn.execute("PRAGMA table_info(users)")}
        conn.close()
        assert {"judgment", "reasoning", "user_id", "follow_up_context", "score",
                "is_anonymous", "is_public"} <= sub_cols
        assert "is_admin" in user_cols

        old = store.get_submission(1)
        assert old["situation"] == "old story"
        assert old["score"] == 5
        assert old["is_public"] is True
        assert old["is_anonymous"] is False

        uid = _user(store, "newcomer")
        new_id = _submit(store, uid)
        assert store.get_submission(new_id)["username"] == "newcomer"


# ============================================================
# USERS
# ============================================================

class TestUsers:

    def test_create_and_get(self, store):
        user = store.create_user("alice", "alice@example.com", "h")
        fetched = store.get_user(user["id"])
        assert fetched["username"] == "alice"
        assert fetched["is_admin"] is False
        assert "password_hash" not in fetched

    def test_duplicate_username(self, store):
        store.create_user("alice", "alice@example.com", "h")
        with pytest.raises(DuplicateUserError):
            store.create_user("alice", "other@example.com", "h")

    def test_duplicate_email(self, store):
        store.create_user("alice", "alice@example.com", "h")
        with pytest.raises(DuplicateUserError):
            store.create_user("bob", "alice@example.com", "h")

    def test_login_lookup_by_name_or_email(self, store):
        store.create_user("alice", "alice@example.com", "h")
        assert store.get_user_by_login("alice")["password_hash"] == "h"
        assert store.get_user_by_login("alice@example.com")["username"] == "alice"
        assert store.get_user_by_login("nobody") is None

    def test_list_users_counts_submissions(self, store):
        alice = _user(store, "alice")
        _user(store, "bob")
        _submit(store, alice)
        _submit(store, alice)
        counts = {u["username"]: u["submission_count"] for u in store.list_users()}
        assert counts == {"alice": 2, "bob": 0}


class TestAdminPromotion:

    def test_promote_registered(self, store):
        uid = _user(store, "judge_admin")
        assert store.promote_admins(("judge_admin",)) == 1
        assert store.is_admin(uid)

    def test_unknown_names_skipped(self, store):
        assert store.promote_admins(("ghost",)) == 0

    def test_idempotent(self, store):
        uid = _user(store, "judge_admin")
        store.promote_admins(["judge_admin"])
        store.promote_admins(["judge_admin"])
        assert store.is_admin(uid)
        assert sum(u["is_admin"] for u in store.list_users()) == 1

    def test_empty_list(self, store):
        assert store.promote_admins(()) == 0

    def test_set_admin(self, store):
        uid = _user(store, "alice")
        assert store.set_admin(uid)
        assert store.is_admin(uid)
        store.set_admin(uid, False)
        assert not store.is_admin(uid)
        assert not store.set_admin(9999)


# ============================================================
# FEED VISIBILITY
# ============================================================

class TestFeed:

    @pytest.fixture
    def seeded(self, store):
        alice = _user(store, "alice")
        bob = _user(store, "bob")
        ids = {
            "alice_public": _submit(store, alice, "a1"),
            "alice_private": _submit(store, alice, "a2", is_public=False),
            "alice_anon": _submit(store, alice, "a3", is_anonymous=True),
            "bob_public": _submit(store, bob, "b1"),
            "bob_private": _submit(store, bob, "b2", is_public=False),
        }
        return store, alice, bob, ids

    def test_signed_out_sees_public_only(self, seeded):
        store, _, _, ids = seeded
        rows, total = store.list_feed(None)
        assert {r["id"] for r in rows} == {
            ids["alice_public"], ids["alice_anon"], ids["bob_public"],
        }
        assert total == 3

    def test_signed_in_sees_own_private(self, seeded):
        store, alice, _, ids = seeded
        rows, total = store.list_feed(alice)
        visible = {r["id"] for r in rows}
        assert ids["alice_private"] in visible
        assert ids["bob_private"] not in visible
        assert total == 4

    def test_mine_view(self, seeded):
        store, alice, _, ids = seeded
        rows, total = store.list_feed(alice, mine=True)
        assert {r["id"] for r in rows} == {
            ids["alice_public"], ids["alice_private"], ids["alice_anon"],
        }
        assert total == 3
        # Names always shown in the owner's own view
        assert all(r["username"] == "alice" for r in rows)

    def test_mine_when_signed_out_is_public_feed(self, seeded):
        store, _, _, ids = seeded
        rows, _ = store.list_feed(None, mine=True)
        anon = next(r for r in rows if r["id"] == ids["alice_anon"])
        assert anon["username"] is None

    def test_anonymous_hides_username(self, seeded):
        store, _, bob, ids = seeded
        rows, _ = store.list_feed(bob)
        by_id = {r["id"]: r for r in rows}
        assert by_id[ids["alice_anon"]]["username"] is None
        assert by_id[ids["alice_public"]]["username"] == "alice"
        assert store.get_submission(ids["alice_anon"])["username"] is None

    def test_newest_first(self, seeded):
        store, _, _, _ = seeded
        rows, _ = store.list_feed(None)
        assert [r["id"] for r in rows] == sorted((r["id"] for r in rows), reverse=True)

    def test_pagination(self, seeded):
        store, alice, _, _ = seeded
        page1, total = store.list_feed(alice, limit=2, offset=0)
        page2, _ = store.list_feed(alice, limit=2, offset=2)
        assert total == 4
        assert len(page1) == 2
        assert len(page2) == 2
        assert not {r["id"] for r in page1} & {r["id"] for r in page2}

    def test_admin_listing_sees_everything(self, seeded):
        store, _, _, _ = seeded
        rows, total = store.list_all_submissions()
        assert total == 5
        assert all(r["email"] for r in rows)


# ============================================================
# FOLLOW-UP AND STATS
# ============================================================

class TestFollowUp:

    def test_update_followup(self, store):
        uid = _user(store, "alice")
        sid = _submit(store, uid, "I forgot the meeting", "NTA", 3)
        assert store.update_followup(sid, "I forgot on purpose", "YTA", 6, "new")
        sub = store.get_submission(sid)
        assert sub["follow_up_context"] == "I forgot on purpose"
        assert sub["judgment"] == "YTA"
        assert sub["score"] == 6
        assert sub["reasoning"] == "new"
        assert sub["situation"] == "I forgot the meeting"

    def test_update_missing(self, store):
        assert not store.update_followup(404, "x", "NTA", 3, "r")


class TestStats:

    def test_empty(self, store):
        stats = store.get_stats()
        assert stats["total_users"] == 0
        assert stats["total_submissions"] == 0
        assert stats["average_score"] == 0
        assert stats["submissions_by_user"] == []

    def test_counts(self, store):
        alice = _user(store, "alice")
        _user(store, "bob")
        _submit(store, alice, judgment="YTA", score=9)
        _submit(store, alice, judgment="NTA", score=2)
        _submit(store, alice, judgment="NTA", score=3)
        stats = store.get_stats()
        assert stats["total_users"] == 2
        assert stats["total_submissions"] == 3
        assert stats["average_score"] == 4.67
        assert stats["yta_count"] == 1
        assert stats["nta_count"] == 2
        by_user = {u["username"]: u for u in stats["submissions_by_user"]}
        assert by_user["alice"]["submission_count"] == 3
        assert by_user["bob"]["submission_count"] == 0
        assert by_user["bob"]["avg_score"] is None

"""
tests/test_storage.py
~~~~~~~~~~~~~~~~~~~~~
Tests for amtsbote.storage.sqlite — SQLiteSubmissionRepository.
All tests use tmp_path, never touching ~/.fo/amtsbote.db.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from amtsbote.exceptions import DocumentValidationError
from amtsbote.models import DocumentStatus
from amtsbote.storage import SQLiteSubmissionRepository, SubmissionRecord, SubmissionRepository

T0 = datetime(2025, 2, 1, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def repo(tmp_path) -> SQLiteSubmissionRepository:
    db = SQLiteSubmissionRepository(db_path=tmp_path / "test.db")
    yield db
    db.close()


def _make_record(
    *,
    account: str = "firma-a",
    kind: str = "uva",
    period: str = "01/2025",
    minutes: int = 0,
    payload: bytes = b"<Umsatzsteuervoranmeldung/>",
) -> SubmissionRecord:
    ts = T0 + timedelta(minutes=minutes)
    return SubmissionRecord(
        account=account, kind=kind, period=period, payload=payload,
        created_at=ts, updated_at=ts,
    )


# ---------------------------------------------------------------------------
# Protocol conformance
# ---------------------------------------------------------------------------

class TestProtocolConformance:
    def test_is_submission_repository(self, repo):
        assert isinstance(repo, SubmissionRepository)


# ---------------------------------------------------------------------------
# Context manager / schema
# ---------------------------------------------------------------------------

class TestContextManager:
    def test_context_manager_closes_connection(self, tmp_path):
        with SQLiteSubmissionRepository(db_path=tmp_path / "ctx.db") as repo:
            r = _make_record()
            repo.save(r)
        with pytest.raises(sqlite3.ProgrammingError):
            repo.get(r.id)

    def test_default_path(self, isolated_home):
        with SQLiteSubmissionRepository() as repo:
            assert repo.db_path == isolated_home / "amtsbote.db"
            assert repo.db_path.exists()

    def test_schema_version_set(self, tmp_path):
        path = tmp_path / "v.db"
        SQLiteSubmissionRepository(path).close()
        with sqlite3.connect(path) as conn:
            assert conn.execute("PRAGMA user_version").fetchone()[0] == 1

    def test_reopen_keeps_rows(self, tmp_path):
        path = tmp_path / "keep.db"
        r = _make_record()
        with SQLiteSubmissionRepository(path) as repo:
            repo.save(r)
        with SQLiteSubmissionRepository(path) as repo:
            assert repo.get(r.id).payload == r.payload


# ---------------------------------------------------------------------------
# save / get
# ---------------------------------------------------------------------------

class TestSaveGet:
    def test_save_and_retrieve(self, repo):
        r = _make_record()
        assert repo.save(r) is True
        found = repo.get(r.id)
        assert found.account == "firma-a"
        assert found.kind == "uva"
        assert found.period == "01/2025"
        assert found.status is DocumentStatus.DRAFT
        assert found.payload == b"<Umsatzsteuervoranmeldung/>"
        assert found.created_at == T0

    def test_get_returns_none_for_unknown_id(self, repo):
        assert repo.get("nope") is None

    def test_duplicate_id_not_saved(self, repo):
        r = _make_record()
        repo.save(r)
        assert repo.save(r) is False
        assert len(list(repo.list_all())) == 1

    def test_empty_payload(self, repo):
        r = _make_record(payload=b"")
        repo.save(r)
        assert repo.get(r.id).payload == b""

    def test_status_string_coerced(self):
        r = SubmissionRecord(account="a", kind="zm", status="submitted")
        assert r.status is DocumentStatus.SUBMITTED

    def test_to_dict(self, repo):
        r = _make_record()
        d = r.to_dict()
        assert d["status"] == "draft"
        assert "payload" not in d
        assert r.to_dict(include_payload=True)["payload"] == "<Umsatzsteuervoranmeldung/>"


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestUpdateStatus:
    def test_forward_moves(self, repo):
        r = _make_record()
        repo.save(r)
        repo.update_status(r.id, DocumentStatus.SUBMITTED, reference="FO-1")
        updated = repo.update_status(r.id, "accepted")
        assert updated.status is DocumentStatus.ACCEPTED
        found = repo.get(r.id)
        assert found.status is DocumentStatus.ACCEPTED
        assert found.reference == "FO-1"
        assert found.updated_at > T0

    def test_backwards_move_rejected(self, repo):
        r = _make_record()
        repo.save(r)
        repo.update_status(r.id, "submitted")
        repo.update_status(r.id, "rejected")
        with pytest.raises(DocumentValidationError):
            repo.update_status(r.id, "submitted")
        assert repo.get(r.id).status is DocumentStatus.REJECTED

    def test_draft_cannot_jump_to_accepted(self, repo):
        r = _make_record()
        repo.save(r)
        with pytest.raises(DocumentValidationError):
            repo.update_status(r.id, "accepted")

    def test_unknown_id(self, repo):
        with pytest.raises(KeyError):
            repo.update_status("nope", "submitted")

    def test_reference_untouched_when_omitted(self, repo):
        r = _make_record()
        r.reference = "BN-7"
        repo.save(r)
        repo.update_status(r.id, "validated")
        assert repo.get(r.id).reference == "BN-7"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestFind:
    @pytest.fixture
    def filled(self, repo):
        records = [
            _make_record(kind="uva", minutes=0),
            _make_record(kind="zm", period="Q1/2025", minutes=1),
            _make_record(account="firma-b", kind="uva", minutes=2),
        ]
        for r in records:
            repo.save(r)
        repo.update_status(records[1].id, "submitted")
        return records

    def test_list_all_newest_first(self, repo, filled):
        assert [r.id for r in repo.list_all()] == [filled[2].id, filled[1].id, filled[0].id]

    def test_filter_by_account(self, repo, filled):
        assert {r.id for r in repo.find(account="firma-a")} == {filled[0].id, filled[1].id}

    def test_filter_by_kind_and_account(self, repo, filled):
        assert [r.id for r in repo.find(account="firma-a", kind="uva")] == [filled[0].id]

    def test_filter_by_status_enum(self, repo, filled):
        assert [r.id for r in repo.find(status=DocumentStatus.SUBMITTED)] == [filled[1].id]

    def test_no_match(self, repo, filled):
        assert repo.find(kind="elda-anmeldung") == []


class TestDelete:
    def test_delete(self, repo):
        r = _make_record()
        repo.save(r)
        assert repo.delete(r.id) is True
        assert repo.get(r.id) is None

    def test_delete_unknown(self, repo):
        assert repo.delete("nope") is False

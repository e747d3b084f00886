from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from authlink.db import AuthLink, PairingSession
from authlink.services.errors import (
    CodeAlreadyClaimed,
    CodeExpired,
    CodeNotFound,
    CollisionExhausted,
    StorageFault,
)


def _row_count(db_session) -> int:
    return db_session.scalar(select(func.count()).select_from(AuthLink))


class TestIssue:
    def test_issue_persists_pending_code(self, make_service, db_session, clock):
        issued = make_service().issue_code()

        assert len(issued.code) == 12
        assert issued.expires_at == clock.now + timedelta(seconds=300)

        link = db_session.get(AuthLink, issued.code)
        assert link.claimed_at is None
        assert link.claimed_by is None
        assert link.session_ref is None

    def test_explicit_zero_ttl_is_not_replaced_by_default(self, make_service, clock):
        service = make_service(ttl_seconds=0)
        issued = service.issue_code()

        assert issued.expires_at == clock.now
        with pytest.raises(CodeExpired):
            service.redeem_code(issued.code, "device-42")

    def test_collision_on_first_attempt_retries_with_new_code(self, make_service, db_session):
        make_service(code_factory=lambda: "AAAAAAAAAAAA").issue_code()

        candidates = iter(["AAAAAAAAAAAA", "BBBBBBBBBBBB"])
        issued = make_service(code_factory=lambda: next(candidates)).issue_code()

        assert issued.code == "BBBBBBBBBBBB"
        assert _row_count(db_session) == 2

    def test_collision_exhausted_after_retry_bound(self, make_service, db_session):
        make_service(code_factory=lambda: "AAAAAAAAAAAA").issue_code()

        attempts = []

        def always_taken():
            attempts.append(1)
            return "AAAAAAAAAAAA"

        with pytest.raises(CollisionExhausted) as exc:
            make_service(code_factory=always_taken).issue_code()

        assert exc.value.attempts == 5
        assert len(attempts) == 5
        assert _row_count(db_session) == 1

    def test_other_storage_errors_abort_without_retry(self, make_service, db_session, monkeypatch):
        calls = []

        def broken_execute(*args, **kwargs):
            calls.append(1)
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db_session, "execute", broken_execute)

        with pytest.raises(StorageFault) as exc:
            make_service().issue_code()

        assert isinstance(exc.value.__cause__, OperationalError)
        assert len(calls) == 1


class TestRedeem:
    def test_redeem_claims_and_creates_session(self, make_service, db_session, clock):
        service = make_service()
        code = service.issue_code().code
        clock.advance(10)

        session_ref = service.redeem_code(code, "device-42")

        assert session_ref.startswith("sess_")
        link = db_session.get(AuthLink, code)
        assert link.claimed_by == "device-42"
        assert link.claimed_at == clock.now
        assert link.session_ref == session_ref

        session = db_session.get(PairingSession, session_ref)
        assert session.claimed_by == "device-42"
        assert session.code == code

    def test_redeem_normalizes_typed_code(self, make_service):
        service = make_service(code_factory=lambda: "A7KQX2M9PLRT")
        service.issue_code()

        assert service.redeem_code(" a7kqx2m9plrt ", "device-42").startswith("sess_")

    def test_unknown_code(self, make_service):
        with pytest.raises(CodeNotFound):
            make_service().redeem_code("ZZZZZZZZZZZZ", "device-42")

    def test_expired_code_is_never_redeemable(self, make_service, clock):
        service = make_service()
        code = service.issue_code().code
        clock.advance(301)

        with pytest.raises(CodeExpired):
            service.redeem_code(code, "device-42")

    def test_code_expires_at_exactly_ttl(self, make_service, clock):
        service = make_service()
        code = service.issue_code().code
        clock.advance(300)

        with pytest.raises(CodeExpired):
            service.redeem_code(code, "device-42")

    def test_second_claim_is_rejected_and_row_unchanged(self, make_service, db_session, clock):
        service = make_service()
        code = service.issue_code().code
        first_ref = service.redeem_code(code, "device-42")
        claimed_at = clock.now
        clock.advance(2)

        with pytest.raises(CodeAlreadyClaimed):
            service.redeem_code(code, "device-7")
        with pytest.raises(CodeAlreadyClaimed):
            service.redeem_code(code, "device-42")

        db_session.expire_all()
        link = db_session.get(AuthLink, code)
        assert link.claimed_by == "device-42"
        assert link.claimed_at == claimed_at
        assert link.session_ref == first_ref
        assert db_session.scalar(select(func.count()).select_from(PairingSession)) == 1

    def test_claimed_code_reports_claimed_after_expiry(self, make_service, clock):
        service = make_service()
        code = service.issue_code().code
        service.redeem_code(code, "device-42")
        clock.advance(600)

        with pytest.raises(CodeAlreadyClaimed):
            service.redeem_code(code, "device-7")

    def test_storage_fault_during_claim(self, make_service, db_session, monkeypatch):
        service = make_service()
        code = service.issue_code().code

        def broken_execute(*args, **kwargs):
            raise OperationalError("UPDATE", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "execute", broken_execute)

        with pytest.raises(StorageFault):
            service.redeem_code(code, "device-42")


class TestCheckClaim:
    def test_pending_code(self, make_service):
        service = make_service()
        code = service.issue_code().code

        status = service.check_claim(code)
        assert status.claimed is False
        assert status.expired is False
        assert status.session_ref is None

    def test_claimed_code_returns_session_ref(self, make_service):
        service = make_service()
        code = service.issue_code().code
        session_ref = service.redeem_code(code, "device-42")

        status = service.check_claim(code)
        assert status.claimed is True
        assert status.session_ref == session_ref
        assert not hasattr(status, "claimed_by")

    def test_expired_unclaimed_code(self, make_service, clock):
        service = make_service()
        code = service.issue_code().code
        clock.advance(301)

        status = service.check_claim(code)
        assert status.claimed is False
        assert status.expired is True

    def test_unknown_code(self, make_service):
        with pytest.raises(CodeNotFound):
            make_service().check_claim("ZZZZZZZZZZZZ")

    def test_poll_does_not_change_state(self, make_service, db_session):
        service = make_service()
        code = service.issue_code().code

        service.check_claim(code)
        service.check_claim(code)

        db_session.expire_all()
        link = db_session.get(AuthLink, code)
        assert link.claimed_at is None
        assert link.session_ref is None


class TestSweep:
    def test_sweep_deletes_only_expired_unclaimed_rows(self, make_service, clock):
        service = make_service()
        stale_pending = service.issue_code().code
        stale_claimed = service.issue_code().code
        service.redeem_code(stale_claimed, "device-42")
        clock.advance(301)
        fresh = service.issue_code().code

        assert service.sweep_expired() == 1

        with pytest.raises(CodeNotFound):
            service.check_claim(stale_pending)
        assert service.check_claim(stale_claimed).claimed is True
        assert service.check_claim(fresh).claimed is False

    def test_claim_just_before_expiry_survives_sweep(self, make_service, clock):
        service = make_service()
        code = service.issue_code().code
        clock.advance(299)
        session_ref = service.redeem_code(code, "device-42")
        clock.advance(2)

        service.sweep_expired()

        status = service.check_claim(code)
        assert status.claimed is True
        assert status.session_ref == session_ref

    def test_claimed_rows_purged_after_retention(self, make_service, clock):
        service = make_service(claimed_retention_seconds=600)
        code = service.issue_code().code
        service.redeem_code(code, "device-42")

        clock.advance(599)
        assert service.sweep_expired() == 0
        clock.advance(2)
        assert service.sweep_expired() == 1

        with pytest.raises(CodeNotFound):
            service.check_claim(code)

    def test_zero_retention_is_honoured(self, make_service, clock):
        service = make_service(claimed_retention_seconds=0)
        code = service.issue_code().code
        service.redeem_code(code, "device-42")
        clock.advance(1)

        assert service.sweep_expired() == 1

    def test_sweep_is_idempotent(self, make_service, clock):
        service = make_service()
        service.issue_code()
        clock.advance(301)

        assert service.sweep_expired() == 1
        assert service.sweep_expired() == 0

    def test_sweep_keeps_session_material(self, make_service, db_session, clock):
        service = make_service(claimed_retention_seconds=60)
        code = service.issue_code().code
        session_ref = service.redeem_code(code, "device-42")
        clock.advance(301)

        assert service.sweep_expired() == 1

        assert db_session.get(PairingSession, session_ref) is not None

    def test_swept_code_value_can_be_issued_again(self, make_service, clock):
        make_service(code_factory=lambda: "AAAAAAAAAAAA").issue_code()
        clock.advance(301)
        make_service().sweep_expired()

        issued = make_service(code_factory=lambda: "AAAAAAAAAAAA").issue_code()
        assert issued.code == "AAAAAAAAAAAA"

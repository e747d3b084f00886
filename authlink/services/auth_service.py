import secrets
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from sqlalchemy import and_, delete, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from authlink.core.config import settings
from authlink.db import AuthLink, PairingSession
from authlink.services.code_generator import generate_code, normalize_code
from authlink.services.errors import (
    CodeAlreadyClaimed,
    CodeExpired,
    CodeNotFound,
    CollisionExhausted,
    StorageFault,
)
from authlink.services.logger import log_event, mask_code

"""AuthLinkService: issuance, redemption, polling and expiry of one-time pairing codes"""


logger = logging.getLogger(__name__)

def utcnow() -> datetime:
    # Stored timestamps are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)

def new_session_ref() -> str:
    return "sess_" + secrets.token_urlsafe(24)

def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)

@dataclass
class IssuedCode:
    code: str
    expires_at: datetime

@dataclass
class ClaimStatus:
    claimed: bool
    expired: bool = False
    session_ref: Optional[str] = None

class AuthLinkService:
    """
    All coordination happens in the store: issuance relies on the primary key
    rejecting a duplicate live code, redemption on a single conditional UPDATE.
    The service itself holds no state between requests.
    """

    def __init__(
        self,
        db: Session,
        ttl_seconds: int | None = None,
        max_attempts: int | None = None,
        code_factory: Callable[[], str] = generate_code,
        clock: Callable[[], datetime] = utcnow,
        claimed_retention_seconds: int | None = None,
    ):
        self.db = db
        self.ttl_seconds = settings.CODE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.max_attempts = settings.ISSUE_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.claimed_retention_seconds = (
            settings.CLAIMED_RETENTION_SECONDS if claimed_retention_seconds is None else claimed_retention_seconds
        )
        self._code_factory = code_factory
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock()

    def issue_code(self) -> IssuedCode:
        """
        Inserts a fresh code with expires_at = now + TTL.
        A unique-constraint violation means the code is taken: regenerate and
        retry, up to max_attempts. Any other storage error aborts.
        """
        started = time.monotonic()
        now = self._now()
        expires_at = now + timedelta(seconds=self.ttl_seconds)

        for attempt in range(1, self.max_attempts + 1):
            code = self._code_factory()
            try:
                self.db.execute(
                    insert(AuthLink).values(code=code, created_at=now, expires_at=expires_at)
                )
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(f"Issue collision: attempt={attempt} code={mask_code(code)}")
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Issue failed: storage error {type(e).__name__}: {e}")
                log_event("issue", code, "storage_fault", _elapsed_ms(started))
                raise StorageFault("Could not persist pairing code") from e

            log_event("issue", code, "ok", _elapsed_ms(started))
            return IssuedCode(code=code, expires_at=expires_at)

        log_event("issue", None, "collision_exhausted", _elapsed_ms(started))
        raise CollisionExhausted(self.max_attempts)

    def redeem_code(self, code: str, claimant: str) -> str:
        """
        Claims `code` for `claimant` and returns the new session_ref.

        The claim is one compare-and-set UPDATE conditioned on the row being
        unclaimed and unexpired, so of any number of racing claimants exactly
        one sees rowcount == 1. Losers are told why via a follow-up read.
        """
        started = time.monotonic()
        code = normalize_code(code)
        now = self._now()
        session_ref = new_session_ref()

        stmt = (
            update(AuthLink)
            .where(
                AuthLink.code == code,
                AuthLink.claimed_at.is_(None),
                AuthLink.expires_at > now,
            )
            .values(claimed_by=claimant, claimed_at=now, session_ref=session_ref)
            .execution_options(synchronize_session=False)
        )

        try:
            result = self.db.execute(stmt)
            if result.rowcount == 1:
                self.db.add(PairingSession(
                    session_ref=session_ref,
                    claimed_by=claimant,
                    code=code,
                    created_at=now,
                ))
                self.db.commit()
                logger.info(f"Code claimed: code={mask_code(code)}, claimant={claimant}")
                log_event("claim", code, "ok", _elapsed_ms(started))
                return session_ref
            self.db.rollback()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Claim failed: storage error {type(e).__name__}: {e}")
            log_event("claim", code, "storage_fault", _elapsed_ms(started))
            raise StorageFault("Could not claim pairing code") from e

        error = self._diagnose_failed_claim(code, now)
        log_event("claim", code, error.error, _elapsed_ms(started))
        raise error

    def _diagnose_failed_claim(self, code: str, now: datetime):
        try:
            row = self.db.execute(
                select(AuthLink.claimed_at, AuthLink.expires_at).where(AuthLink.code == code)
            ).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageFault("Could not read pairing code") from e

        if row is None:
            return CodeNotFound()
        # A claimed row stays claimed after it expires; report the claim
        if row.claimed_at is not None:
            return CodeAlreadyClaimed()
        return CodeExpired()

    def check_claim(self, code: str) -> ClaimStatus:
        """Read-only. Never exposes claimed_by to the (unauthenticated) poller."""
        code = normalize_code(code)
        try:
            row = self.db.execute(
                select(AuthLink.claimed_at, AuthLink.session_ref, AuthLink.expires_at)
                .where(AuthLink.code == code)
            ).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Poll failed: storage error {type(e).__name__}: {e}")
            raise StorageFault("Could not read pairing code") from e

        if row is None:
            log_event("poll", code, "not_found")
            raise CodeNotFound()

        if row.claimed_at is not None:
            log_event("poll", code, "claimed")
            return ClaimStatus(claimed=True, session_ref=row.session_ref)

        expired = self._now() >= row.expires_at
        log_event("poll", code, "expired" if expired else "pending")
        return ClaimStatus(claimed=False, expired=expired)

    def sweep_expired(self) -> int:
        """
        Deletes unclaimed rows past their expiry. Claimed rows are kept for
        CLAIMED_RETENTION_SECONDS after the claim so a late poller still
        finds its session_ref. Idempotent.
        """
        started = time.monotonic()
        now = self._now()
        claimed_cutoff = now - timedelta(seconds=self.claimed_retention_seconds)
        try:
            result = self.db.execute(
                delete(AuthLink)
                .where(or_(
                    and_(AuthLink.claimed_at.is_(None), AuthLink.expires_at < now),
                    AuthLink.claimed_at < claimed_cutoff,
                ))
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Sweep failed: storage error {type(e).__name__}: {e}")
            raise StorageFault("Could not sweep expired codes") from e

        deleted = result.rowcount
        log_event("sweep", None, f"deleted={deleted}", _elapsed_ms(started))
        return deleted

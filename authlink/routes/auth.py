# Pairing routes: code issuance (web), claim (authenticated mobile)
# and claim polling (web).

from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from authlink.core.config import settings
from authlink.core.security import get_current_claimant
from authlink.db import get_db
from authlink.services.auth_service import AuthLinkService

router = APIRouter(prefix="/auth", tags=["auth"])

class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

class IssueResp(CamelModel):
    code: str
    expires_at: datetime = Field(alias="expiresAt")
    poll_interval_ms: int = Field(alias="pollIntervalMs")

class ClaimReq(CamelModel):
    code: str = Field(min_length=1)
    claimant_identity: Optional[str] = Field(default=None, alias="claimantIdentity")

class ClaimResp(CamelModel):
    session_ref: str = Field(alias="sessionRef")

class PollResp(CamelModel):
    claimed: bool
    expired: bool = False
    session_ref: Optional[str] = Field(default=None, alias="sessionRef")

def get_auth_link_service(db: Session = Depends(get_db)) -> AuthLinkService:
    return AuthLinkService(db)

@router.post("/code", response_model=IssueResp)
def issue_code(service: AuthLinkService = Depends(get_auth_link_service)):
    # Web client asks for a fresh code to render as QR; no auth needed
    issued = service.issue_code()
    return IssueResp(
        code=issued.code,
        expires_at=issued.expires_at.replace(tzinfo=timezone.utc),
        poll_interval_ms=settings.POLL_MIN_INTERVAL_MS,
    )

@router.post("/claim", response_model=ClaimResp)
def claim_code(
    req: ClaimReq,
    caller: str = Depends(get_current_claimant),
    service: AuthLinkService = Depends(get_auth_link_service),
):
    # Mobile device redeems a scanned code as the authenticated caller
    claimant = req.claimant_identity or caller
    if claimant != caller:
        raise HTTPException(status_code=403, detail="Claimant does not match authenticated caller")

    session_ref = service.redeem_code(req.code, claimant)
    return ClaimResp(session_ref=session_ref)

@router.get("/poll", response_model=PollResp, response_model_exclude_none=True)
def poll(code: str, service: AuthLinkService = Depends(get_auth_link_service)):
    # Web client polls until claimed or until its own timeout at expiresAt
    status = service.check_claim(code)
    return PollResp(claimed=status.claimed, expired=status.expired, session_ref=status.session_ref)

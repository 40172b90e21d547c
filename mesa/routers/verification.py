"""
Email verification router: send and check six-digit codes.
"""
from functools import lru_cache

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from mesa.schemas.verification import (
    SendCodeRequest,
    SendCodeResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from mesa.services.verification import VerificationCodeService

router = APIRouter(tags=["verification"])


@lru_cache
def get_verification_service() -> VerificationCodeService:
    return VerificationCodeService()


@router.post("/verification/send-code", response_model=SendCodeResponse)
def send_code(
    payload: SendCodeRequest,
    service: VerificationCodeService = Depends(get_verification_service),
):
    issued = service.send_code(payload.email)
    return SendCodeResponse(
        success=True,
        message="Verification code sent" if issued.delivered else "Verification code generated",
        expires_in_seconds=issued.expires_in_seconds,
        dev_code=issued.dev_code,
    )


@router.post("/verification/verify-code", response_model=VerifyCodeResponse)
def verify_code(
    payload: VerifyCodeRequest,
    service: VerificationCodeService = Depends(get_verification_service),
):
    """200 when the code matches; 400 with attemptsRemaining otherwise."""
    result = service.verify_code(payload.email, payload.code)
    body = VerifyCodeResponse(
        success=result.verified,
        verified=result.verified,
        message=result.message,
        attempts_remaining=result.attempts_remaining,
    )
    if not result.verified:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=body.model_dump(by_alias=True),
        )
    return body

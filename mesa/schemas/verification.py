"""
Email verification Pydantic schemas.
"""
from typing import Optional

from pydantic import EmailStr

from mesa.schemas.base import CamelModel


class SendCodeRequest(CamelModel):
    email: EmailStr


class SendCodeResponse(CamelModel):
    success: bool
    message: str
    expires_in_seconds: int
    dev_code: Optional[str] = None


class VerifyCodeRequest(CamelModel):
    email: EmailStr
    code: str


class VerifyCodeResponse(CamelModel):
    success: bool
    verified: bool
    message: str
    attempts_remaining: Optional[int] = None

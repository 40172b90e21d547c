"""
Email verification codes.

Six-digit codes keyed by lower-cased email, kept hashed in the injected
ExpiringStore with a TTL and an attempt counter. Requesting a new code
replaces the previous one and resets the counter.
"""
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from mesa.core.cache import ExpiringStore, get_expiring_store
from mesa.core.config import Settings, get_settings
from mesa.core.errors import ValidationError
from mesa.core.security import hash_token, secrets_match
from mesa.services.notifications import Notifier, get_notifier, verification_code

logger = logging.getLogger(__name__)


@dataclass
class IssuedCode:
    email: str
    expires_in_seconds: int
    delivered: bool
    dev_code: Optional[str] = None  # only exposed when DEBUG is on


@dataclass
class VerificationResult:
    verified: bool
    message: str
    attempts_remaining: Optional[int] = None


class VerificationCodeService:
    def __init__(
        self,
        store: Optional[ExpiringStore] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store or get_expiring_store()
        self.notifier = notifier or get_notifier()
        self.settings = settings or get_settings()

    @staticmethod
    def _key(email: str) -> str:
        return f"mesa:verify:{email.strip().lower()}"

    @staticmethod
    def _generate_code() -> str:
        return f"{secrets.randbelow(900000) + 100000}"

    def send_code(self, email: str) -> IssuedCode:
        if not (email or "").strip():
            raise ValidationError("Email is required")

        code = self._generate_code()
        ttl = self.settings.VERIFICATION_CODE_TTL_SECONDS
        self.store.set(self._key(email), {"code_hash": hash_token(code)}, ttl)

        delivered = self.notifier.dispatch(verification_code(email.strip(), code, ttl // 60))
        if not delivered:
            logger.warning(f"Verification code for {email} stored but not delivered")

        return IssuedCode(
            email=email.strip().lower(),
            expires_in_seconds=ttl,
            delivered=delivered,
            dev_code=code if self.settings.DEBUG else None,
        )

    def verify_code(self, email: str, code: str) -> VerificationResult:
        if not (email or "").strip() or not (code or "").strip():
            raise ValidationError("Email and code are required")

        key = self._key(email)
        stored = self.store.get(key)
        if stored is None:
            # Never issued, expired, or exhausted
            return VerificationResult(verified=False, message="No verification code found. Request a new one.")

        if secrets_match(hash_token(code.strip()), stored.get("code_hash")):
            self.store.delete(key)
            return VerificationResult(verified=True, message="Email verified")

        max_attempts = self.settings.VERIFICATION_MAX_ATTEMPTS
        attempts = self.store.incr_attempts(key)
        remaining = max(max_attempts - attempts, 0)
        if remaining == 0:
            self.store.delete(key)
            return VerificationResult(
                verified=False,
                message="Too many attempts. Request a new code.",
                attempts_remaining=0,
            )
        return VerificationResult(verified=False, message="Incorrect code", attempts_remaining=remaining)

"""
Tests for email verification codes and the expiring store behind them.
"""
from datetime import datetime, timedelta

import pytest

from mesa.core.cache import InMemoryExpiringStore
from mesa.core.config import get_settings
from mesa.core.errors import ValidationError
from mesa.core.security import hash_token
from mesa.main import app
from mesa.routers.verification import get_verification_service
from mesa.services.notifications import LoggingNotifier
from mesa.services.verification import VerificationCodeService


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 6, 18, 0))


@pytest.fixture
def store(clock) -> InMemoryExpiringStore:
    return InMemoryExpiringStore(clock=clock)


@pytest.fixture
def mailer() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def service(store, mailer) -> VerificationCodeService:
    settings = get_settings().model_copy(update={"DEBUG": True})
    return VerificationCodeService(store=store, notifier=mailer, settings=settings)


class TestSendCode:
    def test_issues_six_digit_code(self, service, mailer):
        issued = service.send_code("Ana@Example.com")

        assert issued.dev_code is not None
        assert len(issued.dev_code) == 6 and issued.dev_code.isdigit()
        assert issued.expires_in_seconds == 600
        assert issued.delivered is True
        assert mailer.sent[0].kind == "verification_code"
        assert issued.dev_code in mailer.sent[0].body

    def test_code_is_stored_hashed(self, service, store):
        issued = service.send_code("ana@example.com")

        stored = store.get("mesa:verify:ana@example.com")
        assert stored is not None
        assert stored == {"code_hash": hash_token(issued.dev_code)}

    def test_no_dev_code_outside_debug(self, store, mailer):
        production = VerificationCodeService(store=store, notifier=mailer, settings=get_settings())
        assert production.send_code("ana@example.com").dev_code is None

    def test_email_required(self, service):
        with pytest.raises(ValidationError):
            service.send_code("  ")


class TestVerifyCode:
    def test_correct_code_verifies_once(self, service):
        code = service.send_code("ana@example.com").dev_code

        assert service.verify_code("ANA@example.com", code).verified is True
        # Consumed
        assert service.verify_code("ana@example.com", code).verified is False

    def test_wrong_code_counts_attempts(self, service):
        service.send_code("ana@example.com")

        result = service.verify_code("ana@example.com", "000000")
        assert result.verified is False
        assert result.attempts_remaining == 4

    def test_locked_after_max_attempts(self, service):
        code = service.send_code("ana@example.com").dev_code
        wrong = "000000" if code != "000000" else "111111"

        results = [service.verify_code("ana@example.com", wrong) for _ in range(5)]
        assert results[-1].attempts_remaining == 0
        # The real code no longer works either
        assert service.verify_code("ana@example.com", code).verified is False

    def test_expired_code(self, service, clock):
        code = service.send_code("ana@example.com").dev_code
        clock.advance(seconds=601)

        result = service.verify_code("ana@example.com", code)
        assert result.verified is False
        assert result.attempts_remaining is None

    def test_new_code_replaces_old(self, service):
        first = service.send_code("ana@example.com").dev_code
        second = service.send_code("ana@example.com").dev_code

        if first != second:
            assert service.verify_code("ana@example.com", first).verified is False
        assert service.verify_code("ana@example.com", second).verified is True


class TestVerificationRouter:
    """Tests for /api/verification endpoints."""

    @pytest.fixture(autouse=True)
    def override_service(self, service):
        app.dependency_overrides[get_verification_service] = lambda: service
        yield
        app.dependency_overrides.pop(get_verification_service, None)

    def test_send_and_verify(self, client):
        response = client.post("/api/verification/send-code", json={"email": "ana@example.com"})
        assert response.status_code == 200
        code = response.json()["devCode"]

        response = client.post(
            "/api/verification/verify-code",
            json={"email": "ana@example.com", "code": code},
        )
        assert response.status_code == 200
        assert response.json()["verified"] is True

    def test_wrong_code_is_400(self, client):
        client.post("/api/verification/send-code", json={"email": "ana@example.com"})

        response = client.post(
            "/api/verification/verify-code",
            json={"email": "ana@example.com", "code": "abcdef"},
        )
        assert response.status_code == 400
        assert response.json()["attemptsRemaining"] == 4

    def test_invalid_email(self, client):
        response = client.post("/api/verification/send-code", json={"email": "not-an-email"})
        assert response.status_code == 422

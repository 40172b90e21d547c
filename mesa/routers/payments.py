"""
Payment processor callback.

The processor posts here once a deposit is captured; the shared secret in
X-Payment-Secret authenticates it.
"""
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Header

from mesa.core.config import get_settings
from mesa.core.errors import DependencyFailure, PermissionDenied
from mesa.core.security import secrets_match
from mesa.schemas.reservation import DepositConfirmation, ReservationResponse
from mesa.services.engine import AllocationEngine, get_engine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.post("/payments/deposit-confirmation", response_model=ReservationResponse)
def confirm_deposit(
    payload: DepositConfirmation,
    x_payment_secret: Optional[str] = Header(None),
    engine: AllocationEngine = Depends(get_engine),
):
    """Mark a reservation's deposit as paid (and confirm it when policy allows)."""
    expected = get_settings().PAYMENT_WEBHOOK_SECRET
    if not expected:
        raise DependencyFailure("Payment callback is not configured")
    if not secrets_match(x_payment_secret, expected):
        logger.warning(f"Rejected deposit confirmation for reservation {payload.reservation_id}: bad secret")
        raise PermissionDenied("Invalid payment secret")

    reservation = engine.confirm_deposit(payload.reservation_id, Decimal(str(payload.amount)))
    logger.info(
        f"Deposit confirmation for {reservation.confirmation_code} "
        f"(ref {payload.payment_reference or 'n/a'})"
    )
    return ReservationResponse.from_model(reservation)

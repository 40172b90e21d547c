"""
Reservation policy Pydantic schemas.
"""
from typing import List, Optional

from pydantic import Field

from mesa.core.clock import format_hhmm
from mesa.models.policy import ALL_WEEKDAYS_MASK
from mesa.schemas.base import CamelModel
from mesa.services.policy_store import EffectivePolicy


class PeakWindowSchema(CamelModel):
    label: Optional[str] = Field(None, max_length=100)
    start_time: str  # HH:MM
    end_time: str  # HH:MM, exclusive
    weekday_mask: int = ALL_WEEKDAYS_MASK  # bit 0 = Monday
    deposit_amount: float


class PolicyResponse(CamelModel):
    slot_minutes: int
    service_duration_minutes: int
    max_party_size: int
    auto_confirm: bool
    arrival_tolerance_minutes: int
    checkin_grace_minutes: int
    min_lead_minutes: int
    max_advance_days: int
    deposits_enabled: bool
    deposit_expiry_minutes: int
    peak_windows: List[PeakWindowSchema]

    @classmethod
    def from_policy(cls, policy: EffectivePolicy) -> "PolicyResponse":
        return cls(
            slot_minutes=policy.slot_minutes,
            service_duration_minutes=policy.service_duration_minutes,
            max_party_size=policy.max_party_size,
            auto_confirm=policy.auto_confirm,
            arrival_tolerance_minutes=policy.arrival_tolerance_minutes,
            checkin_grace_minutes=policy.checkin_grace_minutes,
            min_lead_minutes=policy.min_lead_minutes,
            max_advance_days=policy.max_advance_days,
            deposits_enabled=policy.deposits_enabled,
            deposit_expiry_minutes=policy.deposit_expiry_minutes,
            peak_windows=[
                PeakWindowSchema(
                    label=w.label,
                    start_time=format_hhmm(w.start_time),
                    end_time=format_hhmm(w.end_time),
                    weekday_mask=w.weekday_mask,
                    deposit_amount=float(w.deposit_amount),
                )
                for w in policy.peak_windows
            ],
        )


class PolicyUpdate(CamelModel):
    """Partial update; peak_windows, when given, replaces the whole list."""
    slot_minutes: Optional[int] = None
    service_duration_minutes: Optional[int] = None
    max_party_size: Optional[int] = None
    auto_confirm: Optional[bool] = None
    arrival_tolerance_minutes: Optional[int] = None
    checkin_grace_minutes: Optional[int] = None
    min_lead_minutes: Optional[int] = None
    max_advance_days: Optional[int] = None
    deposits_enabled: Optional[bool] = None
    deposit_expiry_minutes: Optional[int] = None
    peak_windows: Optional[List[PeakWindowSchema]] = None

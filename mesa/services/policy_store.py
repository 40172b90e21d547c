"""
Policy Store: per-restaurant booking configuration.

Resolves the effective policy (stored row or DEFAULT_* settings), the
operating hours for a business date and the peak window covering a slot,
and validates booking requests against them.

Hours resolution order for a date:
1. ServicePeriod exception for that exact date
2. Weekly OperatingHours row for the weekday
3. Restaurant default open_time/close_time
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from mesa.core.clock import (
    MINUTES_PER_DAY,
    generate_slot_times,
    get_business_date,
    service_window,
    slot_datetime,
    time_to_offset_minutes,
)
from mesa.core.config import Settings, get_settings
from mesa.core.errors import (
    InvalidPartySize,
    NotFound,
    OutsideOperatingHours,
    ValidationError,
)
from mesa.models.operating_hours import OperatingHours, ServicePeriod
from mesa.models.policy import ALL_WEEKDAYS_MASK, PeakWindow, ReservationPolicy
from mesa.models.restaurant import Restaurant
from mesa.models.table import DiningTable


@dataclass(frozen=True)
class PeakRule:
    """A peak window as the engine sees it."""
    start_time: time
    end_time: time
    deposit_amount: Decimal
    weekday_mask: int = ALL_WEEKDAYS_MASK
    label: Optional[str] = None

    def applies_on(self, weekday: int) -> bool:
        return bool(self.weekday_mask & (1 << weekday))


@dataclass(frozen=True)
class EffectivePolicy:
    """Resolved booking rules for one restaurant."""
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
    peak_windows: Tuple[PeakRule, ...] = field(default_factory=tuple)

    @classmethod
    def defaults(cls, settings: Settings) -> "EffectivePolicy":
        return cls(
            slot_minutes=settings.DEFAULT_SLOT_MINUTES,
            service_duration_minutes=settings.DEFAULT_SERVICE_DURATION_MINUTES,
            max_party_size=settings.DEFAULT_MAX_PARTY_SIZE,
            auto_confirm=True,
            arrival_tolerance_minutes=settings.DEFAULT_ARRIVAL_TOLERANCE_MINUTES,
            checkin_grace_minutes=settings.DEFAULT_CHECKIN_GRACE_MINUTES,
            min_lead_minutes=settings.DEFAULT_MIN_LEAD_MINUTES,
            max_advance_days=settings.DEFAULT_MAX_ADVANCE_DAYS,
            deposits_enabled=True,
            deposit_expiry_minutes=settings.DEFAULT_DEPOSIT_EXPIRY_MINUTES,
        )


# Fields of EffectivePolicy that update_policy accepts, with their lower bound
POLICY_FIELD_MINIMUMS = {
    "slot_minutes": 1,
    "service_duration_minutes": 1,
    "max_party_size": 1,
    "arrival_tolerance_minutes": 0,
    "checkin_grace_minutes": 0,
    "min_lead_minutes": 0,
    "max_advance_days": 0,
    "deposit_expiry_minutes": 1,
}
POLICY_FLAGS = ("auto_confirm", "deposits_enabled")


@dataclass(frozen=True)
class BookingWindow:
    """A validated request: business date, slot time and calendar window."""
    business_date: date
    time: time
    starts_at: datetime
    ends_at: datetime


class PolicyStore:
    """Read-mostly access to restaurant policy, hours and peak windows."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    @property
    def day_start_hour(self) -> int:
        return self.settings.BUSINESS_DAY_START_HOUR

    def get_restaurant(self, restaurant_id: UUID) -> Restaurant:
        restaurant = self.db.get(Restaurant, restaurant_id)
        if restaurant is None or not restaurant.is_active:
            raise NotFound(f"Restaurant {restaurant_id} not found")
        return restaurant

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def get_policy(self, restaurant_id: UUID) -> EffectivePolicy:
        """Stored policy merged over the configured defaults."""
        self.get_restaurant(restaurant_id)
        policy = EffectivePolicy.defaults(self.settings)

        row = self.db.execute(
            select(ReservationPolicy).where(ReservationPolicy.restaurant_id == restaurant_id)
        ).scalar_one_or_none()
        if row is not None:
            policy = replace(
                policy,
                slot_minutes=row.slot_minutes,
                service_duration_minutes=row.service_duration_minutes,
                max_party_size=row.max_party_size,
                auto_confirm=row.auto_confirm,
                arrival_tolerance_minutes=row.arrival_tolerance_minutes,
                checkin_grace_minutes=row.checkin_grace_minutes,
                min_lead_minutes=row.min_lead_minutes,
                max_advance_days=row.max_advance_days,
                deposits_enabled=row.deposits_enabled,
                deposit_expiry_minutes=row.deposit_expiry_minutes,
            )

        windows = self.db.execute(
            select(PeakWindow)
            .where(PeakWindow.restaurant_id == restaurant_id)
            .order_by(PeakWindow.start_time)
        ).scalars().all()
        rules = tuple(
            PeakRule(
                start_time=w.start_time,
                end_time=w.end_time,
                deposit_amount=Decimal(w.deposit_amount),
                weekday_mask=w.weekday_mask,
                label=w.label,
            )
            for w in windows
        )
        return replace(policy, peak_windows=rules)

    def update_policy(
        self,
        restaurant_id: UUID,
        changes: dict,
        peak_windows: Optional[list[PeakRule]] = None,
    ) -> EffectivePolicy:
        """
        Apply partial policy changes and optionally replace the peak windows.

        Unknown keys are ignored; out-of-range values raise ValidationError.
        Commits on success.
        """
        current = self.get_policy(restaurant_id)

        for key, minimum in POLICY_FIELD_MINIMUMS.items():
            if key in changes and changes[key] is not None:
                value = changes[key]
                if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
                    raise ValidationError(f"{key} must be an integer >= {minimum}")

        for rule in peak_windows or []:
            self._validate_peak_rule(rule)

        merged = {
            key: changes[key]
            for key in (*POLICY_FIELD_MINIMUMS, *POLICY_FLAGS)
            if changes.get(key) is not None
        }
        updated = replace(current, **merged)

        row = self.db.execute(
            select(ReservationPolicy).where(ReservationPolicy.restaurant_id == restaurant_id)
        ).scalar_one_or_none()
        if row is None:
            row = ReservationPolicy(restaurant_id=restaurant_id)
            self.db.add(row)
        for key in (*POLICY_FIELD_MINIMUMS, *POLICY_FLAGS):
            setattr(row, key, getattr(updated, key))

        if peak_windows is not None:
            existing = self.db.execute(
                select(PeakWindow).where(PeakWindow.restaurant_id == restaurant_id)
            ).scalars().all()
            for window in existing:
                self.db.delete(window)
            for rule in peak_windows:
                self.db.add(PeakWindow(
                    restaurant_id=restaurant_id,
                    label=rule.label,
                    start_time=rule.start_time,
                    end_time=rule.end_time,
                    weekday_mask=rule.weekday_mask,
                    deposit_amount=rule.deposit_amount,
                ))

        self.db.commit()
        return self.get_policy(restaurant_id)

    def _peak_offsets(self, rule: PeakRule) -> Tuple[int, int]:
        """[start, end) of a peak window in business-day offsets; an end at the day start closes the day."""
        start = time_to_offset_minutes(rule.start_time, self.day_start_hour)
        end = time_to_offset_minutes(rule.end_time, self.day_start_hour) or MINUTES_PER_DAY
        return start, end

    def _validate_peak_rule(self, rule: PeakRule) -> None:
        if rule.start_time == rule.end_time:
            raise ValidationError("Peak window start and end must differ")
        start, end = self._peak_offsets(rule)
        if start >= end:
            raise ValidationError(
                f"Peak window {rule.start_time.strftime('%H:%M')}-{rule.end_time.strftime('%H:%M')} "
                f"crosses the {self.day_start_hour:02d}:00 business-day start; split it into two windows"
            )
        if rule.deposit_amount is None or rule.deposit_amount < 0:
            raise ValidationError("Peak window deposit amount must be >= 0")
        if not 0 < rule.weekday_mask <= ALL_WEEKDAYS_MASK:
            raise ValidationError("Peak window weekday mask must select at least one day")

    # ------------------------------------------------------------------
    # Hours and peak windows
    # ------------------------------------------------------------------

    def hours_for(self, restaurant_id: UUID, business_date: date) -> Optional[Tuple[time, time]]:
        """
        (open, close) for a business date, or None when closed.

        A close earlier than open means service runs past midnight.
        """
        restaurant = self.get_restaurant(restaurant_id)

        weekly = self.db.execute(
            select(OperatingHours).where(
                OperatingHours.restaurant_id == restaurant_id,
                OperatingHours.day_of_week == business_date.weekday(),
            )
        ).scalar_one_or_none()

        if weekly is not None:
            base = weekly.hours
        elif restaurant.open_time is not None and restaurant.close_time is not None:
            base = (restaurant.open_time, restaurant.close_time)
        else:
            base = None

        period = self.db.execute(
            select(ServicePeriod).where(
                ServicePeriod.restaurant_id == restaurant_id,
                ServicePeriod.date == business_date,
            )
        ).scalar_one_or_none()

        if period is None:
            return base
        if period.is_closed:
            return None

        # Special hours: a missing bound keeps the regular one
        open_time = period.open_time or (base[0] if base else None)
        close_time = period.close_time or (base[1] if base else None)
        if open_time is None or close_time is None:
            return None
        return open_time, close_time

    def slot_times(self, restaurant_id: UUID, business_date: date, policy: EffectivePolicy) -> list[time]:
        hours = self.hours_for(restaurant_id, business_date)
        if hours is None:
            return []
        return generate_slot_times(hours[0], hours[1], policy.slot_minutes, self.day_start_hour)

    def peak_for(
        self,
        restaurant_id: UUID,
        business_date: date,
        slot: time,
        policy: Optional[EffectivePolicy] = None,
    ) -> Optional[PeakRule]:
        """
        The peak window covering a slot on a business date, if any.

        Windows are [start, end) in business-day offsets so a 22:00-01:00
        window covers 00:30.
        """
        policy = policy or self.get_policy(restaurant_id)
        weekday = business_date.weekday()
        slot_offset = time_to_offset_minutes(slot, self.day_start_hour)

        for rule in policy.peak_windows:
            if not rule.applies_on(weekday):
                continue
            start, end = self._peak_offsets(rule)
            if start <= slot_offset < end:
                return rule
        return None

    def deposit_for(self, policy: EffectivePolicy, peak: Optional[PeakRule]) -> Optional[Decimal]:
        """Deposit owed for a slot, None when no deposit applies."""
        if peak is None or not policy.deposits_enabled:
            return None
        return peak.deposit_amount

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def max_table_capacity(self, restaurant_id: UUID) -> int:
        capacity = self.db.execute(
            select(func.max(DiningTable.capacity)).where(DiningTable.restaurant_id == restaurant_id)
        ).scalar()
        return capacity or 0

    def validate_party_size(
        self,
        restaurant_id: UUID,
        party_size: int,
        policy: Optional[EffectivePolicy] = None,
    ) -> None:
        """Raise InvalidPartySize unless the party fits the policy and some table."""
        policy = policy or self.get_policy(restaurant_id)
        if party_size is None or party_size < 1:
            raise InvalidPartySize("Party size must be at least 1")
        if party_size > policy.max_party_size:
            raise InvalidPartySize(
                f"Party size {party_size} exceeds the maximum of {policy.max_party_size}"
            )
        if party_size > self.max_table_capacity(restaurant_id):
            raise InvalidPartySize(f"No table can seat a party of {party_size}")

    def validate_booking_time(
        self,
        restaurant_id: UUID,
        business_date: date,
        slot: time,
        now: datetime,
        policy: Optional[EffectivePolicy] = None,
    ) -> BookingWindow:
        """
        Check hours, slot alignment and lead-time bounds.

        Returns the calendar window the reservation would occupy.
        """
        policy = policy or self.get_policy(restaurant_id)
        hours = self.hours_for(restaurant_id, business_date)
        if hours is None:
            raise OutsideOperatingHours(f"Restaurant is closed on {business_date.isoformat()}")

        slots = generate_slot_times(hours[0], hours[1], policy.slot_minutes, self.day_start_hour)
        if slot not in slots:
            open_offset = time_to_offset_minutes(hours[0], self.day_start_hour)
            close_offset = time_to_offset_minutes(hours[1], self.day_start_hour)
            slot_offset = time_to_offset_minutes(slot, self.day_start_hour)
            if open_offset <= slot_offset < close_offset and slots:
                raise ValidationError(
                    f"Time {slot.strftime('%H:%M')} is not aligned to {policy.slot_minutes}-minute slots"
                )
            raise OutsideOperatingHours(
                f"Time {slot.strftime('%H:%M')} is outside operating hours "
                f"({hours[0].strftime('%H:%M')}-{hours[1].strftime('%H:%M')})"
            )

        starts_at, ends_at = service_window(
            slot_datetime(business_date, slot, self.day_start_hour),
            policy.service_duration_minutes,
        )
        if starts_at < now + timedelta(minutes=policy.min_lead_minutes):
            if starts_at < now:
                raise ValidationError("Cannot book a time in the past")
            raise ValidationError(f"Bookings require at least {policy.min_lead_minutes} minutes notice")

        today = get_business_date(now, day_start_hour=self.day_start_hour)
        if business_date > today + timedelta(days=policy.max_advance_days):
            raise ValidationError(
                f"Bookings open at most {policy.max_advance_days} days in advance"
            )

        return BookingWindow(business_date=business_date, time=slot, starts_at=starts_at, ends_at=ends_at)

    def is_bookable_window(self, starts_at: datetime, business_date: date, now: datetime, policy: EffectivePolicy) -> bool:
        """Lead-time bounds only; used by the availability grid."""
        if starts_at < now + timedelta(minutes=policy.min_lead_minutes):
            return False
        today = get_business_date(now, day_start_hour=self.day_start_hour)
        return business_date <= today + timedelta(days=policy.max_advance_days)

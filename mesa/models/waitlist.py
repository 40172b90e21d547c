"""
Walk-in waitlist entries.

priority is a monotonic rank within a restaurant (1 = first in line) that
staff can reorder. An entry is assigned when a freed table is offered to it;
seated_at records the staff confirmation of that offer and left_at the party
leaving the table again.
"""
import enum
import uuid
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, Uuid, ForeignKey, CheckConstraint, Index, Enum as SQLEnum, func,
)
from sqlalchemy.orm import relationship

from mesa.db.base import Base


class WaitlistStatus(str, enum.Enum):
    WAITING = "waiting"
    ASSIGNED = "assigned"
    REMOVED = "removed"


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    party_size = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)

    priority = Column(Integer, nullable=False)
    status = Column(
        SQLEnum(WaitlistStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=WaitlistStatus.WAITING,
    )

    offered_table_id = Column(Uuid, ForeignKey("dining_tables.id", ondelete="SET NULL"), nullable=True)
    assigned_at = Column(DateTime, nullable=True)
    seated_at = Column(DateTime, nullable=True)
    left_at = Column(DateTime, nullable=True)
    removed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    offered_table = relationship("DiningTable")

    __table_args__ = (
        CheckConstraint('party_size >= 1', name='ck_waitlist_party_size'),
        Index('idx_waitlist_restaurant_status_priority', 'restaurant_id', 'status', 'priority'),
    )

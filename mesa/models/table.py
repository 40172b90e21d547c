"""
Physical dining tables and their occupancy status.

The occupancy status is the table's current physical state and is
independent of which reservation caused it.
"""
import enum
import uuid
from sqlalchemy import (
    Column, String, Integer, DateTime, Uuid, ForeignKey, CheckConstraint, Index, Enum as SQLEnum, func,
)
from sqlalchemy.orm import relationship

from mesa.db.base import Base


class TableStatus(str, enum.Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    OCCUPIED = "occupied"
    BLOCKED = "blocked"

    @classmethod
    def from_external(cls, value: str) -> "TableStatus":
        """
        Translate a status spelling received at the API boundary.

        Older clients send the floor-plan spellings (disponible, ocupada, ...)
        or maintenance/disabled for blocked tables.
        """
        normalized = (value or "").strip().lower()
        if normalized in EXTERNAL_TABLE_STATUS:
            return EXTERNAL_TABLE_STATUS[normalized]
        return cls(normalized)


EXTERNAL_TABLE_STATUS = {
    "disponible": TableStatus.AVAILABLE,
    "reservada": TableStatus.RESERVED,
    "pendiente": TableStatus.RESERVED,
    "pending": TableStatus.RESERVED,
    "ocupada": TableStatus.OCCUPIED,
    "deshabilitada": TableStatus.BLOCKED,
    "disabled": TableStatus.BLOCKED,
    "maintenance": TableStatus.BLOCKED,
}


class DiningTable(Base):
    __tablename__ = "dining_tables"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    number = Column(Integer, nullable=False)
    capacity = Column(Integer, nullable=False)

    # Floor-plan display only
    shape = Column(String(20), nullable=False, default="round")
    position_x = Column(Integer, nullable=False, default=0)
    position_y = Column(Integer, nullable=False, default=0)
    width = Column(Integer, nullable=False, default=60)
    height = Column(Integer, nullable=False, default=60)

    status = Column(
        SQLEnum(TableStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=TableStatus.AVAILABLE,
    )
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    restaurant = relationship("Restaurant", back_populates="tables")

    __table_args__ = (
        CheckConstraint('capacity >= 1', name='ck_dining_tables_capacity'),
        # One table number per restaurant
        Index('idx_dining_tables_restaurant_number', 'restaurant_id', 'number', unique=True),
    )

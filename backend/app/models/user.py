"""User profile model, read by voucher eligibility for the customer level."""

from enum import Enum

from sqlalchemy import Column, DateTime, String, func

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class CustomerLevel(str, Enum):
    NEW = "new"
    SILVER = "silver"
    GOLD = "gold"
    LOYAL = "loyal"


class User(Base):
    __tablename__ = "users"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    customer_level = Column(String(20), nullable=False, default=CustomerLevel.NEW.value)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

"""Catalog product model. Vouchers only ever check that a product exists."""

from sqlalchemy import Column, DateTime, Numeric, String, func

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class Product(Base):
    __tablename__ = "products"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    sku = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 4), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

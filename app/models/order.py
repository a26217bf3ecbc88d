import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType, UTCDateTime


class Order(Base):
    """
    Customer order as seen by the fulfillment floor.

    Owned by the order service; waves only read it. ``cart`` is a JSON
    array of line objects (sku, productName, binLocation, amount/quantity)
    stored as text.
    """
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True
    )
    cart: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="JSON array of cart lines"
    )
    order_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=0,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Order(order_number='{self.order_number}')>"

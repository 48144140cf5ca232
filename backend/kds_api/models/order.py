"""
Order Models: Order, OrderItem.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import OrderStatus
from .base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from .screen import Screen


class Order(TimestampMixin, Base):
    """
    One ticket from the point of sale.

    external_id is the upstream idempotency key. finished_at is set exactly
    when status is FINISHED.
    """

    __tablename__ = "kds_order"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    identifier: Mapped[str] = mapped_column(String(200), nullable=False)
    channel: Mapped[str] = mapped_column(String(200), nullable=False, default="POS")
    customer_name: Mapped[Optional[str]] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.PENDING, nullable=False, index=True
    )  # PENDING, IN_PROGRESS, FINISHED, CANCELLED
    screen_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("kds_screen.id", ondelete="SET NULL"), index=True
    )
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_kds_order_screen_status", "screen_id", "status"),
        Index("ix_kds_order_status_finished", "status", "finished_at"),
    )

    screen: Mapped[Optional["Screen"]] = relationship(back_populates="orders")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class OrderItem(Base):
    """Line item owned by an order; deleted with it."""

    __tablename__ = "kds_order_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("kds_order.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    modifier: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    order: Mapped["Order"] = relationship(back_populates="items")

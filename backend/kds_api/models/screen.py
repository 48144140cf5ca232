"""
Screen Models: Queue, Screen, Filter.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import DistributionStrategy, ScreenStatus
from .base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from .order import Order


class Queue(TimestampMixin, Base):
    """
    A named group of screens sharing a distribution strategy and filters.

    The strategy is read once at the start of each distribution call.
    """

    __tablename__ = "kds_queue"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    strategy: Mapped[str] = mapped_column(
        String(20), default=DistributionStrategy.DISTRIBUTED, nullable=False
    )  # SINGLE, DISTRIBUTED

    # Stable screen order (creation order) drives SINGLE and round-robin
    screens: Mapped[list["Screen"]] = relationship(
        back_populates="queue", order_by="Screen.id"
    )
    filters: Mapped[list["Filter"]] = relationship(
        back_populates="queue",
        order_by="Filter.id",
        cascade="all, delete-orphan",
    )

    @property
    def active_filters(self) -> list["Filter"]:
        return [f for f in self.filters if f.active]


class Screen(TimestampMixin, Base):
    """
    A display endpoint. Belongs to exactly one queue.

    Only ONLINE screens receive new assignments; STANDBY and OFFLINE screens
    keep the orders they already show.
    """

    __tablename__ = "kds_screen"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(200))
    queue_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("kds_queue.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default=ScreenStatus.OFFLINE, nullable=False
    )  # ONLINE, OFFLINE, STANDBY
    api_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    last_heartbeat: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_kds_screen_queue_status", "queue_id", "status"),
    )

    queue: Mapped["Queue"] = relationship(back_populates="screens")
    orders: Mapped[list["Order"]] = relationship(back_populates="screen")


class Filter(TimestampMixin, Base):
    """
    Case-insensitive substring rule matched against item names.

    suppress=True inverts the match for this filter.
    """

    __tablename__ = "kds_filter"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    queue_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("kds_queue.id", ondelete="CASCADE"), nullable=False, index=True
    )
    pattern: Mapped[str] = mapped_column(Text, nullable=False)
    suppress: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    queue: Mapped["Queue"] = relationship(back_populates="filters")

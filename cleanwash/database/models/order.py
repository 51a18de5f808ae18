"""
Order and order line item models.

Orders are created by students in the ``pending`` status and are afterwards
mutated only through the order state machine. Rows are never deleted; the
terminal ``completed`` and ``cancelled`` statuses are kept for history.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cleanwash.database.base import BaseModel, ReferenceModel
from cleanwash.database.models.clothing_item import ClothingItem
from cleanwash.database.models.profile import Profile, enum_values
from cleanwash.services.orders.enums import OrderStatus


class Order(BaseModel):
    """
    Laundry order placed by a student.

    Attributes:
        id: Unique order identifier
        student_id: Profile of the student who placed the order
        worker_id: Profile of the worker who accepted it, null while pending
        status: Current lifecycle status
        total_price: Sum of line item prices at order time
        pickup_date: Requested pickup time
        delivery_date: Completion time, null until completed
        notes: Customer notes, overwritten by delivery notes on completion
        floor: Pickup floor recorded when the order was placed
        created_at: Record creation timestamp
        updated_at: Last modification timestamp
    """

    __tablename__ = "orders"

    student_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Student who placed the order",
    )

    worker_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Worker handling the order",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", values_callable=enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Current order status",
    )

    total_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Order total",
    )

    pickup_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Requested pickup time",
    )

    delivery_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Completion time",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Customer or delivery notes",
    )

    floor: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Pickup floor",
    )

    student: Mapped[Profile] = relationship(
        Profile,
        foreign_keys=[student_id],
    )

    worker: Mapped[Optional[Profile]] = relationship(
        Profile,
        foreign_keys=[worker_id],
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("total_price >= 0", name="ck_orders_total_price_non_negative"),
        CheckConstraint(
            "status != 'pending' OR worker_id IS NULL",
            name="ck_orders_pending_unassigned",
        ),
        CheckConstraint(
            "(status = 'completed') = (delivery_date IS NOT NULL)",
            name="ck_orders_delivery_date_iff_completed",
        ),
        Index("ix_orders_status_created_at", "status", "created_at"),
    )


class OrderItem(ReferenceModel):
    """
    Quantity of one catalog item within an order.

    Attributes:
        order_id: Parent order
        clothing_item_id: Catalog item
        quantity: Number of pieces
        price: Unit price copied from the catalog when the order was placed
    """

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Parent order",
    )

    clothing_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("clothing_items.id", ondelete="RESTRICT"),
        nullable=False,
        comment="Catalog item",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Number of pieces",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Unit price at order time",
    )

    order: Mapped[Order] = relationship(Order, back_populates="items")

    clothing_item: Mapped[ClothingItem] = relationship(ClothingItem)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_order_items_price_non_negative"),
    )

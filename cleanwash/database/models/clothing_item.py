"""
Clothing item catalog model.

Catalog entries are reference data: line items copy the unit price at the
time an order is placed, so catalog rows are never updated by the order
lifecycle.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Enum as SQLEnum, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cleanwash.database.base import ReferenceModel
from cleanwash.database.models.profile import Gender, enum_values


class ClothingItem(ReferenceModel):
    """Launderable clothing item with its per-piece price."""

    __tablename__ = "clothing_items"

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Item name",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Price per piece",
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Item description",
    )

    gender: Mapped[Gender] = mapped_column(
        SQLEnum(Gender, name="gender_type", values_callable=enum_values),
        nullable=False,
        index=True,
        comment="Gender category of the item",
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_clothing_items_price_non_negative"),
    )

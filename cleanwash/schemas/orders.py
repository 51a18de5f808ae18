"""
Order Pydantic schemas for views, requests and live snapshots.

``OrderView`` is the denormalized order the dashboards render: the order row
plus the student's profile summary and the line items with their catalog
entries. Views are frozen; state changes always produce a new view.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)

from cleanwash.database.models.profile import UserRole
from cleanwash.services.orders.enums import OrderStatus

Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]


class StudentSummary(BaseModel):
    """Student profile fields shown alongside an order."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    full_name: str
    gender: str
    hostel: Optional[str] = Field(...)
    floor: Optional[str] = Field(...)
    washes_left: Optional[int] = None
    total_washes: Optional[int] = None


class ClothingItemSummary(BaseModel):
    """Catalog entry referenced by a line item or listed in the catalog."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: UUID
    name: str
    price: Money
    description: Optional[str] = None
    gender: Optional[str] = None


class OrderLineItem(BaseModel):
    """Quantity and unit price of one catalog item within an order."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: UUID
    quantity: int
    price: Money
    clothing_item: Optional[ClothingItemSummary] = None


class OrderView(BaseModel):
    """Denormalized order as rendered by student and worker dashboards."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: UUID
    student_id: UUID
    worker_id: Optional[UUID] = None
    status: OrderStatus
    total_price: Money
    pickup_date: datetime
    delivery_date: Optional[datetime] = None
    created_at: datetime
    notes: Optional[str] = None
    floor: Optional[str] = None
    student: StudentSummary
    items: Optional[list[OrderLineItem]] = None


class OrderItemRequest(BaseModel):
    """One basket entry when placing an order."""

    clothing_item_id: UUID
    quantity: int = Field(..., ge=1, le=100, description="Number of pieces")


class OrderCreateRequest(BaseModel):
    """Order placement request from a student's basket."""

    model_config = ConfigDict(str_strip_whitespace=True)

    items: list[OrderItemRequest] = Field(..., min_length=1)
    pickup_date: datetime = Field(..., description="Requested pickup time")
    notes: Optional[str] = Field(None, max_length=1000)
    floor: Optional[str] = Field(None, max_length=20)

    @field_validator("items")
    @classmethod
    def validate_unique_items(cls, v: list[OrderItemRequest]) -> list[OrderItemRequest]:
        """Reject baskets listing the same catalog item twice."""
        ids = [item.clothing_item_id for item in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Each clothing item may appear only once per order")
        return v


class OrderStatusUpdate(BaseModel):
    """Worker request to move an order to a new status."""

    model_config = ConfigDict(str_strip_whitespace=True)

    status: OrderStatus
    notes: Optional[str] = Field(
        None,
        max_length=1000,
        description="Delivery notes, applied when completing an order",
    )


class OrderQueues(BaseModel):
    """Worker dashboard snapshot: unclaimed and in-progress orders."""

    pending: list[OrderView] = Field(default_factory=list)
    active: list[OrderView] = Field(default_factory=list)
    refreshed_at: Optional[datetime] = None


class Actor(BaseModel):
    """Authenticated user performing an order action."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    role: UserRole
    full_name: Optional[str] = None

    @property
    def is_worker(self) -> bool:
        return self.role == UserRole.WORKER

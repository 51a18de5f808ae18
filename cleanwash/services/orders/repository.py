"""
Order repository assembling denormalized order views.

This module implements the OrderRepository class, which reads orders through
the data gateway and assembles ``OrderView`` objects with the student's
profile and the line items attached. Related rows that are missing or
malformed degrade the view (fallback student, dropped line item) instead of
removing the order, so the worker queues stay complete.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence, Union
from uuid import UUID

from pydantic import ValidationError

from cleanwash.core.config import get_settings
from cleanwash.core.exceptions import GatewayError, OrderValidationError
from cleanwash.core.logging import get_logger, log_performance
from cleanwash.database.gateway import DataGateway
from cleanwash.database.models.profile import Gender
from cleanwash.schemas.orders import ClothingItemSummary, OrderLineItem, OrderView
from cleanwash.services.orders.enums import (
    ACTIVE_STATUSES,
    PENDING_STATUSES,
    OrderStatus,
)
from cleanwash.services.orders.profiles import resolve_student

logger = get_logger(__name__)

ORDER_EMBED = ("student", "items.clothing_item")

FETCH_MODE_JOINED = "joined"
FETCH_MODE_SPLIT = "split"


def _status_values(statuses: Iterable[Union[OrderStatus, str]]) -> list[str]:
    return sorted(
        s.value if isinstance(s, OrderStatus) else OrderStatus.from_string(s).value
        for s in statuses
    )


class OrderRepository:
    """
    Repository for order reads and order placement.

    Reads return views sorted newest first. Only a failure of the orders
    query itself raises; failures of related-row queries degrade the views.
    """

    def __init__(self, gateway: DataGateway, fetch_mode: Optional[str] = None):
        """
        Initialize order repository.

        Args:
            gateway: Data gateway
            fetch_mode: ``"joined"`` or ``"split"``, defaults to settings
        """
        self.gateway = gateway
        self.fetch_mode = fetch_mode or get_settings().order_fetch_mode
        if self.fetch_mode not in (FETCH_MODE_JOINED, FETCH_MODE_SPLIT):
            raise ValueError(f"Unknown fetch mode: {self.fetch_mode}")

    async def fetch_by_status(
        self, statuses: Iterable[Union[OrderStatus, str]]
    ) -> list[OrderView]:
        """
        Fetch orders whose status is in ``statuses``, newest first.

        Raises:
            GatewayError: If the orders query fails
        """
        values = _status_values(statuses)
        return await self._fetch({"status": values}, statuses=values)

    async def fetch_pending(self) -> list[OrderView]:
        """Fetch unclaimed orders."""
        return await self.fetch_by_status(PENDING_STATUSES)

    async def fetch_active(self) -> list[OrderView]:
        """Fetch orders that are accepted or being processed."""
        return await self.fetch_by_status(ACTIVE_STATUSES)

    async def fetch_for_student(self, student_id: Union[UUID, str]) -> list[OrderView]:
        """Fetch a student's full order history."""
        return await self._fetch({"student_id": str(student_id)}, student_id=str(student_id))

    async def fetch_for_worker(
        self,
        worker_id: Union[UUID, str],
        statuses: Optional[Iterable[Union[OrderStatus, str]]] = None,
    ) -> list[OrderView]:
        """Fetch orders assigned to a worker, optionally filtered by status."""
        filters: dict[str, Any] = {"worker_id": str(worker_id)}
        if statuses is not None:
            filters["status"] = _status_values(statuses)
        return await self._fetch(filters, worker_id=str(worker_id))

    async def get_order(self, order_id: Union[UUID, str]) -> Optional[OrderView]:
        """Fetch a single order view, or None if it does not exist."""
        views = await self._fetch({"id": str(order_id)}, order_id=str(order_id))
        return views[0] if views else None

    async def list_catalog(self, gender: Optional[str] = None) -> list[ClothingItemSummary]:
        """
        List catalog items by name.

        Args:
            gender: Restrict to items for this gender
        """
        filters = None
        if gender:
            try:
                filters = {"gender": Gender(gender.strip().lower()).value}
            except ValueError:
                raise OrderValidationError(
                    f"Unknown gender filter: {gender}",
                    valid_values=[g.value for g in Gender],
                ) from None
        rows = await self.gateway.query("clothing_items", filters=filters, order_by="name")

        items = []
        for row in rows:
            try:
                items.append(ClothingItemSummary.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed catalog item",
                    item_id=row.get("id"),
                    errors=e.error_count(),
                )
        return items

    async def create_order(
        self,
        student_id: Union[UUID, str],
        items: Sequence[Mapping[str, Any]],
        pickup_date: datetime,
        notes: Optional[str] = None,
        floor: Optional[str] = None,
    ) -> OrderView:
        """
        Place a new pending order.

        Args:
            student_id: Ordering student's profile id
            items: Basket entries with ``clothing_item_id`` and ``quantity``
            pickup_date: Requested pickup time
            notes: Optional instructions for the laundry
            floor: Pickup floor

        Returns:
            The created order view

        Raises:
            OrderValidationError: If the basket is empty or references
                unknown catalog items
            GatewayError: If the write fails, in which case nothing is stored
        """
        if not items:
            raise OrderValidationError("Order must contain at least one item")

        quantities: dict[str, int] = {}
        for entry in items:
            item_id = str(entry["clothing_item_id"])
            quantity = int(entry.get("quantity", 1))
            if quantity < 1:
                raise OrderValidationError(
                    "Item quantity must be positive",
                    clothing_item_id=item_id,
                    quantity=quantity,
                )
            quantities[item_id] = quantities.get(item_id, 0) + quantity

        catalog_rows = await self.gateway.query(
            "clothing_items", filters={"id": list(quantities)}
        )
        prices = {row["id"]: Decimal(str(row["price"])) for row in catalog_rows}
        unknown = sorted(set(quantities) - set(prices))
        if unknown:
            raise OrderValidationError(
                "Unknown clothing items in order",
                clothing_item_ids=unknown,
            )

        total = sum(
            (prices[item_id] * quantity for item_id, quantity in quantities.items()),
            Decimal("0.00"),
        )

        logger.info(
            "Creating order",
            student_id=str(student_id),
            item_count=len(quantities),
            total_price=str(total),
        )

        order_row = await self.gateway.insert(
            "orders",
            {
                "student_id": str(student_id),
                "status": OrderStatus.PENDING.value,
                "total_price": total,
                "pickup_date": pickup_date,
                "notes": notes,
                "floor": floor,
            },
            children={
                "items": [
                    {
                        "clothing_item_id": item_id,
                        "quantity": quantity,
                        "price": prices[item_id],
                    }
                    for item_id, quantity in quantities.items()
                ]
            },
        )

        view = await self.get_order(order_row["id"])
        if view is None:
            raise GatewayError("Created order could not be read back", order_id=order_row["id"])
        return view

    # Assembly

    async def _fetch(self, filters: Mapping[str, Any], **context: Any) -> list[OrderView]:
        with log_performance(logger, "fetch_orders", mode=self.fetch_mode, **context):
            if self.fetch_mode == FETCH_MODE_SPLIT:
                return await self._fetch_split(filters)
            return await self._fetch_joined(filters)

    async def _fetch_joined(self, filters: Mapping[str, Any]) -> list[OrderView]:
        rows = await self.gateway.query(
            "orders",
            filters=filters,
            order_by="created_at",
            descending=True,
            embed=ORDER_EMBED,
        )
        views = []
        for row in rows:
            view = self._assemble(row, row.get("student"), row.get("items"))
            if view is not None:
                views.append(view)
        return views

    async def _fetch_split(self, filters: Mapping[str, Any]) -> list[OrderView]:
        rows = await self.gateway.query(
            "orders", filters=filters, order_by="created_at", descending=True
        )
        if not rows:
            return []

        order_ids = [row["id"] for row in rows]
        student_ids = sorted({row["student_id"] for row in rows})

        profiles: Optional[dict[str, dict[str, Any]]] = None
        try:
            profile_rows = await self.gateway.query("profiles", filters={"id": student_ids})
            profiles = {profile["id"]: profile for profile in profile_rows}
        except GatewayError as e:
            logger.warning("Profile fetch failed, using fallback students", error=str(e))

        items: Optional[dict[str, list[dict[str, Any]]]] = None
        try:
            item_rows = await self.gateway.query(
                "order_items",
                filters={"order_id": order_ids},
                embed=("clothing_item",),
            )
            items = {order_id: [] for order_id in order_ids}
            for item in item_rows:
                items.setdefault(item["order_id"], []).append(item)
        except GatewayError as e:
            logger.warning("Line item fetch failed, omitting items", error=str(e))

        views = []
        for row in rows:
            student = profiles.get(row["student_id"]) if profiles is not None else None
            order_items = items.get(row["id"], []) if items is not None else None
            view = self._assemble(row, student, order_items)
            if view is not None:
                views.append(view)
        return views

    def _assemble(
        self,
        row: Mapping[str, Any],
        student_raw: Any,
        items_raw: Optional[Iterable[Any]],
    ) -> Optional[OrderView]:
        order_id = row.get("id")
        student = resolve_student(student_raw, order_id=order_id)

        line_items: Optional[list[OrderLineItem]] = None
        if items_raw is not None:
            line_items = []
            for raw in items_raw:
                try:
                    line_items.append(OrderLineItem.model_validate(raw))
                except ValidationError as e:
                    logger.warning(
                        "Dropping malformed line item",
                        order_id=order_id,
                        errors=e.error_count(),
                    )

        payload = {
            key: value for key, value in row.items() if key not in ("student", "items")
        }
        try:
            return OrderView.model_validate(
                {**payload, "student": student, "items": line_items}
            )
        except ValidationError as e:
            logger.error(
                "Skipping malformed order row",
                order_id=order_id,
                errors=e.error_count(),
            )
            return None

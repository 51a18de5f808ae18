"""
Data access gateway over the relational store and the change feed.

The gateway is the only component that talks to the database. It exposes a
small collection-oriented contract (query, insert, update, subscribe) that
returns plain wire-format dictionaries, converts every storage failure into
``GatewayError``, and publishes a change event for each committed write so
live views can refresh.
"""

import enum
import uuid
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from sqlalchemy import Uuid, select, update as sql_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.strategy_options import Load

from cleanwash.core.exceptions import GatewayError
from cleanwash.core.logging import get_logger
from cleanwash.database.base import Base, serialize_value
from cleanwash.database.connection import get_session
from cleanwash.database.models import ClothingItem, Order, OrderItem, Profile
from cleanwash.realtime.change_feed import (
    WILDCARD,
    ChangeCallback,
    ChangeEvent,
    ChangeEventType,
    ChangeFeed,
    Subscription,
)

logger = get_logger(__name__)

COLLECTIONS: dict[str, type[Base]] = {
    "orders": Order,
    "order_items": OrderItem,
    "profiles": Profile,
    "clothing_items": ClothingItem,
}

# (collection, relation) -> (relationship attribute, target collection)
RELATIONS: dict[tuple[str, str], tuple[Any, str]] = {
    ("orders", "student"): (Order.student, "profiles"),
    ("orders", "worker"): (Order.worker, "profiles"),
    ("orders", "items"): (Order.items, "order_items"),
    ("order_items", "clothing_item"): (OrderItem.clothing_item, "clothing_items"),
    ("order_items", "order"): (OrderItem.order, "orders"),
}

EmbedTree = dict[str, "EmbedTree"]
FilterValue = Union[Any, Sequence[Any]]


def build_embed_tree(embed: Iterable[str]) -> EmbedTree:
    """
    Turn dotted relation paths into a nested tree.

    ``["student", "items.clothing_item"]`` becomes
    ``{"student": {}, "items": {"clothing_item": {}}}``.
    """
    tree: EmbedTree = {}
    for path in embed:
        node = tree
        for part in path.split("."):
            node = node.setdefault(part, {})
    return tree


def _row_dict(row: Mapping[str, Any]) -> dict[str, Any]:
    return {name: serialize_value(value) for name, value in row.items()}


class DataGateway:
    """
    Collection-oriented access to orders, line items, profiles and catalog.

    Every call runs in its own session and transaction. Callers never see
    SQLAlchemy objects or exceptions, only dictionaries and ``GatewayError``.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        change_feed: Optional[ChangeFeed] = None,
    ):
        """
        Initialize the gateway.

        Args:
            session_factory: Session factory, defaults to the global one
            change_feed: Feed used to publish and subscribe to row changes
        """
        self._session_factory = session_factory
        self._change_feed = change_feed

    # Schema helpers

    @staticmethod
    def _model(collection: str) -> type[Base]:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise GatewayError(
                f"Unknown collection: {collection}",
                collection=collection,
            ) from None

    @staticmethod
    def _column(model: type[Base], name: str):
        column = model.__table__.columns.get(name)
        if column is None:
            raise GatewayError(
                f"Unknown column {name} on {model.__tablename__}",
                collection=model.__tablename__,
                column=name,
            )
        return column

    @staticmethod
    def _coerce(column, value: Any) -> Any:
        """Convert wire values to the Python type a column binds."""
        if value is None:
            return None
        try:
            if isinstance(column.type, Uuid) and isinstance(value, str):
                return uuid.UUID(value)
            enum_class = getattr(column.type, "enum_class", None)
            if enum_class is not None and not isinstance(value, enum.Enum):
                return enum_class(value)
        except ValueError as e:
            raise GatewayError(
                f"Invalid value for {column.name}",
                column=column.name,
                value=str(value),
            ) from e
        return value

    def _conditions(
        self, model: type[Base], filters: Optional[Mapping[str, FilterValue]]
    ) -> list:
        conditions = []
        for name, value in (filters or {}).items():
            column = self._column(model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(column.in_([self._coerce(column, v) for v in value]))
            elif value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == self._coerce(column, value))
        return conditions

    def _values(self, model: type[Base], values: Mapping[str, Any]) -> dict[str, Any]:
        return {
            name: self._coerce(self._column(model, name), value)
            for name, value in values.items()
        }

    @staticmethod
    def _child_relation(collection: str, relation: str) -> tuple[Any, str]:
        attribute, target = RELATIONS.get((collection, relation), (None, None))
        if attribute is None or not attribute.property.uselist:
            raise GatewayError(
                f"{relation} is not a child collection of {collection}",
                collection=collection,
                relation=relation,
            )
        return attribute, target

    def _loader_options(self, collection: str, tree: EmbedTree) -> list[Load]:
        options: list[Load] = []

        def walk(current: str, subtree: EmbedTree, parent: Optional[Load]) -> None:
            for name, children in subtree.items():
                relation = RELATIONS.get((current, name))
                if relation is None:
                    raise GatewayError(
                        f"Unknown relation {name} on {current}",
                        collection=current,
                        relation=name,
                    )
                attribute, target = relation
                loader = (
                    selectinload(attribute)
                    if parent is None
                    else parent.selectinload(attribute)
                )
                if children:
                    walk(target, children, loader)
                else:
                    options.append(loader)

        walk(collection, tree, None)
        return options

    def _serialize(self, instance: Base, collection: str, tree: EmbedTree) -> dict[str, Any]:
        row = instance.to_dict()
        for name, children in tree.items():
            _, target = RELATIONS[(collection, name)]
            related = getattr(instance, name)
            if related is None:
                row[name] = None
            elif isinstance(related, list):
                row[name] = [self._serialize(child, target, children) for child in related]
            else:
                row[name] = self._serialize(related, target, children)
        return row

    # Contract

    async def query(
        self,
        collection: str,
        filters: Optional[Mapping[str, FilterValue]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        embed: Iterable[str] = (),
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch rows from a collection.

        Args:
            collection: Collection name
            filters: Column to value (equality) or to a sequence (membership)
            order_by: Column to sort by
            descending: Sort direction
            embed: Relation paths to load and nest, e.g. ``"items.clothing_item"``
            limit: Maximum number of rows

        Returns:
            Rows as dictionaries, empty when nothing matches

        Raises:
            GatewayError: On invalid arguments or storage failure
        """
        model = self._model(collection)
        tree = build_embed_tree(embed)

        stmt = select(model).where(*self._conditions(model, filters))
        if order_by:
            column = self._column(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        stmt = stmt.options(*self._loader_options(collection, tree))

        try:
            async with get_session(self._session_factory) as session:
                result = await session.execute(stmt)
                rows = [
                    self._serialize(instance, collection, tree)
                    for instance in result.scalars().all()
                ]
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "Gateway query failed",
                collection=collection,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GatewayError(
                "Query failed",
                collection=collection,
                error=str(e),
            ) from e

        logger.debug("Gateway query completed", collection=collection, rows=len(rows))
        return rows

    async def insert(
        self,
        collection: str,
        values: Mapping[str, Any],
        children: Optional[Mapping[str, Sequence[Mapping[str, Any]]]] = None,
    ) -> dict[str, Any]:
        """
        Insert one row, optionally together with rows of its child relations.

        The parent and every child are written in one transaction, so either
        all of them are stored or none is. Change events are published after
        the commit, the parent first.

        Args:
            collection: Collection name
            values: Column values for the parent row
            children: Relation name to child column values, e.g.
                ``{"items": [{"clothing_item_id": ..., "quantity": 2}]}``.
                The foreign key to the parent is filled in.

        Returns:
            The inserted row including generated columns, with each child
            relation nested as a list

        Raises:
            GatewayError: On invalid arguments or storage failure
        """
        model = self._model(collection)
        instance = model(**self._values(model, values))

        nested: list[tuple[str, str, list[Base]]] = []
        for relation, child_rows in (children or {}).items():
            attribute, target = self._child_relation(collection, relation)
            child_model = self._model(target)
            child_instances = [
                child_model(**self._values(child_model, child)) for child in child_rows
            ]
            getattr(instance, attribute.key).extend(child_instances)
            nested.append((relation, target, child_instances))

        child_rows_out: list[tuple[str, str, list[dict[str, Any]]]] = []
        try:
            async with get_session(self._session_factory) as session:
                session.add(instance)
                await session.flush()
                await session.refresh(instance, attribute_names=[
                    column.key for column in model.__table__.columns
                ])
                row = instance.to_dict()
                for relation, target, child_instances in nested:
                    serialized = []
                    for child in child_instances:
                        await session.refresh(child, attribute_names=[
                            column.key for column in child.__table__.columns
                        ])
                        serialized.append(child.to_dict())
                    child_rows_out.append((relation, target, serialized))
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "Gateway insert failed",
                collection=collection,
                children=sorted(children or {}),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GatewayError(
                "Insert failed",
                collection=collection,
                error=str(e),
            ) from e

        logger.info(
            "Row inserted",
            collection=collection,
            row_id=row.get("id"),
            children={relation: len(rows) for relation, _, rows in child_rows_out},
        )
        await self._publish(
            ChangeEvent(collection=collection, event_type=ChangeEventType.INSERT, record=row)
        )
        for relation, target, rows in child_rows_out:
            for child_row in rows:
                await self._publish(
                    ChangeEvent(
                        collection=target,
                        event_type=ChangeEventType.INSERT,
                        record=child_row,
                    )
                )
            row[relation] = rows
        return row

    async def update(
        self,
        collection: str,
        match: Mapping[str, FilterValue],
        patch: Mapping[str, Any],
    ) -> int:
        """
        Apply a patch to every row matching ``match``.

        The match is part of the UPDATE statement itself, so a row that
        stopped matching after it was read (for example its status changed)
        is not written. Matched rows are locked while the previous values
        are read on backends that support ``FOR UPDATE``.

        Returns:
            Number of rows updated

        Raises:
            GatewayError: On invalid arguments or storage failure
        """
        if not match:
            raise GatewayError("Refusing to update without a match", collection=collection)

        model = self._model(collection)
        table = model.__table__
        values = self._values(model, patch)
        conditions = self._conditions(model, match)

        changes: list[tuple[dict[str, Any], dict[str, Any]]] = []
        try:
            async with get_session(self._session_factory) as session:
                result = await session.execute(
                    select(table).where(*conditions).with_for_update()
                )
                previous = {row["id"]: _row_dict(row) for row in result.mappings().all()}

                if previous:
                    stmt = (
                        sql_update(table)
                        .where(*conditions, table.c.id.in_(list(previous)))
                        .values(**values)
                        .returning(*table.columns)
                    )
                    result = await session.execute(stmt)
                    for row in result.mappings().all():
                        changes.append((previous[row["id"]], _row_dict(row)))
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "Gateway update failed",
                collection=collection,
                match={k: str(v) for k, v in match.items()},
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GatewayError(
                "Update failed",
                collection=collection,
                error=str(e),
            ) from e

        logger.info(
            "Rows updated",
            collection=collection,
            rows=len(changes),
            matched=len(previous),
            columns=sorted(values),
        )
        for old_row, new_row in changes:
            await self._publish(
                ChangeEvent(
                    collection=collection,
                    event_type=ChangeEventType.UPDATE,
                    record=new_row,
                    old_record=old_row,
                )
            )
        return len(changes)

    async def subscribe(
        self,
        collection: str,
        callback: ChangeCallback,
        events: Iterable[str] = (WILDCARD,),
        row_filter: Optional[Mapping[str, Any]] = None,
    ) -> Subscription:
        """
        Subscribe to change events on a collection.

        Raises:
            GatewayError: If no change feed is configured or it is unreachable
        """
        self._model(collection)
        if self._change_feed is None:
            raise GatewayError("Change feed is not configured", collection=collection)
        return await self._change_feed.subscribe(
            collection, callback, events=events, row_filter=row_filter
        )

    async def unsubscribe(self, subscription: Subscription) -> None:
        """Release a subscription obtained from ``subscribe``."""
        if self._change_feed is None:
            await subscription.close()
            return
        await self._change_feed.unsubscribe(subscription)

    async def _publish(self, event: ChangeEvent) -> None:
        # Writes are committed by now; publish failures are logged only
        if self._change_feed is None:
            return
        try:
            await self._change_feed.publish(event)
        except GatewayError as e:
            logger.warning(
                "Change event not published",
                collection=event.collection,
                event_type=event.event_type.value,
                error=str(e),
            )

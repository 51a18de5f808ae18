"""
Database models package initialization.

This module exports all database models for SQLAlchemy and Alembic auto-generation.
Models are imported here to ensure they are registered with the Base metadata
for proper migration generation and relationship resolution.
"""

from cleanwash.database.base import (
    Base,
    BaseModel,
    ReferenceModel,
    TimestampMixin,
    UUIDMixin,
)
from cleanwash.database.models.clothing_item import ClothingItem
from cleanwash.database.models.order import Order, OrderItem
from cleanwash.database.models.profile import Gender, Profile, UserRole

__all__ = [
    "Base",
    "BaseModel",
    "ReferenceModel",
    "TimestampMixin",
    "UUIDMixin",
    "ClothingItem",
    "Gender",
    "Order",
    "OrderItem",
    "Profile",
    "UserRole",
]

"""
Database package initialization.

The package follows a modular structure:
- base: Declarative base, key and timestamp mixins, wire serialization
- connection: Async engine and session lifecycle
- models: ORM models for profiles, catalog items, orders and line items
- gateway: Collection-oriented data access used by the order services
"""

# Import submodules explicitly when needed to avoid circular dependencies

__all__ = []

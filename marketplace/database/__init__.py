"""
Database package initialization.

- base: declarative base and shared column mixins
- connection: async engine, session factory and FastAPI session dependency
- models: ORM models for orders, payments and the catalog read models
"""

__all__ = []

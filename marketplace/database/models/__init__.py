"""
Database models package initialization.

Models are imported here so they register with the Base metadata for
Alembic autogeneration and relationship resolution.
"""

from marketplace.database.base import Base, BaseModel
from marketplace.database.models.catalog import Address, Inventory, Product, Voucher
from marketplace.database.models.order import LineItem, Order
from marketplace.database.models.payment import Payment, PaymentStatusHistory

__all__ = [
    "Base",
    "BaseModel",
    "Address",
    "Inventory",
    "Product",
    "Voucher",
    "Order",
    "LineItem",
    "Payment",
    "PaymentStatusHistory",
]

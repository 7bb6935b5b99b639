"""
Declarative base shared by the admin_logs and notifications tables.

Kept free of model and service imports so that both can depend on it.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass

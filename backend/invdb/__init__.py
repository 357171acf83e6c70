# backend/invdb/__init__.py
"""
Import ORM models from each app so that Base.metadata.create_all() sees all
tables. The inventory itself is not a table; it lives in the key-value slot.
"""

from .apps.kv import models as kv_models                      # key-value slot

__all__ = [
    "kv_models",
]

"""ORM Models — SQLAlchemy declarative models synced at startup.

Invariants:
    - All models inherit from Base (db/base.py)
    - Importing this package registers every table on Base.metadata, which
      sync_all_models() relies on

Design Decisions:
    - One file per entity
"""

from vecinity.models.user import User  # noqa: F401
from vecinity.models.category import Category  # noqa: F401
from vecinity.models.report import Report  # noqa: F401

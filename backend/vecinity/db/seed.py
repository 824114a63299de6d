"""Initial Data — baseline rows every deployment needs (default categories).

Invariants:
    - Idempotent: rows are matched by unique name, existing ones are never
      duplicated or overwritten
    - Caller owns the transaction (commit happens in create_initial_data)
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vecinity.models.category import Category

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: tuple[dict, ...] = (
    {"name": "Alumbrado público", "icon": "lightbulb", "color": "#F5A623",
     "description": "Luminarias apagadas o dañadas"},
    {"name": "Baches y vialidad", "icon": "road", "color": "#8B572A",
     "description": "Baches, banquetas y señalización vial"},
    {"name": "Basura", "icon": "trash", "color": "#7ED321",
     "description": "Acumulación de basura o recolección pendiente"},
    {"name": "Agua y drenaje", "icon": "droplet", "color": "#4A90E2",
     "description": "Fugas, encharcamientos y drenaje tapado"},
    {"name": "Seguridad", "icon": "shield", "color": "#D0021B",
     "description": "Situaciones de riesgo en la vía pública"},
    {"name": "Otros", "icon": "dots", "color": "#9B9B9B",
     "description": "Reportes que no encajan en otra categoría"},
)


async def seed_categories(session: AsyncSession) -> int:
    """Insert missing default categories; return how many were added."""
    result = await session.execute(select(Category.name))
    existing = set(result.scalars().all())
    missing = [c for c in DEFAULT_CATEGORIES if c["name"] not in existing]
    for data in missing:
        session.add(Category(**data))
    if missing:
        logger.info(f"Seeded {len(missing)} default categories")
    return len(missing)

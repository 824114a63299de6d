"""Database Definitions — SQLAlchemy Base and initial seed data.

Invariants:
    - Every model inherits from db.base.Base
    - Seeding is idempotent: rerunning it never duplicates rows

Design Decisions:
    - aiomysql driver for MySQL in production, aiosqlite in tests
"""

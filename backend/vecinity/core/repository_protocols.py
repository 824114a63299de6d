"""Boundary Protocols — contracts between the bootstrap core and the database layer.

Invariants:
    - Core never imports the SQLAlchemy implementation, only this Protocol
    - create_initial_data() must be idempotent (implementations guarantee it)

Design Decisions:
    - Protocol over ABC: structural subtyping, test stubs need no inheritance
"""

from typing import Protocol


class DatabaseCollaborator(Protocol):
    """Three-call contract the Database Initializer drives, in order."""
    async def test_connection(self) -> bool: ...
    async def sync_all_models(self, force: bool = False) -> bool: ...
    async def create_initial_data(self) -> None: ...

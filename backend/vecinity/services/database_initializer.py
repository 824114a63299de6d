"""Database Initializer — connectivity → schema sync → seed, as one fail-fast sequence.

Invariants:
    - Steps run strictly in order; each gates the next
    - test_connection() false or raising → DatabaseUnreachableError, sync never runs
    - sync_all_models(force=False) false or raising → SchemaSyncFailedError, seed never runs
    - create_initial_data() exceptions propagate as-is; the orchestrator
      treats any initializer exception as fatal
    - No retries at this layer
"""

import logging
from dataclasses import dataclass

from vecinity.core.errors import DatabaseUnreachableError, SchemaSyncFailedError
from vecinity.core.repository_protocols import DatabaseCollaborator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InitializationOutcome:
    connection_ok: bool
    sync_ok: bool
    seeded: bool

    @property
    def ok(self) -> bool:
        return self.connection_ok and self.sync_ok and self.seeded


class DatabaseInitializer:
    """Runs the startup database sequence against a DatabaseCollaborator."""

    def __init__(self, database: DatabaseCollaborator, force_sync: bool = False):
        self.database = database
        self.force_sync = force_sync

    async def initialize(self) -> InitializationOutcome:
        """Run all three steps; raise on the first failure."""
        if not await self._test_connection():
            raise DatabaseUnreachableError()
        logger.info("Conexión a la base de datos verificada")

        if not await self._sync_models():
            raise SchemaSyncFailedError()
        logger.info("Modelos sincronizados")

        await self.database.create_initial_data()
        logger.info("Base de datos inicializada correctamente.")
        return InitializationOutcome(connection_ok=True, sync_ok=True, seeded=True)

    async def _test_connection(self) -> bool:
        try:
            return bool(await self.database.test_connection())
        except Exception as e:
            logger.error(f"Connection probe raised: {e}")
            return False

    async def _sync_models(self) -> bool:
        try:
            return bool(await self.database.sync_all_models(force=self.force_sync))
        except Exception as e:
            logger.error(f"Model sync raised: {e}")
            return False

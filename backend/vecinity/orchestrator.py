"""Process Orchestrator — startup sequencing, fault policy and exit codes.

Invariants:
    - The database is fully initialized before the listener is bound; any
      initializer failure ends in ABORTED without ever opening a socket
    - Terminal states are final: ABORTED (exit 1), FATAL_SHUTDOWN (exit 1),
      GRACEFUL_SHUTDOWN (exit 0); nothing transitions back to STARTING
    - Fail-stop: an unhandled loop fault or uncaught thread exception after
      startup stops the server and exits 1
    - SIGTERM/SIGINT stop accepting connections and exit 0; in-flight
      requests are drained only when shutdown_grace_seconds > 0
    - Signal and fault hooks are installed before database initialization;
      a signal during startup cancels the initializer, never binds, exits 0

Design Decisions:
    - The orchestrator binds the socket itself so a bind failure surfaces as
      OSError here instead of uvicorn calling sys.exit()
    - uvicorn's own signal capture is disabled; signals go through
      loop.add_signal_handler into this state machine
    - serve() returns the exit code so tests can drive it on their own loop;
      run() is the only place that calls sys.exit()
"""

import asyncio
import contextlib
import logging
import math
import signal
import socket
import sys
import threading
from enum import Enum
from typing import NoReturn

import uvicorn
from fastapi import FastAPI

from vecinity.config import Settings, get_settings
from vecinity.core.errors import UnhandledFaultError
from vecinity.core.repository_protocols import DatabaseCollaborator
from vecinity.infrastructure.database import DATABASE_KIND, init_db
from vecinity.infrastructure.observability import setup_logging
from vecinity.main import create_app
from vecinity.services.database_initializer import DatabaseInitializer

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)
LISTEN_BACKLOG = 2048


class ProcessState(str, Enum):
    STARTING = "starting"
    LISTENING = "listening"
    ABORTED = "aborted"
    FATAL_SHUTDOWN = "fatal_shutdown"
    GRACEFUL_SHUTDOWN = "graceful_shutdown"


EXIT_CODES = {
    ProcessState.ABORTED: 1,
    ProcessState.FATAL_SHUTDOWN: 1,
    ProcessState.GRACEFUL_SHUTDOWN: 0,
}


class GatewayServer(uvicorn.Server):
    """uvicorn server whose signals are owned by ProcessOrchestrator."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class ProcessOrchestrator:
    """Owns the process lifecycle from database readiness to exit code."""

    def __init__(
        self,
        settings: Settings | None = None,
        app: FastAPI | None = None,
        database: DatabaseCollaborator | None = None,
        server_class: type[uvicorn.Server] = GatewayServer,
    ):
        self.settings = settings or get_settings()
        self.app = app
        self.database = database
        self.server_class = server_class
        self.state = ProcessState.STARTING
        self.bound_port: int | None = None
        self.listening = asyncio.Event()
        self._shutdown = asyncio.Event()
        self._server: uvicorn.Server | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_loop_handler = None
        self._previous_thread_hook = None

    # ─── Entry points ───────────────────────────────────────────

    def run(self) -> NoReturn:
        """Run for the process lifetime, then exit with the state's code."""
        setup_logging(self.settings.logging_level, self.settings.log_format)
        try:
            code = asyncio.run(self.serve())
        except KeyboardInterrupt:
            logger.info("SIGINT recibido. Cerrando...")
            code = 0
        except Exception as exc:
            logger.critical(f"Excepción no capturada: {exc}", exc_info=True)
            code = 1
        sys.exit(code)

    async def serve(self) -> int:
        """Initialize, bind, serve until a terminal state; return the exit code."""
        self._loop = asyncio.get_running_loop()
        self._install_handlers()
        try:
            return await self._run_lifecycle()
        finally:
            self._remove_handlers()
            await self._dispose_database()

    def request_shutdown(self, sig: signal.Signals = signal.SIGTERM) -> None:
        """Signal entry point: STARTING or LISTENING → GRACEFUL_SHUTDOWN."""
        logger.info(f"{sig.name} recibido. Cerrando...")
        if self.state == ProcessState.GRACEFUL_SHUTDOWN and self._server:
            self._server.force_exit = True
            return
        if self._transition(ProcessState.GRACEFUL_SHUTDOWN):
            self._shutdown.set()

    def report_fault(self, exc: BaseException | None, message: str) -> None:
        """Fault entry point: any non-terminal state → FATAL_SHUTDOWN."""
        fault = UnhandledFaultError(message, exc)
        exc_info = (type(exc), exc, exc.__traceback__) if exc else None
        logger.critical(
            f"Error no manejado: {fault.message}",
            exc_info=exc_info,
            extra={"error_code": fault.code, "state": self.state.value},
        )
        if self._transition(ProcessState.FATAL_SHUTDOWN):
            self._shutdown.set()

    # ─── Startup ────────────────────────────────────────────────

    async def _run_lifecycle(self) -> int:
        try:
            initialized = await self._initialize_database()
        except Exception as exc:
            return self._abort(f"Error inicializando la base de datos: {exc}")
        if not initialized:
            return EXIT_CODES[self.state]

        if self.app is None:
            self.app = create_app(self.settings)
        try:
            sock = self._bind()
        except OSError as exc:
            return self._abort(f"Error iniciando el servidor: {exc}")
        try:
            return await self._listen(sock)
        finally:
            sock.close()

    async def _initialize_database(self) -> bool:
        """Run the initializer; False when a signal or fault ends startup first."""
        if self.database is None:
            self.database = init_db(
                self.settings.database_url,
                pool_size=self.settings.database_pool_size,
                max_overflow=self.settings.database_max_overflow,
            )
        init_task = asyncio.create_task(DatabaseInitializer(self.database).initialize())
        shutdown_wait = asyncio.create_task(self._shutdown.wait())
        await asyncio.wait(
            {init_task, shutdown_wait}, return_when=asyncio.FIRST_COMPLETED,
        )
        if not self._shutdown.is_set():
            shutdown_wait.cancel()
            await init_task
            return True

        logger.info("Inicialización interrumpida")
        init_task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await init_task
        return False

    def _bind(self) -> socket.socket:
        host, port = self.settings.host, self.settings.port
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(LISTEN_BACKLOG)
        except OSError:
            sock.close()
            raise
        sock.set_inheritable(True)
        self.bound_port = sock.getsockname()[1]
        return sock

    def _create_server(self) -> uvicorn.Server:
        grace = self.settings.shutdown_grace_seconds
        config = uvicorn.Config(
            self.app,
            log_config=None,
            access_log=False,
            proxy_headers=False,
            server_header=False,
            timeout_graceful_shutdown=math.ceil(grace) if grace > 0 else None,
        )
        return self.server_class(config)

    def _abort(self, message: str) -> int:
        logger.error(message)
        self._transition(ProcessState.ABORTED)
        return EXIT_CODES[self.state]

    # ─── Serving ────────────────────────────────────────────────

    async def _listen(self, sock: socket.socket) -> int:
        self._server = self._create_server()
        serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))
        self._transition(ProcessState.LISTENING)
        self._log_listening()
        self.listening.set()

        shutdown_wait = asyncio.create_task(self._shutdown.wait())
        await asyncio.wait(
            {serve_task, shutdown_wait}, return_when=asyncio.FIRST_COMPLETED,
        )
        if not self._shutdown.is_set():
            shutdown_wait.cancel()
            self._server_stopped(serve_task)
            return EXIT_CODES[self.state]

        self._server.should_exit = True
        self._server.force_exit = (
            self.state == ProcessState.FATAL_SHUTDOWN
            or self.settings.shutdown_grace_seconds <= 0
        )
        try:
            await serve_task
        except Exception as exc:
            logger.error(f"Server shutdown failed: {exc}", exc_info=True)
        return EXIT_CODES[self.state]

    def _server_stopped(self, serve_task: asyncio.Task) -> None:
        """uvicorn returned without being asked to: startup or runtime failure."""
        exc = None if serve_task.cancelled() else serve_task.exception()
        if not self._server.started:
            self._transition(ProcessState.ABORTED)
            logger.error(f"Error iniciando el servidor: {exc or 'startup failed'}")
            return
        self.report_fault(exc, f"Server stopped unexpectedly: {exc}")

    def _log_listening(self) -> None:
        s = self.settings
        logger.info("Servidor iniciado correctamente")
        logger.info(f"Puerto: {self.bound_port}")
        logger.info(f"Ambiente: {s.environment}")
        logger.info(f"Base de datos: {DATABASE_KIND}")
        logger.info(f"URL pública: {s.base_url}")
        logger.info(f"Health check: {s.health_url}")

    # ─── State machine ──────────────────────────────────────────

    def _transition(self, new_state: ProcessState) -> bool:
        """Move to new_state unless already terminal; return whether it moved."""
        if self.state in EXIT_CODES:
            return False
        logger.info(
            f"Process state: {self.state.value} -> {new_state.value}",
            extra={"state": new_state.value},
        )
        self.state = new_state
        return True

    # ─── Fault and signal hooks ─────────────────────────────────

    def _install_handlers(self) -> None:
        loop = self._loop
        self._previous_loop_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._on_loop_exception)
        for sig in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig)
            except NotImplementedError:
                signal.signal(sig, self._on_raw_signal)
        self._previous_thread_hook = threading.excepthook
        threading.excepthook = self._on_thread_exception

    def _remove_handlers(self) -> None:
        loop = self._loop
        loop.set_exception_handler(self._previous_loop_handler)
        for sig in HANDLED_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)
        threading.excepthook = self._previous_thread_hook

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        self.report_fault(exc, context.get("message") or str(exc))

    def _on_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        thread_name = args.thread.name if args.thread else "unknown"
        self._loop.call_soon_threadsafe(
            self.report_fault,
            args.exc_value,
            f"Excepción no capturada en el hilo {thread_name}: {args.exc_value}",
        )

    def _on_raw_signal(self, signum: int, frame) -> None:
        self._loop.call_soon_threadsafe(self.request_shutdown, signal.Signals(signum))

    async def _dispose_database(self) -> None:
        dispose = getattr(self.database, "dispose", None)
        if dispose is None:
            return
        try:
            await dispose()
        except Exception as exc:
            logger.warning(f"Database dispose failed: {exc}")

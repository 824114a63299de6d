"""Process Orchestrator — exit codes for abort, graceful shutdown and fatal faults.

Each test drives serve() on the test's own loop against a real socket bound
to 127.0.0.1 with an ephemeral port, using the in-memory StubDatabase.
"""

import asyncio
import os
import signal
import socket
import threading

import httpx
import pytest
from fastapi import APIRouter

from vecinity.main import create_app
from vecinity.orchestrator import EXIT_CODES, ProcessOrchestrator, ProcessState


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _explode():
    raise RuntimeError("fallo asíncrono")


async def _start(orchestrator):
    task = asyncio.create_task(orchestrator.serve())
    await asyncio.wait_for(orchestrator.listening.wait(), timeout=5)
    return task


@pytest.fixture
def orchestrator(settings, stub_database):
    return ProcessOrchestrator(
        settings=settings, app=create_app(settings), database=stub_database,
    )


# ─── Abort before listening ─────────────────────────────────────


async def test_database_unreachable_aborts_without_binding(settings, stub_database):
    port = _free_port()
    stub_database.connection_ok = False
    orchestrator = ProcessOrchestrator(
        settings=settings.model_copy(update={"port": port}), database=stub_database,
    )

    assert await orchestrator.serve() == 1
    assert orchestrator.state == ProcessState.ABORTED
    assert orchestrator.bound_port is None
    assert stub_database.calls == ["test_connection"]
    with pytest.raises(OSError):
        socket.create_connection(("127.0.0.1", port), timeout=0.5)


async def test_schema_sync_failure_aborts(orchestrator, stub_database):
    stub_database.sync_ok = False

    assert await orchestrator.serve() == 1
    assert orchestrator.state == ProcessState.ABORTED
    assert "create_initial_data" not in stub_database.calls


async def test_port_in_use_aborts(settings, stub_database):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
        taken.bind(("127.0.0.1", 0))
        taken.listen(1)
        port = taken.getsockname()[1]
        port_settings = settings.model_copy(update={"port": port})
        orchestrator = ProcessOrchestrator(
            settings=port_settings,
            app=create_app(port_settings),
            database=stub_database,
        )

        assert await orchestrator.serve() == 1

    assert orchestrator.state == ProcessState.ABORTED
    # Database was initialized before the bind attempt
    assert "create_initial_data" in stub_database.calls


def test_run_exits_with_abort_code(settings, stub_database):
    stub_database.connection_ok = False
    orchestrator = ProcessOrchestrator(settings=settings, database=stub_database)

    with pytest.raises(SystemExit) as exc_info:
        orchestrator.run()
    assert exc_info.value.code == 1


# ─── Signals and faults during startup ──────────────────────────


@pytest.fixture
def slow_startup(settings, stub_database):
    """Orchestrator whose connection check blocks until cancelled."""
    reached = asyncio.Event()

    async def slow_connection():
        reached.set()
        await asyncio.sleep(30)
        return True

    stub_database.test_connection = slow_connection
    port = _free_port()
    orchestrator = ProcessOrchestrator(
        settings=settings.model_copy(update={"port": port}), database=stub_database,
    )
    return orchestrator, reached, port


async def test_sigterm_during_startup_exits_zero_without_binding(
    slow_startup, stub_database,
):
    orchestrator, reached, port = slow_startup
    task = asyncio.create_task(orchestrator.serve())
    await asyncio.wait_for(reached.wait(), timeout=5)

    os.kill(os.getpid(), signal.SIGTERM)

    assert await asyncio.wait_for(task, timeout=5) == 0
    assert orchestrator.state == ProcessState.GRACEFUL_SHUTDOWN
    assert orchestrator.bound_port is None
    assert not any(call.startswith("sync_all_models") for call in stub_database.calls)
    with pytest.raises(OSError):
        socket.create_connection(("127.0.0.1", port), timeout=0.5)


async def test_fault_during_startup_exits_one(slow_startup):
    orchestrator, reached, _ = slow_startup
    task = asyncio.create_task(orchestrator.serve())
    await asyncio.wait_for(reached.wait(), timeout=5)

    asyncio.get_running_loop().call_soon(_explode)

    assert await asyncio.wait_for(task, timeout=5) == 1
    assert orchestrator.state == ProcessState.FATAL_SHUTDOWN
    assert orchestrator.bound_port is None


# ─── Graceful shutdown ──────────────────────────────────────────


async def test_serves_requests_until_shutdown(orchestrator):
    task = await _start(orchestrator)
    assert orchestrator.state == ProcessState.LISTENING
    assert orchestrator.bound_port

    async with httpx.AsyncClient() as http:
        response = await http.get(
            f"http://127.0.0.1:{orchestrator.bound_port}/api/health",
        )
    assert response.status_code == 200
    assert response.json()["status"] == "OK"

    orchestrator.request_shutdown(signal.SIGINT)
    assert await asyncio.wait_for(task, timeout=10) == 0
    assert orchestrator.state == ProcessState.GRACEFUL_SHUTDOWN


async def test_sigterm_exits_zero(orchestrator):
    task = await _start(orchestrator)

    os.kill(os.getpid(), signal.SIGTERM)

    assert await asyncio.wait_for(task, timeout=10) == 0
    assert orchestrator.state == ProcessState.GRACEFUL_SHUTDOWN


async def test_listener_closed_after_shutdown(orchestrator):
    task = await _start(orchestrator)
    port = orchestrator.bound_port

    orchestrator.request_shutdown()
    await asyncio.wait_for(task, timeout=10)

    with pytest.raises(OSError):
        socket.create_connection(("127.0.0.1", port), timeout=0.5)


async def test_handlers_restored_after_serve(orchestrator):
    loop = asyncio.get_running_loop()
    previous_loop_handler = loop.get_exception_handler()
    previous_thread_hook = threading.excepthook

    task = await _start(orchestrator)
    assert loop.get_exception_handler() != previous_loop_handler
    orchestrator.request_shutdown()
    await asyncio.wait_for(task, timeout=10)

    assert loop.get_exception_handler() == previous_loop_handler
    assert threading.excepthook is previous_thread_hook


# ─── Fatal faults ───────────────────────────────────────────────


async def test_loop_fault_exits_one(orchestrator):
    task = await _start(orchestrator)

    asyncio.get_running_loop().call_soon(_explode)

    assert await asyncio.wait_for(task, timeout=10) == 1
    assert orchestrator.state == ProcessState.FATAL_SHUTDOWN


async def test_thread_exception_exits_one(orchestrator):
    task = await _start(orchestrator)

    worker = threading.Thread(target=_explode, name="worker-fallido")
    worker.start()
    worker.join()

    assert await asyncio.wait_for(task, timeout=10) == 1
    assert orchestrator.state == ProcessState.FATAL_SHUTDOWN


async def test_fault_scheduled_by_handler_exits_one(settings, stub_database):
    router = APIRouter()

    @router.get("/fault")
    async def schedule_fault():
        asyncio.get_running_loop().call_soon(_explode)
        return {"scheduled": True}

    orchestrator = ProcessOrchestrator(
        settings=settings,
        app=create_app(settings, routers={"reports": router}),
        database=stub_database,
    )
    task = await _start(orchestrator)

    async with httpx.AsyncClient() as http:
        try:
            await http.get(
                f"http://127.0.0.1:{orchestrator.bound_port}/api/reports/fault",
            )
        except httpx.HTTPError:
            pass

    assert await asyncio.wait_for(task, timeout=10) == 1
    assert orchestrator.state == ProcessState.FATAL_SHUTDOWN


async def test_terminal_state_is_final(orchestrator):
    task = await _start(orchestrator)

    orchestrator.report_fault(RuntimeError("primero"), "primer fallo")
    orchestrator.request_shutdown()

    assert await asyncio.wait_for(task, timeout=10) == 1
    assert orchestrator.state == ProcessState.FATAL_SHUTDOWN


def test_exit_codes():
    assert EXIT_CODES == {
        ProcessState.ABORTED: 1,
        ProcessState.FATAL_SHUTDOWN: 1,
        ProcessState.GRACEFUL_SHUTDOWN: 0,
    }


# ─── Drain window ───────────────────────────────────────────────


def test_fractional_grace_rounds_up(settings):
    graced = settings.model_copy(update={"shutdown_grace_seconds": 0.5})
    orchestrator = ProcessOrchestrator(settings=graced, app=create_app(graced))

    server = orchestrator._create_server()
    assert server.config.timeout_graceful_shutdown == 1


def test_no_grace_means_no_drain(settings):
    orchestrator = ProcessOrchestrator(settings=settings, app=create_app(settings))

    server = orchestrator._create_server()
    assert server.config.timeout_graceful_shutdown is None

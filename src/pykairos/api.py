"""FastAPI surface for starting runs, resuming hooks and reading run state."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pykairos.config import Settings, configure_logging, get_settings
from pykairos.core.errors import (
    HookNotFoundError,
    HookPayloadError,
    InvalidInputError,
    KairosError,
    RunNotFoundError,
    WorkflowDefinitionError,
)
from pykairos.executor.runtime import Runtime
from pykairos.storage.base import RunRegistry

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": error, "message": message, **extra},
    )


async def _json_body(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


async def build_runtime(settings: Settings) -> Runtime:
    """Runtime over the configured registry, with the bundled workflows registered."""
    from pykairos.workflows import ContractReview, OrgValidation, TeacherVerification
    from pykairos.workflows.notify import HttpNotifier, RecordingNotifier

    registry: RunRegistry
    if settings.database_path:
        from pykairos.storage.sqlite import SqliteRunRegistry

        registry = SqliteRunRegistry(settings.database_path)
        await registry.connect()
    else:
        from pykairos.storage.memory import InMemoryRunRegistry

        registry = InMemoryRunRegistry()

    notifier = HttpNotifier(settings.notify_url) if settings.notify_url else RecordingNotifier()
    runtime = Runtime(registry, settings=settings)
    runtime.register(OrgValidation())
    runtime.register(TeacherVerification(notifier=notifier, base_url=settings.app_base_url))
    runtime.register(ContractReview(notifier=notifier, base_url=settings.app_base_url))
    return runtime


def create_app(runtime: Runtime | None = None, settings: Settings | None = None) -> FastAPI:
    """
    Build the HTTP app.

    With no runtime, one is built at startup from settings (SQLite when
    ``database_path`` is set), unfinished runs are recovered, and the
    runtime is shut down with the app.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        app.state.runtime = await build_runtime(settings)
        recovered = await app.state.runtime.recover()
        if recovered:
            logger.info(f"Recovered {len(recovered)} runs")
        yield
        await app.state.runtime.shutdown()
        await app.state.runtime.registry.close()

    app = FastAPI(title="pykairos", lifespan=lifespan if runtime is None else None)
    if runtime is not None:
        app.state.runtime = runtime

    @app.exception_handler(KairosError)
    async def runtime_error(request: Request, exc: KairosError) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
        return _error(500, "Runtime error", str(exc) or type(exc).__name__)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "workflows": app.state.runtime.workflows()}

    @app.post("/workflows/{name}/runs", status_code=202)
    async def start_run(name: str, request: Request):
        body = await _json_body(request)
        if body is None:
            return _error(400, "Invalid request", "Request body must be a JSON object")
        try:
            run_id = await app.state.runtime.start(name, body)
        except InvalidInputError as e:
            return _error(400, "Invalid input", str(e))
        except WorkflowDefinitionError as e:
            return _error(400, "Unknown workflow", str(e))
        return {"ok": True, "runId": run_id}

    @app.post("/hooks/resume")
    async def resume_hook(request: Request):
        body = await _json_body(request)
        if body is None:
            return _error(400, "Invalid request", "Request body must be a JSON object")

        token = body.get("token")
        if not isinstance(token, str):
            return _error(400, "Invalid request", "token must be a string")
        if not isinstance(body.get("approved"), bool):
            return _error(400, "Invalid request", "approved must be a boolean")

        payload = {k: v for k, v in body.items() if k != "token"}
        try:
            result = await app.state.runtime.resume(token, payload)
        except HookNotFoundError as e:
            return _error(404, "Hook not found", str(e), token=e.token)
        except HookPayloadError as e:
            return _error(400, "Invalid payload", str(e), token=e.token)
        return result.to_dict()

    @app.get("/runs/{run_id}")
    async def get_run(run_id: str):
        try:
            run = await app.state.runtime.get_run(run_id)
        except RunNotFoundError as e:
            return _error(404, "Run not found", str(e))
        return run.to_dict()

    return app

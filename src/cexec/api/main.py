"""
FastAPI application for the compile-and-run service.

This module configures the FastAPI application, registers routes for
session creation, compilation and execution, and optionally enforces
authentication via an API key.  Session state lives in a single
:class:`~cexec.service.SessionManager` created at import time; its
workspaces are removed when the application shuts down.

The service executes untrusted C programs without any sandboxing beyond
a per-session working directory and a wall-clock timeout.  Do not expose
it to untrusted networks.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import Config
from ..errors import CodeExecError, InvalidRequest, SourceTooLarge
from ..models import (
    CompileRequest,
    CompileRunRequest,
    OperationResponse,
    RunRequest,
    SessionCreateResponse,
)
from ..service import SessionManager


logger = logging.getLogger("cexec")

if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[cexec] %(levelname)s - %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


config = Config.from_env()

logger.setLevel(config.log_level)

logger.info(
    "Loaded config: workspace_root=%s, toolchains=%s, compile_timeout_ms=%s, run_timeout_ms=%s",
    config.workspace_root,
    config.toolchains,
    config.compile_timeout_ms,
    config.run_timeout_ms,
)

manager = SessionManager.from_config(config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    current = manager
    current.start_reaper()
    try:
        yield
    finally:
        logger.info("Shutting down; removing %d session workspace(s)", len(current.store))
        await current.close()


app = FastAPI(title="C Compile and Run Service", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def authenticate(request: Request, call_next):
    """Middleware to enforce API key authentication on all requests."""
    path = request.url.path
    method = request.method
    client = getattr(request.client, "host", "unknown")

    logger.info("Incoming request: %s %s from %s", method, path, client)

    if config.api_key and request.headers.get("x-api-key") != config.api_key:
        logger.warning("Invalid API key for %s %s from %s", method, path, client)
        return JSONResponse(status_code=401, content={"detail": "Invalid API key"})

    response = await call_next(request)
    logger.info("Response: %s %s -> %s", method, path, response.status_code)
    return response


def _failure(status_code: int, output: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "succeeded": False, "output": output},
    )


@app.exception_handler(CodeExecError)
async def code_exec_error_handler(request: Request, exc: CodeExecError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _failure(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return _failure(400, f"Invalid request: {detail}")


def _require_code(code: str | None) -> str:
    if not code:
        raise InvalidRequest()
    if len(code.encode("utf-8", errors="replace")) > config.max_source_bytes:
        raise SourceTooLarge(f"Source code exceeds {config.max_source_bytes} bytes.")
    return code


@app.get("/health")
async def health() -> Dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok"}


@app.api_route("/api/session", methods=["GET", "POST"], response_model=SessionCreateResponse)
async def create_session() -> SessionCreateResponse:
    """Create a new session with its own workspace."""
    session_id = await manager.create_session()
    return SessionCreateResponse(session_id=session_id)


@app.delete("/api/session/{session_id}")
async def delete_session(session_id: str) -> Dict[str, str]:
    """Delete a session and its workspace."""
    await manager.delete_session(session_id)
    return {"detail": "Session deleted"}


@app.post("/api/compile", response_model=OperationResponse)
async def compile_source(req: CompileRequest) -> OperationResponse:
    """Compile the submitted source inside the session's workspace."""
    code = _require_code(req.code)
    result = await manager.compile(req.session_id or "", code)
    return OperationResponse(
        ok=result.succeeded,
        succeeded=result.succeeded,
        output=result.message,
        message=result.message,
    )


@app.post("/api/run", response_model=OperationResponse, response_model_exclude_none=True)
async def run_program(req: RunRequest) -> OperationResponse:
    """Run the session's most recently compiled program."""
    result = await manager.run(req.session_id or "", req.stdin)
    return OperationResponse(ok=result.succeeded, succeeded=result.succeeded, output=result.output)


@app.post("/api/compile-run", response_model=OperationResponse, response_model_exclude_none=True)
async def compile_and_run(req: CompileRunRequest) -> OperationResponse:
    """Compile the submitted source and, if that succeeds, run it."""
    code = _require_code(req.code)
    result = await manager.compile_and_run(req.session_id or "", code, req.stdin)
    return OperationResponse(ok=result.succeeded, succeeded=result.succeeded, output=result.output)

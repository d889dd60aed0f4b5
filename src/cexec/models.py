"""Pydantic models for request and response bodies.

Field names follow the browser editor that talks to this service: it
sends ``sessionId``/``code``/``stdin`` and reads ``ok`` and ``output``.
``succeeded`` carries the same value as ``ok`` under its descriptive
name, and compile responses also carry the result as ``message``.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SessionCreateResponse(BaseModel):
    """Response body for creating a new session."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")


class SessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(
        default=None, alias="sessionId", description="Id returned by /api/session."
    )


class CompileRequest(SessionRequest):
    """Request body for compiling source in a session."""

    code: Optional[str] = Field(default=None, description="C source code to compile.")


class RunRequest(SessionRequest):
    """Request body for running the session's compiled program."""

    stdin: str = Field(default="", description="Standard input to pass to the program.")

    @field_validator("stdin", mode="before")
    @classmethod
    def _non_string_stdin_is_empty(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


class CompileRunRequest(RunRequest):
    """Request body for compiling and then running in one step."""

    code: Optional[str] = Field(default=None, description="C source code to compile.")


class OperationResponse(BaseModel):
    """Result of a compile, run or compile-and-run request."""

    ok: bool
    succeeded: bool
    output: str
    message: Optional[str] = None

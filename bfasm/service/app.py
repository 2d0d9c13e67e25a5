from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel, Field

from bfasm.bf_interpreter import StepLimitExceeded
from bfasm.compiler import BrainfuckCompiler, CompileResult
from bfasm.emitter import MEMORY_SIZE
from bfasm.errors import CompileError, UnmatchedCloseError, UnmatchedOpenError
from bfasm.simulator import ListingSimulator, SimulationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 1_000_000


def _string_to_input_bytes(data: str) -> bytes:
    return data.encode("utf-8")


def _error_kind(exc: CompileError) -> str:
    if isinstance(exc, UnmatchedCloseError):
        return "unmatched_close"
    if isinstance(exc, UnmatchedOpenError):
        return "unmatched_open"
    return "compile_error"


class CompileRequest(BaseModel):
    code: str = ""
    memory_size: int = Field(default=MEMORY_SIZE, ge=1, le=16 * 1024 * 1024)


class CompileResponse(BaseModel):
    assembly: str
    lines: List[str]
    op_count: int
    loop_count: int


class RunRequest(CompileRequest):
    input: str = ""
    max_steps: Optional[int] = Field(default=None, ge=1)


class RunResponse(BaseModel):
    output: str
    exit_status: int
    steps: int
    loop_count: int


def create_app(default_max_steps: int = DEFAULT_MAX_STEPS) -> FastAPI:
    app = FastAPI(title="bfasm compiler API", version="0.1.0")

    def _compile(payload: CompileRequest) -> CompileResult:
        compiler = BrainfuckCompiler(memory_size=payload.memory_size)
        try:
            return compiler.compile_result(payload.code)
        except CompileError as exc:
            logger.warning("rejected program: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "error": _error_kind(exc),
                    "message": exc.message,
                    "position": exc.position,
                },
            ) from exc

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.post("/api/compile", response_model=CompileResponse)
    def compile_program(payload: CompileRequest) -> CompileResponse:
        result = _compile(payload)
        return CompileResponse(
            assembly=result.assembly,
            lines=result.lines,
            op_count=result.op_count,
            loop_count=result.loop_count,
        )

    @app.post("/api/run", response_model=RunResponse)
    def run_program(payload: RunRequest) -> RunResponse:
        result = _compile(payload)
        max_steps = payload.max_steps or default_max_steps
        simulator = ListingSimulator(max_steps=max_steps)
        try:
            outcome = simulator.run(
                result.assembly,
                input_data=_string_to_input_bytes(payload.input),
            )
        except StepLimitExceeded as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=str(exc),
            ) from exc
        except SimulationError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            ) from exc
        logger.debug("simulated %d steps", outcome.steps)
        return RunResponse(
            output=outcome.output.decode("latin-1"),
            exit_status=outcome.exit_status,
            steps=outcome.steps,
            loop_count=result.loop_count,
        )

    return app


__all__ = ["create_app"]

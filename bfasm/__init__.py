from .bf_interpreter import BrainfuckInterpreter, StepLimitExceeded
from .compiler import BrainfuckCompiler, CompileResult, compile_source
from .emitter import AssemblyEmitter
from .errors import (
    CompileError,
    EmitterStateError,
    ResourceError,
    UnmatchedCloseError,
    UnmatchedOpenError,
)
from .scanner import FoldedOp, Instruction, Program, scan
from .simulator import ListingSimulator, SimulationError, SimulationResult

__all__ = [
    "AssemblyEmitter",
    "BrainfuckCompiler",
    "BrainfuckInterpreter",
    "CompileError",
    "CompileResult",
    "EmitterStateError",
    "FoldedOp",
    "Instruction",
    "ListingSimulator",
    "Program",
    "ResourceError",
    "SimulationError",
    "SimulationResult",
    "StepLimitExceeded",
    "UnmatchedCloseError",
    "UnmatchedOpenError",
    "compile_source",
    "scan",
]

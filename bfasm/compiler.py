from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Union

from .emitter import MEMORY_SIZE, AssemblyEmitter
from .scanner import Instruction, Program, scan

logger = logging.getLogger(__name__)

Source = Union[bytes, str]


@dataclass(frozen=True)
class CompileResult:
    assembly: str
    lines: List[str]
    op_count: int
    loop_count: int


class BrainfuckCompiler:
    def __init__(self, memory_size: int = MEMORY_SIZE) -> None:
        self.memory_size = memory_size

    def compile(self, source: Source) -> str:
        return self.compile_result(source).assembly

    def compile_result(self, source: Source) -> CompileResult:
        program = Program.from_source(source)
        emitter = AssemblyEmitter(memory_size=self.memory_size)
        emitter.begin()
        op_count = 0
        for op in scan(program):
            emitter.emit(op)
            op_count += 1
        emitter.end()
        logger.debug(
            "compiled %d bytes into %d ops and %d loops",
            len(program.code),
            op_count,
            emitter.label_counter,
        )
        return CompileResult(
            assembly=emitter.render(),
            lines=list(emitter.lines),
            op_count=op_count,
            loop_count=emitter.label_counter,
        )

    def iter_lines(self, source: Source) -> Iterator[str]:
        """Stream assembly lines, translating one operation at a time.

        Errors surface at the point of detection; lines already yielded stay
        with the consumer.
        """
        program = Program.from_source(source)
        emitter = AssemblyEmitter(memory_size=self.memory_size)
        yield from emitter.begin()
        for op in scan(program):
            if op.instruction is Instruction.LOOP_OPEN:
                logger.debug("loop %d opens at %d", emitter.label_counter, op.position)
            yield from emitter.emit(op)
        yield from emitter.end()


def compile_source(source: Source, *, memory_size: int = MEMORY_SIZE) -> str:
    return BrainfuckCompiler(memory_size=memory_size).compile(source)


__all__ = ["BrainfuckCompiler", "CompileResult", "compile_source"]

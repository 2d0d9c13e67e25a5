from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Optional


class Instruction(str, Enum):
    INC_CELL = "+"
    DEC_CELL = "-"
    MOVE_RIGHT = ">"
    MOVE_LEFT = "<"
    OUTPUT = "."
    INPUT = ","
    LOOP_OPEN = "["
    LOOP_CLOSE = "]"

    @property
    def foldable(self) -> bool:
        return self in FOLDABLE


FOLDABLE = frozenset(
    {
        Instruction.INC_CELL,
        Instruction.DEC_CELL,
        Instruction.MOVE_RIGHT,
        Instruction.MOVE_LEFT,
    }
)

_BYTE_TO_INSTRUCTION: Dict[int, Instruction] = {
    ord(instruction.value): instruction for instruction in Instruction
}


def classify(byte: int) -> Optional[Instruction]:
    """Return the instruction for ``byte`` or ``None`` for comment bytes."""
    return _BYTE_TO_INSTRUCTION.get(byte)


@dataclass(frozen=True)
class FoldedOp:
    instruction: Instruction
    count: int = 1
    position: int = 0

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError("FoldedOp count must be at least 1")
        if self.count > 1 and not self.instruction.foldable:
            raise ValueError(f"{self.instruction.name} cannot be folded")


@dataclass
class Program:
    code: bytes
    position: int = 0

    @classmethod
    def from_source(cls, source: "bytes | str") -> "Program":
        if isinstance(source, str):
            source = source.encode("utf-8")
        return cls(code=bytes(source))

    @property
    def exhausted(self) -> bool:
        return self.position >= len(self.code)


def _run_end(code: bytes, start: int) -> tuple[int, int]:
    """Measure the run of ``code[start]`` and return ``(count, end)``.

    Comment bytes inside the run are skipped without breaking it; ``end`` is
    one past the last byte that belongs to the run.
    """
    target = code[start]
    count = 1
    end = start + 1
    index = end
    length = len(code)
    while index < length:
        byte = code[index]
        if byte == target:
            count += 1
            index += 1
            end = index
        elif classify(byte) is None:
            index += 1
        else:
            break
    return count, end


def scan(program: Program) -> Iterator[FoldedOp]:
    """Yield folded operations from ``program``, advancing its cursor.

    The iterator is single-use: it consumes ``program.position`` as it goes.
    Comment bytes between identical run bytes do not end the run, so after a
    folded op of count ``n`` the cursor may have moved more than ``n`` bytes.
    """
    code = program.code
    while not program.exhausted:
        start = program.position
        instruction = classify(code[start])
        if instruction is None:
            program.position += 1
            continue
        if instruction.foldable:
            count, end = _run_end(code, start)
            program.position = end
            yield FoldedOp(instruction, count, start)
        else:
            program.position += 1
            yield FoldedOp(instruction, 1, start)


__all__ = [
    "FOLDABLE",
    "FoldedOp",
    "Instruction",
    "Program",
    "classify",
    "scan",
]

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import UnmatchedCloseError, UnmatchedOpenError
from .scanner import Instruction, classify

CELL_MODULUS = 256


class StepLimitExceeded(RuntimeError):
    """Raised when execution exceeds the configured step budget."""


@dataclass
class BrainfuckInterpreter:
    """Direct tape interpreter used as a reference for compiled output."""

    tape_length: int = 30000

    tape: bytearray = field(init=False, repr=False)
    pointer: int = field(init=False, repr=False)
    output_buffer: bytearray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.tape = bytearray(self.tape_length)
        self.pointer = 0
        self.output_buffer = bytearray()

    def run(
        self,
        code: "bytes | str",
        input_data: Optional[Iterable[int]] = None,
        max_steps: Optional[int] = None,
    ) -> bytes:
        self.reset()
        if isinstance(code, str):
            code = code.encode("utf-8")
        commands = [
            instruction
            for instruction in (classify(byte) for byte in code)
            if instruction is not None
        ]
        input_iter = iter(bytes(input_data or b""))
        jump_map = self._build_jump_map(code)
        pc = 0
        steps = 0

        while pc < len(commands):
            if max_steps is not None and steps >= max_steps:
                raise StepLimitExceeded("Program exceeded allowed step count")
            pc = self._execute_instruction(commands[pc], pc, jump_map, input_iter)
            steps += 1

        return bytes(self.output_buffer)

    def _execute_instruction(
        self,
        command: Instruction,
        pc: int,
        jump_map: Dict[int, int],
        input_iter: Iterator[int],
    ) -> int:
        new_pc = pc + 1
        if command is Instruction.MOVE_RIGHT:
            self.pointer += 1
            if self.pointer >= self.tape_length:
                raise IndexError("Pointer moved beyond the tape length.")
        elif command is Instruction.MOVE_LEFT:
            self.pointer -= 1
            if self.pointer < 0:
                raise IndexError("Pointer moved before start of tape.")
        elif command is Instruction.INC_CELL:
            self.tape[self.pointer] = (self.tape[self.pointer] + 1) % CELL_MODULUS
        elif command is Instruction.DEC_CELL:
            self.tape[self.pointer] = (self.tape[self.pointer] - 1) % CELL_MODULUS
        elif command is Instruction.OUTPUT:
            self.output_buffer.append(self.tape[self.pointer])
        elif command is Instruction.INPUT:
            # EOF leaves the cell untouched, like read(2) returning 0
            value = next(input_iter, None)
            if value is not None:
                self.tape[self.pointer] = value
        elif command is Instruction.LOOP_OPEN:
            if self.tape[self.pointer] == 0:
                new_pc = jump_map[pc] + 1
        elif command is Instruction.LOOP_CLOSE:
            if self.tape[self.pointer] != 0:
                new_pc = jump_map[pc] + 1
        return new_pc

    def _build_jump_map(self, code: bytes) -> Dict[int, int]:
        """Pair brackets by command index; errors carry the source offset."""
        jump_map: Dict[int, int] = {}
        stack: List[tuple[int, int]] = []
        index = 0
        for offset, byte in enumerate(code):
            instruction = classify(byte)
            if instruction is None:
                continue
            if instruction is Instruction.LOOP_OPEN:
                stack.append((index, offset))
            elif instruction is Instruction.LOOP_CLOSE:
                if not stack:
                    raise UnmatchedCloseError(offset)
                start, _ = stack.pop()
                jump_map[start] = index
                jump_map[index] = start
            index += 1
        if stack:
            _, offset = stack[-1]
            raise UnmatchedOpenError(position=offset, open_loops=len(stack))
        return jump_map


__all__ = [
    "BrainfuckInterpreter",
    "StepLimitExceeded",
]

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .errors import EmitterStateError, UnmatchedCloseError, UnmatchedOpenError
from .scanner import FoldedOp, Instruction

MEMORY_SIZE = 30000
POINTER_REGISTER = "%r12"
MEMORY_LABEL = "memory"
ENTRY_LABEL = "_start"

_CELL_MODULUS = 256

_SINGLE_TEMPLATES = {
    Instruction.INC_CELL: "    incb (%r12)         # +",
    Instruction.DEC_CELL: "    decb (%r12)         # -",
    Instruction.MOVE_RIGHT: "    incq %r12           # >",
    Instruction.MOVE_LEFT: "    decq %r12           # <",
}

_FOLDED_TEMPLATES = {
    Instruction.INC_CELL: "    addb ${amount}, (%r12)    # + x{count}",
    Instruction.DEC_CELL: "    subb ${amount}, (%r12)    # - x{count}",
    Instruction.MOVE_RIGHT: "    addq ${amount}, %r12      # > x{count}",
    Instruction.MOVE_LEFT: "    subq ${amount}, %r12      # < x{count}",
}

_IO_BLOCKS = {
    Instruction.OUTPUT: [
        "    # Output character (.)",
        "    movq $1, %rax       # sys_write",
        "    movq $1, %rdi       # stdout",
        "    movq %r12, %rsi    # buffer",
        "    movq $1, %rdx       # length",
        "    syscall",
        "",
    ],
    Instruction.INPUT: [
        "    # Input character (,)",
        "    movq $0, %rax       # sys_read",
        "    movq $0, %rdi       # stdin",
        "    movq %r12, %rsi    # buffer",
        "    movq $1, %rdx       # length",
        "    syscall",
        "",
    ],
}


def loop_start_label(label: int) -> str:
    return f"loop_start_{label}"


def loop_end_label(label: int) -> str:
    return f"loop_end_{label}"


@dataclass(frozen=True)
class OpenLoop:
    label: int
    position: int


@dataclass
class AssemblyEmitter:
    """Syntax-directed translator from folded operations to x86-64 assembly.

    One instance translates exactly one program: call ``begin()``, then
    ``emit()`` once per operation, then ``end()``. Loop labels come from a
    monotonic counter and are paired through a LIFO stack of open loops.
    """

    memory_size: int = MEMORY_SIZE

    label_counter: int = field(init=False, default=0)
    loop_stack: List[OpenLoop] = field(init=False, default_factory=list)
    lines: List[str] = field(init=False, default_factory=list)
    started: bool = field(init=False, default=False)
    terminated: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        if self.memory_size < 1:
            raise ValueError("memory_size must be positive")

    def begin(self) -> List[str]:
        if self.started:
            raise EmitterStateError("begin() called twice")
        self.started = True
        return self._append(
            [
                "    .section .data",
                f"{MEMORY_LABEL}:",
                f"    .zero {self.memory_size}",
                "",
                "    .section .text",
                f"    .globl {ENTRY_LABEL}",
                "",
                f"{ENTRY_LABEL}:",
                "    # Initialize data pointer in r12",
                f"    leaq {MEMORY_LABEL}(%rip), {POINTER_REGISTER}",
                "",
            ]
        )

    def emit(self, op: FoldedOp) -> List[str]:
        self._ensure_accepting()
        instruction = op.instruction
        if instruction in _SINGLE_TEMPLATES:
            return self._append([self._delta_line(op)])
        if instruction in _IO_BLOCKS:
            return self._append(list(_IO_BLOCKS[instruction]))
        if instruction is Instruction.LOOP_OPEN:
            return self._open_loop(op)
        if instruction is Instruction.LOOP_CLOSE:
            return self._close_loop(op)
        raise ValueError(f"Unsupported instruction: {instruction!r}")

    def end(self) -> List[str]:
        self._ensure_accepting()
        self.terminated = True
        if self.loop_stack:
            innermost = self.loop_stack[-1]
            raise UnmatchedOpenError(
                label=innermost.label,
                position=innermost.position,
                open_loops=len(self.loop_stack),
            )
        return self._append(
            [
                "",
                "    # Exit program",
                "    movq $60, %rax      # sys_exit",
                "    xorq %rdi, %rdi    # exit code 0",
                "    syscall",
            ]
        )

    def render(self) -> str:
        return "\n".join(self.lines) + "\n"

    @property
    def depth(self) -> int:
        return len(self.loop_stack)

    def _delta_line(self, op: FoldedOp) -> str:
        if op.count == 1:
            return _SINGLE_TEMPLATES[op.instruction]
        amount = op.count
        if op.instruction in (Instruction.INC_CELL, Instruction.DEC_CELL):
            # cells are one byte wide
            amount %= _CELL_MODULUS
        return _FOLDED_TEMPLATES[op.instruction].format(amount=amount, count=op.count)

    def _open_loop(self, op: FoldedOp) -> List[str]:
        label = self.label_counter
        self.label_counter += 1
        self.loop_stack.append(OpenLoop(label, op.position))
        return self._append(
            [
                f"{loop_start_label(label)}:           # [",
                "    cmpb $0, (%r12)",
                f"    je {loop_end_label(label)}",
                "",
            ]
        )

    def _close_loop(self, op: FoldedOp) -> List[str]:
        if not self.loop_stack:
            self.terminated = True
            raise UnmatchedCloseError(op.position)
        label = self.loop_stack.pop().label
        return self._append(
            [
                "    cmpb $0, (%r12)",
                f"    jne {loop_start_label(label)}    # ]",
                f"{loop_end_label(label)}:",
                "",
            ]
        )

    def _ensure_accepting(self) -> None:
        if not self.started:
            raise EmitterStateError("begin() must be called before emitting")
        if self.terminated:
            raise EmitterStateError("emitter has already terminated")

    def _append(self, lines: List[str]) -> List[str]:
        self.lines.extend(lines)
        return lines


__all__ = [
    "AssemblyEmitter",
    "ENTRY_LABEL",
    "MEMORY_LABEL",
    "MEMORY_SIZE",
    "OpenLoop",
    "POINTER_REGISTER",
    "loop_end_label",
    "loop_start_label",
]

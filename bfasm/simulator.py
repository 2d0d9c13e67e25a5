from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .bf_interpreter import StepLimitExceeded
from .emitter import ENTRY_LABEL

DATA_BASE = 0x1000

_MASK_8 = 0xFF
_MASK_64 = (1 << 64) - 1

SYS_READ = 0
SYS_WRITE = 1
SYS_EXIT = 60


class SimulationError(RuntimeError):
    """Raised for listings outside the supported subset or invalid accesses."""


@dataclass(frozen=True)
class Operand:
    kind: str  # imm, reg, mem, rip, label
    value: "int | str"


@dataclass(frozen=True)
class Statement:
    line_no: int
    mnemonic: str
    operands: Tuple[Operand, ...]


@dataclass
class Listing:
    statements: List[Statement] = field(default_factory=list)
    labels: Dict[str, int] = field(default_factory=dict)
    symbols: Dict[str, int] = field(default_factory=dict)
    data_size: int = 0


@dataclass(frozen=True)
class SimulationResult:
    output: bytes
    exit_status: int
    steps: int


def _strip_comment(line: str) -> str:
    return line.split("#", 1)[0].strip()


def _parse_operand(text: str, line_no: int) -> Operand:
    text = text.strip()
    if text.startswith("$"):
        try:
            return Operand("imm", int(text[1:], 0))
        except ValueError as exc:
            raise SimulationError(f"line {line_no}: bad immediate {text!r}") from exc
    if text.startswith("%"):
        return Operand("reg", text[1:])
    if text.startswith("(%") and text.endswith(")"):
        return Operand("mem", text[2:-1])
    if text.endswith("(%rip)"):
        return Operand("rip", text[: -len("(%rip)")])
    if text.isidentifier():
        return Operand("label", text)
    raise SimulationError(f"line {line_no}: unsupported operand {text!r}")


def parse_listing(assembly: str) -> Listing:
    listing = Listing()
    section = None
    pending_symbol: Optional[str] = None
    for line_no, raw in enumerate(assembly.splitlines(), start=1):
        line = _strip_comment(raw)
        if not line:
            continue
        if line.startswith("."):
            directive, _, argument = line.partition(" ")
            if directive == ".section":
                section = argument.strip()
            elif directive == ".zero":
                if section != ".data" or pending_symbol is None:
                    raise SimulationError(f"line {line_no}: .zero outside a data symbol")
                listing.symbols[pending_symbol] = DATA_BASE + listing.data_size
                listing.data_size += int(argument, 0)
                pending_symbol = None
            elif directive not in (".globl", ".global"):
                raise SimulationError(f"line {line_no}: unsupported directive {directive}")
            continue
        if line.endswith(":"):
            name = line[:-1]
            if section == ".data":
                pending_symbol = name
            else:
                if name in listing.labels:
                    raise SimulationError(f"line {line_no}: duplicate label {name}")
                listing.labels[name] = len(listing.statements)
            continue
        mnemonic, _, rest = line.partition(" ")
        operands = tuple(
            _parse_operand(part, line_no) for part in rest.split(",") if part.strip()
        )
        listing.statements.append(Statement(line_no, mnemonic, operands))
    return listing


@dataclass
class ListingSimulator:
    """Executes the x86-64 subset produced by ``AssemblyEmitter``."""

    max_steps: Optional[int] = None

    memory: bytearray = field(init=False, repr=False)
    registers: Dict[str, int] = field(init=False, repr=False)
    zero_flag: bool = field(init=False, repr=False)
    input: bytes = field(init=False, repr=False)
    input_pos: int = field(init=False, repr=False)
    output: bytearray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.reset()

    def reset(self, data_size: int = 0, input_data: Optional[Iterable[int]] = None) -> None:
        self.memory = bytearray(data_size)
        self.registers = {}
        self.zero_flag = False
        self.input = bytes(input_data or b"")
        self.input_pos = 0
        self.output = bytearray()

    def run(
        self,
        assembly: str,
        input_data: Optional[Iterable[int]] = None,
        max_steps: Optional[int] = None,
    ) -> SimulationResult:
        listing = parse_listing(assembly)
        limit = max_steps if max_steps is not None else self.max_steps
        self.reset(listing.data_size, input_data)

        labels = listing.labels
        statements = listing.statements
        pc = labels.get(ENTRY_LABEL, 0)
        steps = 0
        while True:
            if pc >= len(statements):
                raise SimulationError("execution ran past the end of the text section")
            if limit is not None and steps >= limit:
                raise StepLimitExceeded("Listing exceeded allowed step count")
            statement = statements[pc]
            steps += 1
            pc += 1
            mnemonic = statement.mnemonic
            ops = statement.operands
            if mnemonic in ("je", "jne"):
                target = self._label(ops[0], labels, statement)
                if self.zero_flag == (mnemonic == "je"):
                    pc = target
            elif mnemonic == "syscall":
                status = self._syscall(statement)
                if status is not None:
                    return SimulationResult(bytes(self.output), status, steps)
            else:
                self._execute(statement, listing)

    def _execute(self, statement: Statement, listing: Listing) -> None:
        mnemonic = statement.mnemonic
        ops = statement.operands
        if mnemonic == "leaq":
            source, dest = ops
            if source.kind != "rip" or source.value not in listing.symbols:
                raise SimulationError(f"line {statement.line_no}: unknown symbol")
            self._set_reg(dest, listing.symbols[source.value])
        elif mnemonic == "movq":
            source, dest = ops
            self._set_reg(dest, self._value(source, statement))
        elif mnemonic == "xorq":
            source, dest = ops
            self._set_reg(dest, self._value(dest, statement) ^ self._value(source, statement))
        elif mnemonic in ("incb", "decb"):
            delta = 1 if mnemonic == "incb" else -1
            self._store_byte(ops[0], self._load_byte(ops[0], statement) + delta, statement)
        elif mnemonic in ("addb", "subb"):
            source, dest = ops
            amount = self._byte_immediate(source, statement)
            if mnemonic == "subb":
                amount = -amount
            self._store_byte(dest, self._load_byte(dest, statement) + amount, statement)
        elif mnemonic in ("incq", "decq"):
            delta = 1 if mnemonic == "incq" else -1
            self._set_reg(ops[0], self._value(ops[0], statement) + delta)
        elif mnemonic in ("addq", "subq"):
            source, dest = ops
            amount = self._value(source, statement)
            if mnemonic == "subq":
                amount = -amount
            self._set_reg(dest, self._value(dest, statement) + amount)
        elif mnemonic == "cmpb":
            source, dest = ops
            amount = self._byte_immediate(source, statement)
            self.zero_flag = (self._load_byte(dest, statement) - amount) & _MASK_8 == 0
        else:
            raise SimulationError(
                f"line {statement.line_no}: unsupported instruction {mnemonic}"
            )

    def _syscall(self, statement: Statement) -> Optional[int]:
        number = self.registers.get("rax", 0)
        fd = self.registers.get("rdi", 0)
        if number == SYS_EXIT:
            return fd & _MASK_8
        address = self.registers.get("rsi", 0)
        length = self.registers.get("rdx", 0)
        if number == SYS_WRITE and fd == 1:
            for offset in range(length):
                self.output.append(self.memory[self._offset(address + offset, statement)])
            self.registers["rax"] = length
        elif number == SYS_READ and fd == 0:
            chunk = self.input[self.input_pos : self.input_pos + length]
            for offset, value in enumerate(chunk):
                self.memory[self._offset(address + offset, statement)] = value
            self.input_pos += len(chunk)
            self.registers["rax"] = len(chunk)
        else:
            raise SimulationError(
                f"line {statement.line_no}: unsupported syscall {number} on fd {fd}"
            )
        return None

    def _label(self, operand: Operand, labels: Dict[str, int], statement: Statement) -> int:
        if operand.kind != "label" or operand.value not in labels:
            raise SimulationError(f"line {statement.line_no}: unknown label {operand.value}")
        return labels[operand.value]

    def _value(self, operand: Operand, statement: Statement) -> int:
        if operand.kind == "imm":
            return int(operand.value) & _MASK_64
        if operand.kind == "reg":
            return self.registers.get(str(operand.value), 0)
        raise SimulationError(f"line {statement.line_no}: expected register or immediate")

    def _byte_immediate(self, operand: Operand, statement: Statement) -> int:
        if operand.kind != "imm" or not -128 <= int(operand.value) <= _MASK_8:
            raise SimulationError(f"line {statement.line_no}: byte immediate out of range")
        return int(operand.value)

    def _set_reg(self, operand: Operand, value: int) -> None:
        if operand.kind != "reg":
            raise SimulationError("destination must be a register")
        self.registers[str(operand.value)] = value & _MASK_64

    def _offset(self, address: int, statement: Statement) -> int:
        offset = address - DATA_BASE
        if not 0 <= offset < len(self.memory):
            raise SimulationError(
                f"line {statement.line_no}: memory access out of range at {address:#x}"
            )
        return offset

    def _cell(self, operand: Operand, statement: Statement) -> int:
        if operand.kind != "mem":
            raise SimulationError(f"line {statement.line_no}: expected memory operand")
        return self._offset(self.registers.get(str(operand.value), 0), statement)

    def _load_byte(self, operand: Operand, statement: Statement) -> int:
        return self.memory[self._cell(operand, statement)]

    def _store_byte(self, operand: Operand, value: int, statement: Statement) -> None:
        self.memory[self._cell(operand, statement)] = value & _MASK_8


__all__ = [
    "ListingSimulator",
    "SimulationError",
    "SimulationResult",
    "parse_listing",
]

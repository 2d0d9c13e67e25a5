import re
import unittest

from bfasm import (
    AssemblyEmitter,
    BrainfuckCompiler,
    EmitterStateError,
    FoldedOp,
    Instruction,
    Program,
    UnmatchedCloseError,
    UnmatchedOpenError,
    compile_source,
    scan,
)

HEADER_LINES = 11
FOOTER_LINES = 5


def body(source) -> list:
    lines = BrainfuckCompiler().compile_result(source).lines
    return lines[HEADER_LINES:-FOOTER_LINES]


def scanned(source) -> list:
    return list(scan(Program.from_source(source)))


class ScannerTests(unittest.TestCase):
    def test_run_folds_into_single_op(self) -> None:
        self.assertEqual(scanned("+++"), [FoldedOp(Instruction.INC_CELL, 3, 0)])

    def test_scenario_b_ops(self) -> None:
        self.assertEqual(
            scanned("+[-]"),
            [
                FoldedOp(Instruction.INC_CELL, 1, 0),
                FoldedOp(Instruction.LOOP_OPEN, 1, 1),
                FoldedOp(Instruction.DEC_CELL, 1, 2),
                FoldedOp(Instruction.LOOP_CLOSE, 1, 3),
            ],
        )

    def test_different_instructions_are_not_merged(self) -> None:
        ops = scanned("++-")
        self.assertEqual(
            [(op.instruction, op.count) for op in ops],
            [(Instruction.INC_CELL, 2), (Instruction.DEC_CELL, 1)],
        )

    def test_io_and_brackets_never_fold(self) -> None:
        ops = scanned("..,,[[]]")
        self.assertEqual(len(ops), 8)
        self.assertTrue(all(op.count == 1 for op in ops))

    def test_comment_bytes_are_skipped(self) -> None:
        program = Program.from_source("a+b+c")
        ops = list(scan(program))
        self.assertEqual(ops, [FoldedOp(Instruction.INC_CELL, 2, 1)])
        self.assertTrue(program.exhausted)

    def test_non_ascii_bytes_are_ignored(self) -> None:
        ops = scanned(b"\xff>\x00>\n")
        self.assertEqual(ops, [FoldedOp(Instruction.MOVE_RIGHT, 2, 1)])

    def test_scan_is_lazy_and_advances_cursor(self) -> None:
        program = Program.from_source("++>.")
        stream = scan(program)
        first = next(stream)
        self.assertEqual(first, FoldedOp(Instruction.INC_CELL, 2, 0))
        self.assertEqual(program.position, 2)

    def test_cursor_skips_comment_bytes_inside_run(self) -> None:
        program = Program.from_source("+a+b-")
        first = next(scan(program))
        self.assertEqual(first, FoldedOp(Instruction.INC_CELL, 2, 0))
        self.assertEqual(program.position, 3)

    def test_folded_op_rejects_invalid_counts(self) -> None:
        with self.assertRaises(ValueError):
            FoldedOp(Instruction.INC_CELL, 0)
        with self.assertRaises(ValueError):
            FoldedOp(Instruction.OUTPUT, 2)


class EmitterTests(unittest.TestCase):
    def test_empty_program_layout(self) -> None:
        expected = (
            "    .section .data\n"
            "memory:\n"
            "    .zero 30000\n"
            "\n"
            "    .section .text\n"
            "    .globl _start\n"
            "\n"
            "_start:\n"
            "    # Initialize data pointer in r12\n"
            "    leaq memory(%rip), %r12\n"
            "\n"
            "\n"
            "    # Exit program\n"
            "    movq $60, %rax      # sys_exit\n"
            "    xorq %rdi, %rdi    # exit code 0\n"
            "    syscall\n"
        )
        self.assertEqual(compile_source(""), expected)

    def test_scenario_a_single_add(self) -> None:
        self.assertEqual(body("+++"), ["    addb $3, (%r12)    # + x3"])

    def test_unit_ops_use_inc_and_dec(self) -> None:
        self.assertEqual(
            body("+>-<"),
            [
                "    incb (%r12)         # +",
                "    incq %r12           # >",
                "    decb (%r12)         # -",
                "    decq %r12           # <",
            ],
        )

    def test_pointer_runs_fold(self) -> None:
        self.assertEqual(
            body(">>>>><<"),
            ["    addq $5, %r12      # > x5", "    subq $2, %r12      # < x2"],
        )

    def test_cell_runs_wrap_modulo_256(self) -> None:
        self.assertEqual(body("+" * 300), ["    addb $44, (%r12)    # + x300"])
        self.assertEqual(body("-" * 256), ["    subb $0, (%r12)    # - x256"])

    def test_scenario_b_labels(self) -> None:
        lines = body("+[-]")
        self.assertIn("loop_start_0:           # [", lines)
        self.assertIn("    je loop_end_0", lines)
        self.assertIn("    jne loop_start_0    # ]", lines)
        self.assertIn("loop_end_0:", lines)

    def test_scenario_c_unmatched_close(self) -> None:
        emitter = AssemblyEmitter()
        emitter.begin()
        with self.assertRaises(UnmatchedCloseError) as ctx:
            for op in scan(Program.from_source("]")):
                emitter.emit(op)
        self.assertEqual(ctx.exception.position, 0)
        self.assertFalse(any("loop_" in line for line in emitter.lines))

    def test_scenario_d_unmatched_open(self) -> None:
        emitter = AssemblyEmitter()
        emitter.begin()
        for op in scan(Program.from_source("[")):
            emitter.emit(op)
        with self.assertRaises(UnmatchedOpenError) as ctx:
            emitter.end()
        self.assertEqual(ctx.exception.label, 0)
        self.assertEqual(ctx.exception.position, 0)
        self.assertNotIn("    syscall", emitter.lines[HEADER_LINES:])

    def test_unmatched_open_reports_innermost(self) -> None:
        with self.assertRaises(UnmatchedOpenError) as ctx:
            compile_source("[[")
        self.assertEqual(ctx.exception.label, 1)
        self.assertEqual(ctx.exception.position, 1)
        self.assertEqual(ctx.exception.open_loops, 2)
        self.assertIn("Unmatched '['", str(ctx.exception))

    def test_scenario_e_io_sequences(self) -> None:
        lines = body(",.")
        read_index = lines.index("    movq $0, %rax       # sys_read")
        write_index = lines.index("    movq $1, %rax       # sys_write")
        self.assertLess(read_index, write_index)
        self.assertEqual(lines.count("    movq %r12, %rsi    # buffer"), 2)
        self.assertEqual(lines.count("    syscall"), 2)

    def test_emit_requires_begin(self) -> None:
        emitter = AssemblyEmitter()
        with self.assertRaises(EmitterStateError):
            emitter.emit(FoldedOp(Instruction.INC_CELL))

    def test_emitter_is_single_use(self) -> None:
        emitter = AssemblyEmitter()
        emitter.begin()
        emitter.end()
        with self.assertRaises(EmitterStateError):
            emitter.emit(FoldedOp(Instruction.INC_CELL))
        with self.assertRaises(EmitterStateError):
            emitter.begin()

    def test_emit_returns_appended_lines(self) -> None:
        emitter = AssemblyEmitter()
        emitter.begin()
        produced = emitter.emit(FoldedOp(Instruction.LOOP_OPEN, 1, 0))
        self.assertEqual(produced[0], "loop_start_0:           # [")
        self.assertEqual(emitter.lines[-len(produced):], produced)
        self.assertEqual(emitter.depth, 1)


class LabelPairingTests(unittest.TestCase):
    START = re.compile(r"^loop_start_(\d+):")
    END = re.compile(r"^loop_end_(\d+):")
    BACK_JUMP = re.compile(r"^\s+jne loop_start_(\d+)")

    def _numbers(self, pattern, lines) -> list:
        return [int(m.group(1)) for m in map(pattern.match, lines) if m]

    def test_labels_increase_in_bracket_order(self) -> None:
        lines = body("[[][]][]")
        starts = self._numbers(self.START, lines)
        ends = self._numbers(self.END, lines)
        self.assertEqual(starts, [0, 1, 2, 3])
        self.assertEqual(sorted(ends), starts)

    def test_nested_closes_pair_lifo(self) -> None:
        lines = body("[[-][+]]")
        self.assertEqual(self._numbers(self.BACK_JUMP, lines), [1, 2, 0])
        self.assertEqual(self._numbers(self.END, lines), [1, 2, 0])

    def test_each_start_has_matching_end_after_it(self) -> None:
        lines = body("+[>[>+<-]<[-]]")
        for label in self._numbers(self.START, lines):
            start = lines.index(f"loop_start_{label}:           # [")
            end = lines.index(f"loop_end_{label}:")
            self.assertLess(start, end)
            self.assertIn(f"    je loop_end_{label}", lines[start:end])


class CompilerTests(unittest.TestCase):
    def test_comment_bytes_do_not_change_output(self) -> None:
        clean = compile_source("++[->+<]>.")
        noisy = compile_source("add + +\n[ loop -\t> + < ] move > print .\n")
        self.assertEqual(noisy, clean)

    def test_stops_at_first_unmatched_close(self) -> None:
        program = Program.from_source("+]+++")
        emitter = AssemblyEmitter()
        emitter.begin()
        with self.assertRaises(UnmatchedCloseError) as ctx:
            for op in scan(program):
                emitter.emit(op)
        self.assertEqual(ctx.exception.position, 1)
        self.assertEqual(program.position, 2)
        self.assertNotIn("    addb $3, (%r12)    # + x3", emitter.lines)
        self.assertTrue(emitter.terminated)

    def test_result_counts(self) -> None:
        result = BrainfuckCompiler().compile_result("++[>+<-].")
        self.assertEqual(result.op_count, 8)
        self.assertEqual(result.loop_count, 1)
        self.assertEqual(result.assembly, "\n".join(result.lines) + "\n")

    def test_memory_size_option(self) -> None:
        assembly = BrainfuckCompiler(memory_size=100).compile("")
        self.assertIn("    .zero 100\n", assembly)
        with self.assertRaises(ValueError):
            BrainfuckCompiler(memory_size=0).compile("")

    def test_iter_lines_matches_compile(self) -> None:
        source = "++[>,.<-]"
        compiler = BrainfuckCompiler()
        self.assertEqual(list(compiler.iter_lines(source)), compiler.compile_result(source).lines)

    def test_iter_lines_streams_until_error(self) -> None:
        produced = []
        with self.assertRaises(UnmatchedCloseError):
            for line in BrainfuckCompiler().iter_lines("+]"):
                produced.append(line)
        self.assertEqual(len(produced), HEADER_LINES + 1)
        self.assertEqual(produced[-1], "    incb (%r12)         # +")

    def test_fresh_state_per_compilation(self) -> None:
        compiler = BrainfuckCompiler()
        first = compiler.compile("[-]")
        second = compiler.compile("[-]")
        self.assertEqual(first, second)
        self.assertIn("loop_start_0:", second)


if __name__ == "__main__":
    unittest.main()

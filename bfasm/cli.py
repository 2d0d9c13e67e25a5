from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .bf_interpreter import StepLimitExceeded
from .compiler import BrainfuckCompiler
from .emitter import MEMORY_SIZE
from .errors import CompileError, ResourceError
from .simulator import ListingSimulator, SimulationError

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = "output.s"


def _read_source(path: str) -> bytes:
    source_path = Path(path)
    if not source_path.exists():
        raise ResourceError(path, "Source file not found")
    try:
        return source_path.read_bytes()
    except OSError as exc:
        raise ResourceError(path, f"Could not open file ({exc.strerror})") from exc


def _write_output(path: str, data: str) -> None:
    if path == "-":
        sys.stdout.write(data)
        return
    output_path = Path(path)
    try:
        output_path.write_text(data, encoding="utf-8")
    except OSError as exc:
        raise ResourceError(path, f"Could not open output file ({exc.strerror})") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bfasm",
        description="Compiles Brainfuck code to x86-64 assembly",
    )
    parser.add_argument("source", help="Path to Brainfuck source file")
    parser.add_argument(
        "output",
        nargs="?",
        default=DEFAULT_OUTPUT,
        help=f"Destination for the assembly listing, '-' for stdout (default: {DEFAULT_OUTPUT})",
    )
    parser.add_argument(
        "--memory-size",
        type=int,
        default=MEMORY_SIZE,
        help=f"Size of the zeroed tape in bytes (default: {MEMORY_SIZE})",
    )
    parser.add_argument(
        "--run",
        action="store_true",
        help="Simulate the emitted listing and print the program output",
    )
    parser.add_argument(
        "--input",
        default="",
        help="Input string supplied to the program when running",
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=5_000_000,
        help="Step limit for --run (default: 5,000,000)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return 0 if exc.code == 0 else 1

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    if args.memory_size < 1:
        print("--memory-size must be positive", file=sys.stderr)
        return 1

    # progress goes to stderr when the listing itself is on stdout
    progress = sys.stderr if args.output == "-" else sys.stdout
    print("Brainfuck Compiler", file=progress)
    print(f"Input:  {args.source}", file=progress)
    print(f"Output: {args.output}", file=progress)

    try:
        source = _read_source(args.source)
    except ResourceError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    compiler = BrainfuckCompiler(memory_size=args.memory_size)
    try:
        assembly = compiler.compile(source)
    except CompileError as exc:
        logger.debug("compilation of %s failed", args.source, exc_info=True)
        print(str(exc), file=sys.stderr)
        return 1

    try:
        _write_output(args.output, assembly)
    except ResourceError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    print("Compilation successful!", file=progress)
    if args.output != "-":
        print("\nTo assemble and run:", file=progress)
        print(f"  as {args.output} -o output.o", file=progress)
        print("  ld output.o -o program", file=progress)
        print("  ./program", file=progress)

    if args.run:
        simulator = ListingSimulator(max_steps=args.max_steps)
        try:
            result = simulator.run(assembly, input_data=args.input.encode("utf-8"))
        except (SimulationError, StepLimitExceeded) as exc:
            print(f"Simulation error: {exc}", file=sys.stderr)
            return 1
        sys.stdout.write(result.output.decode("latin-1"))
        sys.stdout.flush()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())

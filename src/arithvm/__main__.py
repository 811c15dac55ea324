"""Run one of the bundled sample programs: python -m arithvm [program]"""

import argparse
from typing import List, Optional

from .bytecode import format_listing
from .programs import PROGRAMS
from .vm import run_bytecode


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="arithvm", description="Run an ArithVM sample program")
    parser.add_argument(
        "program",
        nargs="?",
        default="fibonacci",
        choices=sorted(PROGRAMS),
        help="Sample program to run (default: %(default)s)"
    )
    parser.add_argument(
        "-l", "--list",
        action="store_true",
        help="Print a disassembly listing instead of running the program"
    )

    args = parser.parse_args(argv)
    code = PROGRAMS[args.program]

    if args.list:
        print(format_listing(code))
        return 0
    return run_bytecode(code)


if __name__ == "__main__":
    raise SystemExit(main())

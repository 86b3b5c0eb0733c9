"""Module: turn TD4 program text into instruction words.

This module contains:
- parse_program(text) -> list of 8-bit instruction words
- ParseError raised on malformed instruction lines
- EXAMPLE_PROGRAMS with a few ready-to-load programs
"""

from __future__ import annotations

# ruff: noqa: A005
import re

COMMENT = "//"
WORD_BITS = 8

_WS_RE = re.compile(r"\s+")
_BITS_RE = re.compile(r"^[01]{8}$")


class ParseError(ValueError):
    """Raised when a program line is not an 8-digit binary word."""

    def __init__(self, line: str, lineno: int | None = None) -> None:
        self.line = line
        self.lineno = lineno
        super().__init__(f"Invalid instruction: {line}")


def _instruction_part(raw: str) -> str | None:
    """Return the instruction text of a line, or None for blank/comment lines."""
    line = raw.strip()
    if not line or line.startswith(COMMENT):
        return None
    # inline comment
    if COMMENT in line:
        line = line.split(COMMENT, 1)[0].strip()
    return line


def parse_program(text: str) -> list[int]:
    """Parse program text, one binary instruction word per line.

    Blank lines and `//` comments are skipped; whitespace inside a word is
    ignored ("0011 0000"). The result may be longer than memory; loading
    truncates it.
    """
    program: list[int] = []
    for lineno, raw in enumerate(text.split("\n"), start=1):
        instr = _instruction_part(raw)
        if instr is None:
            continue
        bits = _WS_RE.sub("", instr)
        if not _BITS_RE.fullmatch(bits):
            raise ParseError(instr, lineno)
        program.append(int(bits, 2))
    return program


EXAMPLE_PROGRAMS: dict[str, str] = {
    "counter": """\
// Counter
// increment register A and output it
0011 0000  // MOV A, 0
0100 0000  // MOV B, A
1001 0000  // OUT B
0000 0001  // ADD A, 1
1111 0001  // JMP 1
""",
    "blink": """\
// Blink
// toggle the output between 0 and 15
0011 0000  // MOV A, 0
1011 0000  // OUT 0
0011 1111  // MOV A, 15
1011 1111  // OUT 15
1111 0000  // JMP 0
""",
    "fibonacci": """\
// Fibonacci-style counter
// A = current value, B = previous value
0011 0001  // MOV A, 1
0100 0000  // MOV B, A
1001 0000  // OUT B
0001 0000  // MOV A, B
0000 0001  // ADD A, 1
0100 0000  // MOV B, A
1001 0000  // OUT B
1111 0010  // JMP 2
""",
}

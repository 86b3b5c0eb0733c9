"""Processor (Datapath + ControlUnit) and CLI wrapper.

Provides the TD4 machine model, a tick-limited run driver, logging
initialization and a text dump of the machine state.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, NamedTuple

from config import ConfigError, load_config
from isa import (
    MEMORY_WORDS,
    NIBBLE_MASK,
    UNDEFINED_OPCODES,
    WORD_MASK,
    OpCode,
    decode_instr,
    mnemonic,
    to_bin4,
    to_bin8,
)
from parser import EXAMPLE_PROGRAMS, ParseError, parse_program

LOGFILE = "processor.log"

OUTPUT_OPCODES = frozenset({OpCode.OUT_B, OpCode.OUT})


def init_logging(logfile: str = LOGFILE, debug: bool = False, console: bool = False) -> None:
    """Configure root logger to write to `logfile`.

    If debug=True set DEBUG level. If console=True also echo logs to stdout.
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    lvl = logging.DEBUG if debug else logging.CRITICAL
    root.setLevel(lvl)

    if debug:
        file_fmt = "%(levelname)s %(name)s:%(filename)s:%(lineno)d %(message)s"
    else:
        file_fmt = "%(levelname)-5s %(message)s"

    fh = logging.FileHandler(logfile, mode="w", encoding="utf-8")
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter(file_fmt))
    root.addHandler(fh)

    if debug and console:
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(lvl)
        ch.setFormatter(logging.Formatter("%(levelname)5s %(message)s"))
        root.addHandler(ch)


class ProcessorState(NamedTuple):
    """Immutable snapshot of the machine state."""

    register_a: int
    register_b: int
    program_counter: int
    output: int
    carry_flag: int
    memory: tuple[int, ...]
    running: bool
    halted: bool


class Datapath:
    """Datapath (registers + carry flag + instruction memory) for the TD4."""

    register_a: int
    register_b: int
    program_counter: int
    output: int
    carry_flag: int
    memory: list[int]

    running: bool
    halted: bool

    def __init__(self) -> None:
        """Initialize Datapath state to its power-on values."""
        self.reset()

    def reset(self) -> None:
        """Zero every register, flag and memory cell."""
        self.register_a = 0
        self.register_b = 0
        self.program_counter = 0
        self.output = 0
        self.carry_flag = 0
        self.memory = [0] * MEMORY_WORDS
        self.running = False
        self.halted = False

    def load(self, program: Iterable[int]) -> None:
        """Reset, then copy up to MEMORY_WORDS words starting at address 0."""
        self.reset()
        for addr, word in enumerate(program):
            if addr >= MEMORY_WORDS:
                logging.debug("Datapath: program longer than %d words, rest discarded", MEMORY_WORDS)
                break
            self.memory[addr] = int(word) & WORD_MASK

    def read_word(self, addr: int) -> int:
        return self.memory[addr & NIBBLE_MASK]

    def add(self, value: int, imm: int) -> int:
        """4-bit add: return the masked sum and update the carry flag."""
        result = value + imm
        self.carry_flag = 1 if result > NIBBLE_MASK else 0
        return result & NIBBLE_MASK

    def latch(self) -> None:
        # registers are 4 bits wide
        self.register_a &= NIBBLE_MASK
        self.register_b &= NIBBLE_MASK
        self.program_counter &= NIBBLE_MASK
        self.output &= NIBBLE_MASK

    def snapshot(self) -> ProcessorState:
        return ProcessorState(
            register_a=self.register_a,
            register_b=self.register_b,
            program_counter=self.program_counter,
            output=self.output,
            carry_flag=self.carry_flag,
            memory=tuple(self.memory),
            running=self.running,
            halted=self.halted,
        )


class ControlUnit:
    """Control unit implementing the FETCH-DECODE-EXEC cycle for the Datapath."""

    dp: Datapath
    lenient_log: bool

    def __init__(self, dp: Datapath, lenient_log: bool = False) -> None:
        """Create a ControlUnit bound to `dp`."""
        self.dp = dp
        self.lenient_log = bool(lenient_log)

    def _log_step(self, pc: int, opcode: OpCode, imm: int) -> None:
        # skip verbose per-step logs in lenient mode to reduce log size
        if self.lenient_log:
            return
        dp = self.dp
        logging.debug(
            "PC: %2d INSTR: %-10s A: %s B: %s C: %d OUT: %s NEXT_PC: %2d",
            pc,
            mnemonic(opcode, imm),
            to_bin4(dp.register_a),
            to_bin4(dp.register_b),
            dp.carry_flag,
            to_bin4(dp.output),
            dp.program_counter,
        )

    def step(self) -> bool:
        """Execute one instruction.

        Returns False when the machine is (or just became) halted.
        """
        dp = self.dp
        if dp.halted:
            return False

        pc = dp.program_counter
        word = dp.read_word(pc)
        # PC advances before execution; jumps overwrite it
        dp.program_counter = (pc + 1) & NIBBLE_MASK

        opcode, imm = decode_instr(word)
        self.exec(opcode, imm)
        dp.latch()

        self._log_step(pc, opcode, imm)
        if dp.halted:
            logging.debug("HALT: undefined opcode %s at PC %d", to_bin4(opcode), pc)
        return not dp.halted

    def exec(self, opcode: OpCode, imm: int) -> None:  # noqa: C901
        """Execute a single decoded instruction (hardwired control unit)."""
        dp = self.dp

        if opcode == OpCode.ADD_A:
            dp.register_a = dp.add(dp.register_a, imm)
            return
        if opcode == OpCode.MOV_A_B:
            dp.register_a = dp.register_b
            return
        if opcode in (OpCode.IN_A, OpCode.MOV_A):
            # no input port: IN reads the immediate field
            dp.register_a = imm
            return
        if opcode == OpCode.MOV_B_A:
            dp.register_b = dp.register_a
            return
        if opcode == OpCode.ADD_B:
            dp.register_b = dp.add(dp.register_b, imm)
            return
        if opcode in (OpCode.IN_B, OpCode.MOV_B):
            dp.register_b = imm
            return
        if opcode == OpCode.OUT_B:
            dp.output = dp.register_b
            return
        if opcode == OpCode.OUT:
            dp.output = imm
            return
        if opcode == OpCode.JNC:
            if dp.carry_flag == 0:
                dp.program_counter = imm
            return
        if opcode == OpCode.JMP:
            dp.program_counter = imm
            return
        if opcode in UNDEFINED_OPCODES:
            dp.halted = True
            return

        logging.debug("Unhandled opcode: %s", opcode)
        dp.halted = True

    def run(
        self,
        tick_limit: int,
        pause_tick: int | None = None,
        interval: float = 0.0,
    ) -> tuple[list[int], int, str]:
        """Step the datapath until halt, pause or tick limit.

        Returns (outputs, ticks, state) where outputs holds the output port
        value after every OUT instruction and state is one of "halted",
        "paused" or "stopped".
        """
        dp = self.dp
        outputs: list[int] = []
        ticks = 0
        if dp.halted:
            return outputs, ticks, "halted"

        dp.running = True
        state = "stopped"
        try:
            while ticks < tick_limit:
                if pause_tick is not None and ticks == pause_tick:
                    logging.debug("[tick %d] paused", ticks)
                    state = "paused"
                    break

                opcode, _ = decode_instr(dp.read_word(dp.program_counter))
                cont = self.step()
                ticks += 1
                if opcode in OUTPUT_OPCODES:
                    outputs.append(dp.output)

                if not cont:
                    state = "halted"
                    break
                if interval > 0:
                    time.sleep(interval)
        finally:
            dp.running = False

        logging.debug("run finished: state=%s ticks=%d outputs=%s", state, ticks, outputs)
        return outputs, ticks, state


class Processor:
    """TD4 machine: a Datapath driven by its ControlUnit."""

    dp: Datapath
    cu: ControlUnit

    def __init__(self, lenient_log: bool = False) -> None:
        self.dp = Datapath()
        self.cu = ControlUnit(self.dp, lenient_log=lenient_log)

    @property
    def running(self) -> bool:
        return self.dp.running

    @running.setter
    def running(self, value: bool) -> None:
        self.dp.running = bool(value)

    def reset(self) -> None:
        self.dp.reset()

    def load(self, program: Iterable[int]) -> None:
        self.dp.load(program)

    def step(self) -> bool:
        return self.cu.step()

    def get_state(self) -> ProcessorState:
        return self.dp.snapshot()

    def run(
        self,
        tick_limit: int,
        pause_tick: int | None = None,
        interval: float = 0.0,
    ) -> tuple[list[int], int, str]:
        return self.cu.run(tick_limit, pause_tick=pause_tick, interval=interval)


def dump_state(state: ProcessorState) -> str:
    """Render registers and memory in binary, marking the cell at PC."""
    lines = [
        f"A: {to_bin4(state.register_a)}  B: {to_bin4(state.register_b)}  "
        f"PC: {to_bin4(state.program_counter)}  OUT: {to_bin4(state.output)}  C: {state.carry_flag}",
        f"RUNNING: {'yes' if state.running else 'no'}  HALTED: {'yes' if state.halted else 'no'}",
        "=== MEMORY ===",
    ]
    for addr, word in enumerate(state.memory):
        marker = ">" if addr == state.program_counter else " "
        opcode, imm = decode_instr(word)
        lines.append(f"{marker} {addr:X}: {to_bin8(word)}  {mnemonic(opcode, imm)}")
    return "\n".join(lines)


# ---------- Public API ----------
def run_program(
    text: str, config: dict[str, Any] | None = None
) -> tuple[list[int], int, str, ProcessorState]:
    """Parse and run program text; return (outputs, ticks, state, final snapshot)."""
    cfg = dict(config) if config is not None else {}
    tick_limit = cfg.get("tick_limit", 256)
    pause_tick = cfg.get("pause_tick", None)
    interval = cfg.get("interval", 0.0)
    lenient = cfg.get("lenient_log", False)

    program = parse_program(text)
    proc = Processor(lenient_log=lenient)
    proc.load(program)
    outputs, ticks, state = proc.run(tick_limit, pause_tick=pause_tick, interval=interval)
    return outputs, ticks, state, proc.get_state()


def _read_program_text(source: str) -> str:
    """Read program text from a path or an `example:<name>` reference."""
    if source.startswith("example:"):
        name = source.split(":", 1)[1]
        if name not in EXAMPLE_PROGRAMS:
            err = f"Unknown example program: {name}"
            raise FileNotFoundError(err)
        return EXAMPLE_PROGRAMS[name]
    path = Path(source)
    if not path.exists():
        err = f"Program file not found: {source}"
        raise FileNotFoundError(err)
    return path.read_text(encoding="utf-8")


# ---------- CLI ----------
def main(argv: Sequence[str] | None = None) -> int:
    """Command-line driver: load a program, run it and print the output port."""
    import argparse

    ap = argparse.ArgumentParser(
        description="TD4 processor runner. Accepts a program text file (one 8-bit binary "
        "word per line, // comments) or example:<name> for a built-in example."
    )
    ap.add_argument("program", help="program file or example:counter|blink|fibonacci")
    ap.add_argument("--config", help="path to yaml config", default=None)
    ap.add_argument("--tick-limit", type=int, default=None, help="override config tick_limit")
    ap.add_argument("--interval", type=float, default=None, help="seconds between steps")

    help_debug = "enable debug logging to logfile (per-step machine state)."
    help_logfile = "path to processor log"
    help_console = "also echo logs to console (only when --debug)"
    ap.add_argument("--debug", action="store_true", help=help_debug)
    ap.add_argument("--logfile", default=LOGFILE, help=help_logfile)
    ap.add_argument("--console", action="store_true", help=help_console)
    ap.add_argument("--dump", action="store_true", help="print final registers and memory")
    args = ap.parse_args(argv)

    init_logging(logfile=args.logfile, debug=args.debug, console=args.console)

    overrides: dict[str, Any] = {}
    if args.tick_limit is not None:
        overrides["tick_limit"] = args.tick_limit
    if args.interval is not None:
        overrides["interval"] = args.interval
    try:
        cfg = load_config(args.config)
        if overrides:
            cfg = load_config({**cfg, **overrides})
    except ConfigError as e:
        print("Bad config:", e)
        return 2

    try:
        text = _read_program_text(args.program)
    except FileNotFoundError as e:
        print(e)
        return 2

    try:
        outputs, ticks, state, snapshot = run_program(text, cfg)
    except ParseError as e:
        print(f"Parse error (line {e.lineno}): {e}")
        return 2

    for value in outputs:
        sys.stdout.write(to_bin4(value) + "\n")
    sys.stdout.write("TICKS: " + str(ticks) + "\n")
    sys.stdout.write("STATE: " + state + "\n")
    if args.dump:
        sys.stdout.write(dump_state(snapshot) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())

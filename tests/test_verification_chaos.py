"""Verification Test: Chaos Monkey - Randomly damaged dumps.

Dumps arrive truncated, copy-pasted with missing lines, or mixed with log
output. The parser must never raise on them and must keep every goroutine
whose header survived.
"""

import io
import random

import pytest

from gorotop.errors import DumpParseError
from gorotop.models import Goroutine, StackFrame
from gorotop.parser import parse_dump

from dumpgen import make_dump

JUNK_LINES = [
    "",
    "goroutine",
    "goroutine x [running]:",
    "goroutine 5 running",
    "\t/src/no/line/number.go",
    "\t/src/bad/offset.go:12 +0xnothex",
    "2024/01/01 12:00:00 http: panic serving 10.0.0.1:443",
    "created by ",
    "[signal SIGSEGV: segmentation violation]",
    "\t:",
]


def damage(text: str, rng: random.Random) -> str:
    """Delete, duplicate and inject lines at random, then maybe truncate."""
    lines = text.split("\n")
    damaged = []
    for line in lines:
        roll = rng.random()
        if roll < 0.05:
            continue
        if roll < 0.08:
            damaged.append(line)
        if roll < 0.12:
            damaged.append(rng.choice(JUNK_LINES))
        damaged.append(line)
    result = "\n".join(damaged)
    if rng.random() < 0.5:
        result = result[: rng.randint(0, len(result))]
    return result


def assert_well_formed(routine: Goroutine) -> None:
    assert isinstance(routine.id, int)
    assert isinstance(routine.status, str)
    assert routine.wait_since_min >= 0
    for frame in routine.full_stack():
        assert isinstance(frame, StackFrame)
        assert isinstance(frame.line, int)
        assert frame.position is None or frame.position >= 0


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    @pytest.mark.parametrize("seed", range(25))
    def test_parser_survives_damaged_dump(self, seed):
        """Test that damaged input never raises and yields sane records."""
        rng = random.Random(seed)
        text = damage(make_dump(200, seed=seed), rng)

        diagnostics: list[DumpParseError] = []
        routines = parse_dump(io.StringIO(text), diagnostics)

        for routine in routines:
            assert_well_formed(routine)
        for diagnostic in diagnostics:
            assert diagnostic.line_number >= 1

    def test_surviving_headers_are_kept(self):
        """Test that dropping frame lines never drops the goroutines themselves."""
        rng = random.Random(99)
        lines = make_dump(300, seed=99).split("\n")
        kept = [
            line
            for line in lines
            if line.startswith("goroutine ") or line == "" or rng.random() > 0.2
        ]

        routines = parse_dump(io.StringIO("\n".join(kept)))

        assert [r.id for r in routines] == list(range(1, 301))

    def test_random_bytes_as_text(self):
        """Test that arbitrary text is skipped rather than raising."""
        rng = random.Random(3)
        alphabet = "goroutine []:+0x/\t\n,0123456789abc created by"
        text = "".join(rng.choice(alphabet) for _ in range(20_000))

        routines = parse_dump(io.StringIO(text))

        for routine in routines:
            assert_well_formed(routine)

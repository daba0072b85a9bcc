"""
Parser for Go goroutine dumps.

Handles the text printed by the runtime on SIGQUIT, by runtime.Stack with
all=true, and by /debug/pprof/goroutine?debug=2:

    goroutine 18 [chan receive, 3 minutes, locked to thread]:
    main.worker(0xc000010000)
            /app/main.go:42 +0x5d
    created by main.main in goroutine 1
            /app/main.go:20 +0x85

Malformed blocks and frames are skipped with a warning so that truncated or
copy-pasted dumps still yield everything that can be read. Only a failure of
the stream itself is fatal.
"""

import logging
import re
from collections.abc import Iterator
from typing import TextIO

from gorotop.errors import (
    BlockParseError,
    DumpParseError,
    FrameParseError,
    StreamError,
    TruncatedInputError,
)
from gorotop.models import Goroutine, StackFrame

logger = logging.getLogger(__name__)

CREATED_BY_PREFIX = "created by "
LOCKED_TO_THREAD = "locked to thread"

_INT_RE = re.compile(r"[+-]?[0-9]+")
_WAIT_RE = re.compile(r"([0-9]+) minutes")
_HEX_RE = re.compile(r"[0-9a-fA-F]+")

_INT32_MAX = 2**31 - 1
_INT64_MAX = 2**63 - 1


def _parse_int(text: str, max_value: int) -> int:
    """Parse a signed decimal integer that must fit in [-max_value - 1, max_value]."""
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid integer {text!r}")
    value = int(text)
    if not -max_value - 1 <= value <= max_value:
        raise ValueError(f"integer {text!r} out of range")
    return value


class _LineReader:
    """Forward-only line source that counts lines and wraps read failures."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self.line_number = 0

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        try:
            line = self._stream.readline()
        except (OSError, ValueError) as exc:
            # ValueError covers UnicodeDecodeError and reads from a closed stream
            raise StreamError(
                f"Failed to read dump after line {self.line_number}: {exc}"
            ) from exc
        if not line:
            raise StopIteration
        self.line_number += 1
        return line.rstrip("\r\n")


def parse_header(header: str, line_number: int = 0) -> Goroutine:
    """
    Parse a 'goroutine <id> [<status>, <qualifier>...]:' line.

    Raises:
        BlockParseError: If the line is not a goroutine header.
    """
    tokens = header.split(" ")
    if len(tokens) < 3:
        raise BlockParseError(
            f"Expected header with at least 3 fields, got {header!r}", line_number
        )
    if tokens[0] != "goroutine":
        raise BlockParseError(f"Expected goroutine header, got {header!r}", line_number)
    try:
        goroutine_id = _parse_int(tokens[1], _INT64_MAX)
    except ValueError as exc:
        raise BlockParseError(f"Could not parse goroutine id: {exc}", line_number) from exc

    state_start = header.find("[")
    state_end = header.rfind("]")
    if state_start == -1 or state_end < state_start:
        raise BlockParseError(f"Missing [status] clause in {header!r}", line_number)

    status, *qualifiers = header[state_start + 1 : state_end].split(",")
    routine = Goroutine(id=goroutine_id, status=status)
    for qualifier in qualifiers:
        qualifier = qualifier.strip()
        wait = _WAIT_RE.fullmatch(qualifier)
        if wait:
            routine.wait_since_min = int(wait.group(1))
        elif qualifier == LOCKED_TO_THREAD:
            routine.locked_to_thread = True
        # Other qualifiers (e.g. "syscall" hints from newer runtimes) are ignored
    return routine


def parse_position(text: str, line_number: int = 0) -> tuple[str, int, int | None]:
    """
    Parse a '<file>:<line> +0x<offset>' position line.

    The offset suffix is optional. The last colon separates the file, so
    Windows drive letters survive.

    Returns:
        (file, line, position) with position None when there is no suffix.

    Raises:
        FrameParseError: If the line cannot be parsed.
    """
    text = text.strip()
    if not text:
        raise FrameParseError("Unexpected empty line, expected file:line", line_number)

    file_line_sep = text.rfind(":")
    if file_line_sep == -1:
        raise FrameParseError(f"Missing ':' in position line {text!r}", line_number)
    file_name = text[:file_line_sep]

    line_pos_sep = text.rfind(" ")
    position = None
    if line_pos_sep <= file_line_sep + 1:
        line_str = text[file_line_sep + 1 :]
    else:
        line_str = text[file_line_sep + 1 : line_pos_sep]
        suffix = text[line_pos_sep + 1 :]
        if not suffix.startswith("+0x") or not _HEX_RE.fullmatch(suffix[3:]):
            raise FrameParseError(f"Could not parse offset in {text!r}", line_number)
        position = int(suffix[3:], 16)

    try:
        line = _parse_int(line_str, _INT32_MAX)
    except ValueError as exc:
        raise FrameParseError(
            f"Could not parse line number in {text!r}: {exc}", line_number
        ) from exc
    return file_name, line, position


def _record(
    error: DumpParseError, diagnostics: list[DumpParseError] | None
) -> None:
    logger.warning("Skipping unparsable dump content: %s", error)
    if diagnostics is not None:
        diagnostics.append(error)


def parse_dump(
    stream: TextIO, diagnostics: list[DumpParseError] | None = None
) -> list[Goroutine]:
    """
    Read a whole goroutine dump and return its goroutines in dump order.

    Args:
        stream: Readable text stream. It is only read, never closed.
        diagnostics: Optional list that receives every skipped block or
            frame error, in the order they were found.

    Raises:
        StreamError: If reading the stream fails. No goroutines are
            returned in that case, even those already parsed.
    """
    lines = _LineReader(stream)
    routines: list[Goroutine] = []
    skipped = 0

    for header in lines:
        if not header.strip():
            continue
        try:
            routine = parse_header(header, lines.line_number)
        except BlockParseError as exc:
            skipped += 1
            _record(exc, diagnostics)
            continue

        for trace_line in lines:
            if not trace_line.strip():
                break

            is_created_by = trace_line.startswith(CREATED_BY_PREFIX)
            func_name = trace_line[len(CREATED_BY_PREFIX) :] if is_created_by else trace_line
            position_line = next(lines, None)
            if position_line is None:
                skipped += 1
                _record(
                    TruncatedInputError(
                        f"Unexpected end of dump after {func_name!r}", lines.line_number
                    ),
                    diagnostics,
                )
                break
            if not position_line.strip():
                # A blank line still closes the block even where a position was due
                skipped += 1
                _record(
                    FrameParseError(
                        f"Unexpected empty line after {func_name!r}", lines.line_number
                    ),
                    diagnostics,
                )
                break

            try:
                file_name, line, position = parse_position(position_line, lines.line_number)
            except FrameParseError as exc:
                skipped += 1
                _record(exc, diagnostics)
                continue

            frame = StackFrame(func_name=func_name, file=file_name, line=line, position=position)
            if is_created_by:
                routine.created_by = frame
            else:
                routine.stack_trace.append(frame)

        routines.append(routine)

    logger.debug(
        "Parsed %d goroutines from %d lines (%d skipped entries)",
        len(routines),
        lines.line_number,
        skipped,
    )
    return routines

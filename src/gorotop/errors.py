"""Errors raised and recorded while reading goroutine dumps."""


class StreamError(Exception):
    """Reading the underlying dump source failed."""


class DumpParseError(Exception):
    """
    Base class for grammar errors found in a dump.

    These never escape the parser. They are logged and, when the caller asks
    for them, collected into a diagnostics list.
    """

    def __init__(self, message: str, line_number: int) -> None:
        super().__init__(message)
        self.message = message
        self.line_number = line_number

    def __str__(self) -> str:
        return f"line {self.line_number}: {self.message}"


class BlockParseError(DumpParseError):
    """Malformed goroutine header. The whole block is dropped."""


class FrameParseError(DumpParseError):
    """Malformed or missing position line. Only the frame is dropped."""


class TruncatedInputError(FrameParseError):
    """The stream ended while a position line was still expected."""

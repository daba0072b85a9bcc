"""Data models for gorotop."""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class StackFrame:
    """Immutable single entry of a goroutine call stack."""

    func_name: str
    file: str  # As printed by the runtime, never resolved
    line: int
    position: int | None = None  # Relative PC offset, "+0x.." suffix

    def __str__(self) -> str:
        text = f"{self.func_name}\n   file://{self.file}#{self.line}"
        if self.position is not None:
            text += f" +0x{self.position:x}"
        return text


@dataclass(slots=True)
class Goroutine:
    """
    One goroutine from a dump.

    The status is kept as free text since new Go releases keep adding
    scheduling states. wait_since_min is 0 both when the runtime reported
    less than a minute of waiting and when the header said nothing.
    """

    id: int
    status: str
    wait_since_min: int = 0
    locked_to_thread: bool = False
    stack_trace: list[StackFrame] = field(default_factory=list)
    created_by: StackFrame | None = None

    def full_stack(self) -> list[StackFrame]:
        """Return the trace followed by the created-by frame, if any."""
        if self.created_by is None:
            return list(self.stack_trace)
        return [*self.stack_trace, self.created_by]

    @property
    def top_frame(self) -> StackFrame | None:
        """Innermost frame, the one the goroutine is currently in."""
        return self.stack_trace[0] if self.stack_trace else None


def stack_contains(frames: Iterable[StackFrame], sub_string: str) -> bool:
    """Check whether any rendered frame contains sub_string, ignoring case."""
    needle = sub_string.lower()
    return any(needle in str(frame).lower() for frame in frames)


def summarize_statuses(goroutines: Iterable[Goroutine]) -> list[tuple[str, int]]:
    """Count goroutines per status, most common first."""
    return Counter(g.status for g in goroutines).most_common()

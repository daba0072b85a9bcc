"""Tests for gorotop data models."""

import pytest

from gorotop.models import Goroutine, StackFrame, stack_contains, summarize_statuses


def make_frame(func_name: str = "main.foo", file: str = "/a/b.go") -> StackFrame:
    return StackFrame(func_name=func_name, file=file, line=10, position=0x1A)


def test_stack_frame_creation():
    """Test StackFrame dataclass creation."""
    frame = StackFrame(func_name="main.foo", file="/a/b.go", line=10)

    assert frame.func_name == "main.foo"
    assert frame.file == "/a/b.go"
    assert frame.line == 10
    assert frame.position is None


def test_stack_frame_is_frozen():
    """Test that StackFrame is immutable (frozen)."""
    frame = make_frame()

    with pytest.raises(AttributeError):
        frame.line = 99


def test_models_use_slots():
    """Test that the models use __slots__ for memory efficiency."""
    assert not hasattr(make_frame(), "__dict__")
    assert not hasattr(Goroutine(id=1, status="running"), "__dict__")


def test_stack_frame_render_with_position():
    """Test the one-frame display string."""
    assert str(make_frame()) == "main.foo\n   file:///a/b.go#10 +0x1a"


def test_stack_frame_render_without_position():
    """Test rendering omits the offset when the dump had none."""
    frame = StackFrame(func_name="main.foo", file="/a/b.go", line=10)
    assert str(frame) == "main.foo\n   file:///a/b.go#10"


def test_goroutine_defaults():
    """Test Goroutine optional fields default to empty values."""
    routine = Goroutine(id=3, status="idle")

    assert routine.wait_since_min == 0
    assert routine.locked_to_thread is False
    assert routine.stack_trace == []
    assert routine.created_by is None
    assert routine.top_frame is None


def test_goroutine_traces_are_not_shared():
    """Test each Goroutine gets its own trace list."""
    first = Goroutine(id=1, status="idle")
    second = Goroutine(id=2, status="idle")
    first.stack_trace.append(make_frame())
    assert second.stack_trace == []


def test_full_stack_includes_created_by():
    """Test full_stack appends the created-by frame."""
    creator = make_frame("main.main", "/main.go")
    routine = Goroutine(id=1, status="select", stack_trace=[make_frame()], created_by=creator)

    assert routine.full_stack() == [make_frame(), creator]
    assert routine.top_frame == make_frame()
    # full_stack returns a copy
    routine.full_stack().clear()
    assert len(routine.stack_trace) == 1


class TestStackContains:
    """Tests for the stack search predicate."""

    def test_matches_file(self):
        frames = [make_frame(file="/usr/local/go/src/net/http/server.go")]
        assert stack_contains(frames, "server.go")

    def test_matches_function_case_insensitive(self):
        frames = [make_frame("net/http.(*Server).Serve")]
        assert stack_contains(frames, "SERVER).serve")

    def test_no_match(self):
        assert not stack_contains([make_frame()], "server.go")

    def test_empty_frames(self):
        assert not stack_contains([], "server.go")

    def test_matches_rendered_line_number(self):
        assert stack_contains([make_frame()], "b.go#10")


def test_summarize_statuses():
    """Test statuses are counted most common first."""
    routines = [
        Goroutine(id=1, status="running"),
        Goroutine(id=2, status="chan receive"),
        Goroutine(id=3, status="chan receive"),
    ]
    assert summarize_statuses(routines) == [("chan receive", 2), ("running", 1)]
    assert summarize_statuses([]) == []

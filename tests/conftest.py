"""Shared fixtures for gorotop tests."""

import pytest

SAMPLE_DUMP = """\
goroutine 1 [chan receive, 12 minutes]:
main.main()
	/home/dev/app/main.go:31 +0x9c

goroutine 18 [IO wait, locked to thread]:
internal/poll.runtime_pollWait(0x7f4c1c1e8eb8, 0x72)
	/usr/local/go/src/runtime/netpoll.go:343 +0x85
net/http.(*conn).serve(0xc0001b6000, {0x8f4b30, 0xc00007c0f0})
	/usr/local/go/src/net/http/server.go:2009 +0x5f4
created by net/http.(*Server).Serve in goroutine 1
	/usr/local/go/src/net/http/server.go:3086 +0x5cb

goroutine 7 [select, 3 minutes]:
main.worker(0xc000010000)
	/home/dev/app/worker.go:42 +0x5d
created by main.main in goroutine 1
	/home/dev/app/main.go:20

goroutine 9 [running]:
"""


@pytest.fixture
def sample_dump() -> str:
    """A small dump with a mix of statuses and qualifiers."""
    return SAMPLE_DUMP


@pytest.fixture
def dump_file(tmp_path, sample_dump):
    """The sample dump written to a temporary file."""
    path = tmp_path / "goroutines.txt"
    path.write_text(sample_dump, encoding="utf-8")
    return path

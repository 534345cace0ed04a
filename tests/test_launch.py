"""Launch, redirection and cleanup tests.

Test coverage:
- Redirection targets as seen from inside the child
- Channel ends: ownership, idempotent close, round trips
- Children that never exec hold no other invocation's ends
- Launch failure detection and reaping
- Exit status fidelity (codes and signals)
- Line mode, raw mode and pipelines
- Rollback when creating channels or forking fails
"""

from __future__ import annotations

import errno
import logging
import os
import select
import signal
import sys

import pytest

from forkrun import (
    DEVNULL, ERROR, INHERIT, INPUT, OUTPUT, PIPE,
    Channel, ConfigError, LaunchError, ResourceError, RunFailure,
    proc, run,
)
from forkrun.inspect import children, open_fds


def reap_new_children(before: set[int]) -> None:
    for pid in children() - before:
        os.waitpid(pid, 0)


# =============================================================================
# Redirection targets
# =============================================================================


class TestTargets:
    """What the child's descriptors point at."""

    def test_null_explicit_and_inherit(self, tmp_path):
        def report():
            links = [os.readlink(f"/proc/self/fd/{fd}") for fd in (0, 1, 2)]
            os.write(3, "\n".join(links).encode())

        target = tmp_path / "out"
        with open(target, "wb") as file:
            handle = run(report, {3: PIPE}, input=DEVNULL, output=file, error=INHERIT)
            links = handle.end(3).read().decode().split("\n")
            assert handle.complete().success

        assert links[0] == os.devnull
        assert links[1] == str(target)
        assert links[2] == os.readlink("/proc/self/fd/2")

    def test_source_on_a_planned_descriptor(self, tmp_path):
        def report():
            os.write(1, b"to file")
            os.write(50, b"to channel")

        target = tmp_path / "out"
        with open(target, "wb") as file:
            os.dup2(file.fileno(), 50)
            try:
                handle = run(report, {50: PIPE}, output=50)
                assert handle.end(50).read() == b"to channel"
                assert handle.complete().success
            finally:
                os.close(50)
        assert target.read_bytes() == b"to file"

    def test_none_option_is_the_null_device(self):
        def report():
            os.write(3, os.readlink("/proc/self/fd/2").encode())

        handle = run(report, {3: PIPE}, error=None)
        assert handle.end(3).read().decode() == os.devnull
        assert handle.complete().success

    def test_last_directive_wins(self):
        lines = []
        run("sh", "-c", "echo out; echo err >&2", {ERROR: DEVNULL}, {ERROR: PIPE},
            consumer=lambda err: lines.extend(err))
        assert lines == [b"err\n"]

    def test_extra_descriptor_is_duplex(self):
        def shout():
            data = os.read(3, 4)
            os.write(3, data.upper())

        handle = run(shout, {3: PIPE})
        end = handle.end(3)
        end.write(b"ping")
        assert end.read(4) == b"PING"
        assert handle.complete().success

    def test_argv0_override(self):
        lines = []
        run("sh", "-c", "echo $0", argv0_override="renamed", consumer=lines.append)
        assert lines == [b"renamed"]


# =============================================================================
# Channel ends
# =============================================================================


class TestChannels:
    """Parent ends are open, distinct and closed at most once."""

    def test_ends_open_and_distinct(self):
        handle = proc("cat", INPUT, OUTPUT, ERROR)
        ends = handle.ios()
        assert len(ends) == 3
        assert not any(end.closed for end in ends)
        assert len({end.fileno() for end in ends}) == 3

        handle.close(INPUT)
        handle.close(INPUT)
        handle.close("stdin")
        assert handle.input is None
        os.fstat(handle.output.fileno())
        os.fstat(handle.error.fileno())

        assert handle.complete().success
        handle.close()
        assert handle.ios() == ()

    def test_control_channel_is_not_exposed(self):
        before = open_fds()
        handle = proc("cat", INPUT, OUTPUT)
        assert len(open_fds()) - len(before) == 2
        assert list(handle) == [handle.input, handle.output, handle.pid]
        handle.complete()
        assert open_fds() == before

    def test_round_trip(self):
        data = bytes(range(256)) * 16
        handle = proc("cat", INPUT, OUTPUT)
        handle.input.write(data)
        handle.close(INPUT)
        assert handle.output.read() == data
        assert handle.complete().success

    def test_supplied_channel(self):
        channel = Channel(reading=1)
        received = []
        handle = proc("echo", "hi", output=channel, consumer=lambda out: received.append(out.read()))
        assert received == [b"hi\n"]
        assert channel.parent_end.closed and channel.child_end.closed
        assert handle.wait().success


# =============================================================================
# Children without exec
# =============================================================================


def wait_for_parent():
    os.read(3, 1)


class TestIsolation:
    """Callback and bare fork children hold no other invocation's ends."""

    def assert_sees_eof(self, cat):
        cat.close(INPUT)
        readable, _, _ = select.select([cat.output], [], [], 5)
        assert readable
        assert cat.output.read() == b""
        assert cat.complete().success

    def test_callback_child_lets_go_of_sibling_input(self):
        cat = proc("cat", INPUT, OUTPUT)
        blocked = run(wait_for_parent, {3: PIPE})
        self.assert_sees_eof(cat)
        assert blocked.complete().success

    def test_bare_fork_child_lets_go_of_sibling_input(self):
        cat = proc("cat", INPUT, OUTPUT)
        blocked = run({3: PIPE})
        if blocked is None:
            try:
                wait_for_parent()
            finally:
                os._exit(0)
        self.assert_sees_eof(cat)
        assert blocked.complete().success

    def test_callback_sees_only_planned_descriptors(self):
        def report():
            os.write(3, " ".join(map(str, sorted(open_fds()))).encode())

        sibling = proc("cat", INPUT, OUTPUT)
        handle = run(report, {3: PIPE})
        assert handle.end(3).read() == b"0 1 2 3"
        assert handle.complete().success
        assert sibling.complete().success

    def test_pipeline_source_survives_release(self):
        first = proc("printf", "abc", OUTPUT)

        def upper():
            with open(0, "rb", closefd=False) as stdin:
                os.write(1, stdin.read().upper())

        second = run(upper, OUTPUT, input=first)
        first.close()
        assert second.output.read() == b"ABC"
        assert first.wait().success
        assert second.complete().success


# =============================================================================
# Launch failure
# =============================================================================


class TestLaunchFailure:
    """A program that cannot start raises LaunchError after cleanup."""

    def test_missing_program(self):
        before = open_fds()
        with pytest.raises(LaunchError) as info:
            proc("/nonexistent/program", INPUT, OUTPUT, ERROR)
        error = info.value
        assert error.kind == "FileNotFoundError"
        assert error.errno == errno.ENOENT
        assert error.command == "/nonexistent/program"
        assert open_fds() == before
        with pytest.raises(ChildProcessError):
            os.waitpid(error.pid, os.WNOHANG)

    def test_not_executable(self, tmp_path):
        script = tmp_path / "script"
        script.write_text("#!/bin/sh\n")
        script.chmod(0o644)
        with pytest.raises(LaunchError) as info:
            run(str(script))
        assert info.value.errno == errno.EACCES

    def test_may_fail_does_not_hide_launch_errors(self):
        with pytest.raises(LaunchError):
            run("/nonexistent/program", may_fail=True)


# =============================================================================
# Exit status
# =============================================================================


class TestExitStatus:
    """Codes and signals come through as they are."""

    def test_exit_code(self):
        with pytest.raises(RunFailure) as info:
            run("sh", "-c", "exit 2")
        assert info.value.code == 2
        assert info.value.signal is None
        assert str(info.value) == '"sh -c exit 2" exited with status 2'

    def test_signal(self):
        with pytest.raises(RunFailure) as info:
            run("sh", "-c", "kill -9 $$")
        assert info.value.code is None
        assert info.value.signal == signal.SIGKILL
        assert "SIGKILL" in str(info.value)

    def test_may_fail_returns_status(self):
        status = run("sh", "-c", "exit 3", may_fail=True)
        assert not status.success
        assert status.code == 3

    def test_exec_child_gets_default_signal_handling(self):
        lines = []
        run("grep", "SigIgn", "/proc/self/status", consumer=lines.append)
        ignored = int(lines[0].split()[1], 16)
        for sig in signal.SIGPIPE, signal.SIGXFSZ:
            assert not ignored & (1 << (sig - 1))

    def test_callback_exit_with_bools(self):
        assert run(lambda: sys.exit(True)).wait().code == 1
        assert run(lambda: sys.exit(False)).wait().code == 0
        assert run(lambda: True).wait().code == 1

    def test_complete_is_idempotent(self, monkeypatch):
        calls = []
        waitpid = os.waitpid

        def counting_waitpid(pid, options):
            calls.append(pid)
            return waitpid(pid, options)

        monkeypatch.setattr(os, "waitpid", counting_waitpid)
        handle = proc("sh", "-c", "exit 4", OUTPUT)
        first = handle.complete()
        second = handle.complete()
        assert first is second
        assert first.code == 4
        assert calls == [handle.pid]

    def test_kill_after_reap_is_a_no_op(self):
        handle = proc("sleep", "10")
        handle.kill()
        assert handle.wait().signal == signal.SIGTERM
        handle.kill()
        handle.kill("kill")

    def test_callback_exit_codes(self):
        assert run(lambda: 3).wait().code == 3

        def broken():
            raise RuntimeError("boom")

        handle = run(broken, ERROR)
        assert b"RuntimeError: boom" in handle.error.read()
        assert handle.complete().code == 1


# =============================================================================
# Consumers and pipelines
# =============================================================================


class TestConsumers:
    """Line mode, raw mode and scoped cleanup."""

    def test_line_mode(self, tmp_path):
        for name in "abc":
            (tmp_path / name).touch()
        lines = []
        handle = proc("ls", str(tmp_path), consumer=lines.append)
        assert lines == [b"a", b"b", b"c"]
        assert handle.ios() == ()
        assert handle.wait().success

    def test_run_waits_after_consumer(self):
        lines = []
        status = run("printf", "1\\r\\n2", consumer=lines.append)
        assert lines == [b"1", b"2"]
        assert status.success

    def test_raw_mode_order(self):
        seen = []
        run("cat", OUTPUT, INPUT, consumer=lambda *ends: seen.extend(end.mode for end in ends))
        assert seen == ["wb", "rb"]

    def test_channels_closed_when_consumer_raises(self):
        before = children()
        ends = []

        def bad(*received):
            ends.extend(received)
            raise ZeroDivisionError

        with pytest.raises(ZeroDivisionError):
            run("true", OUTPUT, ERROR, consumer=bad)
        assert len(ends) == 2
        assert all(end.closed for end in ends)
        reap_new_children(before)

    def test_pipeline(self):
        first = proc("printf", "x\\ny\\n", OUTPUT)
        second = proc("tr", "a-z", "A-Z", OUTPUT, input=first)
        first.close()
        assert second.output.read() == b"X\nY\n"
        assert first.wait().success
        assert second.complete().success

    def test_bare_fork(self):
        handle = run(OUTPUT)
        if handle is None:
            os.write(1, b"child")
            os._exit(0)
        assert handle.output.read() == b"child"
        assert handle.complete().success


# =============================================================================
# Configuration and resources
# =============================================================================


class TestConfiguration:
    """Bad invocations are rejected before anything is created."""

    def test_unknown_option(self):
        with pytest.raises(ConfigError, match="stdout"):
            run("true", stdout=PIPE)

    def test_argv_and_callback(self):
        with pytest.raises(ConfigError):
            run("true", lambda: 0)

    def test_argv0_override_needs_argv(self):
        with pytest.raises(ConfigError):
            run(lambda: 0, argv0_override="x")

    def test_closed_explicit_handle(self):
        channel = Channel(reading=1)
        channel.close()
        with pytest.raises(ConfigError):
            run("true", input=channel.parent_end)


class TestResources:
    """Failing to create channels or the child leaks nothing."""

    def test_fork_failure(self, monkeypatch):
        def failing_fork():
            raise OSError(errno.EAGAIN, "Resource temporarily unavailable")

        before = open_fds()
        monkeypatch.setattr(os, "fork", failing_fork)
        with pytest.raises(ResourceError) as info:
            proc("cat", INPUT, OUTPUT, ERROR)
        assert info.value.errno == errno.EAGAIN
        assert open_fds() == before

    def test_channel_failure(self, monkeypatch):
        pipe = os.pipe
        calls = []

        def failing_pipe():
            calls.append(None)
            if len(calls) == 2:
                raise OSError(errno.EMFILE, "Too many open files")
            return pipe()

        before = open_fds()
        monkeypatch.setattr(os, "pipe", failing_pipe)
        with pytest.raises(ResourceError):
            proc("cat", INPUT, OUTPUT)
        assert open_fds() == before


class TestLogging:
    """Launches are logged at debug level."""

    def test_spawn_is_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="forkrun")
        run("true")
        messages = [record.getMessage() for record in caplog.records]
        assert any(m.startswith("spawned pid") for m in messages)
        assert any("exited with status 0" in m for m in messages)

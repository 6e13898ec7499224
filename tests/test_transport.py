"""
Tests for command transports — mock matching, serialization, local shell.
"""

import asyncio

import pytest

from serverdeck.adapters.transport.local import LocalTransport
from serverdeck.adapters.transport.mock import MockTransport
from serverdeck.adapters.transport.ssh import SSHTransport
from serverdeck.core.errors import SessionNotAvailable
from serverdeck.core.models.command import EXIT_TIMEOUT, EXIT_TRANSPORT_ERROR, CommandResult

# ── CommandResult ────────────────────────────────────────────────────


class TestCommandResult:
    def test_ok_and_text(self):
        result = CommandResult(command="echo hi", output="  hi\n", exit_code=0)
        assert result.ok
        assert result.text == "hi"

    def test_lines_skip_blank(self):
        result = CommandResult(command="x", output="a\n\n  b \n")
        assert result.lines == ["a", "b"]

    def test_timeout_result(self):
        result = CommandResult.timeout("sleep 10", 2)
        assert result.timed_out
        assert result.exit_code == EXIT_TIMEOUT
        assert not result.ok

    def test_contains_case_insensitive(self):
        result = CommandResult(command="x", output="Permission Denied")
        assert result.contains("permission denied")
        assert not result.contains("permission denied", case_sensitive=True)


# ── Mock transport ───────────────────────────────────────────────────


class TestMockTransport:
    @pytest.mark.asyncio
    async def test_default_is_empty_success(self):
        mock = MockTransport()
        result = await mock.execute("anything")
        assert result.ok
        assert result.output == ""
        assert mock.call_count == 1

    @pytest.mark.asyncio
    async def test_exact_match_wins(self):
        mock = MockTransport()
        mock.set_response("nginx -v", "substring")
        mock.set_response("nginx -v 2>&1", "exact")
        assert (await mock.execute("nginx -v 2>&1")).output == "exact"

    @pytest.mark.asyncio
    async def test_longest_substring_wins(self):
        mock = MockTransport()
        mock.set_response("nginx", "short")
        mock.set_response("nginx -t", "long")
        assert (await mock.execute("sudo -n nginx -t 2>&1")).output == "long"

    @pytest.mark.asyncio
    async def test_set_failure(self):
        mock = MockTransport()
        mock.set_failure("systemctl start", "Job failed")
        result = await mock.execute("sudo -n systemctl start nginx")
        assert not result.ok
        assert result.output == "Job failed"

    @pytest.mark.asyncio
    async def test_call_log_and_ran(self):
        mock = MockTransport()
        await mock.execute("first")
        await mock.execute("second command")
        assert mock.call_log == ["first", "second command"]
        assert mock.ran("second")
        assert mock.commands_matching("command") == ["second command"]

    @pytest.mark.asyncio
    async def test_closed_transport_raises(self):
        mock = MockTransport()
        await mock.close()
        assert mock.closed
        with pytest.raises(SessionNotAvailable):
            await mock.execute("echo hi")

    @pytest.mark.asyncio
    async def test_commands_are_serialized(self):
        class CountingTransport(MockTransport):
            in_flight = 0
            peak = 0

            async def _run(self, command, timeout):
                self.in_flight += 1
                self.peak = max(self.peak, self.in_flight)
                await asyncio.sleep(0.01)
                self.in_flight -= 1
                return await super()._run(command, timeout)

        transport = CountingTransport()
        await asyncio.gather(*(transport.execute(f"cmd {i}") for i in range(5)))
        assert transport.call_count == 5
        assert transport.peak == 1


# ── Local transport ──────────────────────────────────────────────────


class TestLocalTransport:
    @pytest.mark.asyncio
    async def test_echo(self):
        transport = LocalTransport()
        result = await transport.execute("echo hello")
        assert result.ok
        assert result.text == "hello"
        await transport.close()

    @pytest.mark.asyncio
    async def test_exit_code_and_stderr_merged(self):
        transport = LocalTransport()
        result = await transport.execute("echo oops >&2; exit 3")
        assert result.exit_code == 3
        assert "oops" in result.output
        await transport.close()

    @pytest.mark.asyncio
    async def test_timeout(self):
        transport = LocalTransport()
        result = await transport.execute("sleep 5", timeout=0.2)
        assert result.timed_out
        await transport.close()


# ── SSH transport ────────────────────────────────────────────────────


class _FakeCompleted:
    def __init__(self, stdout, exit_status):
        self.stdout = stdout
        self.exit_status = exit_status


class _FakeConnection:
    def __init__(self, stdout="", exit_status=0, error=None):
        self._completed = _FakeCompleted(stdout, exit_status)
        self._error = error
        self.commands = []
        self.closed = False

    async def run(self, command, check=False, timeout=None, stderr=None):
        self.commands.append(command)
        if self._error is not None:
            raise self._error
        return self._completed

    def close(self):
        self.closed = True

    async def wait_closed(self):
        return None


class TestSSHTransport:
    @pytest.mark.asyncio
    async def test_runs_through_connection(self):
        conn = _FakeConnection(stdout="active\n", exit_status=0)
        transport = SSHTransport(conn, host="web1")
        result = await transport.execute("systemctl is-active nginx")
        assert result.text == "active"
        assert conn.commands == ["systemctl is-active nginx"]
        assert transport.name == "ssh:web1"

    @pytest.mark.asyncio
    async def test_missing_exit_status_is_transport_error(self):
        transport = SSHTransport(_FakeConnection(stdout=b"x", exit_status=None))
        result = await transport.execute("true")
        assert result.exit_code == EXIT_TRANSPORT_ERROR
        assert result.output == "x"

    @pytest.mark.asyncio
    async def test_connection_error_becomes_result(self):
        transport = SSHTransport(_FakeConnection(error=OSError("connection reset")))
        result = await transport.execute("uptime")
        assert result.exit_code == EXIT_TRANSPORT_ERROR
        assert "connection reset" in result.output

    @pytest.mark.asyncio
    async def test_close_closes_connection(self):
        conn = _FakeConnection()
        transport = SSHTransport(conn)
        await transport.close()
        assert conn.closed

"""
Unit tests for ToolRunner against real (harmless) shell commands.
"""

import pytest

from burnin_kit.exceptions import MissingToolError
from burnin_kit.process_manager import ToolResult, ToolRunner


@pytest.fixture
def tool_runner():
    return ToolRunner(timeout=10)


class TestRun:

    def test_captures_exit_status_and_streams(self, tool_runner):
        result = tool_runner.run(['sh', '-c', 'echo out; echo err >&2; exit 3'])
        assert result.returncode == 3
        assert not result.ok
        assert result.stdout == 'out\n'
        assert result.stderr == 'err\n'
        assert result.output == 'out\nerr\n'

    def test_merge_stderr(self, tool_runner):
        result = tool_runner.run(['sh', '-c', 'echo err >&2'], merge_stderr=True)
        assert result.stdout == 'err\n'
        assert result.stderr == ''

    def test_missing_executable(self, tool_runner):
        with pytest.raises(MissingToolError):
            tool_runner.run(['burnin-no-such-tool'])

    def test_timeout_is_returned(self, tool_runner):
        result = tool_runner.run(['sleep', '5'], timeout=0.2)
        assert result.returncode == -1
        assert result.stderr == 'timeout'


class TestRequire:

    def test_present(self, tool_runner):
        tool_runner.require('sh')

    def test_missing(self, tool_runner):
        with pytest.raises(MissingToolError, match="burnin-no-such-tool"):
            tool_runner.require('sh', 'burnin-no-such-tool')


class TestStream:

    def test_lines_forwarded(self, tool_runner):
        lines = []
        status = tool_runner.stream(['sh', '-c', 'echo one; echo two >&2; exit 1'], on_line=lines.append)
        assert status == 1
        assert sorted(lines) == ['one', 'two']

    def test_missing_executable(self, tool_runner):
        with pytest.raises(MissingToolError):
            tool_runner.stream(['burnin-no-such-tool'])


def test_result_output_without_stderr():
    assert ToolResult(['x'], 0, 'a\n').output == 'a\n'

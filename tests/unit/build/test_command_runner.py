"""Unit tests for external command execution."""

import sys
from unittest.mock import MagicMock, Mock, patch

import psutil
import pytest

from vfio_user_sys.build.command_runner import (
    OUTPUT_TAIL_LINES,
    CommandError,
    kill_process_tree,
    run_command,
)


def make_process(lines, returncode=0, pid=4242):
    proc = MagicMock()
    proc.pid = pid
    proc.stdout = iter(lines)
    proc.wait.return_value = returncode
    return proc


class TestRunCommand:
    """Test cases for run_command."""

    def test_success_returns_output(self):
        proc = make_process(["The Meson build system\n", "Build targets in project: 4\n"])
        with patch("subprocess.Popen", return_value=proc) as mock_popen:
            result = run_command(["meson", "setup", "build"])

        assert result.returncode == 0
        assert result.output == "The Meson build system\nBuild targets in project: 4"
        assert mock_popen.call_args.args[0] == ["meson", "setup", "build"]

    def test_non_zero_exit_raises_with_output(self):
        proc = make_process(["ERROR: Dependency \"json-c\" not found\n"], returncode=1)
        with patch("subprocess.Popen", return_value=proc):
            with pytest.raises(CommandError) as exc_info:
                run_command(["meson", "setup", "build"])

        assert exc_info.value.returncode == 1
        assert "json-c" in exc_info.value.output
        assert "exit code 1" in str(exc_info.value)

    def test_output_tail_is_bounded(self):
        lines = [f"line {i}\n" for i in range(OUTPUT_TAIL_LINES + 40)]
        proc = make_process(lines, returncode=2)
        with patch("subprocess.Popen", return_value=proc):
            with pytest.raises(CommandError) as exc_info:
                run_command(["ninja"])

        output_lines = exc_info.value.output.splitlines()
        assert len(output_lines) == OUTPUT_TAIL_LINES
        assert output_lines[-1] == f"line {OUTPUT_TAIL_LINES + 39}"

    def test_missing_executable(self):
        with patch("subprocess.Popen", side_effect=FileNotFoundError("meson")):
            with pytest.raises(CommandError, match="Executable not found: meson"):
                run_command(["meson", "--version"])

    def test_keyboard_interrupt_kills_tree_and_reraises(self):
        def interrupted():
            yield "Compiling lib/libvfio-user.c\n"
            raise KeyboardInterrupt

        proc = make_process([], pid=1234)
        proc.stdout = interrupted()
        with (
            patch("subprocess.Popen", return_value=proc),
            patch("vfio_user_sys.build.command_runner.kill_process_tree") as mock_kill,
        ):
            with pytest.raises(KeyboardInterrupt):
                run_command(["meson", "compile", "-C", "build"])

        mock_kill.assert_called_once_with(1234)
        proc.wait.assert_called_once()

    def test_undecodable_output_still_reports_failure(self):
        script = "import sys; sys.stdout.buffer.write(b'warning: caf\\xe9\\n'); sys.exit(1)"
        with pytest.raises(CommandError) as exc_info:
            run_command([sys.executable, "-c", script])

        assert exc_info.value.returncode == 1
        assert "warning: caf\ufffd" in exc_info.value.output

    def test_read_error_reaps_child(self):
        def broken_pipe():
            yield "[1/12] Compiling C object\n"
            raise OSError("read failed")

        proc = make_process([], pid=777)
        proc.stdout = broken_pipe()
        with (
            patch("subprocess.Popen", return_value=proc),
            patch("vfio_user_sys.build.command_runner.kill_process_tree") as mock_kill,
        ):
            with pytest.raises(CommandError, match="Lost output of ninja: read failed"):
                run_command(["ninja", "-C", "build"])

        mock_kill.assert_called_once_with(777)
        proc.wait.assert_called_once()


class TestKillProcessTree:
    """Test cases for kill_process_tree."""

    def test_children_terminated_before_parent(self):
        order = []
        root = Mock(pid=1)
        child = Mock(pid=2)
        root.terminate.side_effect = lambda: order.append("root")
        child.terminate.side_effect = lambda: order.append("child")
        root.children.return_value = [child]

        with (
            patch("psutil.Process", return_value=root),
            patch("psutil.wait_procs", return_value=([root, child], [])),
        ):
            killed = kill_process_tree(1)

        assert killed == 2
        assert order == ["child", "root"]

    def test_survivors_are_killed(self):
        root = Mock(pid=1)
        root.children.return_value = []
        with (
            patch("psutil.Process", return_value=root),
            patch("psutil.wait_procs", return_value=([], [root])),
        ):
            kill_process_tree(1)

        root.kill.assert_called_once()

    def test_missing_process(self):
        with patch("psutil.Process", side_effect=psutil.NoSuchProcess(99)):
            assert kill_process_tree(99) == 0

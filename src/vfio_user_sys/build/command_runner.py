"""External command execution.

Runs meson (and friends) as child processes. Output is streamed to the log
rather than stdout, because stdout carries build directives. No timeout is
applied: a hung build hangs the run. On KeyboardInterrupt the whole child
process tree is torn down before the interrupt propagates. Output is decoded
as UTF-8 with undecodable bytes replaced, so a stray byte in a compiler
diagnostic can't hide the failure it describes.
"""

import logging
import subprocess
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import psutil

from ..errors import VfioUserSysError

# Number of trailing output lines kept for error messages
OUTPUT_TAIL_LINES = 60


class CommandError(VfioUserSysError):
    """Raised when an external command cannot be started or exits non-zero."""

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


@dataclass
class CommandResult:
    """Result of a completed external command."""

    cmd: List[str]
    returncode: int
    output: str


def kill_process_tree(pid: int) -> int:
    """Terminate a process and all of its descendants.

    Children are terminated before parents; anything still alive after a
    short grace period is killed.

    Args:
        pid: Root process id

    Returns:
        Number of processes signalled
    """
    try:
        root = psutil.Process(pid)
        # Deepest descendants first, root last
        processes = list(reversed(root.children(recursive=True))) + [root]
    except psutil.NoSuchProcess:
        return 0

    killed = 0
    for proc in processes:
        try:
            proc.terminate()
            killed += 1
        except psutil.NoSuchProcess:
            pass  # Already gone

    _gone, alive = psutil.wait_procs(processes, timeout=3)
    for proc in alive:
        try:
            proc.kill()
            logging.warning(f"Force killed stubborn process {proc.pid}")
        except psutil.NoSuchProcess:
            pass

    return killed


def run_command(
    cmd: List[str],
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
) -> CommandResult:
    """Run a command to completion, streaming its output to the log.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        env: Full environment for the child (None inherits ours)

    Returns:
        CommandResult on success

    Raises:
        CommandError: If the executable is missing or exits non-zero
    """
    logging.info(f"Running: {' '.join(cmd)}")

    try:
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as e:
        raise CommandError(f"Executable not found: {cmd[0]}") from e

    tail: deque = deque(maxlen=OUTPUT_TAIL_LINES)
    returncode = None
    try:
        assert proc.stdout is not None
        for line in proc.stdout:
            line = line.rstrip("\n")
            tail.append(line)
            logging.debug(line)
        returncode = proc.wait()
    except KeyboardInterrupt:
        logging.warning(f"Interrupted, stopping {cmd[0]} (pid {proc.pid})")
        raise
    except OSError as e:
        raise CommandError(f"Lost output of {cmd[0]}: {e}") from e
    finally:
        # Never leave the child running or unreaped
        if returncode is None:
            kill_process_tree(proc.pid)
            proc.wait()

    output = "\n".join(tail)
    if returncode != 0:
        raise CommandError(
            f"Command failed with exit code {returncode}: {' '.join(cmd)}\n{output}",
            returncode=returncode,
            output=output,
        )

    return CommandResult(cmd=cmd, returncode=returncode, output=output)

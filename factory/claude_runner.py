"""
Running the Claude CLI non-interactively against the working tree.

run_claude streams the CLI's output into the log and kills the whole process
group once the wall-clock limit passes. ClaudeImplementer adapts it to the
pipeline's Implementer protocol.
"""

import os
import signal
import subprocess
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from factory.config import DEFAULT_IMPLEMENT_TIMEOUT
from factory.errors import ClaudeRunnerError, ClaudeTimeoutError
from factory.interfaces import Item
from factory.logger import get_logger, log_message
from factory.prompts import build_implement_prompt

logger = get_logger(__name__)

ALLOWED_TOOLS = "Read,Glob,Grep,Edit,Write,Bash"

# Lines of output kept for error messages
OUTPUT_TAIL_LINES = 20


@dataclass
class ClaudeResult:
    output: str
    duration: float


def build_claude_command(prompt: str) -> list[str]:
    """Build the non-interactive Claude CLI command for a prompt."""
    return [
        "claude",
        "-p",
        prompt,
        "--allowedTools",
        ALLOWED_TOOLS,
        "--dangerously-skip-permissions",
    ]


def _signal_process_tree(process: subprocess.Popen[str]) -> None:
    """SIGKILL the process and everything it spawned without reaping it.

    Safe to call from a signal handler: it neither blocks nor takes a lock.
    """
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        process.kill()


def _kill_process_tree(process: subprocess.Popen[str]) -> None:
    """Kill the process and everything it spawned, then reap it."""
    if process.poll() is not None:
        return
    _signal_process_tree(process)
    process.wait()


def _relay_output(process: subprocess.Popen[str], lines: list[str]) -> None:
    assert process.stdout is not None
    for line in process.stdout:
        line = line.rstrip("\n")
        lines.append(line)
        if line.strip():
            logger.info(f"claude: {line}")


def run_claude(
    prompt: str,
    cwd: str | Path,
    timeout: int = DEFAULT_IMPLEMENT_TIMEOUT,
    process_registrar: Callable[[subprocess.Popen[str] | None], None] | None = None,
) -> ClaudeResult:
    """
    Run `claude -p prompt` in cwd and return its combined output.

    stdout and stderr are merged and logged line by line as they arrive. The
    child gets its own session so a timeout can kill any tools it spawned.
    process_registrar, when given, receives the Popen right after spawn and
    None once the child has exited, letting a shutdown kill it mid-run.

    Raises:
        ClaudeTimeoutError: timeout seconds passed; the child is already dead
        ClaudeRunnerError: claude could not be started or exited non-zero
    """
    log_message(logger, "Claude prompt", prompt)
    logger.debug(f"Working directory: {cwd}, timeout: {timeout}s")

    cmd = build_claude_command(prompt)
    start_time = time.monotonic()

    try:
        process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            cwd=str(cwd),
            text=True,
            bufsize=1,
            start_new_session=True,
        )
    except FileNotFoundError as e:
        raise ClaudeRunnerError(f"Failed to execute claude: {e}") from e
    except OSError as e:
        raise ClaudeRunnerError(f"Failed to start Claude CLI: {e}") from e

    if process_registrar:
        process_registrar(process)

    lines: list[str] = []
    reader = threading.Thread(
        target=_relay_output, args=(process, lines), name="claude-output", daemon=True
    )
    reader.start()

    try:
        return_code = process.wait(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        _kill_process_tree(process)
        logger.error(f"Claude execution timed out after {timeout} seconds")
        raise ClaudeTimeoutError(f"Claude execution exceeded timeout of {timeout} seconds") from e
    except BaseException:
        # interrupted, e.g. SystemExit from the daemon's shutdown handler
        _kill_process_tree(process)
        raise
    finally:
        reader.join(timeout=5)
        if process.stdout:
            process.stdout.close()
        if process_registrar:
            process_registrar(None)

    duration = time.monotonic() - start_time
    output = "\n".join(lines)

    if return_code != 0:
        tail = "\n".join(lines[-OUTPUT_TAIL_LINES:]).strip()
        logger.error(f"claude exited with code {return_code}")
        raise ClaudeRunnerError(f"Claude process failed with exit code {return_code}: {tail}")

    logger.info(f"Claude execution completed in {duration:.0f}s")
    return ClaudeResult(output=output, duration=duration)


class ClaudeImplementer:
    """Implementer that runs the Claude CLI on the item's prompt.

    Tracks the running process so a shutdown can kill it mid-run.
    terminate_active is called from a signal handler on the main thread,
    so nothing here may block or take a lock.
    """

    def __init__(self) -> None:
        self._active: subprocess.Popen[str] | None = None

    def _register(self, process: subprocess.Popen[str] | None) -> None:
        self._active = process

    @property
    def is_running(self) -> bool:
        process = self._active
        return process is not None and process.poll() is None

    def run(self, workspace_root: Path, item: Item, timeout: int) -> None:
        prompt = build_implement_prompt(item)
        run_claude(prompt, workspace_root, timeout=timeout, process_registrar=self._register)

    def terminate_active(self) -> bool:
        """SIGKILL the running Claude process group, if any.

        Does not wait for the process; run_claude reaps it when its own wait
        returns.

        Returns:
            True if a kill signal was sent
        """
        process = self._active
        if process is None or process.returncode is not None:
            return False
        logger.warning(f"Killing active Claude process (PID {process.pid})")
        _signal_process_tree(process)
        return True

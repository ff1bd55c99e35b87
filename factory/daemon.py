"""Single-instance daemon lifecycle.

The supervisor keeps at most one live daemon per config directory. Liveness is
decided by signalling the pid recorded in daemon.pid with the null signal, so
a pid file left behind by a crashed daemon counts as "not running".

Starting in LaunchMode.DETACH spawns `python -m factory start --foreground`
in a new session with its output appended to daemon.log and returns at once.
LaunchMode.FOREGROUND runs the poll loop in the current process until SIGTERM
or SIGINT arrives.
"""

import contextlib
import os
import signal
import subprocess
import sys
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TextIO

from factory.config import LEDGER_FILE, LOG_FILE, PID_FILE, Config
from factory.errors import AlreadyRunningError, ConfigError, NotRunningError
from factory.ledger import Ledger, LedgerRecord
from factory.logger import get_logger
from factory.pipeline import Pipeline
from factory.poller import Poller

logger = get_logger(__name__)

STOP_WAIT_SECONDS = 10.0
DEFAULT_LOG_LINES = 50


class LaunchMode(Enum):
    """How start() runs the daemon."""

    DETACH = "detach"
    FOREGROUND = "foreground"


@dataclass
class DaemonStatus:
    """Read-only snapshot of the daemon and its ledger."""

    running: bool
    pid: int | None = None
    stale_pid: int | None = None
    records: dict[str, LedgerRecord] = field(default_factory=dict)


def is_process_alive(pid: int) -> bool:
    """Check whether a process exists by sending it the null signal."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user
        return True
    return True


def read_pid(pid_path: Path) -> int | None:
    """Read the pid file; missing or garbled files read as None."""
    try:
        return int(pid_path.read_text().strip())
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable pid file {pid_path}: {e}")
        return None


def write_pid(pid_path: Path, pid: int) -> None:
    pid_path.parent.mkdir(parents=True, exist_ok=True)
    pid_path.write_text(f"{pid}\n")


def remove_pid(pid_path: Path) -> None:
    pid_path.unlink(missing_ok=True)


def tail_log(
    log_path: Path,
    lines: int = DEFAULT_LOG_LINES,
    follow: bool = True,
    out: TextIO | None = None,
    stop_event: threading.Event | None = None,
    poll_interval: float = 0.5,
) -> None:
    """Print the last lines of the log, then optionally follow it.

    Following ends when stop_event is set (or on KeyboardInterrupt, which
    propagates to the caller).
    """
    out = out or sys.stdout
    stop_event = stop_event or threading.Event()

    with open(log_path, errors="replace") as f:
        for line in deque(f, maxlen=lines):
            out.write(line)
        out.flush()

        while follow and not stop_event.is_set():
            line = f.readline()
            if line:
                out.write(line)
                out.flush()
            else:
                stop_event.wait(poll_interval)


class DaemonSupervisor:
    """Starts, stops and inspects the daemon for one config directory."""

    def __init__(
        self,
        config_dir: Path,
        config: Config | None = None,
        pipeline_factory: Callable[[Config], Pipeline] = Pipeline.from_config,
    ) -> None:
        """
        Args:
            config_dir: Directory holding daemon.pid, daemon.log and processed.json
            config: Full configuration, required only to run the poll loop
            pipeline_factory: Builds the pipeline the poll loop drives
        """
        self.config_dir = Path(config_dir)
        self.config = config
        self.pipeline_factory = pipeline_factory
        self.shutdown_event = threading.Event()
        self._pipeline: Pipeline | None = None
        self._poller: Poller | None = None

    @property
    def pid_path(self) -> Path:
        return self.config_dir / PID_FILE

    @property
    def log_path(self) -> Path:
        return self.config_dir / LOG_FILE

    @property
    def ledger_path(self) -> Path:
        return self.config_dir / LEDGER_FILE

    def running_pid(self) -> int | None:
        """Return the pid of the live daemon, or None."""
        pid = read_pid(self.pid_path)
        if pid is not None and is_process_alive(pid):
            return pid
        return None

    def _check_not_running(self) -> None:
        pid = read_pid(self.pid_path)
        if pid is None or pid == os.getpid():
            return
        if is_process_alive(pid):
            raise AlreadyRunningError(pid)
        logger.info(f"Removing stale pid file (PID {pid} is not running)")
        remove_pid(self.pid_path)

    def spawn_command(self) -> list[str]:
        """Command line the detached child runs."""
        return [sys.executable, "-m", "factory", "start", "--foreground"]

    def start(self, mode: LaunchMode = LaunchMode.DETACH) -> int:
        """Start the daemon.

        Returns:
            The daemon pid (after the loop has exited in FOREGROUND mode)

        Raises:
            AlreadyRunningError: If the pid file names a live process
        """
        self._check_not_running()
        if mode is LaunchMode.DETACH:
            return self._spawn_detached()
        self.run_foreground()
        return os.getpid()

    def _spawn_detached(self) -> int:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        env = {**os.environ, "FACTORY_HOME": str(self.config_dir)}
        cmd = self.spawn_command()
        logger.debug(f"Spawning daemon: {' '.join(cmd)}")

        with open(self.log_path, "a") as log_file:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
                env=env,
            )

        write_pid(self.pid_path, process.pid)
        logger.info(f"Daemon started (PID {process.pid}), logging to {self.log_path}")
        return process.pid

    def _signal_handler(self, signum: int, _frame: object) -> None:
        """Handle shutdown signals.

        Kills the in-flight Claude run, if any. A shutdown in the middle of a
        tick exits immediately, abandoning the item being processed; otherwise
        the wait between ticks is woken up.
        """
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name}, shutting down...")
        self.shutdown_event.set()

        if self._pipeline is not None:
            terminate = getattr(self._pipeline.implementer, "terminate_active", None)
            if terminate is not None:
                terminate()

        if self._poller is not None and self._poller.tick_in_progress:
            raise SystemExit(0)

    def run_foreground(self) -> None:
        """Run the poll loop in this process until a shutdown signal."""
        if self.config is None:
            raise ConfigError("configuration is required to run the daemon")

        write_pid(self.pid_path, os.getpid())
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        try:
            ledger = Ledger(self.ledger_path)
            ledger.load()
            self._pipeline = self.pipeline_factory(self.config)
            self._poller = Poller(
                self._pipeline.tracker, self._pipeline, ledger, self.shutdown_event
            )
            logger.info(
                f"Daemon running (PID {os.getpid()}), {len(ledger)} items already processed"
            )
            self._poller.run(self.config.poll_interval_seconds)
        finally:
            # Only remove the pid file if it is still ours
            if read_pid(self.pid_path) == os.getpid():
                remove_pid(self.pid_path)
            logger.info("Daemon stopped")

    def stop(self, wait: float = STOP_WAIT_SECONDS) -> int:
        """Stop the running daemon.

        Sends SIGTERM (or a forceful kill where SIGTERM cannot be delivered),
        waits up to `wait` seconds for the process to exit, kills it if it
        is still alive and removes the pid file.

        Returns:
            The pid that was signalled

        Raises:
            NotRunningError: If there is no pid file, or it names a dead
                process (the stale file is removed)
        """
        pid = read_pid(self.pid_path)
        if pid is None:
            raise NotRunningError("daemon is not running")
        if not is_process_alive(pid):
            remove_pid(self.pid_path)
            raise NotRunningError(f"daemon is not running (removed stale PID {pid})")

        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError as e:
            remove_pid(self.pid_path)
            raise NotRunningError(f"daemon is not running (PID {pid} exited)") from e
        except OSError as e:
            logger.warning(f"SIGTERM failed for PID {pid} ({e}), killing")
            os.kill(pid, getattr(signal, "SIGKILL", signal.SIGTERM))

        deadline = time.monotonic() + wait
        while time.monotonic() < deadline and is_process_alive(pid):
            time.sleep(0.1)
        if is_process_alive(pid):
            logger.warning(f"Daemon (PID {pid}) still running {wait:.0f}s after SIGTERM, killing")
            with contextlib.suppress(ProcessLookupError):
                os.kill(pid, getattr(signal, "SIGKILL", signal.SIGTERM))

        remove_pid(self.pid_path)
        logger.info(f"Daemon stopped (PID {pid})")
        return pid

    def status(self) -> DaemonStatus:
        """Liveness check plus ledger contents; changes nothing on disk."""
        pid = read_pid(self.pid_path)
        ledger = Ledger(self.ledger_path)
        ledger.load()

        if pid is not None and is_process_alive(pid):
            return DaemonStatus(running=True, pid=pid, records=ledger.records())
        return DaemonStatus(running=False, stale_pid=pid, records=ledger.records())

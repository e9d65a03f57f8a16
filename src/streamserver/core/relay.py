"""
=============================================================================
PROCESS RELAY
=============================================================================

Runs a shell command and copies its standard output into the client socket
as it is produced.

=============================================================================
DATA FLOW
=============================================================================

    ┌──────────────┐  stdout pipe   ┌──────────────┐   sendall()   ┌────────┐
    │  sh -c CMD   │ ─────────────► │ read ≤ 1764  │ ────────────► │ client │
    └──────────────┘                └──────────────┘               └────────┘
                                      one chunk in flight, no other buffering

The pipe is opened unbuffered (bufsize=0), so read(n) returns as soon as
ANY bytes are available, up to n. A command that prints one line a second
reaches the client one line a second, not in 1764 byte lumps.

=============================================================================
HOW A RELAY ENDS
=============================================================================

    ┌───────────────────────────┬────────────────────────┬────────────────┐
    │ What happened             │ How we notice          │ Outcome        │
    ├───────────────────────────┼────────────────────────┼────────────────┤
    │ Command closed its stdout │ read() returns b""     │ EXHAUSTED      │
    │ (normally: it exited)     │                        │                │
    ├───────────────────────────┼────────────────────────┼────────────────┤
    │ Client went away          │ sendall() raises       │ ABORTED        │
    │                           │ EPIPE / ECONNRESET     │ ("aborted")    │
    └───────────────────────────┴────────────────────────┴────────────────┘

An empty read is end-of-stream, never "no data yet": a blocking read on a
pipe waits until there is data or every writer has closed. So a command
that exits without output ends the relay immediately instead of spinning.

Either way the process is reaped. If it is still running (the client
left, or the command closed stdout but kept going) it gets SIGTERM, then
SIGKILL after kill_timeout. The command runs in its own session so the
signal reaches the whole pipeline, not just the shell. Background children
that outlive the shell get SIGTERM as well.

=============================================================================
"""

import os
import signal
import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..errors import SpawnError
from .connection import Connection


logger = logging.getLogger(__name__)


class RelayOutcome(Enum):
    """Why the relay stopped."""
    EXHAUSTED = "exhausted"  # Command's stdout reached end-of-stream
    ABORTED = "aborted"      # A write to the client failed


@dataclass
class RelayResult:
    """
    Summary of one relay, for logging and tests.

    Attributes:
        outcome: EXHAUSTED or ABORTED.
        bytes_sent: Body bytes successfully written to the client.
        chunks: Number of successful writes.
        returncode: Exit status of the command once reaped (negative if
                    it was killed by a signal).
    """

    outcome: RelayOutcome
    bytes_sent: int = 0
    chunks: int = 0
    returncode: Optional[int] = None

    @property
    def aborted(self) -> bool:
        return self.outcome is RelayOutcome.ABORTED


class ProcessRelay:
    """
    Owns one spawned command for the duration of one GET.

    Usage:
        with ProcessRelay("arecord -f cd -t raw", chunk_size=1764) as relay:
            result = relay.relay(conn)
        # process reaped here, on every exit path

    The relay never closes the connection; the caller owns it.
    """

    def __init__(self, command: str, chunk_size: int = 1764, kill_timeout: float = 2.0):
        self.command = command
        self.chunk_size = chunk_size
        self.kill_timeout = kill_timeout
        self._process: Optional[subprocess.Popen] = None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    def spawn(self) -> subprocess.Popen:
        """
        Start the command through the shell with stdout captured.

        stdin and stderr are inherited, as popen(cmd, "r") would leave them.

        Raises:
            SpawnError: If the shell could not be started.
        """
        try:
            self._process = subprocess.Popen(
                self.command,
                shell=True,
                stdout=subprocess.PIPE,
                bufsize=0,  # Unbuffered
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            raise SpawnError.from_os_error(e) from e

        logger.info(f"Spawned pid {self._process.pid}: {self.command}")
        return self._process

    def relay(self, conn: Connection) -> RelayResult:
        """
        Copy stdout into conn until end-of-stream or a failed write.

        Spawns the command first if spawn() was not called yet.

        Args:
            conn: The client connection. Headers must already be sent.

        Returns:
            RelayResult. The process is NOT reaped yet; close() does that.
        """
        if self._process is None:
            self.spawn()

        stdout = self._process.stdout
        result = RelayResult(outcome=RelayOutcome.EXHAUSTED)

        while True:
            chunk = stdout.read(self.chunk_size)
            if not chunk:
                logger.debug(f"[{conn.id}] Command output exhausted")
                self._wait_for_exit()
                break

            if not conn.send(chunk):
                result.outcome = RelayOutcome.ABORTED
                break

            result.bytes_sent += len(chunk)
            result.chunks += 1

        return result

    def close(self) -> Optional[int]:
        """
        Stop the command if still running, then reap it.

        Safe to call more than once, or before spawn().

        Returns:
            The command's exit status, or None if it was never started.
        """
        process = self._process
        if process is None:
            return None

        if process.poll() is None:
            self._signal(signal.SIGTERM)
            try:
                process.wait(timeout=self.kill_timeout)
            except subprocess.TimeoutExpired:
                logger.warning(f"pid {process.pid} did not terminate, killing")
                self._signal(signal.SIGKILL if os.name == "posix" else signal.SIGTERM)
                process.wait()
        elif os.name == "posix":
            # The shell is gone but background children may remain in its group
            self._signal(signal.SIGTERM)

        if process.stdout:
            process.stdout.close()

        logger.debug(f"pid {process.pid} reaped with status {process.returncode}")
        return process.returncode

    def _wait_for_exit(self):
        """
        Give a command that closed stdout a chance to exit on its own.

        Usually it already has. If it is still running after kill_timeout,
        close() will terminate it.
        """
        try:
            self._process.wait(timeout=self.kill_timeout)
        except subprocess.TimeoutExpired:
            logger.debug(f"pid {self._process.pid} still running after end of output")

    def _signal(self, signum: int):
        """Signal the command's whole process group (POSIX) or just the process."""
        process = self._process
        try:
            if os.name == "posix":
                os.killpg(process.pid, signum)
            else:
                process.send_signal(signum)
        except ProcessLookupError:
            pass  # Nothing left in the group

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - the process is always reaped."""
        self.close()
        return False

"""Cancellable external-process runner.

Every external tool (compiler, container runtime, image builder, platform
probe) goes through ``run_process``. The child's stdout and stderr are
merged into a single captured stream. When ``stdin_data`` is given, a
dedicated writer thread streams it into the child and closes the pipe,
so a child that starts writing output before it has consumed all of its
input cannot deadlock against a full pipe buffer.

The calling thread blocks on the child, waking every ``poll_interval``
seconds (or immediately on cancellation). On cancellation the child's
process group gets SIGTERM, then SIGKILL after ``kill_grace`` seconds.
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import IO

from beepack.core.cancellation import CancelToken
from beepack.core.errors import PipelineCancelledError, ProcessFailedError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_KILL_GRACE = 2.0
_JOIN_TIMEOUT = 5.0


def _feed_stdin(pipe: IO[bytes], data: bytes) -> None:
    """Write *data* to the child's stdin, then close it."""
    try:
        pipe.write(data)
        pipe.flush()
    except BrokenPipeError:
        # The child exited before reading everything; its exit status
        # decides the outcome.
        logger.debug("Child closed stdin after partial write")
    finally:
        try:
            pipe.close()
        except BrokenPipeError:
            pass


def _drain_output(pipe: IO[bytes], chunks: list[bytes]) -> None:
    """Read the child's merged output until EOF."""
    with pipe:
        for chunk in iter(lambda: pipe.read(8192), b""):
            chunks.append(chunk)


def _signal_group(proc: subprocess.Popen[bytes], sig: signal.Signals) -> None:
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        logger.debug("Process group %d already gone", proc.pid)


def _terminate(proc: subprocess.Popen[bytes], kill_grace: float) -> None:
    """SIGTERM the child's process group, then SIGKILL whatever is left.

    The child leads its own session, so helpers it spawned (the compiler
    under the build shell, a builder's workers) are signalled with it and
    cannot keep the output pipe open.
    """
    if proc.poll() is not None:
        return
    _signal_group(proc, signal.SIGTERM)
    try:
        proc.wait(timeout=kill_grace)
    except subprocess.TimeoutExpired:
        logger.debug("pid %d ignored SIGTERM, killing", proc.pid)
    _signal_group(proc, signal.SIGKILL)
    proc.wait()


def run_process(
    argv: Sequence[str],
    *,
    stdin_data: bytes | None = None,
    cwd: Path | None = None,
    cancel: CancelToken | None = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    kill_grace: float = DEFAULT_KILL_GRACE,
) -> str:
    """Run *argv* to completion and return its combined output.

    Raises
    ------
    OSError
        The executable could not be started.
    ProcessFailedError
        The process exited non-zero; ``output`` holds what it printed.
    PipelineCancelledError
        *cancel* fired before or while the process was running.
    """
    cancel = cancel or CancelToken()
    cancel.raise_if_cancelled()

    argv = [str(a) for a in argv]
    logger.debug("exec: %s", shlex.join(argv))

    proc = subprocess.Popen(
        argv,
        stdin=subprocess.PIPE if stdin_data is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        cwd=cwd,
        start_new_session=True,
    )

    chunks: list[bytes] = []
    assert proc.stdout is not None
    reader = threading.Thread(
        target=_drain_output, args=(proc.stdout, chunks), daemon=True
    )
    reader.start()

    writer: threading.Thread | None = None
    if stdin_data is not None:
        assert proc.stdin is not None
        writer = threading.Thread(
            target=_feed_stdin, args=(proc.stdin, stdin_data), daemon=True
        )
        writer.start()

    try:
        while proc.poll() is None:
            if cancel.wait(poll_interval):
                logger.info("Cancelling %s (pid %d)", argv[0], proc.pid)
                _terminate(proc, kill_grace)
                raise PipelineCancelledError(
                    f"Run cancelled while waiting on {argv[0]}: {cancel.reason}",
                    output=b"".join(chunks).decode("utf-8", errors="replace"),
                )
    finally:
        # Covers KeyboardInterrupt and any other unwinding path.
        _terminate(proc, kill_grace)
        if writer is not None:
            writer.join(_JOIN_TIMEOUT)
        reader.join(_JOIN_TIMEOUT)

    output = b"".join(chunks).decode("utf-8", errors="replace")
    if proc.returncode != 0:
        raise ProcessFailedError(argv, proc.returncode, output)
    return output

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completed:
    argv: Sequence[str] | str
    returncode: int | None
    output: str
    duration_s: float
    # Empty unless stderr was captured apart from output.
    stderr: str = ""

    @property
    def timed_out(self) -> bool:
        return self.returncode is None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def merged_env(extra: Mapping[str, str] | None) -> dict[str, str]:
    return {**os.environ, **(extra or {})}


def run_captured(
    argv: Sequence[str] | str,
    *,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    shell: bool = False,
    merge_stderr: bool = True,
) -> Completed:
    """Run argv with stdout and stderr combined.

    With merge_stderr=False, output holds stdout only and stderr is kept in
    Completed.stderr, for commands whose stdout is machine-readable.

    The child gets its own process group so that a timeout kills everything
    it spawned. A timed-out run has returncode None and carries whatever
    output was produced before the kill.
    """
    logger.debug("running %s (timeout=%s, cwd=%s)", argv, timeout, cwd)
    start = time.monotonic()
    with subprocess.Popen(
        argv,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
        text=True,
        errors="replace",
        env=merged_env(env),
        cwd=cwd,
        shell=shell,
        start_new_session=(os.name == "posix"),
    ) as proc:
        try:
            output, errors = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_tree(proc)
            output, errors = proc.communicate()
            duration = time.monotonic() - start
            logger.debug("%s timed out after %.1fs", argv, duration)
            return Completed(argv, None, output or "", duration, errors or "")

    return Completed(
        argv, proc.returncode, output or "", time.monotonic() - start, errors or ""
    )


def _kill_process_tree(proc: subprocess.Popen) -> None:
    if os.name != "posix":
        proc.kill()
        return

    try:
        os.killpg(os.getpgid(proc.pid), signal.SIGKILL)
    except ProcessLookupError:
        proc.kill()

from __future__ import annotations

import logging

from testforge.config import format_duration
from testforge.process import run_captured
from testforge.report import create_suite_with_failure, write_report
from testforge.report.xunit import tail

from .context import SuiteContext
from .types import Status, SuiteResult

logger = logging.getLogger(__name__)


def run_command(ctx: SuiteContext) -> SuiteResult:
    suite = ctx.suite
    completed = run_captured(
        suite.command, shell=True, timeout=suite.timeout, env=ctx.env, cwd=ctx.cwd
    )
    print(completed.output, end="")

    if completed.ok:
        return SuiteResult(Status.PASSED, timeout=suite.timeout)

    if completed.timed_out:
        status = Status.TIMED_OUT
        summary = f"command timed out after {format_duration(suite.timeout or 0)}"
    else:
        status = Status.FAILED
        summary = f"command exited with code {completed.returncode}"
    logger.debug("%s: %s", ctx.name, summary)

    failure = create_suite_with_failure(
        ctx.name, ctx.name, summary, tail(completed.output), completed.duration_s
    )
    write_report(ctx.report_path, [failure])
    return SuiteResult(status, timeout=suite.timeout)

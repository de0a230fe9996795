from __future__ import annotations

import logging

from testforge.process import run_captured
from testforge.report import suite_from_build_output, write_report

from .context import SuiteContext
from .gotest import select_packages
from .types import Status, SuiteResult

logger = logging.getLogger(__name__)


def run_go_build(ctx: SuiteContext) -> SuiteResult:
    """Build each top-level package pattern with a single `go build`.

    Patterns are not expanded into packages first; failing builds are split
    into one case per broken package and a report is only written when
    something failed.
    """
    suite = ctx.suite
    suites = []
    for pattern in select_packages(ctx):
        argv = [ctx.settings.go, "build", *suite.args, pattern]
        completed = run_captured(argv, timeout=suite.timeout, env=ctx.env, cwd=ctx.cwd)
        if ctx.options.verbose:
            print(completed.output, end="")
        if completed.ok:
            print(f"ok   {pattern}")
            continue

        print(f"fail {pattern}")
        logger.debug("%s failed:\n%s", argv, completed.output)
        suites.append(suite_from_build_output(pattern, completed.output))

    if suites:
        write_report(ctx.report_path, suites)
        return SuiteResult(Status.FAILED, timeout=suite.timeout)
    return SuiteResult(Status.PASSED, timeout=suite.timeout)

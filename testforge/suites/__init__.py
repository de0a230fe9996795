from typing import Callable

from .command import run_command
from .context import (
    RunOptions,
    SuiteContext,
    prepared_workspace,
    resolve_output_dir,
    status_path,
)
from .gobuild import run_go_build
from .gocover import run_go_cover
from .gotest import run_go_test
from .types import InternalTestError, Status, SuiteResult

KINDS: dict[str, Callable[[SuiteContext], SuiteResult]] = {
    "go-test": run_go_test,
    "go-build": run_go_build,
    "go-cover": run_go_cover,
    "command": run_command,
}


def run_suite(ctx: SuiteContext) -> SuiteResult:
    return KINDS[ctx.suite.kind](ctx)


__all__ = [
    "KINDS",
    "RunOptions",
    "SuiteContext",
    "SuiteResult",
    "Status",
    "InternalTestError",
    "prepared_workspace",
    "resolve_output_dir",
    "status_path",
    "run_suite",
]

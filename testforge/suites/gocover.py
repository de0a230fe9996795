from __future__ import annotations

import logging
import os
from pathlib import Path

from testforge.dispatch import Dispatcher, Task, TaskStatus
from testforge.goutil import GoToolError, go_test_command, list_packages
from testforge.report import (
    CoverageError,
    cobertura_path,
    create_suite_with_failure,
    merge_profiles,
    parse_profile,
    write_cobertura,
    write_report,
)

from .context import SuiteContext
from .gotest import build_test_deps, collect, select_packages
from .types import InternalTestError, Status, SuiteResult

logger = logging.getLogger(__name__)

DEFAULT_COVER_TIMEOUT = 5 * 60.0


def profile_path(ctx: SuiteContext, pkg: str) -> Path:
    return ctx.workdir / "coverage" / f"{pkg.replace('/', '_')}.out"


def run_go_cover(ctx: SuiteContext) -> SuiteResult:
    suite = ctx.suite
    go = ctx.settings.go
    timeout = suite.timeout or DEFAULT_COVER_TIMEOUT

    pkgs = select_packages(ctx)
    if not pkgs:
        print("no packages to test")
        return SuiteResult(Status.PASSED, timeout=timeout)

    if suite.prebuild:
        try:
            build_test_deps(ctx, pkgs)
        except GoToolError as exc:
            failure = create_suite_with_failure(
                "BuildTestDependencies", "TestCoverage", "dependencies build failure", str(exc), 0.0
            )
            write_report(ctx.report_path, [failure])
            return SuiteResult(Status.FAILED, timeout=timeout)

    print("listing test packages ... ", end="", flush=True)
    try:
        pkg_list = [p.import_path for p in list_packages(go, pkgs, env=ctx.env, cwd=ctx.cwd)]
    except (GoToolError, OSError) as exc:
        print(f"failed\n{exc}")
        failure = create_suite_with_failure(
            "ListPackages", "TestCoverage", "listing package failure", str(exc), 0.0
        )
        write_report(ctx.report_path, [failure])
        return SuiteResult(Status.FAILED, timeout=timeout)
    print("ok")

    (ctx.workdir / "coverage").mkdir(exist_ok=True)

    def build(task: Task) -> list[str]:
        extra = ["-cover", "-coverprofile", str(profile_path(ctx, task.package))]
        return go_test_command(go, task, timeout=timeout, args=suite.args, extra=extra)

    dispatcher = Dispatcher(
        build,
        timeout=timeout,
        num_workers=ctx.num_workers,
        grace=ctx.settings.timeout_grace,
        env=ctx.env,
        cwd=ctx.cwd,
        stagger=ctx.settings.stagger,
    )
    results = dispatcher.dispatch(pkg_list, {}, ctx.exclusions)

    profiles = []
    for r in results:
        path = profile_path(ctx, r.package)
        if r.status == TaskStatus.TEST_PASSED and path.is_file():
            profiles.append(path.read_text(encoding="utf-8"))

    outcome, suites = collect(ctx, results, timeout, case_name="TestCoverage")
    write_report(ctx.report_path, suites)

    try:
        coverage = parse_profile(merge_profiles(profiles))
    except CoverageError as exc:
        raise InternalTestError("Coverage", str(exc)) from exc
    write_cobertura(
        cobertura_path(ctx.output_dir, ctx.name), coverage, [ctx.cwd or os.getcwd()]
    )
    return outcome

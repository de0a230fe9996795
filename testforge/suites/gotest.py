from __future__ import annotations

import logging

from testforge.config import format_duration
from testforge.dispatch import EXCLUDED_OUTPUT, Dispatcher, Task, TaskResult, TaskStatus
from testforge.goutil import (
    GoToolError,
    expander,
    go_command,
    go_test_command,
    identify_part,
    list_packages,
    name_suffix,
    packages_and_tests,
    validate_requested,
)
from testforge.report import (
    TestSuite,
    build_output,
    create_suite_with_failure,
    skipped_tests,
    suites_from_test_output,
    write_report,
)
from testforge.report.xunit import tail

from .context import SuiteContext
from .types import InternalTestError, Status, SuiteResult

logger = logging.getLogger(__name__)

DEFAULT_TEST_TIMEOUT = 20 * 60.0


def select_packages(ctx: SuiteContext) -> list[str]:
    """Apply the --pkgs and --part selections to the suite's packages."""
    suite = ctx.suite
    expand = expander(ctx.settings.go, env=ctx.env, cwd=ctx.cwd)
    try:
        pkgs = validate_requested(ctx.options.pkgs, suite.packages, expand)
        return identify_part(pkgs, suite.parts, ctx.options.part, expand)
    except ValueError as exc:
        raise InternalTestError("SelectPackages", str(exc)) from exc
    except GoToolError as exc:
        raise InternalTestError("SelectPackages", str(exc), exc.output) from exc


def build_test_deps(ctx: SuiteContext, pkgs: list[str]) -> None:
    """Compile the test binaries of pkgs without running any test."""
    print("building test dependencies ... ", end="", flush=True)
    try:
        go_command(ctx.settings.go, ["test", "-run", "^$", *pkgs], env=ctx.env, cwd=ctx.cwd)
    except GoToolError as exc:
        print(f"failed\n{exc.output}")
        raise
    print("ok")


def _label(ctx: SuiteContext, suffix: str) -> str:
    return f"{ctx.name} {suffix}" if suffix else ctx.name


def _report_package(ctx: SuiteContext, result: TaskResult, suites: list[TestSuite], timeout: float) -> None:
    pkg = result.package
    if any(s.failures for s in suites):
        if result.status == TaskStatus.TIMED_OUT:
            print(f"fail {pkg} [TIMED OUT after {format_duration(timeout)}]")
        else:
            print(f"fail {pkg}")
        if ctx.options.verbose:
            print(result.output)
    else:
        print(f"ok   {pkg}")


def collect(
    ctx: SuiteContext,
    results: list[TaskResult],
    timeout: float,
    suffix: str = "",
    case_name: str = "Test",
) -> tuple[SuiteResult, list[TestSuite]]:
    outcome = SuiteResult(Status.PASSED, timeout=timeout)
    suites: list[TestSuite] = []

    for result in results:
        pkg = result.package
        match result.status:
            case TaskStatus.BUILD_FAILED:
                found = [
                    create_suite_with_failure(
                        pkg,
                        case_name,
                        "build failure",
                        build_output(result.output),
                        result.duration_s,
                    )
                ]
            case TaskStatus.TIMED_OUT:
                found = [
                    create_suite_with_failure(
                        pkg,
                        case_name,
                        f"test timed out after {format_duration(timeout)}",
                        tail(result.output),
                        result.duration_s,
                    )
                ]
            case _:
                if result.status == TaskStatus.TEST_PASSED and result.output == EXCLUDED_OUTPUT:
                    found = []
                else:
                    found = suites_from_test_output(
                        result.output,
                        pkg,
                        result.duration_s,
                        failed=result.status == TaskStatus.TEST_FAILED,
                    )
                skipped = skipped_tests(found)
                if skipped:
                    outcome.skipped_tests[pkg] = skipped

        if result.status != TaskStatus.TEST_PASSED:
            outcome.status = Status.FAILED
        if result.excluded_tests:
            outcome.excluded_tests[pkg] = list(result.excluded_tests)

        if found:
            _report_package(ctx, result, found, timeout)
        if pkg in outcome.skipped_tests:
            print(f"ok   {pkg} (skipped tests: {outcome.skipped_tests[pkg]})")
        if pkg in outcome.excluded_tests:
            print(f"ok   {pkg} (excluded tests: {outcome.excluded_tests[pkg]})")

        for s in found:
            if s.failures:
                outcome.status = Status.FAILED
            if suffix:
                for case in s.cases:
                    case.name = f"{case.name} {suffix}"
            suites.append(s)

    return outcome, suites


def go_test(ctx: SuiteContext) -> tuple[SuiteResult, list[TestSuite]]:
    suite = ctx.suite
    go = ctx.settings.go
    timeout = suite.timeout or DEFAULT_TEST_TIMEOUT
    suffix = name_suffix(suite.suffix, ctx.options.host)
    label = _label(ctx, suffix)

    pkgs = select_packages(ctx)
    if not pkgs:
        print("no packages to test")
        return SuiteResult(Status.PASSED, timeout=timeout), []

    if suite.prebuild:
        try:
            build_test_deps(ctx, pkgs)
        except GoToolError as exc:
            failure = create_suite_with_failure(
                "BuildTestDependencies", label, "dependencies build failure", str(exc), 0.0
            )
            return SuiteResult(Status.FAILED, timeout=timeout), [failure]

    try:
        packages = list_packages(go, pkgs, env=ctx.env, cwd=ctx.cwd)
        pkg_list, tests = packages_and_tests(packages, suite.test_pattern)
    except (GoToolError, OSError) as exc:
        failure = create_suite_with_failure(
            "ListPackagesAndFuncs", label, "package parsing failure", str(exc), 0.0
        )
        return SuiteResult(Status.FAILED, timeout=timeout), [failure]

    def build(task: Task) -> list[str]:
        return go_test_command(
            go, task, timeout=timeout, args=suite.args, non_test_args=suite.non_test_args
        )

    dispatcher = Dispatcher(
        build,
        timeout=timeout,
        num_workers=ctx.num_workers,
        grace=ctx.settings.timeout_grace,
        env=ctx.env,
        cwd=ctx.cwd,
        stagger=ctx.settings.stagger,
    )
    print(f"running tests using {dispatcher.num_workers} workers...")
    results = dispatcher.dispatch(pkg_list, tests, ctx.exclusions)
    return collect(ctx, results, timeout, suffix)


def run_go_test(ctx: SuiteContext) -> SuiteResult:
    result, suites = go_test(ctx)
    write_report(ctx.report_path, suites)
    return result

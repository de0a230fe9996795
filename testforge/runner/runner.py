from __future__ import annotations

import json
import logging
import subprocess

from testforge.config import ProjectConfig
from testforge.dispatch import resolve
from testforge.goutil import GoToolError
from testforge.graph import SuiteGraph
from testforge.report import report_for_error, report_path
from testforge.suites import (
    InternalTestError,
    RunOptions,
    Status,
    SuiteResult,
    prepared_workspace,
    resolve_output_dir,
    run_suite,
    status_path,
)

from .types import RunResult

logger = logging.getLogger(__name__)

_BLOCKING = (Status.SKIPPED, Status.FAILED, Status.TIMED_OUT)


class Runner:
    def __init__(self, project: ProjectConfig, options: RunOptions | None = None):
        self.project = project
        self.options = options or RunOptions()
        self.graph = SuiteGraph.from_project(project)

    def _run(self, order: list[str], *, fail_fast: bool) -> RunResult:
        results: dict[str, SuiteResult] = {name: SuiteResult() for name in order}
        failed_list: list[str] = []
        skipped_list: list[str] = []
        stopped_early = False

        for name in order:
            suite = self.project.get_suite(name)
            blocked = any(
                dep in results and results[dep].status in _BLOCKING for dep in suite.deps
            )
            if stopped_early or blocked:
                results[name] = SuiteResult(Status.SKIPPED)
                skipped_list.append(name)
                continue

            print(f'##### Running test "{name}" #####', flush=True)
            result = self.run_suite(name)
            results[name] = result
            print(f"##### {result.status} #####", flush=True)

            if not result.passed:
                failed_list.append(name)
                if fail_fast:
                    stopped_early = True

        return RunResult(order, results, failed_list, skipped_list)

    def run_tests(self, names: list[str], *, fail_fast: bool = False) -> RunResult:
        order = self.graph.order_for(names)
        return self._run(order, fail_fast=fail_fast)

    def run_project_tests(self, projects: list[str], *, fail_fast: bool = False) -> RunResult:
        names = self.project.project_tests(projects)
        return self.run_tests(names, fail_fast=fail_fast)

    def list_tests(self) -> list[str]:
        return self.project.suite_names()

    def run_suite(self, name: str) -> SuiteResult:
        """Run one suite, turning errors that escape it into a FAILED result."""
        suite = self.project.get_suite(name)
        settings = self.project.settings
        exclusions = resolve(self.project.suite_exclusions(name), self.options.host)

        try:
            with prepared_workspace(suite, settings, self.options, exclusions) as ctx:
                result = run_suite(ctx)
        except InternalTestError as exc:
            result = self._error_result(name, exc.name, exc.message, exc.output)
        except GoToolError as exc:
            result = self._error_result(name, "Internal Error", str(exc), exc.output)
        except subprocess.TimeoutExpired as exc:
            result = self._error_result(name, "Timeout", str(exc), _text(exc.output))
            result.status = Status.TIMED_OUT
        except subprocess.CalledProcessError as exc:
            result = self._error_result(name, "Internal Error", str(exc), _text(exc.output))
        except OSError as exc:
            result = self._error_result(name, "Internal Error", str(exc), "")

        self._write_status(name, result)
        return result

    def _error_result(self, name: str, error_type: str, message: str, output: str) -> SuiteResult:
        logger.error("%s: %s: %s", name, error_type, message)
        output_dir = resolve_output_dir(self.project.settings, self.options)
        try:
            report_for_error(report_path(output_dir, name), name, error_type, message, output)
        except OSError as exc:
            logger.error("%s: writing error report failed: %s", name, exc)
        return SuiteResult(Status.FAILED)

    def _write_status(self, name: str, result: SuiteResult) -> None:
        output_dir = resolve_output_dir(self.project.settings, self.options)
        path = status_path(output_dir, name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(result.to_dict(), indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            logger.error("%s: writing status failed: %s", name, exc)


def _text(output: str | bytes | None) -> str:
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output or ""

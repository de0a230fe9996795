"""Turn `go test` output into xUnit suites.

`go test -json` events are used when present. Plain `go test -v` text is
handled as a fallback for tools that wrap the go command and drop -json.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

from .xunit import Failure, TestCase, TestSuite

_RUN_RE = re.compile(r"^=== RUN\s+(\S+)")
_END_RE = re.compile(r"^\s*--- (PASS|FAIL|SKIP): (\S+) \(([\d.]+)\s*(?:s|seconds)\)")
_PKG_RE = re.compile(r"^(ok|FAIL|\?)\s+(\S+)(?:\s+(.*))?$")
_ELAPSED_RE = re.compile(r"([\d.]+)s")


@dataclass
class _PackageRun:
    name: str
    order: list[str] = field(default_factory=list)
    outcome: dict[str, str] = field(default_factory=dict)
    elapsed: dict[str, float] = field(default_factory=dict)
    output: dict[str, list[str]] = field(default_factory=dict)
    pkg_output: list[str] = field(default_factory=list)
    pkg_outcome: str = ""
    pkg_elapsed: float = 0.0
    build_failed: bool = False

    def start(self, test: str) -> None:
        if test not in self.output:
            self.order.append(test)
            self.output[test] = []

    def to_suite(self, failed_hint: bool, extra_output: list[str]) -> TestSuite | None:
        failed = failed_hint or self.build_failed or self.pkg_outcome == "fail"
        # A package without tests reports "skip" ("?  pkg [no test files]").
        if not self.order and not failed and self.pkg_outcome == "skip":
            return None

        pkg_text = "".join(self.pkg_output) + "".join(extra_output)
        suite = TestSuite(name=self.name, time=self.pkg_elapsed)
        for test in self.order:
            case = TestCase(classname=self.name, name=test, time=self.elapsed.get(test, 0.0))
            outcome = self.outcome.get(test)
            data = "".join(self.output[test])
            if outcome == "fail":
                case.failures.append(Failure("test failed", data))
            elif outcome == "skip":
                case.skipped = True
            elif outcome is None:
                case.failures.append(Failure("test did not complete", data))
            suite.cases.append(case)

        if failed and suite.failures == 0:
            message = "build failure" if self.build_failed else "package failed"
            suite.cases.append(
                TestCase(
                    classname=self.name,
                    name="Test",
                    time=self.pkg_elapsed,
                    failures=[Failure(message, pkg_text)],
                )
            )
        return suite


def _import_path(event: dict) -> str:
    # Build events name the test binary: "example.com/a [example.com/a.test]".
    return (event.get("ImportPath") or "").split(" [", 1)[0]


def _split_events(output: str) -> tuple[list[dict], list[str]]:
    events = []
    other = []
    for line in output.splitlines(keepends=True):
        stripped = line.strip()
        if stripped.startswith("{"):
            try:
                event = json.loads(stripped)
            except ValueError:
                event = None
            if isinstance(event, dict) and "Action" in event:
                events.append(event)
                continue
        other.append(line if line.endswith("\n") else line + "\n")
    return events, other


def _from_events(events: list[dict], pkg: str) -> list[_PackageRun]:
    runs: dict[str, _PackageRun] = {}
    for event in events:
        name = event.get("Package") or _import_path(event) or pkg
        run = runs.setdefault(name, _PackageRun(name))
        action = event["Action"]
        test = event.get("Test")

        if action == "output":
            if test:
                run.start(test)
                run.output[test].append(event.get("Output", ""))
            else:
                run.pkg_output.append(event.get("Output", ""))
        elif action == "build-output":
            run.pkg_output.append(event.get("Output", ""))
        elif action == "build-fail":
            run.build_failed = True
        elif action == "run" and test:
            run.start(test)
        elif action in ("pass", "fail", "skip"):
            elapsed = float(event.get("Elapsed", 0.0) or 0.0)
            if test:
                run.start(test)
                run.outcome[test] = action
                run.elapsed[test] = elapsed
            else:
                run.pkg_outcome = action
                run.pkg_elapsed = elapsed
                if event.get("FailedBuild"):
                    run.build_failed = True
    return list(runs.values())


def _from_text(lines: list[str], pkg: str) -> list[_PackageRun]:
    run = _PackageRun(pkg)
    current: str | None = None
    for line in lines:
        if m := _RUN_RE.match(line):
            current = m.group(1)
            run.start(current)
            continue
        if m := _END_RE.match(line):
            outcome, current = m.group(1).lower(), m.group(2)
            run.start(current)
            run.outcome[current] = outcome
            run.elapsed[current] = float(m.group(3))
            continue
        if m := _PKG_RE.match(line.rstrip("\n")):
            status, run.name = m.group(1), m.group(2)
            run.pkg_outcome = {"ok": "pass", "FAIL": "fail", "?": "skip"}[status]
            elapsed = _ELAPSED_RE.match(m.group(3) or "")
            if elapsed:
                run.pkg_elapsed = float(elapsed.group(1))
            current = None
            run.pkg_output.append(line)
            continue
        if line.rstrip("\n") in ("PASS", "FAIL"):
            current = None
            run.pkg_output.append(line)
            continue
        if current is not None:
            run.output[current].append(line)
        else:
            run.pkg_output.append(line)

    return [run]


def suites_from_test_output(
    output: str, pkg: str, duration: float = 0.0, *, failed: bool = False
) -> list[TestSuite]:
    """Build one suite per package found in output.

    failed tells whether the run of pkg exited unsuccessfully; a failed run
    without any failing test case gets a synthetic "Test" case carrying the
    package output.
    """
    events, other = _split_events(output)
    if events:
        runs = _from_events(events, pkg)
        extra = other
    else:
        runs = _from_text(other, pkg)
        extra = []

    suites = []
    for run in runs:
        hint = failed and run.name == pkg
        suite = run.to_suite(hint, extra if run.name == pkg else [])
        if suite is None:
            continue
        if not suite.time:
            suite.time = duration
        suites.append(suite)

    if failed and not any(s.name == pkg and s.failures for s in suites):
        suites.append(
            TestSuite(
                name=pkg,
                time=duration,
                cases=[
                    TestCase(
                        classname=pkg,
                        name="Test",
                        time=duration,
                        failures=[Failure("package failed", output)],
                    )
                ],
            )
        )
    return suites


def skipped_tests(suites: list[TestSuite]) -> list[str]:
    return [c.name for s in suites for c in s.cases if c.skipped]


def suite_from_build_output(pkg: str, output: str) -> TestSuite:
    """Split `go build` output into one "Build" case per failing package.

    Each "# <pkg>" header opens a section; repeated packages and sections that
    are only a linker warning are dropped.
    """
    suite = TestSuite(name=pkg)
    seen: set[str] = set()
    current = ""
    lines: list[str] = []

    def flush() -> None:
        if not current and not lines:
            return
        if len(lines) == 1 and lines[0].startswith("link: warning"):
            return
        if current in seen:
            return
        seen.add(current)
        suite.cases.append(
            TestCase(
                classname=current or pkg,
                name="Build",
                failures=[Failure("build failure", "\n".join(lines))],
            )
        )

    for line in output.splitlines():
        if line.startswith("# "):
            flush()
            current = line[2:]
            lines = []
        else:
            lines.append(line)
    flush()

    return suite


def build_output(output: str) -> str:
    """Return the compiler output of a failed `go test` build.

    With -json, newer go versions report build errors as "build-output"
    events; plain lines are what older versions print on stderr.
    """
    events, other = _split_events(output)
    if not events:
        return output
    text = [e.get("Output", "") for e in events if e["Action"] == "build-output"]
    return "".join(other) + "".join(text)


def json_build_failed(output: str) -> bool:
    """Tell whether `go test -json` output reports a failed build."""
    events, _ = _split_events(output)
    return any(e["Action"] == "build-fail" or e.get("FailedBuild") for e in events)

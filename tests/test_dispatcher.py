# tests/test_dispatcher.py
from __future__ import annotations

import sys
from pathlib import Path

from testforge.dispatch import EXCLUDED_OUTPUT, Dispatcher, Exclusion, Task, TaskStatus


def _py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def _builder(scripts: dict[str, str], seen: list[Task] | None = None):
    def build(task: Task) -> list[str]:
        if seen is not None:
            seen.append(task)
        return _py(scripts[task.package])

    return build


def test_every_package_gets_exactly_one_result() -> None:
    scripts = {f"pkg/{i}": "raise SystemExit(0)" for i in range(6)}
    d = Dispatcher(_builder(scripts), timeout=30.0, num_workers=3)

    results = d.dispatch(list(scripts), {})

    assert sorted(r.package for r in results) == sorted(scripts)
    assert all(r.status == TaskStatus.TEST_PASSED for r in results)


def test_fully_excluded_package_does_not_run(tmp_path: Path) -> None:
    marker = tmp_path / "ran"
    scripts = {"pkg/skip": f"open(r'{marker}', 'w').write('x')"}
    d = Dispatcher(_builder(scripts), timeout=30.0)

    results = d.dispatch(
        ["pkg/skip"],
        {"pkg/skip": ["TestA", "TestB"]},
        [Exclusion.new("pkg/skip", ".*", True)],
    )

    assert len(results) == 1
    assert results[0].status == TaskStatus.TEST_PASSED
    assert results[0].output == EXCLUDED_OUTPUT
    assert results[0].excluded_tests == ("TestA", "TestB")
    assert not marker.exists()


def test_partially_excluded_package_runs_remaining_tests() -> None:
    seen: list[Task] = []
    d = Dispatcher(_builder({"pkg/a": "raise SystemExit(0)"}, seen), timeout=30.0)

    results = d.dispatch(
        ["pkg/a"],
        {"pkg/a": ["TestA", "TestB"]},
        [Exclusion.new("pkg/a", "^TestB$", True)],
    )

    assert seen == [Task("pkg/a", ("TestA",), ("TestB",))]
    assert results[0].excluded_tests == ("TestB",)


def test_exit_code_2_is_build_failure() -> None:
    d = Dispatcher(
        _builder({"pkg/a": "print('--- FAIL: TestA'); raise SystemExit(2)"}), timeout=30.0
    )

    (result,) = d.dispatch(["pkg/a"], {})

    assert result.status == TaskStatus.BUILD_FAILED


def test_failing_package_is_test_failed_and_keeps_output() -> None:
    d = Dispatcher(
        _builder({"pkg/a": "print('--- FAIL: TestA (0.00s)'); raise SystemExit(1)"}),
        timeout=30.0,
    )

    (result,) = d.dispatch(["pkg/a"], {})

    assert result.status == TaskStatus.TEST_FAILED
    assert "--- FAIL: TestA" in result.output


def test_stderr_is_captured_with_stdout() -> None:
    d = Dispatcher(
        _builder({"pkg/a": "import sys; sys.stderr.write('on stderr\\n'); raise SystemExit(1)"}),
        timeout=30.0,
    )

    (result,) = d.dispatch(["pkg/a"], {})

    assert "on stderr" in result.output


def test_process_that_cannot_start_is_test_failed() -> None:
    d = Dispatcher(lambda task: ["/nonexistent/testforge-go"], timeout=30.0)

    (result,) = d.dispatch(["pkg/a"], {})

    assert result.status == TaskStatus.TEST_FAILED
    assert "/nonexistent/testforge-go" in result.output


def test_timeout_does_not_block_other_workers() -> None:
    scripts = {
        "pkg/excluded": "raise SystemExit(0)",
        "pkg/hang": "import time; time.sleep(30)",
        "pkg/ok": "raise SystemExit(0)",
    }
    d = Dispatcher(_builder(scripts), timeout=1.0, grace=0.0, num_workers=3)

    results = d.dispatch(
        ["pkg/excluded", "pkg/hang", "pkg/ok"],
        {"pkg/excluded": ["TestA"], "pkg/hang": ["TestA"], "pkg/ok": ["TestA"]},
        [Exclusion.new("^pkg/excluded$", ".*", True)],
    )
    by_pkg = {r.package: r for r in results}

    assert len(results) == 3
    assert by_pkg["pkg/excluded"].status == TaskStatus.TEST_PASSED
    assert by_pkg["pkg/excluded"].output == EXCLUDED_OUTPUT
    assert by_pkg["pkg/hang"].status == TaskStatus.TIMED_OUT
    assert by_pkg["pkg/hang"].duration_s < 10
    assert by_pkg["pkg/ok"].status == TaskStatus.TEST_PASSED


def test_env_and_cwd_are_passed_to_workers(tmp_path: Path) -> None:
    script = (
        "import os; "
        "raise SystemExit(0 if os.environ.get('TF_KEY') == 'v' and os.getcwd() == "
        f"os.path.realpath(r'{tmp_path}') else 1)"
    )
    d = Dispatcher(
        _builder({"pkg/a": script}), timeout=30.0, env={"TF_KEY": "v"}, cwd=str(tmp_path)
    )

    (result,) = d.dispatch(["pkg/a"], {})

    assert result.status == TaskStatus.TEST_PASSED

import json

from testforge.report import (
    build_output,
    json_build_failed,
    skipped_tests,
    suite_from_build_output,
    suites_from_test_output,
)

PKG = "example.com/foo"


def _events(*events: dict) -> str:
    return "".join(json.dumps({"Package": PKG, **e}) + "\n" for e in events)


def test_json_events_become_cases() -> None:
    output = _events(
        {"Action": "run", "Test": "TestA"},
        {"Action": "output", "Test": "TestA", "Output": "=== RUN   TestA\n"},
        {"Action": "pass", "Test": "TestA", "Elapsed": 0.01},
        {"Action": "run", "Test": "TestB"},
        {"Action": "output", "Test": "TestB", "Output": "    foo_test.go:9: want 1, got 2\n"},
        {"Action": "fail", "Test": "TestB", "Elapsed": 0.02},
        {"Action": "run", "Test": "TestC"},
        {"Action": "skip", "Test": "TestC", "Elapsed": 0},
        {"Action": "output", "Output": "FAIL\n"},
        {"Action": "fail", "Elapsed": 0.5},
    )

    (suite,) = suites_from_test_output(output, PKG, 1.0, failed=True)

    assert suite.name == PKG
    assert suite.time == 0.5
    assert [c.name for c in suite.cases] == ["TestA", "TestB", "TestC"]
    assert suite.failures == 1
    assert "want 1, got 2" in suite.cases[1].failures[0].data
    assert suite.cases[2].skipped
    assert skipped_tests([suite]) == ["TestC"]


def test_unfinished_test_is_a_failure() -> None:
    output = _events(
        {"Action": "run", "Test": "TestHang"},
        {"Action": "output", "Test": "TestHang", "Output": "panic: test timed out after 1s\n"},
        {"Action": "fail", "Elapsed": 1.0},
    )

    (suite,) = suites_from_test_output(output, PKG, failed=True)

    assert suite.failures == 1
    assert suite.cases[0].failures[0].message == "test did not complete"


def test_failed_package_without_failing_case_gets_synthetic_case() -> None:
    output = _events(
        {"Action": "run", "Test": "TestA"},
        {"Action": "pass", "Test": "TestA", "Elapsed": 0.01},
        {"Action": "output", "Output": "ok  \tsomething went wrong after tests\n"},
        {"Action": "fail", "Elapsed": 0.1},
    )

    (suite,) = suites_from_test_output(output, PKG, failed=True)

    assert [c.name for c in suite.cases] == ["TestA", "Test"]
    assert suite.cases[1].failures[0].message == "package failed"
    assert "went wrong" in suite.cases[1].failures[0].data


def test_non_json_lines_are_kept_for_package_failures() -> None:
    output = "# example.com/foo\n./foo.go:3: syntax error\n" + _events(
        {"Action": "fail", "Elapsed": 0.1},
    )

    (suite,) = suites_from_test_output(output, PKG, failed=True)

    assert suite.failures == 1
    assert "syntax error" in suite.cases[0].failures[0].data


def test_no_test_files_gives_no_suite() -> None:
    output = _events(
        {"Action": "output", "Output": f"?   \t{PKG}\t[no test files]\n"},
        {"Action": "skip", "Elapsed": 0},
    )

    assert suites_from_test_output(output, PKG) == []


def test_verbose_text_output() -> None:
    output = (
        "=== RUN   TestA\n"
        "--- PASS: TestA (0.01s)\n"
        "=== RUN   TestB\n"
        "    foo_test.go:12: mismatch\n"
        "--- FAIL: TestB (0.02s)\n"
        "=== RUN   TestC\n"
        "    foo_test.go:20: needs network\n"
        "--- SKIP: TestC (0.00s)\n"
        "FAIL\n"
        f"FAIL\t{PKG}\t0.123s\n"
    )

    (suite,) = suites_from_test_output(output, PKG, failed=True)

    assert [c.name for c in suite.cases] == ["TestA", "TestB", "TestC"]
    assert suite.time == 0.123
    assert suite.failures == 1
    assert "mismatch" in suite.cases[1].failures[0].data
    assert suite.cases[2].skipped


def test_verbose_text_passing_package() -> None:
    output = "=== RUN   TestA\n--- PASS: TestA (0.00s)\nPASS\n" f"ok  \t{PKG}\t0.010s\n"

    (suite,) = suites_from_test_output(output, PKG)

    assert suite.tests == 1
    assert suite.failures == 0


def test_build_output_becomes_build_cases() -> None:
    output = (
        "# example.com/foo/a\n"
        "a/a.go:3: undefined: x\n"
        "# example.com/foo/b\n"
        "link: warning: something\n"
        "# example.com/foo/a\n"
        "a/a.go:3: undefined: x\n"
    )

    suite = suite_from_build_output("example.com/foo/...", output)

    assert suite.name == "example.com/foo/..."
    assert [c.classname for c in suite.cases] == ["example.com/foo/a"]
    case = suite.cases[0]
    assert case.name == "Build"
    assert case.failures[0].message == "build failure"
    assert case.failures[0].data == "a/a.go:3: undefined: x"


def test_build_output_without_header_uses_pattern() -> None:
    suite = suite_from_build_output("example.com/missing", "cannot find package\n")

    assert [c.classname for c in suite.cases] == ["example.com/missing"]


def test_json_build_failure_events_become_build_failure() -> None:
    test_binary = f"{PKG} [{PKG}.test]"
    output = "".join(
        json.dumps(e) + "\n"
        for e in (
            {"ImportPath": test_binary, "Action": "build-output", "Output": f"# {PKG}\n"},
            {"ImportPath": test_binary, "Action": "build-output", "Output": "./foo.go:3:2: undefined: x\n"},
            {"ImportPath": test_binary, "Action": "build-fail"},
            {"Action": "start", "Package": PKG},
            {"Action": "output", "Package": PKG, "Output": f"FAIL\t{PKG} [build failed]\n"},
            {"Action": "fail", "Package": PKG, "Elapsed": 0, "FailedBuild": test_binary},
        )
    )

    (suite,) = suites_from_test_output(output, PKG, failed=True)

    assert [c.name for c in suite.cases] == ["Test"]
    failure = suite.cases[0].failures[0]
    assert failure.message == "build failure"
    assert "undefined: x" in failure.data
    assert json_build_failed(output)
    assert build_output(output) == f"# {PKG}\n./foo.go:3:2: undefined: x\n"


def test_passing_json_output_is_not_a_build_failure() -> None:
    assert not json_build_failed(_events({"Action": "pass", "Elapsed": 0.1}))
    assert build_output("plain compiler output\n") == "plain compiler output\n"


def test_failed_run_mentioning_no_test_files_keeps_its_failure() -> None:
    output = (
        "=== RUN   TestTool\n"
        '    tool_test.go:9: got "?   \\texample.com/b\\t[no test files]"\n'
        "--- FAIL: TestTool (0.00s)\n"
        "FAIL\n"
        f"FAIL\t{PKG}\t0.010s\n"
    )

    (suite,) = suites_from_test_output(output, PKG, failed=True)

    assert suite.failures == 1

# tests/test_runner.py
from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from testforge.config.types import ProjectConfig, ProjectEntry, Settings, SuiteConfig
from testforge.host import HostInfo
from testforge.report import read_report
from testforge.runner import Runner
from testforge.suites import RunOptions, Status


def _py(cmd: str) -> str:
    """
    Build a shell command that runs `python -c "<cmd>"` using the current interpreter.
    Command suites use shell=True, so return a single command string.
    """
    exe = str(Path(sys.executable))
    return f'"{exe}" -c "{cmd}"'


def _project(tmp_path: Path, suites: dict[str, dict], projects: dict[str, list[str]] | None = None) -> ProjectConfig:
    """
    suites schema:
      name -> {command: str, deps?: list[str], env?: dict[str,str], working_dir?: str|None, timeout?: float}
    """
    built: dict[str, SuiteConfig] = {}
    for name, spec in suites.items():
        built[name] = SuiteConfig(
            name=name,
            kind="command",
            command=spec["command"],
            deps=list(spec.get("deps", [])),
            env=dict(spec.get("env", {})),
            working_dir=spec.get("working_dir"),
            timeout=spec.get("timeout"),
        )
    settings = Settings(
        work_root=str(tmp_path / "work"),
        output_dir=str(tmp_path / "out"),
        clean_go=False,
    )
    entries = {name: ProjectEntry(name, tests) for name, tests in (projects or {}).items()}
    return ProjectConfig(suites=built, projects=entries, settings=settings)


def _runner(project: ProjectConfig) -> Runner:
    return Runner(project, RunOptions(host=HostInfo("linux", "amd64", False)))


def test_runs_in_dependency_order(tmp_path: Path) -> None:
    log = tmp_path / "log.txt"

    project = _project(
        tmp_path,
        {
            "a": {"command": _py(f"open(r'{log}','a').write('a\\n')")},
            "b": {"command": _py(f"open(r'{log}','a').write('b\\n')"), "deps": ["a"]},
            "c": {"command": _py(f"open(r'{log}','a').write('c\\n')"), "deps": ["b"]},
        },
    )

    rr = _runner(project).run_tests(["c", "a", "b"])

    assert rr.failed == []
    assert rr.skipped == []
    assert rr.order == ["a", "b", "c"]
    assert rr.passed
    assert log.read_text(encoding="utf-8").splitlines() == ["a", "b", "c"]


def test_env_and_private_tmpdir_are_applied(tmp_path: Path) -> None:
    seen = tmp_path / "seen.txt"
    project = _project(
        tmp_path,
        {
            "envsuite": {
                "env": {"TF_TEST": "ok"},
                "command": _py(
                    "import os; "
                    f"open(r'{seen}','w').write(os.environ['TMPDIR']); "
                    "raise SystemExit(0 if os.environ.get('TF_TEST')=='ok' else 2)"
                ),
            }
        },
    )

    rr = _runner(project).run_tests(["envsuite"])

    assert rr.results["envsuite"].status == Status.PASSED
    workdir = Path(seen.read_text(encoding="utf-8"))
    assert workdir.parent == tmp_path / "work" / "envsuite"
    # The work directory is removed once the suite is done.
    assert not workdir.exists()


def test_working_dir_is_respected(tmp_path: Path) -> None:
    wd = tmp_path / "wd"
    wd.mkdir()
    out = wd / "written.txt"

    project = _project(
        tmp_path,
        {
            "w": {
                "working_dir": str(wd),
                "command": _py(
                    "from pathlib import Path; Path('written.txt').write_text('ok', encoding='utf-8')"
                ),
            }
        },
    )

    rr = _runner(project).run_tests(["w"])

    assert rr.failed == []
    assert out.read_text(encoding="utf-8") == "ok"


def test_failure_skips_dependents_fail_fast_false(tmp_path: Path) -> None:
    log = tmp_path / "log.txt"

    project = _project(
        tmp_path,
        {
            "a_fail": {
                "command": _py(
                    f"open(r'{log}','a').write('a_fail\\n'); raise SystemExit(7)"
                )
            },
            "b_dep": {
                "deps": ["a_fail"],
                "command": _py(f"open(r'{log}','a').write('b_dep\\n')"),
            },
            "c_ind": {
                "command": _py(f"open(r'{log}','a').write('c_ind\\n')"),
            },
        },
    )

    rr = _runner(project).run_tests(["a_fail", "b_dep", "c_ind"])

    assert rr.failed == ["a_fail"]
    assert rr.skipped == ["b_dep"]
    assert rr.results["a_fail"].status == Status.FAILED
    assert rr.results["b_dep"].status == Status.SKIPPED
    assert rr.results["c_ind"].status == Status.PASSED
    assert log.read_text(encoding="utf-8").splitlines() == ["a_fail", "c_ind"]


def test_fail_fast_true_marks_remaining_as_skipped(tmp_path: Path) -> None:
    log = tmp_path / "log.txt"

    project = _project(
        tmp_path,
        {
            "a_fail": {
                "command": _py(
                    f"open(r'{log}','a').write('a_fail\\n'); raise SystemExit(3)"
                )
            },
            "b_dep": {
                "deps": ["a_fail"],
                "command": _py(f"open(r'{log}','a').write('b_dep\\n')"),
            },
            "c_ind": {
                "command": _py(f"open(r'{log}','a').write('c_ind\\n')"),
            },
        },
    )

    rr = _runner(project).run_tests(["a_fail", "b_dep", "c_ind"], fail_fast=True)

    assert rr.failed == ["a_fail"]
    # Both suites after the failure are skipped (regardless of dependency).
    assert rr.skipped == ["b_dep", "c_ind"]
    assert log.read_text(encoding="utf-8").splitlines() == ["a_fail"]


def test_failed_command_writes_report_with_output_tail(tmp_path: Path) -> None:
    project = _project(
        tmp_path,
        {"lint-check": {"command": _py("print('bad style'); raise SystemExit(4)")}},
    )

    rr = _runner(project).run_tests(["lint-check"])

    assert rr.results["lint-check"].status == Status.FAILED
    suites = read_report(tmp_path / "out" / "tests_lint_check.xml")
    assert len(suites) == 1
    case = suites[0].cases[0]
    assert case.failures[0].message == "command exited with code 4"
    assert "bad style" in case.failures[0].data


def test_command_timeout_is_timed_out(tmp_path: Path) -> None:
    project = _project(
        tmp_path,
        {"slow": {"command": _py("import time; time.sleep(30)"), "timeout": 1.0}},
    )

    rr = _runner(project).run_tests(["slow"])

    assert rr.results["slow"].status == Status.TIMED_OUT
    assert rr.failed == ["slow"]
    suites = read_report(tmp_path / "out" / "tests_slow.xml")
    assert suites[0].cases[0].failures[0].message == "command timed out after 1s"


def test_internal_error_fails_suite_but_not_siblings(tmp_path: Path) -> None:
    project = _project(
        tmp_path,
        {
            "broken": {
                "command": _py("raise SystemExit(0)"),
                "working_dir": str(tmp_path / "does-not-exist"),
            },
            "fine": {"command": _py("raise SystemExit(0)")},
        },
    )

    rr = _runner(project).run_tests(["broken", "fine"])

    assert rr.results["broken"].status == Status.FAILED
    assert rr.results["fine"].status == Status.PASSED
    suites = read_report(tmp_path / "out" / "tests_broken.xml")
    assert suites[0].cases[0].name == "Internal Error"


def test_status_file_is_written(tmp_path: Path) -> None:
    project = _project(tmp_path, {"a": {"command": _py("raise SystemExit(0)")}})

    _runner(project).run_tests(["a"])

    status = json.loads((tmp_path / "out" / "status_a.json").read_text(encoding="utf-8"))
    assert status["status"] == "PASSED"


def test_stale_report_is_removed_before_run(tmp_path: Path) -> None:
    out = tmp_path / "out"
    out.mkdir()
    stale = out / "tests_a.xml"
    stale.write_text("<testsuites/>", encoding="utf-8")
    project = _project(tmp_path, {"a": {"command": _py("raise SystemExit(0)")}})

    _runner(project).run_tests(["a"])

    assert not stale.exists()


def test_run_project_tests_runs_the_project_suites(tmp_path: Path) -> None:
    log = tmp_path / "log.txt"
    project = _project(
        tmp_path,
        {
            "a": {"command": _py(f"open(r'{log}','a').write('a\\n')")},
            "b": {"command": _py(f"open(r'{log}','a').write('b\\n')"), "deps": ["a"]},
            "c": {"command": _py(f"open(r'{log}','a').write('c\\n')")},
        },
        projects={"core": ["b", "a"], "web": ["a"]},
    )

    rr = _runner(project).run_project_tests(["core", "web"])

    assert rr.order == ["a", "b"]
    assert log.read_text(encoding="utf-8").splitlines() == ["a", "b"]

    with pytest.raises(KeyError):
        _runner(project).run_project_tests(["nope"])


def test_print_markers(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    project = _project(tmp_path, {"a": {"command": _py("raise SystemExit(1)")}})

    _runner(project).run_tests(["a"])
    out = capsys.readouterr().out

    assert '##### Running test "a" #####' in out
    assert "##### FAILED #####" in out

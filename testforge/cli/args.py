from __future__ import annotations

import argparse
import os


def _add_run_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--num-test-workers",
        dest="num_workers",
        type=int,
        default=None,
        help="Number of packages tested concurrently (default: from settings)",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for xUnit and coverage reports (default: $WORKSPACE)",
    )
    parser.add_argument(
        "--part",
        type=int,
        default=-1,
        help="Index of the test part to run",
    )
    parser.add_argument(
        "--pkgs",
        default="",
        help="Comma-separated packages to test instead of the suite defaults",
    )
    parser.add_argument(
        "--clean-go",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Clean the Go build cache before running Go suites",
    )
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Skip the remaining suites after the first failure",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="testforge")

    parser.add_argument(
        "--config",
        default=os.environ.get("TESTFORGE_CONFIG", "testforge.yml"),
        help="Path to config file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print test output and debug logging",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
    )

    # run
    run = subparsers.add_parser("run", help="Run test suites")
    run.add_argument(
        "names",
        nargs="+",
        help="Suite names",
    )
    _add_run_flags(run)

    # project
    project = subparsers.add_parser("project", help="Run the suites of projects")
    project.add_argument(
        "projects",
        nargs="+",
        help="Project names",
    )
    _add_run_flags(project)

    # list
    subparsers.add_parser("list", help="List suites")

    # graph
    subparsers.add_parser("graph", help="Show suite dependency graph")

    # poll
    poll = subparsers.add_parser("poll", help="Show upstream changes of projects")
    poll.add_argument(
        "tests",
        nargs="*",
        help="Only poll the projects of these suites",
    )
    poll.add_argument(
        "--no-fetch",
        action="store_true",
        help="Compare against the last fetched upstream state",
    )

    # exclusions
    exclusions = subparsers.add_parser(
        "exclusions", help="Show exclusion rules active on this host"
    )
    exclusions.add_argument(
        "suites",
        nargs="*",
        help="Suite names (default: all)",
    )

    return parser

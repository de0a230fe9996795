from __future__ import annotations

import argparse
import json
import logging
import sys

from testforge.config import ConfigError, load_project
from testforge.dispatch import describe_exclusions, resolve
from testforge.graph import GraphError, SuiteGraph
from testforge.poll import PollError, poll_projects
from testforge.runner import Runner, RunResult
from testforge.suites import RunOptions

from .args import build_parser


def run_cli(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        _configure_logging(args.verbose)

        match args.command:
            case "run":
                return cmd_run(args)
            case "project":
                return cmd_project(args)
            case "list":
                return cmd_list(args)
            case "graph":
                return cmd_graph(args)
            case "poll":
                return cmd_poll(args)
            case "exclusions":
                return cmd_exclusions(args)
            case _:
                return 2

    except (ConfigError, GraphError, KeyError) as exc:
        print(str(exc), file=sys.stderr)
        return 2

    except PollError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        return 130


def main() -> None:
    sys.exit(run_cli())


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _options(args: argparse.Namespace) -> RunOptions:
    pkgs = [p.strip() for p in args.pkgs.split(",") if p.strip()]
    return RunOptions(
        num_workers=args.num_workers,
        output_dir=args.output_dir,
        part=args.part,
        pkgs=pkgs,
        clean_go=args.clean_go,
        verbose=args.verbose,
    )


def cmd_run(args: argparse.Namespace) -> int:
    project = load_project(args.config)
    runner = Runner(project, _options(args))
    rr = runner.run_tests(args.names, fail_fast=args.fail_fast)
    _print_summary(rr)
    return 0 if rr.passed else 1


def cmd_project(args: argparse.Namespace) -> int:
    project = load_project(args.config)
    runner = Runner(project, _options(args))
    rr = runner.run_project_tests(args.projects, fail_fast=args.fail_fast)
    _print_summary(rr)
    return 0 if rr.passed else 1


def cmd_list(args: argparse.Namespace) -> int:
    project = load_project(args.config)
    for name in Runner(project).list_tests():
        print(name)
    return 0


def cmd_graph(args: argparse.Namespace) -> int:
    graph = SuiteGraph.from_project(load_project(args.config))
    for name in graph.topo_order():
        deps = " ".join(graph.deps_of(name))
        print(f"{name}: {deps}".rstrip())
    return 0


def cmd_poll(args: argparse.Namespace) -> int:
    project = load_project(args.config)
    update = poll_projects(project, args.tests, fetch=not args.no_fetch)
    print(json.dumps(update, indent=2, sort_keys=True))
    return 0


def cmd_exclusions(args: argparse.Namespace) -> int:
    project = load_project(args.config)
    host = RunOptions().host
    names = args.suites or project.suite_names()
    for name in names:
        rules = resolve(project.suite_exclusions(name), host)
        active = describe_exclusions(rules)
        if not active:
            continue
        print(f"{name}:")
        for line in active:
            print(f"  {line}")
    return 0


def _print_summary(rr: RunResult) -> None:
    print("SUMMARY:")
    for name in rr.order:
        result = rr.results[name]
        print(f"{name} {result.status}")
        for pkg, tests in result.excluded_tests.items():
            print(f"  excluded {len(tests)} tests from package {pkg}: {tests}")
        for pkg, tests in result.skipped_tests.items():
            print(f"  skipped {len(tests)} tests from package {pkg}: {tests}")

"""Helpers around the `go` command: package listing, test discovery, sharding."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Mapping, Sequence

from testforge.config.duration import format_duration
from testforge.dispatch.types import Task
from testforge.host import HostInfo
from testforge.process import run_captured

logger = logging.getLogger(__name__)

Expander = Callable[[list[str]], list[str]]

_FUNC_RE = re.compile(
    r"^func\s+([A-Za-z_]\w*)\s*\(\s*\w+\s+\*testing\.[TB]\s*\)", re.MULTILINE
)


class GoToolError(Exception):
    def __init__(self, argv: Sequence[str], output: str):
        super().__init__(f"{' '.join(argv)} failed:\n{output}")
        self.argv = list(argv)
        self.output = output


@dataclass(frozen=True)
class GoPackage:
    import_path: str
    dir: str = ""
    test_files: tuple[str, ...] = field(default_factory=tuple)


def go_command(
    go: str,
    args: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    timeout: float | None = None,
    merge_stderr: bool = True,
) -> str:
    """Run `go args...` and return its output, raising GoToolError on failure.

    With merge_stderr=False only stdout is returned; stderr goes into the
    GoToolError output on failure and is logged otherwise.
    """
    argv = [go, *args]
    completed = run_captured(
        argv, env=env, cwd=cwd, timeout=timeout, merge_stderr=merge_stderr
    )
    if not completed.ok:
        raise GoToolError(argv, completed.output + completed.stderr)
    if completed.stderr:
        logger.debug("%s: %s", " ".join(argv), completed.stderr.rstrip())
    return completed.output


def parse_go_list_json(text: str) -> list[GoPackage]:
    """Parse the stream of JSON objects printed by `go list -json`."""
    decoder = json.JSONDecoder()
    packages = []
    pos = 0
    text = text.strip()
    while pos < len(text):
        obj, end = decoder.raw_decode(text, pos)
        pos = end
        while pos < len(text) and text[pos].isspace():
            pos += 1
        test_files = [*obj.get("TestGoFiles", []), *obj.get("XTestGoFiles", [])]
        packages.append(
            GoPackage(obj["ImportPath"], obj.get("Dir", ""), tuple(test_files))
        )
    return packages


def list_packages(
    go: str,
    patterns: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
) -> list[GoPackage]:
    if not patterns:
        return []
    output = go_command(
        go, ["list", "-json", *patterns], env=env, cwd=cwd, merge_stderr=False
    )
    try:
        return parse_go_list_json(output)
    except (ValueError, KeyError) as exc:
        raise GoToolError([go, "list", "-json", *patterns], f"unparsable output: {exc}") from exc


def expander(go: str, *, env: Mapping[str, str] | None = None, cwd: str | None = None) -> Expander:
    def expand(patterns: list[str]) -> list[str]:
        return [p.import_path for p in list_packages(go, patterns, env=env, cwd=cwd)]

    return expand


def find_test_functions(pkg: GoPackage, pattern: re.Pattern[str]) -> list[str]:
    names = []
    for test_file in pkg.test_files:
        source = (Path(pkg.dir) / test_file).read_text(encoding="utf-8")
        for m in _FUNC_RE.finditer(source):
            if pattern.search(m.group(1)):
                names.append(m.group(1))
    return names


def packages_and_tests(
    packages: Iterable[GoPackage], pattern: re.Pattern[str]
) -> tuple[list[str], dict[str, list[str]]]:
    """Return the packages with at least one matching test, and their tests."""
    with_tests = []
    matched = {}
    for pkg in packages:
        names = find_test_functions(pkg, pattern)
        if names:
            with_tests.append(pkg.import_path)
            matched[pkg.import_path] = names
    return with_tests, matched


def _split_part(part: str) -> list[str]:
    return [p.strip() for p in part.split(",") if p.strip()]


def identify_part(
    all_pkgs: list[str], parts: list[str], index: int, expand: Expander
) -> list[str]:
    """Select the packages of shard `index`.

    parts lists the package patterns of the first N-1 shards; shard N gets
    every package not named by an earlier shard.
    """
    if not parts or index < 0:
        return list(all_pkgs)

    earlier: set[str] = set()
    for part in parts[:index]:
        earlier.update(expand(_split_part(part)))

    if index < len(parts):
        pkgs = expand(_split_part(parts[index]))
    else:
        pkgs = expand(list(all_pkgs))

    return [p for p in pkgs if p not in earlier]


def validate_requested(
    requested: list[str], defaults: list[str], expand: Expander
) -> list[str]:
    if not requested:
        return list(defaults)

    allowed = set(expand(list(defaults)))
    pkgs = expand(list(requested))
    for pkg in pkgs:
        if pkg not in allowed:
            raise ValueError(f"requested package {pkg} is not one of {defaults}")
    return pkgs


def name_suffix(base: str, host: HostInfo) -> str:
    platform = f"{host.os},{host.arch}"
    if not base:
        return f"[{platform}]"
    return f"[{base} - {platform}]"


def go_test_command(
    go: str,
    task: Task,
    *,
    timeout: float,
    args: Sequence[str] = (),
    non_test_args: Sequence[str] = (),
    extra: Sequence[str] = (),
) -> list[str]:
    argv = [go, "test", "-json", "-timeout", format_duration(timeout), *extra, *args]

    if task.specific_tests:
        expr = f"^({'|'.join(task.specific_tests)})$"
        # Override a -run flag given in args rather than passing two.
        found = False
        for i, arg in enumerate(argv):
            if arg in ("-run", "--run") and i + 1 < len(argv):
                argv[i + 1] = expr
                found = True
                break
            if arg.startswith(("-run=", "--run=")):
                argv[i] = f"-run={expr}"
                found = True
                break
        if not found:
            argv += ["-run", expr]

    return [*argv, task.package, *non_test_args]

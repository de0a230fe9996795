"""Find upstream commits that would trigger a test run."""

from __future__ import annotations

import logging
from pathlib import Path

from testforge.config import ConfigError, ProjectConfig
from testforge.process import run_captured

logger = logging.getLogger(__name__)

# git expands %x00 and %x1e in the log format into these bytes.
_FIELD_SEP = "\x00"
_RECORD_SEP = "\x1e"
_LOG_FORMAT = "%H%x00%an%x00%ae%x00%B%x1e"


class PollError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


def relevant_projects(project: ProjectConfig, tests: list[str]) -> list[str]:
    """Return the projects owning any of tests, or all projects for no tests."""
    if not tests:
        return sorted(project.projects)

    names: set[str] = set()
    for test in tests:
        owners = [p.name for p in project.projects.values() if test in p.tests]
        if not owners:
            raise ConfigError(f"test {test!r} does not belong to any project")
        names.update(owners)
    return sorted(names)


def _git(path: Path, *args: str) -> str:
    completed = run_captured(["git", *args], cwd=str(path), merge_stderr=False)
    if not completed.ok:
        raise PollError(
            f"git {' '.join(args)} in {path} failed:\n{completed.output}{completed.stderr}"
        )
    return completed.output


def pending_commits(path: str | Path, *, fetch: bool = True) -> list[dict[str, str]]:
    repo = Path(path).expanduser()
    if fetch:
        _git(repo, "fetch", "--quiet")

    log = _git(
        repo,
        "log",
        f"--pretty=format:{_LOG_FORMAT}",
        "HEAD..@{u}",
    )
    commits = []
    for record in log.split(_RECORD_SEP):
        record = record.strip("\n")
        if not record:
            continue
        commit, author, email, description = record.split(_FIELD_SEP, 3)
        commits.append(
            {
                "commit": commit,
                "author": author,
                "email": email,
                "description": description.strip(),
            }
        )
    return commits


def poll_projects(
    project: ProjectConfig, tests: list[str], *, fetch: bool = True
) -> dict[str, list[dict[str, str]]]:
    """Map each relevant project with upstream changes to its pending commits."""
    update = {}
    for name in relevant_projects(project, tests):
        entry = project.projects[name]
        if entry.path is None:
            logger.debug("project %s has no path, not polling", name)
            continue
        commits = pending_commits(entry.path, fetch=fetch)
        if commits:
            update[name] = commits
    return update

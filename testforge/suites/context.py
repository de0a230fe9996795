from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping

from testforge.config import Settings, SuiteConfig
from testforge.dispatch import Exclusion
from testforge.goutil import GoToolError, go_command
from testforge.host import HostInfo
from testforge.report import report_path

from .types import InternalTestError

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Per-invocation overrides of the config file settings."""

    num_workers: int | None = None
    output_dir: str | None = None
    work_root: str | None = None
    # -1 runs every part.
    part: int = -1
    pkgs: list[str] = field(default_factory=list)
    clean_go: bool | None = None
    verbose: bool = False
    host: HostInfo = field(default_factory=HostInfo.current)


@dataclass
class SuiteContext:
    name: str
    suite: SuiteConfig
    settings: Settings
    options: RunOptions
    workdir: Path
    output_dir: Path
    env: dict[str, str]
    exclusions: list[Exclusion] = field(default_factory=list)

    @property
    def bin_dir(self) -> Path:
        return self.workdir / "bin"

    @property
    def cwd(self) -> str | None:
        return self.suite.working_dir

    @property
    def num_workers(self) -> int:
        if self.options.num_workers is not None:
            return max(1, self.options.num_workers)
        return max(1, self.settings.num_workers)

    @property
    def report_path(self) -> Path:
        return report_path(self.output_dir, self.name)


def resolve_output_dir(
    settings: Settings, options: RunOptions, environ: Mapping[str, str] | None = None
) -> Path:
    env = os.environ if environ is None else environ
    for candidate in (options.output_dir, settings.output_dir, env.get("WORKSPACE")):
        if candidate:
            return Path(candidate).expanduser()
    return Path(options.work_root or settings.work_root).expanduser()


def status_path(output_dir: Path, name: str) -> Path:
    return output_dir / f"status_{name.replace('-', '_')}.json"


def _remove_stale_results(output_dir: Path, name: str) -> None:
    for path in (report_path(output_dir, name), status_path(output_dir, name)):
        if path.exists():
            logger.debug("removing stale result %s", path)
            path.unlink()


@contextmanager
def prepared_workspace(
    suite: SuiteConfig,
    settings: Settings,
    options: RunOptions,
    exclusions: list[Exclusion] | None = None,
) -> Iterator[SuiteContext]:
    """Set up a private work directory for one suite run and tear it down after.

    The directory is exposed to child processes as TMPDIR; the environment of
    this process is left untouched.
    """
    root = Path(options.work_root or settings.work_root).expanduser() / suite.name
    output_dir = resolve_output_dir(settings, options)
    try:
        root.mkdir(parents=True, exist_ok=True)
        workdir = Path(tempfile.mkdtemp(dir=root))
        (workdir / "bin").mkdir()
        output_dir.mkdir(parents=True, exist_ok=True)
        _remove_stale_results(output_dir, suite.name)
    except OSError as exc:
        raise InternalTestError("Init", str(exc)) from exc

    logger.info("workdir = %s", workdir)
    try:
        env = {**suite.env, "TMPDIR": str(workdir)}
        ctx = SuiteContext(
            name=suite.name,
            suite=suite,
            settings=settings,
            options=options,
            workdir=workdir,
            output_dir=output_dir,
            env=env,
            exclusions=list(exclusions or []),
        )

        clean_go = settings.clean_go if options.clean_go is None else options.clean_go
        if clean_go and suite.is_go():
            try:
                go_command(settings.go, ["clean", "-cache"], env=env, cwd=suite.working_dir)
            except GoToolError as exc:
                raise InternalTestError("Init", str(exc), exc.output) from exc
            except OSError as exc:
                raise InternalTestError("Init", f"{settings.go}: {exc}") from exc

        yield ctx
    finally:
        shutil.rmtree(workdir, ignore_errors=True)

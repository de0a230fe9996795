from __future__ import annotations

import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, Mapping, Sequence

from testforge.process import run_captured

from .classify import classify
from .exclusion import Exclusion, filter_excluded_tests
from .types import Task, TaskResult, TaskStatus

logger = logging.getLogger(__name__)

CommandBuilder = Callable[[Task], Sequence[str]]

EXCLUDED_OUTPUT = "package excluded"


class Dispatcher:
    """Fans one task per package out to a bounded pool of workers.

    Every package yields exactly one TaskResult. Results come back in
    completion order, and a failing or hanging package never stops the
    others.
    """

    def __init__(
        self,
        build_command: CommandBuilder,
        *,
        timeout: float,
        num_workers: int = 1,
        grace: float = 0.0,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        stagger: float = 0.0,
    ):
        self.build_command = build_command
        self.timeout = timeout
        self.num_workers = max(1, num_workers)
        self.grace = grace
        self.env = dict(env or {})
        self.cwd = cwd
        self.stagger = stagger
        self._local = threading.local()

    def plan(
        self,
        packages: Iterable[str],
        tests_by_package: Mapping[str, list[str]],
        exclusions: Iterable[Exclusion] = (),
    ) -> tuple[list[Task], list[TaskResult]]:
        """Apply exclusions, returning the tasks to run and the short-circuited results."""
        rules = list(exclusions)
        tasks: list[Task] = []
        excluded: list[TaskResult] = []

        for pkg in packages:
            run, specific, skipped = filter_excluded_tests(
                pkg, tests_by_package.get(pkg, []), rules
            )
            if run:
                tasks.append(Task(pkg, tuple(specific), tuple(skipped)))
            else:
                excluded.append(
                    TaskResult(pkg, TaskStatus.TEST_PASSED, EXCLUDED_OUTPUT, 0.0, tuple(skipped))
                )

        return tasks, excluded

    def dispatch(
        self,
        packages: Iterable[str],
        tests_by_package: Mapping[str, list[str]],
        exclusions: Iterable[Exclusion] = (),
    ) -> list[TaskResult]:
        tasks, results = self.plan(packages, tests_by_package, exclusions)
        results.extend(self.run_tasks(tasks))
        return results

    def run_tasks(self, tasks: list[Task]) -> list[TaskResult]:
        if not tasks:
            return []

        workers = min(self.num_workers, len(tasks))
        logger.info("running %d tasks using %d workers", len(tasks), workers)

        results: list[TaskResult] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="test-worker") as pool:
            futures = [pool.submit(self._run_task, task) for task in tasks]
            for future in as_completed(futures):
                results.append(future.result())

        return results

    def _run_task(self, task: Task) -> TaskResult:
        self._maybe_stagger()

        argv = list(self.build_command(task))
        start = time.monotonic()
        try:
            completed = run_captured(
                argv, timeout=self.timeout + self.grace, env=self.env, cwd=self.cwd
            )
        except OSError as exc:
            logger.warning("%s: failed to start %s: %s", task.package, argv[0], exc)
            return TaskResult(
                task.package,
                TaskStatus.TEST_FAILED,
                f"{argv[0]}: {exc}",
                time.monotonic() - start,
                task.excluded_tests,
            )

        if completed.timed_out:
            status = TaskStatus.TIMED_OUT
        else:
            status = classify(completed.returncode, completed.output, task.package)

        logger.debug("%s: %s in %.2fs", task.package, status.value, completed.duration_s)
        return TaskResult(
            task.package,
            status,
            completed.output,
            completed.duration_s,
            task.excluded_tests,
        )

    def _maybe_stagger(self) -> None:
        if self.stagger <= 0 or self.num_workers == 1:
            return
        if getattr(self._local, "started", False):
            return

        self._local.started = True
        delay = random.uniform(0, self.stagger)
        logger.debug("staggering start of test worker by %.2fs", delay)
        time.sleep(delay)

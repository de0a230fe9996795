from dataclasses import dataclass
from enum import Enum


class TaskStatus(Enum):
    BUILD_FAILED = "build failed"
    TEST_PASSED = "passed"
    TEST_FAILED = "failed"
    TIMED_OUT = "timed out"


@dataclass(frozen=True)
class Task:
    package: str
    # Empty means every test in the package.
    specific_tests: tuple[str, ...] = ()
    excluded_tests: tuple[str, ...] = ()


@dataclass(frozen=True)
class TaskResult:
    package: str
    status: TaskStatus
    output: str
    duration_s: float
    excluded_tests: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return self.status == TaskStatus.TEST_PASSED

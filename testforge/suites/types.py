from dataclasses import dataclass, field
from enum import Enum


class Status(Enum):
    PENDING = "PENDING"
    SKIPPED = "SKIPPED"
    PASSED = "PASSED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED OUT"

    def __str__(self) -> str:
        return self.value


@dataclass
class SuiteResult:
    status: Status = Status.PENDING
    # package -> test names
    excluded_tests: dict[str, list[str]] = field(default_factory=dict)
    skipped_tests: dict[str, list[str]] = field(default_factory=dict)
    timeout: float | None = None

    @property
    def passed(self) -> bool:
        return self.status == Status.PASSED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "excluded_tests": self.excluded_tests,
            "skipped_tests": self.skipped_tests,
            "timeout": self.timeout,
        }


class InternalTestError(Exception):
    """A suite could not run for reasons outside the code under test."""

    def __init__(self, name: str, message: str, output: str = ""):
        super().__init__(f"{name}: {message}")
        self.name = name
        self.message = message
        self.output = output

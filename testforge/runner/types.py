from dataclasses import dataclass

from testforge.suites import Status, SuiteResult


@dataclass(frozen=True)
class RunResult:
    order: list[str]
    results: dict[str, SuiteResult]
    failed: list[str]
    skipped: list[str]

    @property
    def passed(self) -> bool:
        return all(self.results[name].status == Status.PASSED for name in self.order)

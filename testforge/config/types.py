import os
import re
from dataclasses import dataclass, field

GO_KINDS = ("go-test", "go-build", "go-cover")
SUITE_KINDS = GO_KINDS + ("command",)


@dataclass
class ExclusionRule:
    package: re.Pattern[str]
    test: re.Pattern[str]
    when: dict[str, object] = field(default_factory=dict)
    enabled: bool = True
    reason: str = ""


@dataclass
class SuiteConfig:
    name: str
    kind: str
    deps: list[str] = field(default_factory=list)
    packages: list[str] = field(default_factory=list)
    command: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    working_dir: str | None = None
    timeout: float | None = None
    args: list[str] = field(default_factory=list)
    non_test_args: list[str] = field(default_factory=list)
    test_pattern: re.Pattern[str] = re.compile("^Test")
    suffix: str = ""
    exclusions: list[str] = field(default_factory=list)
    parts: list[str] = field(default_factory=list)
    prebuild: bool = True

    def is_go(self) -> bool:
        return self.kind in GO_KINDS


@dataclass
class ProjectEntry:
    name: str
    tests: list[str]
    path: str | None = None


@dataclass
class Settings:
    go: str = "go"
    num_workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    output_dir: str | None = None
    work_root: str = "~/tmp"
    clean_go: bool = True
    timeout_grace: float = 60.0
    stagger: float = 0.0


@dataclass
class ProjectConfig:
    suites: dict[str, SuiteConfig]
    exclusions: dict[str, list[ExclusionRule]] = field(default_factory=dict)
    projects: dict[str, ProjectEntry] = field(default_factory=dict)
    settings: Settings = field(default_factory=Settings)

    def __iter__(self):
        for name in sorted(self.suites):
            yield self.suites[name]

    def __len__(self):
        return len(self.suites)

    def has_suite(self, name: str) -> bool:
        return name in self.suites

    def get_suite(self, name: str) -> SuiteConfig:
        if not self.has_suite(name):
            raise KeyError(name)

        return self.suites[name]

    def suite_names(self) -> list[str]:
        return sorted(self.suites.keys())

    def suite_exclusions(self, name: str) -> list[ExclusionRule]:
        rules: list[ExclusionRule] = []
        for table in self.get_suite(name).exclusions:
            rules.extend(self.exclusions[table])
        return rules

    def project_tests(self, projects: list[str]) -> list[str]:
        tests: set[str] = set()
        for name in projects:
            if name not in self.projects:
                raise KeyError(name)
            tests.update(self.projects[name].tests)
        return sorted(tests)


class ConfigError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class UnsupportedConfigFormatError(ConfigError):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)

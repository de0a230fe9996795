from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from testforge.config.types import ExclusionRule
from testforge.host import HostInfo


@dataclass(frozen=True)
class Exclusion:
    package: re.Pattern[str]
    test: re.Pattern[str]
    applies: bool

    @classmethod
    def new(cls, package: str, test: str, applies: bool) -> Exclusion:
        return cls(re.compile(package), re.compile(test), applies)

    def matches(self, package: str, test: str) -> bool:
        return (
            self.applies
            and self.package.search(package) is not None
            and self.test.search(test) is not None
        )


def rule_applies(rule: ExclusionRule, host: HostInfo) -> bool:
    if not rule.enabled:
        return False
    if "os" in rule.when and host.os not in rule.when["os"]:
        return False
    if "arch" in rule.when and host.arch not in rule.when["arch"]:
        return False
    if "ci" in rule.when and host.ci != rule.when["ci"]:
        return False
    return True


def resolve(rules: Iterable[ExclusionRule], host: HostInfo) -> list[Exclusion]:
    """Evaluate each rule's platform condition once, for the given host."""
    return [Exclusion(r.package, r.test, rule_applies(r, host)) for r in rules]


def filter_excluded_tests(
    package: str, test_names: list[str], exclusions: Iterable[Exclusion]
) -> tuple[bool, list[str], list[str]]:
    """Split a package's tests into the ones to run and the excluded ones.

    Returns whether the package should run at all, the tests to run and the
    excluded tests. When nothing is excluded the full list is returned
    unchanged.
    """
    rules = list(exclusions)
    excluded = [
        name for name in test_names if any(e.matches(package, name) for e in rules)
    ]
    if not excluded:
        return True, list(test_names), []

    skip = set(excluded)
    remaining = [name for name in test_names if name not in skip]
    return len(remaining) > 0, remaining, excluded


def describe_exclusions(exclusions: Iterable[Exclusion]) -> list[str]:
    return [
        f"pkg: {e.package.pattern}, name: {e.test.pattern}"
        for e in exclusions
        if e.applies
    ]

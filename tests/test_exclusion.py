import re

from testforge.config.types import ExclusionRule
from testforge.dispatch import Exclusion, describe_exclusions, filter_excluded_tests, resolve
from testforge.dispatch.exclusion import rule_applies
from testforge.host import HostInfo

LINUX = HostInfo("linux", "amd64", False)
DARWIN_CI = HostInfo("darwin", "arm64", True)


def _rule(pkg: str, test: str = ".*", **kwargs) -> ExclusionRule:
    return ExclusionRule(re.compile(pkg), re.compile(test), **kwargs)


def test_nothing_excluded_runs_every_test():
    rules = [Exclusion.new("other/pkg", ".*", True)]
    assert filter_excluded_tests("a/pkg", ["TestA", "TestB"], rules) == (
        True,
        ["TestA", "TestB"],
        [],
    )


def test_some_tests_excluded():
    rules = [Exclusion.new("a/pkg", "^TestB$", True)]
    run, remaining, excluded = filter_excluded_tests("a/pkg", ["TestA", "TestB", "TestC"], rules)
    assert run
    assert remaining == ["TestA", "TestC"]
    assert excluded == ["TestB"]


def test_all_tests_excluded_skips_package():
    rules = [Exclusion.new("a/pkg", ".*", True)]
    assert filter_excluded_tests("a/pkg", ["TestA"], rules) == (False, [], ["TestA"])


def test_rule_that_does_not_apply_is_ignored():
    rules = [Exclusion.new("a/pkg", ".*", False)]
    assert filter_excluded_tests("a/pkg", ["TestA"], rules) == (True, ["TestA"], [])


def test_filtering_is_idempotent():
    rules = [Exclusion.new("a/", "^TestB", True)]
    _, once, _ = filter_excluded_tests("a/pkg", ["TestA", "TestB1", "TestB2", "TestC"], rules)
    _, twice, excluded = filter_excluded_tests("a/pkg", once, rules)
    assert once == twice == ["TestA", "TestC"]
    assert excluded == []


def test_rule_conditions():
    assert rule_applies(_rule("x"), LINUX)
    assert not rule_applies(_rule("x", enabled=False), LINUX)
    assert rule_applies(_rule("x", when={"os": ["darwin"]}), DARWIN_CI)
    assert not rule_applies(_rule("x", when={"os": ["darwin"]}), LINUX)
    assert not rule_applies(_rule("x", when={"os": ["darwin"], "arch": ["amd64"]}), DARWIN_CI)
    assert rule_applies(_rule("x", when={"ci": True}), DARWIN_CI)
    assert not rule_applies(_rule("x", when={"ci": True}), LINUX)


def test_resolve_and_describe():
    rules = [
        _rule("example.com/net", "^TestDial$"),
        _rule("example.com/mac", when={"os": ["darwin"]}),
    ]
    resolved = resolve(rules, LINUX)
    assert [e.applies for e in resolved] == [True, False]
    assert describe_exclusions(resolved) == ["pkg: example.com/net, name: ^TestDial$"]

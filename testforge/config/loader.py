import json
import re
import tomllib
from pathlib import Path
from typing import Any, Mapping

import yaml

from .duration import parse_duration
from .types import (
    SUITE_KINDS,
    ConfigError,
    ExclusionRule,
    ProjectConfig,
    ProjectEntry,
    Settings,
    SuiteConfig,
    UnsupportedConfigFormatError,
)

_SUITE_KEYS = {
    "kind",
    "deps",
    "packages",
    "command",
    "env",
    "working_dir",
    "timeout",
    "args",
    "non_test_args",
    "test_pattern",
    "suffix",
    "exclusions",
    "parts",
    "prebuild",
}
_RULE_KEYS = {"package", "test", "when", "enabled", "reason"}
_WHEN_KEYS = {"os", "arch", "ci"}
_SETTINGS_KEYS = {
    "go",
    "num_workers",
    "output_dir",
    "work_root",
    "clean_go",
    "timeout_grace",
    "stagger",
}


def load_project(path: str | Path) -> ProjectConfig:
    pure_path = Path(path).expanduser().resolve()

    if not pure_path.exists():
        raise ConfigError(f"Config file not found: {pure_path}")

    if not pure_path.is_file():
        raise ConfigError(f"Config path is not a file: {pure_path}")

    fmt = _detect_format(pure_path)
    raw_file = _parse_file(pure_path, fmt)
    project = build_project_config(raw_file)
    return project


def _detect_format(path: Path) -> str:
    fmt = path.suffix
    match fmt:
        case ".yaml" | ".yml":
            return "yaml"
        case ".toml":
            return "toml"
        case ".json":
            return "json"
        case _:
            raise UnsupportedConfigFormatError(
                f"Non supported file extension: {fmt}\n Expected format: .yml/.yaml, .toml, .json"
            )


def _parse_file(path: Path, fmt: str) -> Mapping[str, Any]:
    match fmt:
        case "yaml":
            return _parse_yaml(path)
        case "toml":
            return _parse_toml(path)
        case "json":
            return _parse_json(path)
        case _:
            raise AssertionError("Unreachable")


def _parse_yaml(path: Path) -> Mapping[str, Any]:
    try:
        raw_file = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML") from exc

    if not isinstance(raw_file, Mapping):
        raise ConfigError(
            f"{path}: YAML parsed successfully but top-level value is not an object: {type(raw_file)}"
        )

    return raw_file


def _parse_toml(path: Path) -> Mapping[str, Any]:
    try:
        raw_file = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: invalid TOML") from exc

    return raw_file


def _parse_json(path: Path) -> Mapping[str, Any]:
    try:
        raw_file = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON") from exc

    if not isinstance(raw_file, Mapping):
        raise ConfigError(
            f"{path}: JSON parsed successfully but top-level value is not an object: {type(raw_file)}"
        )

    return raw_file


def build_project_config(raw: Mapping[str, Any]) -> ProjectConfig:
    suites = {}

    for key in raw.keys():
        if key not in {"suites", "exclusions", "projects", "settings"}:
            raise ConfigError(f"Can't process top-level field: {key}")

    if "suites" not in raw:
        raise ConfigError("Missing 'suites' field")

    if not isinstance(raw["suites"], Mapping):
        raise ConfigError(f"'suites' must be a mapping, got {type(raw['suites'])}")

    if len(raw["suites"]) < 1:
        raise ConfigError("There must be at least one suite in the config file")

    exclusions = _build_exclusion_tables(raw.get("exclusions", {}))

    for name, fields in raw["suites"].items():
        if not isinstance(name, str):
            raise ConfigError(f"Suite name must be a string, got {type(name)}")

        if not isinstance(fields, Mapping):
            raise ConfigError(f"{name} must be a mapping")

        name_norm = name.strip()

        if len(name_norm) < 1:
            raise ConfigError("A suite name can't be empty")

        if name_norm in suites:
            raise ConfigError(f"Duplicate suite name after normalization: {name_norm}")

        suites[name_norm] = _build_suite_config(name_norm, fields)

    for suite in suites.values():
        for dep in suite.deps:
            if dep not in suites:
                raise ConfigError(f"Suite '{suite.name}' has unknown dependency '{dep}'")
        for table in suite.exclusions:
            if table not in exclusions:
                raise ConfigError(
                    f"Suite '{suite.name}' refers to unknown exclusion table '{table}'"
                )

    projects = _build_projects(raw.get("projects", {}), suites)
    settings = _build_settings(raw.get("settings", {}))

    return ProjectConfig(
        suites=suites, exclusions=exclusions, projects=projects, settings=settings
    )


def _string_list(owner: str, key: str, value: Any) -> list[str]:
    if not isinstance(value, list):
        raise ConfigError(f"{owner}: '{key}' should be a list")

    out = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"{owner}: {item!r} should be a string in '{key}'")
        out.append(item)
    return out


def _non_empty_string(owner: str, key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{owner}: '{key}' should be a string")

    if len(value.strip()) < 1:
        raise ConfigError(f"{owner}: '{key}' can't be empty")

    return value.strip()


def _regex(owner: str, key: str, value: Any) -> re.Pattern[str]:
    pattern = _non_empty_string(owner, key, value)
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigError(f"{owner}: invalid regular expression in '{key}': {exc}") from exc


def _duration(owner: str, key: str, value: Any) -> float:
    try:
        return parse_duration(value)
    except ConfigError as exc:
        raise ConfigError(f"{owner}: '{key}': {exc}") from exc


def _bool(owner: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{owner}: '{key}' should be a boolean")
    return value


def _build_suite_config(name: str, fields: Mapping[str, Any]) -> SuiteConfig:
    deps = []
    seen = set()
    env = {}

    for key in fields.keys():
        if key not in _SUITE_KEYS:
            raise ConfigError(f"{name}: Can't process: {key}")

    if "kind" not in fields:
        raise ConfigError(f"{name}: missing 'kind'")

    kind = fields["kind"]
    if kind not in SUITE_KINDS:
        raise ConfigError(f"{name}: unknown kind {kind!r}, expected one of {', '.join(SUITE_KINDS)}")

    suite = SuiteConfig(name=name, kind=kind)

    if kind == "command":
        if "command" not in fields:
            raise ConfigError(f"{name}: missing 'command'")
        suite.command = _non_empty_string(name, "command", fields["command"])
    else:
        if "command" in fields:
            raise ConfigError(f"{name}: 'command' is only valid for command suites")
        if "packages" not in fields:
            raise ConfigError(f"{name}: missing 'packages'")
        packages = [p.strip() for p in _string_list(name, "packages", fields["packages"])]
        if not packages or any(len(p) < 1 for p in packages):
            raise ConfigError(f"{name}: 'packages' must list at least one non-empty pattern")
        suite.packages = packages

    if "deps" in fields:
        for item in _string_list(name, "deps", fields["deps"]):
            dep = item.strip()

            if len(dep) < 1:
                raise ConfigError(f"{name}: A dependency is empty")

            if dep == name:
                raise ConfigError(f"{name}: A suite cannot be self dependent")

            # Allows to ignore duplicates dependency
            if dep in seen:
                continue

            deps.append(dep)
            seen.add(dep)
    suite.deps = deps

    if "env" in fields:
        if not isinstance(fields["env"], Mapping):
            raise ConfigError(f"{name}: Env should be a mapping")

        for key, item in fields["env"].items():
            if not isinstance(key, str):
                raise ConfigError(f"{name}: {key} should be a string")

            if len(key.strip()) < 1:
                raise ConfigError(f"{name}: A key can't be empty")

            if not isinstance(item, str):
                raise ConfigError(f"{name}: {item} should be a string")

            env[key.strip()] = item
    suite.env = env

    if "working_dir" in fields:
        suite.working_dir = _non_empty_string(name, "working_dir", fields["working_dir"])

    if "timeout" in fields:
        suite.timeout = _duration(name, "timeout", fields["timeout"])

    if "args" in fields:
        suite.args = _string_list(name, "args", fields["args"])

    if "non_test_args" in fields:
        suite.non_test_args = _string_list(name, "non_test_args", fields["non_test_args"])

    if "test_pattern" in fields:
        suite.test_pattern = _regex(name, "test_pattern", fields["test_pattern"])

    if "suffix" in fields:
        if not isinstance(fields["suffix"], str):
            raise ConfigError(f"{name}: 'suffix' should be a string")
        suite.suffix = fields["suffix"].strip()

    if "exclusions" in fields:
        suite.exclusions = [t.strip() for t in _string_list(name, "exclusions", fields["exclusions"])]

    if "parts" in fields:
        suite.parts = _string_list(name, "parts", fields["parts"])

    if "prebuild" in fields:
        suite.prebuild = _bool(name, "prebuild", fields["prebuild"])

    return suite


def _build_exclusion_tables(raw: Any) -> dict[str, list[ExclusionRule]]:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"'exclusions' must be a mapping, got {type(raw)}")

    tables = {}
    for table, rules in raw.items():
        if not isinstance(table, str) or len(table.strip()) < 1:
            raise ConfigError(f"Exclusion table name must be a non-empty string, got {table!r}")

        if not isinstance(rules, list):
            raise ConfigError(f"exclusions.{table}: should be a list of rules")

        owner = f"exclusions.{table.strip()}"
        tables[table.strip()] = [_build_rule(owner, rule) for rule in rules]

    return tables


def _build_rule(owner: str, fields: Any) -> ExclusionRule:
    if not isinstance(fields, Mapping):
        raise ConfigError(f"{owner}: every rule must be a mapping")

    for key in fields.keys():
        if key not in _RULE_KEYS:
            raise ConfigError(f"{owner}: Can't process: {key}")

    if "package" not in fields:
        raise ConfigError(f"{owner}: missing 'package'")

    rule = ExclusionRule(
        package=_regex(owner, "package", fields["package"]),
        test=_regex(owner, "test", fields.get("test", ".*")),
    )

    if "when" in fields:
        when = fields["when"]
        if not isinstance(when, Mapping):
            raise ConfigError(f"{owner}: 'when' should be a mapping")
        for key, value in when.items():
            if key not in _WHEN_KEYS:
                raise ConfigError(f"{owner}: Can't process condition: {key}")
            if key == "ci":
                rule.when[key] = _bool(owner, "when.ci", value)
            elif isinstance(value, str):
                rule.when[key] = [value]
            else:
                rule.when[key] = _string_list(owner, f"when.{key}", value)

    if "enabled" in fields:
        rule.enabled = _bool(owner, "enabled", fields["enabled"])

    if "reason" in fields:
        if not isinstance(fields["reason"], str):
            raise ConfigError(f"{owner}: 'reason' should be a string")
        rule.reason = fields["reason"]

    return rule


def _build_projects(raw: Any, suites: Mapping[str, SuiteConfig]) -> dict[str, ProjectEntry]:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"'projects' must be a mapping, got {type(raw)}")

    projects = {}
    for name, fields in raw.items():
        if not isinstance(name, str) or len(name.strip()) < 1:
            raise ConfigError(f"Project name must be a non-empty string, got {name!r}")

        owner = f"projects.{name.strip()}"
        if not isinstance(fields, Mapping):
            raise ConfigError(f"{owner}: must be a mapping")

        for key in fields.keys():
            if key not in {"tests", "path"}:
                raise ConfigError(f"{owner}: Can't process: {key}")

        tests = [t.strip() for t in _string_list(owner, "tests", fields.get("tests", []))]
        for test in tests:
            if test not in suites:
                raise ConfigError(f"{owner}: unknown suite '{test}'")

        path = None
        if "path" in fields:
            path = _non_empty_string(owner, "path", fields["path"])

        projects[name.strip()] = ProjectEntry(name=name.strip(), tests=tests, path=path)

    return projects


def _build_settings(raw: Any) -> Settings:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"'settings' must be a mapping, got {type(raw)}")

    for key in raw.keys():
        if key not in _SETTINGS_KEYS:
            raise ConfigError(f"settings: Can't process: {key}")

    settings = Settings()

    if "go" in raw:
        settings.go = _non_empty_string("settings", "go", raw["go"])

    if "num_workers" in raw:
        workers = raw["num_workers"]
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            raise ConfigError("settings: 'num_workers' should be a positive integer")
        settings.num_workers = workers

    if "output_dir" in raw:
        settings.output_dir = _non_empty_string("settings", "output_dir", raw["output_dir"])

    if "work_root" in raw:
        settings.work_root = _non_empty_string("settings", "work_root", raw["work_root"])

    if "clean_go" in raw:
        settings.clean_go = _bool("settings", "clean_go", raw["clean_go"])

    if "timeout_grace" in raw:
        settings.timeout_grace = _duration("settings", "timeout_grace", raw["timeout_grace"])

    if "stagger" in raw:
        settings.stagger = _duration("settings", "stagger", raw["stagger"])

    return settings

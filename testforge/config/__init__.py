from .duration import format_duration, parse_duration
from .loader import build_project_config, load_project
from .types import (
    ConfigError,
    ExclusionRule,
    ProjectConfig,
    ProjectEntry,
    Settings,
    SuiteConfig,
    UnsupportedConfigFormatError,
)

__all__ = [
    "load_project",
    "build_project_config",
    "parse_duration",
    "format_duration",
    "ProjectConfig",
    "ProjectEntry",
    "Settings",
    "SuiteConfig",
    "ExclusionRule",
    "ConfigError",
    "UnsupportedConfigFormatError",
]

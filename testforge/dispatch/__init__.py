from .classify import classify, is_build_failure
from .dispatcher import EXCLUDED_OUTPUT, Dispatcher
from .exclusion import Exclusion, describe_exclusions, filter_excluded_tests, resolve
from .types import Task, TaskResult, TaskStatus

__all__ = [
    "Dispatcher",
    "EXCLUDED_OUTPUT",
    "Exclusion",
    "Task",
    "TaskResult",
    "TaskStatus",
    "classify",
    "describe_exclusions",
    "filter_excluded_tests",
    "is_build_failure",
    "resolve",
]

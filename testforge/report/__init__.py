from .cobertura import CoverageError, cobertura_path, merge_profiles, parse_profile, write_cobertura
from .gotest import (
    build_output,
    json_build_failed,
    skipped_tests,
    suite_from_build_output,
    suites_from_test_output,
)
from .xunit import (
    Failure,
    ReportError,
    TestCase,
    TestSuite,
    create_suite_with_failure,
    read_report,
    report_for_error,
    report_path,
    write_report,
)

__all__ = [
    "Failure",
    "TestCase",
    "TestSuite",
    "ReportError",
    "CoverageError",
    "create_suite_with_failure",
    "read_report",
    "write_report",
    "report_for_error",
    "report_path",
    "suites_from_test_output",
    "suite_from_build_output",
    "skipped_tests",
    "build_output",
    "json_build_failed",
    "cobertura_path",
    "merge_profiles",
    "parse_profile",
    "write_cobertura",
]

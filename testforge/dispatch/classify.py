from testforge.report.gotest import json_build_failed

from .types import TaskStatus

BUILD_FAILURE_EXIT_CODE = 2
TEST_TIMEOUT_MARKER = "panic: test timed out"


def is_build_failure(returncode: int | None, output: str, package: str) -> bool:
    """Tell a build failure from a test failure for a `go test` run of package."""
    header = f"# {package}"
    if returncode == BUILD_FAILURE_EXIT_CODE:
        return True
    if returncode and json_build_failed(output):
        return True
    if returncode == 1:
        # Exit code 1 is a test failure unless the package failed to set up.
        return output.startswith(header) and output.endswith("[setup failed]\n")
    return output.startswith(header)


def classify(returncode: int, output: str, package: str) -> TaskStatus:
    if returncode == 0:
        return TaskStatus.TEST_PASSED
    if is_build_failure(returncode, output, package):
        return TaskStatus.BUILD_FAILED
    if TEST_TIMEOUT_MARKER in output:
        return TaskStatus.TIMED_OUT
    return TaskStatus.TEST_FAILED

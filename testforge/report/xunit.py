"""xUnit report model and XML serialization."""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Number of trailing output lines kept in an error report.
NUM_LINES_TO_OUTPUT = 50

_INVALID_XML_RE = re.compile("[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


class ReportError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


@dataclass
class Failure:
    message: str
    data: str = ""


@dataclass
class TestCase:
    __test__ = False

    classname: str
    name: str
    time: float = 0.0
    failures: list[Failure] = field(default_factory=list)
    errors: list[Failure] = field(default_factory=list)
    skipped: bool = False


@dataclass
class TestSuite:
    __test__ = False

    name: str
    cases: list[TestCase] = field(default_factory=list)
    time: float = 0.0

    @property
    def tests(self) -> int:
        return len(self.cases)

    @property
    def failures(self) -> int:
        return sum(1 for c in self.cases if c.failures)

    @property
    def errors(self) -> int:
        return sum(1 for c in self.cases if c.errors)

    @property
    def skip(self) -> int:
        return sum(1 for c in self.cases if c.skipped)


def report_path(output_dir: str | Path, name: str) -> Path:
    return Path(output_dir) / f"tests_{name.replace('-', '_')}.xml"


def create_suite_with_failure(
    pkg: str, name: str, message: str, data: str, duration: float
) -> TestSuite:
    case = TestCase(classname=pkg, name=name, time=duration, failures=[Failure(message, data)])
    return TestSuite(name=pkg, cases=[case], time=duration)


def tail(output: str, n: int = NUM_LINES_TO_OUTPUT) -> str:
    lines = output.split("\n")
    return "......\n" + "\n".join(lines[max(0, len(lines) - n):])


def _clean(text: str) -> str:
    return _INVALID_XML_RE.sub("", text)


def to_element(suites: list[TestSuite]) -> ET.Element:
    root = ET.Element("testsuites")
    for suite in suites:
        s = ET.SubElement(
            root,
            "testsuite",
            name=_clean(suite.name),
            tests=str(suite.tests),
            failures=str(suite.failures),
            errors=str(suite.errors),
            skip=str(suite.skip),
            time=f"{suite.time:.2f}",
        )
        for case in suite.cases:
            c = ET.SubElement(
                s,
                "testcase",
                classname=_clean(case.classname),
                name=_clean(case.name),
                time=f"{case.time:.2f}",
            )
            for tag, entries in (("failure", case.failures), ("error", case.errors)):
                for entry in entries:
                    f = ET.SubElement(c, tag, message=_clean(entry.message), type="")
                    f.text = _clean(entry.data)
            if case.skipped:
                ET.SubElement(c, "skipped")
    return root


def write_report(path: str | Path, suites: list[TestSuite]) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    tree = ET.ElementTree(to_element(suites))
    ET.indent(tree)
    tree.write(out, encoding="utf-8", xml_declaration=True)
    logger.info("wrote xUnit report %s", out)
    return out


def _float(value: str | None) -> float:
    try:
        return float(value or 0)
    except ValueError:
        return 0.0


def read_report(path: str | Path) -> list[TestSuite]:
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise ReportError(f"{path}: invalid xUnit report") from exc

    elements = [root] if root.tag == "testsuite" else root.findall("testsuite")
    suites = []
    for s in elements:
        suite = TestSuite(name=s.get("name", ""), time=_float(s.get("time")))
        for c in s.findall("testcase"):
            suite.cases.append(
                TestCase(
                    classname=c.get("classname", ""),
                    name=c.get("name", ""),
                    time=_float(c.get("time")),
                    failures=[Failure(f.get("message", ""), f.text or "") for f in c.findall("failure")],
                    errors=[Failure(e.get("message", ""), e.text or "") for e in c.findall("error")],
                    skipped=c.find("skipped") is not None,
                )
            )
        suites.append(suite)
    return suites


def report_for_error(
    path: str | Path, name: str, error_type: str, error: str, output: str
) -> bool:
    """Write a single-failure report for an error raised while running suite name.

    An existing valid report that already records failures is kept. Returns
    whether a new report was written.
    """
    existing = Path(path)
    if existing.is_file():
        try:
            suites = read_report(existing)
        except ReportError:
            suites = []
        if any(s.failures > 0 or s.errors > 0 for s in suites):
            return False

    message = f"Error message:\n{error}\n\nConsole output:\n{tail(output)}\n"
    write_report(existing, [create_suite_with_failure(name, error_type, error_type, message, 0.0)])
    return True

"""Go cover profiles to Cobertura XML."""

from __future__ import annotations

import logging
import posixpath
import re
import time
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

_BLOCK_RE = re.compile(r"^(.+):(\d+)\.(\d+),(\d+)\.(\d+) (\d+) (\d+)$")

# filename -> line number -> hits
Coverage = dict[str, dict[int, int]]


class CoverageError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


def cobertura_path(output_dir: str | Path, name: str) -> Path:
    return Path(output_dir) / f"cobertura_{name.replace('-', '_')}.xml"


def merge_profiles(profiles: Iterable[str], mode: str = "set") -> str:
    lines = [f"mode: {mode}"]
    for profile in profiles:
        for line in profile.splitlines():
            if line and not line.startswith("mode:"):
                lines.append(line)
    return "\n".join(lines) + "\n"


def parse_profile(text: str) -> Coverage:
    coverage: Coverage = {}
    for number, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("mode:"):
            continue
        m = _BLOCK_RE.match(line)
        if m is None:
            raise CoverageError(f"line {number}: malformed coverage block: {line!r}")

        filename = m.group(1)
        start, end = int(m.group(2)), int(m.group(4))
        statements, count = int(m.group(6)), int(m.group(7))
        hits = coverage.setdefault(filename, {})
        if statements == 0:
            continue
        for n in range(start, end + 1):
            hits[n] = max(hits.get(n, 0), count)
    return coverage


def _rate(lines: Iterable[dict[int, int]]) -> tuple[int, int, float]:
    valid = covered = 0
    for hits in lines:
        valid += len(hits)
        covered += sum(1 for count in hits.values() if count > 0)
    return valid, covered, (covered / valid if valid else 0.0)


def to_element(coverage: Coverage, sources: Iterable[str] = ()) -> ET.Element:
    valid, covered, rate = _rate(coverage.values())
    root = ET.Element(
        "coverage",
        {
            "line-rate": f"{rate:.4g}",
            "branch-rate": "0",
            "lines-covered": str(covered),
            "lines-valid": str(valid),
            "version": "",
            "timestamp": str(int(time.time() * 1000)),
        },
    )
    srcs = ET.SubElement(root, "sources")
    for source in sources:
        ET.SubElement(srcs, "source").text = source

    by_package: dict[str, list[str]] = {}
    for filename in sorted(coverage):
        by_package.setdefault(posixpath.dirname(filename), []).append(filename)

    packages = ET.SubElement(root, "packages")
    for pkg, filenames in by_package.items():
        _, _, pkg_rate = _rate(coverage[f] for f in filenames)
        p = ET.SubElement(
            packages,
            "package",
            {"name": pkg, "line-rate": f"{pkg_rate:.4g}", "branch-rate": "0", "complexity": "0"},
        )
        classes = ET.SubElement(p, "classes")
        for filename in filenames:
            _, _, file_rate = _rate([coverage[filename]])
            c = ET.SubElement(
                classes,
                "class",
                {
                    "name": posixpath.basename(filename),
                    "filename": filename,
                    "line-rate": f"{file_rate:.4g}",
                    "branch-rate": "0",
                    "complexity": "0",
                },
            )
            ET.SubElement(c, "methods")
            lines = ET.SubElement(c, "lines")
            for number in sorted(coverage[filename]):
                ET.SubElement(
                    lines,
                    "line",
                    {"number": str(number), "hits": str(coverage[filename][number])},
                )
    return root


def write_cobertura(path: str | Path, coverage: Coverage, sources: Iterable[str] = ()) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    tree = ET.ElementTree(to_element(coverage, sources))
    ET.indent(tree)
    tree.write(out, encoding="utf-8", xml_declaration=True)
    logger.info("wrote Cobertura report %s", out)
    return out

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable

from testforge.config.types import ProjectConfig

from .types import CycleError


class _Visit(Enum):
    UNVISITED = auto()
    VISITING = auto()
    VISITED = auto()


@dataclass(frozen=True)
class SuiteGraph:
    project: ProjectConfig
    _deps: dict[str, tuple[str, ...]]

    @classmethod
    def from_project(cls, project: ProjectConfig) -> SuiteGraph:
        deps = {}
        for name in project.suite_names():
            suite = project.get_suite(name)
            deps[name] = tuple(sorted(suite.deps))

        graph = cls(project, deps)
        # Fail on cycles up front, before any suite runs.
        graph.topo_order()
        return graph

    def deps_of(self, name: str) -> tuple[str, ...]:
        return self._deps[name]

    def topo_order(self) -> list[str]:
        return self._toposort(set(self._deps))

    def order_for(self, names: Iterable[str]) -> list[str]:
        """Order exactly the given suites; dependencies outside the set are ignored."""
        universe = set()
        for name in names:
            if name not in self._deps:
                raise KeyError(name)
            universe.add(name)

        return self._toposort(universe)

    def _toposort(self, universe: set[str]) -> list[str]:
        state = {name: _Visit.UNVISITED for name in universe}
        out: list[str] = []
        stack: list[str] = []
        pos: dict[str, int] = {}

        def visit(name: str) -> None:
            if state[name] == _Visit.VISITING:
                start = pos[name]
                raise CycleError(stack[start:] + [name])
            if state[name] == _Visit.VISITED:
                return

            state[name] = _Visit.VISITING
            pos[name] = len(stack)
            stack.append(name)

            for dep in self._deps[name]:
                if dep in state:
                    visit(dep)

            stack.pop()
            pos.pop(name)
            state[name] = _Visit.VISITED
            out.append(name)

        for name in sorted(universe):
            visit(name)

        return out

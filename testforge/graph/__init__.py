from .dag import SuiteGraph
from .types import CycleError, GraphError

__all__ = ["SuiteGraph", "GraphError", "CycleError"]

from .runner import Runner
from .types import RunResult

__all__ = ["Runner", "RunResult"]

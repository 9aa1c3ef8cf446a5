"""Config rewriting and execution of the UDLF binary."""

from .driver import ExecutionDriver, ExecutionResult, ExecutionService
from .rewriter import PathRewriter, PreparedConfig, remove_scratch, substitute_all

__all__ = [
    "ExecutionDriver",
    "ExecutionResult",
    "ExecutionService",
    "PathRewriter",
    "PreparedConfig",
    "remove_scratch",
    "substitute_all",
]

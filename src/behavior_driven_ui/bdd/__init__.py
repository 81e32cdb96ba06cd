from .bundle import ParameterType, SupportBundle, SupportCoordinates
from .composer import compose
from .support_builder import SupportBuilder, resolve_step_files, resolve_support_builder
from .steps import BehaviorDrivenWorld, build_builtin_bundle
from .runner import ExecuteRunResult, RunResult, execute_run, run_features

__all__ = [
    "ParameterType",
    "SupportBundle",
    "SupportCoordinates",
    "compose",
    "SupportBuilder",
    "resolve_step_files",
    "resolve_support_builder",
    "BehaviorDrivenWorld",
    "build_builtin_bundle",
    "ExecuteRunResult",
    "RunResult",
    "execute_run",
    "run_features",
]

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

HOOK_KINDS = ("all", "feature", "scenario", "step")
HOOK_PHASES = ("before", "after")
STEP_KEYWORDS = ("given", "when", "then", "step")

DEFAULT_TIMEOUT_MS = 5000

ParallelPredicate = Callable[[Any, Any], bool]


def hook_names() -> List[str]:
    """behave hook names covered by a bundle, e.g. before_scenario"""
    return [f"{phase}_{kind}" for kind in HOOK_KINDS for phase in HOOK_PHASES]


def empty_hooks() -> Dict[str, List[Callable]]:
    return {name: [] for name in hook_names()}


def empty_steps() -> Dict[str, List[Any]]:
    return {keyword: [] for keyword in STEP_KEYWORDS}


def allow_any_assignment(scenario: Any, running: Any) -> bool:
    return True


@dataclass
class ParameterType:
    """A named parse type converter and where it was registered"""
    name: str
    converter: Callable[[str], Any]
    source: str = "<unknown>"


@dataclass
class SupportCoordinates:
    """Where a bundle's code was loaded from"""
    paths: List[str] = field(default_factory=list)
    modules: List[str] = field(default_factory=list)
    loaders: List[str] = field(default_factory=list)


@dataclass
class SupportBundle:
    """
    Everything behave needs to run scenarios: hooks, step matchers,
    parse types, the world class and scheduling policy.

    step_definitions maps a behave step keyword to its matchers in
    registration order. hooks maps behave hook names to functions that
    take (context, *args).
    """
    hooks: Dict[str, List[Callable]] = field(default_factory=empty_hooks)
    step_definitions: Dict[str, List[Any]] = field(default_factory=empty_steps)
    parameter_types: Dict[str, ParameterType] = field(default_factory=dict)
    world_constructor: Optional[Callable[..., Any]] = None
    custom_world_provided: bool = False
    parallel_can_assign: ParallelPredicate = allow_any_assignment
    default_timeout: int = DEFAULT_TIMEOUT_MS
    coordinates: SupportCoordinates = field(default_factory=SupportCoordinates)

    def add_hook(self, name: str, func: Callable) -> None:
        if name not in self.hooks:
            raise ValueError(f"Unknown hook {name!r}; expected one of {', '.join(hook_names())}")
        self.hooks[name].append(func)

    def step_count(self) -> int:
        return sum(len(matchers) for matchers in self.step_definitions.values())

    def step_signatures(self) -> List[Tuple[str, str]]:
        """(keyword, pattern) for every step matcher, in order"""
        return [
            (keyword, matcher.pattern)
            for keyword, matchers in self.step_definitions.items()
            for matcher in matchers
        ]

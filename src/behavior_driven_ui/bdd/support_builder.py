"""
Narrow adapter over the behave internals this package relies on.

behave keeps its step registry and parse-type registry as module globals.
SupportBuilder locates both once, by feature detection, and offers the
few operations the runner needs: loading user support files into a
bundle, installing parameter types and building a private step registry.
"""
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, MutableMapping, Optional, Sequence, Tuple, Union
import glob
import importlib
import logging
import os
import re

from behave.matchers import use_default_step_matcher, use_step_matcher
from behave.runner_util import PathManager, exec_file

from ..core.exceptions import ConfigFileLoadError, ExtensionPointUnavailableError
from .bundle import STEP_KEYWORDS, ParameterType, SupportBundle, hook_names

logger = logging.getLogger(__name__)

STEP_REGISTRY_LOCATIONS = (
    ("behave.step_registry", "registry"),
    ("behave.runner", "the_step_registry"),
)

TYPE_REGISTRY_LOCATIONS = (
    ("behave.matchers", "ParseMatcher.TYPE_REGISTRY"),
    ("behave.matchers", "ParseMatcher.custom_types"),
)

MODULE_ATTRIBUTES = ("world_constructor", "parallel_can_assign", "default_timeout")

_BRACES = re.compile(r"\{([^{}]*)\}")


def _lookup(module_name: str, dotted: str) -> Any:
    target = importlib.import_module(module_name)
    for part in dotted.split("."):
        target = getattr(target, part)
    return target


def _locate(name: str, locations: Sequence[Tuple[str, str]], accept) -> Any:
    tried = []
    for module_name, attribute in locations:
        location = f"{module_name}.{attribute}"
        tried.append(location)
        try:
            candidate = _lookup(module_name, attribute)
        except (ImportError, AttributeError):
            continue
        if accept(candidate):
            logger.debug(f"Resolved {name} at {location}")
            return candidate
    raise ExtensionPointUnavailableError(name, tried)


def _is_step_registry(candidate: Any) -> bool:
    steps = getattr(candidate, "steps", None)
    return (
        isinstance(steps, dict)
        and all(keyword in steps for keyword in STEP_KEYWORDS)
        and callable(getattr(candidate, "make_decorator", None))
    )


def _is_type_registry(candidate: Any) -> bool:
    return isinstance(candidate, MutableMapping)


class SupportBuilder:
    """Operations on behave's global registries"""

    def __init__(self, step_registry: Any, type_registry: MutableMapping):
        self.step_registry = step_registry
        self.type_registry = type_registry

    # Registries

    @contextmanager
    def isolated_steps(self) -> Iterator[Dict[str, List[Any]]]:
        """Swap in an empty step table; yields the table decorators write to"""
        saved = self.step_registry.steps
        fresh = {keyword: [] for keyword in STEP_KEYWORDS}
        self.step_registry.steps = fresh
        try:
            yield fresh
        finally:
            self.step_registry.steps = saved

    @contextmanager
    def parameter_types_installed(
        self,
        parameter_types: Mapping[str, ParameterType],
        override: bool = True,
    ) -> Iterator[None]:
        """Register parameter types for the duration of the block"""
        saved = dict(self.type_registry)
        self.install_parameter_types(parameter_types, override=override)
        try:
            yield
        finally:
            self.type_registry.clear()
            self.type_registry.update(saved)

    def install_parameter_types(
        self,
        parameter_types: Mapping[str, ParameterType],
        override: bool = True,
    ) -> None:
        for name, parameter_type in parameter_types.items():
            if not override and name in self.type_registry:
                continue
            self.type_registry[name] = parameter_type.converter
            logger.debug(f"Registered parameter type {name} from {parameter_type.source}")

    def make_step_registry(self, bundle: SupportBundle) -> Any:
        """A new registry of the installed behave flavour holding the bundle's steps, in order"""
        registry = type(self.step_registry)()
        registry.steps = {keyword: list(bundle.step_definitions.get(keyword, [])) for keyword in STEP_KEYWORDS}
        return registry

    def step_globals(self, module_name: str) -> Dict[str, Any]:
        """Globals a support file runs with: behave's step decorators plus use_step_matcher"""
        namespace: Dict[str, Any] = {"__name__": module_name, "use_step_matcher": use_step_matcher}
        for keyword in STEP_KEYWORDS:
            decorator = self.step_registry.make_decorator(keyword)
            namespace[keyword] = namespace[keyword.title()] = decorator
        return namespace

    # Loading

    def load_user_bundle(
        self,
        step_files: Iterable[Union[str, Path]],
        base_types: Optional[Mapping[str, ParameterType]] = None,
    ) -> SupportBundle:
        """
        Execute the user's support files and harvest what they register.

        base_types are visible while the files load (so user steps may
        use builtin types) but are not reported as user types.

        Raises:
            ConfigFileLoadError: a support file raised while executing
        """
        bundle = SupportBundle()

        with self.parameter_types_installed(base_types or {}, override=False):
            with self.isolated_steps() as steps:
                for index, step_file in enumerate(step_files):
                    self._load_support_file(Path(step_file), index, bundle)
            bundle.step_definitions = steps

        logger.info(
            f"Loaded {bundle.step_count()} user steps, "
            f"{sum(len(hooks) for hooks in bundle.hooks.values())} hooks, "
            f"{len(bundle.parameter_types)} parameter types"
        )
        return bundle

    def _load_support_file(self, path: Path, index: int, bundle: SupportBundle) -> None:
        module_name = f"bdui_support_{index}_{path.stem}"
        namespace = self.step_globals(module_name)
        types_before = dict(self.type_registry)

        logger.debug(f"Loading support file {path}")
        try:
            with PathManager([str(path.parent)]):
                exec_file(str(path), namespace)
        except Exception as e:
            raise ConfigFileLoadError(f"Failed to load support file {path}: {e}", str(path), cause=e) from e
        finally:
            use_default_step_matcher()

        for name, converter in self.type_registry.items():
            if types_before.get(name) is not converter:
                bundle.parameter_types[name] = ParameterType(name, converter, source=str(path))

        for hook_name in hook_names():
            hook = namespace.get(hook_name)
            if callable(hook) and getattr(hook, "__module__", None) == module_name:
                bundle.add_hook(hook_name, hook)

        if "world_constructor" in namespace:
            bundle.world_constructor = namespace["world_constructor"]
            bundle.custom_world_provided = True
        if "parallel_can_assign" in namespace:
            bundle.parallel_can_assign = namespace["parallel_can_assign"]
        if "default_timeout" in namespace:
            bundle.default_timeout = int(namespace["default_timeout"])

        bundle.coordinates.paths.append(str(path))
        bundle.coordinates.modules.append(module_name)
        if "exec_file" not in bundle.coordinates.loaders:
            bundle.coordinates.loaders.append("exec_file")


_builder: Optional[SupportBuilder] = None


def resolve_support_builder(refresh: bool = False) -> SupportBuilder:
    """
    Locate behave's registries once per process.

    Raises:
        ExtensionPointUnavailableError: neither known location exists
    """
    global _builder
    if _builder is None or refresh:
        step_registry = _locate("step registry", STEP_REGISTRY_LOCATIONS, _is_step_registry)
        type_registry = _locate("parse type registry", TYPE_REGISTRY_LOCATIONS, _is_type_registry)
        _builder = SupportBuilder(step_registry, type_registry)
    return _builder


def expand_braces(pattern: str) -> List[str]:
    """'steps/*.{py,pyw}' -> ['steps/*.py', 'steps/*.pyw']"""
    match = _BRACES.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[:match.start()], pattern[match.end():]
    expanded = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def expand_globs(root: Union[str, Path], patterns: Iterable[str], suffixes: Sequence[str]) -> List[Path]:
    """Files matching any pattern (relative to root), filtered by suffix, unique, in pattern order"""
    root = Path(root)
    seen = {}
    for pattern in patterns:
        for expanded in expand_braces(pattern):
            full = expanded if os.path.isabs(expanded) else str(root / expanded)
            for match in sorted(glob.glob(full, recursive=True)):
                path = Path(match).resolve()
                if path.is_file() and path.suffix in suffixes and path not in seen:
                    seen[path] = None
    return list(seen)


def resolve_step_files(root: Union[str, Path], patterns: Iterable[str]) -> List[Path]:
    return expand_globs(root, patterns, (".py",))


def resolve_feature_files(root: Union[str, Path], patterns: Iterable[str]) -> List[Path]:
    return expand_globs(root, patterns, (".feature",))

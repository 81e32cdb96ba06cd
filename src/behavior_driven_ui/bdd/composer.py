"""
Merge the builtin support bundle with the user's.

The builtin bundle always wraps the user's: its before hooks run first,
its after hooks run last. compose() performs no I/O and never raises
for well-formed bundles.
"""
from typing import Any, Dict, List
import logging

from .bundle import (
    HOOK_KINDS,
    ParallelPredicate,
    ParameterType,
    SupportBundle,
    SupportCoordinates,
)

logger = logging.getLogger(__name__)


def _compose_hooks(user: SupportBundle, builtin: SupportBundle) -> Dict[str, List]:
    hooks = {}
    for kind in HOOK_KINDS:
        before, after = f"before_{kind}", f"after_{kind}"
        hooks[before] = list(builtin.hooks.get(before, [])) + list(user.hooks.get(before, []))
        hooks[after] = list(user.hooks.get(after, [])) + list(builtin.hooks.get(after, []))
    return hooks


def _compose_steps(user: SupportBundle, builtin: SupportBundle) -> Dict[str, List[Any]]:
    steps = {}
    for keyword in dict.fromkeys([*builtin.step_definitions, *user.step_definitions]):
        user_matchers = list(user.step_definitions.get(keyword, []))
        user_patterns = {matcher.pattern for matcher in user_matchers}

        kept = []
        for matcher in builtin.step_definitions.get(keyword, []):
            if matcher.pattern in user_patterns:
                logger.warning(
                    f"User step @{keyword}('{matcher.pattern}') replaces the builtin step with the same pattern"
                )
                continue
            kept.append(matcher)
        steps[keyword] = kept + user_matchers
    return steps


def _compose_parameter_types(user: SupportBundle, builtin: SupportBundle) -> Dict[str, ParameterType]:
    types = dict(user.parameter_types)
    for name, parameter_type in builtin.parameter_types.items():
        if name in types:
            logger.warning(
                f"Parameter type {name!r} from {types[name].source} shadows the builtin one from {parameter_type.source}"
            )
            continue
        types[name] = parameter_type
    return types


def _compose_parallel(user: ParallelPredicate, builtin: ParallelPredicate) -> ParallelPredicate:
    def parallel_can_assign(scenario, running) -> bool:
        return builtin(scenario, running) and user(scenario, running)
    return parallel_can_assign


def _union(*groups: List[str]) -> List[str]:
    return list(dict.fromkeys(item for group in groups for item in group))


def _compose_coordinates(user: SupportCoordinates, builtin: SupportCoordinates) -> SupportCoordinates:
    return SupportCoordinates(
        paths=_union(builtin.paths, user.paths),
        modules=_union(builtin.modules, user.modules),
        loaders=_union(builtin.loaders, user.loaders),
    )


def compose(user: SupportBundle, builtin: SupportBundle) -> SupportBundle:
    """
    Merge two bundles into the single bundle handed to behave.

    Args:
        user: Bundle harvested from the project's support files
        builtin: Bundle produced by build_builtin_bundle()

    Returns:
        A new SupportBundle; neither input is modified
    """
    if user.custom_world_provided and user.world_constructor is not None:
        world_constructor = user.world_constructor
        logger.info(f"Using custom world {getattr(world_constructor, '__name__', world_constructor)}")
    else:
        world_constructor = builtin.world_constructor

    composed = SupportBundle(
        hooks=_compose_hooks(user, builtin),
        step_definitions=_compose_steps(user, builtin),
        parameter_types=_compose_parameter_types(user, builtin),
        world_constructor=world_constructor,
        custom_world_provided=user.custom_world_provided,
        parallel_can_assign=_compose_parallel(user.parallel_can_assign, builtin.parallel_can_assign),
        default_timeout=max(user.default_timeout, builtin.default_timeout),
        coordinates=_compose_coordinates(user.coordinates, builtin.coordinates),
    )
    logger.debug(
        f"Composed bundle: {composed.step_count()} steps, "
        f"{len(composed.parameter_types)} parameter types"
    )
    return composed

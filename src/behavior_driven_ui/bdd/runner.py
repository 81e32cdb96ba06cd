from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Union
import logging
import os
import random
import re
import threading

from behave.configuration import Configuration
from behave.formatter._registry import make_formatters
from behave.runner import ModelRunner
from behave.runner_util import parse_features

from ..core.config import ResolvedConfig
from ..core.config_loader import load_config
from ..core.exceptions import EnvironmentVariableError, RunTimeoutError
from ..core.server import ServerManager
from ..core.world import WorldConfig
from ..driver.factory import create_driver
from .bundle import SupportBundle, hook_names
from .composer import compose
from .steps import build_builtin_bundle
from .support_builder import SupportBuilder, resolve_feature_files, resolve_step_files, resolve_support_builder

logger = logging.getLogger(__name__)

ENV_KEY_PATTERN = re.compile(r"[A-Za-z0-9_]+")
TIMEOUT_GRACE_PERIOD = 5.0

FAILED_STATUSES = frozenset({"failed", "error", "hook_error", "cleanup_error", "undefined", "pending"})


@dataclass
class RunResult:
    """Outcome of one behave run"""
    success: bool
    features: int = 0
    failed_features: int = 0
    scenarios: int = 0
    failed_scenarios: int = 0
    seed: Optional[int] = None


@dataclass
class ExecuteRunResult:
    success: bool
    config: ResolvedConfig
    run: Optional[RunResult] = None
    server_url: Optional[str] = None
    step_files: List[Path] = field(default_factory=list)


# Environment

def validate_environment(environment: Mapping[str, str], file_path: Optional[str] = None) -> None:
    for key in environment:
        if not ENV_KEY_PATTERN.fullmatch(key):
            raise EnvironmentVariableError(key, file_path)


@contextmanager
def applied_environment(environment: Mapping[str, str]) -> Iterator[None]:
    """Set environment variables for the block, restoring or removing them afterwards"""
    previous = {key: os.environ.get(key) for key in environment}
    os.environ.update(environment)
    try:
        yield
    finally:
        for key, value in previous.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


# Hard timeout

class HardTimeout:
    """
    Backstop for runs that hang inside behave or the browser.

    When the timer fires it logs, gives on_expire up to `grace` seconds
    to clean up, then terminates the process with exit code 1.
    """

    def __init__(
        self,
        seconds: float,
        on_expire: Optional[Callable[[], None]] = None,
        grace: float = TIMEOUT_GRACE_PERIOD,
        exit_func: Callable[[int], None] = os._exit,
    ):
        self.seconds = seconds
        self.on_expire = on_expire
        self.grace = grace
        self.exit_func = exit_func
        self.expired = False
        self._timer: Optional[threading.Timer] = None

    def __enter__(self) -> "HardTimeout":
        self._timer = threading.Timer(self.seconds, self._expire)
        self._timer.daemon = True
        self._timer.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self) -> None:
        self.expired = True
        error = RunTimeoutError(f"Run exceeded the hard timeout of {self.seconds}s")
        logger.error(str(error))
        if self.on_expire is not None:
            cleanup = threading.Thread(target=self._cleanup, name="bdui-timeout-cleanup", daemon=True)
            cleanup.start()
            cleanup.join(self.grace)
        self.exit_func(1)

    def _cleanup(self) -> None:
        try:
            self.on_expire()
        except Exception as e:
            logger.error(f"Cleanup after timeout failed: {e}")


# behave integration

def make_world_factory(bundle: SupportBundle, config: ResolvedConfig) -> Callable[[], Any]:
    """Build worlds from the composed constructor, one per scenario"""
    world_config = WorldConfig.from_resolved(config, default_timeout=bundle.default_timeout)

    def driver_factory(settings: WorldConfig):
        return create_driver(settings, default_timeout=settings.default_timeout)

    def make_world():
        return bundle.world_constructor(config=world_config, driver_factory=driver_factory)

    return make_world


class BundleRunner(ModelRunner):
    """
    behave ModelRunner fed from a composed SupportBundle.

    Every hook name gets one dispatcher that runs the bundle's hooks in
    order. before_scenario first attaches a fresh world to the context.
    After-hooks all run even when one fails; the first error is re-raised.
    """

    def __init__(self, config, features, bundle: SupportBundle, step_registry, make_world: Callable[[], Any]):
        super().__init__(config, features=features, step_registry=step_registry)
        self.bundle = bundle
        self.make_world = make_world
        self.parallel_can_assign = bundle.parallel_can_assign
        for hook_name in hook_names():
            if bundle.hooks.get(hook_name) or hook_name == "before_scenario":
                self.hooks[hook_name] = self._make_dispatcher(hook_name)

    def _make_dispatcher(self, hook_name: str) -> Callable:
        hooks = list(self.bundle.hooks.get(hook_name, []))
        is_after = hook_name.startswith("after_")

        def dispatch(context, *args):
            if hook_name == "before_scenario":
                context.world = self.make_world()
            first_error = None
            for hook in hooks:
                if not is_after:
                    hook(context, *args)
                    continue
                try:
                    hook(context, *args)
                except Exception as e:
                    logger.error(f"{hook_name} hook {getattr(hook, '__name__', hook)} failed: {e}")
                    if first_error is None:
                        first_error = e
            if first_error is not None:
                raise first_error

        dispatch.__name__ = hook_name
        return dispatch


def make_behave_config(config: ResolvedConfig, formats: Optional[Sequence[str]] = None) -> Configuration:
    args: List[str] = []
    if config.behave.tag_expression:
        args += ["--tags", config.behave.tag_expression]
    for name in formats or []:
        args += ["--format", name]

    behave_config = Configuration(command_args=args, load_config=False)
    if not behave_config.format:
        behave_config.format = [behave_config.default_format]
    return behave_config


def apply_order(features: List[Any], order: str, seed: Optional[int] = None) -> Optional[int]:
    """Shuffle features and their scenarios in place for random order; returns the seed used"""
    if order != "random":
        return None
    if seed is None:
        seed = random.randrange(2 ** 32)
    rng = random.Random(seed)
    rng.shuffle(features)
    for feature in features:
        rng.shuffle(feature.run_items)
    logger.info(f"Running scenarios in random order (seed {seed})")
    return seed


def _count_scenarios(features: List[Any]) -> Dict[str, int]:
    counts = {"scenarios": 0, "failed": 0}
    for feature in features:
        for scenario in feature.walk_scenarios():
            counts["scenarios"] += 1
            if scenario.status.name in FAILED_STATUSES:
                counts["failed"] += 1
    return counts


def run_features(
    bundle: SupportBundle,
    config: ResolvedConfig,
    formats: Optional[Sequence[str]] = None,
    builder: Optional[SupportBuilder] = None,
    seed: Optional[int] = None,
) -> RunResult:
    """
    Run the configured feature files against a composed bundle.

    Returns:
        RunResult; success is False when any feature, hook or step failed
    """
    builder = builder or resolve_support_builder()
    feature_files = resolve_feature_files(config.project_root, config.features)
    if not feature_files:
        logger.warning(f"No feature files matched {config.features} under {config.project_root}")
        return RunResult(success=True)

    behave_config = make_behave_config(config, formats)
    features = parse_features([str(path) for path in feature_files], language=behave_config.lang)
    used_seed = apply_order(features, config.behave.order, seed)

    runner = BundleRunner(
        behave_config,
        features,
        bundle,
        step_registry=builder.make_step_registry(bundle),
        make_world=make_world_factory(bundle, config),
    )
    runner.formatters = make_formatters(behave_config, behave_config.outputs)

    logger.info(f"Running {len(features)} feature file(s)")
    with builder.parameter_types_installed(bundle.parameter_types):
        failed = runner.run()

    failed_features = sum(1 for feature in features if feature.status.name in FAILED_STATUSES)
    counts = _count_scenarios(features)
    result = RunResult(
        success=not failed,
        features=len(features),
        failed_features=failed_features,
        scenarios=counts["scenarios"],
        failed_scenarios=counts["failed"],
        seed=used_seed,
    )
    logger.info(
        f"Run finished: {result.scenarios - result.failed_scenarios}/{result.scenarios} scenarios passed"
    )
    return result


def execute_run(
    config_path: Optional[Union[str, Path]] = None,
    cwd: Optional[Union[str, Path]] = None,
    formats: Optional[Sequence[str]] = None,
) -> ExecuteRunResult:
    """
    Load configuration, compose the support bundle and run every feature.

    Configuration and composition errors propagate before behave starts.
    """
    loaded = load_config(cwd, config_path)
    config = loaded.resolved_config
    validate_environment(config.environment, config.config_file_path)

    server: Optional[ServerManager] = None

    def cleanup():
        if server is not None:
            server.stop()

    with applied_environment(config.environment), HardTimeout(config.run_timeout, on_expire=cleanup):
        if config.web_server is not None:
            server = ServerManager(config.web_server, cwd=config.project_root)
            server.install_signal_handlers()
        try:
            server_url = None
            if server is not None:
                server_url = server.start()
                config = config.with_server(server_url, server.port)

            builder = resolve_support_builder()
            builtin = build_builtin_bundle(builder)
            step_files = resolve_step_files(config.project_root, config.steps)
            logger.info(f"Found {len(step_files)} support file(s)")
            user = builder.load_user_bundle(step_files, base_types=builtin.parameter_types)
            bundle = compose(user, builtin)

            run = run_features(bundle, config, formats=formats, builder=builder)
        finally:
            if server is not None:
                server.stop()
                server.restore_signal_handlers()

    return ExecuteRunResult(
        success=run.success,
        config=config,
        run=run,
        server_url=server_url,
        step_files=step_files,
    )

from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, Optional, Union
import importlib.util
import json
import logging
import sys
import tomllib
import uuid

import yaml

from .config import ResolvedConfig, UserConfig, resolve_config, validate_user_config
from .exceptions import ConfigFileLoadError, ConfigValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = (
    "bdui.config.py",
    "bdui.config.yaml",
    "bdui.config.yml",
    "bdui.config.toml",
    "bdui.config.json",
)

PROJECT_MANIFESTS = ("pyproject.toml", "setup.py", "setup.cfg")


@dataclass
class ConfigLoadResult:
    """Outcome of configuration discovery and resolution"""
    project_root: Path
    config_file_path: Optional[Path]
    raw_config: Any
    resolved_config: ResolvedConfig


def find_project_root(cwd: Path) -> Path:
    """Nearest ancestor of cwd (inclusive) holding a package manifest, else cwd"""
    cwd = cwd.resolve()
    for directory in (cwd, *cwd.parents):
        if any((directory / manifest).is_file() for manifest in PROJECT_MANIFESTS):
            return directory
    return cwd


def discover_config_file(project_root: Path) -> Optional[Path]:
    for filename in CONFIG_FILENAMES:
        candidate = project_root / filename
        if candidate.is_file():
            return candidate
    return None


def _namespace_config(module: ModuleType) -> Dict[str, Any]:
    namespace = {}
    for name, value in vars(module).items():
        if name.startswith("_") or isinstance(value, ModuleType) or callable(value):
            continue
        namespace[name] = value
    return namespace


def _load_python_config(path: Path) -> Any:
    module_name = f"_bdui_config_{uuid.uuid4().hex}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ConfigFileLoadError(f"Cannot import configuration module: {path}", str(path))

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except ConfigValidationError as e:
        # define_config() inside the file validated without knowing the file
        raise ConfigValidationError(e.issues, str(path)) from e
    except Exception as e:
        raise ConfigFileLoadError(
            f"Failed to import configuration file {path}: {e}", str(path), cause=e
        ) from e
    finally:
        sys.modules.pop(module_name, None)

    for attribute in ("default", "config"):
        if hasattr(module, attribute):
            return getattr(module, attribute)
    return _namespace_config(module)


def _load_data_config(path: Path) -> Any:
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
        if suffix in (".yaml", ".yml"):
            return yaml.safe_load(text)
        if suffix == ".toml":
            return tomllib.loads(text)
        if suffix == ".json":
            return json.loads(text)
    except (OSError, UnicodeDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise ConfigFileLoadError(
            f"Failed to parse configuration file {path}: {e}", str(path), cause=e
        ) from e
    raise ConfigFileLoadError(f"Unsupported configuration file type: {path.name}", str(path))


def read_config_file(path: Path) -> Any:
    """Load the raw configuration object from a supported file"""
    if path.suffix.lower() == ".py":
        return _load_python_config(path)
    return _load_data_config(path)


def _resolve_project_root(user: UserConfig, detected_root: Path, config_file: Optional[Path]) -> Path:
    if not user.project_root:
        return detected_root
    declared = Path(user.project_root).expanduser()
    if not declared.is_absolute():
        base = config_file.parent if config_file is not None else detected_root
        declared = base / declared
    return declared.resolve()


def load_config(
    cwd: Optional[Union[str, Path]] = None,
    config_path_override: Optional[Union[str, Path]] = None,
) -> ConfigLoadResult:
    """
    Discover, load, validate and resolve the configuration.

    Args:
        cwd: Directory the search starts from (defaults to the process cwd)
        config_path_override: Explicit configuration file, relative to cwd

    Returns:
        ConfigLoadResult with the resolved, immutable configuration

    Raises:
        ConfigFileLoadError: explicit file missing, or import/parse failure
        ConfigValidationError: schema violations, all fields listed
    """
    cwd = Path(cwd or Path.cwd()).resolve()
    project_root = find_project_root(cwd)

    if config_path_override:
        config_file = Path(config_path_override).expanduser()
        if not config_file.is_absolute():
            config_file = cwd / config_file
        config_file = config_file.resolve()
        if not config_file.is_file():
            raise ConfigFileLoadError(f"Configuration file not found: {config_file}", str(config_file))
    else:
        config_file = discover_config_file(project_root)

    if config_file is None:
        logger.info(f"No configuration file found in {project_root}, using defaults")
        raw_config = None
        user = UserConfig()
    else:
        logger.info(f"Loading configuration from {config_file}")
        raw_config = read_config_file(config_file)
        user = validate_user_config(raw_config, str(config_file))

    root = _resolve_project_root(user, project_root, config_file)
    resolved = resolve_config(
        user,
        project_root=str(root),
        config_file_path=str(config_file) if config_file else None,
    )
    logger.debug(f"Resolved configuration: {resolved.model_dump()}")

    return ConfigLoadResult(
        project_root=root,
        config_file_path=config_file,
        raw_config=raw_config,
        resolved_config=resolved,
    )

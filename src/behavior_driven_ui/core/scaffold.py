from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union
import logging

import yaml

from .config import DEFAULT_BASE_URL, DEFAULT_FEATURE_GLOBS, DEFAULT_STEP_GLOBS
from .config_loader import find_project_root

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "bdui.config.yaml"
GITKEEP_FILENAME = ".gitkeep"


@dataclass
class InitResult:
    """What `bdui init` created and what already existed"""
    project_root: Path
    config_path: Path
    created_files: List[Path] = field(default_factory=list)
    skipped_files: List[Path] = field(default_factory=list)
    created_directories: List[Path] = field(default_factory=list)
    skipped_directories: List[Path] = field(default_factory=list)


def sample_config() -> str:
    config = {
        "base_url": DEFAULT_BASE_URL,
        "features": list(DEFAULT_FEATURE_GLOBS),
        "steps": list(DEFAULT_STEP_GLOBS),
        "driver": {
            "browser": "chromium",
            "headless": True,
        },
    }
    return yaml.dump(config, default_flow_style=False, sort_keys=False)


def _ensure_directory(path: Path, result: InitResult) -> None:
    if path.exists():
        result.skipped_directories.append(path)
        return
    path.mkdir(parents=True)
    result.created_directories.append(path)


def _ensure_file(path: Path, content: str, result: InitResult) -> None:
    if path.exists():
        result.skipped_files.append(path)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    result.created_files.append(path)


def execute_init(
    cwd: Optional[Union[str, Path]] = None,
    config_path: Optional[Union[str, Path]] = None,
) -> InitResult:
    """
    Scaffold a configuration file plus empty feature and step directories.

    Existing files and directories are reported as skipped, never overwritten.
    """
    project_root = find_project_root(Path(cwd or Path.cwd()))
    if config_path:
        config_file = Path(config_path)
        if not config_file.is_absolute():
            config_file = project_root / config_file
    else:
        config_file = project_root / DEFAULT_CONFIG_FILENAME
    config_file = config_file.resolve()

    features_dir = project_root / "features"
    steps_dir = project_root / "bdui" / "steps"

    result = InitResult(project_root=project_root, config_path=config_file)
    for directory in (config_file.parent, features_dir, steps_dir):
        _ensure_directory(directory, result)

    _ensure_file(config_file, sample_config(), result)
    _ensure_file(features_dir / GITKEEP_FILENAME, "", result)
    _ensure_file(steps_dir / GITKEEP_FILENAME, "", result)

    logger.debug(f"init created {len(result.created_files)} files, skipped {len(result.skipped_files)}")
    return result

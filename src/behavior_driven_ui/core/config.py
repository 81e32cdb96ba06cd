from copy import deepcopy
from typing import Any, Dict, List, Literal, Mapping, Optional, Union
from urllib.parse import urlsplit
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_FEATURE_GLOBS = ["features/**/*.feature"]
DEFAULT_STEP_GLOBS = ["bdui/steps/**/*.py"]
DEFAULT_BREAKPOINTS = {"mobile": 360, "tablet": 768, "desktop": 1024, "wide": 1440}
DEFAULT_VIEWPORT_HEIGHT = 1080
DEFAULT_RUN_TIMEOUT = 1800.0

DriverKind = Literal["playwright", "mock"]
BrowserName = Literal["chromium", "firefox", "webkit"]
ScenarioOrder = Literal["defined", "random"]


def _check_http_url(value: str) -> str:
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


def _normalize_globs(value: Any) -> Any:
    if isinstance(value, str):
        return [value]
    return value


def _check_globs(value: List[str]) -> List[str]:
    if not value:
        raise ValueError("must contain at least one pattern")
    for index, pattern in enumerate(value):
        if not pattern.strip():
            raise ValueError(f"pattern [{index}] must be a non-empty string")
    return value


class DriverOptions(BaseModel):
    """Driver section as written by users"""
    model_config = ConfigDict(extra="ignore")

    kind: Optional[DriverKind] = None
    browser: Optional[BrowserName] = None
    headless: Optional[bool] = None


class WebServerOptions(BaseModel):
    """Development server launched once per run"""
    model_config = ConfigDict(extra="ignore", frozen=True)

    command: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    reuse_existing_server: Optional[bool] = None
    base_url: Optional[str] = None
    ready_pattern: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def _base_url(cls, value):
        return value if value is None else _check_http_url(value)


class BehaveOptions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tag_expression: Optional[str] = None
    order: Optional[ScenarioOrder] = None


class BreakpointOptions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    default_height: Optional[int] = Field(default=None, gt=0)
    override: Optional[Dict[str, int]] = None

    @field_validator("override")
    @classmethod
    def _positive_widths(cls, value):
        if value is None:
            return value
        for name, width in value.items():
            if width <= 0:
                raise ValueError(f"breakpoint {name!r} must be a positive integer")
        return value


class UserConfig(BaseModel):
    """Configuration accepted from bdui.config.* files"""
    model_config = ConfigDict(extra="ignore")

    project_root: Optional[str] = Field(default=None, min_length=1)
    base_url: Optional[str] = None
    features: Optional[List[str]] = None
    steps: Optional[List[str]] = None
    driver: Optional[DriverOptions] = None
    web_server: Optional[WebServerOptions] = None
    behave: Optional[BehaveOptions] = None
    environment: Optional[Dict[str, str]] = None
    breakpoints: Optional[BreakpointOptions] = None
    run_timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("base_url")
    @classmethod
    def _base_url(cls, value):
        return value if value is None else _check_http_url(value)

    @field_validator("features", "steps", mode="before")
    @classmethod
    def _globs_before(cls, value):
        return _normalize_globs(value)

    @field_validator("features", "steps")
    @classmethod
    def _globs(cls, value):
        return value if value is None else _check_globs(value)


class ResolvedDriver(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: DriverKind = "playwright"
    browser: BrowserName = "chromium"
    headless: bool = True


class ResolvedBehaveOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    tag_expression: str = ""
    order: ScenarioOrder = "defined"


class ResolvedBreakpoints(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_height: int = DEFAULT_VIEWPORT_HEIGHT
    override: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_BREAKPOINTS))


class ResolvedConfig(BaseModel):
    """
    Fully hydrated configuration for one run.

    Frozen: produced once by the loader. The only sanctioned rewrite is
    with_server(), applied by the server detection step before the run starts.
    """
    model_config = ConfigDict(frozen=True)

    project_root: str = Field(min_length=1)
    config_file_path: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    features: List[str] = Field(default_factory=lambda: list(DEFAULT_FEATURE_GLOBS))
    steps: List[str] = Field(default_factory=lambda: list(DEFAULT_STEP_GLOBS))
    driver: ResolvedDriver = Field(default_factory=ResolvedDriver)
    web_server: Optional[WebServerOptions] = None
    behave: ResolvedBehaveOptions = Field(default_factory=ResolvedBehaveOptions)
    environment: Dict[str, str] = Field(default_factory=dict)
    breakpoints: ResolvedBreakpoints = Field(default_factory=ResolvedBreakpoints)
    run_timeout: float = DEFAULT_RUN_TIMEOUT

    @field_validator("base_url")
    @classmethod
    def _base_url(cls, value):
        return _check_http_url(value)

    @field_validator("features", "steps")
    @classmethod
    def _globs(cls, value):
        return _check_globs(value)

    def with_server(self, url: str, port: Optional[int] = None) -> "ResolvedConfig":
        """Return a copy pointing at a detected development server"""
        update: Dict[str, Any] = {"base_url": _check_http_url(url)}
        if self.web_server is not None and port is not None:
            update["web_server"] = self.web_server.model_copy(update={"port": port})
        logger.info(f"Base URL updated from {self.base_url} to {url}")
        return self.model_copy(update=update)


def format_validation_issues(error: ValidationError) -> List[tuple]:
    """Flatten a pydantic error into (field.path, message) pairs"""
    issues = []
    for item in error.errors():
        path = ".".join(str(part) for part in item.get("loc", ())) or "root"
        issues.append((path, item.get("msg", "invalid value")))
    return issues


def validate_user_config(raw: Any, file_path: Optional[str] = None) -> UserConfig:
    """Validate a raw mapping, collecting every violation into one error"""
    if isinstance(raw, UserConfig):
        return raw
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigValidationError(
            [("root", f"configuration must be a mapping, got {type(raw).__name__}")],
            file_path,
        )
    try:
        return UserConfig.model_validate(dict(raw))
    except ValidationError as e:
        raise ConfigValidationError(format_validation_issues(e), file_path) from e


def resolve_config(
    user: Optional[UserConfig],
    project_root: str,
    config_file_path: Optional[str] = None,
) -> ResolvedConfig:
    """Apply defaults on top of a validated user configuration"""
    user = user or UserConfig()
    driver = user.driver or DriverOptions()
    behave = user.behave or BehaveOptions()
    breakpoints = user.breakpoints or BreakpointOptions()

    data: Dict[str, Any] = {
        "project_root": project_root,
        "config_file_path": config_file_path,
        "base_url": user.base_url or DEFAULT_BASE_URL,
        "features": list(user.features or DEFAULT_FEATURE_GLOBS),
        "steps": list(user.steps or DEFAULT_STEP_GLOBS),
        "driver": {
            "kind": driver.kind or "playwright",
            "browser": driver.browser or "chromium",
            "headless": True if driver.headless is None else driver.headless,
        },
        "web_server": user.web_server,
        "behave": {
            "tag_expression": behave.tag_expression or "",
            "order": behave.order or "defined",
        },
        "environment": dict(user.environment or {}),
        "breakpoints": {
            "default_height": breakpoints.default_height or DEFAULT_VIEWPORT_HEIGHT,
            "override": dict(breakpoints.override or DEFAULT_BREAKPOINTS),
        },
        "run_timeout": user.run_timeout or DEFAULT_RUN_TIMEOUT,
    }
    try:
        return ResolvedConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(format_validation_issues(e), config_file_path) from e


def define_config(**options) -> UserConfig:
    """
    Declare a configuration inside bdui.config.py.

    Validates eagerly so mistakes surface where they are written:

        from behavior_driven_ui import define_config

        config = define_config(
            base_url="http://localhost:5173",
            driver={"browser": "firefox"},
        )
    """
    return validate_user_config(options)


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result = deepcopy(base)
    for key, value in override.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = _deep_merge(dict(result[key]), value)
        else:
            result[key] = deepcopy(value)
    return result


def merge_configurations(*configs: Union[Mapping[str, Any], UserConfig]) -> UserConfig:
    """
    Merge several configuration sources; later ones win.

    Nested mappings are merged key by key, lists are replaced.
    """
    if not configs:
        raise ConfigValidationError([("root", "at least one configuration is required")])

    merged: Dict[str, Any] = {}
    for config in configs:
        if isinstance(config, UserConfig):
            config = config.model_dump(exclude_none=True)
        merged = _deep_merge(merged, config)
    return validate_user_config(merged)

from typing import Any, List, Optional, Sequence, Tuple


class BehaviorDrivenUIError(Exception):
    """Base exception for behavior-driven-ui"""
    pass


class ConfigError(BehaviorDrivenUIError):
    """Configuration-related errors, always tied to the file that caused them"""

    def __init__(self, message: str, file_path: Optional[str] = None):
        super().__init__(message)
        self.file_path = file_path


class ConfigValidationError(ConfigError):
    """Schema violation in a configuration; lists every offending field"""

    def __init__(self, issues: Sequence[Tuple[str, str]], file_path: Optional[str] = None):
        self.issues: List[Tuple[str, str]] = list(issues)
        location = f" in {file_path}" if file_path else ""
        details = "; ".join(f"{field}: {message}" for field, message in self.issues)
        super().__init__(f"Invalid configuration{location}: {details}", file_path)

    @property
    def fields(self) -> List[str]:
        return [field for field, _ in self.issues]


class ConfigFileLoadError(ConfigError):
    """Configuration file is missing or could not be imported/parsed"""

    def __init__(self, message: str, file_path: str, cause: Optional[BaseException] = None):
        super().__init__(message, file_path)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class EnvironmentVariableError(ConfigError):
    """Invalid environment variable name in the resolved configuration"""

    def __init__(self, key: str, file_path: Optional[str] = None):
        super().__init__(f"Invalid environment variable name: {key!r} (expected [A-Za-z0-9_]+)", file_path)
        self.key = key


class DriverError(BehaviorDrivenUIError):
    """Driver-related errors"""
    pass


class ElementNotFoundError(DriverError):
    """Element not found for a selector"""

    def __init__(self, selector: str, cause: Optional[BaseException] = None):
        super().__init__(f"Element not found: {selector}")
        self.selector = selector
        if cause is not None:
            self.__cause__ = cause


class DriverTimeoutError(DriverError):
    """A driver wait did not complete in time"""

    def __init__(self, message: str, selector: Optional[str] = None):
        super().__init__(message)
        self.selector = selector


class NavigationError(DriverError):
    """Navigation to a URL failed"""

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        reason = f": {cause}" if cause is not None else ""
        super().__init__(f"Navigation failed: {url}{reason}")
        self.url = url
        if cause is not None:
            self.__cause__ = cause


class DriverDestroyedError(DriverError):
    """Driver used after destroy()"""

    def __init__(self):
        super().__init__("Driver has been destroyed and cannot be used")


class ExpectationError(DriverError):
    """Errors raised by the expectation-condition language"""
    pass


class UnsupportedExpectationError(ExpectationError, ValueError):
    """Condition string matches none of the supported grammars"""

    def __init__(self, condition: str, supported: Sequence[str]):
        forms = ", ".join(supported)
        super().__init__(f"Unsupported expectation condition: {condition!r}. Supported forms: {forms}")
        self.condition = condition


class ExpectationParseError(ExpectationError, ValueError):
    """Quoted payload of a condition is not a JSON-encoded string"""

    def __init__(self, payload: str, reason: str):
        super().__init__(f"Invalid JSON string in expectation payload {payload!r}: {reason}")
        self.payload = payload


class ExpectationFailedError(ExpectationError, AssertionError):
    """Expectation evaluated but did not hold"""

    def __init__(self, selector: str, description: str, expected: Any = None, actual: Any = None):
        message = f"Expected {selector!r} {description}"
        if expected is not None or actual is not None:
            message += f": expected {expected!r}, received {actual!r}"
        super().__init__(message)
        self.selector = selector
        self.expected = expected
        self.actual = actual


class WorldError(BehaviorDrivenUIError):
    """World runtime misconfiguration"""
    pass


class ExtensionPointUnavailableError(BehaviorDrivenUIError):
    """The installed behave does not expose an extension point we rely on"""

    def __init__(self, name: str, tried: Sequence[str]):
        super().__init__(
            f"behave extension point unavailable: {name} (tried: {', '.join(tried)})"
        )
        self.name = name
        self.tried = list(tried)


class ServerError(BehaviorDrivenUIError):
    """Development web server could not be started or checked"""
    pass


class RunTimeoutError(BehaviorDrivenUIError):
    """Hard run timeout expired"""
    pass

"""Error taxonomy for the beans store.

Every error raised across a module boundary derives from BeansError and
carries a stable ``code`` that callers (CLI, tool integrations) can switch on.
"""

from typing import Optional, Sequence


class BeansError(Exception):
    code = "BEANS_ERROR"

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message


class BackendUnavailableError(BeansError):
    """The beans CLI could not be started (missing binary, not initialized)."""

    code = "CLI_NOT_FOUND"

    def __init__(self, message: str = "Beans CLI not found in PATH", cause: Optional[BaseException] = None):
        super().__init__(message, cause)


class BackendTimeoutError(BeansError):
    code = "TIMEOUT"

    def __init__(self, message: str = "Beans operation timed out", cause: Optional[BaseException] = None):
        super().__init__(message, cause)


class MalformedResponseError(BeansError):
    """A backend call succeeded but its output could not be understood."""

    code = "JSON_PARSE_ERROR"

    def __init__(self, message: str, output: str = "", cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.output = output


class BackendCommandError(BeansError):
    """The backend exited with an error. ``message`` is cleaned, ``detail`` is raw."""

    code = "COMMAND_FAILED"

    def __init__(self, message: str, detail: str = "", returncode: Optional[int] = None):
        super().__init__(message)
        self.detail = detail
        self.returncode = returncode


class MalformedRecordError(BeansError):
    """Internal: a raw record lacks required fields. Never surfaced to consumers."""

    code = "MALFORMED_RECORD"

    def __init__(self, missing: Sequence[str], record_id: str = ""):
        self.missing = tuple(missing)
        self.record_id = record_id
        label = record_id or "<unknown>"
        super().__init__(f"Bean {label} missing or invalid fields: {', '.join(self.missing)}")


class QuarantineError(BeansError):
    code = "QUARANTINE_FAILED"


class PathSafetyError(BeansError, ValueError):
    """A path resolved outside the beans root."""

    code = "PATH_OUTSIDE_ROOT"


class BeansPermissionError(BeansError, PermissionError):
    code = "PERMISSION_ERROR"


class BeanValidationError(BeansError, ValueError):
    code = "VALIDATION_ERROR"


def user_message(exc: BaseException) -> str:
    """Human-readable text for any error, without tracebacks or class names."""
    if isinstance(exc, BeansError):
        return exc.message
    text = str(exc).strip()
    return text or exc.__class__.__name__


__all__ = [
    "BeansError",
    "BackendUnavailableError",
    "BackendTimeoutError",
    "MalformedResponseError",
    "BackendCommandError",
    "MalformedRecordError",
    "QuarantineError",
    "PathSafetyError",
    "BeansPermissionError",
    "BeanValidationError",
    "user_message",
]

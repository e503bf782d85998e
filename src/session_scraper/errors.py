"""Structured error taxonomy.

Every failure the core raises is a `ScraperError` subclass whose `kind` is fixed
at the raise site. Consumers (CLI, agent tool servers) never need to inspect
message text: `format_error()` maps any exception to a stable
`{error, kind, code, hint}` payload.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class ErrorKind(str, Enum):
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_TIMEOUT = "connection_timeout"
    NO_PAGES = "no_pages"
    INVALID_PAGE_INDEX = "invalid_page_index"
    NAVIGATION_TIMEOUT = "navigation_timeout"
    NAVIGATION_FAILED = "navigation_failed"
    ELEMENT_NOT_FOUND = "element_not_found"
    PROFILE_NOT_FOUND = "profile_not_found"
    LOGIN_REQUIRED = "login_required"
    ACCOUNT_SUSPENDED = "account_suspended"
    PRIVATE_ACCOUNT = "private_account"
    RATE_LIMITED = "rate_limited"
    SCRIPT_EXECUTION_FAILED = "script_execution_failed"
    SCRIPT_RESULT_TOO_LARGE = "script_result_too_large"
    SCREENSHOT_FAILED = "screenshot_failed"
    INVALID_INPUT = "invalid_input"
    UNKNOWN = "unknown"


class ExitCode(IntEnum):
    SUCCESS = 0
    GENERAL_ERROR = 1
    CONNECTION_ERROR = 2
    NO_PAGES = 3
    NOT_FOUND = 4
    LOGIN_REQUIRED = 5
    RATE_LIMITED = 6
    NAVIGATION_TIMEOUT = 7
    SCRIPT_ERROR = 8
    INVALID_INPUT = 9


_EXIT_CODES: dict[ErrorKind, ExitCode] = {
    ErrorKind.CONNECTION_REFUSED: ExitCode.CONNECTION_ERROR,
    ErrorKind.CONNECTION_TIMEOUT: ExitCode.CONNECTION_ERROR,
    ErrorKind.NO_PAGES: ExitCode.NO_PAGES,
    ErrorKind.INVALID_PAGE_INDEX: ExitCode.INVALID_INPUT,
    ErrorKind.NAVIGATION_TIMEOUT: ExitCode.NAVIGATION_TIMEOUT,
    ErrorKind.NAVIGATION_FAILED: ExitCode.GENERAL_ERROR,
    ErrorKind.ELEMENT_NOT_FOUND: ExitCode.NOT_FOUND,
    ErrorKind.PROFILE_NOT_FOUND: ExitCode.NOT_FOUND,
    ErrorKind.LOGIN_REQUIRED: ExitCode.LOGIN_REQUIRED,
    ErrorKind.ACCOUNT_SUSPENDED: ExitCode.NOT_FOUND,
    ErrorKind.PRIVATE_ACCOUNT: ExitCode.NOT_FOUND,
    ErrorKind.RATE_LIMITED: ExitCode.RATE_LIMITED,
    ErrorKind.SCRIPT_EXECUTION_FAILED: ExitCode.SCRIPT_ERROR,
    ErrorKind.SCRIPT_RESULT_TOO_LARGE: ExitCode.SCRIPT_ERROR,
    ErrorKind.SCREENSHOT_FAILED: ExitCode.GENERAL_ERROR,
    ErrorKind.INVALID_INPUT: ExitCode.INVALID_INPUT,
    ErrorKind.UNKNOWN: ExitCode.GENERAL_ERROR,
}

_HINTS: dict[ErrorKind, str] = {
    ErrorKind.CONNECTION_REFUSED: (
        "Make sure Chrome has the Playwriter extension installed. "
        "Click the extension icon on a tab to enable control."
    ),
    ErrorKind.CONNECTION_TIMEOUT: (
        "The relay accepted the connection but did not answer in time. "
        "Make sure Chrome is running and the Playwriter extension is active."
    ),
    ErrorKind.NO_PAGES: "Click the Playwriter extension icon on a tab in your browser to enable control.",
    ErrorKind.INVALID_PAGE_INDEX: "List the controlled tabs first and pick an index from that list.",
    ErrorKind.NAVIGATION_TIMEOUT: "The page did not finish loading before the timeout. Retry or raise the timeout.",
    ErrorKind.NAVIGATION_FAILED: "Check the URL and your network connection.",
    ErrorKind.ELEMENT_NOT_FOUND: "The page layout may have changed or the selector is wrong.",
    ErrorKind.PROFILE_NOT_FOUND: "The profile or page does not exist. Check the spelling.",
    ErrorKind.LOGIN_REQUIRED: "Make sure you are logged in to the site in the controlled browser.",
    ErrorKind.ACCOUNT_SUSPENDED: "The account or community has been suspended or banned.",
    ErrorKind.PRIVATE_ACCOUNT: "The content is private. Follow the account from the logged-in browser first.",
    ErrorKind.RATE_LIMITED: "Wait a few minutes before trying again.",
    ErrorKind.SCRIPT_EXECUTION_FAILED: "Check the script for errors; it runs as the body of an async function.",
    ErrorKind.SCRIPT_RESULT_TOO_LARGE: "Return a smaller, JSON-serializable value from the script.",
    ErrorKind.SCREENSHOT_FAILED: "Try a viewport screenshot instead of a full-page one.",
    ErrorKind.INVALID_INPUT: "Check the arguments passed to the command.",
    ErrorKind.UNKNOWN: "An unexpected error occurred.",
}


def exit_code_for(kind: ErrorKind) -> ExitCode:
    return _EXIT_CODES.get(kind, ExitCode.GENERAL_ERROR)


def hint_for(kind: ErrorKind) -> str:
    return _HINTS.get(kind, _HINTS[ErrorKind.UNKNOWN])


class ScraperError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, *, kind: ErrorKind | None = None, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.hint = hint or hint_for(self.kind)

    @property
    def code(self) -> ExitCode:
        return exit_code_for(self.kind)

    @property
    def recoverable(self) -> bool:
        """Connection-level failures may succeed if the whole operation is retried."""
        return self.kind in (ErrorKind.CONNECTION_REFUSED, ErrorKind.CONNECTION_TIMEOUT)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "kind": self.kind.value,
            "code": int(self.code),
            "hint": self.hint,
        }


class RelayConnectionRefusedError(ScraperError):
    kind = ErrorKind.CONNECTION_REFUSED


class RelayConnectionTimeoutError(ScraperError):
    kind = ErrorKind.CONNECTION_TIMEOUT


class NoPagesAvailableError(ScraperError):
    kind = ErrorKind.NO_PAGES


class InvalidPageIndexError(ScraperError):
    kind = ErrorKind.INVALID_PAGE_INDEX

    def __init__(self, index: int, count: int) -> None:
        self.index = index
        self.count = count
        if count > 0:
            message = f"Invalid page index: {index}. Available: 0-{count - 1}"
        else:
            message = f"Invalid page index: {index}. No pages available"
        super().__init__(message)


class NavigationTimeoutError(ScraperError):
    kind = ErrorKind.NAVIGATION_TIMEOUT


class NavigationError(ScraperError):
    kind = ErrorKind.NAVIGATION_FAILED


class ElementNotFoundError(ScraperError):
    kind = ErrorKind.ELEMENT_NOT_FOUND


class ProfileNotFoundError(ScraperError):
    kind = ErrorKind.PROFILE_NOT_FOUND


class LoginRequiredError(ScraperError):
    kind = ErrorKind.LOGIN_REQUIRED


class AccountSuspendedError(ScraperError):
    kind = ErrorKind.ACCOUNT_SUSPENDED


class PrivateAccountError(ScraperError):
    kind = ErrorKind.PRIVATE_ACCOUNT


class RateLimitedError(ScraperError):
    kind = ErrorKind.RATE_LIMITED


class ScriptExecutionError(ScraperError):
    kind = ErrorKind.SCRIPT_EXECUTION_FAILED


class ScriptResultTooLargeError(ScriptExecutionError):
    kind = ErrorKind.SCRIPT_RESULT_TOO_LARGE


class ScreenshotError(ScraperError):
    kind = ErrorKind.SCREENSHOT_FAILED


class InvalidInputError(ScraperError):
    kind = ErrorKind.INVALID_INPUT


_BY_KIND: dict[ErrorKind, type[ScraperError]] = {
    ErrorKind.CONNECTION_REFUSED: RelayConnectionRefusedError,
    ErrorKind.CONNECTION_TIMEOUT: RelayConnectionTimeoutError,
    ErrorKind.NO_PAGES: NoPagesAvailableError,
    ErrorKind.NAVIGATION_TIMEOUT: NavigationTimeoutError,
    ErrorKind.NAVIGATION_FAILED: NavigationError,
    ErrorKind.ELEMENT_NOT_FOUND: ElementNotFoundError,
    ErrorKind.PROFILE_NOT_FOUND: ProfileNotFoundError,
    ErrorKind.LOGIN_REQUIRED: LoginRequiredError,
    ErrorKind.ACCOUNT_SUSPENDED: AccountSuspendedError,
    ErrorKind.PRIVATE_ACCOUNT: PrivateAccountError,
    ErrorKind.RATE_LIMITED: RateLimitedError,
    ErrorKind.SCRIPT_EXECUTION_FAILED: ScriptExecutionError,
    ErrorKind.SCRIPT_RESULT_TOO_LARGE: ScriptResultTooLargeError,
    ErrorKind.SCREENSHOT_FAILED: ScreenshotError,
    ErrorKind.INVALID_INPUT: InvalidInputError,
}


def error_for_kind(kind: ErrorKind, message: str) -> ScraperError:
    cls = _BY_KIND.get(kind)
    if cls is None:
        return ScraperError(message, kind=kind)
    return cls(message)


def format_error(exc: BaseException | str | None) -> dict[str, Any]:
    """Structured `{error, kind, code, hint}` payload for any failure."""
    if isinstance(exc, ScraperError):
        return exc.to_dict()

    if exc is None:
        message = "An unknown error occurred"
        kind = ErrorKind.UNKNOWN
    elif isinstance(exc, str):
        message = exc
        kind = ErrorKind.UNKNOWN
    else:
        message = str(exc) or type(exc).__name__
        if isinstance(exc, (PlaywrightTimeoutError, TimeoutError)):
            kind = ErrorKind.NAVIGATION_TIMEOUT
        else:
            kind = ErrorKind.UNKNOWN

    return {
        "error": message,
        "kind": kind.value,
        "code": int(exit_code_for(kind)),
        "hint": hint_for(kind),
    }

"""Tests for the error taxonomy and its structured payloads."""

import unittest

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from session_scraper.errors import (
    ErrorKind,
    ExitCode,
    InvalidPageIndexError,
    LoginRequiredError,
    NoPagesAvailableError,
    ProfileNotFoundError,
    RelayConnectionRefusedError,
    RelayConnectionTimeoutError,
    ScraperError,
    ScriptExecutionError,
    ScriptResultTooLargeError,
    error_for_kind,
    exit_code_for,
    format_error,
)


class TestScraperError(unittest.TestCase):
    def test_kind_fixed_by_subclass(self):
        self.assertEqual(NoPagesAvailableError("x").kind, ErrorKind.NO_PAGES)
        self.assertEqual(RelayConnectionRefusedError("x").code, ExitCode.CONNECTION_ERROR)

    def test_recoverable_only_for_connection_failures(self):
        self.assertTrue(RelayConnectionRefusedError("x").recoverable)
        self.assertTrue(RelayConnectionTimeoutError("x").recoverable)
        self.assertFalse(LoginRequiredError("x").recoverable)
        self.assertFalse(ScraperError("x").recoverable)

    def test_explicit_hint_wins(self):
        e = ProfileNotFoundError("gone", hint="try again")
        self.assertEqual(e.hint, "try again")

    def test_too_large_is_a_script_error(self):
        e = ScriptResultTooLargeError("big")
        self.assertIsInstance(e, ScriptExecutionError)
        self.assertEqual(e.kind, ErrorKind.SCRIPT_RESULT_TOO_LARGE)
        self.assertEqual(e.code, ExitCode.SCRIPT_ERROR)


class TestInvalidPageIndex(unittest.TestCase):
    def test_message_names_range(self):
        e = InvalidPageIndexError(5, 3)
        self.assertEqual(str(e), "Invalid page index: 5. Available: 0-2")
        self.assertEqual(e.index, 5)
        self.assertEqual(e.count, 3)

    def test_message_without_pages(self):
        self.assertEqual(str(InvalidPageIndexError(0, 0)), "Invalid page index: 0. No pages available")


class TestFormatError(unittest.TestCase):
    def test_scraper_error_payload(self):
        payload = format_error(LoginRequiredError("log in first"))
        self.assertEqual(
            set(payload), {"error", "kind", "code", "hint"},
        )
        self.assertEqual(payload["error"], "log in first")
        self.assertEqual(payload["kind"], "login_required")
        self.assertEqual(payload["code"], int(ExitCode.LOGIN_REQUIRED))
        self.assertTrue(payload["hint"])

    def test_plain_exception_is_unknown(self):
        payload = format_error(RuntimeError("boom"))
        self.assertEqual(payload["kind"], "unknown")
        self.assertEqual(payload["code"], int(ExitCode.GENERAL_ERROR))
        self.assertEqual(payload["error"], "boom")

    def test_playwright_timeout_maps_to_navigation_timeout(self):
        payload = format_error(PlaywrightTimeoutError("Timeout 30000ms exceeded"))
        self.assertEqual(payload["kind"], "navigation_timeout")
        self.assertEqual(payload["code"], int(ExitCode.NAVIGATION_TIMEOUT))

    def test_strings_and_none(self):
        self.assertEqual(format_error("oops")["error"], "oops")
        self.assertEqual(format_error(None)["kind"], "unknown")


class TestKindLookup(unittest.TestCase):
    def test_error_for_kind_builds_subclass(self):
        e = error_for_kind(ErrorKind.PROFILE_NOT_FOUND, "no such user")
        self.assertIsInstance(e, ProfileNotFoundError)
        self.assertEqual(e.message, "no such user")

    def test_unknown_kind_falls_back(self):
        e = error_for_kind(ErrorKind.UNKNOWN, "???")
        self.assertEqual(type(e), ScraperError)
        self.assertEqual(e.kind, ErrorKind.UNKNOWN)

    def test_every_kind_has_exit_code(self):
        for kind in ErrorKind:
            self.assertIsInstance(exit_code_for(kind), ExitCode)


if __name__ == "__main__":
    unittest.main()

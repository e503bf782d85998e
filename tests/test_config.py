"""Tests for environment-driven settings."""

import os
import unittest
from unittest.mock import patch

from session_scraper.config import Settings, load_settings


class TestSettings(unittest.TestCase):
    def test_defaults(self):
        settings = Settings()
        self.assertEqual(settings.ws_endpoint, "ws://127.0.0.1:19988")
        self.assertEqual(settings.max_retries, 3)
        self.assertTrue(settings.auto_reconnect)

    def test_environment_overrides(self):
        env = {
            "PLAYWRITER_HOST": "10.0.0.5",
            "PLAYWRITER_PORT": "20000",
            "SESSION_SCRAPER_MAX_RETRIES": "5",
            "SESSION_SCRAPER_AUTO_RECONNECT": "off",
            "SESSION_SCRAPER_LOG_LEVEL": "info",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = load_settings()
        self.assertEqual(settings.ws_endpoint, "ws://10.0.0.5:20000")
        self.assertEqual(settings.max_retries, 5)
        self.assertFalse(settings.auto_reconnect)
        self.assertEqual(settings.log_level, "INFO")

    def test_malformed_numbers_fall_back(self):
        env = {"PLAYWRITER_PORT": "not-a-port", "SESSION_SCRAPER_RETRY_DELAY": "soon"}
        with patch.dict(os.environ, env, clear=True):
            settings = load_settings()
        self.assertEqual(settings.relay_port, 19988)
        self.assertEqual(settings.retry_base_delay, 0.1)

    def test_navigation_timeout_in_milliseconds(self):
        with patch.dict(os.environ, {"SESSION_SCRAPER_NAV_TIMEOUT": "7.5"}, clear=True):
            self.assertEqual(load_settings().navigation_timeout_ms, 7500)
        self.assertEqual(Settings().navigation_timeout_ms, 30_000)

    def test_debug_flag_forces_debug_level(self):
        with patch.dict(os.environ, {"DEBUG": "1", "SESSION_SCRAPER_LOG_LEVEL": "ERROR"}, clear=True):
            self.assertEqual(load_settings().log_level, "DEBUG")


if __name__ == "__main__":
    unittest.main()

import os
import unittest

from skyroute.config import Settings


class TestConfig(unittest.TestCase):
    def _with_env(self, name, value):
        previous = os.environ.get(name)
        os.environ[name] = value

        def restore():
            if previous is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = previous

        self.addCleanup(restore)

    def test_settings_defaults(self):
        previous = os.environ.pop("SKYROUTE_OLLAMA_BASE_URL", None)
        try:
            s = Settings()
            self.assertEqual(s.ollama_base_url, "http://localhost:11434")
            self.assertEqual(s.forecast_days, 7)
            self.assertEqual(s.ttl_current_seconds, 300)
            self.assertEqual(s.ttl_location_seconds, 604800)
        finally:
            if previous is not None:
                os.environ["SKYROUTE_OLLAMA_BASE_URL"] = previous

    def test_base_url_trailing_slash_is_stripped(self):
        self._with_env("SKYROUTE_OLLAMA_BASE_URL", "http://example.com/")
        self.assertEqual(Settings().ollama_base_url, "http://example.com")

    def test_numeric_override(self):
        self._with_env("SKYROUTE_RATE_LIMIT_MAX_REQUESTS", "5")
        self.assertEqual(Settings().rate_limit_max_requests, 5)

    def test_backend_names_are_case_insensitive(self):
        self._with_env("SKYROUTE_CACHE_BACKEND", " Redis ")
        self._with_env("SKYROUTE_PARSER_BACKEND", "OLLAMA")
        s = Settings()
        self.assertEqual(s.cache_backend, "redis")
        self.assertTrue(s.parser_enabled)

    def test_parser_disabled_values(self):
        for value in ("none", "off", "disabled", ""):
            self.assertFalse(Settings(parser_backend=value).parser_enabled)


if __name__ == "__main__":
    unittest.main()

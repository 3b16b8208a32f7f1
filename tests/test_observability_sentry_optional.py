from __future__ import annotations

import unittest
from unittest.mock import patch

from flask import Flask

from consign.utils.observability import _before_send_scrub, init_sentry


class SentryOptionalInitTestCase(unittest.TestCase):
    def test_sentry_init_is_noop_without_dsn(self):
        app = Flask(__name__)
        app.config["SENTRY_DSN"] = ""
        with patch("sentry_sdk.init") as mocked_init:
            init_sentry(app)
        mocked_init.assert_not_called()

    def test_sentry_init_with_dsn(self):
        app = Flask(__name__)
        app.config.update(SENTRY_DSN="https://key@sentry.example/1", CONSIGN_ENV="staging")
        with patch("sentry_sdk.init") as mocked_init:
            init_sentry(app)
        kwargs = mocked_init.call_args.kwargs
        self.assertEqual(kwargs["environment"], "staging")
        self.assertFalse(kwargs["send_default_pii"])

    def test_auth_headers_are_scrubbed(self):
        event = {"request": {"headers": {"Authorization": "Bearer abc", "Accept": "json"}}}
        scrubbed = _before_send_scrub(event, None)
        self.assertEqual(scrubbed["request"]["headers"]["Authorization"], "[REDACTED]")
        self.assertEqual(scrubbed["request"]["headers"]["Accept"], "json")


if __name__ == "__main__":
    unittest.main()

import logging
import sys
from unittest import TestCase
from unittest.mock import patch

import requests

from idremap.helpers.errors import (
    InvalidConfigurationError,
    MappingStoreError,
    TransformError,
)
from idremap.helpers.logging import (
    MattermostHandler,
    _should_post_to_mattermost,
)
from idremap.helpers.sentry import filter_errors


def make_record(level=logging.ERROR, exception=None, **extra):
    exc_info = None
    if exception is not None:
        try:
            raise exception
        except Exception:
            exc_info = sys.exc_info()
    record = logging.LogRecord(
        "idremap.services.remapping.main",
        level,
        __file__,
        1,
        "Transform failed",
        None,
        exc_info,
    )
    record.__dict__.update(extra)
    return record


class TestErrors(TestCase):
    def test_to_dict(self):
        error = TransformError("disk full", path="/tmp/03_note.sql")

        self.assertEqual(
            {
                "message": "disk full",
                "code": "TRANSFORM_IO_ERROR",
                "details": {"path": "/tmp/03_note.sql"},
            },
            error.to_dict(),
        )

    def test_default_message(self):
        self.assertEqual(
            "Could not load the identifier mapping", MappingStoreError().message
        )


class TestMattermostFilter(TestCase):
    def test_level(self):
        self.assertTrue(_should_post_to_mattermost(make_record(logging.ERROR)))
        self.assertFalse(_should_post_to_mattermost(make_record(logging.INFO)))

    def test_explicit_flag(self):
        self.assertTrue(
            _should_post_to_mattermost(
                make_record(logging.INFO, post_to_mattermost=True)
            )
        )

    def test_errors_not_alerting_the_team(self):
        self.assertFalse(
            _should_post_to_mattermost(
                make_record(exception=InvalidConfigurationError("bad"))
            )
        )
        self.assertTrue(
            _should_post_to_mattermost(
                make_record(exception=MappingStoreError("down"))
            )
        )

    def test_handler_posts_title_and_phase(self):
        handler = MattermostHandler()
        record = make_record(exception=MappingStoreError("down"), phase="patch")

        with patch("idremap.helpers.logging.post_to_mattermost") as post:
            handler.emit(record)

        kwargs = post.call_args[1]
        self.assertEqual("MappingStoreError (MAPPING_STORE_ERROR)", kwargs["title"])
        self.assertIn(("Phase", "patch", True), kwargs["fields_"])

    def test_handler_survives_webhook_failure(self):
        handler = MattermostHandler()

        with patch(
            "idremap.helpers.logging.post_to_mattermost",
            side_effect=requests.ConnectionError(),
        ), patch.object(handler, "handleError") as handle_error:
            handler.emit(make_record())

        handle_error.assert_called_once()


class TestSentryFilter(TestCase):
    def test_filter_errors(self):
        for exception, kept in [
            (InvalidConfigurationError("bad"), False),
            (MappingStoreError("down"), True),
            (ValueError("other"), True),
        ]:
            with self.subTest(exception=exception):
                hint = {"exc_info": (type(exception), exception, None)}
                event = {"message": "x"}
                self.assertEqual(
                    event if kept else None, filter_errors(event, hint)
                )

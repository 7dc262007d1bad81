import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration

from idremap import app
from idremap.helpers.errors import IdRemapError
from config import IDREMAP_ENV


def filter_errors(event, hint):
    if "exc_info" in hint:
        exc_type, exc_value, tb = hint["exc_info"]
        if (
            issubclass(exc_type, IdRemapError)
            and not exc_value.should_alert_team
        ):
            return None
    return event


def setup_sentry():
    sentry_sdk.init(
        dsn=app.config["SENTRY_URL"],
        integrations=[FlaskIntegration()],
        environment=IDREMAP_ENV,
        before_send=filter_errors,
    )

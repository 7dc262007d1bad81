import logging
from logging import StreamHandler

import requests
from flask.logging import default_handler

from idremap import app
from idremap.helpers.errors import IdRemapError
from config import IDREMAP_ENV

root_logger = logging.getLogger()


def post_to_mattermost(message, emoji, color, title=None, fields_=None):
    requests.post(
        app.config["MATTERMOST_WEBHOOK"],
        json=dict(
            channel=app.config["MATTERMOST_LOG_CHANNEL"],
            username=f"ID migration - {IDREMAP_ENV.capitalize()}",
            icon_emoji=emoji,
            attachments=[
                dict(
                    fallback=title or message,
                    color=color,
                    title=title,
                    text=message,
                    fields=[
                        {"title": f[0], "value": f[1], "short": f[2]}
                        for f in fields_
                    ]
                    if fields_
                    else [],
                )
            ],
        ),
        timeout=10,
    )


def _should_post_to_mattermost(record):
    explicit = getattr(record, "post_to_mattermost", None)
    if explicit is not None:
        return explicit
    if record.exc_info and type(record.exc_info) is tuple:
        exception = record.exc_info[1]
        if isinstance(exception, IdRemapError):
            return exception.should_alert_team
    return record.levelno >= logging.WARNING


class MattermostHandler(logging.Handler):
    def emit(self, record):
        if record.levelno >= logging.ERROR:
            emoji = ":rotating_light:"
            color = "#a6343c"
        elif record.levelno >= logging.WARNING:
            emoji = ":warning:"
            color = "#ffba20"
        else:
            emoji = ":information_source:"
            color = "#36a64f"

        title = getattr(record, "log_title", None)
        if not title and record.exc_info and type(record.exc_info) is tuple:
            exception = record.exc_info[1]
            if isinstance(exception, IdRemapError):
                title = f"{exception.__class__.__name__} ({exception.code})"

        try:
            post_to_mattermost(
                self.format(record),
                emoji,
                color,
                title=title,
                fields_=[
                    ("Logger", record.name, True),
                    ("Phase", getattr(record, "phase", None), True),
                ],
            )
        except requests.RequestException:
            self.handleError(record)


class MattermostFormatter(logging.Formatter):
    def formatException(self, ei):
        return f"{ei[1]}"


app.logger.setLevel(logging.INFO)
app.logger.removeHandler(default_handler)

stream_handler = StreamHandler()
stream_handler.setFormatter(
    logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")
)
root_logger.addHandler(stream_handler)


if app.config["MATTERMOST_WEBHOOK"]:
    mattermost_handler = MattermostHandler()
    mattermost_handler.addFilter(_should_post_to_mattermost)
    mattermost_handler.setFormatter(MattermostFormatter("%(message)s"))
    root_logger.addHandler(mattermost_handler)

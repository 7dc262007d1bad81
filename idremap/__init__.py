from flask import Flask
from flask_sqlalchemy import SQLAlchemy

import config
from config import IDREMAP_ENV

app = Flask(__name__)

app.config.from_object(getattr(config, f"{IDREMAP_ENV.capitalize()}Config"))

if app.config["SENTRY_URL"]:
    from idremap.helpers.sentry import setup_sentry

    setup_sentry()

if app.config["ECHO_DB_QUERIES"]:
    app.config["SQLALCHEMY_ECHO"] = True

db = SQLAlchemy(app)

from idremap.helpers import logging

from . import commands
from .helpers import cli

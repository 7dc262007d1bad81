from unittest import TestLoader, TextTestRunner
import os
import sys

import click

from idremap import app
from config import TestConfig


@app.cli.command(with_appcontext=False)
@click.argument("test_names", nargs=-1)
def test(test_names):
    """Run unit tests.

    Example:
    $ flask test idremap.tests.test_matchers ...
    """
    app.config.from_object(TestConfig)
    if test_names:
        test_suite = TestLoader().loadTestsFromNames(test_names)
    else:
        root_project_path = os.path.dirname(app.root_path)
        test_suite = TestLoader().discover(
            os.path.join(app.root_path, "tests"),
            pattern="test_*.py",
            top_level_dir=root_project_path,
        )
    result = TextTestRunner(verbosity=3).run(test_suite)
    if result.wasSuccessful():
        sys.exit(0)
    sys.exit(1)

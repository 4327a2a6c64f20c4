"""
This code creates the WSGI application and aliases it as api.

We use `application` variable name since that is what Gunicorn,
by default, expects it to be called!

The configuration file is taken from the LOGBASE_CONFIG environment variable
when set.
"""
import os
import logging

import falcon

from logbase import common
from logbase.logstore import LogStore
from .logsreader import LogsReader


def create_app(store=None, config=None):
    if store is None:
        store = LogStore()
    if config is None:
        config = common.loadConfig(os.environ.get("LOGBASE_CONFIG"))
    app = falcon.App()
    # one resource instance handles every route
    logs_reader = LogsReader(store, config=config)
    app.add_route('/logs', logs_reader, suffix='logs')
    app.add_route('/stats/{dimension}', logs_reader)
    app.add_route('/graph', logs_reader, suffix='graph')
    return app


logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s %(name)18s: %(message)s'
                    )

api = application = create_app() # pylint: disable=invalid-name

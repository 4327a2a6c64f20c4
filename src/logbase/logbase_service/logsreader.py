"""
Logs Reader module

Falcon resource exposing ingestion and the query operations of a LogStore,
https://falcon.readthedocs.io/en/stable/

Routes (see app.py):

    POST   /logs                 body is raw log text, appended to the store
    DELETE /logs                 clears the store
    GET    /stats/{dimension}    usage histogram, dimension is path, user_agent or referer
    GET    /graph                page transition graph
"""
import json
import logging
import time

import falcon

from logbase import common
from logbase import logparser
from logbase.common import LogbaseError
from logbase.usagestats import StatsOptions


class LogsReader:
    """
    Translates HTTP requests into LogStore operations and JSON responses.
    """

    def __init__(self, store, config=None):
        if config is None:
            config = common.loadConfig()
        self._config = config
        self.store = store
        self.parser = logparser.parserFromConfig(config[common.CONFIG_PARSER_SECTION])
        self.logger = logging.getLogger('logbase_service.' + __name__)


    def _statsOptions(self, req, section, max_paths_key):
        defaults = self._config[section]
        resolution_default = 0
        if "resolution_sec" in defaults:
            resolution_default = common.configInt(defaults, "resolution_sec")
        return StatsOptions(
            resolution_sec=req.get_param_as_int("resolution_sec", default=resolution_default),
            threshold=req.get_param_as_int("threshold", default=common.configInt(defaults, "threshold")),
            max_paths=req.get_param_as_int("max_paths", default=common.configInt(defaults, max_paths_key)),
        )


    def on_post_logs(self, req, resp):
        """
        Ingest the request body as one log source.

        :param req: HTTP Request object
        :param resp: HTTP Response object
        :return: None, the ingest report is the response body
        """
        self.logger.debug("enter on_post_logs")
        t_0 = time.time()
        max_age = req.get_param_as_int(
            "max_age", default=common.configInt(self._config[common.CONFIG_PARSER_SECTION], "max_age"))
        body = req.bounded_stream.read()
        try:
            report = self.store.load([body], self.parser, max_age)
        except LogbaseError as e:
            raise falcon.HTTPBadRequest(title="Ingest failed", description=str(e))
        resp.text = json.dumps(report.asDict(), ensure_ascii=False)
        resp.status = falcon.HTTP_200
        self.logger.debug("exit on_post_logs, duration=%fsec", time.time() - t_0)


    def on_delete_logs(self, req, resp):
        self.store.clear()
        resp.status = falcon.HTTP_204


    def on_get(self, req, resp, dimension):
        """
        The method assigned to the /stats/{dimension} GET end point

        :param req: HTTP Request object
        :param resp: HTTP Response object
        :param dimension: path, user_agent or referer
        :return: None
        """
        self.logger.debug("enter on_get dimension=%s", dimension)
        try:
            options = self._statsOptions(req, common.CONFIG_STATS_SECTION, "max_paths")
            stats = self.store.usage_stats_by(dimension, options)
        except LogbaseError as e:
            raise falcon.HTTPBadRequest(title="Invalid statistics request", description=str(e))
        resp.text = json.dumps(stats.asDict(), ensure_ascii=False)
        resp.status = falcon.HTTP_200


    def on_get_graph(self, req, resp):
        self.logger.debug("enter on_get_graph")
        graph_config = self._config[common.CONFIG_GRAPH_SECTION]
        try:
            options = self._statsOptions(req, common.CONFIG_GRAPH_SECTION, "max_nodes")
            graph = self.store.usage_transfer_graph(
                options,
                req.get_param_as_int("length", default=common.configInt(graph_config, "length")),
                must_contain=req.get_param("must_contain", default=graph_config["must_contain"]),
                must_start_with=req.get_param("must_start_with", default=graph_config["must_start_with"]),
            )
        except LogbaseError as e:
            raise falcon.HTTPBadRequest(title="Invalid graph request", description=str(e))
        resp.text = json.dumps(graph.asDict(), ensure_ascii=False)
        resp.status = falcon.HTTP_200

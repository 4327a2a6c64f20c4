'''
Reconstruct sessions from web server access logs and print usage statistics
and the page transition graph as JSON.

Example:

  logbase-analyze -l -c logbase.ini --by path --graph 8 access.log access.log.1.gz
'''
import sys
import json
import logging
import argparse

from logbase import common
from logbase import logparser
from logbase import logstore
from logbase.common import LogbaseError
from logbase.usagestats import StatsOptions


def analyzeLogs(sources, config, dimensions, graph_length, max_age=None, kind=None):
  '''
  Load sources into a new store and compute the requested outputs.

  Args:
    sources: list of log sources
    config: dictionary returned by common.loadConfig
    dimensions: list of dimensions for usage_stats_by
    graph_length: number of graph layers, 0 for no graph
    max_age: overrides the configured session window when not None
    kind: overrides the configured parser kind when not None

  Returns:
    dictionary ready for json.dumps
  '''
  parser_config = dict(config[common.CONFIG_PARSER_SECTION])
  if kind is not None:
    parser_config["kind"] = kind
  parser = logparser.parserFromConfig(parser_config)
  if max_age is None:
    max_age = common.configInt(parser_config, "max_age")

  store = logstore.LogStore()
  report = store.load(sources, parser, max_age)
  result = {"ingest": report.asDict()}

  stats_config = config[common.CONFIG_STATS_SECTION]
  stats_options = StatsOptions(
    resolution_sec=common.configInt(stats_config, "resolution_sec"),
    threshold=common.configInt(stats_config, "threshold"),
    max_paths=common.configInt(stats_config, "max_paths"),
  )
  stats = {}
  for dimension in dimensions:
    stats[dimension] = store.usage_stats_by(dimension, stats_options).asDict()
  if len(stats) > 0:
    result["stats"] = stats

  if graph_length > 0:
    graph_config = config[common.CONFIG_GRAPH_SECTION]
    graph_options = StatsOptions(
      resolution_sec=0,
      threshold=common.configInt(graph_config, "threshold"),
      max_paths=common.configInt(graph_config, "max_nodes"),
    )
    graph = store.usage_transfer_graph(
      graph_options, graph_length,
      must_contain=graph_config["must_contain"],
      must_start_with=graph_config["must_start_with"])
    result["graph"] = graph.asDict()
  return result


def main(argv=None):
  parser = argparse.ArgumentParser(description=__doc__,
    formatter_class=argparse.RawDescriptionHelpFormatter)
  parser.add_argument('-l', '--log_level',
                      action='count',
                      default=0,
                      help='Set logging level, multiples for more detailed.')
  parser.add_argument("-c", "--config",
                      default=None,
                      help="INI configuration file")
  parser.add_argument("-a", "--max_age",
                      type=int,
                      default=None,
                      help="Session inactivity window in seconds")
  parser.add_argument("-k", "--kind",
                      choices=logparser.PARSER_KINDS,
                      default=None,
                      help="Parser implementation")
  parser.add_argument("-b", "--by",
                      action="append",
                      default=[],
                      choices=logstore.DIMENSIONS,
                      help="Usage statistics dimension, may be repeated")
  parser.add_argument("-g", "--graph",
                      type=int,
                      default=0,
                      help="Number of transition graph layers")
  parser.add_argument("sources",
                      nargs="+",
                      help="Log files or URLs, in chronological order")
  args = parser.parse_args(argv)
  # Setup logging verbosity
  levels = [logging.WARNING, logging.INFO, logging.DEBUG]
  level = levels[min(len(levels) - 1, args.log_level)]
  logging.basicConfig(level=level,
                      format="%(asctime)s %(name)s %(levelname)s: %(message)s")
  try:
    config = common.loadConfig(args.config)
    result = analyzeLogs(args.sources, config, args.by, args.graph,
                         max_age=args.max_age, kind=args.kind)
  except (LogbaseError, OSError) as e:
    logging.error("%s", e)
    return 2
  print(json.dumps(result, indent=2, ensure_ascii=False))
  return 0


if __name__ == "__main__":
  sys.exit(main())

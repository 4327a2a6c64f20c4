'''
Constants, exceptions and configuration helpers common across logbase.
'''
import logging
import configparser
from pytz import timezone

#Default location of configuration file
DEFAULT_CONFIG_FILE="/etc/logbase/logbase.ini"

CONFIG_PARSER_SECTION = "parser"
CONFIG_STATS_SECTION = "stats"
CONFIG_GRAPH_SECTION = "graph"

# Fields whose value is never used, quoted or bare
IGNORED_FIELD = r'("[^"]*"|\S+)'

# Canonical 15 field record, e.g.:
# 2021-05-01 02:16:15 "1.1.1.1" "HTTP/1.0" GET example.com "/img/home.png" 304 0 0 "-" "Mozilla/5.0" "-" 61647 "-" "-"
DEFAULT_PATTERN = r"\s+".join([
  r"(\d+-\d+-\d+ \d+:\d+:\d+)",  # 2021-05-01 02:16:03
  r'"([^"]*)"',  # address
  r'"([^"]*)"',  # protocol version
  r"(\w+)",  # method
  r"([\w\-.]+)",  # domain
  r'"([^"]*)"',  # path
  r"(\d+)",  # status code
  r"(\d+)",  # size
  IGNORED_FIELD,
  r'"([^"]*)"',  # referer
  r'"([^"]*)"',  # user agent
  IGNORED_FIELD,
  IGNORED_FIELD,
  r'"([^"]*)"',  # content type
  r'"([^"]*)"',  # compression type
])

NUM_FIELDS = 15

DEFAULT_PARSER_CONFIG = {
  "kind": "fixed",
  "pattern": DEFAULT_PATTERN,
  "captures": ",".join(str(i) for i in range(1, NUM_FIELDS + 1)),
  "date_format": "%Y-%m-%d %H:%M:%S",
  "ignore_query_string": "true",
  "max_age": "3600",
}

DEFAULT_STATS_CONFIG = {
  "resolution_sec": "3600",
  "threshold": "0",
  "max_paths": "300",
}

DEFAULT_GRAPH_CONFIG = {
  "length": "8",
  "threshold": "3",
  "max_nodes": "30",
  "must_contain": "",
  "must_start_with": "",
}

UTC = timezone('UTC')


class LogbaseError(Exception):
  '''Base class for errors raised by logbase.'''
  pass


class ConfigError(LogbaseError, ValueError):
  '''
  Bad parser or query configuration. Raised before any line is processed.
  '''
  pass


class ParseError(LogbaseError):
  '''
  A single log line could not be parsed. Recoverable, the line is skipped.
  '''

  def __init__(self, line, reason):
    super(ParseError, self).__init__("{}: {}".format(reason, line))
    self.line = line
    self.reason = reason


def toUtc(d):
  '''
  Return d as a timezone aware datetime, assuming UTC when no zone is given.

  Args:
    d: datetime instance

  Returns:
    Timezone aware instance of DateTime
  '''
  if d.tzinfo is None or d.tzinfo.utcoffset(d) is None:
    return UTC.localize(d)
  return d


def toEpochSeconds(d):
  '''
  Whole seconds since the unix epoch for a datetime. Naive values are UTC.
  '''
  return int(toUtc(d).timestamp())


def parseCaptures(text):
  '''
  Parse a comma separated list of capture group indices.

  Args:
    text: e.g. "1,2,3,0,4"

  Returns:
    list of int
  '''
  try:
    return [int(v.strip()) for v in text.split(",") if v.strip() != ""]
  except ValueError as e:
    raise ConfigError("Invalid capture index list '{}': {}".format(text, e))


def _readSection(config, section, defaults):
  result = {}
  for key, value in iter(defaults.items()):
    result[key] = config.get(section, key, fallback=value)
  return result


def loadConfig(config_file=None):
  '''
  Load configuration parameters

  Args:
    config_file: Path to an INI format configuration file. None gives the defaults.

  Returns:
    dictionary of section name -> dictionary of raw string values
  '''
  logger = logging.getLogger('common')
  config = configparser.ConfigParser(interpolation=None)
  if config_file is not None:
    logger.debug("Loading configuration from %s", config_file)
    found = config.read(config_file)
    if len(found) == 0:
      raise ConfigError("Configuration file {} not found".format(config_file))
  return {
    CONFIG_PARSER_SECTION: _readSection(config, CONFIG_PARSER_SECTION, DEFAULT_PARSER_CONFIG),
    CONFIG_STATS_SECTION: _readSection(config, CONFIG_STATS_SECTION, DEFAULT_STATS_CONFIG),
    CONFIG_GRAPH_SECTION: _readSection(config, CONFIG_GRAPH_SECTION, DEFAULT_GRAPH_CONFIG),
  }


def configInt(section, key):
  '''
  Read an integer value from a section dictionary returned by loadConfig.
  '''
  try:
    return int(section[key])
  except (TypeError, ValueError):
    raise ConfigError("Configuration value {}={} is not an integer".format(key, section[key]))


def configBool(section, key):
  value = str(section[key]).strip().lower()
  if value in ("1", "true", "yes", "on"):
    return True
  if value in ("0", "false", "no", "off"):
    return False
  raise ConfigError("Configuration value {}={} is not a boolean".format(key, section[key]))

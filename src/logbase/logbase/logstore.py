'''
Implements the log store: the symbol table and the completed sessions of one
analysis, together with ingestion and the query operations over them.

The basic workflow is:

  store = LogStore()
  parser = logparser.create_parser()
  report = store.load(["access.log", "access.log.1.gz"], parser, max_age=3600)
  by_path = store.usage_stats_by("path", StatsOptions(3600, 0, 300))
  graph = store.usage_transfer_graph(StatsOptions(0, 3, 30), 8, "", "")

Loads append to the sessions already in the store. clear() returns the store
to its initial state.
'''
import asyncio
import logging
import threading

from logbase import logparser
from logbase import logsources
from logbase import sessionstates
from logbase import transitiongraph
from logbase import usagestats
from logbase.common import ConfigError, ParseError
from logbase.symboltable import SymbolTable

DIMENSION_PATH = "path"
DIMENSION_USER_AGENT = "user_agent"
DIMENSION_REFERER = "referer"
DIMENSION_ALIASES = {
  "ua": DIMENSION_USER_AGENT,
}
DIMENSIONS = (DIMENSION_PATH, DIMENSION_USER_AGENT, DIMENSION_REFERER, )


class IngestReport(object):
  '''
  Counters describing one load.
  '''

  def __init__(self):
    self.bytes_read = 0
    self.lines_parsed = 0
    self.lines_failed = 0
    self.lines_filtered = 0
    self.sessions_unfiltered = 0
    self.sessions = 0
    self.actions = 0
    self.bots = []

  def asDict(self):
    return {
      "bytes_read": self.bytes_read,
      "lines_parsed": self.lines_parsed,
      "lines_failed": self.lines_failed,
      "lines_filtered": self.lines_filtered,
      "sessions_unfiltered": self.sessions_unfiltered,
      "sessions": self.sessions,
      "actions": self.actions,
      "bots": list(self.bots),
    }

  def __repr__(self):
    return "IngestReport({})".format(self.asDict())


class LogStore(object):

  def __init__(self):
    self._L = logging.getLogger(self.__class__.__name__)
    self._lock = threading.RLock()
    self.symbols = SymbolTable()
    self.sessions = []

  def clear(self):
    '''
    Drop all sessions and reseed the symbol table.
    '''
    with self._lock:
      self.symbols = SymbolTable()
      self.sessions = []
    self._L.info("Store cleared")

  def session_count(self):
    with self._lock:
      return len(self.sessions)

  def _parseLines(self, parser, lines, report):
    records = []
    for raw in lines:
      if len(raw) == 0:
        continue
      try:
        line = raw.decode("utf-8")
      except UnicodeDecodeError as e:
        report.lines_failed += 1
        self._L.debug("Could not parse %r: %s", raw, e)
        continue
      if logparser.is_prefiltered(line):
        report.lines_filtered += 1
        continue
      try:
        records.append(parser.parse_line(self.symbols, line))
      except ParseError as e:
        report.lines_failed += 1
        self._L.debug("Could not parse %s: %s", line, e.reason)
    report.lines_parsed += len(records)
    return records

  async def load_async(self, sources, parser, max_age, report_progress=None):
    '''
    Parse the log sources and add their sessions to the store.

    Sources are read one after the other; within a source records must be in
    time order. Each chunk is parsed and fed to the session reconstruction
    while holding the store lock. Cancellation takes effect between chunks;
    strings interned so far stay in the symbol table, no sessions are added.

    Args:
      sources: list of log sources, see logsources.open_source
      parser: LogParser
      max_age: session inactivity window in seconds
      report_progress: optional callable(number_of_bytes) called per chunk

    Returns:
      IngestReport
    '''
    if max_age < 0:
      raise ConfigError("max_age must not be negative")
    report = IngestReport()

    def _progress(n_bytes):
      report.bytes_read += n_bytes
      if report_progress is not None:
        report_progress(n_bytes)

    states = sessionstates.SessionStates(self.symbols, max_age)
    completed = []
    for source in sources:
      self._L.info("Loading %s", logsources.describe_source(source))
      async for lines in logsources.iter_lines(source, report_progress=_progress):
        with self._lock:
          for record in self._parseLines(parser, lines, report):
            completed.extend(states.addRecord(record))
    with self._lock:
      completed.extend(states.flush())
      report.sessions_unfiltered = len(completed)
      self._L.info("Sessions (unfiltered): %d", len(completed))
      bots = self.symbols.list_bots()
      report.bots = [ua for _, ua in bots]
      self._L.info("Bots: %s", report.bots)
      bot_ids = set(idx for idx, _ in bots)
      sessions = [s for s in completed if s.user_agent not in bot_ids]
      report.sessions = len(sessions)
      report.actions = sum(len(s.actions) for s in sessions)
      self._L.info("Sessions (filtered): %d", report.sessions)
      self._L.info("Session actions: %d", report.actions)
      self.sessions.extend(sessions)
    self._L.info("Lines parsed: %d, failed: %d, filtered: %d",
                 report.lines_parsed, report.lines_failed, report.lines_filtered)
    return report

  def load(self, sources, parser, max_age, report_progress=None):
    '''
    Blocking wrapper around load_async.
    '''
    return asyncio.run(self.load_async(sources, parser, max_age, report_progress=report_progress))

  def usage_stats_by(self, dimension, options):
    '''
    Histogram of session activity per category of dimension.

    path counts every action by its path, user_agent and referer count the
    start of each session.

    Args:
      dimension: "path", "user_agent" (or "ua") or "referer"
      options: StatsOptions

    Returns:
      UsageStats
    '''
    dimension = DIMENSION_ALIASES.get(dimension, dimension)
    with self._lock:
      if dimension == DIMENSION_PATH:
        return usagestats.calc_stats(
          self.sessions, options, usagestats.SCOPE_ALL,
          lambda s, i: s.actions[i],
          usagestats.make_inverse_mapping(self.symbols.path))
      if dimension == DIMENSION_USER_AGENT:
        return usagestats.calc_stats(
          self.sessions, options, usagestats.SCOPE_START,
          lambda s, i: s.user_agent,
          usagestats.make_inverse_mapping(self.symbols.user_agent))
      if dimension == DIMENSION_REFERER:
        return usagestats.calc_stats(
          self.sessions, options, usagestats.SCOPE_START,
          lambda s, i: s.referer,
          usagestats.make_inverse_mapping(self.symbols.referer))
    raise ConfigError("Unknown dimension '{}', expected one of {}".format(dimension, DIMENSIONS))

  def usage_transfer_graph(self, options, graph_length, must_contain="", must_start_with=""):
    '''
    Layered transition graph over the stored sessions.

    Returns:
      TransitionGraph
    '''
    if graph_length < 0:
      raise ConfigError("graph_length must not be negative")
    with self._lock:
      return transitiongraph.calc_graph(
        self.sessions, self.symbols, graph_length, options, must_contain, must_start_with)

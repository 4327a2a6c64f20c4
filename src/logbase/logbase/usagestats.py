'''
Time bucketed usage histograms over reconstructed sessions.
'''
import logging
from collections import defaultdict

from logbase.common import ConfigError

SCOPE_START = "start"
SCOPE_ALL = "all"


class StatsOptions(object):
  '''
  Query options shared by the histograms and the transition graph.

  Args:
    resolution_sec: bucket width in seconds
    threshold: minimum total count for a category to be kept
    max_paths: maximum number of categories returned, None for no limit
  '''

  def __init__(self, resolution_sec=3600, threshold=0, max_paths=300):
    if threshold < 0:
      raise ConfigError("threshold must not be negative")
    if max_paths is not None and max_paths < 0:
      raise ConfigError("max_paths must not be negative")
    if resolution_sec < 0:
      raise ConfigError("resolution_sec must not be negative")
    self.resolution_sec = resolution_sec
    self.threshold = threshold
    self.max_paths = max_paths

  def __repr__(self):
    return "StatsOptions(resolution_sec={}, threshold={}, max_paths={})".format(
      self.resolution_sec, self.threshold, self.max_paths)


class UsageStats(object):

  def __init__(self, rows, start_time, end_time, session_starts_only):
    # rows: list of dict {category, time, count}
    self.rows = rows
    self.start_time = start_time
    self.end_time = end_time
    self.session_starts_only = session_starts_only

  def asDict(self):
    return {
      "rows": self.rows,
      "start_time": self.start_time,
      "end_time": self.end_time,
      "session_starts_only": self.session_starts_only,
    }


def make_inverse_mapping(vocabulary, default=""):
  '''
  Build an id -> string resolver for a symbol table vocabulary.
  '''
  all_keys = [default] * vocabulary.size()
  for value, idx in vocabulary.items():
    all_keys[idx] = value

  def describe(idx):
    if 0 <= idx < len(all_keys):
      return all_keys[idx]
    return default

  return describe


def select_top(totals, threshold, max_paths):
  '''
  Keys with a total of at least threshold, largest total first, ties broken
  by ascending key, at most max_paths of them.

  Args:
    totals: dict key -> total count

  Returns:
    list of (key, total)
  '''
  selected = [(key, total) for key, total in totals.items() if total >= threshold]
  selected.sort(key=lambda item: (-item[1], item[0]))
  if max_paths is not None:
    selected = selected[0:max_paths]
  return selected


def calc_usage_table(sessions, scope, key_fn, resolution_sec):
  '''
  Count actions per key and time bucket.

  Returns:
    dict key -> dict bucket -> count
  '''
  usage_table = defaultdict(lambda: defaultdict(int))
  for s in sessions:
    start = s.start_timestamp
    n_actions = 1 if scope == SCOPE_START else len(s.actions)
    for i, elapsed in zip(range(n_actions), s.access_times):
      bucket = (start + elapsed) // resolution_sec
      usage_table[key_fn(s, i)][bucket] += 1
  return usage_table


def calc_stats(sessions, options, scope, key_fn, describe_fn):
  '''
  Build a bucketed histogram over sessions.

  Args:
    sessions: iterable of Session
    options: StatsOptions
    scope: SCOPE_START to count only the first action of a session, SCOPE_ALL for every action
    key_fn: callable(session, action_index) -> category key
    describe_fn: callable(key) -> category label

  Returns:
    UsageStats, bucket numbers in rows are relative to start_time
  '''
  L = logging.getLogger("usagestats")
  if scope not in (SCOPE_START, SCOPE_ALL):
    raise ConfigError("Unknown scope '{}'".format(scope))
  if options.resolution_sec <= 0:
    raise ConfigError("resolution_sec must be positive, got {}".format(options.resolution_sec))
  starts_only = scope == SCOPE_START
  usage_table = calc_usage_table(sessions, scope, key_fn, options.resolution_sec)
  if len(usage_table) == 0:
    return UsageStats([], 0, 0, starts_only)

  # bounds cover every key, including those dropped below
  min_time = min(min(buckets) for buckets in usage_table.values())
  max_time = max(max(buckets) for buckets in usage_table.values())
  L.debug("min_time: %d, max_time: %d, resolution: %d", min_time, max_time, options.resolution_sec)

  totals = {key: sum(buckets.values()) for key, buckets in usage_table.items()}
  rows = []
  for key, _ in select_top(totals, options.threshold, options.max_paths):
    buckets = sorted(usage_table[key].items())
    rows.append({
      "category": describe_fn(key),
      "time": [bucket - min_time for bucket, _ in buckets],
      "count": [count for _, count in buckets],
    })
  return UsageStats(rows, min_time, max_time, starts_only)

'''
Builds the layered page transition graph used for funnel analysis.

The sessions are trimmed to start at a page of interest, coarsened with a
static substitution table, and then reduced to a fixed point: paths outside
the most used set are replaced by their parent directory, deepest first,
until nothing changes. Each layer of the graph then describes step i of the
surviving sessions.
'''
import logging

from logbase import usagestats

MAX_ITERATIONS = 1000
REST_CATEGORY = "Rest"

# sessions outside these bounds are scrapers or single page visits
MIN_GRAPH_ACTIONS = 2
MAX_GRAPH_ACTIONS = 40
MIN_GRAPH_REQUESTS = 7

INDEX_SUFFIX = "/index.html"


def path_depth(path):
  return path.count("/")


def get_global_replacement_table(table):
  '''
  Static path substitutions applied to every session before reduction.

  Admin pages collapse into "admin", style sheets into "css", scripts into
  "js" and directory index pages into their directory. Later rules win.

  Returns:
    dict path id -> replacement path id
  '''
  admin_id = table.path.get("admin")
  css_id = table.path.get("css")
  js_id = table.path.get("js")
  replacements = {}
  for path, idx in table.path.items():
    if path.startswith("/priv") or path.startswith("/admin"):
      replacements[idx] = admin_id
    if path.endswith(".css"):
      replacements[idx] = css_id
    if path.endswith(".js"):
      replacements[idx] = js_id
    if path.endswith(INDEX_SUFFIX):
      parent = table.path.get(path[0:len(path) - len(INDEX_SUFFIX)])
      if parent is not None:
        replacements[idx] = parent
  return replacements


def dedupe_actions(session):
  '''
  Collapse runs of the same action, keeping the first access time.
  '''
  actions = []
  access_times = []
  for action, elapsed in zip(session.actions, session.access_times):
    if len(actions) > 0 and actions[-1] == action:
      continue
    actions.append(action)
    access_times.append(elapsed)
  session.actions = actions
  session.access_times = access_times


def replace_actions(session, replacement_table):
  '''
  Apply replacement_table to the actions of session in place.

  Returns:
    number of actions replaced
  '''
  replacements = 0
  for i, action in enumerate(session.actions):
    replacement = replacement_table.get(action)
    if replacement is not None:
      session.actions[i] = replacement
      replacements += 1
  return replacements


def get_usage_table_sum(sessions, threshold, max_paths):
  '''
  Most used paths over all actions of sessions.

  Returns:
    list of (path id, count), most used first
  '''
  usage = {}
  for s in sessions:
    for action in s.actions:
      usage[action] = usage.get(action, 0) + 1
  return usagestats.select_top(usage, threshold, max_paths)


def filter_sessions(sessions, table, must_contain, must_start_with):
  '''
  Trim sessions to start at the first action whose path contains
  must_start_with, and keep those with an action whose path contains
  must_contain. Both are substring tests.

  Returns:
    list of trimmed, deduplicated and coarsened session copies
  '''
  replacement_table = get_global_replacement_table(table)
  contains_filter = set(idx for path, idx in table.path.items() if must_contain in path)
  starts_filter = set(idx for path, idx in table.path.items() if must_start_with in path)
  result = []
  for s in sessions:
    first = None
    for i, action in enumerate(s.actions):
      if action in starts_filter:
        first = i
        break
    if first is None:
      continue
    s = s.copy()
    del s.actions[0:first]
    del s.access_times[0:first]
    dedupe_actions(s)
    replace_actions(s, replacement_table)
    if any(action in contains_filter for action in s.actions):
      result.append(s)
  return result


def reduce_sessions(sessions, table, threshold, max_paths):
  '''
  Coarsen paths until the used paths outside the whitelist stop changing.

  Args:
    sessions: list of Session, modified in place
    table: SymbolTable
    threshold: minimum use count to be whitelisted
    max_paths: maximum whitelist size, None for no limit

  Returns:
    (sessions, whitelist) where whitelist is a list of (path string, count)
    ending with the ("Rest", 0) catch all entry
  '''
  L = logging.getLogger("transitiongraph")
  for iteration in range(MAX_ITERATIONS):
    usage_table_sum = get_usage_table_sum(sessions, threshold, max_paths)
    whitelisted = set(idx for idx, _ in usage_table_sum)
    existing = set()
    for s in sessions:
      existing.update(s.actions)
    candidates = [(idx, table.path.resolve(idx)) for idx in existing if idx not in whitelisted]
    max_depth = max([path_depth(path) for _, path in candidates], default=0)

    replacement_table = {}
    if max_depth > 1:
      for idx, path in candidates:
        if path_depth(path) == max_depth:
          parent = table.path.get(path[0:path.rfind("/")].rstrip("/"))
          if parent is not None:
            replacement_table[idx] = parent

    replacements = 0
    for s in sessions:
      replacements += replace_actions(s, replacement_table)

    if replacements == 0 or iteration == MAX_ITERATIONS - 1:
      if replacements != 0:
        L.warning("Reached maximum iterations, still done %d replacements", replacements)
      else:
        L.info("Path reduction converged after %d iterations", iteration + 1)
      whitelist = [(table.path.resolve(idx), count) for idx, count in usage_table_sum]
      whitelist.append((REST_CATEGORY, 0))
      return sessions, whitelist


class TransitionGraph(object):
  '''
  layers[i]["nodes"][j] describes node j at step i. Every layer has the same
  nodes in the same order, the last one being the "Rest" catch all.
  '''

  def __init__(self, layers):
    self.layers = layers

  def asDict(self):
    return {"layers": self.layers}


def new_node(path, path_id):
  return {
    "path": path,
    "path_id": path_id,
    "session_count": 0,
    "median_view_time": 0,
    "drop_count": 0,
    "transfer_count": {},
  }


def calc_graph(sessions, table, graph_length, options, must_contain, must_start_with):
  '''
  Compute the layered transition graph.

  Args:
    sessions: list of Session, not modified
    table: SymbolTable
    graph_length: number of layers
    options: StatsOptions, threshold and max_paths bound the node set
    must_contain: keep sessions with a path containing this string
    must_start_with: trim sessions to their first path containing this string

  Returns:
    TransitionGraph
  '''
  sessions = filter_sessions(sessions, table, must_contain, must_start_with)
  sessions, whitelist = reduce_sessions(sessions, table, options.threshold, options.max_paths)

  node_paths = []
  for path, _ in whitelist[0:-1]:
    node_paths.append((path, table.path.get(path, 0)))
  node_paths.append((REST_CATEGORY, table.path.get(REST_CATEGORY, 0)))
  rest_index = len(node_paths) - 1
  node_index = {}
  for i, (_, path_id) in enumerate(node_paths[0:-1]):
    node_index[path_id] = i

  def get_node_index(path_id):
    return node_index.get(path_id, rest_index)

  eligible = [s for s in sessions
              if MIN_GRAPH_ACTIONS <= len(s.actions) <= MAX_GRAPH_ACTIONS
              and s.total_requests >= MIN_GRAPH_REQUESTS]

  layers = []
  for i in range(graph_length):
    nodes = [new_node(path, path_id) for path, path_id in node_paths]
    visit_times = [[] for _ in nodes]
    for s in eligible:
      if len(s.actions) <= i:
        continue
      node_idx = get_node_index(s.actions[i])
      node = nodes[node_idx]
      node["session_count"] += 1
      if i + 1 < len(s.actions):
        next_idx = get_node_index(s.actions[i + 1])
        node["transfer_count"][next_idx] = node["transfer_count"].get(next_idx, 0) + 1
        visit_times[node_idx].append(s.access_times[i + 1] - s.access_times[i])
      else:
        node["drop_count"] += 1
    for node, times in zip(nodes, visit_times):
      if len(times) > 0:
        times.sort()
        node["median_view_time"] = times[len(times) // 2]
    layers.append({"nodes": nodes})
  return TransitionGraph(layers)

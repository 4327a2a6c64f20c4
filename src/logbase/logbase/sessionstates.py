'''
Reconstructs user sessions from a time ordered stream of log records.

A session is the activity of one (address, user agent) pair. It stays open
while its last meaningful action is younger than max_age seconds relative to
the newest record seen, and is emitted once it falls out of that window or
when the input ends.

Records must arrive in non-decreasing time order. Out of order records do not
raise; their elapsed time is clamped to zero and eviction may happen late.
'''
import heapq
import logging
import datetime

from logbase import common

SUCCESS_MIN = 200
SUCCESS_MAX = 300  # exclusive

# a probable asset request this soon after a page view is folded in as noise
ASSET_GRACE = datetime.timedelta(seconds=10)


def compute_session_id(address, user_agent):
  return (address << 32) | user_agent


class Session(object):
  '''
  One reconstructed session.

  access_times holds the seconds elapsed since start_time of each meaningful
  action, actions the path id of each meaningful action. total_requests and
  total_bytes count every successful request of the pair.
  '''

  __slots__ = ("address", "user_agent", "referer", "start_time", "end_time",
               "access_times", "actions", "total_requests", "total_bytes", )

  def __init__(self, address, user_agent, referer, start_time, end_time=None,
               access_times=None, actions=None, total_requests=0, total_bytes=0):
    self.address = address
    self.user_agent = user_agent
    self.referer = referer
    self.start_time = start_time
    self.end_time = start_time if end_time is None else end_time
    self.access_times = [] if access_times is None else list(access_times)
    self.actions = [] if actions is None else list(actions)
    self.total_requests = total_requests
    self.total_bytes = total_bytes

  @property
  def id(self):
    return compute_session_id(self.address, self.user_agent)

  @property
  def start_timestamp(self):
    return common.toEpochSeconds(self.start_time)

  def copy(self):
    return Session(self.address, self.user_agent, self.referer, self.start_time,
                   end_time=self.end_time,
                   access_times=self.access_times,
                   actions=self.actions,
                   total_requests=self.total_requests,
                   total_bytes=self.total_bytes)

  def asDict(self, table=None):
    '''
    JSON friendly representation, with strings resolved when table is given.
    '''
    result = {
      "address": self.address,
      "user_agent": self.user_agent,
      "referer": self.referer,
      "start_time": self.start_time.isoformat(),
      "end_time": self.end_time.isoformat(),
      "access_times": list(self.access_times),
      "actions": list(self.actions),
      "total_requests": self.total_requests,
      "total_bytes": self.total_bytes,
    }
    if table is not None:
      result["address"] = table.address.resolve(self.address)
      result["user_agent"] = table.user_agent.resolve(self.user_agent)
      result["referer"] = table.referer.resolve(self.referer)
      result["actions"] = [table.path.resolve(a) for a in self.actions]
    return result

  def __repr__(self):
    return "Session(id={}, start={}, actions={})".format(self.id, self.start_time, self.actions)


class SessionStates(object):
  '''
  Open sessions plus an eviction index ordered by (last meaningful time, id).

  The index is a heap with lazy deletion: entries whose time no longer
  matches the session's end_time, or whose session is gone, are stale and
  skipped when they reach the top.
  '''

  def __init__(self, table, max_age):
    self._L = logging.getLogger(self.__class__.__name__)
    self._table = table
    self._max_age = datetime.timedelta(seconds=max_age)
    self._sessions = {}
    self._age_index = []

  def __len__(self):
    return len(self._sessions)

  def _pushAge(self, session, session_id):
    heapq.heappush(self._age_index, (session.end_time, session_id))

  def _peekAge(self):
    while len(self._age_index) > 0:
      end_time, session_id = self._age_index[0]
      session = self._sessions.get(session_id)
      if session is not None and session.end_time == end_time:
        return end_time, session_id
      heapq.heappop(self._age_index)
    return None

  def addRecord(self, record):
    '''
    Feed one record into the state machine.

    Args:
      record: LogRecord

    Returns:
      list of sessions completed by this record, oldest first
    '''
    if not (SUCCESS_MIN <= record.status_code < SUCCESS_MAX):
      return []
    # expire first, a session past its window must not absorb this record
    expired = self.expireSessions(record.time)
    is_meaningless = self._table.is_meaningless(record)
    session_id = compute_session_id(record.address, record.user_agent)
    session = self._sessions.get(session_id)
    if session is None:
      if is_meaningless:
        # don't create a session from an asset request
        return expired
      session = Session(record.address, record.user_agent, record.referer, record.time)
      self._sessions[session_id] = session
    elapsed = int((record.time - session.start_time).total_seconds())
    if elapsed < 0:
      self._L.debug("Clamping negative elapsed time %d for session %d", elapsed, session_id)
      elapsed = 0
    is_meaningless = is_meaningless or (
      self._table.is_probably_meaningless(record)
      and len(session.actions) > 0
      and session.end_time + ASSET_GRACE > record.time)
    session.total_requests += 1
    session.total_bytes += record.size
    if not is_meaningless:
      session.access_times.append(elapsed)
      session.actions.append(record.path)
      session.end_time = record.time
      self._pushAge(session, session_id)
    return expired

  def expireSessions(self, now):
    '''
    Remove and return sessions whose last meaningful action is older than
    max_age relative to now.
    '''
    expired = []
    oldest = self._peekAge()
    while oldest is not None and oldest[0] < now - self._max_age:
      heapq.heappop(self._age_index)
      expired.append(self._sessions.pop(oldest[1]))
      oldest = self._peekAge()
    if len(expired) > 0:
      self._L.debug("%d sessions expired, %d open", len(expired), len(self._sessions))
    return expired

  def flush(self):
    '''
    Remove and return every open session in eviction order.
    '''
    remaining = sorted(self._sessions.items(), key=lambda item: (item[1].end_time, item[0]))
    self._sessions = {}
    self._age_index = []
    return [session for _, session in remaining]


def get_sessions(table, records, max_age):
  '''
  Lazily reconstruct sessions from an iterable of records.

  Args:
    table: SymbolTable the records were interned into
    records: iterable of LogRecord in non-decreasing time order
    max_age: inactivity window in seconds

  Returns:
    generator of completed Session, in eviction order
  '''
  states = SessionStates(table, max_age)
  for record in records:
    for session in states.addRecord(record):
      yield session
  for session in states.flush():
    yield session

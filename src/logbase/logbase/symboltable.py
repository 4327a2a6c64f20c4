'''
Implements the interning tables shared by the parsers, the session
reconstruction and the statistics.

Every categorical field of a log record is mapped to a small integer. Ids start
at 1 and are never reused; id 0 means "absent". The path table is
seeded with a fixed vocabulary and keeps every ancestor directory of an
interned path interned as well.
'''
import logging

# Content types with fixed ids. 2-4 are style sheets and scripts, 2-10 all
# static assets.
SEEDED_CONTENT_TYPES = [
  "",
  "text/html",
  "text/css",
  "text/javascript",
  "application/javascript",
  "text/json",
  "application/json",
  "image/png",
  "image/jpeg",
  "image/gif",
  "image/svg+xml",
]

SEEDED_PATHS = [
  "/",
  "/index.html",
  "css",
  "js",
  "img",
  "rest",
  "api",
  "admin",
]

MEANINGLESS_EXTENSIONS = (".js", ".css", ".ico", ".svg", ".woff", ".woff2", ".ttf", ".eot", ".otf", ".feed", )
PROBABLY_MEANINGLESS_EXTENSIONS = (".png", ".jpg", ".gif", ".svg", )

BOT_KEYWORDS = [
  "bot", "Bot", "crawler", "Crawler", "spider", "Spider", "http-client",
  "curl", "check_http", "Miniflux", "Feedly", "okhttp", "Zapier",
]

ASCII_ALNUM = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789")

# category names accepted by SymbolTable.intern
ADDRESS = "address"
PROTOCOL = "protocol"
METHOD = "method"
DOMAIN = "domain"
REFERER = "referer"
USER_AGENT = "user_agent"
CONTENT_TYPE = "content_type"
COMPRESSION_TYPE = "compression_type"
CATEGORIES = (ADDRESS, PROTOCOL, METHOD, DOMAIN, REFERER, USER_AGENT, CONTENT_TYPE, COMPRESSION_TYPE, )


def is_bot_user_agent(user_agent):
  '''
  True if the user agent names a bot, crawler or scripted client. A keyword
  counts when the character after its first occurrence is not an ascii
  letter or digit.

  Args:
    user_agent: user agent string

  Returns:
    Boolean
  '''
  for keyword in BOT_KEYWORDS:
    # only the first occurrence of a keyword is looked at
    idx = user_agent.find(keyword)
    if idx < 0:
      continue
    end = idx + len(keyword)
    if end == len(user_agent) or user_agent[end] not in ASCII_ALNUM:
      return True
  return False


class Vocabulary(object):
  '''
  Bidirectional string <-> id dictionary for a single field.
  '''

  def __init__(self, seed=None):
    # _strings[0] is the reserved "absent" slot unless a seed fills it
    self._ids = {}
    self._strings = [""]
    if seed is not None:
      self._strings = []
      for value in seed:
        self._ids[value] = len(self._strings)
        self._strings.append(value)

  def __len__(self):
    return len(self._ids)

  def __contains__(self, value):
    return value in self._ids

  def get(self, value, default=None):
    return self._ids.get(value, default)

  def _nextId(self):
    # one more than the number of entries, a seeded table skips the id
    # right after its seed
    return len(self._ids) + 1

  def intern(self, value):
    idx = self._ids.get(value)
    if idx is None:
      idx = self._nextId()
      while len(self._strings) < idx:
        self._strings.append("")
      self._strings.append(value)
      self._ids[value] = idx
    return idx

  def resolve(self, idx, default=""):
    if 0 <= idx < len(self._strings):
      return self._strings[idx]
    return default

  def items(self):
    '''(string, id) pairs ordered by id.'''
    return [(self._strings[i], i) for i in sorted(self._ids.values())]

  def size(self):
    '''One more than the largest id handed out.'''
    return len(self._strings)


class PathVocabulary(Vocabulary):
  '''
  Path table. Trailing slashes are dropped and all ancestor directories are
  interned before the path itself.
  '''

  def __init__(self):
    super(PathVocabulary, self).__init__(seed=SEEDED_PATHS)

  def _nextId(self):
    return len(self._strings)

  def intern(self, path):
    path = path.rstrip("/")
    idx = self._ids.get(path)
    if idx is not None:
      return idx
    last_slash = path.rfind("/")
    if last_slash > 0:
      self.intern(path[0:last_slash])
    return super(PathVocabulary, self).intern(path)


class SymbolTable(object):
  '''
  All interning tables used by one log store.
  '''

  def __init__(self):
    self._L = logging.getLogger(self.__class__.__name__)
    self.address = Vocabulary()
    self.protocol = Vocabulary()
    self.method = Vocabulary()
    self.domain = Vocabulary()
    self.path = PathVocabulary()
    self.referer = Vocabulary()
    self.user_agent = Vocabulary()
    self.content_type = Vocabulary(seed=SEEDED_CONTENT_TYPES)
    self.compression_type = Vocabulary()

  def table(self, category):
    if category not in CATEGORIES:
      raise KeyError("Unknown symbol category {}".format(category))
    return getattr(self, category)

  def intern(self, category, value):
    '''
    Look up or assign the id of value in the table for category.

    Args:
      category: one of CATEGORIES
      value: string to intern

    Returns:
      integer id
    '''
    return self.table(category).intern(value)

  def intern_path(self, raw):
    return self.path.intern(raw)

  def resolve(self, category, idx):
    if category == "path":
      return self.path.resolve(idx)
    return self.table(category).resolve(idx)

  def is_meaningless(self, record):
    '''
    True for requests that are never page views: style sheets, scripts, fonts, feeds.
    '''
    if 1 < record.content_type <= 4:
      return True
    return self.path.resolve(record.path).endswith(MEANINGLESS_EXTENSIONS)

  def is_probably_meaningless(self, record):
    '''
    True for requests that usually are embedded assets, images included.
    '''
    if 1 < record.content_type <= 10:
      return True
    return self.path.resolve(record.path).endswith(PROBABLY_MEANINGLESS_EXTENSIONS)

  def list_bots(self):
    '''
    User agents that look like bots.

    Returns:
      list of (id, user agent string), ascending by id
    '''
    bots = [(idx, ua) for ua, idx in self.user_agent.items() if is_bot_user_agent(ua)]
    self._L.debug("%d of %d user agents are bots", len(bots), len(self.user_agent))
    return bots

'''
Turns access log lines into LogRecord tuples.

Two strategies share one interface and produce identical records:

  RegexLogParser  configured with a regular expression and a list mapping the
                  15 logical fields onto capture groups.
  FixedLogParser  hand written tokenizer for the canonical record, fields
                  separated by spaces, quoted fields may contain spaces and
                  backslash escaped quotes.

Field order of the canonical record:

   0. date time (two tokens)     8. ignored number
   1. client address             9. referer
   2. protocol version          10. user agent
   3. method                    11. ignored
   4. domain                    12. ignored number
   5. path                      13. content type
   6. status code               14. compression type
   7. size
'''
import re
import logging
import datetime
from collections import namedtuple

from logbase import common
from logbase import symboltable
from logbase.common import ConfigError, ParseError

# Cheap pre-filter applied before parsing, coarser than the user agent check
BOT_LINE_MARKERS = ("Bot/", "bot/", )

PARSER_KINDS = ("fixed", "regex", )

F_TIME = 0
F_ADDRESS = 1
F_PROTOCOL = 2
F_METHOD = 3
F_DOMAIN = 4
F_PATH = 5
F_STATUS = 6
F_SIZE = 7
F_REFERER = 9
F_USER_AGENT = 10
F_CONTENT_TYPE = 13
F_COMPRESSION_TYPE = 14

LogRecord = namedtuple("LogRecord", [
  "time",
  "address",
  "protocol",
  "method",
  "domain",
  "path",
  "status_code",
  "size",
  "referer",
  "user_agent",
  "content_type",
  "compression_type",
])


def is_prefiltered(line):
  '''
  True if the line should be dropped without parsing.
  '''
  for marker in BOT_LINE_MARKERS:
    if marker in line:
      return True
  return False


def parse_unsigned(value, line, name):
  if not value.isdigit() or not value.isascii():
    raise ParseError(line, "Failed to parse {} '{}' as unsigned integer".format(name, value))
  return int(value)


class LogParser(object):
  '''
  Common configuration and record construction for both parser strategies.
  '''

  def __init__(self, pattern, capture_idxs, datetime_format, ignore_query_string):
    self._L = logging.getLogger(self.__class__.__name__)
    self._L.debug("pattern = %s", pattern)
    capture_idxs = list(capture_idxs)
    if len(capture_idxs) != common.NUM_FIELDS:
      raise ConfigError(
        "capture_idxs must have {} elements, found {}".format(common.NUM_FIELDS, len(capture_idxs)))
    try:
      self.regex = re.compile(pattern)
    except re.error as e:
      raise ConfigError("Could not compile pattern '{}': {}".format(pattern, e))
    if min(capture_idxs) < 0:
      raise ConfigError("capture_idxs must not be negative")
    max_c = max(capture_idxs)
    if max_c > self.regex.groups:
      raise ConfigError(
        "capture_idxs must not exceed the capture groups in pattern, found {}, max(capture_idx)={}".format(
          self.regex.groups, max_c))
    self.pattern = pattern
    self.capture_idxs = capture_idxs
    self.datetime_format = datetime_format
    self.ignore_query_string = ignore_query_string

  def strip_query_string(self, s):
    if self.ignore_query_string:
      idx = s.find("?")
      if idx >= 0:
        return s[0:idx]
    return s

  def tokenize(self, line):
    '''
    Split a line into the 15 raw field strings.
    '''
    raise NotImplementedError()

  def parse_line(self, table, line):
    '''
    Parse one line, interning its categorical fields.

    Args:
      table: SymbolTable that receives the interned strings
      line: text of a single log line, without the newline

    Returns:
      LogRecord

    Raises:
      ParseError if the line can not be parsed
    '''
    fields = self.tokenize(line)
    try:
      time = datetime.datetime.strptime(fields[F_TIME], self.datetime_format)
    except ValueError as e:
      raise ParseError(line, str(e))
    time = common.toUtc(time)
    status_code = parse_unsigned(fields[F_STATUS], line, "status code")
    size = parse_unsigned(fields[F_SIZE], line, "size")
    return LogRecord(
      time=time,
      address=table.intern(symboltable.ADDRESS, fields[F_ADDRESS]),
      protocol=table.intern(symboltable.PROTOCOL, fields[F_PROTOCOL]),
      method=table.intern(symboltable.METHOD, fields[F_METHOD]),
      domain=table.intern(symboltable.DOMAIN, fields[F_DOMAIN]),
      path=table.intern_path(self.strip_query_string(fields[F_PATH])),
      status_code=status_code,
      size=size,
      referer=table.intern(symboltable.REFERER, self.strip_query_string(fields[F_REFERER])),
      user_agent=table.intern(symboltable.USER_AGENT, fields[F_USER_AGENT]),
      content_type=table.intern(symboltable.CONTENT_TYPE, fields[F_CONTENT_TYPE]),
      compression_type=table.intern(symboltable.COMPRESSION_TYPE, fields[F_COMPRESSION_TYPE]),
    )


class RegexLogParser(LogParser):

  def tokenize(self, line):
    match = self.regex.search(line)
    if match is None:
      raise ParseError(line, "Regex didn't match")
    fields = []
    for idx in self.capture_idxs:
      if idx == 0:
        fields.append("0")
        continue
      value = match.group(idx)
      if value is None:
        raise ParseError(line, "Capture group {} did not participate in the match".format(idx))
      fields.append(value)
    return fields


def skip_space(s, pos):
  n = len(s)
  while pos < n and s[pos] == " ":
    pos += 1
  return pos


def find_end_quote(s, start):
  '''
  Index of the quote closing the field opened at s[start], or -1.

  A quote preceded by an odd number of backslashes is escaped.
  '''
  pos = s.find('"', start + 1)
  while pos >= 0:
    cnt = 0
    while pos - cnt - 1 > start and s[pos - cnt - 1] == "\\":
      cnt += 1
    if cnt % 2 == 0:
      return pos
    pos = s.find('"', pos + 1)
  return -1


class FixedLogParser(LogParser):
  '''
  Tokenizer for the canonical record. Ignores the pattern and capture list
  apart from validating them.
  '''

  def read_date(self, line, pos):
    midws = line.find(" ", pos)
    endws = line.find(" ", midws + 1) if midws >= 0 else -1
    if endws < 0:
      raise ParseError(line, "Missing date time field")
    return line[pos:endws], skip_space(line, endws + 1)

  def read_field(self, line, pos):
    if pos < len(line) and line[pos] == '"':
      end = find_end_quote(line, pos)
      if end < 0:
        raise ParseError(line, "Unterminated quoted field at {}".format(pos))
      return line[pos + 1:end], skip_space(line, end + 1)
    end = line.find(" ", pos)
    if end < 0:
      return line[pos:], len(line)
    return line[pos:end], skip_space(line, end)

  def tokenize(self, line):
    pos = skip_space(line, 0)
    date, pos = self.read_date(line, pos)
    fields = [date, ]
    for _ in range(common.NUM_FIELDS - 1):
      value, pos = self.read_field(line, pos)
      fields.append(value)
    for idx, name in ((F_DOMAIN, "domain"), (F_SIZE, "size"), (F_STATUS, "status code"), ):
      if len(fields[idx]) == 0:
        raise ParseError(line, "Empty {} field".format(name))
    return fields


def create_parser(pattern=common.DEFAULT_PATTERN,
                  capture_idxs=None,
                  datetime_format="%Y-%m-%d %H:%M:%S",
                  ignore_query_string=True,
                  kind="fixed"):
  '''
  Build a parser. Configuration problems raise ConfigError here, before any
  line is read.

  Args:
    pattern: regular expression for the regex strategy
    capture_idxs: 15 capture group indices, 0 for "not present"
    datetime_format: strptime format of the time field
    ignore_query_string: truncate path and referer at the first '?'
    kind: "fixed" or "regex"

  Returns:
    LogParser
  '''
  if capture_idxs is None:
    capture_idxs = list(range(1, common.NUM_FIELDS + 1))
  if kind == "fixed":
    return FixedLogParser(pattern, capture_idxs, datetime_format, ignore_query_string)
  if kind == "regex":
    return RegexLogParser(pattern, capture_idxs, datetime_format, ignore_query_string)
  raise ConfigError("Unknown parser kind '{}', expected one of {}".format(kind, PARSER_KINDS))


def parserFromConfig(section):
  '''
  Build a parser from the [parser] section returned by common.loadConfig.
  '''
  return create_parser(
    pattern=section["pattern"],
    capture_idxs=common.parseCaptures(section["captures"]),
    datetime_format=section["date_format"],
    ignore_query_string=common.configBool(section, "ignore_query_string"),
    kind=section["kind"],
  )

'''
Byte chunk sources for ingestion and reassembly of lines across chunks.

A source is anything open_source() accepts: raw bytes, a path to a plain or
gzip compressed file, an http(s) URL, or a sync / async iterable of byte
chunks. Every source is consumed as an async iterator of bytes.
'''
import os
import gzip
import asyncio
import logging

from aiohttp import ClientSession

CHUNK_SIZE = 1 << 20  # 1MB
URL_SCHEMES = ("http://", "https://", )


class LineSplitter(object):
  '''
  Splits byte chunks on newlines, keeping the unterminated tail of a chunk
  until the next chunk or finish() completes it.
  '''

  def __init__(self):
    self._remainder = b""

  def feed(self, chunk):
    '''
    Args:
      chunk: bytes

    Returns:
      list of complete lines as bytes, without line terminators
    '''
    parts = chunk.split(b"\n")
    if len(parts) == 1:
      self._remainder += chunk
      return []
    parts[0] = self._remainder + parts[0]
    self._remainder = parts.pop()
    return [_strip_cr(p) for p in parts]

  def finish(self):
    '''
    Returns:
      list holding the final unterminated line, if any
    '''
    tail = self._remainder
    self._remainder = b""
    if len(tail) == 0:
      return []
    return [_strip_cr(tail)]


def _strip_cr(line):
  if line.endswith(b"\r"):
    return line[0:-1]
  return line


def is_url(source):
  return isinstance(source, str) and source.startswith(URL_SCHEMES)


def describe_source(source):
  if isinstance(source, (str, os.PathLike)):
    return os.fspath(source)
  if isinstance(source, (bytes, bytearray, memoryview)):
    return "<{} bytes>".format(len(source))
  return "<{}>".format(type(source).__name__)


async def _bytes_chunks(data):
  yield bytes(data)


async def _file_chunks(path, chunk_size):
  '''
  Read a file in chunks, running the blocking reads in the default executor.
  '''
  loop = asyncio.get_running_loop()
  opener = gzip.open if os.fspath(path).endswith(".gz") else open
  source_file = await loop.run_in_executor(None, opener, path, "rb")
  try:
    while True:
      chunk = await loop.run_in_executor(None, source_file.read, chunk_size)
      if not chunk:
        break
      yield chunk
  finally:
    source_file.close()


async def _url_chunks(url, chunk_size):
  L = logging.getLogger("logsources")
  async with ClientSession() as session:
    async with session.get(url) as response:
      response.raise_for_status()
      L.debug("Streaming %s, status %d", url, response.status)
      async for chunk in response.content.iter_chunked(chunk_size):
        yield chunk


async def _iter_chunks(iterable):
  for chunk in iterable:
    yield bytes(chunk)


def open_source(source, chunk_size=CHUNK_SIZE):
  '''
  Normalise a log source into an async iterator of byte chunks.

  Args:
    source: bytes, file path, URL, or iterable / async iterable of bytes
    chunk_size: read size for files and URLs

  Returns:
    async iterator of bytes
  '''
  if isinstance(source, (bytes, bytearray, memoryview)):
    return _bytes_chunks(source)
  if is_url(source):
    return _url_chunks(source, chunk_size)
  if isinstance(source, (str, os.PathLike)):
    return _file_chunks(source, chunk_size)
  if hasattr(source, "__aiter__"):
    return source.__aiter__()
  if hasattr(source, "__iter__"):
    return _iter_chunks(source)
  raise TypeError("Unsupported log source {!r}".format(source))


async def iter_lines(source, report_progress=None, chunk_size=CHUNK_SIZE):
  '''
  Async generator of line batches, one batch per chunk read from source.

  Args:
    source: anything open_source accepts
    report_progress: optional callable(number_of_bytes) called per chunk

  Returns:
    async iterator of lists of bytes lines
  '''
  splitter = LineSplitter()
  async for chunk in open_source(source, chunk_size=chunk_size):
    if report_progress is not None:
      report_progress(len(chunk))
    lines = splitter.feed(chunk)
    if len(lines) > 0:
      yield lines
  tail = splitter.finish()
  if len(tail) > 0:
    yield tail

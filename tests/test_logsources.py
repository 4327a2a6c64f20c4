"""Tests for logbase.logsources: line reassembly and the supported source kinds."""

import asyncio
import gzip

import pytest
from aiohttp import web
from aiohttp import test_utils

from logbase import logsources
from logbase.logsources import LineSplitter


def collect(source, chunk_size=logsources.CHUNK_SIZE):
    async def run():
        batches = []
        async for lines in logsources.iter_lines(source, chunk_size=chunk_size):
            batches.append(lines)
        return batches
    return asyncio.run(run())


def flatten(batches):
    return [line for batch in batches for line in batch]


class TestLineSplitter:
    def test_lines_across_chunks(self):
        splitter = LineSplitter()
        assert splitter.feed(b"one\ntw") == [b"one"]
        assert splitter.feed(b"o") == []
        assert splitter.feed(b"\nthree\r\nfo") == [b"two", b"three"]
        assert splitter.finish() == [b"fo"]
        assert splitter.finish() == []

    def test_blank_lines_are_kept_empty(self):
        splitter = LineSplitter()
        assert splitter.feed(b"a\n\nb\n") == [b"a", b"", b"b"]
        assert splitter.finish() == []


class TestSources:
    def test_bytes(self):
        assert flatten(collect(b"a\nb\nc")) == [b"a", b"b", b"c"]

    def test_iterable_of_chunks(self):
        assert flatten(collect([b"x\ny", b"y\n", b"z"])) == [b"x", b"yy", b"z"]

    def test_async_iterable(self):
        async def chunks():
            yield b"1\n2"
            yield b"\n3\n"
        assert flatten(collect(chunks())) == [b"1", b"2", b"3"]

    def test_plain_file(self, tmp_path):
        path = tmp_path / "access.log"
        path.write_bytes(b"first\nsecond\nthird\n")
        batches = collect(str(path), chunk_size=4)
        assert flatten(batches) == [b"first", b"second", b"third"]
        assert len(batches) > 1

    def test_path_object(self, tmp_path):
        path = tmp_path / "access.log"
        path.write_bytes(b"only")
        assert flatten(collect(path)) == [b"only"]

    def test_gzip_file(self, tmp_path):
        path = tmp_path / "access.log.gz"
        with gzip.open(str(path), "wb") as f:
            f.write(b"zipped\nlines\n")
        assert flatten(collect(str(path))) == [b"zipped", b"lines"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            collect(str(tmp_path / "nope.log"))

    def test_unsupported(self):
        with pytest.raises(TypeError):
            logsources.open_source(42)

    def test_progress_counts_bytes(self):
        seen = []

        async def run():
            async for _ in logsources.iter_lines([b"abc\n", b"de"], report_progress=seen.append):
                pass
        asyncio.run(run())
        assert seen == [4, 2]

    def test_url(self):
        async def handler(request):
            return web.Response(body=b"remote\nlog\nlines")

        async def run():
            app = web.Application()
            app.router.add_get("/access.log", handler)
            server = test_utils.TestServer(app)
            await server.start_server()
            try:
                url = str(server.make_url("/access.log"))
                assert logsources.is_url(url)
                lines = []
                async for batch in logsources.iter_lines(url, chunk_size=3):
                    lines.extend(batch)
                return lines
            finally:
                await server.close()

        assert asyncio.run(run()) == [b"remote", b"log", b"lines"]


class TestDescribe:
    def test_descriptions(self):
        assert logsources.describe_source("/var/log/a.log") == "/var/log/a.log"
        assert logsources.describe_source(b"12345") == "<5 bytes>"
        assert logsources.describe_source([b"x"]) == "<list>"

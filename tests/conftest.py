"""Shared fixtures for the logbase tests."""

import datetime

import pytest

from logbase import logparser
from logbase.logstore import LogStore
from logbase.symboltable import SymbolTable

BASE_TIME = datetime.datetime(2024, 1, 1, 0, 0, 0)


def format_time(offset):
    return (BASE_TIME + datetime.timedelta(seconds=offset)).strftime("%Y-%m-%d %H:%M:%S")


def build_line(offset=0, address="1.1.1.1", path="/a", status=200, size=100,
               referer="-", user_agent="ua1", content_type="text/html",
               protocol="HTTP/1.1", method="GET", domain="example.com",
               compression="-", extra="-", number=0):
    """One canonical record, offset seconds after BASE_TIME.

    The result parses with both parser strategies and the default pattern.
    """
    return (
        '{time} "{address}" "{protocol}" {method} {domain} "{path}" {status} {size} 0 '
        '"{referer}" "{user_agent}" "{extra}" {number} "{content_type}" "{compression}"'
    ).format(
        time=format_time(offset), address=address, protocol=protocol, method=method,
        domain=domain, path=path, status=status, size=size, referer=referer,
        user_agent=user_agent, extra=extra, number=number,
        content_type=content_type, compression=compression,
    )


@pytest.fixture
def table():
    return SymbolTable()


@pytest.fixture
def store():
    return LogStore()


@pytest.fixture
def fixed_parser():
    return logparser.create_parser(kind="fixed")


@pytest.fixture
def regex_parser():
    return logparser.create_parser(kind="regex")


@pytest.fixture(params=["fixed", "regex"])
def any_parser(request):
    return logparser.create_parser(kind=request.param)

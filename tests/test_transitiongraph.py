"""Tests for logbase.transitiongraph: coarsening, trimming, reduction and layer counts."""

import datetime

import pytest

from logbase import transitiongraph
from logbase.common import UTC
from logbase.sessionstates import Session
from logbase.usagestats import StatsOptions

BASE = datetime.datetime(2024, 1, 1, tzinfo=UTC)


def session(table, paths, access_times=None, total_requests=10):
    actions = [table.intern_path(p) for p in paths]
    if access_times is None:
        access_times = list(range(len(actions)))
    return Session(1, 1, 1, BASE, access_times=access_times, actions=actions,
                   total_requests=total_requests)


def resolved(table, s):
    return [table.path.resolve(a) for a in s.actions]


class TestReplacementTable:
    def test_static_rules(self, table):
        ids = {p: table.intern_path(p) for p in [
            "/admin/users", "/private/key", "/s/site.css", "/app.js", "/docs/index.html", "/admin/tool.js",
        ]}
        replacements = transitiongraph.get_global_replacement_table(table)
        assert replacements[ids["/admin/users"]] == table.path.get("admin")
        assert replacements[ids["/private/key"]] == table.path.get("admin")
        assert replacements[ids["/s/site.css"]] == table.path.get("css")
        assert replacements[ids["/app.js"]] == table.path.get("js")
        assert replacements[ids["/docs/index.html"]] == table.path.get("/docs")
        # later rules win
        assert replacements[ids["/admin/tool.js"]] == table.path.get("js")

    def test_index_without_interned_parent(self, table):
        replacements = transitiongraph.get_global_replacement_table(table)
        assert table.path.get("/index.html") not in replacements


class TestFilterSessions:
    def test_dedupe_keeps_first_time(self, table):
        s = session(table, ["/a", "/a", "/b", "/a"], [0, 3, 5, 9])
        transitiongraph.dedupe_actions(s)
        assert resolved(table, s) == ["/a", "/b", "/a"]
        assert s.access_times == [0, 5, 9]

    def test_trim_to_first_match(self, table):
        original = session(table, ["/home", "/shop/a", "/shop/a", "/cart"], [0, 4, 6, 10])
        result = transitiongraph.filter_sessions([original], table, "", "shop")
        assert len(result) == 1
        assert resolved(table, result[0]) == ["/shop/a", "/cart"]
        assert result[0].access_times == [4, 10]
        assert resolved(table, original) == ["/home", "/shop/a", "/shop/a", "/cart"]

    def test_substring_semantics(self, table):
        sessions = [
            session(table, ["/home", "/checkout/pay"]),
            session(table, ["/home", "/about"]),
        ]
        result = transitiongraph.filter_sessions(sessions, table, "check", "")
        assert [resolved(table, s) for s in result] == [["/home", "/checkout/pay"]]
        result = transitiongraph.filter_sessions(sessions, table, "", "bout")
        assert [resolved(table, s) for s in result] == [["/about"]]

    def test_no_match_drops_session(self, table):
        sessions = [session(table, ["/home"])]
        assert transitiongraph.filter_sessions(sessions, table, "", "missing") == []
        assert transitiongraph.filter_sessions(sessions, table, "missing", "") == []

    def test_coarsening_applied(self, table):
        sessions = [session(table, ["/home", "/static/site.css", "/admin/panel"])]
        result = transitiongraph.filter_sessions(sessions, table, "", "")
        assert resolved(table, result[0]) == ["/home", "css", "admin"]


class TestReduceSessions:
    def test_converges_to_common_parent(self, table):
        sessions = [
            session(table, ["/a/b/c", "/a/b/d"]),
            session(table, ["/a/b/c", "/a/x"]),
        ]
        sessions, whitelist = transitiongraph.reduce_sessions(sessions, table, 0, 1)
        assert whitelist == [("/a", 4), ("Rest", 0)]
        assert [resolved(table, s) for s in sessions] == [["/a", "/a"], ["/a", "/a"]]

    def test_whitelist_bound_and_fixed_point(self, table):
        sessions = [
            session(table, ["/x/1/a", "/x/1/b", "/y/2/c"]),
            session(table, ["/x/1/a", "/z", "/y/2/d/e"]),
            session(table, ["/x/1/a", "/x/2", "/w/3/4/5/6"]),
        ]
        max_paths = 2
        sessions, whitelist = transitiongraph.reduce_sessions(sessions, table, 0, max_paths)
        assert len(whitelist) <= max_paths + 1
        assert whitelist[-1] == ("Rest", 0)
        kept = set(path for path, _ in whitelist)
        for s in sessions:
            for path in resolved(table, s):
                assert path in kept or transitiongraph.path_depth(path) <= 1

    def test_threshold_excludes_rare_paths(self, table):
        sessions = [session(table, ["/p", "/p", "/q"])]
        _, whitelist = transitiongraph.reduce_sessions(sessions, table, 2, None)
        assert whitelist == [("/p", 2), ("Rest", 0)]


class TestCalcGraph:
    @pytest.fixture
    def sessions(self, table):
        return [
            session(table, ["/home", "/about"], [0, 10]),
            session(table, ["/home", "/contact"], [0, 30]),
            session(table, ["/home", "/about", "/contact"], [0, 20, 25]),
            session(table, ["/home", "/about"], [0, 1], total_requests=3),
        ]

    def test_layers(self, table, sessions):
        graph = transitiongraph.calc_graph(sessions, table, 4, StatsOptions(0, 0, None), "", "")
        layers = graph.asDict()["layers"]
        assert len(layers) == 4
        assert [n["path"] for n in layers[0]["nodes"]] == ["/home", "/about", "/contact", "Rest"]
        home = layers[0]["nodes"][0]
        assert home["path_id"] == table.path.get("/home")
        assert home["session_count"] == 3
        assert home["drop_count"] == 0
        assert home["transfer_count"] == {1: 2, 2: 1}
        assert home["median_view_time"] == 20
        about = layers[1]["nodes"][1]
        assert about["session_count"] == 2
        assert about["drop_count"] == 1
        assert about["transfer_count"] == {2: 1}
        assert about["median_view_time"] == 5
        assert layers[1]["nodes"][2]["drop_count"] == 1
        assert layers[2]["nodes"][2]["session_count"] == 1
        assert all(n["session_count"] == 0 for n in layers[3]["nodes"])

    def test_flow_is_conserved(self, table, sessions):
        graph = transitiongraph.calc_graph(sessions, table, 3, StatsOptions(0, 0, None), "", "")
        for layer in graph.layers:
            for node in layer["nodes"]:
                assert node["session_count"] == node["drop_count"] + sum(node["transfer_count"].values())

    def test_rest_collects_unlisted_paths(self, table, sessions):
        graph = transitiongraph.calc_graph(sessions, table, 2, StatsOptions(0, 0, 1), "", "")
        nodes = graph.layers[0]["nodes"]
        assert [n["path"] for n in nodes] == ["/home", "Rest"]
        assert nodes[1]["path_id"] == 0
        assert nodes[0]["transfer_count"] == {1: 3}
        assert graph.layers[1]["nodes"][1]["session_count"] == 3

    def test_short_and_long_sessions_ignored(self, table):
        sessions = [
            session(table, ["/only"]),
            session(table, ["/p{}".format(i) for i in range(41)]),
        ]
        graph = transitiongraph.calc_graph(sessions, table, 2, StatsOptions(0, 0, None), "", "")
        for layer in graph.layers:
            assert all(n["session_count"] == 0 for n in layer["nodes"])

    def test_zero_length(self, table, sessions):
        graph = transitiongraph.calc_graph(sessions, table, 0, StatsOptions(0, 0, None), "", "")
        assert graph.layers == []

    def test_input_sessions_unchanged(self, table, sessions):
        before = [list(s.actions) for s in sessions]
        transitiongraph.calc_graph(sessions, table, 3, StatsOptions(0, 0, 1), "", "")
        assert [s.actions for s in sessions] == before

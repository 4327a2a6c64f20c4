"""Tests for the logbase-analyze command line entry point."""

import json

from logbase import analyze_logs
from logbase import common

from conftest import build_line


def write_log(tmp_path, name="access.log"):
    lines = []
    for address in ["1.1.1.1", "2.2.2.2"]:
        for i, path in enumerate(["/home", "/docs", "/download"]):
            lines.append(build_line(offset=i * 30, address=address, path=path))
            for j in range(2):
                lines.append(build_line(offset=i * 30 + 1 + j, address=address, path="/s/{}.js".format(j)))
    lines.sort()
    path = tmp_path / name
    path.write_text("\n".join(lines) + "\n")
    return path


def test_stats_and_graph(tmp_path, capsys):
    log = write_log(tmp_path)
    assert analyze_logs.main(["--by", "path", "--by", "user_agent", "--graph", "3", str(log)]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["ingest"]["lines_parsed"] == 18
    assert result["ingest"]["sessions"] == 2
    counts = {row["category"]: sum(row["count"]) for row in result["stats"]["path"]["rows"]}
    assert counts == {"/home": 2, "/docs": 2, "/download": 2}
    assert result["stats"]["user_agent"]["session_starts_only"] is True
    assert len(result["graph"]["layers"]) == 3
    assert [n["path"] for n in result["graph"]["layers"][0]["nodes"]] == ["Rest"]


def test_config_file_overrides_defaults(tmp_path, capsys):
    log = write_log(tmp_path)
    config = tmp_path / "logbase.ini"
    config.write_text("[parser]\nkind = regex\nmax_age = 10\n\n[graph]\nthreshold = 0\n")
    assert analyze_logs.main(["-c", str(config), "-g", "2", str(log)]) == 0
    result = json.loads(capsys.readouterr().out)
    # a 10 second window splits every page view into its own session
    assert result["ingest"]["sessions"] == 6
    assert "stats" not in result
    assert len(result["graph"]["layers"]) == 2


def test_max_age_flag(tmp_path, capsys):
    log = write_log(tmp_path)
    assert analyze_logs.main(["-a", "0", str(log)]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["ingest"]["sessions"] == 6


def test_missing_source(tmp_path, capsys):
    assert analyze_logs.main([str(tmp_path / "missing.log")]) == 2
    assert capsys.readouterr().out == ""


def test_missing_config(tmp_path):
    log = write_log(tmp_path)
    assert analyze_logs.main(["-c", str(tmp_path / "missing.ini"), str(log)]) == 2


def test_bad_config_value(tmp_path):
    log = write_log(tmp_path)
    config = tmp_path / "logbase.ini"
    config.write_text("[parser]\ncaptures = 1,2,3\n")
    assert analyze_logs.main(["-c", str(config), str(log)]) == 2


def test_analyze_logs_without_outputs(tmp_path):
    log = write_log(tmp_path)
    result = analyze_logs.analyzeLogs([str(log)], common.loadConfig(), [], 0)
    assert set(result) == {"ingest"}

"""Command line: version, sum, config and cache commands."""

import json

import pytest
from rich.console import Console

import main


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.setattr(main, "console", Console(width=200))
    monkeypatch.setenv("RESTAPI_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setattr("summarizer.config.USER_CONFIG_DIR", tmp_path / "home")
    monkeypatch.setattr("summarizer.config.USER_CONFIG_FILE", tmp_path / "home" / "config.yaml")
    for name in ("LLM_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY", "LLM_PROVIDER", "RESTAPI_PROVIDER"):
        monkeypatch.delenv(name, raising=False)


def run(argv):
    with pytest.raises(SystemExit) as exc:
        main.main(argv)
    return exc.value.code


def test_version(capsys):
    assert run(["--version"]) == 0
    assert capsys.readouterr().out.strip() == "restapisummarizer 1.0.1"


def test_command_is_required(capsys):
    assert run([]) == 2


class TestSum:

    def test_json_report_on_stdout(self, sample_tree, capsys):
        code = run(["sum", str(sample_tree), "--provider", "mock", "--format", "json"])
        assert code == 0

        report = json.loads(capsys.readouterr().out)
        assert report["version"] == "1.0.1"
        assert report["counters"]["total"] == 6
        assert report["counters"]["succeeded"] == 6
        assert {ep["summary"] for ep in report["endpoints"]} >= {"Handles POST /api/users"}

    def test_output_file_and_table(self, sample_tree, tmp_path, capsys):
        out = tmp_path / "report.json"
        code = run(["sum", str(sample_tree), "--provider", "mock", "-o", str(out), "--workers", "2"])
        assert code == 0

        printed = capsys.readouterr().out
        assert "Found 6 endpoints" in printed
        assert "Complete!" in printed
        assert json.loads(out.read_text())["counters"]["total"] == 6

    def test_second_run_reports_cache(self, sample_tree, capsys):
        run(["sum", str(sample_tree), "--provider", "mock", "-q"])
        capsys.readouterr()
        run(["sum", str(sample_tree), "--provider", "mock", "--format", "json"])
        report = json.loads(capsys.readouterr().out)
        assert report["counters"]["cached"] == 6

    def test_missing_target(self, tmp_path, capsys):
        assert run(["sum", str(tmp_path / "missing"), "--provider", "mock", "-q"]) == 1
        assert "not found" in capsys.readouterr().out

    def test_nothing_found_exits_one(self, tmp_path, capsys):
        (tmp_path / "empty").mkdir()
        assert run(["sum", str(tmp_path / "empty"), "--provider", "mock"]) == 1
        assert "No REST endpoints found" in capsys.readouterr().out

    def test_missing_api_key_is_fatal(self, sample_tree, capsys):
        assert run(["sum", str(sample_tree), "--provider", "gemini", "--no-cache", "-q"]) == 1
        assert "config set api-key" in capsys.readouterr().out

    def test_invalid_option_value(self, sample_tree, capsys):
        assert run(["sum", str(sample_tree), "--provider", "mock", "--workers", "0", "-q"]) == 1
        assert "concurrency" in capsys.readouterr().out


class TestConfigCommand:

    def test_get_without_key(self, capsys):
        assert run(["config", "get", "api-key"]) == 1
        assert "No API key configured" in capsys.readouterr().out

    def test_set_then_get(self, capsys):
        assert run(["config", "set", "api-key", "sk-1234567890abcdef"]) == 0
        assert "API key saved" in capsys.readouterr().out

        assert run(["config", "get", "api-key"]) == 0
        out = capsys.readouterr().out
        assert "sk-1...cdef" in out
        assert "1234567890" not in out


class TestCacheCommand:

    def test_stats_and_clear(self, sample_tree, capsys):
        run(["sum", str(sample_tree), "--provider", "mock", "-q"])
        capsys.readouterr()

        assert run(["cache", "stats"]) == 0
        assert "Entries" in capsys.readouterr().out

        assert run(["cache", "clear"]) == 0
        assert "Cleared 6 cached summaries" in capsys.readouterr().out

#!/usr/bin/env python

"""Tests for the rungrep command-line interface."""

import io
import json
import os
import sys

import pytest

# Add parent directory to path to import the module
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import github_api
import rungrep

from fetch_workflow_runs import WorkflowRun
from github_fakes import FakeGitHub, FakeResponse, make_run, runs_page

RUNS = [
    make_run(
        id=3,
        display_title="Fix: Update Deps (retry)",
        created_at="2026-01-17T10:00:00Z",
        html_url="https://github.com/org/repo/actions/runs/3",
    ),
    make_run(
        id=2,
        display_title="feat: add new feature",
        created_at="2026-01-16T10:00:00Z",
        html_url="https://github.com/org/repo/actions/runs/2",
    ),
    make_run(id=1, display_title="fix: update deps"),
]


@pytest.fixture
def github(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "test-token")
    fake = FakeGitHub(handler=lambda *_: runs_page(RUNS))
    monkeypatch.setattr(github_api.requests, "get", fake)
    return fake


@pytest.fixture
def opened(monkeypatch):
    urls = []
    monkeypatch.setattr(rungrep, "open_url", urls.append)
    return urls


def run_cli(*argv):
    return rungrep.main(["-r", "org/repo", "--since", "2026-01-01", *argv])


class TestFilterRuns:
    """Tests for case-insensitive substring matching."""

    RUN_OBJECTS = [WorkflowRun.from_api(item) for item in RUNS]

    def test_matches_case_insensitively(self):
        matches = rungrep.filter_runs(self.RUN_OBJECTS, "FIX")
        assert [run.id for run in matches] == [3, 1]

    def test_matches_partial_titles(self):
        matches = rungrep.filter_runs(self.RUN_OBJECTS, "new feat")
        assert [run.id for run in matches] == [2]

    def test_returns_empty_when_nothing_matches(self):
        assert rungrep.filter_runs(self.RUN_OBJECTS, "deploy") == []


class TestPrintRuns:
    """Tests for table and JSON rendering."""

    def test_json_output(self):
        out = io.StringIO()
        rungrep.print_runs([WorkflowRun.from_api(RUNS[2])], True, file=out)
        assert json.loads(out.getvalue()) == [
            {
                "name": "fix: update deps",
                "date": "2026-01-15T10:30:00Z",
                "url": "https://github.com/org/repo/actions/runs/1",
            }
        ]

    def test_table_has_header_separator_and_rows(self):
        out = io.StringIO()
        rungrep.print_runs([WorkflowRun.from_api(RUNS[2])], False, file=out)
        lines = out.getvalue().rstrip("\n").split("\n")
        assert len(lines) == 3
        assert lines[0].split() == ["NAME", "DATE", "URL"]
        assert set(lines[1]) == {"─"}
        assert "fix: update deps" in lines[2]
        assert "https://github.com/org/repo/actions/runs/1" in lines[2]

    def test_table_with_multiple_runs(self):
        out = io.StringIO()
        runs = [WorkflowRun.from_api(item) for item in RUNS]
        rungrep.print_runs(runs, False, file=out)
        assert len(out.getvalue().rstrip("\n").split("\n")) == 5

    def test_format_date_includes_year(self):
        assert "2026" in rungrep.format_date("2026-01-15T10:30:00Z")


class TestSearch:
    """Tests for end-to-end searches."""

    def test_prints_matching_runs_as_json(self, github, capsys):
        assert run_cli("fix", "--json") == 0

        output = json.loads(capsys.readouterr().out)
        assert [item["url"][-1] for item in output] == ["3", "1"]
        assert github.params[0]["created"] == ">=2026-01-01T00:00:00Z"

    def test_last_returns_newest_match(self, github, capsys):
        assert run_cli("fix", "--json", "--last") == 0

        output = json.loads(capsys.readouterr().out)
        assert len(output) == 1
        assert output[0]["name"] == "Fix: Update Deps (retry)"

    def test_top_without_since_is_unbounded(self, github, capsys):
        assert rungrep.main(["fix", "-r", "org/repo", "-t", "1", "--json"]) == 0

        assert "created" not in github.params[0]
        assert len(json.loads(capsys.readouterr().out)) == 1

    def test_default_since_applies_without_top(self, github, capsys):
        rungrep.main(["fix", "-r", "org/repo"])

        assert github.params[0]["created"].startswith(">=")

    def test_passes_branch_and_status(self, github, capsys):
        run_cli("fix", "-b", "main", "-s", "failure")

        assert github.params[0]["branch"] == "main"
        assert github.params[0]["status"] == "failure"

    def test_no_matches_exits_1(self, github, capsys):
        assert run_cli("deploy") == 1
        assert "No matching runs found." in capsys.readouterr().err

    def test_resolves_workflow_name(self, monkeypatch, capsys):
        monkeypatch.setenv("GITHUB_TOKEN", "test-token")

        def handler(call_number, url, params):
            if url.endswith("/actions/workflows"):
                return {"total_count": 1, "workflows": [{"id": 42, "name": "CI"}]}
            return runs_page(RUNS)

        fake = FakeGitHub(handler=handler)
        monkeypatch.setattr(github_api.requests, "get", fake)

        assert run_cli("fix", "-a", "ci") == 0
        assert fake.calls[1]["url"].endswith("/actions/workflows/42/runs")

    def test_unknown_workflow_exits_1(self, monkeypatch, capsys):
        monkeypatch.setenv("GITHUB_TOKEN", "test-token")
        monkeypatch.setattr(
            github_api.requests,
            "get",
            FakeGitHub([{"total_count": 0, "workflows": []}]),
        )

        assert run_cli("fix", "-a", "Nightly") == 1
        assert 'Workflow "Nightly" not found in org/repo' in capsys.readouterr().err


class TestOpen:
    """Tests for --open."""

    def test_opens_single_match(self, github, opened, capsys):
        assert run_cli("feat", "--open") == 0
        assert opened == ["https://github.com/org/repo/actions/runs/2"]

    def test_refuses_multiple_matches(self, github, opened, capsys):
        assert run_cli("fix", "--open") == 1
        assert opened == []
        assert "requires exactly one match, but found 2" in capsys.readouterr().err


class TestErrors:
    """Tests for input validation and error reporting."""

    @pytest.mark.parametrize("repo", ["orgrepo", "org/repo/extra", "/repo", "org/"])
    def test_rejects_invalid_repo(self, github, repo, capsys):
        assert rungrep.main(["fix", "-r", repo]) == 2
        assert "Invalid repo format" in capsys.readouterr().err
        assert github.calls == []

    def test_rejects_invalid_status(self, github, capsys):
        assert run_cli("fix", "-s", "exploded") == 2
        assert 'Invalid status "exploded"' in capsys.readouterr().err

    def test_rejects_invalid_since(self, github, capsys):
        assert rungrep.main(["fix", "-r", "org/repo", "--since", "abc"]) == 2
        assert "Invalid --since value" in capsys.readouterr().err
        assert github.calls == []

    @pytest.mark.parametrize("top", ["0", "-1", "many"])
    def test_rejects_invalid_top(self, github, top, capsys):
        with pytest.raises(SystemExit) as excinfo:
            rungrep.main(["fix", "-r", "org/repo", "-t", top])
        assert excinfo.value.code == 2

    def test_missing_token_exits_2(self, monkeypatch, capsys):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)

        def no_token(*args, **kwargs):
            raise github_api.MissingTokenError("no token")

        monkeypatch.setattr(rungrep, "get_github_token", no_token)

        assert run_cli("fix") == 2
        assert "no token" in capsys.readouterr().err

    def test_api_error_prints_remediation(self, monkeypatch, capsys):
        monkeypatch.setenv("GITHUB_TOKEN", "test-token")
        monkeypatch.setattr(
            github_api.requests,
            "get",
            FakeGitHub([FakeResponse(404, text="Not Found", reason="Not Found")]),
        )

        assert run_cli("fix") == 1
        assert 'Repository "org/repo" not found' in capsys.readouterr().err

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            rungrep.main(["--version"])
        assert excinfo.value.code == 0
        assert capsys.readouterr().out.strip() == "rungrep 1.0.0"

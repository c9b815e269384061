"""
End-to-end tests for the command-line entry point.

A small Python script stands in for the inference CLI: it answers with a
specialist report or a synthesis document depending on the system prompt.
"""

import io
import json
import sys
from datetime import timedelta

import pytest

from tirds.main import main

FAKE_CLAUDE = '''
import json, sys
args = sys.argv[1:]
if "--version" in args:
    print("fake-claude 0.0.1")
    sys.exit(0)
mode = {mode!r}
if mode == "fail":
    sys.stderr.write("rate limited")
    sys.exit(1)
sys.stdin.read()
system = args[args.index("--system-prompt") + 1]
if "chief decision synthesizer" in system:
    print(json.dumps({synthesis}))
else:
    print("Analysis complete.\\n" + json.dumps({{"direction": "bullish", "confidence": 0.7, "reasoning": "ok"}}))
'''


@pytest.fixture
def make_config(tmp_path, writable_store, make_entry, temp_db_path, synthesis_payload):
    writable_store.upsert(make_entry("quote:AAPL", {"price": 185.5}, symbol="AAPL",
                                     expires_in=timedelta(days=36500)))

    def _make(mode="ok", db_path=None):
        script = tmp_path / f"fake_claude_{mode}.py"
        script.write_text(FAKE_CLAUDE.format(mode=mode, synthesis=synthesis_payload))
        config = tmp_path / f"tirds_{mode}.toml"
        config.write_text(
            f"[cache]\nsqlite_path = {json.dumps(db_path or temp_db_path)}\n\n"
            f"[agents]\nspecialist_timeout_seconds = 20\n"
            f"cli_command = {json.dumps([sys.executable, str(script)])}\n"
        )
        return str(config)

    return _make


@pytest.fixture
def proposal_file(tmp_path, sample_proposal_json):
    path = tmp_path / "proposal.json"
    path.write_text(sample_proposal_json)
    return str(path)


def _error_line(err: str) -> dict:
    lines = [line for line in err.splitlines() if line.startswith("{")]
    assert lines, err
    return json.loads(lines[-1])


class TestCli:

    def test_decision_on_stdout(self, make_config, proposal_file, capsys):
        code = main(["--config", make_config(), "--input", proposal_file])
        out, _ = capsys.readouterr()

        assert code == 0
        decision = json.loads(out)
        assert decision["symbol"] == "AAPL"
        assert len(decision["contributions"]) == 4
        assert decision["overall_confidence"]["score"] == 0.64

    def test_reads_stdin(self, make_config, sample_proposal_json, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(sample_proposal_json))
        code = main(["--config", make_config(), "--pretty"])
        out, _ = capsys.readouterr()
        assert code == 0
        assert out.startswith("{\n")

    def test_all_specialists_failed(self, make_config, proposal_file, capsys):
        code = main(["--config", make_config("fail"), "--input", proposal_file])
        out, err = capsys.readouterr()

        assert code == 5
        assert out == ""
        assert _error_line(err)["error"] == "all_specialists_failed"

    def test_cache_unavailable(self, make_config, proposal_file, tmp_path, capsys):
        code = main(["--config", make_config(db_path=str(tmp_path / "missing.db")), "--input", proposal_file])
        out, err = capsys.readouterr()

        assert code == 4
        assert out == ""
        assert _error_line(err)["error"] == "evaluation_aborted"

    def test_invalid_proposal(self, make_config, tmp_path, capsys):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"symbol": "AAPL", "legs": []}))
        code = main(["--config", make_config(), "--input", str(bad)])
        out, err = capsys.readouterr()

        assert code == 3
        assert out == ""
        assert _error_line(err)["error"] == "invalid_proposal"

    def test_malformed_config(self, tmp_path, proposal_file, capsys):
        config = tmp_path / "broken.toml"
        config.write_text("[agents\n")
        code = main(["--config", str(config), "--input", proposal_file])
        out, err = capsys.readouterr()

        assert code == 2
        assert out == ""
        assert _error_line(err)["error"] == "malformed_configuration"

    def test_check_cli(self, make_config):
        assert main(["--config", make_config(), "--check-cli"]) == 0

    @pytest.mark.parametrize("change", [
        {"id": None},
        {"schema_version": None},
        {"proposed_at": None},
        {"schema_version": 99},
        {"proposed_at": "2026-01-15T15:30:00"},
    ])
    def test_incomplete_or_unsupported_proposal(self, make_config, tmp_path, sample_proposal_json, change, capsys):
        body = json.loads(sample_proposal_json)
        for field, value in change.items():
            if value is None:
                body.pop(field)
            else:
                body[field] = value
        path = tmp_path / "proposal_changed.json"
        path.write_text(json.dumps(body))

        code = main(["--config", make_config(), "--input", str(path)])
        out, err = capsys.readouterr()

        assert code == 3
        assert out == ""
        assert _error_line(err)["error"] == "invalid_proposal"

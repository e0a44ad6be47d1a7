"""Unit tests for `mulch init / add / remove / status`."""
from __future__ import annotations

import json

import pytest

from mulch.cli.main import run
from mulch.config import MulchConfig


def _run_json(capsys, *argv: str) -> tuple[int, dict]:
    code = run(["--json", *argv])
    return code, json.loads(capsys.readouterr().out)


class TestHelpText:
    def test_help_exits_zero(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run(["--help"])
        assert exc_info.value.code == 0
        assert "record" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert run([]) == 0
        assert "usage: mulch" in capsys.readouterr().out


class TestInit:
    def test_init_creates_layout(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        code, payload = _run_json(capsys, "init")
        assert code == 0
        assert payload["success"] is True
        assert (tmp_path / ".mulch" / "mulch.config.toml").exists()

    def test_commands_require_init(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert run(["status"]) == 1
        assert "Run `mulch init` first" in capsys.readouterr().err


class TestAddRemove:
    def test_add_then_status(self, mulch_root, monkeypatch, capsys):
        monkeypatch.chdir(mulch_root)
        code, payload = _run_json(capsys, "add", "api")
        assert code == 0
        assert MulchConfig.load(mulch_root).domains == ("testing", "api")

        code, payload = _run_json(capsys, "status")
        assert [d["domain"] for d in payload["domains"]] == ["testing", "api"]
        assert payload["domains"][0]["governance_status"] == "ok"

    def test_add_duplicate_is_error(self, mulch_root, monkeypatch, capsys):
        monkeypatch.chdir(mulch_root)
        code, payload = _run_json(capsys, "add", "testing")
        assert code == 1
        assert payload == {"success": False, "command": "add", "error": 'Domain "testing" already exists.'}

    def test_add_invalid_name_plain_error(self, mulch_root, monkeypatch, capsys):
        monkeypatch.chdir(mulch_root)
        assert run(["add", "bad/name"]) == 1
        assert capsys.readouterr().err.startswith('Error: Invalid domain name: "bad/name"')

    def test_remove_non_empty_needs_force(self, mulch_root, monkeypatch, capsys):
        monkeypatch.chdir(mulch_root)
        run(["record", "testing", "--type", "convention", "Use tabs"])
        capsys.readouterr()

        assert run(["remove", "testing"]) == 1
        assert "--force" in capsys.readouterr().err

        code, payload = _run_json(capsys, "remove", "testing", "--force")
        assert code == 0
        assert MulchConfig.load(mulch_root).domains == ()


def test_status_counts_and_types(mulch_root, monkeypatch, capsys):
    monkeypatch.chdir(mulch_root)
    run(["record", "testing", "--type", "convention", "Use tabs"])
    run(["record", "testing", "--type", "failure", "--description", "Flaky", "--resolution", "Seed"])
    capsys.readouterr()

    code, payload = _run_json(capsys, "status")
    domain = payload["domains"][0]
    assert domain["count"] == 2
    assert domain["types"] == {"convention": 1, "failure": 1}
    assert domain["governance_utilization"] == 2

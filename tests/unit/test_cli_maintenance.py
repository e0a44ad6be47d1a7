"""Unit tests for `mulch validate / doctor / prune / compact`."""
from __future__ import annotations

import json

import pytest

from mulch.cli.main import run
from mulch.expertise.models import Classification, Convention
from mulch.expertise.store import ExpertiseStore, serialize_record


def _run_json(capsys, *argv: str) -> tuple[int, dict]:
    code = run(["--json", *argv])
    return code, json.loads(capsys.readouterr().out)


def _line(content: str, recorded_at: str = "2025-01-01T00:00:00.000Z",
          classification: Classification = Classification.TACTICAL) -> str:
    return serialize_record(Convention(content=content, classification=classification, recorded_at=recorded_at))


@pytest.fixture
def in_project(mulch_root, monkeypatch):
    monkeypatch.chdir(mulch_root)
    return mulch_root


class TestValidate:
    def test_clean_store(self, in_project, capsys):
        run(["record", "testing", "--type", "convention", "Use tabs"])
        capsys.readouterr()
        assert run(["validate"]) == 0
        assert "1 records validated, 0 errors found" in capsys.readouterr().out

    def test_reports_bad_lines(self, in_project, store: ExpertiseStore, capsys):
        store.path_for("testing").write_text(
            f'{_line("ok")}\n{{"type": "convention", "classification": "tactical"}}\n', encoding="utf-8"
        )
        code, payload = _run_json(capsys, "validate")
        assert code == 1
        assert payload["total_records"] == 2
        assert payload["errors"][0]["line"] == 2
        assert "missing field 'content'" in payload["errors"][0]["message"]


class TestDoctor:
    def test_reports_then_fixes(self, in_project, store: ExpertiseStore, capsys):
        store.path_for("testing").write_text(f"{_line('a')}\nnot json\n", encoding="utf-8")
        store.create_domain_file("orphaned")

        code, payload = _run_json(capsys, "doctor")
        assert code == 1
        assert sorted(i["check"] for i in payload["issues"]) == ["orphan", "parse"]

        code, payload = _run_json(capsys, "doctor", "--fix")
        assert code == 0
        assert len(payload["fixed"]) == 2

        assert run(["doctor"]) == 0
        assert "No issues found." in capsys.readouterr().out


class TestPrune:
    def test_dry_run_then_prune(self, in_project, store: ExpertiseStore, capsys):
        store.path_for("testing").write_text(
            f"{_line('ancient', '2000-01-01T00:00:00.000Z')}\n"
            f"{_line('timeless', '2000-01-01T00:00:00.000Z', Classification.FOUNDATIONAL)}\n",
            encoding="utf-8",
        )

        code, payload = _run_json(capsys, "prune", "--dry-run")
        assert (code, payload["dry_run"], payload["total_pruned"]) == (0, True, 1)
        assert len(store.read_domain("testing")) == 2

        code, payload = _run_json(capsys, "prune")
        assert payload["total_pruned"] == 1
        assert [r.content for r in store.read_domain("testing")] == ["timeless"]

    def test_nothing_stale(self, in_project, capsys):
        assert run(["prune"]) == 0
        assert "No stale records found." in capsys.readouterr().out


class TestCompact:
    def test_keeps_newest_duplicate(self, in_project, store: ExpertiseStore, capsys):
        store.path_for("testing").write_text(
            f"{_line('same', '2025-02-01T00:00:00.000Z')}\n{_line('same', '2024-01-01T00:00:00.000Z')}\n",
            encoding="utf-8",
        )
        code, payload = _run_json(capsys, "compact", "--dry-run")
        assert payload["domains"] == [{"domain": "testing", "merged": 1, "groups": {"convention": 2}}]

        code, payload = _run_json(capsys, "compact")
        assert payload["total_merged"] == 1
        assert [r.recorded_at for r in store.read_domain("testing")] == ["2025-02-01T00:00:00.000Z"]

    def test_nothing_to_compact(self, in_project, capsys):
        assert run(["compact"]) == 0
        assert "No duplicate records found to compact." in capsys.readouterr().out

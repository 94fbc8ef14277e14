import json
import logging
from datetime import timedelta

import pytest

from database import Database
from main import build_parser, main
from models.briefing import Briefing, StoredBriefing
from tests.fakes import BASE_TIME


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "log"))
    monkeypatch.setenv("REPORTS_DIR", str(tmp_path / "reports"))
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    root = logging.getLogger()
    saved = root.handlers[:]
    yield tmp_path
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in saved:
        root.addHandler(handler)


def _seed(db_path):
    with Database(db_path) as db:
        db.insert_briefing(StoredBriefing(
            briefing_id="b1",
            generated_at=BASE_TIME,
            time_window_start=BASE_TIME - timedelta(hours=24),
            time_window_end=BASE_TIME,
            content=Briefing(executive_summary=["Rates dominate", "Oil flat", "Credit tight"]),
            email_count=12,
        ))


def test_parser_accepts_explicit_window():
    args = build_parser().parse_args(
        ["generate", "--start", "2026-10-01T00:00:00Z", "--end", "2026-10-02T00:00:00", "--no-deliver"]
    )

    assert args.start.isoformat() == "2026-10-01T00:00:00+00:00"
    assert args.end.isoformat() == "2026-10-02T00:00:00+00:00"
    assert args.no_deliver


def test_generate_requires_api_key(cli_env, capsys):
    assert main(["generate"]) == 1
    assert "GEMINI_API_KEY" in capsys.readouterr().err


def test_generate_rejects_lone_start(cli_env, capsys):
    assert main(["generate", "--start", "2026-10-01T00:00:00Z"]) == 1
    assert "--start and --end" in capsys.readouterr().err


def test_archive_and_show(cli_env, capsys):
    _seed(cli_env / "cli.db")

    assert main(["archive"]) == 0
    out = capsys.readouterr().out
    assert "b1" in out
    assert "Rates dominate" in out

    assert main(["show", "b1"]) == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown["email_count"] == 12

    assert main(["show", "missing"]) == 1


def test_render_writes_output_file(cli_env):
    _seed(cli_env / "cli.db")
    output = cli_env / "out" / "briefing.md"

    assert main(["render", "--output", str(output)]) == 0
    assert "- Rates dominate" in output.read_text(encoding="utf-8")


def test_latest_on_empty_store(cli_env, capsys):
    assert main(["latest"]) == 0
    assert "No briefings stored yet." in capsys.readouterr().out

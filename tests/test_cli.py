import json
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from library_app import cli
from library_app.cli import app
from library_app.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    # --output seçeneği ortam değişkenine yazar; her test düz çıktıyla başlar
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")


def test_init_db(db_file):
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0
    assert f"Database initialized: {db_file}" in result.stdout


def test_empty_listings(db_file):
    assert "No books in catalog." in runner.invoke(app, ["books"]).stdout
    assert "No libraries registered." in runner.invoke(app, ["libraries"]).stdout


def test_seed_demo_then_list(db_file):
    result = runner.invoke(app, ["seed-demo"])
    assert result.exit_code == 0
    assert "Demo data created: 2 libraries, 2 books, 2 users." in result.stdout

    again = runner.invoke(app, ["seed-demo"])
    assert "Demo data already present." in again.stdout

    books = runner.invoke(app, ["books"])
    assert "Clean Code by Robert C. Martin [MODERN]" in books.stdout
    assert "Dream of the Red Chamber by Cao Xueqin [TRADITIONAL]" in books.stdout

    filtered = runner.invoke(app, ["books", "--author", "martin"])
    assert "Clean Code" in filtered.stdout
    assert "Dream of the Red Chamber" not in filtered.stdout

    libraries = runner.invoke(app, ["libraries"])
    assert "Central Library - 1 Main Street" in libraries.stdout
    assert "East Branch - 42 East Avenue" in libraries.stdout


def test_stats_after_seed(db_file):
    runner.invoke(app, ["seed-demo"])
    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 0
    assert "Total Books: 2" in result.stdout
    assert "Total Copies: 6" in result.stdout
    assert "Members: 1" in result.stdout


def test_json_output(db_file):
    runner.invoke(app, ["seed-demo"])
    result = runner.invoke(app, ["--output", "json", "libraries"])
    assert result.exit_code == 0
    names = [item["name"] for item in json.loads(result.stdout)]
    assert names == ["Central Library", "East Branch"]


def test_loans_for_unknown_user(db_file):
    result = runner.invoke(app, ["loans", "999"])
    assert result.exit_code == 1
    assert "Error: User not found" in result.stdout


def test_loans_for_member(db_file):
    runner.invoke(app, ["seed-demo"])
    services = cli._services()
    member = services.users.find_by_email("member@example.com")
    copy = services.books.get_book_copies(services.books.search_books(title="Clean Code")[0].id)[0]
    record = services.borrows.borrow_book(member.id, copy.id)

    result = runner.invoke(app, ["loans", str(member.id)])
    assert result.exit_code == 0
    assert f"#{record.id} copy {copy.id}" in result.stdout
    assert "[BORROWED]" in result.stdout

    services.borrows.return_book(record.id)
    assert "No loans found." in runner.invoke(app, ["loans", str(member.id)]).stdout
    assert "[RETURNED]" in runner.invoke(app, ["loans", str(member.id), "--all"]).stdout


def test_check_notifications(db_file):
    result = runner.invoke(app, ["check-notifications"])
    assert result.exit_code == 0
    assert "Sent 0 reminder(s)." in result.stdout


def test_serve_invokes_uvicorn(monkeypatch):
    run_mock = MagicMock()
    monkeypatch.setattr(cli.subprocess, "run", run_mock)

    result = runner.invoke(app, ["serve", "--host", "0.0.0.0", "--port", "9000", "--reload"])

    assert result.exit_code == 0
    assert "Starting API server on http://0.0.0.0:9000/" in result.stdout
    args = run_mock.call_args[0][0]
    assert "library_app.api:app" in args
    assert args[args.index("--port") + 1] == "9000"
    assert args[-1] == "--reload"
